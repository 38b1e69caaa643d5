from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from click.testing import CliRunner

import sys

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import imagebuilder_cli.cli as imagebuilder_cli
from imagebuilder_cli.errors import CommandFailedError


CONTAINER_NAME = "ImageBuilder-20260101120000"


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_path = Path(self._tmp.name)
        self.repo = self.tmp_path / "repo"
        self.repo.mkdir()
        self.image_names = self.tmp_path / "image-names.toml"
        self.image_names.write_text(
            "[image_names]\n"
            'ImageBuilderLinux = "registry.test/ib:linux"\n'
            'ImageBuilderWindows = "registry.test/ib:windows"\n',
            encoding="utf-8",
        )
        self.commands: list[list[str]] = []
        self.server_os = "linux"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _fake_capture(self, cmd, cwd=None, error=CommandFailedError) -> str:
        self.commands.append(list(cmd))
        return self.server_os + "\n"

    def _invoke(self, args: list[str], run_side_effect=None):
        def fake_run(cmd, cwd=None, error=CommandFailedError) -> None:
            self.commands.append(list(cmd))
            if run_side_effect is not None:
                run_side_effect(list(cmd), error)

        runner = CliRunner()
        with patch("imagebuilder_cli.cli.shutil.which", return_value="/usr/bin/docker"), patch(
            "imagebuilder_cli.orchestrator.generate_container_name", return_value=CONTAINER_NAME
        ), patch("imagebuilder_cli.runtime.run", side_effect=fake_run), patch(
            "imagebuilder_cli.runtime.capture", side_effect=self._fake_capture
        ), patch.dict(
            "os.environ", {"IMAGEBUILDER_LINUX_IMAGE": "", "IMAGEBUILDER_WINDOWS_IMAGE": ""}
        ):
            return runner.invoke(
                imagebuilder_cli.main,
                ["--repo-root", str(self.repo), "--image-names-file", str(self.image_names), *args],
            )

    def test_linux_run_uses_image_names_file_and_passes_through_args(self) -> None:
        result = self._invoke(["--runtime-options", "-e DRY=1", "--", "build", "--manifest", "manifest.json"])

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertIn(["docker", "pull", "registry.test/ib:linux"], self.commands)
        run_cmd = self.commands[-1]
        self.assertEqual(run_cmd[:4], ["docker", "run", "--name", CONTAINER_NAME])
        self.assertIn("--rm", run_cmd)
        self.assertEqual(run_cmd[-3:], ["build", "--manifest", "manifest.json"])
        self.assertLess(run_cmd.index("DRY=1"), run_cmd.index("imagebuilder-withrepo"))
        self.assertIn("Building image 'imagebuilder-withrepo'", result.output)

    def test_relative_dockerfile_resolves_against_repo_root(self) -> None:
        dockerfile = self.repo / "eng" / "Dockerfile.WithRepo"
        dockerfile.parent.mkdir()
        dockerfile.write_text("ARG IMAGE\nFROM $IMAGE\n", encoding="utf-8")

        result = self._invoke(["--dockerfile", "eng/Dockerfile.WithRepo", "--", "build"])

        self.assertEqual(result.exit_code, 0, msg=result.output)
        build_cmd = next(cmd for cmd in self.commands if cmd[:2] == ["docker", "build"])
        self.assertEqual(build_cmd[build_cmd.index("-f") + 1], str(dockerfile.resolve()))

    def test_post_command_runs_against_live_container_then_removes_it(self) -> None:
        result = self._invoke(
            [
                "--reuse-image-builder-image",
                "--post-command",
                "docker cp {container}:/repo/artifacts ./artifacts",
                "--",
                "build",
            ]
        )

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(
            [cmd[:2] for cmd in self.commands],
            [["docker", "version"], ["docker", "run"], ["docker", "cp"], ["docker", "container"]],
        )
        self.assertNotIn("--rm", self.commands[1])
        self.assertEqual(self.commands[2], ["docker", "cp", f"{CONTAINER_NAME}:/repo/artifacts", "./artifacts"])
        self.assertEqual(self.commands[3], ["docker", "container", "rm", "-f", CONTAINER_NAME])

    def test_failing_post_command_reports_command_and_still_cleans_up(self) -> None:
        def fail_cp(cmd: list[str], error) -> None:
            if cmd[:2] == ["docker", "cp"]:
                raise error(cmd, 1)

        result = self._invoke(
            ["--reuse-image-builder-image", "--post-command", "docker cp {container}:/out out"],
            run_side_effect=fail_cp,
        )

        self.assertEqual(result.exit_code, 1)
        self.assertIn(f"Post-execution command failed with exit code 1: docker cp {CONTAINER_NAME}:/out out", result.output)
        self.assertEqual(self.commands[-1], ["docker", "container", "rm", "-f", CONTAINER_NAME])

    def test_windows_host_extracts_local_binary(self) -> None:
        self.server_os = "windows"

        result = self._invoke(["--retry-attempts", "2", "--", "build"])

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertIn(["docker", "create", "--name", CONTAINER_NAME, "registry.test/ib:windows"], self.commands)
        self.assertEqual(
            self.commands[-1],
            [str(self.repo / ".Microsoft.DotNet.ImageBuilder" / "Microsoft.DotNet.ImageBuilder.exe"), "build"],
        )
        self.assertNotIn(["docker", "container", "rm", "-f", CONTAINER_NAME], self.commands)

    def test_windows_host_can_remove_extraction_container(self) -> None:
        self.server_os = "windows"

        result = self._invoke(["--remove-extraction-container", "--", "build"])

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(self.commands[-1], ["docker", "container", "rm", "-f", CONTAINER_NAME])

    def test_execution_failure_exits_nonzero_with_command(self) -> None:
        def fail_run(cmd: list[str], error) -> None:
            if cmd[:2] == ["docker", "run"]:
                raise error(cmd, 3)

        result = self._invoke(["--reuse-image-builder-image", "--", "build"], run_side_effect=fail_run)

        self.assertEqual(result.exit_code, 1)
        self.assertIn("Image builder execution failed with exit code 3: docker run --name", result.output)

    def test_missing_docker_is_reported(self) -> None:
        runner = CliRunner()
        with patch("imagebuilder_cli.cli.shutil.which", return_value=None):
            result = runner.invoke(imagebuilder_cli.main, ["--repo-root", str(self.repo), "build"])

        self.assertEqual(result.exit_code, 1)
        self.assertIn("docker command not found in PATH", result.output)

    def test_missing_repo_root_is_reported(self) -> None:
        runner = CliRunner()
        with patch("imagebuilder_cli.cli.shutil.which", return_value="/usr/bin/docker"):
            result = runner.invoke(imagebuilder_cli.main, ["--repo-root", str(self.tmp_path / "missing")])

        self.assertEqual(result.exit_code, 1)
        self.assertIn("Repository root does not exist", result.output)

    def test_missing_image_names_file_is_reported(self) -> None:
        runner = CliRunner()
        with patch("imagebuilder_cli.cli.shutil.which", return_value="/usr/bin/docker"):
            result = runner.invoke(
                imagebuilder_cli.main,
                ["--repo-root", str(self.repo), "--image-names-file", str(self.tmp_path / "absent.toml")],
            )

        self.assertEqual(result.exit_code, 1)
        self.assertIn("Image names file does not exist", result.output)


if __name__ == "__main__":
    unittest.main()
