from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Iterable, Sequence

from imagebuilder_cli.errors import CommandFailedError


DOCKER_SOCKET_PATH = "/var/run/docker.sock"
SERVER_OS_FORMAT = "{{ .Server.Os }}"

LOGGER = logging.getLogger("imagebuilder_cli")
LOGGER.addHandler(logging.NullHandler())


def run(
    cmd: Iterable[str],
    cwd: Path | None = None,
    error: type[CommandFailedError] = CommandFailedError,
) -> None:
    cmd = [str(part) for part in cmd]
    LOGGER.debug("Running command: %s", " ".join(cmd))
    result = subprocess.run(cmd, cwd=str(cwd) if cwd else None, check=False)
    if result.returncode != 0:
        raise error(cmd, result.returncode)


def capture(
    cmd: Iterable[str],
    cwd: Path | None = None,
    error: type[CommandFailedError] = CommandFailedError,
) -> str:
    cmd = [str(part) for part in cmd]
    LOGGER.debug("Capturing command: %s", " ".join(cmd))
    result = subprocess.run(
        cmd,
        cwd=str(cwd) if cwd else None,
        check=False,
        text=True,
        capture_output=True,
    )
    if result.returncode != 0:
        LOGGER.debug("Command output: %s", (result.stdout or "") + (result.stderr or ""))
        raise error(cmd, result.returncode)
    return result.stdout or ""


# Argument-list builders for the docker subcommands the orchestrator issues.


def docker_server_os() -> list[str]:
    return ["docker", "version", "-f", SERVER_OS_FORMAT]


def docker_pull(image: str) -> list[str]:
    return ["docker", "pull", image]


def docker_build(*, tag: str, dockerfile: Path | str, build_args: dict[str, str], context: str = ".") -> list[str]:
    cmd = ["docker", "build", "-t", tag]
    for key, value in build_args.items():
        cmd.extend(["--build-arg", f"{key}={value}"])
    cmd.extend(["-f", str(dockerfile), context])
    return cmd


def docker_run(
    *,
    name: str,
    image: str,
    runtime_options: Sequence[str] = (),
    auto_remove: bool = True,
    args: Sequence[str] = (),
) -> list[str]:
    cmd = [
        "docker",
        "run",
        "--name",
        name,
        "-v",
        f"{DOCKER_SOCKET_PATH}:{DOCKER_SOCKET_PATH}",
        *runtime_options,
    ]
    if auto_remove:
        cmd.append("--rm")
    cmd.append(image)
    cmd.extend(args)
    return cmd


def docker_create(*, name: str, image: str) -> list[str]:
    return ["docker", "create", "--name", name, image]


def docker_cp(*, container: str, source: str, destination: Path | str) -> list[str]:
    return ["docker", "cp", f"{container}:{source}", str(destination)]


def docker_container_rm(name: str) -> list[str]:
    return ["docker", "container", "rm", "-f", name]
