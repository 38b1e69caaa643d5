from __future__ import annotations

import logging
import shutil
import sys
from pathlib import Path
from typing import Callable

import click

from imagebuilder_cli import runtime
from imagebuilder_cli.errors import HookCommandError
from imagebuilder_cli.image_names import load_image_names
from imagebuilder_cli.models import DEFAULT_DOCKERFILE, OrchestratorSettings, RunRequest, split_command_line
from imagebuilder_cli.orchestrator import invoke_image_builder
from imagebuilder_cli.retry import DEFAULT_RETRY_ATTEMPTS, DEFAULT_RETRY_WAIT_FACTOR


LOG_LEVEL_CHOICES = ("debug", "info", "warning", "error")
CONTAINER_PLACEHOLDER = "{container}"


def _to_absolute(value: str, cwd: Path) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else (cwd / path).resolve()


def _configure_logging(level: str) -> None:
    handler = logging.StreamHandler(sys.__stderr__)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    runtime.LOGGER.handlers.clear()
    runtime.LOGGER.addHandler(handler)
    runtime.LOGGER.setLevel(getattr(logging, level.upper(), logging.WARNING))
    runtime.LOGGER.propagate = False


def _post_command_hook(template: str, repo_root: Path) -> Callable[[str], None]:
    parts = split_command_line(template)
    if not parts:
        raise click.ClickException("--post-command must not be empty")

    def hook(container_name: str) -> None:
        cmd = [part.replace(CONTAINER_PLACEHOLDER, container_name) for part in parts]
        runtime.run(cmd, cwd=repo_root, error=HookCommandError)

    return hook


@click.command(context_settings={"ignore_unknown_options": True})
@click.option(
    "--repo-root",
    default=".",
    show_default=True,
    help="Repository directory used as build context and working directory for every command.",
)
@click.option(
    "--runtime-options",
    default="",
    help="Extra options passed to 'docker run' when the image builder runs in a container.",
)
@click.option(
    "--reuse-image-builder-image",
    is_flag=True,
    default=False,
    help="Skip pulling and building; reuse the previously built image builder image.",
)
@click.option("--image-names-file", default=None, help="TOML file with an [image_names] table")
@click.option(
    "--dockerfile",
    default=str(DEFAULT_DOCKERFILE),
    show_default=True,
    help="Dockerfile that bakes the repository into the image builder image (relative paths resolve against --repo-root)",
)
@click.option("--retry-attempts", default=DEFAULT_RETRY_ATTEMPTS, show_default=True, type=click.IntRange(min=1))
@click.option(
    "--retry-wait-factor",
    default=DEFAULT_RETRY_WAIT_FACTOR,
    show_default=True,
    type=click.FloatRange(min=0),
    help="Retried pulls wait FACTOR**attempt seconds between attempts.",
)
@click.option(
    "--remove-extraction-container",
    is_flag=True,
    default=False,
    help="Also remove the container used to extract a local image builder binary.",
)
@click.option(
    "--post-command",
    default=None,
    help="Command run after the image builder succeeds while its container still exists. "
    "'{container}' is replaced with the container name. Split POSIX-style, except on Windows "
    "where backslashes are kept literally.",
)
@click.option("--log-level", type=click.Choice(LOG_LEVEL_CHOICES), default="warning", show_default=True)
@click.argument("image_builder_args", nargs=-1, type=click.UNPROCESSED)
def main(
    repo_root: str,
    runtime_options: str,
    reuse_image_builder_image: bool,
    image_names_file: str | None,
    dockerfile: str,
    retry_attempts: int,
    retry_wait_factor: float,
    remove_extraction_container: bool,
    post_command: str | None,
    log_level: str,
    image_builder_args: tuple[str, ...],
) -> None:
    _configure_logging(log_level)

    if shutil.which("docker") is None:
        raise click.ClickException("docker command not found in PATH")

    cwd = Path.cwd().resolve()
    repo_root_path = _to_absolute(repo_root, cwd)
    if not repo_root_path.is_dir():
        raise click.ClickException(f"Repository root does not exist: {repo_root_path}")

    image_names_path: Path | None = None
    if image_names_file:
        image_names_path = _to_absolute(image_names_file, cwd)
        if not image_names_path.is_file():
            raise click.ClickException(f"Image names file does not exist: {image_names_path}")

    hook = _post_command_hook(post_command, repo_root_path) if post_command else None
    request = RunRequest.create(
        image_builder_args,
        runtime_options,
        reuse_image_builder_image=reuse_image_builder_image,
        on_command_executed=hook,
    )
    settings = OrchestratorSettings(
        repo_root=repo_root_path,
        dockerfile=_to_absolute(dockerfile, repo_root_path),
        retry_attempts=retry_attempts,
        retry_wait_factor=retry_wait_factor,
        image_names=lambda: load_image_names(image_names_path),
        remove_extraction_container=remove_extraction_container,
    )
    invoke_image_builder(request, settings)


if __name__ == "__main__":
    main()
