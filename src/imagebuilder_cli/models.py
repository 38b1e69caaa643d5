from __future__ import annotations

import enum
import os
import shlex
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from imagebuilder_cli.errors import ImageBuilderError
from imagebuilder_cli.image_names import load_image_names
from imagebuilder_cli.retry import DEFAULT_RETRY_ATTEMPTS, DEFAULT_RETRY_WAIT_FACTOR


LINUX_OS_TOKEN = "linux"
CONTAINER_NAME_PREFIX = "ImageBuilder"
DEFAULT_WITH_REPO_IMAGE = "imagebuilder-withrepo"
DEFAULT_DOCKERFILE = Path(__file__).resolve().parent / "Dockerfile.WithRepo"
DEFAULT_EXTRACTION_DIR = ".Microsoft.DotNet.ImageBuilder"
DEFAULT_EXECUTABLE_NAME = "Microsoft.DotNet.ImageBuilder.exe"
DEFAULT_PAYLOAD_PATH = "/image-builder"
# Windows command lines keep backslashes literal.
POSIX_SHELL_SPLIT = os.name != "nt"

PostExecutionHook = Callable[[str], Any]


class PlatformStrategy(enum.Enum):
    CONTAINERIZED_RUNNER = "containerized-runner"
    LOCAL_BINARY_RUNNER = "local-binary-runner"

    @classmethod
    def from_server_os(cls, server_os: str) -> "PlatformStrategy":
        if server_os == LINUX_OS_TOKEN:
            return cls.CONTAINERIZED_RUNNER
        return cls.LOCAL_BINARY_RUNNER


def split_command_line(value: str) -> list[str]:
    return shlex.split(value, posix=POSIX_SHELL_SPLIT)


def _as_arguments(value: str | Sequence[str] | None) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(split_command_line(value))
    return tuple(str(part) for part in value)


def generate_container_name(now: datetime | None = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
    return f"{CONTAINER_NAME_PREFIX}-{stamp}"


@dataclass(frozen=True)
class RunRequest:
    image_builder_args: tuple[str, ...] = ()
    runtime_options: tuple[str, ...] = ()
    reuse_image_builder_image: bool = False
    on_command_executed: PostExecutionHook | None = None

    @classmethod
    def create(
        cls,
        image_builder_args: str | Sequence[str] | None = None,
        runtime_options: str | Sequence[str] | None = None,
        *,
        reuse_image_builder_image: bool = False,
        on_command_executed: PostExecutionHook | None = None,
    ) -> "RunRequest":
        """Build a request, splitting string arguments shell-style."""
        return cls(
            image_builder_args=_as_arguments(image_builder_args),
            runtime_options=_as_arguments(runtime_options),
            reuse_image_builder_image=reuse_image_builder_image,
            on_command_executed=on_command_executed,
        )


@dataclass(frozen=True)
class OrchestratorSettings:
    repo_root: Path = field(default_factory=Path.cwd)
    dockerfile: Path = DEFAULT_DOCKERFILE
    with_repo_image: str = DEFAULT_WITH_REPO_IMAGE
    extraction_dir: str = DEFAULT_EXTRACTION_DIR
    executable_name: str = DEFAULT_EXECUTABLE_NAME
    payload_path: str = DEFAULT_PAYLOAD_PATH
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_wait_factor: float = DEFAULT_RETRY_WAIT_FACTOR
    image_names: Callable[[], Mapping[str, str]] = load_image_names
    remove_extraction_container: bool = False

    @property
    def extraction_path(self) -> Path:
        return self.repo_root / self.extraction_dir

    @property
    def executable_path(self) -> Path:
        return self.extraction_path / self.executable_name


@dataclass(frozen=True)
class ManagedContainer:
    name: str
    created: bool = False
    cleanup_deferred: bool = False

    @property
    def owes_cleanup(self) -> bool:
        return self.created and self.cleanup_deferred


@dataclass(frozen=True)
class RunnerArtifact:
    image: str | None = None
    executable: Path | None = None


@dataclass(frozen=True)
class ExecutionResult:
    exit_status: int
    container_name: str
    strategy: PlatformStrategy
    hook_result: Any = None


@dataclass(frozen=True)
class InvocationContext:
    request: RunRequest
    settings: OrchestratorSettings
    container: ManagedContainer
    strategy: PlatformStrategy | None = None
    artifact: RunnerArtifact | None = None
    runner_command: tuple[str, ...] = ()
    exit_status: int | None = None

    def require_strategy(self) -> PlatformStrategy:
        if self.strategy is None:
            raise ImageBuilderError("Docker platform has not been resolved")
        return self.strategy

    def require_artifact(self) -> RunnerArtifact:
        if self.artifact is None:
            raise ImageBuilderError("Image builder has not been acquired")
        return self.artifact
