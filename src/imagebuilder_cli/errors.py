from __future__ import annotations

from typing import Sequence

import click


class ImageBuilderError(click.ClickException):
    """Base error for a failed image builder invocation."""


class ImageNamesError(ImageBuilderError):
    pass


class CommandFailedError(ImageBuilderError):
    """An external command exited with a nonzero status."""

    stage = "Command"

    def __init__(self, cmd: Sequence[str], returncode: int) -> None:
        self.cmd = [str(part) for part in cmd]
        self.returncode = returncode
        super().__init__(f"{self.stage} failed with exit code {returncode}: {self.command_text}")

    @property
    def command_text(self) -> str:
        return " ".join(self.cmd)


class PlatformQueryError(CommandFailedError):
    stage = "Platform query"


class AcquisitionError(CommandFailedError):
    stage = "Image builder acquisition"


class ExecutionError(CommandFailedError):
    stage = "Image builder execution"


class HookCommandError(CommandFailedError):
    stage = "Post-execution command"


class CleanupError(CommandFailedError):
    stage = "Container cleanup"
