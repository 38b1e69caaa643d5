from __future__ import annotations

from types import TracebackType
from typing import Callable

from imagebuilder_cli import runtime
from imagebuilder_cli.errors import CleanupError
from imagebuilder_cli.models import ManagedContainer


def remove_container(name: str) -> None:
    runtime.run(runtime.docker_container_rm(name), error=CleanupError)


class ContainerLease:
    """Removes the managed container when the invocation scope closes.

    A container is registered once it is created with cleanup owed. Release
    happens at most once, on normal exit and on every exception path. A
    failure while releasing propagates and replaces any in-flight error.
    """

    def __init__(self, release: Callable[[str], None] = remove_container) -> None:
        self._release = release
        self._pending: str | None = None

    @property
    def pending(self) -> str | None:
        return self._pending

    def track(self, container: ManagedContainer) -> ManagedContainer:
        if container.owes_cleanup:
            self._pending = container.name
        return container

    def close(self) -> None:
        if self._pending is None:
            return
        name, self._pending = self._pending, None
        runtime.LOGGER.debug("Removing container %s", name)
        self._release(name)

    def __enter__(self) -> "ContainerLease":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
