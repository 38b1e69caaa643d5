from __future__ import annotations

import abc
import dataclasses
import shutil
from pathlib import Path

import click

from imagebuilder_cli import runtime
from imagebuilder_cli.errors import AcquisitionError, ImageBuilderError
from imagebuilder_cli.image_names import IMAGE_BUILDER_LINUX, IMAGE_BUILDER_WINDOWS
from imagebuilder_cli.lifecycle import ContainerLease
from imagebuilder_cli.models import InvocationContext, PlatformStrategy, RunnerArtifact
from imagebuilder_cli.retry import run_with_retry


def _remove_stale_extraction(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def _pull(context: InvocationContext, image: str) -> None:
    settings = context.settings
    click.echo(f"Pulling image '{image}'", err=True)
    run_with_retry(
        runtime.docker_pull(image),
        cwd=settings.repo_root,
        error=AcquisitionError,
        attempts=settings.retry_attempts,
        wait_factor=settings.retry_wait_factor,
    )


class RunnerStrategy(abc.ABC):
    @property
    @abc.abstractmethod
    def platform(self) -> PlatformStrategy:
        """The platform strategy this runner implements."""
        pass

    @abc.abstractmethod
    def acquire(self, context: InvocationContext, lease: ContainerLease) -> InvocationContext:
        """Ensures the runner artifact is available locally."""
        pass

    @abc.abstractmethod
    def prepare_execution(self, context: InvocationContext, lease: ContainerLease) -> InvocationContext:
        """Returns a context carrying the final runner command."""
        pass


class ContainerizedRunner(RunnerStrategy):
    @property
    def platform(self) -> PlatformStrategy:
        return PlatformStrategy.CONTAINERIZED_RUNNER

    def acquire(self, context: InvocationContext, lease: ContainerLease) -> InvocationContext:
        settings = context.settings
        artifact = RunnerArtifact(image=settings.with_repo_image)
        if context.request.reuse_image_builder_image:
            return dataclasses.replace(context, artifact=artifact)

        base_image = settings.image_names()[IMAGE_BUILDER_LINUX]
        _pull(context, base_image)
        click.echo(f"Building image '{settings.with_repo_image}' from {settings.dockerfile}", err=True)
        runtime.run(
            runtime.docker_build(
                tag=settings.with_repo_image,
                dockerfile=settings.dockerfile,
                build_args={"IMAGE": base_image},
            ),
            cwd=settings.repo_root,
            error=AcquisitionError,
        )
        return dataclasses.replace(context, artifact=artifact)

    def prepare_execution(self, context: InvocationContext, lease: ContainerLease) -> InvocationContext:
        container = context.container
        keep_alive = container.cleanup_deferred
        if keep_alive:
            # The container outlives the run so the hook can reach it.
            container = lease.track(dataclasses.replace(container, created=True))

        image = context.require_artifact().image
        if not image:
            raise ImageBuilderError("No image builder image was acquired")
        command = runtime.docker_run(
            name=container.name,
            image=image,
            runtime_options=context.request.runtime_options,
            auto_remove=not keep_alive,
            args=context.request.image_builder_args,
        )
        return dataclasses.replace(context, container=container, runner_command=tuple(command))


class LocalBinaryRunner(RunnerStrategy):
    @property
    def platform(self) -> PlatformStrategy:
        return PlatformStrategy.LOCAL_BINARY_RUNNER

    def acquire(self, context: InvocationContext, lease: ContainerLease) -> InvocationContext:
        settings = context.settings
        artifact = RunnerArtifact(executable=settings.executable_path)
        if settings.executable_path.is_file():
            return dataclasses.replace(context, artifact=artifact)

        image = settings.image_names()[IMAGE_BUILDER_WINDOWS]
        _pull(context, image)

        container = context.container
        runtime.run(
            runtime.docker_create(name=container.name, image=image),
            cwd=settings.repo_root,
            error=AcquisitionError,
        )
        container = dataclasses.replace(container, created=True)
        if settings.remove_extraction_container:
            container = dataclasses.replace(container, cleanup_deferred=True)
        lease.track(container)

        _remove_stale_extraction(settings.extraction_path)
        click.echo(f"Extracting image builder to {settings.extraction_path}", err=True)
        runtime.run(
            runtime.docker_cp(
                container=container.name,
                source=settings.payload_path,
                destination=settings.extraction_dir,
            ),
            cwd=settings.repo_root,
            error=AcquisitionError,
        )
        return dataclasses.replace(context, container=container, artifact=artifact)

    def prepare_execution(self, context: InvocationContext, lease: ContainerLease) -> InvocationContext:
        executable = context.require_artifact().executable
        if executable is None:
            raise ImageBuilderError("No image builder executable was acquired")
        command = (str(executable), *context.request.image_builder_args)
        return dataclasses.replace(context, runner_command=command)


STRATEGIES: dict[PlatformStrategy, RunnerStrategy] = {
    strategy.platform: strategy for strategy in (ContainerizedRunner(), LocalBinaryRunner())
}


def get_strategy(platform: PlatformStrategy) -> RunnerStrategy:
    return STRATEGIES[platform]
