from __future__ import annotations

import dataclasses

from imagebuilder_cli import runtime
from imagebuilder_cli.errors import ExecutionError, ImageBuilderError, PlatformQueryError
from imagebuilder_cli.lifecycle import ContainerLease
from imagebuilder_cli.models import (
    ExecutionResult,
    InvocationContext,
    ManagedContainer,
    OrchestratorSettings,
    PlatformStrategy,
    RunRequest,
    generate_container_name,
)
from imagebuilder_cli.strategies import get_strategy


def resolve_platform(context: InvocationContext) -> InvocationContext:
    server_os = runtime.capture(
        runtime.docker_server_os(),
        cwd=context.settings.repo_root,
        error=PlatformQueryError,
    ).strip()
    strategy = PlatformStrategy.from_server_os(server_os)
    runtime.LOGGER.debug("Docker server OS %r selects %s", server_os, strategy.value)
    return dataclasses.replace(context, strategy=strategy)


def acquire_runner(context: InvocationContext, lease: ContainerLease) -> InvocationContext:
    return get_strategy(context.require_strategy()).acquire(context, lease)


def execute_runner(context: InvocationContext, lease: ContainerLease) -> InvocationContext:
    context = get_strategy(context.require_strategy()).prepare_execution(context, lease)
    runtime.run(context.runner_command, cwd=context.settings.repo_root, error=ExecutionError)
    return dataclasses.replace(context, exit_status=0)


def invoke_image_builder(
    request: RunRequest,
    settings: OrchestratorSettings | None = None,
    *,
    container_name: str | None = None,
) -> ExecutionResult:
    """Acquire the image builder, run it, and clean up after it.

    When ``request.on_command_executed`` is set, it is called with the managed
    container's name after a successful run while that container still
    exists. The container is force-removed afterwards whether or not the
    callback raises.
    """
    context = InvocationContext(
        request=request,
        settings=settings or OrchestratorSettings(),
        container=ManagedContainer(
            name=container_name or generate_container_name(),
            cleanup_deferred=request.on_command_executed is not None,
        ),
    )
    context = resolve_platform(context)

    hook_result = None
    with ContainerLease() as lease:
        context = acquire_runner(context, lease)
        context = execute_runner(context, lease)
        if request.on_command_executed is not None:
            hook_result = request.on_command_executed(context.container.name)

    if context.exit_status is None:
        raise ImageBuilderError("Image builder did not run")
    return ExecutionResult(
        exit_status=context.exit_status,
        container_name=context.container.name,
        strategy=context.require_strategy(),
        hook_result=hook_result,
    )
