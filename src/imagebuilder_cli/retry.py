from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Sequence

import tenacity

from imagebuilder_cli import runtime
from imagebuilder_cli.errors import CommandFailedError


DEFAULT_RETRY_ATTEMPTS = 5
DEFAULT_RETRY_WAIT_FACTOR = 6.0


def _build_retrying(
    *,
    attempts: int,
    wait_factor: float,
    sleep: Callable[[float], None],
) -> tenacity.Retrying:
    def _log_retry(retry_state: tenacity.RetryCallState) -> None:
        outcome_exception = None
        if retry_state.outcome is not None:
            outcome_exception = retry_state.outcome.exception()
        runtime.LOGGER.warning(
            "Command failed (attempt %d/%d), retrying in %.1fs... Error: %s",
            retry_state.attempt_number,
            attempts,
            retry_state.upcoming_sleep,
            outcome_exception,
        )

    # wait_factor ** n seconds after the n-th failed attempt
    return tenacity.Retrying(
        retry=tenacity.retry_if_exception_type(CommandFailedError),
        wait=tenacity.wait_exponential(multiplier=wait_factor, exp_base=wait_factor),
        stop=tenacity.stop_after_attempt(attempts),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )


def run_with_retry(
    cmd: Sequence[str],
    *,
    cwd: Path | None = None,
    error: type[CommandFailedError] = CommandFailedError,
    attempts: int = DEFAULT_RETRY_ATTEMPTS,
    wait_factor: float = DEFAULT_RETRY_WAIT_FACTOR,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Run ``cmd`` until it exits zero or ``attempts`` runs have failed.

    The error from the final attempt is re-raised unchanged.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    if wait_factor < 0:
        raise ValueError("wait_factor must be non-negative")

    retrying = _build_retrying(attempts=attempts, wait_factor=wait_factor, sleep=sleep)
    for attempt in retrying:
        with attempt:
            runtime.run(cmd, cwd=cwd, error=error)
