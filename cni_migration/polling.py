"""Bounded polling shared by every wait in the migration."""

import threading
import time
from collections.abc import Callable
from functools import partial
from typing import Any

import tenacity

from cni_migration.exceptions import MigrationInterrupted


def sleep(seconds: float, cancel: threading.Event | None = None) -> None:
    """Sleep, waking early and raising if the run is interrupted."""
    if cancel is None:
        time.sleep(seconds)
        return
    if cancel.wait(seconds):
        raise MigrationInterrupted("Migration interrupted by operator")


def _not_done(result: tuple[bool, Any]) -> bool:
    return not result[0]


def _last_observed(retry_state: tenacity.RetryCallState) -> tuple[bool, Any]:
    return retry_state.outcome.result()


def poll_until(
    check: Callable[[], tuple[bool, Any]],
    timeout: float,
    interval: float,
    cancel: threading.Event | None = None,
) -> tuple[bool, Any]:
    """Call ``check`` until it reports done or ``timeout`` seconds elapse.

    ``check`` returns ``(done, observed)``. The check always runs at least once,
    so a zero timeout performs a single poll. Exceptions raised by ``check``
    propagate immediately.

    Returns:
        ``(True, observed)`` on success, ``(False, last_observed)`` on timeout

    Raises:
        MigrationInterrupted: If ``cancel`` is set while waiting
    """
    if cancel is not None and cancel.is_set():
        raise MigrationInterrupted("Migration interrupted by operator")

    retrying = tenacity.Retrying(
        wait=tenacity.wait_fixed(interval),
        stop=tenacity.stop_after_delay(timeout),
        retry=tenacity.retry_if_result(_not_done),
        retry_error_callback=_last_observed,
        sleep=partial(sleep, cancel=cancel),
    )
    return retrying(check)
