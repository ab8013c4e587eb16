"""Bulk operations and the glue that runs them through the operation driver."""

import logging
from typing import Any, Callable, Optional

from ..driver import OperationDriver, OperationHandle, OperationStatus, ScriptError
from ..session import BrowserSession
from .base import AUTH_EXPIRED, ORG_COOKIE, BrowserTask, TaskOutcome
from .delete import DeleteTask
from .export import ExportTask
from .fetch import FetchTask, collect_pages
from .index import IndexTask

logger = logging.getLogger(__name__)

__all__ = [
    "AUTH_EXPIRED",
    "BrowserTask",
    "DeleteTask",
    "ExportTask",
    "FetchTask",
    "IndexTask",
    "TaskOutcome",
    "collect_pages",
    "make_driver",
    "outcome_for",
    "run_task",
]


def _default_session_factory() -> BrowserSession:
    from ..browser import PlaywrightSession

    return PlaywrightSession()


def make_driver(
    task: BrowserTask,
    session_factory: Optional[Callable[[], BrowserSession]] = None,
    *,
    on_progress: Optional[Callable[[OperationHandle, int], Any]] = None,
    on_status: Optional[Callable[[OperationHandle], Any]] = None,
    owner: Any = None,
    **driver_options,
) -> OperationDriver:
    """Build an OperationDriver that injects ``task``'s script and merges its result."""

    async def on_ready(handle: OperationHandle) -> None:
        org_id = await handle.cookie(ORG_COOKIE)
        if not org_id:
            raise ScriptError(f"no {ORG_COOKIE} cookie; log in first")
        handle.set_status(task.status_text)
        await handle.inject(task.build_script(org_id))

    def on_complete(handle: OperationHandle, result: dict) -> None:
        task.apply(result)

    def on_cancelled(handle: OperationHandle) -> None:
        logger.info("%s cancelled after %d items; sent requests are not recalled",
                    task.title, handle.operation.progress_count)

    driver_options.setdefault("timeout", task.timeout)
    return OperationDriver(
        session_factory or _default_session_factory,
        title=task.title,
        on_ready=on_ready,
        on_complete=on_complete,
        on_cancelled=on_cancelled,
        on_progress=on_progress,
        on_status=on_status,
        owner=owner,
        status_text="Starting browser...",
        progress_mode=task.progress_mode,
        total=task.total,
        **driver_options,
    )


def outcome_for(task: BrowserTask, driver: OperationDriver) -> TaskOutcome:
    """Translate the driver's terminal state into the task's outcome."""
    op = driver.operation
    if op.status is OperationStatus.COMPLETED and task.outcome is not None:
        return task.outcome
    if op.status is OperationStatus.CANCELLED:
        return TaskOutcome(False, "Cancelled", counts={"processed": op.progress_count})
    if op.status is OperationStatus.TIMED_OUT:
        return TaskOutcome(False, f"{op.status_text}; retry the operation",
                           counts={"processed": op.progress_count})
    return TaskOutcome(False, op.error or op.status_text or "Operation failed")


async def run_task(
    task: BrowserTask,
    session_factory: Optional[Callable[[], BrowserSession]] = None,
    **kwargs,
) -> TaskOutcome:
    """Run ``task`` to a terminal state and report its outcome as a value."""
    driver = make_driver(task, session_factory, **kwargs)
    await driver.run()
    return outcome_for(task, driver)
