"""Browser-mediated operation driver.

One driver runs one operation:

    INITIALIZING -> AWAITING_READY -> RUNNING -> COMPLETED | CANCELLED | TIMED_OUT | FAILED

The driver starts a browser session, loads the entry page, waits for it to
settle and then hands an :class:`OperationHandle` to ``on_ready``, which
injects a self-contained script. That script does the remote work inside the
page and publishes three globals:

- ``window.__cmProgress``: monotonically increasing item counter
- ``window.__cmDone``: set to ``true`` once the work has finished
- ``window.__cmResult``: ``JSON.stringify({success, error, data})``

The driver polls those globals on a fixed interval, forwards progress deltas,
and on completion decodes the result once and passes it to ``on_complete``.
A single wall-clock timer bounds the whole operation. Cancellation and
timeout only tear down local resources; requests the page already sent are
abandoned, not aborted.
"""

import asyncio
import inspect
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import urlparse

from .config import ENTRY_PATH, POLL_INTERVAL, SETTLE_DELAY, get_entry_url
from .session import BrowserSession, SessionError

logger = logging.getLogger(__name__)

STATE_EXPR = "() => ({progress: Number(window.__cmProgress) || 0, done: window.__cmDone === true})"
RESULT_EXPR = "() => window.__cmResult"


class OperationStatus(str, Enum):
    INITIALIZING = "initializing"
    AWAITING_READY = "awaiting_ready"
    RUNNING = "running"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({
    OperationStatus.CANCELLED,
    OperationStatus.TIMED_OUT,
    OperationStatus.COMPLETED,
    OperationStatus.FAILED,
})


class ProgressMode(str, Enum):
    COUNT = "count"  # "12/40"
    PERCENT = "percent"  # "30%"
    INDETERMINATE = "indeterminate"  # status text only


class ScriptError(RuntimeError):
    """Raised when a script cannot be injected or its result cannot be decoded."""


@dataclass
class Operation:
    """Observable state of one running operation."""

    title: str
    status: OperationStatus = OperationStatus.INITIALIZING
    progress_count: int = 0
    total: int = 0
    start_time: float = field(default_factory=time.monotonic)
    cancel_requested: bool = False
    status_text: str = ""
    error: Optional[str] = None
    owner: Any = None
    progress_mode: ProgressMode = ProgressMode.COUNT

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    def describe_progress(self) -> str:
        if self.progress_mode is ProgressMode.PERCENT and self.total:
            pct = min(100, int(self.progress_count * 100 / self.total))
            return f"{self.status_text} {pct}%".strip()
        if self.progress_mode is ProgressMode.COUNT:
            count = f"{self.progress_count}/{self.total}" if self.total else str(self.progress_count)
            return f"{self.status_text} {count}".strip()
        return self.status_text


def decode_result(raw: Any) -> dict:
    """Decode the script's published result into ``{success, error, data}``.

    Scripts stringify exactly once; a value that is already a mapping is
    accepted as-is.
    """
    if raw is None:
        raise ScriptError("script finished without publishing a result")
    if isinstance(raw, str):
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ScriptError(f"undecodable script result: {e}") from e
    else:
        payload = raw
    if not isinstance(payload, dict):
        raise ScriptError(f"unexpected script result type: {type(payload).__name__}")
    return {
        "success": bool(payload.get("success")),
        "error": payload.get("error"),
        "data": payload.get("data"),
    }


class OperationHandle:
    """Passed by reference into every callback the driver makes."""

    def __init__(self, driver: "OperationDriver"):
        self._driver = driver

    @property
    def operation(self) -> Operation:
        return self._driver.operation

    async def inject(self, script: str) -> Any:
        """Evaluate a self-contained script in the page. Raises ScriptError."""
        session = self._driver.session
        if session is None or session.is_closed:
            raise ScriptError("no active browser session")
        try:
            value = await session.evaluate(script)
        except SessionError as e:
            raise ScriptError(str(e)) from e
        if value is False:
            raise ScriptError("script declined to start")
        return value

    async def cookie(self, name: str) -> str | None:
        session = self._driver.session
        if session is None or session.is_closed:
            raise ScriptError("no active browser session")
        try:
            return await session.get_cookie(name)
        except SessionError as e:
            raise ScriptError(str(e)) from e

    def set_status(self, text: str) -> None:
        self._driver._set_status(text)

    def cancel(self) -> bool:
        return self._driver.cancel()


class OperationDriver:
    """Runs one browser-mediated operation to a terminal state."""

    def __init__(
        self,
        session_factory: Callable[[], BrowserSession],
        *,
        title: str,
        on_ready: Callable[[OperationHandle], Any],
        on_complete: Callable[[OperationHandle, dict], Any],
        on_cancelled: Optional[Callable[[OperationHandle], Any]] = None,
        on_progress: Optional[Callable[[OperationHandle, int], Any]] = None,
        on_status: Optional[Callable[[OperationHandle], Any]] = None,
        owner: Any = None,
        status_text: str = "Starting...",
        progress_mode: ProgressMode = ProgressMode.COUNT,
        total: int = 0,
        timeout: float = 300.0,
        poll_interval: float = POLL_INTERVAL,
        settle_delay: float = SETTLE_DELAY,
        entry_url: Optional[str] = None,
        expected_path: Optional[str] = ENTRY_PATH,
    ):
        self._session_factory = session_factory
        self._on_ready = on_ready
        self._on_complete = on_complete
        self._on_cancelled = on_cancelled
        self._on_progress = on_progress
        self._on_status = on_status

        self.timeout = timeout
        self.poll_interval = poll_interval
        self.settle_delay = settle_delay
        self.entry_url = entry_url or get_entry_url()
        self.expected_path = expected_path

        self.operation = Operation(
            title=title,
            total=total,
            status_text=status_text,
            owner=owner,
            progress_mode=progress_mode,
        )
        self.handle = OperationHandle(self)

        self._session: Optional[BrowserSession] = None
        self._timeout_handle: Optional[asyncio.TimerHandle] = None
        self._main_task: Optional[asyncio.Task] = None
        self._finished: Optional[asyncio.Future] = None

    @property
    def session(self) -> Optional[BrowserSession]:
        return self._session

    @property
    def has_pending_timers(self) -> bool:
        main_pending = self._main_task is not None and not self._main_task.done()
        return self._timeout_handle is not None or main_pending

    async def run(self) -> Operation:
        """Drive the operation and return it once it reaches a terminal state."""
        op = self.operation
        if self._finished is not None:
            raise RuntimeError("an OperationDriver can only be run once")

        loop = asyncio.get_running_loop()
        self._finished = loop.create_future()
        if op.is_terminal:  # cancelled before it started
            return op

        op.start_time = time.monotonic()
        self._timeout_handle = loop.call_later(self.timeout, self._on_timeout)
        self._main_task = asyncio.create_task(self._drive())
        try:
            await asyncio.shield(self._finished)
        except asyncio.CancelledError:
            self.cancel()
            await self.dispose()
            raise

        if self._main_task is not None:
            (outcome,) = await asyncio.gather(self._main_task, return_exceptions=True)
            if isinstance(outcome, Exception):
                logger.error("%s driver error: %s", op.title, outcome)
        await self.dispose()
        logger.info("%s finished: %s (%.1fs)", op.title, op.status.value, op.elapsed)
        return op

    def cancel(self) -> bool:
        """Request cancellation. Returns False if already terminal."""
        op = self.operation
        if op.is_terminal:
            return False
        op.cancel_requested = True
        if self._on_cancelled is not None:
            try:
                self._on_cancelled(self.handle)
            except Exception:
                logger.exception("on_cancelled callback failed for %s", op.title)
        return self._finish(OperationStatus.CANCELLED, "Cancelled")

    async def dispose(self) -> None:
        """Stop timers and close the session. Idempotent."""
        self._stop_timers()
        session, self._session = self._session, None
        if session is not None:
            try:
                await session.close()
            except SessionError as e:
                logger.debug("Ignoring error while closing session: %s", e)

    # ── State machine ────────────────────────────────────────────────

    async def _drive(self) -> None:
        op = self.operation
        try:
            self._session = self._session_factory()
            await self._session.start()
        except (SessionError, OSError) as e:
            self._stall(f"Browser failed to start: {e}")
            return

        self._transition(OperationStatus.AWAITING_READY, "Loading...")
        try:
            final_url = await self._session.navigate(self.entry_url)
        except SessionError as e:
            self._stall(f"Navigation failed: {e}")
            return

        if not self._path_matches(final_url):
            self._stall(f"Unexpected page {urlparse(final_url).path or final_url}; are you logged in?")
            return

        await asyncio.sleep(self.settle_delay)
        if not self._transition(OperationStatus.RUNNING, "Running..."):
            return

        try:
            await _maybe_await(self._on_ready(self.handle))
        except Exception as e:
            logger.error("%s failed to start: %s", op.title, e)
            self._finish(OperationStatus.FAILED, f"Failed to start: {e}", error=str(e))
            return

        await self._poll()

    async def _poll(self) -> None:
        op = self.operation
        last_progress = 0
        while not op.is_terminal:
            await asyncio.sleep(self.poll_interval)
            session = self._session
            if op.is_terminal or session is None or session.is_closed:
                return

            try:
                state = await session.evaluate(STATE_EXPR)
            except SessionError as e:
                if session.is_closed or op.is_terminal:
                    logger.debug("Stopping poll on torn-down session: %s", e)
                    return
                logger.warning("Poll failed for %s: %s", op.title, e)
                continue

            state = state if isinstance(state, dict) else {}
            progress = int(state.get("progress") or 0)
            if progress > last_progress:
                delta = progress - last_progress
                last_progress = progress
                op.progress_count = progress
                self._safe_callback(self._on_progress, self.handle, delta)

            if not state.get("done"):
                continue

            try:
                result = decode_result(await session.evaluate(RESULT_EXPR))
                if not result["success"]:
                    op.error = result["error"] or "operation reported failure"
                await _maybe_await(self._on_complete(self.handle, result))
            except Exception as e:
                logger.error("%s failed while collecting results: %s", op.title, e)
                self._finish(OperationStatus.FAILED, f"Failed: {e}", error=str(e))
                return

            self._finish(OperationStatus.COMPLETED, "Completed")
            return

    def _on_timeout(self) -> None:
        self._timeout_handle = None
        if self._finish(OperationStatus.TIMED_OUT, f"Timed out after {self.timeout:g}s"):
            logger.warning("%s timed out after %gs", self.operation.title, self.timeout)

    def _transition(self, status: OperationStatus, text: str) -> bool:
        op = self.operation
        if op.is_terminal:
            return False
        op.status = status
        self._set_status(text)
        return True

    def _finish(self, status: OperationStatus, text: str, error: Optional[str] = None) -> bool:
        op = self.operation
        if op.is_terminal:
            return False
        op.status = status
        if error:
            op.error = error
        self._stop_timers()
        self._set_status(text)
        if self._finished is not None and not self._finished.done():
            self._finished.set_result(op)
        return True

    def _stall(self, text: str) -> None:
        # no retry: the timeout timer ends the operation
        logger.warning("%s: %s", self.operation.title, text)
        self._set_status(text)

    def _stop_timers(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None
        task = self._main_task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    def _set_status(self, text: str) -> None:
        self.operation.status_text = text
        self._safe_callback(self._on_status, self.handle)

    def _safe_callback(self, callback, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Callback %r failed", callback)

    def _path_matches(self, url: str) -> bool:
        if not self.expected_path:
            return True
        return urlparse(url).path.startswith(self.expected_path)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
