"""
Document lock and recursion guard.

One OperationLock serializes every mutating operation on the workbook.
Acquisition waits at most `timeout` seconds; a busy lock skips the run and
optionally hands off to a fallback (usually: escalate the debounce queue).

Nested runs are detected two ways: a ContextVar marks the current logical
operation (each asyncio task has its own copy), and a guard flag persisted in
the durable state store is checked under the lock.

The asyncio lock only serializes callers inside one process, so the service
must run as a single worker. More than one worker would need a lock held in
the state store itself (for example a Postgres advisory lock).
"""
import asyncio
import logging
from contextvars import ContextVar
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ats_sync.config import LOCK_TIMEOUT_SECONDS
from ats_sync.exceptions import LockBusyError
from ats_sync.repositories import SyncStateRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

_in_locked_operation: ContextVar[bool] = ContextVar("ats_in_locked_operation", default=False)


def in_locked_operation() -> bool:
    """True while the current task is inside OperationLock.run()."""
    return _in_locked_operation.get()


class BoundedLock:
    """asyncio.Lock with a bounded wait."""

    def __init__(self, name: str):
        self.name = name
        self._lock = asyncio.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    async def acquire(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def release(self) -> None:
        if self._lock.locked():
            self._lock.release()


class OperationLock(BoundedLock):
    """The document lock plus the recursion guard."""

    def __init__(self, state: SyncStateRepository):
        super().__init__("document")
        self.state = state

    async def run(
        self,
        operation: str,
        fn: Callable[[], Awaitable[T]],
        timeout: float = LOCK_TIMEOUT_SECONDS,
        on_busy: Optional[Callable[[], Awaitable[Any]]] = None,
        raise_on_busy: bool = False,
    ) -> Optional[T]:
        """
        Run fn() while holding the document lock.

        Args:
            operation: Name used in log lines
            fn: Coroutine factory to run under the lock
            timeout: Seconds to wait for the lock
            on_busy: Fallback awaited when the lock could not be acquired
            raise_on_busy: Raise LockBusyError instead of returning None

        Returns:
            fn()'s result, or None when the run was skipped
        """
        if _in_locked_operation.get():
            logger.warning(f"Recursion blocked | operation={operation}")
            return None

        if not await self.acquire(timeout):
            logger.warning(f"Skipped run: lock busy | operation={operation} timeout={timeout:g}s")
            if on_busy is not None:
                try:
                    await on_busy()
                except Exception as e:
                    logger.warning(f"Busy fallback failed | operation={operation} error={e}")
            if raise_on_busy:
                raise LockBusyError(operation, timeout)
            return None

        token = _in_locked_operation.set(True)
        try:
            if await self.state.is_recursion_guard_set():
                logger.warning(f"Recursion blocked | operation={operation}")
                return None
            await self.state.set_recursion_guard()
            try:
                return await fn()
            finally:
                await self.state.clear_recursion_guard()
        finally:
            _in_locked_operation.reset(token)
            self.release()
