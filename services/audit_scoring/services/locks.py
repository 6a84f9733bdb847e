"""
Audit Lock Registry
===================

Serializes mutating operations per audit within one process.

Every read-modify-write of an audit's aggregate runs while holding the
audit's lock, so two evaluations submitted at the same time cannot
interleave their recalculations. Operations on different audits never
wait on each other. Cross-process writers are fenced by the row lock and
version counter taken inside the unit of work.

Version: 0.1.0
"""

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from shared.logging import get_logger
from services.audit_scoring.errors import ConcurrencyConflictError


logger = get_logger(__name__)


class AuditLockRegistry:
    """One asyncio.Lock per audit id, created on demand."""

    def __init__(self, timeout_seconds: float = 10.0) -> None:
        self.timeout_seconds = timeout_seconds
        # Locks disappear once nobody holds or awaits them
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, audit_id: str) -> asyncio.Lock:
        lock = self._locks.get(audit_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[audit_id] = lock
        return lock

    def is_locked(self, audit_id: str) -> bool:
        lock = self._locks.get(audit_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, audit_id: str) -> AsyncIterator[None]:
        """
        Hold the audit's lock for the duration of the block.

        Raises:
            ConcurrencyConflictError: The lock was not acquired in time
        """
        lock = self._lock_for(audit_id)

        try:
            async with asyncio.timeout(self.timeout_seconds):
                await lock.acquire()
        except TimeoutError:
            logger.warning(
                "audit_lock_timeout",
                audit_id=audit_id,
                timeout_seconds=self.timeout_seconds,
            )
            raise ConcurrencyConflictError(
                f"Audit {audit_id} is being updated by another request, retry later",
                field="audit_id",
            ) from None

        try:
            yield
        finally:
            lock.release()
