"""
Per-space mutual exclusion for the check-conflicts-then-write path.

Locks live in an in-process registry keyed by (location_id, space_id), one
registry per running event loop since an asyncio.Lock is bound to the loop
that first waits on it. Entries are weakly held, so a key disappears once
nobody holds or waits on it.
Cross-process serialization comes from the row lock taken inside the
transaction (see ``SpaceAvailabilityLedger.lock_space``).
"""
import asyncio
import logging
import uuid
import weakref
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Iterable, Tuple

from app.core.exceptions import SpaceLockTimeoutError

logger = logging.getLogger(__name__)

SpaceKey = Tuple[str, str]

_registries: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, weakref.WeakValueDictionary]" = (
    weakref.WeakKeyDictionary()
)


def space_key(location_id: uuid.UUID, space_id: str) -> SpaceKey:
    return (str(location_id), space_id)


def _get_lock(key: SpaceKey) -> asyncio.Lock:
    loop = asyncio.get_running_loop()
    locks = _registries.get(loop)
    if locks is None:
        locks = weakref.WeakValueDictionary()
        _registries[loop] = locks
    lock = locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        locks[key] = lock
    return lock


@asynccontextmanager
async def space_lock(
    location_id: uuid.UUID,
    space_id: str,
    timeout: float = 10.0,
) -> AsyncIterator[SpaceKey]:
    """Hold the exclusive lock for one space for the duration of the block."""
    key = space_key(location_id, space_id)
    lock = _get_lock(key)
    try:
        await asyncio.wait_for(lock.acquire(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Timed out waiting for space lock %s/%s", *key)
        raise SpaceLockTimeoutError(
            f"Space {space_id} is busy, please retry",
            details={"location_id": key[0], "space_id": space_id},
        )
    try:
        yield key
    finally:
        lock.release()


@asynccontextmanager
async def space_locks(
    location_id: uuid.UUID,
    space_ids: Iterable[str],
    timeout: float = 10.0,
) -> AsyncIterator[None]:
    """Hold several space locks at once, acquired in sorted order."""
    async with AsyncExitStack() as stack:
        for space_id in sorted(set(space_ids)):
            await stack.enter_async_context(space_lock(location_id, space_id, timeout=timeout))
        yield
