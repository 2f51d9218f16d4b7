# storefront_cart/services/lock_service.py
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Tuple

from storefront_cart.domain.schemas import NaturalKey, OwnerKey
from storefront_cart.utils.logging import get_logger

logger = get_logger(__name__)


class LockService:
    """
    -one asyncio.Lock per (owner, natural key): same-line mutations run in issuance order
    -reconciliation gate: login/logout wait for in-flight mutations, then hold new ones back
    -waiters are woken FIFO, so queued mutations replay in the order they were issued
    """

    def __init__(self):
        self._key_locks: Dict[Tuple[str, NaturalKey], asyncio.Lock] = {}
        self._key_users: Dict[Tuple[str, NaturalKey], int] = {}
        self._cond = asyncio.Condition()
        self._reconciling = False
        self._waiting_reconciliations = 0
        self._in_flight = 0

    @staticmethod
    def _owner_id(owner: OwnerKey) -> str:
        if owner.kind == "customer":
            return f"customer:{owner.customer_id}"
        return f"guest:{owner.session_token}"

    @asynccontextmanager
    async def key_lock(self, owner: OwnerKey, key: NaturalKey):
        """Serialises mutations of one line. The lock is dropped once nobody holds or awaits it."""
        lock_key = (self._owner_id(owner), key)
        lock = self._key_locks.get(lock_key)
        if lock is None:
            lock = self._key_locks[lock_key] = asyncio.Lock()
        self._key_users[lock_key] = self._key_users.get(lock_key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._key_users[lock_key] -= 1
            if not self._key_users[lock_key]:
                del self._key_users[lock_key]
                del self._key_locks[lock_key]

    @asynccontextmanager
    async def mutation(self):
        """Entered by every UI cart mutation."""
        async with self._cond:
            if self._reconciling or self._waiting_reconciliations:
                logger.info("Cart mutation queued until reconciliation finishes")
            await self._cond.wait_for(lambda: not self._reconciling and not self._waiting_reconciliations)
            self._in_flight += 1
        try:
            yield
        finally:
            async with self._cond:
                self._in_flight -= 1
                self._cond.notify_all()

    @asynccontextmanager
    async def reconciliation(self):
        """Exclusive window for login merge / logout carry-over."""
        async with self._cond:
            self._waiting_reconciliations += 1
            try:
                await self._cond.wait_for(lambda: not self._reconciling and self._in_flight == 0)
            finally:
                self._waiting_reconciliations -= 1
            self._reconciling = True
        try:
            yield
        finally:
            async with self._cond:
                self._reconciling = False
                self._cond.notify_all()
