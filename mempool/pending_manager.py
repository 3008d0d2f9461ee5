import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from config.config import PENDING_TX_STALE_SECONDS
from errors.exceptions import LedgerError
from monitoring.metrics import pending_multisign_count
from tron.client import contract_result_of

logger = logging.getLogger(__name__)

PendingKey = Tuple[str, str, int]


@dataclass
class PendingMultiSignTx:
    txid: str
    created_at: float


class PendingTxManager:
    """
    Tracks broadcast multi-sign transfers that have not resolved yet.

    Entries are keyed by (from_address, to_address, amount_sun) and there is
    at most one live entry per key. Resolution is detected lazily when the
    key is checked again.
    """

    def __init__(self, stale_after: float = PENDING_TX_STALE_SECONDS,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            stale_after: Seconds after which an unconfirmed entry is abandoned
            clock: Time source, injectable for tests
        """
        self.pending: "OrderedDict[PendingKey, PendingMultiSignTx]" = OrderedDict()
        self.stale_after = stale_after
        self.clock = clock

    @staticmethod
    def make_key(from_address: str, to_address: str, amount_sun: int) -> PendingKey:
        return (from_address, to_address, int(amount_sun))

    def get(self, key: PendingKey) -> Optional[PendingMultiSignTx]:
        return self.pending.get(key)

    def age(self, key: PendingKey) -> Optional[float]:
        entry = self.pending.get(key)
        if entry is None:
            return None
        return self.clock() - entry.created_at

    def is_stale(self, key: PendingKey) -> bool:
        age = self.age(key)
        return age is not None and age > self.stale_after

    def record(self, key: PendingKey, txid: str) -> PendingMultiSignTx:
        entry = PendingMultiSignTx(txid=txid, created_at=self.clock())
        self.pending[key] = entry
        pending_multisign_count.set(len(self.pending))
        logger.info(f"Recorded pending multi-sign transaction {txid} for {key[0]} -> {key[1]} ({key[2]} SUN)")
        return entry

    def clear(self, key: PendingKey) -> bool:
        entry = self.pending.pop(key, None)
        pending_multisign_count.set(len(self.pending))
        if entry is None:
            return False
        logger.debug(f"Cleared pending multi-sign transaction {entry.txid}")
        return True

    async def is_pending(self, key: PendingKey, client) -> bool:
        """
        True if a live unresolved transaction exists for ``key``.

        Entries whose transaction confirmed, failed, or went stale are
        removed here. A lookup that cannot reach the node keeps the entry.
        """
        entry = self.pending.get(key)
        if entry is None:
            return False

        if self.is_stale(key):
            logger.warning(f"Pending transaction {entry.txid} is stale after {self.stale_after}s, abandoning")
            self.clear(key)
            return False

        try:
            tx = await client.get_transaction(entry.txid)
        except LedgerError as e:
            if not e.not_found:
                logger.warning(f"Could not check pending transaction {entry.txid}: {e}")
            return True

        result = contract_result_of(tx)
        if result is None:
            return True
        if result == "SUCCESS":
            logger.info(f"Pending transaction {entry.txid} confirmed")
        else:
            logger.warning(f"Pending transaction {entry.txid} ended with {result}")
        self.clear(key)
        return False

    def size(self) -> int:
        return len(self.pending)

    def get_stats(self) -> Dict:
        now = self.clock()
        oldest = min((e.created_at for e in self.pending.values()), default=None)
        return {
            "pending_count": len(self.pending),
            "oldest_age_seconds": (now - oldest) if oldest is not None else None,
            "stale_after_seconds": self.stale_after,
        }
