"""
JSON-file persistence for transfer history and the success journal
"""

import json
import logging
import os
import time
from dataclasses import dataclass, asdict, field
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from config.config import TRANSFER_RETENTION_SECONDS, RECENT_TRANSFER_WINDOW_SECONDS

logger = logging.getLogger(__name__)


@dataclass
class TransferEntry:
    amount: Decimal
    txid: str
    timestamp: float

    def to_dict(self) -> dict:
        return {"amount": str(self.amount), "txid": self.txid, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict) -> "TransferEntry":
        return cls(
            amount=Decimal(str(data["amount"])),
            txid=data["txid"],
            timestamp=float(data["timestamp"]),
        )


@dataclass
class TransferSuccessRecord:
    transfer_time: str
    from_address: str
    to_address: str
    amount: str
    txid: str
    block_number: Optional[int] = None
    block_timestamp: Optional[str] = None
    confirmation_time: Optional[str] = None
    gas_fee: str = "0"
    status: str = "success"
    amount_display: str = field(default="")

    def __post_init__(self):
        self.amount = str(self.amount)
        self.gas_fee = str(self.gas_fee)
        if not self.amount_display:
            self.amount_display = f"{self.amount} TRX"

    def to_dict(self) -> dict:
        return asdict(self)


class TransferLedger:
    """
    Per-address transfer history plus a global append-only success journal.

    Both documents are loaded once and rewritten whole on every change.
    A failed write is logged and not retried; in-memory state stays current.
    """

    def __init__(self, records_path: str, success_path: str,
                 clock: Callable[[], float] = time.time,
                 retention: float = TRANSFER_RETENTION_SECONDS):
        self.records_path = records_path
        self.success_path = success_path
        self.clock = clock
        self.retention = retention
        self.records: Dict[str, List[TransferEntry]] = {}
        self.successes: List[TransferSuccessRecord] = []

    def load(self):
        """Read both documents; missing or unreadable files start empty"""
        raw = self._read_json(self.records_path, {})
        self.records = {}
        if isinstance(raw, dict):
            for address, record in raw.items():
                try:
                    self.records[address] = [TransferEntry.from_dict(t) for t in record.get("transfers", [])]
                except (KeyError, TypeError, ValueError, AttributeError, ArithmeticError) as e:
                    logger.error(f"Skipping malformed transfer records for {address}: {e}")
        logger.info(f"Loaded transfer records for {len(self.records)} addresses")

        raw = self._read_json(self.success_path, [])
        self.successes = []
        if isinstance(raw, list):
            for item in raw:
                try:
                    self.successes.append(TransferSuccessRecord(**item))
                except TypeError as e:
                    logger.error(f"Skipping malformed success record: {e}")
        logger.info(f"Loaded {len(self.successes)} transfer success records")

    def _read_json(self, path: str, default):
        if not os.path.exists(path):
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load {path}: {e}")
            return default

    def _write_json(self, path: str, data) -> bool:
        try:
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            return True
        except (OSError, TypeError) as e:
            logger.error(f"Failed to save {path}: {e}")
            return False

    def _records_document(self) -> dict:
        return {
            address: {"transfers": [t.to_dict() for t in transfers]}
            for address, transfers in self.records.items()
        }

    def record_transfer(self, address: str, amount: Decimal, txid: str) -> bool:
        now = self.clock()
        cutoff = now - self.retention
        transfers = [t for t in self.records.get(address, []) if t.timestamp >= cutoff]
        transfers.append(TransferEntry(amount=Decimal(str(amount)), txid=txid, timestamp=now))
        self.records[address] = transfers
        saved = self._write_json(self.records_path, self._records_document())
        if saved:
            logger.info(f"Saved transfer record {txid} for {address}")
        return saved

    def record_success(self, record: TransferSuccessRecord) -> bool:
        self.successes.append(record)
        saved = self._write_json(self.success_path, [r.to_dict() for r in self.successes])
        if saved:
            logger.info(
                f"Transfer success recorded: {record.from_address} -> {record.to_address}, "
                f"{record.amount_display}, txid {record.txid}, block {record.block_number}, "
                f"gas fee {record.gas_fee} TRX"
            )
        return saved

    def transfers_for(self, address: str) -> List[TransferEntry]:
        return list(self.records.get(address, []))

    def has_recent_transfer(self, address: str, amount: Decimal,
                            window: float = RECENT_TRANSFER_WINDOW_SECONDS) -> bool:
        """True if ``amount`` left ``address`` within the last ``window`` seconds"""
        since = self.clock() - window
        amount = Decimal(str(amount))
        return any(t.amount == amount and t.timestamp > since for t in self.records.get(address, []))

    def get_stats(self) -> dict:
        return {
            "addresses": len(self.records),
            "transfers": sum(len(t) for t in self.records.values()),
            "successes": len(self.successes),
        }
