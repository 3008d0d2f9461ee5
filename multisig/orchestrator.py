"""
Two-party multi-sign transfer orchestration.

A transfer walks CHECK_PENDING -> BUILD -> SIGN -> BROADCAST ->
RECORD_PENDING -> POLL_CONFIRM and ends CONFIRMED, TIMEOUT or FAILED.
The owner binding builds the transaction under owner permission and the
signer binding co-signs, broadcasts and polls for the result.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from config.config import CONFIRM_POLL_INTERVAL, CONFIRM_POLL_ATTEMPTS, FEE_LIMIT_SUN, SUN_PER_TRX
from errors.exceptions import (
    BroadcastError, ConfirmationFailed, ConfirmationTimeout, ErrorKind,
    InsufficientFundsError, LedgerError, ResourceError, SigningError, ValidationError
)
from mempool.pending_manager import PendingTxManager
from tron.client import classify_rejection, contract_result_of

logger = logging.getLogger(__name__)


class TransferState(Enum):
    CHECK_PENDING = "check_pending"
    BUILD = "build"
    SIGN = "sign"
    BROADCAST = "broadcast"
    RECORD_PENDING = "record_pending"
    POLL_CONFIRM = "poll_confirm"
    CONFIRMED = "confirmed"
    TIMEOUT = "timeout"
    FAILED = "failed"
    DUPLICATE_PENDING = "duplicate_pending"


@dataclass
class TransferOutcome:
    status: TransferState
    txid: Optional[str] = None
    broadcast_result: Dict[str, Any] = field(default_factory=dict)

    @property
    def confirmed(self) -> bool:
        return self.status == TransferState.CONFIRMED

    @property
    def duplicate(self) -> bool:
        return self.status == TransferState.DUPLICATE_PENDING

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "txid": self.txid,
            "result": self.broadcast_result,
        }


def _sun_to_trx(amount_sun: int) -> str:
    return f"{amount_sun / SUN_PER_TRX:.6f}"


class MultiSignOrchestrator:
    """Runs one multi-sign transfer through its state machine"""

    def __init__(self, credentials, pending: PendingTxManager, permission_id: int = 0,
                 poll_interval: float = CONFIRM_POLL_INTERVAL,
                 poll_attempts: int = CONFIRM_POLL_ATTEMPTS,
                 fee_limit: int = FEE_LIMIT_SUN,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep):
        """
        Args:
            credentials: Provides the ``owner`` and ``signer`` client bindings
            pending: Dedup map for broadcast but unresolved transfers
        """
        self.credentials = credentials
        self.pending = pending
        self.permission_id = permission_id
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self.fee_limit = fee_limit
        self.sleep = sleep

    async def transfer(self, from_address: str, to_address: str, amount_sun: int) -> TransferOutcome:
        owner = self.credentials.owner
        signer = self.credentials.signer
        key = self.pending.make_key(from_address, to_address, amount_sun)

        # CHECK_PENDING
        if await self.pending.is_pending(key, signer):
            existing = self.pending.get(key)
            logger.info(
                f"Multi-sign transfer already pending: {from_address} -> {to_address}, "
                f"{_sun_to_trx(amount_sun)} TRX, txid {existing.txid if existing else None}"
            )
            return TransferOutcome(TransferState.DUPLICATE_PENDING, existing.txid if existing else None)

        logger.info(f"Creating multi-sign transfer: {from_address} -> {to_address}, {_sun_to_trx(amount_sun)} TRX")
        try:
            tx = await self._build(owner, from_address, to_address, amount_sun)
            signed = self._sign(signer, tx)
            result, txid = await self._broadcast(signer, signed)

            # RECORD_PENDING
            self.pending.record(key, txid)
            logger.info(f"Transaction broadcast, txid {txid}")

            await self._poll_confirm(signer, key, txid)
        except Exception as e:
            logger.error(
                f"Multi-sign transfer failed: {e} "
                f"(from {from_address}, to {to_address}, amount {_sun_to_trx(amount_sun)} TRX)"
            )
            raise

        return TransferOutcome(TransferState.CONFIRMED, txid, result)

    async def _build(self, owner, from_address: str, to_address: str, amount_sun: int) -> Dict[str, Any]:
        if not owner.is_address(to_address):
            raise ValidationError(f"Invalid receiving address: {to_address}")
        if amount_sun <= 0:
            raise ValidationError("Transfer amount must be greater than zero")

        balance = await owner.get_balance(from_address)
        if balance < amount_sun:
            raise InsufficientFundsError(f"{_sun_to_trx(amount_sun)} TRX", f"{_sun_to_trx(balance)} TRX")

        try:
            tx = await owner.create_transfer(from_address, to_address, amount_sun, permission_id=self.permission_id)
        except LedgerError as e:
            if e.kind == ErrorKind.INSUFFICIENT_BALANCE:
                raise ResourceError(f"Transfer rejected for balance: {e}") from e
            raise
        tx["fee_limit"] = self.fee_limit
        return tx

    def _sign(self, signer, tx: Dict[str, Any]) -> Dict[str, Any]:
        signed = signer.sign(tx)
        if not signed.get("signature"):
            raise SigningError("Co-signer produced no signature")
        logger.debug(f"Transaction {tx.get('txID')} co-signed by {signer.address}")
        return signed

    async def _broadcast(self, signer, signed: Dict[str, Any]):
        result = await signer.broadcast(signed)
        logger.info(f"Broadcast result: {result}")
        if not result or not result.get("result"):
            message = (result or {}).get("message") or "unknown error"
            if classify_rejection((result or {}).get("code"), message) == ErrorKind.INSUFFICIENT_BALANCE:
                raise ResourceError(f"Broadcast rejected: {message}")
            raise BroadcastError(f"Broadcast failed: {message}", details=result or {})

        txid = result.get("txid") or (result.get("transaction") or {}).get("txID") or signed.get("txID")
        if not txid:
            raise BroadcastError("Broadcast returned no transaction id", details=result)
        return result, txid

    async def _poll_confirm(self, signer, key, txid: str):
        for attempt in range(1, self.poll_attempts + 1):
            try:
                tx = await signer.get_transaction(txid)
            except LedgerError as e:
                if e.not_found and self.pending.is_stale(key):
                    raise ConfirmationTimeout(txid, attempt)
                if not e.not_found:
                    logger.warning(f"Confirmation lookup for {txid} failed: {e}")
                tx = None

            result = contract_result_of(tx) if tx else None
            if result == "SUCCESS":
                logger.info(f"Transaction {txid} confirmed")
                return
            if result is not None:
                self.pending.clear(key)
                raise ConfirmationFailed(txid, result)

            logger.info(f"Waiting for confirmation of {txid} ({attempt}/{self.poll_attempts})")
            await self.sleep(self.poll_interval)

        raise ConfirmationTimeout(txid, self.poll_attempts)
