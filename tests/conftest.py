# tests/conftest.py
"""
Shared fixtures for the test suite.

Key design points
─────────────────
1.  Make project-root importable so `from sweep.scheduler import …` works no
    matter where pytest is launched.
2.  Provide an in-memory `FakeChain` shared by every `FakeTronClient`, so
    service objects can be wired exactly as in production without touching
    the network.
3.  Time never really passes: sleeps are recorded and clocks are manual.
"""

from __future__ import annotations
import itertools
import pathlib
import sys
from decimal import Decimal

import pytest

# ─────────────────────────────────────────────────────────────────────────────
#  Ensure the repo root is on sys.path
# ─────────────────────────────────────────────────────────────────────────────
ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

# Only now import modules that live in the repo
from config.config import Settings, SUN_PER_TRX
from errors.exceptions import LedgerError, ErrorKind
from tron.client import TronClient

# Deterministic test keys; addresses are derived so checksums are always valid
OWNER_KEY = "11" * 32
SIGNER_KEY = "22" * 32
SOURCE_KEY = "33" * 32
RECEIVER_KEY = "44" * 32
OTHER_KEY = "55" * 32


def address_of(private_key: str) -> str:
    return TronClient.address_from_private_key(private_key)


def sun(trx) -> int:
    return int(Decimal(str(trx)) * SUN_PER_TRX)


# ────────────────────────────── fake ledger ─────────────────────────────────
class FakeChain:
    """State shared by all fake client bindings"""

    def __init__(self):
        self.balances: dict[str, int] = {}
        self.resources: dict[str, dict] = {}
        self.chain_parameters = [
            {"key": "getEnergyFee", "value": 420},
            {"key": "getTransactionFee", "value": 1000},
        ]
        # txid -> queued lookup results: "NOT_FOUND", "PENDING", or a contractRet
        self.tx_results: dict[str, list] = {}
        # txid -> queued transaction-info results: "NOT_FOUND" or a dict
        self.tx_info: dict[str, list] = {}
        self.blocks: dict[int, dict] = {}
        self.broadcast_result: dict | None = None
        self.broadcasts: list[dict] = []
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}
        self.now_block = 1000
        self._ids = itertools.count(1)

    def next_txid(self) -> str:
        return f"{next(self._ids):064x}"

    def fund(self, address: str, trx) -> None:
        self.balances[address] = sun(trx)

    def _maybe_fail(self, method: str):
        exc = self.failures.get(method)
        if exc is not None:
            raise exc

    @staticmethod
    def _pop(queue: list, default):
        if not queue:
            return default
        return queue.pop(0) if len(queue) > 1 else queue[0]


class FakeTronClient:
    """Drop-in stand-in for TronClient backed by a FakeChain"""

    is_address = staticmethod(TronClient.is_address)
    normalize_address = staticmethod(TronClient.normalize_address)
    address_from_private_key = staticmethod(TronClient.address_from_private_key)

    def __init__(self, chain: FakeChain, full_host: str = "http://fake", api_key=None, private_key=None):
        self.chain = chain
        self.full_host = full_host
        self.api_key = api_key
        self.private_key = private_key
        self.closed = False

    @property
    def address(self):
        return address_of(self.private_key) if self.private_key else None

    def set_api_key(self, api_key):
        self.api_key = api_key

    def _record(self, method, *args):
        self.chain.calls.append((method, self.api_key) + args)
        self.chain._maybe_fail(method)

    async def get_account(self, address):
        self._record("get_account", address)
        if address not in self.chain.balances:
            raise LedgerError(f"Account not found: {address}", ErrorKind.NOT_FOUND)
        return {"address": address, "balance": self.chain.balances[address]}

    async def get_balance(self, address):
        self._record("get_balance", address)
        return self.chain.balances.get(address, 0)

    async def get_account_resource(self, address):
        self._record("get_account_resource", address)
        return dict(self.chain.resources.get(address, {}))

    async def get_chain_parameters(self):
        self._record("get_chain_parameters")
        return list(self.chain.chain_parameters)

    async def create_transfer(self, owner, to, amount_sun, permission_id=None):
        self._record("create_transfer", owner, to, amount_sun, permission_id)
        txid = self.chain.next_txid()
        contract = {"owner_address": owner, "to_address": to, "amount": amount_sun}
        return {"txID": txid, "raw_data": {"contract": [contract]}, "Permission_id": permission_id}

    async def create_account(self, owner, account):
        self._record("create_account", owner, account)
        txid = self.chain.next_txid()
        return {"txID": txid, "raw_data": {"create_account": {"owner": owner, "account": account}}}

    def sign(self, tx, private_key=None):
        key = private_key or self.private_key
        signed = dict(tx)
        signed["signature"] = list(tx.get("signature") or []) + [f"sig:{address_of(key)}"]
        return signed

    async def broadcast(self, tx):
        self._record("broadcast", tx["txID"])
        self.chain.broadcasts.append(tx)
        if self.chain.broadcast_result is not None:
            return dict(self.chain.broadcast_result)

        raw = tx.get("raw_data", {})
        if "create_account" in raw:
            self.chain.balances.setdefault(raw["create_account"]["account"], 0)
        for contract in raw.get("contract", []):
            self.chain.balances[contract["owner_address"]] -= contract["amount"]
            self.chain.balances[contract["to_address"]] = (
                self.chain.balances.get(contract["to_address"], 0) + contract["amount"]
            )
        return {"result": True, "txid": tx["txID"]}

    async def get_transaction(self, txid):
        self._record("get_transaction", txid)
        result = FakeChain._pop(self.chain.tx_results.get(txid, []), "SUCCESS")
        if result == "NOT_FOUND":
            raise LedgerError(f"Transaction not found: {txid}", ErrorKind.NOT_FOUND)
        if result == "TRANSIENT":
            raise LedgerError("node unavailable", ErrorKind.TRANSIENT)
        if result == "PENDING":
            return {"txID": txid}
        return {"txID": txid, "ret": [{"contractRet": result}]}

    async def get_transaction_info(self, txid):
        self._record("get_transaction_info", txid)
        info = FakeChain._pop(self.chain.tx_info.get(txid, []), {"id": txid, "blockNumber": 1001, "fee": 1100})
        if info == "NOT_FOUND":
            raise LedgerError(f"Transaction info not found: {txid}", ErrorKind.NOT_FOUND)
        return dict(info)

    async def get_block(self, number):
        self._record("get_block", number)
        block = self.chain.blocks.get(number)
        if block is None:
            block = {"block_header": {"raw_data": {"number": number, "timestamp": 1_700_000_000_000}}}
        return block

    async def get_now_block(self):
        self._record("get_now_block")
        return {"block_header": {"raw_data": {"number": self.chain.now_block, "timestamp": 1_700_000_000_000}}}

    async def close(self):
        self.closed = True


class ManualClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep that returns at once and remembers requested delays"""

    def __init__(self, clock: ManualClock | None = None):
        self.delays: list[float] = []
        self.clock = clock

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.clock is not None:
            self.clock.advance(delay)


# ─────────────────────────────── fixtures ───────────────────────────────────
@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def client_factory(chain):
    def factory(full_host, api_key=None, private_key=None):
        return FakeTronClient(chain, full_host, api_key=api_key, private_key=private_key)
    return factory


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def sleep(clock):
    return RecordingSleep(clock)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        tron_api_keys=["key-a", "key-b", "key-c"],
        multi_sign={
            "owner_address": address_of(OWNER_KEY),
            "owner_private_key": OWNER_KEY,
            "signer_address": address_of(SIGNER_KEY),
            "signer_private_key": SIGNER_KEY,
        },
        addresses=[{
            "address": address_of(SOURCE_KEY),
            "receiving_address": address_of(RECEIVER_KEY),
            "private_key": SOURCE_KEY,
        }],
        base_dir=str(tmp_path),
    )


@pytest.fixture
def services(settings, client_factory, sleep, clock):
    from node.startup import build_services
    return build_services(settings, client_factory=client_factory, sleep=sleep, clock=clock)
