"""
Async client for the TRON full-node HTTP API.

Each TronClient is one "binding": an endpoint, the API key header sent with
every request and, optionally, the private key used to sign transactions
locally. Remote failures are raised as LedgerError with an ErrorKind so
callers never have to inspect node error strings.
"""

import asyncio
import logging
from typing import Optional, Dict, Any, List

import aiohttp
from tronpy import keys

from config.config import REQUEST_TIMEOUT
from errors.exceptions import LedgerError, ErrorKind, SigningError

logger = logging.getLogger(__name__)

API_KEY_HEADER = "TRON-PRO-API-KEY"

_INSUFFICIENT_MARKERS = ("balance is not sufficient", "insufficient balance", "contract_validate_error")


def decode_node_message(message) -> str:
    """Node error messages are usually hex encoded UTF-8"""
    if not message:
        return ""
    try:
        return bytes.fromhex(message).decode("utf-8")
    except (ValueError, TypeError, UnicodeDecodeError):
        return str(message)


def classify_rejection(code: Optional[str], message: Optional[str]) -> ErrorKind:
    """Map a node-side rejection to an ErrorKind"""
    text = f"{code or ''} {message or ''}".lower()
    if any(marker in text for marker in _INSUFFICIENT_MARKERS):
        return ErrorKind.INSUFFICIENT_BALANCE
    return ErrorKind.REJECTED


class TronClient:
    """Binding to one TRON full node"""

    def __init__(self, full_host: str, api_key: Optional[str] = None,
                 private_key: Optional[str] = None, session=None,
                 timeout: float = REQUEST_TIMEOUT):
        self.full_host = full_host.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._private_key = keys.PrivateKey(bytes.fromhex(private_key)) if private_key else None
        self._session = session
        self._owns_session = session is None

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers[API_KEY_HEADER] = self.api_key
        return headers

    @property
    def address(self) -> Optional[str]:
        """Base58 address of the signing key held by this binding"""
        if self._private_key is None:
            return None
        return self._private_key.public_key.to_base58check_address()

    def set_api_key(self, api_key: str):
        self.api_key = api_key

    async def _get_session(self):
        if self._session is None or getattr(self._session, "closed", False):
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
            self._owns_session = True
        return self._session

    async def _request(self, path: str, payload: Optional[dict] = None, method: str = "POST") -> Dict[str, Any]:
        url = f"{self.full_host}{path}"
        session = await self._get_session()
        try:
            async with session.request(method, url, json=payload, headers=self.headers) as resp:
                if resp.status == 429 or resp.status >= 500:
                    raise LedgerError(f"{path} returned HTTP {resp.status}", ErrorKind.TRANSIENT)
                if resp.status >= 400:
                    text = await resp.text()
                    raise LedgerError(f"{path} returned HTTP {resp.status}: {text[:200]}", ErrorKind.REJECTED)
                try:
                    data = await resp.json(content_type=None)
                except ValueError as e:
                    raise LedgerError(f"{path} returned invalid JSON: {e}", ErrorKind.INVALID_RESPONSE)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise LedgerError(f"{path} request failed: {e}", ErrorKind.TRANSIENT) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise LedgerError(f"{path} returned unexpected payload type {type(data).__name__}",
                              ErrorKind.INVALID_RESPONSE)
        return data

    # ------------------------------------------------------------------
    # Accounts and chain parameters
    # ------------------------------------------------------------------
    async def get_account(self, address: str) -> Dict[str, Any]:
        data = await self._request("/wallet/getaccount", {"address": address, "visible": True})
        if not data or not data.get("address"):
            raise LedgerError(f"Account not found: {address}", ErrorKind.NOT_FOUND)
        return data

    async def get_balance(self, address: str) -> int:
        """Balance in SUN; an account that does not exist yet holds nothing"""
        try:
            account = await self.get_account(address)
        except LedgerError as e:
            if e.not_found:
                return 0
            raise
        return int(account.get("balance", 0))

    async def get_account_resource(self, address: str) -> Dict[str, Any]:
        return await self._request("/wallet/getaccountresource", {"address": address, "visible": True})

    async def get_chain_parameters(self) -> List[Dict[str, Any]]:
        data = await self._request("/wallet/getchainparameters", method="GET")
        params = data.get("chainParameter")
        if not isinstance(params, list):
            raise LedgerError("Malformed chain parameters response", ErrorKind.INVALID_RESPONSE, details=data)
        return params

    # ------------------------------------------------------------------
    # Transaction construction, signing and broadcast
    # ------------------------------------------------------------------
    def _check_built(self, tx: Dict[str, Any], action: str) -> Dict[str, Any]:
        if "Error" in tx:
            message = str(tx["Error"])
            raise LedgerError(f"{action} rejected: {message}", classify_rejection(None, message), details=tx)
        if not tx.get("txID") or "raw_data" not in tx:
            raise LedgerError(f"{action} returned no transaction", ErrorKind.INVALID_RESPONSE, details=tx)
        return tx

    async def create_transfer(self, owner_address: str, to_address: str, amount_sun: int,
                              permission_id: Optional[int] = None) -> Dict[str, Any]:
        payload = {
            "owner_address": owner_address,
            "to_address": to_address,
            "amount": int(amount_sun),
            "visible": True,
        }
        if permission_id is not None:
            payload["Permission_id"] = int(permission_id)
        tx = await self._request("/wallet/createtransaction", payload)
        return self._check_built(tx, "createtransaction")

    async def create_account(self, owner_address: str, account_address: str) -> Dict[str, Any]:
        payload = {
            "owner_address": owner_address,
            "account_address": account_address,
            "visible": True,
        }
        tx = await self._request("/wallet/createaccount", payload)
        return self._check_built(tx, "createaccount")

    def sign(self, tx: Dict[str, Any], private_key: Optional[str] = None) -> Dict[str, Any]:
        """Append a signature over txID; existing signatures are kept"""
        try:
            key = keys.PrivateKey(bytes.fromhex(private_key)) if private_key else self._private_key
        except ValueError as e:
            raise SigningError(f"Invalid signing key: {e}") from e
        if key is None:
            raise SigningError("No signing key available for this binding")
        txid = tx.get("txID")
        if not txid:
            raise SigningError("Transaction has no txID to sign")

        signature = key.sign_msg_hash(bytes.fromhex(txid)).hex()
        signed = dict(tx)
        signed["signature"] = list(tx.get("signature") or []) + [signature]
        return signed

    async def broadcast(self, tx: Dict[str, Any]) -> Dict[str, Any]:
        """Submit a signed transaction and return the raw node result.

        A rejection is not raised here; the decoded message is placed under
        ``message`` and callers decide what a failed result means.
        """
        result = await self._request("/wallet/broadcasttransaction", tx)
        if "message" in result:
            result["message"] = decode_node_message(result["message"])
        return result

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    async def get_transaction(self, txid: str) -> Dict[str, Any]:
        data = await self._request("/wallet/gettransactionbyid", {"value": txid})
        if not data or not data.get("txID"):
            raise LedgerError(f"Transaction not found: {txid}", ErrorKind.NOT_FOUND)
        return data

    async def get_transaction_info(self, txid: str) -> Dict[str, Any]:
        data = await self._request("/wallet/gettransactioninfobyid", {"value": txid})
        if not data or not data.get("id"):
            raise LedgerError(f"Transaction info not found: {txid}", ErrorKind.NOT_FOUND)
        return data

    async def get_block(self, number: int) -> Dict[str, Any]:
        data = await self._request("/wallet/getblockbynum", {"num": int(number)})
        if not data or "block_header" not in data:
            raise LedgerError(f"Block not found: {number}", ErrorKind.NOT_FOUND)
        return data

    async def get_now_block(self) -> Dict[str, Any]:
        data = await self._request("/wallet/getnowblock")
        if "block_header" not in data:
            raise LedgerError("Malformed current block response", ErrorKind.INVALID_RESPONSE, details=data)
        return data

    # ------------------------------------------------------------------
    # Address helpers
    # ------------------------------------------------------------------
    @staticmethod
    def is_address(address) -> bool:
        if not isinstance(address, str) or not address:
            return False
        try:
            return keys.is_address(address)
        except (ValueError, TypeError):
            return False

    @staticmethod
    def normalize_address(address: str) -> str:
        """Round-trip through hex form and return the base58 address"""
        try:
            return keys.to_base58check_address(keys.to_hex_address(address))
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid TRON address: {address}") from e

    @staticmethod
    def address_from_private_key(private_key: str) -> str:
        return keys.PrivateKey(bytes.fromhex(private_key)).public_key.to_base58check_address()

    async def close(self):
        if self._owns_session and self._session is not None and not getattr(self._session, "closed", False):
            await self._session.close()
        self._session = None


def block_number_of(block: Dict[str, Any]) -> Optional[int]:
    """Height of a block returned by getnowblock/getblockbynum"""
    try:
        return int(block["block_header"]["raw_data"]["number"])
    except (KeyError, TypeError, ValueError):
        return None


def block_timestamp_of(block: Dict[str, Any]) -> Optional[int]:
    """Block timestamp in milliseconds"""
    try:
        return int(block["block_header"]["raw_data"]["timestamp"])
    except (KeyError, TypeError, ValueError):
        return None


def contract_result_of(tx: Dict[str, Any]) -> Optional[str]:
    """contractRet of a transaction lookup, or None while unresolved"""
    ret = tx.get("ret") or []
    if ret and isinstance(ret[0], dict):
        return ret[0].get("contractRet")
    return None
