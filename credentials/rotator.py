"""
API key rotation across TRON client bindings
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from monitoring.metrics import credential_index, credential_rotations_total
from tron.client import TronClient

logger = logging.getLogger(__name__)

OWNER_BINDING = "multisig:owner"
SIGNER_BINDING = "multisig:signer"


def mask_key(key: str) -> str:
    return f"{key[:8]}..." if key else "<none>"


class CredentialPool:
    """Ordered API keys and a round-robin cursor"""

    def __init__(self, keys: List[str]):
        if not keys:
            raise ValueError("Credential pool needs at least one API key")
        self.keys = list(keys)
        self.cursor = 0

    @property
    def current(self) -> str:
        return self.keys[self.cursor]

    def rotate(self) -> str:
        """Advance the cursor, wrapping to the first key"""
        self.cursor = (self.cursor + 1) % len(self.keys)
        return self.keys[self.cursor]

    def __len__(self) -> int:
        return len(self.keys)


class CredentialRotator:
    """
    Owns the credential pool and every live client binding.

    Bindings are named: one per monitored address plus the multi-sign owner
    and signer. Rotation updates the API key header on all of them; a
    binding that keeps failing can be rebuilt on its own with ``rebind``.
    """

    def __init__(self, pool: CredentialPool, full_host: str,
                 client_factory: Callable[..., TronClient] = TronClient,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep):
        self.pool = pool
        self.full_host = full_host
        self.client_factory = client_factory
        self.sleep = sleep
        self.bindings: Dict[str, TronClient] = {}
        self._signing_keys: Dict[str, Optional[str]] = {}
        credential_index.set(self.pool.cursor)

    def create_binding(self, name: str, private_key: Optional[str] = None) -> TronClient:
        """Build and register a binding using the current API key"""
        client = self.client_factory(self.full_host, api_key=self.pool.current, private_key=private_key)
        self.bindings[name] = client
        self._signing_keys[name] = private_key
        return client

    def create_ephemeral(self, private_key: Optional[str] = None) -> TronClient:
        """Unregistered binding for one-off requests"""
        return self.client_factory(self.full_host, api_key=self.pool.current, private_key=private_key)

    def get(self, name: str) -> TronClient:
        return self.bindings[name]

    @property
    def owner(self) -> TronClient:
        return self.bindings[OWNER_BINDING]

    @property
    def signer(self) -> TronClient:
        return self.bindings[SIGNER_BINDING]

    def rotate(self) -> str:
        key = self.pool.rotate()
        credential_index.set(self.pool.cursor)
        logger.info(f"Rotated to API key {mask_key(key)} ({self.pool.cursor + 1}/{len(self.pool)})")
        return key

    def apply_to_all_bindings(self, key: str) -> int:
        """Set ``key`` on every binding; returns how many were updated"""
        updated = 0
        for name, client in self.bindings.items():
            try:
                client.set_api_key(key)
                updated += 1
            except Exception as e:
                logger.error(f"Failed to update API key on binding {name}: {e}")
        logger.info(f"API key {mask_key(key)} applied to {updated}/{len(self.bindings)} bindings")
        return updated

    def rotate_and_apply(self, reason: str = "manual") -> str:
        key = self.rotate()
        self.apply_to_all_bindings(key)
        credential_rotations_total.labels(reason=reason).inc()
        return key

    async def rebind(self, name: str, key: Optional[str] = None) -> TronClient:
        """Rebuild one binding with a fresh client and its own signing key"""
        key = key or self.pool.current
        old = self.bindings.get(name)
        client = self.client_factory(self.full_host, api_key=key, private_key=self._signing_keys.get(name))
        self.bindings[name] = client
        if old is not None and old is not client:
            try:
                await old.close()
            except Exception as e:
                logger.warning(f"Error closing replaced binding {name}: {e}")
        logger.info(f"Rebuilt client binding for {name} with API key {mask_key(key)}")
        return client

    async def run_rotation_timer(self, interval: float):
        """Rotate the shared key every ``interval`` seconds until cancelled"""
        logger.info(f"API key rotation every {interval}s across {len(self.pool)} keys")
        while True:
            await self.sleep(interval)
            self.rotate_and_apply(reason="timer")

    async def close(self):
        for name, client in list(self.bindings.items()):
            try:
                await client.close()
            except Exception as e:
                logger.warning(f"Error closing binding {name}: {e}")
