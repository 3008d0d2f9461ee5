"""
Pydantic models for request and message validation
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator


class TransferTRXRequest(BaseModel):
    """Body of POST /transferTRX.

    Every field is optional here so missing parameters can be reported with
    a single message by the endpoint instead of a schema error.
    """
    toAddress: Optional[str] = Field(None, description="Base58 receiving address")
    amount: Optional[Decimal] = Field(None, description="Amount in TRX")
    privateKey: Optional[str] = Field(None, description="Hex private key of the sending account")

    @field_validator('toAddress', 'privateKey')
    @classmethod
    def strip_blank(cls, v):
        if v is None:
            return v
        v = v.strip()
        return v or None

    def missing_fields(self) -> list:
        return [name for name in ('toAddress', 'amount', 'privateKey') if getattr(self, name) is None]


class HeartbeatMessage(BaseModel):
    type: Literal["heartbeat"] = "heartbeat"
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"))
    status: str = "running"
