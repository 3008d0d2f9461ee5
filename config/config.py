import os
import json
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

CONFIG_PATH = os.environ.get("SWEEPER_CONFIG", "config.json")

SUN_PER_TRX = 1_000_000
RESERVE_TRX = Decimal(os.environ.get("RESERVE_TRX", "1"))
STANDARD_FEE_TRX = Decimal("0.00001")
ACTIVATION_FEE_TRX = Decimal("1")
FALLBACK_FEE_TRX = Decimal(os.environ.get("FALLBACK_FEE_TRX", "0.265"))
BANDWIDTH_TARGET = 265
FEE_LIMIT_SUN = 1_000_000

PENDING_TX_STALE_SECONDS = 30 * 60
TRANSFER_RETENTION_SECONDS = 30 * 24 * 60 * 60
RECENT_TRANSFER_WINDOW_SECONDS = 5 * 60

CONFIRM_POLL_INTERVAL = float(os.environ.get("CONFIRM_POLL_INTERVAL", "3"))
CONFIRM_POLL_ATTEMPTS = int(os.environ.get("CONFIRM_POLL_ATTEMPTS", "20"))
INCLUSION_POLL_INTERVAL = float(os.environ.get("INCLUSION_POLL_INTERVAL", "5"))
INCLUSION_POLL_ATTEMPTS = int(os.environ.get("INCLUSION_POLL_ATTEMPTS", "20"))
BLOCK_LOOKUP_INTERVAL = float(os.environ.get("BLOCK_LOOKUP_INTERVAL", "2"))
BLOCK_LOOKUP_ATTEMPTS = int(os.environ.get("BLOCK_LOOKUP_ATTEMPTS", "10"))

SWEEP_RETRY_ATTEMPTS = int(os.environ.get("SWEEP_RETRY_ATTEMPTS", "3"))
SWEEP_RETRY_BASE_DELAY = float(os.environ.get("SWEEP_RETRY_BASE_DELAY", "2"))
REQUEST_TIMEOUT = float(os.environ.get("REQUEST_TIMEOUT", "10"))


class TronSettings(BaseModel):
    full_host: str = "https://api.trongrid.io"
    energy_limit: int = Field(10000, ge=0, description="Energy budgeted for one transfer")


class NetworkFeeSettings(BaseModel):
    default_energy_price: int = Field(420, ge=0, description="SUN per energy unit")
    default_bandwidth_price: int = Field(1000, ge=0, description="SUN per bandwidth point")
    update_interval: float = Field(3600, gt=0, description="Fee snapshot TTL in seconds")


class MultiSignConfig(BaseModel):
    owner_address: str
    owner_private_key: str
    signer_address: str
    signer_private_key: str
    required_signatures: int = Field(2, ge=1, le=2)
    permission_id: int = Field(0, ge=0)


class MonitoredAddress(BaseModel):
    address: str
    receiving_address: str
    private_key: str

    model_config = {"frozen": True}


class WebSocketSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8081
    heartbeat_interval: float = Field(30, gt=0)
    check_interval: float = Field(60, gt=0)
    max_retries: int = Field(3, ge=1)
    retry_delay: float = Field(5, ge=0)
    kill_timeout: float = Field(10, ge=0)

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}/ws"


class MonitorSettings(BaseModel):
    sweep_interval: float = Field(30, gt=0)
    api_key_rotate_interval: float = Field(3600, gt=0)
    skip_recent_duplicates: bool = False


class LoggingSettings(BaseModel):
    level: str = "INFO"
    log_dir: str = "logs"
    max_file_size: int = 10 * 1024 * 1024
    max_files: int = 5
    structured: bool = True


class TransferRecordSettings(BaseModel):
    file_path: str = "transfer_records.json"
    success_file_path: str = "transfer_success_records.json"


class Settings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080
    tron_api_keys: List[str]
    tron: TronSettings = Field(default_factory=TronSettings)
    network_fee: NetworkFeeSettings = Field(default_factory=NetworkFeeSettings)
    multi_sign: MultiSignConfig
    addresses: List[MonitoredAddress] = Field(default_factory=list)
    websocket: WebSocketSettings = Field(default_factory=WebSocketSettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    transfer_records: TransferRecordSettings = Field(default_factory=TransferRecordSettings)
    base_dir: str = "."

    @field_validator('tron_api_keys')
    @classmethod
    def validate_api_keys(cls, v):
        keys = [key.strip() for key in v if key and key.strip()]
        if not keys:
            raise ValueError('At least one TRON API key is required')
        return keys

    @field_validator('addresses')
    @classmethod
    def validate_unique_addresses(cls, v):
        seen = set()
        for entry in v:
            if entry.address in seen:
                raise ValueError(f'Duplicate monitored address: {entry.address}')
            seen.add(entry.address)
        return v

    def secret_values(self) -> List[str]:
        """API keys and private keys that must never be logged"""
        values = list(self.tron_api_keys)
        values += [self.multi_sign.owner_private_key, self.multi_sign.signer_private_key]
        values += [entry.private_key for entry in self.addresses]
        return values

    def resolve_path(self, path: str) -> str:
        """Resolve a configured path relative to the config file directory"""
        if os.path.isabs(path):
            return path
        return os.path.join(self.base_dir, path)


def load_settings(path: Optional[str] = None) -> Settings:
    """Read the JSON config file and validate it into Settings"""
    path = path or CONFIG_PATH
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    data.setdefault("base_dir", os.path.dirname(os.path.abspath(path)))
    return Settings(**data)
