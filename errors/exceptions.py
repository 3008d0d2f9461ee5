"""
Custom exception classes for the TRON sweeper
"""

from enum import Enum


class ErrorKind(Enum):
    """Structured classification of remote ledger failures"""
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    REJECTED = "rejected"
    INVALID_RESPONSE = "invalid_response"


class SweeperError(Exception):
    """Base exception for sweep operations"""
    retryable = True

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        self.code = code or "SWEEPER_ERROR"

class ValidationError(SweeperError):
    """Malformed address, amount or request payload"""
    retryable = False

    def __init__(self, message: str):
        super().__init__(message, "VALIDATION_ERROR")

class ResourceError(SweeperError):
    """Not enough funds or resources to perform a transfer"""
    retryable = False

    def __init__(self, message: str):
        super().__init__(message, "RESOURCE_ERROR")

class InsufficientFundsError(ResourceError):
    """Insufficient funds for transfer"""
    def __init__(self, required: str, available: str):
        message = f"Insufficient funds: need {required}, have {available}"
        super().__init__(message)
        self.required = required
        self.available = available

class NetworkError(SweeperError):
    """Network-related errors"""
    def __init__(self, message: str):
        super().__init__(message, "NETWORK_ERROR")

class LedgerError(NetworkError):
    """Failure reported by the remote ledger, classified by kind"""
    def __init__(self, message: str, kind: ErrorKind = ErrorKind.TRANSIENT, details: dict = None):
        super().__init__(message)
        self.kind = kind
        self.details = details or {}
        if kind == ErrorKind.NOT_FOUND:
            self.code = "NOT_FOUND"
        elif kind == ErrorKind.INSUFFICIENT_BALANCE:
            self.code = "RESOURCE_ERROR"
            self.retryable = False

    @property
    def not_found(self) -> bool:
        return self.kind == ErrorKind.NOT_FOUND

class ActivationError(SweeperError):
    """Receiving account could not be activated"""
    retryable = False

    def __init__(self, address: str, reason: str = ""):
        message = f"Failed to activate account {address}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, "ACTIVATION_ERROR")
        self.address = address

class SigningError(SweeperError):
    """Co-signer did not produce a valid signature"""
    def __init__(self, message: str = "Failed to sign transaction"):
        super().__init__(message, "SIGNING_ERROR")

class BroadcastError(SweeperError):
    """Broadcast result missing or unsuccessful"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, "BROADCAST_ERROR")
        self.details = details or {}

class ConfirmationTimeout(SweeperError):
    """Transaction was not confirmed within the polling budget"""
    def __init__(self, txid: str, attempts: int = 0):
        super().__init__(f"Transaction {txid} confirmation timed out after {attempts} attempts", "CONFIRMATION_TIMEOUT")
        self.txid = txid
        self.attempts = attempts

class ConfirmationFailed(SweeperError):
    """Transaction was included but reported a failed result"""
    def __init__(self, txid: str, result: str = "FAILED"):
        super().__init__(f"Transaction {txid} failed with result {result}", "CONFIRMATION_FAILED")
        self.txid = txid
        self.result = result
