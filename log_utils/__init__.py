from .structured_logger import (
    StructuredFormatter,
    SecretRedactionFilter,
    AddressFileHandler,
    register_secrets,
    redact,
    ContextualLogger,
    setup_logging,
    log_performance,
    get_logger,
)

__all__ = [
    'StructuredFormatter',
    'SecretRedactionFilter',
    'AddressFileHandler',
    'register_secrets',
    'redact',
    'ContextualLogger',
    'setup_logging',
    'log_performance',
    'get_logger',
]
