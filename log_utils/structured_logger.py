"""
Structured logging for the TRON sweeper.

Log lines are JSON objects carrying the sweep context (monitored address,
receiving address, txid) as top-level keys. Private keys and API keys
registered with ``register_secrets`` never reach a handler in clear text.
"""

import asyncio
import functools
import json
import logging
import logging.handlers
import os
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Set

# Promoted to top-level keys; anything else passed via ``extra`` lands under "extra"
_CONTEXT_FIELDS = ('address', 'receiving_address', 'txid', 'api_key',
                   'correlation_id', 'endpoint', 'operation', 'duration', 'status', 'stream')

_RESERVED_ATTRS = set(logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__) | {'message', 'asctime'}

REDACTED = "***"

_secrets: Set[str] = set()


def register_secrets(values: Iterable[Optional[str]]):
    """Add values that must be masked wherever they appear in a log line"""
    for value in values:
        if value and len(value) >= 8:
            _secrets.add(value)


def redact(text: str) -> str:
    for secret in _secrets:
        if secret in text:
            text = text.replace(secret, REDACTED)
    return text


class SecretRedactionFilter(logging.Filter):
    """Masks registered secrets in the rendered message and its arguments"""

    def filter(self, record: logging.LogRecord) -> bool:
        if _secrets:
            record.msg = redact(record.getMessage())
            record.args = ()
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per record"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update({name: getattr(record, name) for name in _CONTEXT_FIELDS if hasattr(record, name)})

        extra = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and key not in _CONTEXT_FIELDS
        }
        if extra:
            entry["extra"] = extra

        if record.exc_info:
            exc_type, exc, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "traceback": self.formatException(record.exc_info),
            }

        return redact(json.dumps(entry, default=str))


class ContextualLogger:
    """Wraps a logger and attaches bound context to every record"""

    def __init__(self, logger: logging.Logger, context: Optional[Dict[str, Any]] = None):
        self.logger = logger
        self.context: Dict[str, Any] = dict(context or {})

    def with_context(self, **kwargs) -> 'ContextualLogger':
        return ContextualLogger(self.logger, {**self.context, **kwargs})

    def log(self, level: int, msg: str, *args, **kwargs):
        kwargs['extra'] = {**self.context, **(kwargs.get('extra') or {})}
        self.logger.log(level, msg, *args, **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self.log(logging.ERROR, msg, *args, **kwargs)


class AddressFileHandler(logging.Handler):
    """Copies records tagged with a ``stream`` into daily files.

    A record with stream "balance" and address A lands in ``balance_A.log``;
    one without an address lands in ``<stream>.log``. Each file rolls over
    at midnight.
    """

    def __init__(self, log_dir: str, backup_count: int = 0):
        super().__init__()
        self.log_dir = log_dir
        self.backup_count = backup_count
        self._files: Dict[str, logging.Handler] = {}

    def _file_for(self, name: str) -> logging.Handler:
        handler = self._files.get(name)
        if handler is None:
            os.makedirs(self.log_dir, exist_ok=True)
            handler = logging.handlers.TimedRotatingFileHandler(
                os.path.join(self.log_dir, name), when="midnight",
                backupCount=self.backup_count, encoding="utf-8"
            )
            handler.setFormatter(self.formatter)
            self._files[name] = handler
        return handler

    def emit(self, record: logging.LogRecord):
        stream = getattr(record, "stream", None)
        if not stream:
            return
        address = getattr(record, "address", None)
        name = f"{stream}_{address}.log" if address else f"{stream}.log"
        try:
            self._file_for(name).handle(record)
        except Exception:
            self.handleError(record)

    def close(self):
        for handler in self._files.values():
            handler.close()
        self._files.clear()
        super().close()


def _make_handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(SecretRedactionFilter())
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    enable_console: bool = True,
    enable_structured: bool = True,
    max_bytes: int = 0,
    backup_count: int = 0,
    secrets: Iterable[Optional[str]] = (),
    address_logs: bool = False
) -> ContextualLogger:
    """Configure the root logger for the service or the watchdog.

    The log file rotates at ``max_bytes`` keeping ``backup_count`` old
    files; with ``max_bytes`` 0 it grows unbounded. With ``address_logs``
    the balance and transfer lines also go to daily per-address files
    beside it.
    """
    register_secrets(secrets)
    numeric_level = getattr(logging, level.upper())

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()

    if enable_structured:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    if enable_console:
        root.addHandler(_make_handler(logging.StreamHandler(sys.stdout), numeric_level, formatter))

    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        if max_bytes:
            handler = logging.handlers.RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        else:
            handler = logging.FileHandler(log_file)
        root.addHandler(_make_handler(handler, numeric_level, formatter))
        if address_logs:
            address_handler = AddressFileHandler(os.path.dirname(log_file) or ".", backup_count)
            root.addHandler(_make_handler(address_handler, numeric_level, formatter))

    # uvicorn installs its own handlers; route its records through ours
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers.clear()
        logging.getLogger(name).propagate = True

    return ContextualLogger(root)


def log_performance(logger: ContextualLogger, operation: str):
    """Log duration and outcome of each call to the decorated function"""
    def report(start: float, error: Optional[Exception] = None):
        fields = {"operation": operation, "duration": round(time.time() - start, 3)}
        if error is None:
            logger.info(f"Operation completed: {operation}", extra={**fields, "status": "success"})
        else:
            logger.error(f"Operation failed: {operation}: {error}", extra={**fields, "status": "error"})

    def decorator(func):
        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                start = time.time()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    report(start, e)
                    raise
                report(start)
                return result
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            start = time.time()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                report(start, e)
                raise
            report(start)
            return result
        return sync_wrapper
    return decorator


def get_logger(name: str) -> ContextualLogger:
    return ContextualLogger(logging.getLogger(name))
