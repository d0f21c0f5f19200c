"""
Logging configuration for RentDesk.

Single 'rentdesk' logger; every module logs through a child of it
(logging.getLogger(__name__)).

  Log file : logs/rentdesk.log  (LOG_DIR env var overrides the directory)
  Rotation : 5 MB × 3 backups
  Level    : LOG_LEVEL env var (DEBUG / INFO / WARNING / ERROR / CRITICAL)
             defaults to INFO when unset

Usage
-----
    from rentdesk.logging_config import configure_logging, log_call

    # Once at startup (idempotent):
    configure_logging()

    # On any operation you want traced:
    @log_call
    def provision_tenant_with_lease(...):
        ...

Log format per line
-------------------
    2026-03-02 09:14:55 | INFO     | OK   provision_tenant_with_lease | 38ms
    2026-03-02 09:15:10 | WARNING  | REJECT change_status | ERROR_CONTRACT_ACTIVE_CONFLICT: ... | 4ms
    2026-03-02 09:15:31 | ERROR    | FAIL list_reminders | OperationalError: ... | 5003ms
"""

import functools
import logging
import logging.handlers
import os
import time
from pathlib import Path

from rentdesk.errors import RentDeskError

_LOG_DIR = Path(os.environ.get("LOG_DIR") or Path(__file__).parent.parent / "logs")
_LOG_FILE = _LOG_DIR / "rentdesk.log"
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
_BACKUP_COUNT = 3
_MAX_ARG_REPR = 120


def configure_logging() -> logging.Logger:
    """
    Set up the rentdesk logger. Idempotent, safe to call on every CLI entry.
    Returns the configured logger.
    """
    _LOG_DIR.mkdir(parents=True, exist_ok=True)

    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger("rentdesk")

    # Guard: don't add duplicate handlers if already configured
    if logger.handlers:
        return logger

    logger.setLevel(level)

    handler = logging.handlers.RotatingFileHandler(
        _LOG_FILE,
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(handler)

    return logger


def _short_repr(value) -> str:
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    text = repr(value)
    if len(text) > _MAX_ARG_REPR:
        return text[:_MAX_ARG_REPR] + "…"
    return text


def log_call(func):
    """
    Decorator: logs entry, clean exit, and exceptions for any function.

    - DEBUG   on entry           : CALL   <name> | args=(...)
    - INFO    on success         : OK     <name> | <N>ms
    - WARNING on RentDeskError   : REJECT <name> | CODE: message | <N>ms
    - ERROR   on anything else   : FAIL   <name> | ExcType: message | <N>ms

    The exception is always re-raised. Document bytes are logged as a size only.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger("rentdesk")
        name = func.__name__
        start = time.perf_counter()

        parts = [_short_repr(a) for a in args] + [f"{k}={_short_repr(v)}" for k, v in kwargs.items()]
        arg_str = ", ".join(parts) if parts else "—"
        logger.debug(f"CALL   {name} | args=({arg_str})")

        try:
            result = func(*args, **kwargs)
            ms = int((time.perf_counter() - start) * 1000)
            logger.info(f"OK     {name} | {ms}ms")
            return result
        except RentDeskError as exc:
            ms = int((time.perf_counter() - start) * 1000)
            logger.warning(f"REJECT {name} | {exc.code}: {exc.message} | {ms}ms")
            raise
        except Exception as exc:
            ms = int((time.perf_counter() - start) * 1000)
            logger.error(f"FAIL   {name} | {type(exc).__name__}: {exc} | {ms}ms")
            raise

    return wrapper
