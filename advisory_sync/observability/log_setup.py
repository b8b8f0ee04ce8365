"""
Logging setup for sync runs.

Log records go to an append-only file in the configured log directory.
If that directory is not writable the run continues and logs to stdout
instead. Errors are additionally sent to the local syslog when it is
available.
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import List

from config import SyncConfig

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
SYSLOG_FORMAT = 'advisory-sync[%(process)d]: %(levelname)s %(message)s'
SYSLOG_SOCKET = "/dev/log"

_HANDLER_MARK = "_advisory_sync_handler"


def _mark(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _HANDLER_MARK, True)
    return handler


def _file_handler(config: SyncConfig) -> logging.Handler:
    log_path = config.log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(log_path, mode="a", encoding="utf-8")


def _syslog_handler(address: str = SYSLOG_SOCKET) -> logging.Handler:
    handler = logging.handlers.SysLogHandler(address=address)
    handler.setLevel(logging.ERROR)
    handler.setFormatter(logging.Formatter(SYSLOG_FORMAT))
    return handler


def configure_logging(config: SyncConfig, stream=None) -> List[logging.Handler]:
    """
    Install the run's log handlers on the root logger.

    Handlers installed by an earlier call are replaced, so this is safe to
    call more than once in one process.

    Returns:
        The handlers that were installed
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            root.removeHandler(handler)
            handler.close()

    root.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    formatter = logging.Formatter(LOG_FORMAT)
    handlers: List[logging.Handler] = []
    fallback_reason = None

    try:
        handlers.append(_file_handler(config))
    except OSError as e:
        fallback_reason = f"Cannot write log file {config.log_path} ({e}); logging to stdout"
        handlers.append(logging.StreamHandler(stream or sys.stdout))

    if config.syslog and Path(SYSLOG_SOCKET).exists():
        try:
            handlers.append(_syslog_handler())
        except OSError as e:
            fallback_reason = fallback_reason or f"Syslog unavailable ({e}); errors go to the log file only"

    for handler in handlers:
        if handler.formatter is None:
            handler.setFormatter(formatter)
        root.addHandler(_mark(handler))

    if fallback_reason:
        logging.getLogger(__name__).warning(fallback_reason)

    return handlers
