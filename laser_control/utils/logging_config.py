"""Logging configuration for the send_job CLI and library callers.

Provides consistent logging across the encoder, transports and driver:
    - Console and file handlers with optional rotation
    - JSON output mode for log shippers
    - Contextual fields (job name, dialect, transport)
    - Warning capture (Python warnings -> logging)

Public API:
    setup_logging(log_level="INFO", context={"app": "send_job"})
    push_context(job="badge")
    pop_context(keys=["job"])

Format examples:
    Human: 2026-10-17T13:45:12.345Z | INFO     | job=badge | Sent 5120 bytes
    JSON: {"t":"2026-10-17T13:45:12.345Z","lvl":"INFO","job":"badge","msg":"..."}

Context uses contextvars, so concurrent callers do not see each
other's fields.  Repeated setup_logging() calls don't duplicate handlers.
"""

import contextvars
import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


_context_var: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    'logging_context', default={}
)

_configured = False


class ContextFormatter(logging.Formatter):
    """Formatter that appends fields set with push_context().

    Parameters
    ----------
    fmt_mode : str
        "human" or "json"
    use_color : bool
        ANSI level colors (only when stderr is a TTY)
    """

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
        'RESET': '\033[0m',
    }

    def __init__(self, fmt_mode: str = "human", use_color: bool = True):
        super().__init__()
        self.fmt_mode = fmt_mode
        self.use_color = use_color and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        context = _context_var.get({})
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)

        if self.fmt_mode == "json":
            return self._format_json(record, ts, context)
        return self._format_human(record, ts, context)

    def _format_json(
        self,
        record: logging.LogRecord,
        ts: datetime,
        context: dict
    ) -> str:
        log_dict = {
            't': ts.isoformat(),
            'lvl': record.levelname,
            'name': record.name,
            'pid': os.getpid(),
            'msg': record.getMessage()
        }
        log_dict.update(context)
        if record.exc_info:
            log_dict['exc'] = self.formatException(record.exc_info)
        return json.dumps(log_dict)

    def _format_human(
        self,
        record: logging.LogRecord,
        ts: datetime,
        context: dict
    ) -> str:
        ts_str = ts.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'

        level = f"{record.levelname:8s}"
        if self.use_color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.COLORS['RESET']}"

        parts = [ts_str, '|', level, '|']
        context_str = ' '.join(f"{k}={v}" for k, v in context.items())
        if context_str:
            parts.extend([context_str, '|'])
        parts.append(record.getMessage())

        line = ' '.join(parts)
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    json: bool = False,
    color: bool = True,
    to_stderr: bool = True,
    rotate: Optional[Dict[str, Any]] = None,
    capture_warnings: bool = True,
    context: Optional[Dict[str, Any]] = None,
) -> List[logging.Handler]:
    """Configure root logger (idempotent).

    Parameters
    ----------
    log_level : str
        Logging level: "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"
    log_file : str, optional
        Log file path; None for no file logging
    json : bool
        Use JSON format for the file handler, default False
    color : bool
        Use ANSI colors in console output, default True
    to_stderr : bool
        Log to stderr (console), default True
    rotate : dict, optional
        Rotation config, e.g. {"max_bytes": 5_000_000, "backup_count": 3}
    capture_warnings : bool
        Capture Python warnings to logging, default True
    context : dict, optional
        Initial contextual fields (e.g., {"app": "send_job"})

    Returns
    -------
    list[logging.Handler]
        Handlers installed on the root logger
    """
    global _configured

    root = logging.getLogger()
    if _configured:
        root.handlers.clear()

    root.setLevel(getattr(logging, log_level.upper()))

    handlers: List[logging.Handler] = []
    if to_stderr:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(ContextFormatter("human", color))
        handlers.append(console_handler)

    if log_file:
        handlers.append(_create_file_handler(log_file, rotate, json))

    for handler in handlers:
        root.addHandler(handler)

    if context:
        push_context(**context)

    if capture_warnings:
        logging.captureWarnings(True)

    _configured = True
    return handlers


def _create_file_handler(
    log_file: str,
    rotate: Optional[Dict[str, Any]],
    json_format: bool,
) -> logging.Handler:
    """Create file handler with optional size-based rotation."""
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    handler: logging.Handler
    if rotate:
        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=rotate.get('max_bytes', 5_000_000),
            backupCount=rotate.get('backup_count', 3)
        )
    else:
        handler = logging.FileHandler(log_file)

    fmt_mode = "json" if json_format else "human"
    handler.setFormatter(ContextFormatter(fmt_mode, use_color=False))
    return handler


def push_context(**kwargs) -> None:
    """Add contextual fields to all subsequent log records.

    Examples
    --------
    >>> push_context(job="badge", dialect="simple")
    >>> logger.info("Encoded")  # -> "... | job=badge dialect=simple | Encoded"
    """
    current = _context_var.get({})
    _context_var.set({**current, **kwargs})


def pop_context(keys: Optional[List[str]] = None) -> None:
    """Remove contextual fields; all of them when *keys* is None."""
    if keys is None:
        _context_var.set({})
        return
    current = dict(_context_var.get({}))
    for key in keys:
        current.pop(key, None)
    _context_var.set(current)


def get_context() -> Dict[str, Any]:
    """Return a copy of the active contextual fields."""
    return dict(_context_var.get({}))
