"""
Process-wide logging.

Every record carries the session, segment and provider it was logged under.
Code scopes those with log_context(); ContextFilter copies them onto each
record so LOG_FORMAT can print them ("-" when unset).
"""
from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(session_id)s | %(segment)s | %(provider)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

LOG_SESSION_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("log_session_id", default=None)
LOG_SEGMENT: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("log_segment", default=None)
LOG_PROVIDER: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("log_provider", default=None)

CONTEXT_FIELDS: Dict[str, contextvars.ContextVar] = {
    "session_id": LOG_SESSION_ID,
    "segment": LOG_SEGMENT,
    "provider": LOG_PROVIDER,
}

_CONFIGURED_FLAG = "_clipflow_logging_configured"


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        for field, var in CONTEXT_FIELDS.items():
            value = var.get()
            setattr(record, field, "-" if value is None else value)
        return True


@contextmanager
def log_context(**fields: object) -> Iterator[None]:
    """
    Scope log fields for the enclosed block, e.g.
    ``with log_context(session_id=3, segment=0, provider="grok"):``.

    None values leave the enclosing value in place. Nested blocks restore the
    outer values on exit.
    """
    unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
    if unknown:
        raise TypeError(f"Unknown log context field(s): {', '.join(unknown)}")

    tokens = [
        (CONTEXT_FIELDS[name], CONTEXT_FIELDS[name].set(str(value)))
        for name, value in fields.items()
        if value is not None
    ]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def _attach(root: logging.Logger, handler: logging.Handler, context_filter: ContextFilter) -> None:
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    # Root-logger filters skip records propagated from child loggers.
    handler.addFilter(context_filter)
    root.addHandler(handler)


def configure_logging(
    log_file: str = "logs/clipflow.log",
    level: int = logging.INFO,
    enable_console: bool = False,
    force: bool = False,
) -> logging.Logger:
    """Install the file (and optional console) handler once per process; force=True replaces them."""
    root = logging.getLogger()
    if getattr(root, _CONFIGURED_FLAG, False) and not force:
        return root

    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    context_filter = ContextFilter()
    _attach(root, logging.FileHandler(log_path, encoding="utf-8"), context_filter)
    if enable_console:
        _attach(root, logging.StreamHandler(), context_filter)

    root.setLevel(level)
    logging.captureWarnings(True)
    setattr(root, _CONFIGURED_FLAG, True)
    return root


def setup_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
