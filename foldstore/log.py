"""
Logging setup.

Services log one JSON object per line with a Cloud Logging ``severity``;
the CLI uses a plain single-line format. Context is attached with
``logger.bind(stage=..., trace=...)`` and every bound field is emitted.
"""

from __future__ import annotations

import json
import sys
from typing import Any

from loguru import logger

_SEVERITY = {
    "TRACE": "DEBUG",
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "SUCCESS": "NOTICE",
    "WARNING": "WARNING",
    "ERROR": "ERROR",
    "CRITICAL": "CRITICAL",
}

_TEXT_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message} | {extra}"

_configured = False


def _json_sink(message: Any) -> None:
    record = message.record
    entry: dict[str, Any] = {
        "severity": _SEVERITY.get(record["level"].name, record["level"].name),
        "message": record["message"],
        "time": record["time"].isoformat(),
    }
    for key, value in record["extra"].items():
        entry.setdefault(key, value)
    if record["exception"] is not None:
        entry["exception"] = f"{record['exception'].type.__name__}: {record['exception'].value}"
    sys.stdout.write(json.dumps(entry, default=str) + "\n")
    sys.stdout.flush()


def _text_sink(message: Any) -> None:
    # Resolved per call so redirected streams are honored.
    sys.stderr.write(str(message))


def configure_logging(level: str = "INFO", *, json_logs: bool = True, force: bool = False) -> None:
    """
    Install the process-wide loguru sink once.

    Args:
        level: Minimum level name (DEBUG, INFO, ...)
        json_logs: Emit JSON lines instead of the text format
        force: Reconfigure even if already configured
    """
    global _configured
    if _configured and not force:
        return

    logger.remove()
    if json_logs:
        logger.add(_json_sink, level=level.upper(), backtrace=False, diagnose=False)
    else:
        logger.add(_text_sink, level=level.upper(), format=_TEXT_FORMAT, backtrace=False, diagnose=False)
    _configured = True


def cloud_trace(header: str | None, project: str | None) -> str | None:
    """
    Build a Cloud Logging trace resource from ``X-Cloud-Trace-Context``.

    The header looks like ``TRACE_ID/SPAN_ID;o=1``.
    """
    if not header or not project:
        return None
    trace_id = header.split("/", 1)[0].strip()
    if not trace_id:
        return None
    return f"projects/{project}/traces/{trace_id}"
