"""
MediMind logging - one log file per session.

Library modules log through ``logging.getLogger(__name__)`` and stay silent
until a host (the CLI or an embedding application) calls
:func:`setup_logging`.  Each session then writes to
``<log_dir>/medimind_<timestamp>_<session>.log``, and ``medimind.log`` in the
same directory points at the newest file.

``MEDIMIND_LOG_DIR`` overrides the directory, ``MEDIMIND_LOG_LEVEL`` the
level.  Prompts and raw model answers are logged at DEBUG only, since they
may carry patient data.
"""

from __future__ import annotations

import logging
import os
import sys
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

ROOT_LOGGER = "medimind"
LATEST_LINK = "medimind.log"

_FILE_FORMAT = "%(asctime)s %(levelname)-7s [%(session_id)s] %(name)s:%(lineno)d %(message)s"
_STREAM_FORMAT = "%(levelname)-7s [%(session_id)s] %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_session_id: Optional[str] = None
_log_file: Optional[Path] = None


class _SessionTag(logging.Filter):
    """Stamp every record passing through a handler with the session id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = _session_id or "-"  # type: ignore[attr-defined]
        return True


def get_log_directory() -> Path:
    override = os.getenv("MEDIMIND_LOG_DIR")
    if override:
        return Path(override)
    from medimind.config import get_config

    return get_config().log_dir


def _point_latest_link(directory: Path, target: Path) -> None:
    link = directory / LATEST_LINK
    try:
        if link.is_symlink() or link.exists():
            link.unlink()
        link.symlink_to(target.name)
    except OSError as exc:
        # Unprivileged Windows accounts cannot create symlinks.
        logging.getLogger(ROOT_LOGGER).debug("latest-log link not updated: %s", exc)


def _handler(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.addFilter(_SessionTag())
    handler.setFormatter(logging.Formatter(fmt, _DATE_FORMAT))
    return handler


def setup_logging(
    level: Optional[str] = None,
    log_dir: Optional[Path] = None,
    console_output: bool = False,
) -> Path:
    """Start a new logging session and return its log file.

    Replaces any handlers a previous session installed on the ``medimind``
    logger.  ``level`` falls back to ``MEDIMIND_LOG_LEVEL`` and then INFO.
    """
    global _session_id, _log_file

    level_name = (level or os.getenv("MEDIMIND_LOG_LEVEL") or "INFO").upper()
    numeric = getattr(logging, level_name, logging.INFO)

    directory = Path(log_dir) if log_dir is not None else get_log_directory()
    directory.mkdir(parents=True, exist_ok=True)

    _session_id = uuid.uuid4().hex[:6]
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    _log_file = directory / f"medimind_{stamp}_{_session_id}.log"

    root = logging.getLogger(ROOT_LOGGER)
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    root.setLevel(numeric)
    root.propagate = False
    root.addHandler(_handler(logging.FileHandler(_log_file, encoding="utf-8"), numeric, _FILE_FORMAT))
    if console_output:
        root.addHandler(_handler(logging.StreamHandler(sys.stderr), numeric, _STREAM_FORMAT))

    _point_latest_link(directory, _log_file)
    root.info("session started level=%s file=%s", level_name, _log_file)
    return _log_file


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``medimind`` namespace."""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def get_current_log_file() -> Optional[Path]:
    return _log_file


def get_session_id() -> Optional[str]:
    return _session_id


# -- structured helpers --------------------------------------------------------


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}\n[... clipped, {len(text)} chars in full]"


def log_extraction_start(
    logger: logging.Logger,
    document_type: str,
    payload_description: str,
    model: str,
) -> None:
    logger.info("extraction start type=%s model=%s payload=%s", document_type, model, payload_description)


def log_prompt(logger: logging.Logger, document_type: str, prompt: str, truncate_at: int = 2000) -> None:
    """Log the composed prompt for ``document_type`` (DEBUG, clipped)."""
    logger.debug("prompt type=%s\n%s", document_type, _clip(prompt, truncate_at))


def log_llm_response(logger: logging.Logger, document_type: str, answer: str, truncate_at: int = 2000) -> None:
    """Log the raw model answer for ``document_type`` (DEBUG, clipped)."""
    logger.debug("model answer type=%s\n%s", document_type, _clip(answer, truncate_at))


def log_extraction_complete(
    logger: logging.Logger,
    document_type: str,
    status: str,
    total_duration: Optional[float] = None,
    records: Optional[int] = None,
) -> None:
    parts = [f"extraction done type={document_type}", f"status={status}"]
    if total_duration is not None:
        parts.append(f"duration={total_duration:.2f}s")
    if records is not None:
        parts.append(f"records={records}")
    logger.info(" ".join(parts))
