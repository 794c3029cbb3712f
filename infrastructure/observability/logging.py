"""
Logging setup with contextvars-based metadata injection.

- Adds session and taxonomy tags into every log line (via contextvars).
- Supports console-only logging OR console + rotating file logs.
- Tunes noisy third-party library loggers (httpx, httpcore, opik).
"""

import contextvars
import hashlib
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Context variables for dynamic log metadata
cv_session_tag = contextvars.ContextVar("session_tag", default="-")
cv_taxonomy = contextvars.ContextVar("taxonomy", default="-")

# Optional: keep full IDs in context for metadata (not printed every line)
cv_session_id_full = contextvars.ContextVar("session_id_full", default="-")
cv_record = contextvars.ContextVar("record", default="-")


def make_session_tag(session_id_full: str, length: int = 8) -> str:
    """
    Stable short tag derived from the full session id.
    Uses BLAKE2s so tags stay short but distinct across runs.
    """
    h = hashlib.blake2s(session_id_full.encode("utf-8"), digest_size=8).hexdigest()
    return h[:length]


class ContextInjectFilter(logging.Filter):
    """Inject context variables into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.session = cv_session_tag.get() or "-"
        record.taxonomy = cv_taxonomy.get() or "-"
        return True


def set_log_context(
    *,
    session_id: str | None = None,
    taxonomy_key: str | None = None,
    record_id: str | None = None,
) -> None:
    """Update logging context (task-safe via contextvars)."""
    if session_id is not None:
        cv_session_id_full.set(str(session_id))
        cv_session_tag.set(make_session_tag(str(session_id)))

    if taxonomy_key is not None:
        cv_taxonomy.set(str(taxonomy_key))

    if record_id is not None:
        cv_record.set(str(record_id))


def get_log_context() -> dict[str, str]:
    """
    Return the current context in a convenient dict form.

    Useful for trace metadata and debugging/log correlation.
    """
    return {
        "session_tag": str(cv_session_tag.get() or "-"),
        "session_id_full": str(cv_session_id_full.get() or "-"),
        "taxonomy": str(cv_taxonomy.get() or "-"),
        "record": str(cv_record.get() or "-"),
    }


def clear_taxonomy_context() -> None:
    """Reset taxonomy context to default (keep session info)."""
    cv_taxonomy.set("-")


def configure_logging(
    *,
    log_file: Path | None = None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    max_bytes: int = 10_000_000,  # 10MB
    backup_count: int = 5,
) -> None:
    """
    Configure application logging with contextvars support.

    Args:
        log_file: Path to log file
        console_level: Minimum level for console output (default: INFO)
        file_level: Minimum level for file output (default: DEBUG)
        max_bytes: Max log file size before rotation
        backup_count: Number of backup files to keep
    """
    # Clear existing handlers to avoid duplicate logs if called multiple times
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)  # keep root permissive; handlers enforce levels

    # Formatter includes context fields injected by ContextInjectFilter
    console_fmt = "%(asctime)s [%(levelname)s] s=%(session)s t=%(taxonomy)s | %(message)s"
    file_fmt = "%(asctime)s [%(levelname)s] %(name)s | s=%(session)s t=%(taxonomy)s | %(message)s"

    console_formatter = logging.Formatter(console_fmt, datefmt="%H:%M:%S")
    file_formatter = logging.Formatter(file_fmt, datefmt="%Y-%m-%d %H:%M:%S")

    ctx_filter = ContextInjectFilter()

    # Console handler (human-readable, INFO+)
    ch = logging.StreamHandler()
    ch.setLevel(console_level)
    ch.setFormatter(console_formatter)
    ch.addFilter(ctx_filter)
    root.addHandler(ch)

    # File handler (detailed, DEBUG+, with rotation)
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        fh.setLevel(file_level)
        fh.setFormatter(file_formatter)
        fh.addFilter(ctx_filter)
        root.addHandler(fh)

    # Reduce noise from HTTP libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    # Keep opik at INFO (useful for debugging traces)
    logging.getLogger("opik").setLevel(logging.INFO)

    logging.getLogger(__name__).info(
        "Logging configured (console_level=%s, file=%s)",
        logging.getLevelName(console_level),
        str(log_file) if log_file is not None else "None",
    )
