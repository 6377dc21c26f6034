"""Security utilities: input sanitization, PII redaction, audit logging."""
import json
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

log = structlog.get_logger()


# --- Input Sanitization ---

_TAG_RE = re.compile(r"<[^>]*>")
_SCRIPT_STYLE_RE = re.compile(r"<(script|style)[^>]*?>.*?</\1>", re.IGNORECASE | re.DOTALL)
_OCTET_RE = re.compile(r"%[a-fA-F0-9]{2}")
_WHITESPACE_RE = re.compile(r"[\r\n\t ]+")
_KEY_RE = re.compile(r"[^a-z0-9_\-]")


def sanitize_text_field(value: Any) -> str:
    """Reduce user input to a single line of plain text.

    Drops script/style blocks with their content, strips remaining tags and
    percent-encoded octets, and collapses whitespace.
    """
    if value is None:
        return ""
    text = str(value)
    text = _SCRIPT_STYLE_RE.sub("", text)
    text = _TAG_RE.sub("", text)
    text = text.replace("<", "&lt;")
    text = _OCTET_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text)
    return text.strip()


def sanitize_key(key: str) -> str:
    """Lowercase alphanumerics, dashes and underscores only."""
    return _KEY_RE.sub("", str(key).lower())


# --- PII Redaction (Simple Pattern-Based) ---

PII_PATTERNS = {
    "email": r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b",
    "phone": r"\b(\+\d{1,2}\s?)?(\d{3}[-.\s]??\d{3}[-.\s]??\d{4}|\(\d{3}\)\s*\d{3}[-.\s]??\d{4})\b",
}


def redact_pii_simple(text: str) -> str:
    redacted = text
    for pii_type, pattern in PII_PATTERNS.items():
        redacted = re.sub(pattern, f"[{pii_type.upper()}_REDACTED]", redacted, flags=re.IGNORECASE)
    return redacted


def sanitize_for_logging(data: Any, max_length: int = 500) -> str:
    """Sanitize data for safe logging (redact PII, truncate)."""
    try:
        text = json.dumps(data) if not isinstance(data, str) else data
    except (TypeError, ValueError):
        return "[UNSERIALIZABLE]"
    redacted = redact_pii_simple(text)
    if len(redacted) > max_length:
        redacted = redacted[:max_length] + "... [truncated]"
    return redacted


# --- Audit Logging ---


def audit_log_dir() -> Path:
    return Path(os.getenv("AUDIT_LOG_DIR", "audit_logs"))


def log_audit_event(
    event_type: str,
    submission_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Append an audit record to the daily JSONL file.

    Audit logging must never break intake, so write failures are logged and dropped.
    """
    timestamp = datetime.utcnow()
    audit_record = {
        "timestamp": timestamp.isoformat(),
        "event_type": event_type,
        "submission_id": submission_id,
        "metadata": metadata or {},
    }
    try:
        directory = audit_log_dir()
        directory.mkdir(parents=True, exist_ok=True)
        log_file = directory / f"audit_{timestamp.strftime('%Y-%m-%d')}.jsonl"
        with open(log_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(audit_record) + "\n")
    except OSError as exc:
        log.error("audit_log_failed", event_type=event_type, error=str(exc))
        return
    log.info("audit_logged", event_type=event_type, submission_id=submission_id)
