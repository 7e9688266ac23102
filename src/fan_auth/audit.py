"""AuthenticationAuditLogger — JSONL audit trail for resolution and login events.

Every challenge issued, every response accepted or rejected, and every
document resolution outcome is appended as one JSON line. Nonces and key
material are never written; attempts are referred to by id only.

Without a file path the logger keeps lines in an in-memory buffer that can
be drained via :meth:`AuthenticationAuditLogger.drain_buffer`.
"""
from __future__ import annotations

import datetime
import json
import threading
from dataclasses import dataclass, field
from pathlib import Path

CHALLENGE_ISSUED = "challenge_issued"
AUTH_SUCCESS = "auth_success"
AUTH_FAILURE = "auth_failure"
DOCUMENT_RESOLVED = "document_resolved"
RESOLUTION_FAILED = "resolution_failed"


@dataclass
class AuditEvent:
    """A single auditable event.

    Parameters
    ----------
    event_type:
        One of the module-level event names (e.g. ``"auth_success"``).
    subject:
        The DID or address the event concerns.
    details:
        Additional JSON-serializable metadata.
    timestamp:
        UTC datetime of the event. Defaults to now.
    """

    event_type: str
    subject: str
    details: dict[str, object] = field(default_factory=dict)
    timestamp: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type,
            "subject": self.subject,
            "details": self.details,
        }


class AuthenticationAuditLogger:
    """Append-only, thread-safe JSONL audit logger.

    Parameters
    ----------
    log_path:
        JSONL file to append to; parent directories are created. ``None``
        keeps events in memory.
    """

    def __init__(self, log_path: Path | None = None) -> None:
        self._log_path = log_path
        self._buffer: list[str] = []
        self._lock = threading.Lock()

        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Core logging
    # ------------------------------------------------------------------

    def log(self, event: AuditEvent) -> None:
        line = json.dumps(event.to_dict(), separators=(",", ":"), default=str)
        with self._lock:
            if self._log_path is not None:
                with self._log_path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
            else:
                self._buffer.append(line)

    def log_event(self, event_type: str, subject: str, **details: object) -> None:
        self.log(AuditEvent(event_type=event_type, subject=subject, details=dict(details)))

    # ------------------------------------------------------------------
    # Domain events
    # ------------------------------------------------------------------

    def log_challenge_issued(self, subject: str, attempt_id: str, recipients: int) -> None:
        self.log_event(CHALLENGE_ISSUED, subject, attempt_id=attempt_id, recipients=recipients)

    def log_auth_result(
        self,
        subject: str,
        attempt_id: str | None,
        success: bool,
        error_kind: str | None = None,
    ) -> None:
        """Log an ``auth_success`` or ``auth_failure`` event."""
        details: dict[str, object] = {"attempt_id": attempt_id}
        if error_kind is not None:
            details["error"] = error_kind
        self.log_event(AUTH_SUCCESS if success else AUTH_FAILURE, subject, **details)

    def log_resolution(
        self,
        subject: str,
        success: bool,
        error_kind: str | None = None,
        **details: object,
    ) -> None:
        """Log a ``document_resolved`` or ``resolution_failed`` event."""
        if error_kind is not None:
            details["error"] = error_kind
        self.log_event(DOCUMENT_RESOLVED if success else RESOLUTION_FAILED, subject, **details)

    # ------------------------------------------------------------------
    # Buffer access
    # ------------------------------------------------------------------

    def drain_buffer(self) -> list[str]:
        """Return and clear the in-memory buffer (oldest first)."""
        with self._lock:
            events = list(self._buffer)
            self._buffer.clear()
        return events

    def read_log(self, tail: int | None = None) -> list[dict[str, object]]:
        """Read recorded events, optionally only the last *tail* of them.

        Lines that are not valid JSON are skipped.
        """
        with self._lock:
            if self._log_path is None or not self._log_path.exists():
                lines = list(self._buffer)
            else:
                lines = self._log_path.read_text(encoding="utf-8").splitlines()

        parsed: list[dict[str, object]] = []
        for line in lines:
            stripped = line.strip()
            if not stripped:
                continue
            try:
                parsed.append(json.loads(stripped))
            except json.JSONDecodeError:
                continue

        if tail is not None:
            return parsed[-tail:]
        return parsed


__all__ = [
    "AUTH_FAILURE",
    "AUTH_SUCCESS",
    "AuditEvent",
    "AuthenticationAuditLogger",
    "CHALLENGE_ISSUED",
    "DOCUMENT_RESOLVED",
    "RESOLUTION_FAILED",
]
