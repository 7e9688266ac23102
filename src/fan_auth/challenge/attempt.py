"""Authentication attempts and the pending-attempt store.

An attempt starts ``PENDING`` and moves exactly once to ``SUCCEEDED``,
``FAILED`` or ``EXPIRED``. :class:`AttemptStore` enforces this with a
compare-and-set under a per-attempt lock, so concurrent responses to one
attempt produce a single outcome and every other caller sees
:class:`~fan_auth.errors.UnknownAttempt`.

Terminal records are kept for ``terminal_retention`` so that a replayed
response is reported as unknown; they are never re-validated.
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from fan_auth.did.document import DIDDocument
from fan_auth.errors import AttemptExpired, UnknownAttempt
from fan_auth.locks import KeyedLocks

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttemptStatus(str, Enum):
    """Lifecycle state of an authentication attempt."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def terminal(self) -> bool:
        return self is not AttemptStatus.PENDING


@dataclass(frozen=True)
class AuthenticationAttempt:
    """One issued challenge.

    Parameters
    ----------
    attempt_id:
        Opaque id chosen by the Web Site; unique per process.
    nonce:
        Random challenge bytes.
    subject_did:
        DID of the user being authenticated.
    subject_document:
        The verified document the challenge was encrypted against.
    issued_at:
        When the challenge was issued.
    expires_at:
        After this instant the attempt can only become ``EXPIRED``.
    status:
        Current state.
    resolved_at:
        When the attempt left ``PENDING``.
    """

    attempt_id: str
    nonce: bytes = field(repr=False)
    subject_did: str
    subject_document: DIDDocument = field(repr=False, compare=False)
    issued_at: datetime
    expires_at: datetime
    status: AttemptStatus = AttemptStatus.PENDING
    resolved_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or _utcnow()) >= self.expires_at

    def to_dict(self) -> dict[str, object]:
        """Serializable summary; the nonce is never included."""
        return {
            "attempt_id": self.attempt_id,
            "subject_did": self.subject_did,
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "status": self.status.value,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


class AttemptStore:
    """Per-attempt locked map with compare-and-set transitions.

    Parameters
    ----------
    terminal_retention:
        How long resolved attempts are kept before :meth:`sweep` drops them.
    clock:
        Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        terminal_retention: timedelta = timedelta(seconds=60),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._records: dict[str, AuthenticationAttempt] = {}
        self._locks = KeyedLocks()
        self._retention = terminal_retention
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add(self, attempt: AuthenticationAttempt) -> None:
        """Store a new attempt.

        Raises
        ------
        ValueError
            If an attempt with the same id is already stored.
        """
        with self._locks.hold(attempt.attempt_id):
            if attempt.attempt_id in self._records:
                raise ValueError(f"Attempt id {attempt.attempt_id!r} already in use")
            self._records[attempt.attempt_id] = attempt

    def pending(self, attempt_id: str, now: Optional[datetime] = None) -> AuthenticationAttempt:
        """Return the attempt if it can still be answered.

        An attempt found past its expiry is moved to ``EXPIRED`` here.

        Raises
        ------
        UnknownAttempt
            If the id is absent or the attempt is already terminal.
        AttemptExpired
            If the attempt has just expired.
        """
        moment = now or self._clock()
        with self._locks.hold(attempt_id):
            return self._check_pending(attempt_id, moment)

    def transition(
        self,
        attempt_id: str,
        new_status: AttemptStatus,
        now: Optional[datetime] = None,
    ) -> AuthenticationAttempt:
        """Compare-and-set ``PENDING -> new_status``.

        Raises
        ------
        UnknownAttempt
            If the attempt is absent or no longer pending.
        AttemptExpired
            If the attempt expired before this transition.
        ValueError
            If *new_status* is ``PENDING``.
        """
        if new_status is AttemptStatus.PENDING:
            raise ValueError("Attempts cannot transition back to PENDING")
        moment = now or self._clock()
        with self._locks.hold(attempt_id):
            current = self._check_pending(attempt_id, moment)
            updated = dataclasses.replace(current, status=new_status, resolved_at=moment)
            self._records[attempt_id] = updated
        logger.debug("Attempt %s -> %s", attempt_id, new_status.value)
        return updated

    def _check_pending(self, attempt_id: str, moment: datetime) -> AuthenticationAttempt:
        current = self._records.get(attempt_id)
        if current is None or current.status.terminal:
            raise UnknownAttempt(f"No pending attempt {attempt_id!r}")
        if current.is_expired(moment):
            self._records[attempt_id] = dataclasses.replace(
                current, status=AttemptStatus.EXPIRED, resolved_at=moment
            )
            raise AttemptExpired(f"Attempt {attempt_id!r} expired at {current.expires_at.isoformat()}")
        return current

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Drop expired pending attempts and terminal records past retention.

        Returns
        -------
        int
            Number of records removed.
        """
        moment = now or self._clock()
        removed = 0
        for attempt_id in list(self._records):
            with self._locks.hold(attempt_id):
                record = self._records.get(attempt_id)
                if record is None:
                    continue
                if record.status.terminal:
                    done_at = record.resolved_at or record.expires_at
                    drop = moment - done_at >= self._retention
                else:
                    drop = record.is_expired(moment)
                if drop:
                    del self._records[attempt_id]
                    removed += 1
        if removed:
            logger.debug("Swept %d attempt record(s)", removed)
        return removed

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def get(self, attempt_id: str) -> AuthenticationAttempt | None:
        return self._records.get(attempt_id)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, attempt_id: object) -> bool:
        return attempt_id in self._records


__all__ = ["AttemptStatus", "AttemptStore", "AuthenticationAttempt"]
