"""ChallengeAuthenticator — the Web Site side of challenge/response login.

``issue`` encrypts a fresh random nonce to every ``authentication`` key of
a verified subject document. Only a holder of one of those private keys
can read it. ``respond`` accepts the User's signed echo of the nonce,
checks the signature against the same key set (any one valid signature
suffices) and compares the nonce byte-for-byte. A response nobody in the
key set signed is rejected without touching the attempt; a signed response
with the wrong nonce fails it.

Each attempt resolves exactly once. A second response, whether replayed
or concurrent, is rejected with :class:`~fan_auth.errors.UnknownAttempt`.
"""
from __future__ import annotations

import hmac
import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional

from jwcrypto import jwk

from fan_auth.audit import AuthenticationAuditLogger
from fan_auth.challenge.attempt import AttemptStatus, AttemptStore, AuthenticationAttempt
from fan_auth.challenge.payload import ChallengePayload
from fan_auth.config import FANSettings
from fan_auth.crypto.gateway import CryptoGateway
from fan_auth.crypto.keys import key_id, wrapping_algorithm
from fan_auth.did.document import AUTHENTICATION, DIDDocument
from fan_auth.errors import (
    FANError,
    NoVerificationMethods,
    NonceMismatch,
    SignatureInvalid,
    UnknownAttempt,
    UnsupportedAlgorithm,
)

logger = logging.getLogger(__name__)

_MAX_SWEEP_INTERVAL = timedelta(seconds=30)


class ChallengeAuthenticator:
    """Issue challenges and verify responses.

    Parameters
    ----------
    gateway:
        JOSE gateway; a default one is created if omitted.
    store:
        Pending-attempt store; a fresh one is created if omitted.
    settings:
        Policy settings (nonce size, attempt TTL, retention).
    audit:
        Optional audit logger.

    Example
    -------
    ::

        authenticator = ChallengeAuthenticator()
        attempt, jwe = authenticator.issue(subject_document)
        # ... relay jwe to the user, receive their signed jws ...
        result = authenticator.respond(jws)
        assert result.status is AttemptStatus.SUCCEEDED
    """

    def __init__(
        self,
        gateway: CryptoGateway | None = None,
        store: AttemptStore | None = None,
        settings: FANSettings | None = None,
        audit: AuthenticationAuditLogger | None = None,
    ) -> None:
        self._settings = settings or FANSettings()
        self._gateway = gateway or CryptoGateway()
        self._store = store if store is not None else AttemptStore(
            terminal_retention=self._settings.terminal_retention
        )
        self._audit = audit
        self._sweep_interval = min(self._settings.attempt_ttl, _MAX_SWEEP_INTERVAL)
        self._last_sweep: Optional[datetime] = None

    @property
    def store(self) -> AttemptStore:
        return self._store

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue(self, subject_document: DIDDocument) -> tuple[AuthenticationAttempt, str]:
        """Create an attempt and its JWE challenge for *subject_document*.

        Returns
        -------
        tuple[AuthenticationAttempt, str]
            The stored ``PENDING`` attempt and the JWE to relay to the user.

        Raises
        ------
        NoVerificationMethods
            If the document lists no ``authentication`` methods.
        KeyNotFound
            If a referenced method is missing or its key is unusable.
        UnsupportedAlgorithm
            If none of the keys can be used as a JWE recipient. Keys that
            cannot receive a JWE (Ed25519) are skipped when others can.
        """
        methods = subject_document.methods_for(AUTHENTICATION)
        if not methods:
            raise NoVerificationMethods(f"{subject_document.id} lists no authentication methods")
        keys = self._recipients(subject_document.id, self._gateway.keys_for(methods))

        now = self._store.now()
        self._maybe_sweep(now)

        nonce = secrets.token_bytes(self._settings.nonce_bytes)
        attempt = self._new_attempt(subject_document, nonce, now)
        payload = ChallengePayload.for_nonce(nonce, attempt.attempt_id)
        jwe = self._gateway.encrypt_to_key_set(payload.to_bytes(), keys)

        self._store.add(attempt)
        logger.info("Issued challenge %s for %s", attempt.attempt_id, attempt.subject_did)
        if self._audit is not None:
            self._audit.log_challenge_issued(attempt.subject_did, attempt.attempt_id, len(keys))
        return attempt, jwe

    @staticmethod
    def _recipients(subject_did: str, keys: list[jwk.JWK]) -> list[jwk.JWK]:
        recipients: list[jwk.JWK] = []
        for key in keys:
            try:
                wrapping_algorithm(key)
            except UnsupportedAlgorithm:
                logger.debug("Skipping key %s of %s: cannot receive a JWE", key_id(key), subject_did)
                continue
            recipients.append(key)
        if not recipients:
            raise UnsupportedAlgorithm(f"No authentication key of {subject_did} can receive a JWE")
        return recipients

    def _new_attempt(
        self, subject_document: DIDDocument, nonce: bytes, now: datetime
    ) -> AuthenticationAttempt:
        attempt_id = uuid.uuid4().hex
        while attempt_id in self._store:
            attempt_id = uuid.uuid4().hex
        return AuthenticationAttempt(
            attempt_id=attempt_id,
            nonce=nonce,
            subject_did=subject_document.id,
            subject_document=subject_document,
            issued_at=now,
            expires_at=now + self._settings.attempt_ttl,
        )

    # ------------------------------------------------------------------
    # Respond
    # ------------------------------------------------------------------

    def respond(self, jws: str | bytes) -> AuthenticationAttempt:
        """Verify the User's signed response.

        Returns
        -------
        AuthenticationAttempt
            The attempt in state ``SUCCEEDED``.

        Raises
        ------
        UnknownAttempt
            If the response names no pending attempt (absent, replayed,
            already resolved, or malformed payload).
        AttemptExpired
            If the attempt expired; a subclass of :class:`UnknownAttempt`.
        SignatureInvalid
            If no subject authentication key signed the response. The
            attempt stays ``PENDING``.
        NonceMismatch
            If the echoed nonce differs. The attempt becomes ``FAILED``.
        """
        decoded = self._gateway.decode_jws(jws)
        try:
            payload = ChallengePayload.from_bytes(decoded.payload)
        except ValueError as exc:
            self._record(None, None, exc_kind=UnknownAttempt.kind)
            raise UnknownAttempt(f"Response does not name an attempt: {exc}") from exc

        attempt_id = payload.identifier
        try:
            attempt = self._store.pending(attempt_id)
        except UnknownAttempt as exc:
            self._record(None, attempt_id, exc_kind=exc.kind)
            raise

        try:
            methods = attempt.subject_document.methods_for(AUTHENTICATION)
            if not self._gateway.verify_any(decoded, methods):
                # Attempt stays pending until a key holder answers.
                raise SignatureInvalid(
                    f"Response to {attempt_id} is not signed by any authentication key of "
                    f"{attempt.subject_did}"
                )

            echoed = payload.nonce()
            if echoed is None or not hmac.compare_digest(echoed, attempt.nonce):
                self._fail(attempt)
                raise NonceMismatch(f"Response to {attempt_id} carries the wrong nonce")

            result = self._store.transition(attempt_id, AttemptStatus.SUCCEEDED)
        except FANError as exc:
            self._record(attempt.subject_did, attempt_id, exc_kind=exc.kind)
            raise

        logger.info("Attempt %s succeeded for %s", attempt_id, attempt.subject_did)
        self._record(attempt.subject_did, attempt_id)
        return result

    def _fail(self, attempt: AuthenticationAttempt) -> None:
        # Losing the race to another response surfaces as UnknownAttempt.
        self._store.transition(attempt.attempt_id, AttemptStatus.FAILED)

    def _record(
        self,
        subject: Optional[str],
        attempt_id: Optional[str],
        exc_kind: Optional[str] = None,
    ) -> None:
        if exc_kind is not None:
            logger.info("Response to attempt %s rejected: %s", attempt_id, exc_kind)
        if self._audit is None:
            return
        self._audit.log_auth_result(
            subject or "unknown",
            attempt_id,
            success=exc_kind is None,
            error_kind=exc_kind,
        )

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Drop expired and aged-out attempts; returns how many were removed."""
        moment = now or self._store.now()
        self._last_sweep = moment
        return self._store.sweep(moment)

    def _maybe_sweep(self, now: datetime) -> None:
        if self._last_sweep is None:
            self._last_sweep = now
            return
        if now - self._last_sweep >= self._sweep_interval:
            self.sweep(now)


__all__ = ["ChallengeAuthenticator"]
