"""TrustVerifier — establishes the chain of custody for fetched DID documents.

Three trust roots are supported:

``verify_agent_self_signature``
    An Agent's ``/fan.did`` document must be signed by every method in its
    own ``authentication`` set (self-referential trust root).
``verify_subject_signature``
    A user document served by an Agent must be signed by every method in
    the *Agent's* ``authentication`` set.
``verify_sovereign``
    A sovereign document must be signed by every method in its own
    ``capabilityInvocation`` set. No third party vouches for it, so callers
    may additionally reject it by site policy.

An empty required-signer set always fails with
:class:`~fan_auth.errors.NoVerificationMethods`. The verifier performs no
network I/O; fetching is the resolver's job.
"""
from __future__ import annotations

import logging

from fan_auth.crypto.gateway import CryptoGateway, UnverifiedJws
from fan_auth.did.document import AUTHENTICATION, CAPABILITY_INVOCATION, DIDDocument, VerificationMethod
from fan_auth.errors import (
    AgentUntrusted,
    FANError,
    KeyNotFound,
    NoVerificationMethods,
    SignatureInvalid,
    SubjectUntrusted,
)
from fan_auth.trust.envelope import open_envelope

logger = logging.getLogger(__name__)


class TrustVerifier:
    """Verify signed DID document envelopes against their required signers.

    Parameters
    ----------
    gateway:
        The :class:`~fan_auth.crypto.gateway.CryptoGateway` used for all
        signature checks. A new one is created if not provided.
    """

    def __init__(self, gateway: CryptoGateway | None = None) -> None:
        self._gateway = gateway or CryptoGateway()

    @property
    def gateway(self) -> CryptoGateway:
        return self._gateway

    # ------------------------------------------------------------------
    # Trust roots
    # ------------------------------------------------------------------

    def verify_agent_self_signature(self, domain: str, fetched_jws: str | bytes) -> DIDDocument:
        """Verify an Agent trust document served for *domain*.

        Raises
        ------
        AgentUntrusted
            If the envelope is malformed, the document is not for *domain*,
            or any method in the document's own ``authentication`` set did
            not sign it.
        NoVerificationMethods
            If the document lists no ``authentication`` methods.
        """
        decoded, document = self._open(fetched_jws, AgentUntrusted)
        subject = document.subject_did
        if not subject.sovereign and subject.domain != domain:
            raise AgentUntrusted(
                f"Agent document {document.id} was served for domain {domain!r}"
            )
        required = self._required(document, AUTHENTICATION, AgentUntrusted)
        self._require_all(decoded, required, AgentUntrusted, f"Agent document for {domain}")
        logger.debug("Agent document for %s verified with %d signer(s)", domain, len(required))
        return document

    def verify_subject_signature(self, agent_doc: DIDDocument, fetched_jws: str | bytes) -> DIDDocument:
        """Verify a user document against the Agent's ``authentication`` set.

        Raises
        ------
        SubjectUntrusted
            If the envelope is malformed or any Agent authentication method
            did not sign it.
        NoVerificationMethods
            If the Agent document lists no ``authentication`` methods.
        """
        decoded, document = self._open(fetched_jws, SubjectUntrusted)
        required = self._required(agent_doc, AUTHENTICATION, SubjectUntrusted)
        self._require_all(decoded, required, SubjectUntrusted, f"Subject document {document.id}")
        logger.debug("Subject document %s verified against agent %s", document.id, agent_doc.id)
        return document

    def verify_sovereign(self, fetched_jws: str | bytes) -> DIDDocument:
        """Verify a self-certifying sovereign document.

        Raises
        ------
        SubjectUntrusted
            If the envelope is malformed, the document id is not a sovereign
            DID, or any of its ``capabilityInvocation`` methods did not sign.
        NoVerificationMethods
            If the document lists no ``capabilityInvocation`` methods.
        """
        decoded, document = self._open(fetched_jws, SubjectUntrusted)
        if not document.subject_did.sovereign:
            raise SubjectUntrusted(f"Document {document.id} is not a sovereign DID")
        required = self._required(document, CAPABILITY_INVOCATION, SubjectUntrusted)
        self._require_all(decoded, required, SubjectUntrusted, f"Sovereign document {document.id}")
        return document

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _open(
        self, fetched_jws: str | bytes, failure: type[FANError]
    ) -> tuple[UnverifiedJws, DIDDocument]:
        try:
            decoded = self._gateway.decode_jws(fetched_jws)
            document = open_envelope(decoded)
        except SignatureInvalid as exc:
            raise failure(str(exc)) from exc
        except (FANError, ValueError) as exc:
            raise failure(f"Unreadable document envelope: {exc}") from exc
        return decoded, document

    @staticmethod
    def _required(
        document: DIDDocument, relationship: str, failure: type[FANError]
    ) -> list[VerificationMethod]:
        try:
            methods = document.methods_for(relationship)
        except KeyNotFound as exc:
            raise failure(str(exc)) from exc
        if not methods:
            raise NoVerificationMethods(f"{document.id} lists no {relationship} methods")
        return methods

    def _require_all(
        self,
        decoded: UnverifiedJws,
        required: list[VerificationMethod],
        failure: type[FANError],
        label: str,
    ) -> None:
        missing: list[str] = []
        for method in required:
            try:
                signed = self._gateway.signed_by(decoded, method)
            except KeyNotFound:
                signed = False
            if not signed:
                missing.append(method.id)
        if missing:
            logger.info("%s rejected: missing signatures from %s", label, ", ".join(missing))
            raise failure(f"{label} lacks valid signatures from: {', '.join(missing)}")


__all__ = ["TrustVerifier"]
