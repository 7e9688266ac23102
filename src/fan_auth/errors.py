"""Error taxonomy for fan-auth.

Every error carries a stable ``kind`` string so that HTTP handlers, audit
records, and callers can report the failure without inspecting the class
hierarchy. All errors are terminal for the resolution or authentication
attempt that raised them; nothing in this package retries or downgrades a
failed trust decision on its own.
"""
from __future__ import annotations


class FANError(Exception):
    """Base class for all fan-auth errors.

    Parameters
    ----------
    message:
        Human-readable explanation of the failure.
    """

    kind: str = "FANError"

    def __init__(self, message: str = "") -> None:
        self.message = message or self.kind
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Identifier codec
# ---------------------------------------------------------------------------


class MalformedAddress(FANError):
    """Raised when an ``identifier@domain[:port]`` address cannot be parsed."""

    kind = "MalformedAddress"

    def __init__(self, raw: str, reason: str) -> None:
        self.raw = raw
        self.reason = reason
        super().__init__(f"Malformed address {raw!r}: {reason}")


class MalformedPort(MalformedAddress):
    """Raised when the port suffix of an address is not a valid 16-bit port."""

    kind = "MalformedPort"


class UnsupportedDid(FANError):
    """Raised when a DID cannot be used for the requested operation."""

    kind = "UnsupportedDid"


class UnsupportedMediaType(FANError):
    """Raised when a DID document serialization is not supported."""

    kind = "UnsupportedMediaType"

    def __init__(self, mime: str) -> None:
        self.mime = mime
        super().__init__(f"Unsupported DID document media type {mime!r}")


# ---------------------------------------------------------------------------
# Fetching and trust
# ---------------------------------------------------------------------------


class FetchFailed(FANError):
    """Raised when a document fetch fails at the transport or HTTP level."""

    kind = "FetchFailed"

    def __init__(self, url: str, reason: str, status: int | None = None) -> None:
        self.url = url
        self.reason = reason
        self.status = status
        super().__init__(f"Fetching {url} failed: {reason}")


class AgentDocumentUnreachable(FANError):
    """Raised when an Agent's ``/fan.did`` trust document cannot be fetched."""

    kind = "AgentDocumentUnreachable"


class AgentUntrusted(FANError):
    """Raised when an Agent's trust document fails self-signature verification."""

    kind = "AgentUntrusted"


class SubjectUntrusted(FANError):
    """Raised when a subject document is not signed by every required key."""

    kind = "SubjectUntrusted"


class NoVerificationMethods(FANError):
    """Raised when a required signer set is empty.

    An empty set never verifies vacuously.
    """

    kind = "NoVerificationMethods"


class DocumentNotFound(FANError):
    """Raised by document storage when no document exists for a name."""

    kind = "DocumentNotFound"


# ---------------------------------------------------------------------------
# Crypto gateway
# ---------------------------------------------------------------------------


class SignatureInvalid(FANError):
    """Raised when no acceptable signature validates a JWS."""

    kind = "SignatureInvalid"


class UnsupportedAlgorithm(FANError):
    """Raised when a key type has no supported JOSE algorithm."""

    kind = "UnsupportedAlgorithm"


class KeyNotFound(FANError):
    """Raised when a referenced verification method or key is missing."""

    kind = "KeyNotFound"


class DecryptionFailed(FANError):
    """Raised when a JWE cannot be decrypted with the supplied key."""

    kind = "DecryptionFailed"


# ---------------------------------------------------------------------------
# Challenge / response
# ---------------------------------------------------------------------------


class UnknownAttempt(FANError):
    """Raised when a response names an attempt that is absent or already resolved."""

    kind = "UnknownAttempt"


class AttemptExpired(UnknownAttempt):
    """Raised when a response arrives after its attempt expired.

    Subclasses :class:`UnknownAttempt` so that callers handle both the same way.
    """

    kind = "AttemptExpired"


class NonceMismatch(FANError):
    """Raised when the signed response carries a nonce other than the one issued."""

    kind = "NonceMismatch"


__all__ = [
    "AgentDocumentUnreachable",
    "AgentUntrusted",
    "AttemptExpired",
    "DecryptionFailed",
    "DocumentNotFound",
    "FANError",
    "FetchFailed",
    "KeyNotFound",
    "MalformedAddress",
    "MalformedPort",
    "NoVerificationMethods",
    "NonceMismatch",
    "SignatureInvalid",
    "SubjectUntrusted",
    "UnknownAttempt",
    "UnsupportedAlgorithm",
    "UnsupportedDid",
    "UnsupportedMediaType",
]
