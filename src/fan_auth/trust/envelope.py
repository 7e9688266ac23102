"""Signed document envelope used by ``/fan.did`` and user lookup responses.

The JWS payload is a JSON object carrying the DID document bytes and the
media type they are serialized in::

    {"document": "<base64url(document bytes)>", "content-type": "application/json+did"}

Sealing signs the envelope with every supplied key; opening decodes the
envelope from an :class:`~fan_auth.crypto.gateway.UnverifiedJws` and is
safe to call before verification because the verifier decides trust from
the signatures, not from the envelope contents.
"""
from __future__ import annotations

import base64
import binascii
import json
from typing import Sequence

from jwcrypto import jwk
from jwcrypto.common import base64url_encode

from fan_auth.crypto.gateway import CryptoGateway, UnverifiedJws
from fan_auth.did.document import DIDDocument
from fan_auth.did.mime import JSON_MIME, codec_for

DOCUMENT_FIELD: str = "document"
CONTENT_TYPE_FIELD: str = "content-type"


def seal_document(
    document: DIDDocument,
    signing_keys: Sequence[jwk.JWK],
    gateway: CryptoGateway,
    content_type: str = JSON_MIME,
) -> str:
    """Serialize *document* as *content_type* and sign the envelope with every key."""
    return seal_bytes(document.to_bytes(content_type), content_type, signing_keys, gateway)


def seal_bytes(
    document_bytes: bytes,
    content_type: str,
    signing_keys: Sequence[jwk.JWK],
    gateway: CryptoGateway,
) -> str:
    """Sign an envelope around already-serialized document bytes."""
    codec_for(content_type)  # reject unknown media types before signing
    payload = {
        DOCUMENT_FIELD: base64url_encode(document_bytes),
        CONTENT_TYPE_FIELD: content_type,
    }
    body = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return gateway.sign_compact_jws(body, signing_keys)


def _b64decode(value: str) -> bytes:
    if "+" in value or "/" in value:
        return base64.b64decode(value, validate=True)
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def open_envelope(decoded: UnverifiedJws) -> DIDDocument:
    """Extract the DID document carried by an envelope.

    Raises
    ------
    ValueError
        If the payload is not an envelope or the document does not decode.
    UnsupportedMediaType
        If the envelope names an unsupported document media type.
    """
    try:
        envelope = json.loads(decoded.payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"Envelope payload is not JSON: {exc}") from exc
    if not isinstance(envelope, dict):
        raise ValueError("Envelope payload is not an object")

    encoded = envelope.get(DOCUMENT_FIELD)
    content_type = envelope.get(CONTENT_TYPE_FIELD)
    if not isinstance(encoded, str) or not isinstance(content_type, str):
        raise ValueError("Envelope needs string 'document' and 'content-type' members")
    try:
        raw = _b64decode(encoded)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"Envelope document is not base64: {exc}") from exc
    return DIDDocument.from_bytes(raw, content_type)


__all__ = [
    "CONTENT_TYPE_FIELD",
    "DOCUMENT_FIELD",
    "open_envelope",
    "seal_bytes",
    "seal_document",
]
