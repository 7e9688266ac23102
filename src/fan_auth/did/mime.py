"""DID document serializations keyed by MIME type.

Each supported media type maps to a :class:`DocumentCodec` that turns a
plain dictionary into bytes and back. Selection is a table lookup on the
MIME string; nothing inspects the payload to guess its format.

=========================  =====================================
MIME type                  Codec
=========================  =====================================
``application/json+did``   JSON
``application/jsonld+did`` JSON with a required ``@context``
``application/cbor+did``   CBOR (``cbor2``)
=========================  =====================================
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Callable

import cbor2

from fan_auth.errors import UnsupportedMediaType

JOSE_MIME: str = "application/jose"
JSON_MIME: str = "application/json+did"
JSONLD_MIME: str = "application/jsonld+did"
CBOR_MIME: str = "application/cbor+did"

DID_CONTEXT: str = "https://www.w3.org/ns/did/v1"


def _json_encode(data: dict[str, object]) -> bytes:
    return json.dumps(data, separators=(",", ":"), sort_keys=True).encode("utf-8")


def _json_decode(raw: bytes) -> dict[str, object]:
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"Invalid JSON DID document: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("DID document must be a JSON object")
    return data


def _jsonld_encode(data: dict[str, object]) -> bytes:
    body = dict(data)
    body.setdefault("@context", [DID_CONTEXT])
    return _json_encode(body)


def _jsonld_decode(raw: bytes) -> dict[str, object]:
    data = _json_decode(raw)
    if "@context" not in data:
        raise ValueError("JSON-LD DID document is missing '@context'")
    return data


def _cbor_encode(data: dict[str, object]) -> bytes:
    return cbor2.dumps(data, canonical=True)


def _cbor_decode(raw: bytes) -> dict[str, object]:
    try:
        data = cbor2.loads(raw)
    except cbor2.CBORDecodeError as exc:
        raise ValueError(f"Invalid CBOR DID document: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("DID document must be a CBOR map")
    return data


@dataclass(frozen=True)
class DocumentCodec:
    """Encoder/decoder pair for one DID document media type."""

    mime: str
    encode: Callable[[dict[str, object]], bytes]
    decode: Callable[[bytes], dict[str, object]]


CODECS: dict[str, DocumentCodec] = {
    JSON_MIME: DocumentCodec(JSON_MIME, _json_encode, _json_decode),
    JSONLD_MIME: DocumentCodec(JSONLD_MIME, _jsonld_encode, _jsonld_decode),
    CBOR_MIME: DocumentCodec(CBOR_MIME, _cbor_encode, _cbor_decode),
}


def codec_for(mime: str) -> DocumentCodec:
    """Return the codec registered for *mime*.

    Parameters are stripped (``application/json+did; charset=utf-8`` is
    accepted).

    Raises
    ------
    UnsupportedMediaType
        If no codec is registered for the media type.
    """
    base = mime.split(";", 1)[0].strip().lower()
    try:
        return CODECS[base]
    except KeyError:
        raise UnsupportedMediaType(mime) from None


def negotiate(accept: str | None) -> str:
    """Pick a DID document media type from an HTTP ``Accept`` header.

    The first listed supported type wins; ``*/*``, an absent header, or a
    header naming only unsupported types select ``application/json+did``.
    """
    if not accept:
        return JSON_MIME
    for candidate in accept.split(","):
        base = candidate.split(";", 1)[0].strip().lower()
        if base in CODECS:
            return base
    return JSON_MIME


__all__ = [
    "CBOR_MIME",
    "CODECS",
    "DID_CONTEXT",
    "DocumentCodec",
    "JOSE_MIME",
    "JSONLD_MIME",
    "JSON_MIME",
    "codec_for",
    "negotiate",
]
