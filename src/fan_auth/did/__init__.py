"""fan_auth.did — addresses, ``did:fan`` identifiers, and DID documents.

Submodules
----------
identifier
    Address / DID value objects and the pure codec between addresses,
    DIDs, and lookup URLs.
document
    DIDDocument and VerificationMethod.
mime
    Per-media-type document codecs (JSON, JSON-LD, CBOR).

Quick start
-----------
::

    from fan_auth.did import parse_address, address_to_did, did_to_lookup_url

    address = parse_address("alice@fan.example.org")
    did = address_to_did(address)
    str(did)                 # 'did:fan:fan.example.org:alice'
    did_to_lookup_url(did)   # 'https://fan.example.org/did-fan/user/alice.did'
"""
from __future__ import annotations

from fan_auth.did.document import (
    ASSERTION_METHOD,
    AUTHENTICATION,
    CAPABILITY_INVOCATION,
    DIDDocument,
    VerificationMethod,
)
from fan_auth.did.identifier import (
    DID,
    DID_METHOD,
    SOVEREIGN_DOMAIN,
    Address,
    address_to_did,
    address_to_sovereign_did,
    agent_trust_url,
    did_to_lookup_url,
    parse_address,
    parse_did,
)
from fan_auth.did.mime import (
    CBOR_MIME,
    JOSE_MIME,
    JSON_MIME,
    JSONLD_MIME,
    codec_for,
    negotiate,
)

__all__ = [
    # identifier
    "Address",
    "DID",
    "DID_METHOD",
    "SOVEREIGN_DOMAIN",
    "address_to_did",
    "address_to_sovereign_did",
    "agent_trust_url",
    "did_to_lookup_url",
    "parse_address",
    "parse_did",
    # document
    "ASSERTION_METHOD",
    "AUTHENTICATION",
    "CAPABILITY_INVOCATION",
    "DIDDocument",
    "VerificationMethod",
    # mime
    "CBOR_MIME",
    "JOSE_MIME",
    "JSONLD_MIME",
    "JSON_MIME",
    "codec_for",
    "negotiate",
]
