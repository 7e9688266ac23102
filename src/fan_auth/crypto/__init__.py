"""JOSE gateway and JWK helpers.

Submodules
----------
gateway
    CryptoGateway: sign, decode (unverified), verify, encrypt, decrypt.
keys
    JWK generation / loading and algorithm selection per key type.

Quick start
-----------
::

    from fan_auth.crypto import CryptoGateway, generate_signing_jwk

    key = generate_signing_jwk("P-256")
    gateway = CryptoGateway()
    token = gateway.sign_compact_jws(b"hello", [key])
"""
from __future__ import annotations

from fan_auth.crypto.gateway import CryptoGateway, JwsSignature, UnverifiedJws
from fan_auth.crypto.keys import (
    SUPPORTED_CURVES,
    generate_signing_jwk,
    key_id,
    load_jwk,
    load_jwks,
    public_jwk,
    signing_algorithm,
    wrapping_algorithm,
)

__all__ = [
    "CryptoGateway",
    "JwsSignature",
    "SUPPORTED_CURVES",
    "UnverifiedJws",
    "generate_signing_jwk",
    "key_id",
    "load_jwk",
    "load_jwks",
    "public_jwk",
    "signing_algorithm",
    "wrapping_algorithm",
]
