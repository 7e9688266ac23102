"""fan-auth — Federated Authentication Network core engine.

Maps ``identifier@domain`` addresses to ``did:fan`` DIDs, resolves and
verifies the DID documents Agents publish, and authenticates users with a
JWE challenge / JWS response exchange.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import fan_auth
>>> fan_auth.__version__
'0.1.0'

Quick start
-----------
::

    from fan_auth import ChallengeAuthenticator, HttpxFetcher, Resolver, answer_challenge

    with HttpxFetcher() as fetcher:
        document = Resolver(fetcher).resolve("alice@fan.example.org")

    authenticator = ChallengeAuthenticator()
    attempt, jwe = authenticator.issue(document)
    jws = answer_challenge(jwe, alice_private_key)      # on the user's side
    authenticator.respond(jws)                           # SUCCEEDED
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ------------------------------------------------------------------
# Identifiers and documents
# ------------------------------------------------------------------
from fan_auth.did.document import DIDDocument, VerificationMethod
from fan_auth.did.identifier import (
    DID,
    Address,
    address_to_did,
    address_to_sovereign_did,
    agent_trust_url,
    did_to_lookup_url,
    parse_address,
    parse_did,
)

# ------------------------------------------------------------------
# Crypto and trust
# ------------------------------------------------------------------
from fan_auth.crypto.gateway import CryptoGateway
from fan_auth.crypto.keys import generate_signing_jwk
from fan_auth.trust.envelope import seal_document
from fan_auth.trust.verifier import TrustVerifier

# ------------------------------------------------------------------
# Resolution
# ------------------------------------------------------------------
from fan_auth.resolver.cache import CacheEntry, DocumentCache
from fan_auth.resolver.fetch import FetchResponse, HttpxFetcher
from fan_auth.resolver.resolver import Resolver

# ------------------------------------------------------------------
# Challenge / response
# ------------------------------------------------------------------
from fan_auth.challenge.attempt import AttemptStatus, AttemptStore, AuthenticationAttempt
from fan_auth.challenge.authenticator import ChallengeAuthenticator
from fan_auth.challenge.client import answer_challenge

# ------------------------------------------------------------------
# Agent role, configuration, audit
# ------------------------------------------------------------------
from fan_auth.agent.storage import DocumentPublisher, FileSystemStorage
from fan_auth.audit import AuthenticationAuditLogger
from fan_auth.config import FANSettings, load_settings
from fan_auth.errors import FANError

__all__ = [
    "__version__",
    # Identifiers and documents
    "Address",
    "DID",
    "DIDDocument",
    "VerificationMethod",
    "address_to_did",
    "address_to_sovereign_did",
    "agent_trust_url",
    "did_to_lookup_url",
    "parse_address",
    "parse_did",
    # Crypto and trust
    "CryptoGateway",
    "TrustVerifier",
    "generate_signing_jwk",
    "seal_document",
    # Resolution
    "CacheEntry",
    "DocumentCache",
    "FetchResponse",
    "HttpxFetcher",
    "Resolver",
    # Challenge / response
    "AttemptStatus",
    "AttemptStore",
    "AuthenticationAttempt",
    "ChallengeAuthenticator",
    "answer_challenge",
    # Agent role, configuration, audit
    "AuthenticationAuditLogger",
    "DocumentPublisher",
    "FANError",
    "FANSettings",
    "FileSystemStorage",
    "load_settings",
]
