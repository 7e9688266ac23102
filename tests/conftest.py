"""Shared fixtures: keys, DID documents, sealed envelopes, and a fake fetcher."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional, Sequence, Union

import pytest
from jwcrypto import jwk

from fan_auth.crypto.gateway import CryptoGateway
from fan_auth.crypto.keys import generate_signing_jwk, public_jwk
from fan_auth.did.document import AUTHENTICATION, DIDDocument, VerificationMethod
from fan_auth.did.identifier import agent_trust_url
from fan_auth.did.mime import JOSE_MIME
from fan_auth.errors import FetchFailed
from fan_auth.resolver.fetch import FetchResponse
from fan_auth.trust.envelope import seal_document

AGENT_DOMAIN = "fan.example.org"
AGENT_DID = "did:fan:fan.example.org:agent"
ALICE_DID = "did:fan:fan.example.org:alice"
ALICE_URL = "https://fan.example.org/did-fan/user/alice.did"
AGENT_URL = agent_trust_url(AGENT_DOMAIN)

DocumentFactory = Callable[..., DIDDocument]
Outcome = Union[FetchResponse, Exception, Callable[[Optional[datetime]], FetchResponse]]


def build_document(
    did: str,
    keys: Sequence[jwk.JWK],
    relationships: Sequence[str] = (AUTHENTICATION,),
) -> DIDDocument:
    """Return a document listing every key under each of *relationships*."""
    methods = [
        VerificationMethod(
            id=f"{did}#key-{index}",
            type="JsonWebKey2020",
            controller=did,
            public_key_jwk=public_jwk(key),
        )
        for index, key in enumerate(keys, start=1)
    ]
    ids = [method.id for method in methods]
    return DIDDocument(
        id=did,
        verification_method=methods,
        **{relationship: list(ids) for relationship in relationships},
    )


class FakeFetcher:
    """In-memory :class:`~fan_auth.resolver.fetch.Fetcher` keyed by URL.

    Unknown URLs answer like an HTTP 404. Every call is recorded as
    ``(url, if_modified_since)``.
    """

    def __init__(self) -> None:
        self.routes: dict[str, Outcome] = {}
        self.calls: list[tuple[str, Optional[datetime]]] = []

    def serve(self, url: str, outcome: Outcome) -> None:
        self.routes[url] = outcome

    def urls(self) -> list[str]:
        return [url for url, _ in self.calls]

    def fetch(self, url: str, if_modified_since: Optional[datetime] = None) -> FetchResponse:
        self.calls.append((url, if_modified_since))
        outcome = self.routes.get(url)
        if outcome is None:
            raise FetchFailed(url, "HTTP 404", status=404)
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(if_modified_since)
        return outcome


def jose_response(body: str, last_modified: Optional[datetime] = None) -> FetchResponse:
    return FetchResponse(
        status=200,
        body=body.encode("utf-8"),
        content_type=JOSE_MIME,
        last_modified=last_modified,
    )


# ---------------------------------------------------------------------------
# Keys and documents
# ---------------------------------------------------------------------------


@pytest.fixture()
def gateway() -> CryptoGateway:
    return CryptoGateway()


@pytest.fixture()
def agent_keys() -> list[jwk.JWK]:
    return [
        generate_signing_jwk("P-256", kid="agent-1"),
        generate_signing_jwk("P-384", kid="agent-2"),
    ]


@pytest.fixture()
def alice_key() -> jwk.JWK:
    return generate_signing_jwk("P-256", kid="alice-1")


@pytest.fixture()
def make_document() -> DocumentFactory:
    return build_document


@pytest.fixture()
def agent_document(agent_keys: list[jwk.JWK]) -> DIDDocument:
    return build_document(AGENT_DID, agent_keys)


@pytest.fixture()
def alice_document(alice_key: jwk.JWK) -> DIDDocument:
    return build_document(ALICE_DID, [alice_key])


# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------


@pytest.fixture()
def last_modified() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture()
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture()
def published(
    fetcher: FakeFetcher,
    gateway: CryptoGateway,
    agent_keys: list[jwk.JWK],
    agent_document: DIDDocument,
    alice_document: DIDDocument,
    last_modified: datetime,
) -> FakeFetcher:
    """A fetcher serving a valid Agent document and Alice's document."""
    fetcher.serve(AGENT_URL, jose_response(seal_document(agent_document, agent_keys, gateway)))
    fetcher.serve(
        ALICE_URL,
        jose_response(seal_document(alice_document, agent_keys, gateway), last_modified),
    )
    return fetcher
