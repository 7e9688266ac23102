"""Tests for fan_auth.resolver.resolver.Resolver using an in-memory fetcher."""
from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Optional

import pytest
from jwcrypto import jwk

from conftest import (
    AGENT_URL,
    ALICE_DID,
    ALICE_URL,
    FakeFetcher,
    build_document,
    jose_response,
)
from fan_auth.audit import AuthenticationAuditLogger
from fan_auth.config import FANSettings
from fan_auth.crypto.gateway import CryptoGateway
from fan_auth.crypto.keys import generate_signing_jwk
from fan_auth.did.document import AUTHENTICATION, CAPABILITY_INVOCATION, DIDDocument
from fan_auth.did.identifier import DID, parse_did
from fan_auth.errors import (
    AgentDocumentUnreachable,
    AgentUntrusted,
    FetchFailed,
    MalformedAddress,
    SubjectUntrusted,
    UnsupportedDid,
)
from fan_auth.resolver.fetch import FetchResponse
from fan_auth.resolver.resolver import Resolver
from fan_auth.trust.envelope import seal_document

SOVEREIGN_DID = "did:fan:_sovereign_:alice"


def _resolver(fetcher: FakeFetcher, **settings: object) -> Resolver:
    return Resolver(fetcher, settings=FANSettings(**settings))


# ---------------------------------------------------------------------------
# Standard path
# ---------------------------------------------------------------------------


class TestStandardResolution:
    def test_resolves_and_caches(self, published: FakeFetcher, last_modified: datetime) -> None:
        resolver = _resolver(published)
        document = resolver.resolve("alice@fan.example.org")
        assert document.id == ALICE_DID
        assert published.urls() == [AGENT_URL, ALICE_URL]

        entry = resolver.cache.get(ALICE_DID)
        assert entry is not None
        assert entry.last_modified == last_modified
        assert entry.agent_domain == "fan.example.org"
        assert entry.agent_port is None

    def test_resolve_did_string(self, published: FakeFetcher) -> None:
        assert _resolver(published).resolve_did(ALICE_DID).id == ALICE_DID

    def test_malformed_address(self, published: FakeFetcher) -> None:
        with pytest.raises(MalformedAddress):
            _resolver(published).resolve("no-at-sign")

    def test_always_revalidate_sends_conditional_request(
        self, published: FakeFetcher, last_modified: datetime
    ) -> None:
        resolver = _resolver(published)
        resolver.resolve("alice@fan.example.org")
        resolver.resolve("alice@fan.example.org")
        assert published.calls[-1] == (ALICE_URL, last_modified)

    def test_not_modified_keeps_cached_document(
        self, published: FakeFetcher, alice_document: DIDDocument
    ) -> None:
        resolver = _resolver(published)
        resolver.resolve("alice@fan.example.org")
        published.serve(ALICE_URL, FetchResponse(status=304))
        assert resolver.resolve("alice@fan.example.org").to_dict() == alice_document.to_dict()

    def test_not_modified_without_cache_fails(self, published: FakeFetcher) -> None:
        published.serve(ALICE_URL, FetchResponse(status=304))
        with pytest.raises(FetchFailed):
            _resolver(published).resolve("alice@fan.example.org")

    def test_cache_hit_skips_subject_fetch_when_not_revalidating(
        self, published: FakeFetcher
    ) -> None:
        resolver = _resolver(published, always_revalidate=False)
        resolver.resolve("alice@fan.example.org")
        resolver.resolve("alice@fan.example.org")
        assert published.urls() == [AGENT_URL, ALICE_URL, AGENT_URL]

    def test_newer_agent_timestamp_forces_refresh(
        self,
        published: FakeFetcher,
        gateway: CryptoGateway,
        agent_document: DIDDocument,
        agent_keys: list[jwk.JWK],
        last_modified: datetime,
    ) -> None:
        resolver = _resolver(published, always_revalidate=False)
        resolver.resolve("alice@fan.example.org")
        published.serve(
            AGENT_URL,
            jose_response(
                seal_document(agent_document, agent_keys, gateway),
                last_modified + timedelta(hours=1),
            ),
        )
        resolver.resolve("alice@fan.example.org")
        assert published.urls()[-1] == ALICE_URL

    def test_subject_document_for_another_did_is_untrusted(
        self,
        published: FakeFetcher,
        gateway: CryptoGateway,
        agent_keys: list[jwk.JWK],
        alice_key: jwk.JWK,
    ) -> None:
        mallory = build_document("did:fan:fan.example.org:mallory", [alice_key])
        published.serve(ALICE_URL, jose_response(seal_document(mallory, agent_keys, gateway)))
        with pytest.raises(SubjectUntrusted):
            _resolver(published).resolve("alice@fan.example.org")

    def test_subject_missing_an_agent_signature_is_untrusted(
        self,
        published: FakeFetcher,
        gateway: CryptoGateway,
        alice_document: DIDDocument,
        agent_keys: list[jwk.JWK],
    ) -> None:
        published.serve(
            ALICE_URL, jose_response(seal_document(alice_document, agent_keys[:1], gateway))
        )
        resolver = _resolver(published)
        with pytest.raises(SubjectUntrusted):
            resolver.resolve("alice@fan.example.org")
        assert ALICE_DID not in resolver.cache

    def test_missing_user_document(self, published: FakeFetcher) -> None:
        with pytest.raises(FetchFailed) as info:
            _resolver(published).resolve("bob@fan.example.org")
        assert info.value.status == 404

    def test_port_is_used_for_both_fetches(
        self,
        fetcher: FakeFetcher,
        gateway: CryptoGateway,
        agent_keys: list[jwk.JWK],
        alice_key: jwk.JWK,
    ) -> None:
        did = "did:fan:fan.example.org%3F5309:alice"
        agent = build_document("did:fan:fan.example.org%3F5309:agent", agent_keys)
        fetcher.serve(
            "https://fan.example.org:5309/fan.did",
            jose_response(seal_document(agent, agent_keys, gateway)),
        )
        fetcher.serve(
            "https://fan.example.org:5309/did-fan/user/alice.did",
            jose_response(seal_document(build_document(did, [alice_key]), agent_keys, gateway)),
        )
        resolver = _resolver(fetcher)
        assert resolver.resolve("alice@fan.example.org:5309").id == did
        assert resolver.cache.get(did).agent_port == 5309  # type: ignore[union-attr]


# ---------------------------------------------------------------------------
# Agent failures
# ---------------------------------------------------------------------------


class TestAgentFailures:
    def test_unreachable_agent(self, published: FakeFetcher) -> None:
        published.serve(AGENT_URL, FetchFailed(AGENT_URL, "connection refused"))
        with pytest.raises(AgentDocumentUnreachable):
            _resolver(published).resolve("alice@fan.example.org")
        assert published.urls() == [AGENT_URL]

    def test_untrusted_agent_invalidates_vouched_documents(
        self,
        published: FakeFetcher,
        gateway: CryptoGateway,
        agent_document: DIDDocument,
        agent_keys: list[jwk.JWK],
    ) -> None:
        resolver = _resolver(published)
        resolver.resolve("alice@fan.example.org")
        assert ALICE_DID in resolver.cache

        published.serve(AGENT_URL, jose_response(seal_document(agent_document, agent_keys[:1], gateway)))
        with pytest.raises(AgentUntrusted):
            resolver.resolve("alice@fan.example.org")
        assert ALICE_DID not in resolver.cache

    def test_untrusted_agent_is_never_bypassed_by_fallback(
        self,
        published: FakeFetcher,
        gateway: CryptoGateway,
        agent_document: DIDDocument,
    ) -> None:
        resolver = _resolver(published, fallback_to_cache=True)
        resolver.resolve("alice@fan.example.org")
        published.serve(
            AGENT_URL,
            jose_response(seal_document(agent_document, [generate_signing_jwk("P-256")], gateway)),
        )
        with pytest.raises(AgentUntrusted):
            resolver.resolve("alice@fan.example.org")


# ---------------------------------------------------------------------------
# Cache fallback
# ---------------------------------------------------------------------------


class TestFallback:
    def test_transport_failure_without_fallback_raises(self, published: FakeFetcher) -> None:
        resolver = _resolver(published)
        resolver.resolve("alice@fan.example.org")
        published.serve(ALICE_URL, FetchFailed(ALICE_URL, "timed out"))
        with pytest.raises(FetchFailed):
            resolver.resolve("alice@fan.example.org")

    def test_transport_failure_with_fallback_uses_cache(self, published: FakeFetcher) -> None:
        resolver = _resolver(published, fallback_to_cache=True)
        first = resolver.resolve("alice@fan.example.org")
        published.serve(ALICE_URL, FetchFailed(ALICE_URL, "timed out"))
        assert resolver.resolve("alice@fan.example.org") == first

    def test_unreachable_agent_with_fallback_uses_cache(self, published: FakeFetcher) -> None:
        resolver = _resolver(published, fallback_to_cache=True)
        first = resolver.resolve("alice@fan.example.org")
        published.serve(AGENT_URL, FetchFailed(AGENT_URL, "connection refused"))
        assert resolver.resolve("alice@fan.example.org") == first

    def test_http_error_status_is_not_a_fallback_case(self, published: FakeFetcher) -> None:
        resolver = _resolver(published, fallback_to_cache=True)
        resolver.resolve("alice@fan.example.org")
        published.serve(ALICE_URL, FetchFailed(ALICE_URL, "HTTP 410", status=410))
        with pytest.raises(FetchFailed):
            resolver.resolve("alice@fan.example.org")

    def test_fallback_needs_a_cached_copy(self, published: FakeFetcher) -> None:
        published.serve(ALICE_URL, FetchFailed(ALICE_URL, "timed out"))
        with pytest.raises(FetchFailed):
            _resolver(published, fallback_to_cache=True).resolve("alice@fan.example.org")


# ---------------------------------------------------------------------------
# Sovereign path
# ---------------------------------------------------------------------------


@pytest.fixture()
def sovereign_jws(gateway: CryptoGateway) -> str:
    key = generate_signing_jwk("P-256")
    document = build_document(SOVEREIGN_DID, [key], (AUTHENTICATION, CAPABILITY_INVOCATION))
    return seal_document(document, [key], gateway)


class TestSovereignResolution:
    def test_disabled_by_default(self, fetcher: FakeFetcher, sovereign_jws: str) -> None:
        resolver = Resolver(fetcher, sovereign_source=lambda did: sovereign_jws)
        with pytest.raises(UnsupportedDid):
            resolver.resolve("alice@_sovereign_")
        assert fetcher.calls == []

    def test_resolves_without_network(self, fetcher: FakeFetcher, sovereign_jws: str) -> None:
        requested: list[DID] = []

        def source(did: DID) -> Optional[str]:
            requested.append(did)
            return sovereign_jws

        resolver = Resolver(
            fetcher, settings=FANSettings(allow_sovereign=True), sovereign_source=source
        )
        document = resolver.resolve("alice@_sovereign_")
        assert document.id == SOVEREIGN_DID
        assert requested == [parse_did(SOVEREIGN_DID)]
        assert fetcher.calls == []

    def test_no_source_configured(self, fetcher: FakeFetcher) -> None:
        resolver = Resolver(fetcher, settings=FANSettings(allow_sovereign=True))
        with pytest.raises(UnsupportedDid):
            resolver.resolve_did(SOVEREIGN_DID)

    def test_source_has_no_document(self, fetcher: FakeFetcher) -> None:
        resolver = Resolver(
            fetcher, settings=FANSettings(allow_sovereign=True), sovereign_source=lambda did: None
        )
        with pytest.raises(UnsupportedDid):
            resolver.resolve_did(SOVEREIGN_DID)

    def test_site_policy_can_reject(self, fetcher: FakeFetcher, sovereign_jws: str) -> None:
        resolver = Resolver(
            fetcher,
            settings=FANSettings(allow_sovereign=True),
            sovereign_source=lambda did: sovereign_jws,
            sovereign_policy=lambda document: False,
        )
        with pytest.raises(SubjectUntrusted):
            resolver.resolve_did(SOVEREIGN_DID)

    def test_document_for_another_sovereign_did(self, fetcher: FakeFetcher, sovereign_jws: str) -> None:
        resolver = Resolver(
            fetcher,
            settings=FANSettings(allow_sovereign=True),
            sovereign_source=lambda did: sovereign_jws,
        )
        with pytest.raises(SubjectUntrusted):
            resolver.resolve_did("did:fan:_sovereign_:bob")


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class TestResolutionAudit:
    def test_success_and_failure_are_audited(self, published: FakeFetcher) -> None:
        audit = AuthenticationAuditLogger()
        resolver = Resolver(published, audit=audit)
        resolver.resolve("alice@fan.example.org")
        with pytest.raises(FetchFailed):
            resolver.resolve("bob@fan.example.org")

        events = [json.loads(line) for line in audit.drain_buffer()]
        assert [event["event_type"] for event in events] == ["document_resolved", "resolution_failed"]
        assert events[0]["subject"] == ALICE_DID
        assert events[1]["details"]["error"] == "FetchFailed"
