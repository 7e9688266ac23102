"""Tests for fan_auth.trust — signed envelopes and the three trust roots."""
from __future__ import annotations

import json

import pytest
from jwcrypto import jwk

from conftest import AGENT_DID, ALICE_DID, build_document
from fan_auth.crypto.gateway import CryptoGateway
from fan_auth.crypto.keys import generate_signing_jwk
from fan_auth.did.document import AUTHENTICATION, CAPABILITY_INVOCATION, DIDDocument
from fan_auth.did.mime import CBOR_MIME, JSON_MIME
from fan_auth.errors import (
    AgentUntrusted,
    NoVerificationMethods,
    SubjectUntrusted,
    UnsupportedMediaType,
)
from fan_auth.trust.envelope import open_envelope, seal_bytes, seal_document
from fan_auth.trust.verifier import TrustVerifier

SOVEREIGN_DID = "did:fan:_sovereign_:alice"


@pytest.fixture()
def verifier(gateway: CryptoGateway) -> TrustVerifier:
    return TrustVerifier(gateway)


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class TestEnvelope:
    def test_payload_carries_document_and_content_type(
        self, gateway: CryptoGateway, alice_document: DIDDocument, agent_keys: list[jwk.JWK]
    ) -> None:
        token = seal_document(alice_document, agent_keys, gateway)
        decoded = gateway.decode_jws(token)
        envelope = json.loads(decoded.payload)
        assert envelope["content-type"] == JSON_MIME
        assert set(envelope) == {"document", "content-type"}

    @pytest.mark.parametrize("mime", [JSON_MIME, CBOR_MIME])
    def test_open_returns_the_sealed_document(
        self,
        gateway: CryptoGateway,
        alice_document: DIDDocument,
        agent_keys: list[jwk.JWK],
        mime: str,
    ) -> None:
        token = seal_document(alice_document, agent_keys, gateway, content_type=mime)
        opened = open_envelope(gateway.decode_jws(token))
        assert opened.to_dict() == alice_document.to_dict()
        assert opened.content_type == mime

    def test_unknown_content_type_is_refused_before_signing(
        self, gateway: CryptoGateway, agent_keys: list[jwk.JWK]
    ) -> None:
        with pytest.raises(UnsupportedMediaType):
            seal_bytes(b"{}", "text/plain", agent_keys, gateway)

    def test_non_envelope_payload_raises(self, gateway: CryptoGateway, agent_keys: list[jwk.JWK]) -> None:
        token = gateway.sign_compact_jws(b'{"document": 1}', agent_keys)
        with pytest.raises(ValueError):
            open_envelope(gateway.decode_jws(token))


# ---------------------------------------------------------------------------
# Agent self-signature
# ---------------------------------------------------------------------------


class TestAgentSelfSignature:
    def test_all_keys_signed(
        self,
        verifier: TrustVerifier,
        gateway: CryptoGateway,
        agent_document: DIDDocument,
        agent_keys: list[jwk.JWK],
    ) -> None:
        token = seal_document(agent_document, agent_keys, gateway)
        verified = verifier.verify_agent_self_signature("fan.example.org", token)
        assert verified.id == AGENT_DID

    def test_missing_one_signature_is_untrusted(
        self,
        verifier: TrustVerifier,
        gateway: CryptoGateway,
        agent_document: DIDDocument,
        agent_keys: list[jwk.JWK],
    ) -> None:
        token = seal_document(agent_document, agent_keys[:1], gateway)
        with pytest.raises(AgentUntrusted):
            verifier.verify_agent_self_signature("fan.example.org", token)

    def test_foreign_signer_is_untrusted(
        self, verifier: TrustVerifier, gateway: CryptoGateway, agent_document: DIDDocument
    ) -> None:
        impostor = [generate_signing_jwk("P-256"), generate_signing_jwk("P-384")]
        token = seal_document(agent_document, impostor, gateway)
        with pytest.raises(AgentUntrusted):
            verifier.verify_agent_self_signature("fan.example.org", token)

    def test_document_for_another_domain_is_untrusted(
        self,
        verifier: TrustVerifier,
        gateway: CryptoGateway,
        agent_document: DIDDocument,
        agent_keys: list[jwk.JWK],
    ) -> None:
        token = seal_document(agent_document, agent_keys, gateway)
        with pytest.raises(AgentUntrusted):
            verifier.verify_agent_self_signature("evil.example.net", token)

    def test_empty_authentication_set_never_verifies(
        self, verifier: TrustVerifier, gateway: CryptoGateway, agent_keys: list[jwk.JWK]
    ) -> None:
        document = build_document(AGENT_DID, agent_keys, relationships=(CAPABILITY_INVOCATION,))
        token = seal_document(document, agent_keys, gateway)
        with pytest.raises(NoVerificationMethods):
            verifier.verify_agent_self_signature("fan.example.org", token)

    def test_garbage_is_untrusted(self, verifier: TrustVerifier) -> None:
        with pytest.raises(AgentUntrusted):
            verifier.verify_agent_self_signature("fan.example.org", "not a jws")

    def test_non_object_signature_entry_is_untrusted(self, verifier: TrustVerifier) -> None:
        token = json.dumps({"payload": "e30", "signatures": [1]})
        with pytest.raises(AgentUntrusted):
            verifier.verify_agent_self_signature("fan.example.org", token)


# ---------------------------------------------------------------------------
# Subject signature
# ---------------------------------------------------------------------------


class TestSubjectSignature:
    def test_signed_by_every_agent_key(
        self,
        verifier: TrustVerifier,
        gateway: CryptoGateway,
        agent_document: DIDDocument,
        alice_document: DIDDocument,
        agent_keys: list[jwk.JWK],
    ) -> None:
        token = seal_document(alice_document, agent_keys, gateway)
        assert verifier.verify_subject_signature(agent_document, token).id == ALICE_DID

    def test_removing_one_agent_signature_is_untrusted(
        self,
        verifier: TrustVerifier,
        gateway: CryptoGateway,
        agent_document: DIDDocument,
        alice_document: DIDDocument,
        agent_keys: list[jwk.JWK],
    ) -> None:
        token = json.loads(seal_document(alice_document, agent_keys, gateway))
        token["signatures"] = token["signatures"][1:]
        with pytest.raises(SubjectUntrusted):
            verifier.verify_subject_signature(agent_document, json.dumps(token))

    def test_signed_by_the_subject_itself_is_untrusted(
        self,
        verifier: TrustVerifier,
        gateway: CryptoGateway,
        agent_document: DIDDocument,
        alice_document: DIDDocument,
        alice_key: jwk.JWK,
    ) -> None:
        token = seal_document(alice_document, [alice_key], gateway)
        with pytest.raises(SubjectUntrusted):
            verifier.verify_subject_signature(agent_document, token)

    @pytest.mark.parametrize("context", [None, 5, {"@vocab": "https://example.org/"}])
    def test_malformed_context_is_untrusted(
        self,
        verifier: TrustVerifier,
        gateway: CryptoGateway,
        agent_document: DIDDocument,
        alice_document: DIDDocument,
        agent_keys: list[jwk.JWK],
        context: object,
    ) -> None:
        body = {**alice_document.to_dict(), "@context": context}
        token = seal_bytes(json.dumps(body).encode(), JSON_MIME, agent_keys, gateway)
        with pytest.raises(SubjectUntrusted):
            verifier.verify_subject_signature(agent_document, token)

    def test_agent_without_authentication_keys(
        self,
        verifier: TrustVerifier,
        gateway: CryptoGateway,
        alice_document: DIDDocument,
        agent_keys: list[jwk.JWK],
    ) -> None:
        bare_agent = DIDDocument(id=AGENT_DID)
        token = seal_document(alice_document, agent_keys, gateway)
        with pytest.raises(NoVerificationMethods):
            verifier.verify_subject_signature(bare_agent, token)


# ---------------------------------------------------------------------------
# Sovereign
# ---------------------------------------------------------------------------


class TestSovereign:
    def test_signed_by_own_capability_invocation_keys(
        self, verifier: TrustVerifier, gateway: CryptoGateway
    ) -> None:
        key = generate_signing_jwk("P-256")
        document = build_document(SOVEREIGN_DID, [key], (AUTHENTICATION, CAPABILITY_INVOCATION))
        token = seal_document(document, [key], gateway)
        assert verifier.verify_sovereign(token).subject_did.sovereign

    def test_authentication_keys_alone_are_not_enough(
        self, verifier: TrustVerifier, gateway: CryptoGateway
    ) -> None:
        key = generate_signing_jwk("P-256")
        document = build_document(SOVEREIGN_DID, [key], (AUTHENTICATION,))
        token = seal_document(document, [key], gateway)
        with pytest.raises(NoVerificationMethods):
            verifier.verify_sovereign(token)

    def test_wrong_signer_is_untrusted(self, verifier: TrustVerifier, gateway: CryptoGateway) -> None:
        key = generate_signing_jwk("P-256")
        document = build_document(SOVEREIGN_DID, [key], (CAPABILITY_INVOCATION,))
        token = seal_document(document, [generate_signing_jwk("P-256")], gateway)
        with pytest.raises(SubjectUntrusted):
            verifier.verify_sovereign(token)

    def test_non_sovereign_document_is_untrusted(
        self, verifier: TrustVerifier, gateway: CryptoGateway
    ) -> None:
        key = generate_signing_jwk("P-256")
        document = build_document(ALICE_DID, [key], (CAPABILITY_INVOCATION,))
        token = seal_document(document, [key], gateway)
        with pytest.raises(SubjectUntrusted):
            verifier.verify_sovereign(token)
