#!/usr/bin/env python3
"""Example: Login flow

Walks one FAN login end to end without a network: an Agent publishes a
self-signed trust document and a user document, a Web Site resolves
``alice@fan.example.org`` through the trust chain, issues a challenge,
and verifies Alice's signed answer.

Usage:
    python examples/01_login_flow.py

Requirements:
    pip install fan-auth
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fan_auth import __version__
from fan_auth.challenge.authenticator import ChallengeAuthenticator
from fan_auth.challenge.client import answer_challenge
from fan_auth.crypto.gateway import CryptoGateway
from fan_auth.crypto.keys import generate_signing_jwk, public_jwk
from fan_auth.did.document import AUTHENTICATION, DIDDocument, VerificationMethod
from fan_auth.did.identifier import agent_trust_url
from fan_auth.did.mime import JOSE_MIME
from fan_auth.errors import FetchFailed
from fan_auth.resolver.fetch import FetchResponse
from fan_auth.resolver.resolver import Resolver
from fan_auth.trust.envelope import seal_document

DOMAIN = "fan.example.org"


class InMemoryAgent:
    """Serves sealed documents by URL, standing in for the Agent's web server."""

    def __init__(self) -> None:
        self.documents: dict[str, str] = {}

    def fetch(self, url: str, if_modified_since: Optional[datetime] = None) -> FetchResponse:
        if url not in self.documents:
            raise FetchFailed(url, "HTTP 404", status=404)
        return FetchResponse(200, self.documents[url].encode("ascii"), JOSE_MIME)


def document_for(did: str, key) -> DIDDocument:
    method = VerificationMethod(
        id=f"{did}#key-1",
        type="JsonWebKey2020",
        controller=did,
        public_key_jwk=public_jwk(key),
    )
    return DIDDocument(id=did, verification_method=[method], **{AUTHENTICATION: [method.id]})


def main() -> None:
    print(f"fan-auth version: {__version__}")
    gateway = CryptoGateway()

    # Step 1: The Agent and Alice each hold a signing key
    agent_key = generate_signing_jwk("P-256", kid="agent-1")
    alice_key = generate_signing_jwk("P-256", kid="alice-1")

    # Step 2: The Agent publishes both documents sealed with its own key
    agent = InMemoryAgent()
    agent.documents[agent_trust_url(DOMAIN)] = seal_document(
        document_for(f"did:fan:{DOMAIN}:agent", agent_key), [agent_key], gateway
    )
    agent.documents[f"https://{DOMAIN}/did-fan/user/alice.did"] = seal_document(
        document_for(f"did:fan:{DOMAIN}:alice", alice_key), [agent_key], gateway
    )

    # Step 3: The Web Site resolves Alice's address through the Agent
    resolver = Resolver(agent)
    document = resolver.resolve(f"alice@{DOMAIN}")
    print(f"Resolved {document.id} with {len(document.verification_method)} key(s)")

    # Step 4: Challenge, answer, verify
    authenticator = ChallengeAuthenticator(gateway)
    attempt, challenge = authenticator.issue(document)
    print(f"Issued attempt {attempt.attempt_id}")
    answer = answer_challenge(challenge, alice_key, gateway)
    result = authenticator.respond(answer)
    print(f"Attempt {result.attempt_id}: {result.status.value}")


if __name__ == "__main__":
    main()
