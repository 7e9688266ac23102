"""Tests for fan_auth.server.routes — route functions without a socket."""
from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import pytest
from jwcrypto import jwk

from conftest import ALICE_DID, FakeFetcher
from fan_auth.agent.storage import DocumentPublisher, FileSystemStorage
from fan_auth.challenge.authenticator import ChallengeAuthenticator
from fan_auth.challenge.client import answer_challenge
from fan_auth.crypto.gateway import CryptoGateway
from fan_auth.did.document import DIDDocument
from fan_auth.did.mime import JOSE_MIME
from fan_auth.errors import (
    AgentUntrusted,
    AttemptExpired,
    FANError,
    MalformedAddress,
    NonceMismatch,
    UnsupportedMediaType,
)
from fan_auth.httpdate import format_http_date
from fan_auth.resolver.resolver import Resolver
from fan_auth.server import routes
from fan_auth.server.routes import ATTEMPT_HEADER, FANApplication


def _json(result: routes.RouteResult) -> dict[str, object]:
    return json.loads(result.body)


@pytest.fixture()
def agent_app(
    tmp_path: Path,
    agent_document: DIDDocument,
    alice_document: DIDDocument,
    agent_keys: list[jwk.JWK],
    gateway: CryptoGateway,
) -> FANApplication:
    storage = FileSystemStorage(tmp_path)
    storage.store_agent(agent_document)
    storage.store("alice", alice_document)
    storage.store("%e7%84%a1", alice_document)
    return FANApplication(publisher=DocumentPublisher(storage, agent_keys, gateway))


@pytest.fixture()
def site_app(published: FakeFetcher, gateway: CryptoGateway) -> FANApplication:
    return FANApplication(
        resolver=Resolver(published),
        authenticator=ChallengeAuthenticator(gateway),
    )


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrorResult:
    @pytest.mark.parametrize(
        ("error", "status"),
        [
            (MalformedAddress("x", "bad"), 400),
            (UnsupportedMediaType("text/plain"), 406),
            (AttemptExpired("late"), 410),
            (NonceMismatch("no"), 401),
            (AgentUntrusted("no"), 502),
            (FANError("other"), 500),
        ],
    )
    def test_status_per_kind(self, error: FANError, status: int) -> None:
        result = routes.error_result(error)
        assert result.status == status
        assert _json(result)["error"] == error.kind


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_agent_only(self, agent_app: FANApplication) -> None:
        body = _json(routes.handle_health(agent_app))
        assert body["status"] == "ok"
        assert body["roles"] == ["agent"]
        assert body["pending_attempts"] is None

    def test_site_counts(self, site_app: FANApplication) -> None:
        body = _json(routes.handle_health(site_app))
        assert body["roles"] == ["site"]
        assert body["pending_attempts"] == 0
        assert body["cached_documents"] == 0


# ---------------------------------------------------------------------------
# Agent routes
# ---------------------------------------------------------------------------


class TestAgentRoutes:
    def test_agent_document(self, agent_app: FANApplication) -> None:
        result = routes.handle_agent_document(agent_app, None, None)
        assert result.status == 200
        assert result.content_type == JOSE_MIME
        assert "Last-Modified" in result.headers

    def test_agent_document_not_modified(self, agent_app: FANApplication) -> None:
        first = routes.handle_agent_document(agent_app, None, None)
        result = routes.handle_agent_document(agent_app, None, first.headers["Last-Modified"])
        assert result.status == 304
        assert result.body == b""

    def test_malformed_if_modified_since_is_ignored(self, agent_app: FANApplication) -> None:
        assert routes.handle_agent_document(agent_app, None, "garbage").status == 200

    def test_old_if_modified_since_is_modified(self, agent_app: FANApplication) -> None:
        stamp = format_http_date(datetime(2000, 1, 1))
        assert routes.handle_agent_document(agent_app, None, stamp).status == 200

    def test_user_document(self, agent_app: FANApplication) -> None:
        result = routes.handle_user_document(agent_app, "alice", "application/cbor+did", None)
        assert result.status == 200
        assert result.content_type == JOSE_MIME

    def test_uppercase_escapes_find_the_same_document(self, agent_app: FANApplication) -> None:
        assert routes.handle_user_document(agent_app, "%E7%84%A1", None, None).status == 200

    def test_unknown_user_is_404(self, agent_app: FANApplication) -> None:
        result = routes.handle_user_document(agent_app, "bob", None, None)
        assert result.status == 404
        assert _json(result)["error"] == "DocumentNotFound"

    def test_illegal_identifier_is_404(self, agent_app: FANApplication) -> None:
        assert routes.handle_user_document(agent_app, "..%2f", None, None).status == 404

    def test_agent_routes_absent_without_publisher(self, site_app: FANApplication) -> None:
        assert routes.handle_agent_document(site_app, None, None).status == 404


# ---------------------------------------------------------------------------
# Site routes
# ---------------------------------------------------------------------------


class TestSiteRoutes:
    def test_issue_returns_jwe_with_attempt_header(self, site_app: FANApplication) -> None:
        result = routes.handle_issue_challenge(site_app, "alice@fan.example.org")
        assert result.status == 200
        assert result.content_type == JOSE_MIME
        assert result.headers[ATTEMPT_HEADER] in site_app.authenticator.store  # type: ignore[union-attr]

    def test_issue_as_json(self, site_app: FANApplication) -> None:
        result = routes.handle_issue_challenge(site_app, "alice@fan.example.org", "application/json")
        body = _json(result)
        assert body["subject_did"] == ALICE_DID
        assert str(body["challenge"]).count(".") == 4

    def test_issue_requires_address(self, site_app: FANApplication) -> None:
        assert routes.handle_issue_challenge(site_app, None).status == 422

    def test_issue_malformed_address(self, site_app: FANApplication) -> None:
        assert routes.handle_issue_challenge(site_app, "nobody").status == 400

    def test_issue_unknown_user_is_bad_gateway(self, site_app: FANApplication) -> None:
        assert routes.handle_issue_challenge(site_app, "bob@fan.example.org").status == 502

    def test_respond_raw_jose(self, site_app: FANApplication, alice_key: jwk.JWK) -> None:
        issued = routes.handle_issue_challenge(site_app, "alice@fan.example.org")
        response = answer_challenge(issued.body.decode(), alice_key)
        result = routes.handle_respond(site_app, response.encode(), JOSE_MIME)
        body = _json(result)
        assert result.status == 200
        assert body["authenticated"] is True
        assert body["status"] == "succeeded"
        assert body["attempt_id"] == issued.headers[ATTEMPT_HEADER]

    def test_respond_json_and_replay(self, site_app: FANApplication, alice_key: jwk.JWK) -> None:
        issued = routes.handle_issue_challenge(site_app, "alice@fan.example.org")
        request = json.dumps({"jws": answer_challenge(issued.body.decode(), alice_key)}).encode()
        assert routes.handle_respond(site_app, request, "application/json").status == 200
        replay = routes.handle_respond(site_app, request, "application/json")
        assert replay.status == 404
        assert _json(replay)["error"] == "UnknownAttempt"

    def test_respond_json_validation_error(self, site_app: FANApplication) -> None:
        assert routes.handle_respond(site_app, b'{"jws": ""}', "application/json").status == 422

    def test_respond_empty_body(self, site_app: FANApplication) -> None:
        assert routes.handle_respond(site_app, b"  ", None).status == 422

    def test_respond_non_utf8_body(self, site_app: FANApplication) -> None:
        assert routes.handle_respond(site_app, b"\xff\xfe", JOSE_MIME).status == 400

    def test_respond_malformed_jws_is_unauthorized(self, site_app: FANApplication) -> None:
        assert routes.handle_respond(site_app, b"not.a.jws!", JOSE_MIME).status == 401

    @pytest.mark.parametrize(
        "body",
        [
            b'{"payload": "e30", "signatures": [1]}',
            b'{"payload": "e30", "signatures": [null, "x"]}',
        ],
    )
    def test_respond_non_object_signature_entry_is_unauthorized(
        self, site_app: FANApplication, body: bytes
    ) -> None:
        result = routes.handle_respond(site_app, body, JOSE_MIME)
        assert result.status == 401
        assert _json(result)["error"] == "SignatureInvalid"

    def test_site_routes_absent_without_authenticator(self, agent_app: FANApplication) -> None:
        assert routes.handle_issue_challenge(agent_app, "alice@fan.example.org").status == 404
        assert routes.handle_respond(agent_app, b"x", None).status == 404
