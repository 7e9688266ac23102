"""Route handler functions for the fan-auth HTTP server.

Each function takes the :class:`FANApplication` holding the components
for this server plus parsed request data, and returns a
:class:`RouteResult`. The HTTP handler in ``app.py`` only parses requests
and writes results.

A server may play either role or both: with a ``publisher`` it serves the
Agent paths, with a ``resolver`` and ``authenticator`` it serves the Web
Site ``/auth`` paths. Routes for an absent role answer 404.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, ValidationError

from fan_auth import __version__
from fan_auth.agent.storage import DocumentPublisher, Modified, PublishResult
from fan_auth.challenge.authenticator import ChallengeAuthenticator
from fan_auth.did.identifier import percent_decode, percent_encode
from fan_auth.did.mime import JOSE_MIME, negotiate
from fan_auth.errors import FANError, UnsupportedDid
from fan_auth.httpdate import format_http_date, parse_http_date
from fan_auth.resolver.resolver import Resolver
from fan_auth.server.models import (
    AuthResultResponse,
    ChallengeIssuedResponse,
    ErrorResponse,
    HealthResponse,
    RespondRequest,
)

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
ATTEMPT_HEADER = "X-FAN-Attempt"

ERROR_STATUS: dict[str, int] = {
    "MalformedAddress": 400,
    "MalformedPort": 400,
    "UnsupportedDid": 400,
    "UnsupportedMediaType": 406,
    "DecryptionFailed": 400,
    "DocumentNotFound": 404,
    "UnknownAttempt": 404,
    "AttemptExpired": 410,
    "SignatureInvalid": 401,
    "NonceMismatch": 401,
    "KeyNotFound": 422,
    "UnsupportedAlgorithm": 422,
    "NoVerificationMethods": 422,
    "AgentUntrusted": 502,
    "SubjectUntrusted": 502,
    "FetchFailed": 502,
    "AgentDocumentUnreachable": 502,
}


@dataclass
class RouteResult:
    """Status, body, and headers for one response."""

    status: int
    body: bytes = b""
    content_type: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class FANApplication:
    """Components a server instance routes to.

    Parameters
    ----------
    publisher:
        Agent role: seals stored documents for ``/fan.did`` and user lookups.
    resolver:
        Web Site role: resolves addresses before challenging them.
    authenticator:
        Web Site role: issues challenges and checks responses.
    """

    publisher: Optional[DocumentPublisher] = None
    resolver: Optional[Resolver] = None
    authenticator: Optional[ChallengeAuthenticator] = None

    @property
    def roles(self) -> list[str]:
        roles: list[str] = []
        if self.publisher is not None:
            roles.append("agent")
        if self.resolver is not None and self.authenticator is not None:
            roles.append("site")
        return roles


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def json_result(status: int, payload: BaseModel | dict[str, object], **headers: str) -> RouteResult:
    data = payload.model_dump() if isinstance(payload, BaseModel) else payload
    body = json.dumps(data, default=str).encode("utf-8")
    return RouteResult(status=status, body=body, content_type=JSON_CONTENT_TYPE, headers=dict(headers))


def error_result(exc: FANError) -> RouteResult:
    status = ERROR_STATUS.get(exc.kind, 500)
    return json_result(status, ErrorResponse(error=exc.kind, detail=exc.message))


def not_found(detail: str) -> RouteResult:
    return json_result(404, ErrorResponse(error="Not found", detail=detail))


def _published(result: PublishResult) -> RouteResult:
    headers = {"Last-Modified": format_http_date(result.last_modified)}
    if isinstance(result, Modified):
        return RouteResult(
            status=200,
            body=result.body.encode("utf-8"),
            content_type=JOSE_MIME,
            headers=headers,
        )
    return RouteResult(status=304, headers=headers)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def handle_health(app: FANApplication) -> RouteResult:
    """Handle GET /health."""
    response = HealthResponse(
        version=__version__,
        roles=app.roles,
        pending_attempts=len(app.authenticator.store) if app.authenticator is not None else None,
        cached_documents=len(app.resolver.cache) if app.resolver is not None else None,
    )
    return json_result(200, response)


def handle_agent_document(
    app: FANApplication,
    accept: Optional[str],
    if_modified_since: Optional[str],
) -> RouteResult:
    """Handle GET /fan.did."""
    if app.publisher is None:
        return not_found("This server does not act as an Agent")
    try:
        result = app.publisher.publish_agent(parse_http_date(if_modified_since), negotiate(accept))
    except FANError as exc:
        return error_result(exc)
    return _published(result)


def handle_user_document(
    app: FANApplication,
    encoded_identifier: str,
    accept: Optional[str],
    if_modified_since: Optional[str],
) -> RouteResult:
    """Handle GET /did-fan/user/<identifier>.did.

    The identifier is re-encoded so that ``%E7`` and ``%e7`` name the same
    document.
    """
    if app.publisher is None:
        return not_found("This server does not act as an Agent")
    try:
        name = percent_encode(percent_decode(encoded_identifier))
        result = app.publisher.publish_user(name, parse_http_date(if_modified_since), negotiate(accept))
    except UnsupportedDid:
        return not_found(f"No document for {encoded_identifier!r}")
    except FANError as exc:
        return error_result(exc)
    return _published(result)


def handle_issue_challenge(
    app: FANApplication,
    address: Optional[str],
    accept: Optional[str] = None,
) -> RouteResult:
    """Handle GET /auth?address=...

    Resolves the address, issues a challenge, and returns the JWE. Clients
    that accept ``application/json`` get a :class:`ChallengeIssuedResponse`.
    """
    if app.resolver is None or app.authenticator is None:
        return not_found("This server does not authenticate users")
    if not address:
        return json_result(422, ErrorResponse(error="Validation error", detail="address is required"))
    try:
        document = app.resolver.resolve(address)
        attempt, jwe = app.authenticator.issue(document)
    except FANError as exc:
        return error_result(exc)

    if accept and "application/json" in accept and JOSE_MIME not in accept:
        response = ChallengeIssuedResponse(
            attempt_id=attempt.attempt_id,
            subject_did=attempt.subject_did,
            expires_at=attempt.expires_at.isoformat(),
            challenge=jwe,
        )
        return json_result(200, response)
    return RouteResult(
        status=200,
        body=jwe.encode("utf-8"),
        content_type=JOSE_MIME,
        headers={ATTEMPT_HEADER: attempt.attempt_id},
    )


def handle_respond(
    app: FANApplication,
    body: bytes,
    content_type: Optional[str],
) -> RouteResult:
    """Handle POST /auth.

    The body is either the raw JWS (``application/jose``) or a JSON
    :class:`RespondRequest`.
    """
    if app.authenticator is None:
        return not_found("This server does not authenticate users")

    if content_type and content_type.split(";", 1)[0].strip().lower() == "application/json":
        try:
            request = RespondRequest.model_validate_json(body)
        except ValidationError as exc:
            return json_result(422, ErrorResponse(error="Validation error", detail=str(exc)))
        token = request.jws
    else:
        try:
            token = body.decode("utf-8").strip()
        except UnicodeDecodeError as exc:
            return json_result(400, ErrorResponse(error="Invalid body", detail=str(exc)))
        if not token:
            return json_result(422, ErrorResponse(error="Validation error", detail="empty response"))

    try:
        attempt = app.authenticator.respond(token)
    except FANError as exc:
        return error_result(exc)

    response = AuthResultResponse(
        authenticated=True,
        attempt_id=attempt.attempt_id,
        subject_did=attempt.subject_did,
        status=attempt.status.value,
    )
    return json_result(200, response)


__all__ = [
    "ATTEMPT_HEADER",
    "ERROR_STATUS",
    "FANApplication",
    "RouteResult",
    "error_result",
    "handle_agent_document",
    "handle_health",
    "handle_issue_challenge",
    "handle_respond",
    "handle_user_document",
    "json_result",
]
