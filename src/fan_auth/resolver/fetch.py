"""Fetch capability used by the resolver.

The resolver only depends on the :class:`Fetcher` protocol, so tests and
alternative transports can substitute their own implementation.
:class:`HttpxFetcher` is the production transport: HTTPS only, TLS 1.3
minimum, certificate-authority validation through the system trust store.
"""
from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol
from urllib.parse import urlsplit

import httpx

from fan_auth.did.mime import JOSE_MIME
from fan_auth.errors import FetchFailed
from fan_auth.httpdate import format_http_date, parse_http_date

logger = logging.getLogger(__name__)

NOT_MODIFIED: int = 304


@dataclass(frozen=True)
class FetchResponse:
    """Outcome of a successful (2xx or 304) fetch.

    Parameters
    ----------
    status:
        HTTP status code. ``304`` means the caller's copy is current and
        ``body`` is empty.
    body:
        Raw response body.
    content_type:
        Media type without parameters, or ``None`` when absent.
    last_modified:
        Parsed ``Last-Modified`` header, or ``None``.
    """

    status: int
    body: bytes = b""
    content_type: Optional[str] = None
    last_modified: Optional[datetime] = None

    @property
    def not_modified(self) -> bool:
        return self.status == NOT_MODIFIED

    def text(self) -> str:
        return self.body.decode("utf-8")


class Fetcher(Protocol):
    """Anything that can perform a (conditional) GET."""

    def fetch(self, url: str, if_modified_since: Optional[datetime] = None) -> FetchResponse:
        """Fetch *url*.

        Raises
        ------
        FetchFailed
            On transport errors or any status other than 2xx / 304.
        """
        ...


def tls13_context() -> ssl.SSLContext:
    """Default CA-validating context with TLS 1.3 as the floor."""
    context = ssl.create_default_context()
    context.minimum_version = ssl.TLSVersion.TLSv1_3
    return context


class HttpxFetcher:
    """:class:`Fetcher` backed by a synchronous :class:`httpx.Client`.

    Parameters
    ----------
    timeout:
        Per-request timeout in seconds.
    client:
        Pre-built client; when given, the caller owns its TLS settings.
        Tests pass a client over :class:`httpx.MockTransport`.
    require_https:
        Refuse any URL whose scheme is not ``https``.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
        require_https: bool = True,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(
            verify=tls13_context(),
            timeout=httpx.Timeout(timeout),
            follow_redirects=False,
        )
        self._require_https = require_https

    def fetch(self, url: str, if_modified_since: Optional[datetime] = None) -> FetchResponse:
        if self._require_https and urlsplit(url).scheme != "https":
            raise FetchFailed(url, "only https URLs may be fetched")

        headers = {"Accept": JOSE_MIME}
        if if_modified_since is not None:
            headers["If-Modified-Since"] = format_http_date(if_modified_since)

        try:
            response = self._client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Fetch of %s failed: %s", url, exc)
            raise FetchFailed(url, str(exc) or exc.__class__.__name__) from exc

        last_modified = parse_http_date(response.headers.get("Last-Modified"))
        if response.status_code == NOT_MODIFIED:
            logger.debug("%s not modified", url)
            return FetchResponse(status=NOT_MODIFIED, last_modified=last_modified)
        if not 200 <= response.status_code < 300:
            raise FetchFailed(url, f"HTTP {response.status_code}", status=response.status_code)

        content_type = response.headers.get("Content-Type")
        if content_type is not None:
            content_type = content_type.split(";", 1)[0].strip().lower() or None
        return FetchResponse(
            status=response.status_code,
            body=response.content,
            content_type=content_type,
            last_modified=last_modified,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpxFetcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["FetchResponse", "Fetcher", "HttpxFetcher", "NOT_MODIFIED", "tls13_context"]
