"""Agent-side document storage and publishing.

An Agent serves two kinds of signed documents: its own trust document at
``/fan.did`` and one document per user at
``/did-fan/user/<identifier>.did``. Storage drivers only load unsigned
documents and their modification time; :class:`DocumentPublisher` applies
``If-Modified-Since`` and seals the response envelope with every signing
key the Agent holds.

On-disk layout of :class:`FileSystemStorage`::

    <root>/fan.did.json                      (or fan.did.cbor)
    <root>/users/<percent-encoded id>.json   (or .cbor)
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol, Sequence, Union

from jwcrypto import jwk

from fan_auth.crypto.gateway import CryptoGateway
from fan_auth.did.document import DIDDocument
from fan_auth.did.mime import CBOR_MIME, JSON_MIME
from fan_auth.errors import DocumentNotFound
from fan_auth.httpdate import to_http_precision
from fan_auth.trust.envelope import seal_document

logger = logging.getLogger(__name__)

AGENT_DOCUMENT_STEM: str = "fan.did"
USERS_DIRECTORY: str = "users"

_ENCODED_NAME = re.compile(r"^(?:[A-Za-z0-9._\-]|%[0-9a-f]{2})+$")


class StorageDriver(Protocol):
    """Source of unsigned documents and their modification times."""

    def load(self, name: str) -> tuple[DIDDocument, datetime]:
        """Load the document for percent-encoded identifier *name*.

        Raises
        ------
        DocumentNotFound
            If no document exists for *name*.
        """
        ...

    def load_agent(self) -> tuple[DIDDocument, datetime]:
        """Load the Agent's own trust document."""
        ...


class FileSystemStorage:
    """Documents stored as JSON or CBOR files under *root*.

    Parameters
    ----------
    root:
        Storage root directory.
    cbor:
        Read ``.cbor`` files instead of ``.json``.
    """

    def __init__(self, root: Path | str, cbor: bool = False) -> None:
        self._root = Path(root)
        self._cbor = cbor

    @property
    def root(self) -> Path:
        return self._root

    @property
    def suffix(self) -> str:
        return ".cbor" if self._cbor else ".json"

    @property
    def content_type(self) -> str:
        return CBOR_MIME if self._cbor else JSON_MIME

    def agent_path(self) -> Path:
        return self._root / f"{AGENT_DOCUMENT_STEM}{self.suffix}"

    def user_path(self, name: str) -> Path:
        """Return the file for percent-encoded identifier *name*.

        Raises
        ------
        DocumentNotFound
            If *name* is not a canonical percent-encoded identifier, which
            also rules out path separators and ``..``.
        """
        if not _ENCODED_NAME.match(name) or name in (".", ".."):
            raise DocumentNotFound(f"No document for {name!r}")
        return self._root / USERS_DIRECTORY / f"{name}{self.suffix}"

    def load(self, name: str) -> tuple[DIDDocument, datetime]:
        return self._read(self.user_path(name))

    def load_agent(self) -> tuple[DIDDocument, datetime]:
        return self._read(self.agent_path())

    def store(self, name: str, document: DIDDocument) -> Path:
        """Write a user document; used by provisioning tools and tests."""
        path = self.user_path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(document.to_bytes(self.content_type))
        return path

    def store_agent(self, document: DIDDocument) -> Path:
        path = self.agent_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(document.to_bytes(self.content_type))
        return path

    def _read(self, path: Path) -> tuple[DIDDocument, datetime]:
        try:
            raw = path.read_bytes()
            mtime = path.stat().st_mtime
        except FileNotFoundError as exc:
            raise DocumentNotFound(f"No document at {path}") from exc
        document = DIDDocument.from_bytes(raw, self.content_type)
        return document, datetime.fromtimestamp(mtime, tz=timezone.utc)


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Modified:
    """A freshly sealed envelope and its ``Last-Modified`` time."""

    body: str
    last_modified: datetime


@dataclass(frozen=True)
class NotModified:
    """The client's copy is current."""

    last_modified: datetime


PublishResult = Union[Modified, NotModified]


class DocumentPublisher:
    """Seal stored documents for serving.

    Parameters
    ----------
    driver:
        Where documents are loaded from.
    signing_keys:
        Every private JWK the Agent signs with; these must correspond to
        the ``authentication`` methods of the Agent's trust document.
    gateway:
        JOSE gateway; a default one is created if omitted.
    """

    def __init__(
        self,
        driver: StorageDriver,
        signing_keys: Sequence[jwk.JWK],
        gateway: CryptoGateway | None = None,
    ) -> None:
        if not signing_keys:
            raise ValueError("DocumentPublisher needs at least one signing key")
        self._driver = driver
        self._signing_keys = list(signing_keys)
        self._gateway = gateway or CryptoGateway()

    def publish_agent(
        self,
        if_modified_since: Optional[datetime] = None,
        content_type: str = JSON_MIME,
    ) -> PublishResult:
        """Return the sealed Agent trust document, or :class:`NotModified`."""
        document, mtime = self._driver.load_agent()
        return self._seal(document, mtime, if_modified_since, content_type)

    def publish_user(
        self,
        name: str,
        if_modified_since: Optional[datetime] = None,
        content_type: str = JSON_MIME,
    ) -> PublishResult:
        """Return the sealed document for percent-encoded identifier *name*.

        Raises
        ------
        DocumentNotFound
            If the driver has no such document.
        UnsupportedMediaType
            If *content_type* has no codec.
        """
        document, mtime = self._driver.load(name)
        return self._seal(document, mtime, if_modified_since, content_type)

    def _seal(
        self,
        document: DIDDocument,
        mtime: datetime,
        if_modified_since: Optional[datetime],
        content_type: str,
    ) -> PublishResult:
        last_modified = to_http_precision(mtime)
        if if_modified_since is not None and last_modified <= to_http_precision(if_modified_since):
            return NotModified(last_modified=last_modified)
        body = seal_document(document, self._signing_keys, self._gateway, content_type)
        logger.debug("Sealed %s as %s", document.id, content_type)
        return Modified(body=body, last_modified=last_modified)


__all__ = [
    "AGENT_DOCUMENT_STEM",
    "DocumentPublisher",
    "FileSystemStorage",
    "Modified",
    "NotModified",
    "PublishResult",
    "StorageDriver",
    "USERS_DIRECTORY",
]
