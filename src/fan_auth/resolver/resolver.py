"""Resolver — turns an address or DID into a verified DID document.

Standard path
-------------
1. Fetch ``https://<domain>/fan.did`` and verify the Agent's
   self-signature. Failure to fetch is :class:`AgentDocumentUnreachable`;
   failure to verify drops every cached document that Agent vouched for.
2. Consult the :class:`~fan_auth.resolver.cache.DocumentCache`. Unless the
   revalidation policy says otherwise, the cached document is returned.
3. Fetch the user lookup URL, conditionally when a cached copy exists. A
   304 keeps the cached document; a full response is verified against the
   Agent's ``authentication`` set from scratch and cached.

Sovereign path
--------------
Sovereign DIDs never touch the network. The document is obtained from an
injected ``sovereign_source`` callable, verified against its own
``capabilityInvocation`` keys, and then passed to an optional site policy.

The resolver never retries. Falling back to a cached document is only
done when ``fallback_to_cache`` is enabled and the refresh failed at the
transport level.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from fan_auth.audit import AuthenticationAuditLogger
from fan_auth.config import FANSettings
from fan_auth.did.document import DIDDocument
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
from fan_auth.errors import (
    AgentDocumentUnreachable,
    AgentUntrusted,
    FANError,
    FetchFailed,
    NoVerificationMethods,
    SubjectUntrusted,
    UnsupportedDid,
)
from fan_auth.resolver.cache import CacheEntry, DocumentCache
from fan_auth.resolver.fetch import Fetcher
from fan_auth.trust.verifier import TrustVerifier

logger = logging.getLogger(__name__)

SovereignSource = Callable[[DID], Optional[str]]
SovereignPolicy = Callable[[DIDDocument], bool]


class Resolver:
    """Resolve addresses to verified DID documents.

    Parameters
    ----------
    fetcher:
        The :class:`~fan_auth.resolver.fetch.Fetcher` used for all network
        access.
    verifier:
        Trust verifier; a default one is created if omitted.
    cache:
        Document cache; a fresh one honouring ``settings.cache_ttl`` is
        created if omitted.
    settings:
        Policy settings; defaults to :class:`~fan_auth.config.FANSettings`.
    sovereign_source:
        ``did -> jws`` lookup for sovereign documents, or ``None`` when the
        site has no out-of-band channel for them.
    sovereign_policy:
        ``document -> bool`` site gate applied to verified sovereign
        documents. ``None`` accepts every verified document.
    audit:
        Optional audit logger receiving ``document_resolved`` /
        ``resolution_failed`` events.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        verifier: TrustVerifier | None = None,
        cache: DocumentCache | None = None,
        settings: FANSettings | None = None,
        sovereign_source: SovereignSource | None = None,
        sovereign_policy: SovereignPolicy | None = None,
        audit: AuthenticationAuditLogger | None = None,
    ) -> None:
        self._settings = settings or FANSettings()
        self._fetcher = fetcher
        self._verifier = verifier or TrustVerifier()
        self._cache = cache if cache is not None else DocumentCache(ttl=self._settings.cache_ttl)
        self._sovereign_source = sovereign_source
        self._sovereign_policy = sovereign_policy
        self._audit = audit

    @property
    def cache(self) -> DocumentCache:
        return self._cache

    @property
    def settings(self) -> FANSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(self, address: Address | str) -> DIDDocument:
        """Resolve ``identifier@domain[:port]`` to a verified document.

        Raises
        ------
        MalformedAddress
            If *address* is a string that does not parse.
        FANError
            Any resolution or trust failure; see :meth:`resolve_did`.
        """
        if isinstance(address, str):
            address = parse_address(address)
        did = address_to_sovereign_did(address) if address.sovereign else address_to_did(address)
        return self.resolve_did(did)

    def resolve_did(self, did: DID | str) -> DIDDocument:
        """Resolve a DID to a verified document.

        Raises
        ------
        UnsupportedDid
            If *did* is malformed, or is sovereign and sovereign DIDs are
            disabled or have no source.
        AgentDocumentUnreachable
            If the Agent's ``/fan.did`` cannot be fetched.
        AgentUntrusted
            If the Agent's document fails its self-signature check.
        FetchFailed
            If the user document cannot be fetched.
        SubjectUntrusted
            If the user document is not signed by every Agent
            authentication key or describes a different DID.
        NoVerificationMethods
            If a required signer set is empty.
        """
        if isinstance(did, str):
            did = parse_did(did)
        try:
            if did.sovereign:
                document = self._resolve_sovereign(did)
            else:
                document = self._resolve_standard(did)
        except FANError as exc:
            logger.info("Resolution of %s failed: %s", did, exc)
            if self._audit is not None:
                self._audit.log_resolution(str(did), False, exc.kind)
            raise
        if self._audit is not None:
            self._audit.log_resolution(str(did), True, sovereign=did.sovereign)
        return document

    # ------------------------------------------------------------------
    # Standard path
    # ------------------------------------------------------------------

    def _resolve_standard(self, did: DID) -> DIDDocument:
        key = str(did)
        entry = self._cache.get(key)

        try:
            agent_doc, agent_last_modified = self._agent_document(did.domain, did.port)
        except AgentDocumentUnreachable as exc:
            if self._may_fall_back(entry, exc.__cause__):
                logger.warning("Agent for %s unreachable; using cached document", key)
                return entry.document  # type: ignore[union-attr]
            raise

        if entry is not None and not self._cache.should_revalidate(
            entry, agent_last_modified, always=self._settings.always_revalidate
        ):
            logger.debug("Serving %s from cache", key)
            return entry.document

        url = did_to_lookup_url(did)
        try:
            response = self._fetcher.fetch(url, entry.last_modified if entry is not None else None)
        except FetchFailed as exc:
            if self._may_fall_back(entry, exc):
                logger.warning("Refreshing %s failed; using cached document", key)
                return entry.document  # type: ignore[union-attr]
            raise

        if response.not_modified:
            if entry is None:
                raise FetchFailed(url, "304 Not Modified without a cached document", status=304)
            self._cache.put(key, entry)
            return entry.document

        document = self._verifier.verify_subject_signature(agent_doc, response.body)
        if document.subject_did != did:
            raise SubjectUntrusted(f"Document {document.id} was served for {key}")

        self._cache.put(
            key,
            CacheEntry(
                key=key,
                document=document,
                wrapped_jws=response.body.decode("utf-8"),
                last_modified=response.last_modified,
                agent_domain=did.domain,
                agent_port=did.port,
            ),
        )
        return document

    def _agent_document(
        self, domain: str, port: Optional[int]
    ) -> tuple[DIDDocument, Optional[datetime]]:
        url = agent_trust_url(domain, port)
        try:
            response = self._fetcher.fetch(url)
        except FetchFailed as exc:
            raise AgentDocumentUnreachable(f"Agent document at {url} unreachable: {exc.reason}") from exc
        if response.not_modified:
            raise AgentDocumentUnreachable(f"Agent document at {url} answered 304 to an unconditional GET")
        try:
            agent_doc = self._verifier.verify_agent_self_signature(domain, response.body)
        except (AgentUntrusted, NoVerificationMethods):
            self._cache.invalidate_agent(domain, port)
            raise
        return agent_doc, response.last_modified

    def _may_fall_back(self, entry: CacheEntry | None, cause: object) -> bool:
        """Fallback applies only to transport failures with a verified cached copy."""
        if entry is None or not self._settings.fallback_to_cache:
            return False
        return isinstance(cause, FetchFailed) and cause.status is None

    # ------------------------------------------------------------------
    # Sovereign path
    # ------------------------------------------------------------------

    def _resolve_sovereign(self, did: DID) -> DIDDocument:
        if not self._settings.allow_sovereign:
            raise UnsupportedDid(f"Sovereign DIDs are not accepted here: {did}")
        if self._sovereign_source is None:
            raise UnsupportedDid(f"No source configured for sovereign DID {did}")
        jws = self._sovereign_source(did)
        if jws is None:
            raise UnsupportedDid(f"No sovereign document available for {did}")

        document = self._verifier.verify_sovereign(jws)
        if document.subject_did != did:
            raise SubjectUntrusted(f"Sovereign document {document.id} does not describe {did}")
        if self._sovereign_policy is not None and not self._sovereign_policy(document):
            raise SubjectUntrusted(f"Sovereign DID {did} rejected by site policy")
        return document


__all__ = ["Resolver", "SovereignPolicy", "SovereignSource"]
