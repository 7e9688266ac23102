"""fan_auth.resolver — fetch, verify, and cache DID documents.

Submodules
----------
cache
    DocumentCache and CacheEntry with revalidation policy.
fetch
    Fetcher protocol and the httpx-backed HTTPS transport.
resolver
    Resolver orchestrating fetch, trust verification, and caching.

Quick start
-----------
::

    from fan_auth.resolver import HttpxFetcher, Resolver

    with HttpxFetcher() as fetcher:
        document = Resolver(fetcher).resolve("alice@fan.example.org")
"""
from __future__ import annotations

from fan_auth.resolver.cache import CacheEntry, DocumentCache
from fan_auth.resolver.fetch import FetchResponse, Fetcher, HttpxFetcher
from fan_auth.resolver.resolver import Resolver

__all__ = [
    "CacheEntry",
    "DocumentCache",
    "FetchResponse",
    "Fetcher",
    "HttpxFetcher",
    "Resolver",
]
