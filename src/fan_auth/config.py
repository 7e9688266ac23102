"""Runtime settings for fan-auth deployments.

Settings are a validated pydantic model. :func:`load_settings` layers
three sources, later ones winning:

1. field defaults;
2. an optional JSON file;
3. ``FAN_<FIELD_NAME>`` environment variables (e.g. ``FAN_NONCE_BYTES=48``).

Attempt expiry and cache TTL are deployment policy; the defaults below are
the values this package ships with.
"""
from __future__ import annotations

import json
import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

ENV_PREFIX: str = "FAN_"
MIN_NONCE_BYTES: int = 16


class FANSettings(BaseModel):
    """Policy and deployment knobs.

    Attributes
    ----------
    attempt_ttl_seconds:
        How long an issued challenge stays answerable.
    terminal_retention_seconds:
        How long a resolved attempt is kept so repeat responses are
        reported as unknown rather than silently dropped.
    nonce_bytes:
        Random bytes per challenge nonce; never fewer than 16.
    cache_ttl_seconds:
        Age after which a cached document is stale. ``None`` disables
        age-based staleness.
    always_revalidate:
        Refresh the subject document on every resolution (the
        authenticating Web Site policy).
    fallback_to_cache:
        On a transport-level failure while refreshing, use the previously
        verified cached document instead of failing.
    fetch_timeout_seconds:
        Per-request network timeout.
    allow_sovereign:
        Accept sovereign DIDs at all.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    attempt_ttl_seconds: float = Field(default=300.0, gt=0)
    terminal_retention_seconds: float = Field(default=60.0, ge=0)
    nonce_bytes: int = Field(default=32, ge=MIN_NONCE_BYTES)
    cache_ttl_seconds: Optional[float] = Field(default=None, gt=0)
    always_revalidate: bool = True
    fallback_to_cache: bool = False
    fetch_timeout_seconds: float = Field(default=10.0, gt=0)
    allow_sovereign: bool = False

    # Agent role
    storage_root: str = "/etc/fan/root"
    signing_key_path: str = "/etc/fan/signing.jwk"
    listen: str = "0.0.0.0:80"
    cbor: bool = False
    audit_log_path: Optional[str] = None

    @field_validator("cache_ttl_seconds", "audit_log_path", mode="before")
    @classmethod
    def _blank_is_none(cls, value: object) -> object:
        if isinstance(value, str) and value.strip().lower() in ("", "none", "null"):
            return None
        return value

    @property
    def attempt_ttl(self) -> timedelta:
        return timedelta(seconds=self.attempt_ttl_seconds)

    @property
    def terminal_retention(self) -> timedelta:
        return timedelta(seconds=self.terminal_retention_seconds)

    @property
    def cache_ttl(self) -> Optional[timedelta]:
        if self.cache_ttl_seconds is None:
            return None
        return timedelta(seconds=self.cache_ttl_seconds)


def _env_overrides(env: Mapping[str, str]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for name in FANSettings.model_fields:
        key = ENV_PREFIX + name.upper()
        if key in env:
            overrides[name] = env[key]
    return overrides


def load_settings(
    path: Optional[Path | str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> FANSettings:
    """Build :class:`FANSettings` from a JSON file and the environment.

    Parameters
    ----------
    path:
        Optional JSON file holding an object of settings.
    env:
        Environment mapping; defaults to :data:`os.environ`.

    Raises
    ------
    ValueError
        If the file is not a JSON object or any value fails validation.
    FileNotFoundError
        If *path* is given but does not exist.
    """
    values: dict[str, object] = {}
    if path is not None:
        content = Path(path).read_text(encoding="utf-8")
        try:
            loaded = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Settings file {path} is not valid JSON: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ValueError(f"Settings file {path} must contain a JSON object")
        values.update(loaded)

    values.update(_env_overrides(os.environ if env is None else env))
    try:
        settings = FANSettings(**values)
    except ValidationError as exc:
        raise ValueError(f"Invalid fan-auth settings: {exc}") from exc
    logger.debug("Loaded settings: %s", settings.model_dump())
    return settings


__all__ = ["ENV_PREFIX", "FANSettings", "MIN_NONCE_BYTES", "load_settings"]
