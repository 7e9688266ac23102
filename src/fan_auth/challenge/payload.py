"""Challenge payload shared by the Web Site and the User.

Both the encrypted challenge and the signed response carry the same JSON
object::

    {"data": "<base64(nonce)>", "identifier": "<attempt id>"}
"""
from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass

DATA_FIELD: str = "data"
IDENTIFIER_FIELD: str = "identifier"


@dataclass(frozen=True)
class ChallengePayload:
    """Decoded ``{data, identifier}`` pair.

    ``data`` is kept as the transmitted base64 text; :meth:`nonce` decodes it.
    """

    data: str
    identifier: str

    @classmethod
    def for_nonce(cls, nonce: bytes, identifier: str) -> "ChallengePayload":
        return cls(data=base64.b64encode(nonce).decode("ascii"), identifier=identifier)

    def nonce(self) -> bytes | None:
        """Return the decoded nonce, or ``None`` if ``data`` is not base64."""
        try:
            return base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError):
            return None

    def to_bytes(self) -> bytes:
        body = {DATA_FIELD: self.data, IDENTIFIER_FIELD: self.identifier}
        return json.dumps(body, separators=(",", ":"), sort_keys=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "ChallengePayload":
        """Parse a payload.

        Raises
        ------
        ValueError
            If *raw* is not a JSON object with string ``data`` and
            ``identifier`` members.
        """
        try:
            body = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValueError(f"Challenge payload is not JSON: {exc}") from exc
        if not isinstance(body, dict):
            raise ValueError("Challenge payload is not an object")
        data = body.get(DATA_FIELD)
        identifier = body.get(IDENTIFIER_FIELD)
        if not isinstance(data, str) or not isinstance(identifier, str) or not identifier:
            raise ValueError("Challenge payload needs string 'data' and 'identifier'")
        return cls(data=data, identifier=identifier)


__all__ = ["ChallengePayload", "DATA_FIELD", "IDENTIFIER_FIELD"]
