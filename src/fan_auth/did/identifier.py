"""Identifier codec — addresses, ``did:fan`` DIDs, and lookup URLs.

Address format
--------------
::

    identifier@domain[:port]

The *last* ``@`` separates the identifier from the domain, so identifiers
may themselves contain ``@``. Domains are normalised with IDNA (UTS #46
mapping) to their ASCII form.

DID format
----------
::

    did:fan:<domain>[%3F<port>]:<percent-encoded identifier>
    did:fan:_sovereign_:<percent-encoded identifier>

Examples::

    alice@fan.example.org       -> did:fan:fan.example.org:alice
    alice@fan.example.org:5309  -> did:fan:fan.example.org%3F5309:alice
    無爲@example.com             -> did:fan:example.com:%e7%84%a1%e7%88%b2

Every function in this module is pure; none performs network I/O.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import ClassVar

import idna

from fan_auth.errors import MalformedAddress, MalformedPort, UnsupportedDid

DID_METHOD: str = "fan"
SOVEREIGN_DOMAIN: str = "_sovereign_"

AGENT_TRUST_PATH: str = "/fan.did"
USER_LOOKUP_PREFIX: str = "/did-fan/user/"
USER_LOOKUP_SUFFIX: str = ".did"

# DID idchar minus the percent escape: ALPHA / DIGIT / "." / "-" / "_"
_UNRESERVED = frozenset(
    b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789.-_"
)
_PORT_PATTERN = re.compile(r"^(0|[1-9][0-9]*)$")
_ENCODED_IDENTIFIER_PATTERN = re.compile(r"^(?:[A-Za-z0-9._\-]|%[0-9A-Fa-f]{2})+$")
_PORT_SEPARATOR = re.compile(r"%3f", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Address:
    """A human-facing ``identifier@domain[:port]`` address.

    Parameters
    ----------
    identifier:
        The user part; any non-empty Unicode string.
    domain:
        IDNA-normalised ASCII domain, or ``_sovereign_``.
    port:
        Optional TCP port of the Agent serving this domain.
    """

    identifier: str
    domain: str
    port: int | None = None

    @property
    def sovereign(self) -> bool:
        """``True`` when this address names a self-asserted identity."""
        return self.domain == SOVEREIGN_DOMAIN

    def __str__(self) -> str:
        suffix = f":{self.port}" if self.port is not None else ""
        return f"{self.identifier}@{self.domain}{suffix}"


@dataclass(frozen=True)
class DID:
    """An immutable ``did:fan`` identifier.

    Parameters
    ----------
    domain:
        The Agent's domain, or ``_sovereign_`` for self-asserted DIDs.
    identifier:
        The percent-encoded (lowercase hex) ASCII identifier.
    port:
        Optional Agent port.
    sovereign:
        ``True`` when the DID is self-asserted and never looked up over
        the network.
    """

    domain: str
    identifier: str
    port: int | None = None
    sovereign: bool = False

    method: ClassVar[str] = DID_METHOD

    def __str__(self) -> str:
        domain = self.domain
        if self.port is not None:
            domain = f"{domain}%3F{self.port}"
        return f"did:{self.method}:{domain}:{self.identifier}"

    @property
    def decoded_identifier(self) -> str:
        """Return the identifier with percent-escapes decoded."""
        return percent_decode(self.identifier)

    def to_address(self) -> Address:
        """Return the :class:`Address` this DID was derived from."""
        return Address(identifier=self.decoded_identifier, domain=self.domain, port=self.port)


# ---------------------------------------------------------------------------
# Percent encoding
# ---------------------------------------------------------------------------


def percent_encode(identifier: str) -> str:
    """Percent-encode *identifier* to DID-safe ASCII using lowercase hex."""
    out: list[str] = []
    for byte in identifier.encode("utf-8"):
        if byte in _UNRESERVED:
            out.append(chr(byte))
        else:
            out.append(f"%{byte:02x}")
    return "".join(out)


def percent_decode(encoded: str) -> str:
    """Inverse of :func:`percent_encode`.

    Raises
    ------
    UnsupportedDid
        If *encoded* contains characters outside the DID identifier grammar
        or the escapes do not decode to UTF-8.
    """
    if not _ENCODED_IDENTIFIER_PATTERN.match(encoded):
        raise UnsupportedDid(f"Invalid DID identifier segment {encoded!r}")
    raw = bytearray()
    index = 0
    while index < len(encoded):
        char = encoded[index]
        if char == "%":
            raw.append(int(encoded[index + 1 : index + 3], 16))
            index += 3
        else:
            raw.append(ord(char))
            index += 1
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise UnsupportedDid(f"DID identifier {encoded!r} is not UTF-8: {exc}") from exc


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def normalize_domain(domain: str, raw: str | None = None) -> str:
    """Return the IDNA (UTS #46) ASCII form of *domain*.

    Raises
    ------
    MalformedAddress
        If the domain is empty or fails IDNA validation.
    """
    source = raw if raw is not None else domain
    if domain == SOVEREIGN_DOMAIN:
        return domain
    if not domain:
        raise MalformedAddress(source, "domain is empty")
    try:
        return idna.encode(domain, uts46=True).decode("ascii")
    except (idna.IDNAError, UnicodeError) as exc:
        raise MalformedAddress(source, f"domain fails IDNA validation: {exc}") from exc


def parse_port(text: str, raw: str) -> int:
    """Parse a decimal port with no leading zeros in ``[0, 65535]``."""
    if not _PORT_PATTERN.match(text):
        raise MalformedPort(raw, f"port {text!r} is not a canonical decimal integer")
    port = int(text)
    if port > 65535:
        raise MalformedPort(raw, f"port {port} is out of range")
    return port


def parse_address(raw: str) -> Address:
    """Parse ``identifier@domain[:port]`` into an :class:`Address`.

    Raises
    ------
    MalformedAddress
        If there is no ``@``, the identifier is empty, or the domain is
        not a valid IDNA domain.
    MalformedPort
        If a ``:port`` suffix is present but invalid.
    """
    identifier, sep, host = raw.rpartition("@")
    if not sep:
        raise MalformedAddress(raw, "missing '@' separator")
    if not identifier:
        raise MalformedAddress(raw, "identifier is empty")

    port: int | None = None
    domain = host
    if ":" in host:
        domain, _, port_text = host.rpartition(":")
        port = parse_port(port_text, raw)

    return Address(identifier=identifier, domain=normalize_domain(domain, raw), port=port)


def parse_did(text: str) -> DID:
    """Parse a ``did:fan`` string into a :class:`DID`.

    Percent-escapes in the identifier are normalised to lowercase hex, so
    two spellings of the same identifier compare equal.

    Raises
    ------
    UnsupportedDid
        If *text* is not a well-formed ``did:fan`` DID.
    """
    prefix = f"did:{DID_METHOD}:"
    if not text.startswith(prefix):
        raise UnsupportedDid(f"Not a did:{DID_METHOD} DID: {text!r}")
    domain_part, sep, encoded = text[len(prefix):].rpartition(":")
    if not sep or not domain_part or not encoded:
        raise UnsupportedDid(f"Malformed DID {text!r}: expected did:fan:<domain>:<identifier>")

    identifier = percent_encode(percent_decode(encoded))
    if domain_part == SOVEREIGN_DOMAIN:
        return DID(domain=SOVEREIGN_DOMAIN, identifier=identifier, sovereign=True)

    port: int | None = None
    pieces = _PORT_SEPARATOR.split(domain_part)
    if len(pieces) > 2:
        raise UnsupportedDid(f"Malformed DID {text!r}: repeated port separator")
    if len(pieces) == 2:
        domain_part = pieces[0]
        try:
            port = parse_port(pieces[1], text)
        except MalformedPort as exc:
            raise UnsupportedDid(f"Malformed DID {text!r}: {exc.reason}") from exc
    try:
        domain = normalize_domain(domain_part, text)
    except MalformedAddress as exc:
        raise UnsupportedDid(f"Malformed DID {text!r}: {exc.reason}") from exc
    return DID(domain=domain, identifier=identifier, port=port)


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def address_to_did(address: Address) -> DID:
    """Translate an :class:`Address` to its ``did:fan`` DID.

    Addresses on the ``_sovereign_`` pseudo-domain produce sovereign DIDs.
    """
    if address.sovereign:
        return address_to_sovereign_did(address)
    return DID(
        domain=address.domain,
        identifier=percent_encode(address.identifier),
        port=address.port,
    )


def address_to_sovereign_did(address: Address) -> DID:
    """Translate an :class:`Address` to a self-asserted sovereign DID."""
    return DID(
        domain=SOVEREIGN_DOMAIN,
        identifier=percent_encode(address.identifier),
        sovereign=True,
    )


def _origin(domain: str, port: int | None) -> str:
    if port is None:
        return f"https://{domain}"
    return f"https://{domain}:{port}"


def did_to_lookup_url(did: DID) -> str:
    """Return the HTTPS URL where *did*'s document is published.

    Raises
    ------
    UnsupportedDid
        If *did* is sovereign; sovereign DIDs are never looked up over
        the network.
    """
    if did.sovereign:
        raise UnsupportedDid(f"Sovereign DID {did} has no network lookup URL")
    return f"{_origin(did.domain, did.port)}{lookup_path(did.identifier)}"


def lookup_path(encoded_identifier: str) -> str:
    """Return the served path for a percent-encoded identifier."""
    return f"{USER_LOOKUP_PREFIX}{encoded_identifier}{USER_LOOKUP_SUFFIX}"


def agent_trust_url(domain: str, port: int | None = None) -> str:
    """Return the URL of the Agent trust document for *domain*."""
    return f"{_origin(domain, port)}{AGENT_TRUST_PATH}"


__all__ = [
    "AGENT_TRUST_PATH",
    "Address",
    "DID",
    "DID_METHOD",
    "SOVEREIGN_DOMAIN",
    "USER_LOOKUP_PREFIX",
    "USER_LOOKUP_SUFFIX",
    "address_to_did",
    "address_to_sovereign_did",
    "agent_trust_url",
    "did_to_lookup_url",
    "lookup_path",
    "normalize_domain",
    "parse_address",
    "parse_did",
    "percent_decode",
    "percent_encode",
]
