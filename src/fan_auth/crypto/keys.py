"""JWK generation, loading, and JOSE algorithm selection.

A thin layer over ``jwcrypto.jwk`` (which in turn uses the
``cryptography`` package). Keys are handled as :class:`jwcrypto.jwk.JWK`
objects everywhere above this module; the helpers here only decide which
JOSE algorithm a given key type uses.

=================  ==============  =================
Key                Signing alg     Key-wrapping alg
=================  ==============  =================
EC P-256           ES256           ECDH-ES+A256KW
EC P-384           ES384           ECDH-ES+A256KW
EC P-521           ES512           ECDH-ES+A256KW
EC secp256k1       ES256K          (unsupported)
OKP Ed25519        EdDSA           (unsupported)
OKP X25519         (unsupported)   ECDH-ES+A256KW
RSA                RS256           RSA-OAEP-256
=================  ==============  =================
"""
from __future__ import annotations

import json
from pathlib import Path

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from jwcrypto import jwk
from jwcrypto.common import JWException

from fan_auth.errors import UnsupportedAlgorithm

_EC_SIGNING_ALGS: dict[str, str] = {
    "P-256": "ES256",
    "P-384": "ES384",
    "P-521": "ES512",
    "secp256k1": "ES256K",
}
_ECDH_CURVES = frozenset({"P-256", "P-384", "P-521", "X25519", "X448"})

SUPPORTED_CURVES: tuple[str, ...] = ("P-256", "P-384", "P-521", "secp256k1", "Ed25519")


def key_params(key: jwk.JWK) -> dict[str, object]:
    """Return the public JWK members of *key* as a plain dictionary."""
    return key.export_public(as_dict=True)


def signing_algorithm(key: jwk.JWK) -> str:
    """Return the JWS ``alg`` to use with *key*.

    An explicit ``alg`` member on the key wins over the type-based default.

    Raises
    ------
    UnsupportedAlgorithm
        If the key type has no supported signing algorithm.
    """
    params = key_params(key)
    explicit = params.get("alg")
    if isinstance(explicit, str) and explicit:
        return explicit
    kty = params.get("kty")
    crv = params.get("crv")
    if kty == "EC" and crv in _EC_SIGNING_ALGS:
        return _EC_SIGNING_ALGS[str(crv)]
    if kty == "OKP" and crv in ("Ed25519", "Ed448"):
        return "EdDSA"
    if kty == "RSA":
        return "RS256"
    raise UnsupportedAlgorithm(f"No JWS algorithm for key type kty={kty!r} crv={crv!r}")


def wrapping_algorithm(key: jwk.JWK) -> str:
    """Return the JWE key-management ``alg`` to use when encrypting to *key*.

    Raises
    ------
    UnsupportedAlgorithm
        If the key cannot be used as an encryption recipient.
    """
    params = key_params(key)
    kty = params.get("kty")
    crv = params.get("crv")
    if kty in ("EC", "OKP") and crv in _ECDH_CURVES:
        return "ECDH-ES+A256KW"
    if kty == "RSA":
        return "RSA-OAEP-256"
    raise UnsupportedAlgorithm(f"Key type kty={kty!r} crv={crv!r} cannot receive a JWE")


def key_id(key: jwk.JWK) -> str:
    """Return the key's ``kid``, falling back to its RFC 7638 thumbprint."""
    kid = key_params(key).get("kid")
    if isinstance(kid, str) and kid:
        return kid
    return key.thumbprint()


_CURVE_FACTORIES = {
    "P-256": ec.SECP256R1,
    "P-384": ec.SECP384R1,
    "P-521": ec.SECP521R1,
    "secp256k1": ec.SECP256K1,
}


def generate_signing_jwk(curve: str = "P-256", kid: str | None = None) -> jwk.JWK:
    """Generate a new private JWK suitable for signing (and, for EC, encryption).

    Key material comes from ``cryptography``; ``jwcrypto`` only wraps it.

    Parameters
    ----------
    curve:
        One of :data:`SUPPORTED_CURVES`.
    kid:
        Optional key id; defaults to the key thumbprint.
    """
    if curve not in SUPPORTED_CURVES:
        raise UnsupportedAlgorithm(f"Unsupported curve {curve!r}")
    if curve == "Ed25519":
        private_key = Ed25519PrivateKey.generate()
    else:
        private_key = ec.generate_private_key(_CURVE_FACTORIES[curve]())
    key = jwk.JWK.from_pyca(private_key)
    params = key.export_private(as_dict=True)
    params["kid"] = kid or key.thumbprint()
    return jwk.JWK(**params)


def public_jwk(key: jwk.JWK) -> dict[str, object]:
    """Return the public half of *key* as a JWK dictionary, including ``kid``."""
    params = key_params(key)
    params.setdefault("kid", key_id(key))
    return params


def load_jwk(path: Path) -> jwk.JWK:
    """Load a JWK (public or private) from a JSON file.

    Raises
    ------
    ValueError
        If the file does not hold a single valid JWK.
    """
    keys = load_jwks(path)
    if len(keys) != 1:
        raise ValueError(f"{path} holds {len(keys)} keys, expected exactly one")
    return keys[0]


def load_jwks(path: Path) -> list[jwk.JWK]:
    """Load one JWK or a ``{"keys": [...]}`` JWK set from a JSON file.

    Raises
    ------
    ValueError
        If the file is not JSON or an entry is not a valid JWK.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    entries = data["keys"] if isinstance(data, dict) and isinstance(data.get("keys"), list) else [data]
    try:
        return [jwk.JWK(**entry) for entry in entries]
    except (JWException, TypeError) as exc:
        raise ValueError(f"{path} does not contain a valid JWK: {exc}") from exc


__all__ = [
    "SUPPORTED_CURVES",
    "generate_signing_jwk",
    "key_id",
    "key_params",
    "load_jwk",
    "load_jwks",
    "public_jwk",
    "signing_algorithm",
    "wrapping_algorithm",
]
