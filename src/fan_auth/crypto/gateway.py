"""CryptoGateway — the narrow JOSE interface every other component uses.

All signature and cipher work is delegated to ``jwcrypto``; this module
only decides serialization forms and turns library exceptions into the
fan-auth error taxonomy.

Serialization
-------------
* A JWS signed by one key is emitted in compact form. A JWS signed by
  several keys is emitted in the general JSON serialization, the only
  JOSE form that carries several signatures over one payload. Both are
  served as ``application/jose``.
* A JWE encrypted to one key is compact; to several keys, general JSON.

Parsing is split from verification: :meth:`CryptoGateway.decode_jws`
returns an :class:`UnverifiedJws` whose payload must not be trusted until
one of :meth:`verify_all` / :meth:`verify_any` has accepted it.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from jwcrypto import jwe, jwk, jws
from jwcrypto.common import JWException, base64url_decode, json_encode

from fan_auth.crypto.keys import key_id, signing_algorithm, wrapping_algorithm
from fan_auth.did.document import VerificationMethod
from fan_auth.errors import (
    DecryptionFailed,
    KeyNotFound,
    SignatureInvalid,
    UnsupportedAlgorithm,
)

logger = logging.getLogger(__name__)

CONTENT_ENCRYPTION: str = "A256GCM"


# ---------------------------------------------------------------------------
# Parsed-but-unverified JWS
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class JwsSignature:
    """One signature of a JWS, kept in its base64url wire form.

    Parameters
    ----------
    protected:
        The base64url protected-header segment.
    signature:
        The base64url signature segment.
    header:
        Decoded protected header merged with any unprotected header; for
        information only (``alg``, ``kid``).
    """

    protected: str
    signature: str
    header: dict[str, object]

    @property
    def kid(self) -> str | None:
        value = self.header.get("kid")
        return value if isinstance(value, str) else None


@dataclass(frozen=True)
class UnverifiedJws:
    """A JWS that has been parsed but NOT verified.

    ``payload`` is attacker-controlled until a verification step accepts
    one or more of ``signatures``.
    """

    payload: bytes
    payload_segment: str
    signatures: tuple[JwsSignature, ...]

    def compact_for(self, signature: JwsSignature) -> str:
        """Return the compact serialization of a single signature."""
        return f"{signature.protected}.{self.payload_segment}.{signature.signature}"


def _decode_header(segment: str) -> dict[str, object]:
    header = json.loads(base64url_decode(segment).decode("utf-8"))
    if not isinstance(header, dict):
        raise ValueError("JOSE header is not an object")
    return header


def _parse_signature(entry: object) -> JwsSignature:
    if not isinstance(entry, dict):
        raise ValueError("signature entry is not an object")
    protected = entry.get("protected")
    signature = entry.get("signature")
    if not isinstance(protected, str) or not isinstance(signature, str):
        raise ValueError("signature entry needs 'protected' and 'signature'")
    header = _decode_header(protected)
    unprotected = entry.get("header")
    if isinstance(unprotected, dict):
        header = {**unprotected, **header}
    return JwsSignature(protected=protected, signature=signature, header=header)


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class CryptoGateway:
    """JOSE sign / verify / encrypt / decrypt over ``jwcrypto``.

    The gateway holds no key material of its own; every operation takes
    the keys it needs as arguments.

    Example
    -------
    ::

        gateway = CryptoGateway()
        token = gateway.sign_compact_jws(b"payload", [private_key])
        decoded = gateway.decode_jws(token)
        assert gateway.verify_any(decoded, [method])
    """

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    @staticmethod
    def key_for(method: VerificationMethod) -> jwk.JWK:
        """Return the public JWK of a verification method.

        Raises
        ------
        KeyNotFound
            If the method's JWK cannot be loaded.
        """
        try:
            return jwk.JWK(**method.public_key_jwk)
        except (JWException, ValueError, TypeError) as exc:
            raise KeyNotFound(f"Unusable key in verification method {method.id!r}: {exc}") from exc

    # ------------------------------------------------------------------
    # JWS
    # ------------------------------------------------------------------

    def sign_compact_jws(self, payload: bytes, private_keys: Sequence[jwk.JWK]) -> str:
        """Sign *payload* with every key in *private_keys*.

        Raises
        ------
        KeyNotFound
            If no signing key is supplied or a key has no private half.
        UnsupportedAlgorithm
            If a key type has no JWS algorithm.
        """
        if not private_keys:
            raise KeyNotFound("No signing keys supplied")
        token = jws.JWS(payload)
        for key in private_keys:
            if not key.has_private:
                raise KeyNotFound(f"Key {key_id(key)!r} has no private material")
            protected = {"alg": signing_algorithm(key), "kid": key_id(key)}
            try:
                token.add_signature(key, None, json_encode(protected))
            except JWException as exc:
                raise UnsupportedAlgorithm(f"Cannot sign with key {key_id(key)!r}: {exc}") from exc
        if len(private_keys) == 1:
            return token.serialize(compact=True)
        return token.serialize()

    def decode_jws(self, token: str | bytes) -> UnverifiedJws:
        """Parse a compact, flattened, or general JSON JWS without verifying it.

        Raises
        ------
        SignatureInvalid
            If *token* is not a structurally valid JWS.
        """
        try:
            text = token.decode("utf-8") if isinstance(token, bytes) else token
            text = text.strip()
            if text.startswith("{"):
                data = json.loads(text)
                if not isinstance(data, dict):
                    raise ValueError("JWS JSON serialization must be an object")
                payload_segment = data.get("payload")
                if not isinstance(payload_segment, str):
                    raise ValueError("JWS has no payload")
                entries = data.get("signatures")
                if entries is None:
                    entries = [data]
                if not isinstance(entries, list) or not entries:
                    raise ValueError("JWS has no signatures")
                signatures = tuple(_parse_signature(entry) for entry in entries)
            else:
                parts = text.split(".")
                if len(parts) != 3:
                    raise ValueError(f"expected 3 compact segments, got {len(parts)}")
                payload_segment = parts[1]
                signatures = (
                    JwsSignature(
                        protected=parts[0],
                        signature=parts[2],
                        header=_decode_header(parts[0]),
                    ),
                )
            payload = base64url_decode(payload_segment)
        except (ValueError, TypeError, UnicodeDecodeError) as exc:
            raise SignatureInvalid(f"Malformed JWS: {exc}") from exc
        return UnverifiedJws(
            payload=payload,
            payload_segment=payload_segment,
            signatures=signatures,
        )

    def verify_signature(self, decoded: UnverifiedJws, signature: JwsSignature, key: jwk.JWK) -> bool:
        """Return ``True`` iff *signature* over the payload validates with *key*.

        The signature's ``alg`` must match the algorithm implied by the key.
        Unknown or mismatched algorithms count as an invalid signature.
        """
        try:
            expected_alg = signing_algorithm(key)
        except UnsupportedAlgorithm:
            return False
        if signature.header.get("alg") != expected_alg:
            return False
        verifier = jws.JWS()
        try:
            verifier.deserialize(decoded.compact_for(signature))
            verifier.verify(key, alg=expected_alg)
        except (JWException, ValueError, TypeError) as exc:
            logger.debug("Signature with kid=%s rejected: %s", signature.kid, exc)
            return False
        return True

    def signed_by(self, decoded: UnverifiedJws, method: VerificationMethod) -> bool:
        """Return ``True`` iff any signature on *decoded* validates with *method*."""
        key = self.key_for(method)
        return any(self.verify_signature(decoded, sig, key) for sig in decoded.signatures)

    def verify_all(self, decoded: UnverifiedJws, methods: Iterable[VerificationMethod]) -> bool:
        """AND-reduction: every method must have produced a valid signature.

        Callers must reject an empty *methods* sequence themselves; this
        method returns ``False`` for it rather than vacuous truth.
        """
        required = list(methods)
        if not required:
            return False
        return all(self.signed_by(decoded, method) for method in required)

    def verify_any(self, decoded: UnverifiedJws, methods: Iterable[VerificationMethod]) -> bool:
        """OR-reduction: at least one method produced a valid signature."""
        return any(self.signed_by(decoded, method) for method in methods)

    # ------------------------------------------------------------------
    # JWE
    # ------------------------------------------------------------------

    def encrypt_to_key_set(self, payload: bytes, keys: Sequence[jwk.JWK]) -> str:
        """Encrypt *payload* so that any one of *keys* can decrypt it.

        Raises
        ------
        KeyNotFound
            If *keys* is empty.
        UnsupportedAlgorithm
            If a key cannot be used as a JWE recipient.
        """
        if not keys:
            raise KeyNotFound("No recipient keys supplied")
        try:
            if len(keys) == 1:
                key = keys[0]
                protected = {
                    "alg": wrapping_algorithm(key),
                    "enc": CONTENT_ENCRYPTION,
                    "kid": key_id(key),
                }
                token = jwe.JWE(payload, json_encode(protected))
                token.add_recipient(key)
                return token.serialize(compact=True)

            token = jwe.JWE(payload, json_encode({"enc": CONTENT_ENCRYPTION}))
            for key in keys:
                header = {"alg": wrapping_algorithm(key), "kid": key_id(key)}
                token.add_recipient(key, json_encode(header))
            return token.serialize()
        except JWException as exc:
            raise UnsupportedAlgorithm(f"JWE encryption failed: {exc}") from exc

    def decrypt(self, token: str | bytes, private_key: jwk.JWK) -> bytes:
        """Decrypt a JWE with *private_key* (User side only).

        Raises
        ------
        DecryptionFailed
            If the token is malformed or the key is not a recipient.
        """
        envelope = jwe.JWE()
        try:
            text = token.decode("utf-8") if isinstance(token, bytes) else token
            envelope.deserialize(text.strip(), key=private_key)
        except (JWException, ValueError, TypeError) as exc:
            raise DecryptionFailed(f"JWE decryption failed: {exc}") from exc
        return envelope.plaintext

    # ------------------------------------------------------------------
    # Method helpers
    # ------------------------------------------------------------------

    def keys_for(self, methods: Iterable[VerificationMethod]) -> list[jwk.JWK]:
        """Return the public JWK of each method, in order."""
        return [self.key_for(method) for method in methods]


__all__ = [
    "CONTENT_ENCRYPTION",
    "CryptoGateway",
    "JwsSignature",
    "UnverifiedJws",
]
