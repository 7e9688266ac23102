"""User side of the challenge: decrypt the JWE and sign the nonce back."""
from __future__ import annotations

import logging

from jwcrypto import jwk

from fan_auth.challenge.payload import ChallengePayload
from fan_auth.crypto.gateway import CryptoGateway
from fan_auth.errors import DecryptionFailed

logger = logging.getLogger(__name__)


def read_challenge(jwe: str | bytes, private_key: jwk.JWK, gateway: CryptoGateway | None = None) -> ChallengePayload:
    """Decrypt a challenge without answering it.

    Raises
    ------
    DecryptionFailed
        If *private_key* is not a recipient or the plaintext is not a
        challenge payload.
    """
    gateway = gateway or CryptoGateway()
    plaintext = gateway.decrypt(jwe, private_key)
    try:
        return ChallengePayload.from_bytes(plaintext)
    except ValueError as exc:
        raise DecryptionFailed(f"Decrypted challenge is not a challenge payload: {exc}") from exc


def answer_challenge(jwe: str | bytes, private_key: jwk.JWK, gateway: CryptoGateway | None = None) -> str:
    """Decrypt *jwe* with *private_key* and return the signed response JWS.

    The response echoes ``data`` and ``identifier`` unchanged and is signed
    with the same key that decrypted the challenge.
    """
    gateway = gateway or CryptoGateway()
    payload = read_challenge(jwe, private_key, gateway)
    logger.debug("Answering challenge %s", payload.identifier)
    return gateway.sign_compact_jws(payload.to_bytes(), [private_key])


__all__ = ["answer_challenge", "read_challenge"]
