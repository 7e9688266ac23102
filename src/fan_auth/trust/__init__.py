"""Chain-of-custody verification for DID documents.

Submodules
----------
envelope
    Seal / open the signed ``{"document", "content-type"}`` envelope.
verifier
    TrustVerifier with agent, subject, and sovereign trust roots.

Quick start
-----------
::

    from fan_auth.trust import TrustVerifier

    verifier = TrustVerifier()
    agent_doc = verifier.verify_agent_self_signature("fan.example.org", agent_jws)
    user_doc = verifier.verify_subject_signature(agent_doc, user_jws)
"""
from __future__ import annotations

from fan_auth.trust.envelope import open_envelope, seal_bytes, seal_document
from fan_auth.trust.verifier import TrustVerifier

__all__ = [
    "TrustVerifier",
    "open_envelope",
    "seal_bytes",
    "seal_document",
]
