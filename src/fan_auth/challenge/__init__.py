"""fan_auth.challenge — challenge/response authentication.

Submodules
----------
attempt
    AuthenticationAttempt, AttemptStatus, and the compare-and-set AttemptStore.
authenticator
    ChallengeAuthenticator (Web Site side): issue and respond.
client
    answer_challenge (User side): decrypt and sign back.
payload
    The shared ``{data, identifier}`` payload.
"""
from __future__ import annotations

from fan_auth.challenge.attempt import AttemptStatus, AttemptStore, AuthenticationAttempt
from fan_auth.challenge.authenticator import ChallengeAuthenticator
from fan_auth.challenge.client import answer_challenge, read_challenge
from fan_auth.challenge.payload import ChallengePayload

__all__ = [
    "AttemptStatus",
    "AttemptStore",
    "AuthenticationAttempt",
    "ChallengeAuthenticator",
    "ChallengePayload",
    "answer_challenge",
    "read_challenge",
]
