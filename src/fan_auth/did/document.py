"""DIDDocument — the subset of the W3C DID Core data model FAN relies on.

A FAN document names its subject with a ``did:fan`` DID and lists the
verification methods (public JWKs) that may authenticate as, or invoke
capabilities for, that subject::

    {
      "@context": ["https://www.w3.org/ns/did/v1"],
      "id": "did:fan:fan.example.org:alice",
      "verificationMethod": [
        {"id": "did:fan:fan.example.org:alice#key-1",
         "type": "JsonWebKey2020",
         "controller": "did:fan:fan.example.org:alice",
         "publicKeyJwk": {"kty": "EC", "crv": "P-256", "x": "...", "y": "..."}}
      ],
      "authentication": ["#key-1"]
    }

Relative references (``#key-1``) are expanded against the document id,
and methods embedded directly in a relationship are folded into
``verification_method``. Documents built here carry their original bytes
and media type in ``raw`` / ``content_type``; those two fields are never
serialized.

Specification reference
-----------------------
https://www.w3.org/TR/did-core/#verification-relationships
"""
from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, Field, field_validator, model_validator

from fan_auth.did.identifier import DID, parse_did
from fan_auth.did.mime import DID_CONTEXT, JSON_MIME, codec_for
from fan_auth.errors import KeyNotFound, UnsupportedDid

AUTHENTICATION: str = "authentication"
ASSERTION_METHOD: str = "assertion_method"
CAPABILITY_INVOCATION: str = "capability_invocation"

_RELATIONSHIP_KEYS: dict[str, str] = {
    AUTHENTICATION: "authentication",
    ASSERTION_METHOD: "assertionMethod",
    CAPABILITY_INVOCATION: "capabilityInvocation",
}


# ------------------------------------------------------------------
# Verification method
# ------------------------------------------------------------------


@dataclass(frozen=True)
class VerificationMethod:
    """A public key attached to a DID document.

    This is a structural container; signature checks happen in
    :mod:`fan_auth.crypto.gateway`.

    Parameters
    ----------
    id:
        Absolute method id (e.g. ``did:fan:example.org:alice#key-1``).
    type:
        Method type, normally ``"JsonWebKey2020"``.
    controller:
        The DID that controls this key.
    public_key_jwk:
        The public key as a JWK dictionary. Private members are rejected.
    """

    id: str
    type: str
    controller: str
    public_key_jwk: dict[str, object] = field(hash=False)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("VerificationMethod.id must not be empty.")
        if not self.type:
            raise ValueError("VerificationMethod.type must not be empty.")
        if not self.public_key_jwk.get("kty"):
            raise ValueError(f"VerificationMethod {self.id!r} has no publicKeyJwk.kty")
        if "d" in self.public_key_jwk:
            raise ValueError(f"VerificationMethod {self.id!r} embeds private key material")

    def to_dict(self) -> dict[str, object]:
        """Serialize to a W3C-compatible plain dictionary."""
        return {
            "id": self.id,
            "type": self.type,
            "controller": self.controller,
            "publicKeyJwk": dict(self.public_key_jwk),
        }

    @classmethod
    def from_dict(cls, data: dict[str, object], document_id: str) -> "VerificationMethod":
        """Build a method from its DID Core dictionary form."""
        jwk = data.get("publicKeyJwk")
        if not isinstance(jwk, dict):
            raise ValueError(f"Verification method {data.get('id')!r} lacks publicKeyJwk")
        return cls(
            id=_absolute(str(data.get("id", "")), document_id),
            type=str(data.get("type", "JsonWebKey2020")),
            controller=str(data.get("controller", document_id)),
            public_key_jwk=dict(jwk),
        )


def _absolute(reference: str, document_id: str) -> str:
    if reference.startswith("#"):
        return f"{document_id}{reference}"
    return reference


# ------------------------------------------------------------------
# DID Document (Pydantic v2)
# ------------------------------------------------------------------


class DIDDocument(BaseModel):
    """A DID document for a ``did:fan`` subject.

    Parameters
    ----------
    context:
        JSON-LD context URIs. Defaults to the W3C DID v1 context.
    id:
        The subject DID.
    controller:
        Optional controlling DID(s).
    verification_method:
        Public keys, in document order.
    authentication:
        Method ids usable to authenticate as the subject.
    assertion_method:
        Method ids usable for assertions.
    capability_invocation:
        Method ids usable to invoke capabilities; the trust root for
        sovereign DIDs.
    raw:
        The exact bytes this document was decoded from (not serialized).
    content_type:
        The media type of ``raw`` (not serialized).
    """

    model_config = {"arbitrary_types_allowed": True, "frozen": True}

    context: list[str] = Field(default_factory=lambda: [DID_CONTEXT])
    id: str
    controller: str | list[str] | None = None
    verification_method: list[VerificationMethod] = Field(default_factory=list)
    authentication: list[str] = Field(default_factory=list)
    assertion_method: list[str] = Field(default_factory=list)
    capability_invocation: list[str] = Field(default_factory=list)
    raw: bytes = Field(default=b"", exclude=True, repr=False)
    content_type: str = Field(default=JSON_MIME, exclude=True)

    @field_validator("id")
    @classmethod
    def validate_did_format(cls, value: str) -> str:
        """Validate the document id is a well-formed did:fan DID."""
        try:
            parse_did(value)
        except UnsupportedDid as exc:
            raise ValueError(str(exc)) from exc
        return value

    @model_validator(mode="after")
    def validate_relationship_references(self) -> "DIDDocument":
        """Every relationship entry must name a declared verification method."""
        method_ids = {vm.id for vm in self.verification_method}
        if len(method_ids) != len(self.verification_method):
            raise ValueError("verification_method ids must be unique.")
        for relationship in _RELATIONSHIP_KEYS:
            for ref in getattr(self, relationship):
                if ref not in method_ids:
                    raise ValueError(
                        f"{relationship} reference {ref!r} does not match "
                        "any declared verification_method id."
                    )
        return self

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def subject_did(self) -> DID:
        """The parsed subject DID."""
        return parse_did(self.id)

    def resolve_verification_method(self, method_id: str) -> VerificationMethod | None:
        """Return the VerificationMethod with the given id, or None."""
        reference = _absolute(method_id, self.id)
        for method in self.verification_method:
            if method.id == reference:
                return method
        return None

    def methods_for(self, relationship: str) -> list[VerificationMethod]:
        """Return the methods a relationship references, in listed order.

        Raises
        ------
        KeyNotFound
            If *relationship* is unknown or references an undeclared method.
        """
        if relationship not in _RELATIONSHIP_KEYS:
            raise KeyNotFound(f"Unknown verification relationship {relationship!r}")
        methods: list[VerificationMethod] = []
        for ref in getattr(self, relationship):
            method = self.resolve_verification_method(ref)
            if method is None:
                raise KeyNotFound(f"{self.id}: {relationship} method {ref!r} not found")
            methods.append(method)
        return methods

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, object]:
        """Return the DID Core dictionary form (camelCase keys)."""
        data: dict[str, object] = {
            "@context": list(self.context),
            "id": self.id,
            "verificationMethod": [vm.to_dict() for vm in self.verification_method],
        }
        if self.controller is not None:
            data["controller"] = self.controller
        for relationship, key in _RELATIONSHIP_KEYS.items():
            refs = getattr(self, relationship)
            if refs:
                data[key] = list(refs)
        return data

    def to_bytes(self, content_type: str = JSON_MIME) -> bytes:
        """Serialize with the codec registered for *content_type*."""
        return codec_for(content_type).encode(self.to_dict())

    @classmethod
    def from_dict(
        cls,
        data: dict[str, object],
        raw: bytes = b"",
        content_type: str = JSON_MIME,
    ) -> "DIDDocument":
        """Build a document from its DID Core dictionary form.

        Raises
        ------
        ValueError
            If required members are missing or references are dangling.
        """
        document_id = data.get("id")
        if not isinstance(document_id, str):
            raise ValueError("DID document has no string 'id'.")

        methods = [
            VerificationMethod.from_dict(vm, document_id)
            for vm in _as_list(data.get("verificationMethod"))
            if isinstance(vm, dict)
        ]
        relationships: dict[str, list[str]] = {}
        for relationship, key in _RELATIONSHIP_KEYS.items():
            refs: list[str] = []
            for entry in _as_list(data.get(key)):
                if isinstance(entry, dict):
                    embedded = VerificationMethod.from_dict(entry, document_id)
                    if all(vm.id != embedded.id for vm in methods):
                        methods.append(embedded)
                    refs.append(embedded.id)
                else:
                    refs.append(_absolute(str(entry), document_id))
            relationships[relationship] = refs

        context = data.get("@context", [DID_CONTEXT])
        if isinstance(context, str):
            context = [context]
        elif not isinstance(context, list):
            raise ValueError("DID document '@context' must be a string or a list.")
        return cls(
            context=context,
            id=document_id,
            controller=data.get("controller"),  # type: ignore[arg-type]
            verification_method=methods,
            raw=raw,
            content_type=content_type,
            **relationships,
        )

    @classmethod
    def from_bytes(cls, raw: bytes, content_type: str) -> "DIDDocument":
        """Decode *raw* with the codec for *content_type*.

        Raises
        ------
        UnsupportedMediaType
            If the media type has no registered codec.
        ValueError
            If the bytes do not decode to a valid document.
        """
        codec = codec_for(content_type)
        return cls.from_dict(codec.decode(raw), raw=raw, content_type=codec.mime)


def _as_list(value: object) -> list[object]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


__all__ = [
    "ASSERTION_METHOD",
    "AUTHENTICATION",
    "CAPABILITY_INVOCATION",
    "DIDDocument",
    "VerificationMethod",
]
