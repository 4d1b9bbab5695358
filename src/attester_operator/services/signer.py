"""Signer capability and the key-material backend that produces it."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Protocol

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from ..utils.errors import ParseError


def compute_key_id(public_key: ed25519.Ed25519PublicKey) -> str:
    """Stable fingerprint of a public key: truncated hex SHA-256 of the raw bytes."""
    raw = public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return hashlib.sha256(raw).hexdigest()[:32]


@dataclass(frozen=True)
class Signer:
    """Signs and verifies payloads with one private key."""

    private_key: ed25519.Ed25519PrivateKey = field(repr=False, compare=False)
    key_id: str
    identity: str = ""

    def sign(self, data: bytes) -> bytes:
        return self.private_key.sign(data)

    def verify(self, data: bytes, signature: bytes) -> bool:
        try:
            self.private_key.public_key().verify(signature, data)
            return True
        except InvalidSignature:
            return False

    def public_key_pem(self) -> bytes:
        return self.private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )


class SignerBackend(Protocol):
    def new_signer(self, identity: str) -> tuple[Signer, bytes]: ...

    def parse_signer(self, key_material: bytes) -> Signer: ...


class Ed25519SignerBackend:
    """Generates and parses Ed25519 keys stored as unencrypted PKCS8 PEM."""

    def new_signer(self, identity: str) -> tuple[Signer, bytes]:
        """Generate a fresh key.

        Returns:
            The signer and the key material to persist
        """
        private_key = ed25519.Ed25519PrivateKey.generate()
        key_material = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        signer = Signer(
            private_key=private_key,
            key_id=compute_key_id(private_key.public_key()),
            identity=identity,
        )
        return signer, key_material

    def parse_signer(self, key_material: bytes) -> Signer:
        """Rebuild a signer from persisted key material.

        Raises:
            ParseError: If the material is empty, malformed, encrypted or not an Ed25519 key
        """
        if not key_material:
            raise ParseError("Key material is empty")

        try:
            private_key = serialization.load_pem_private_key(key_material, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise ParseError(f"Unable to load private key: {e}") from e

        if not isinstance(private_key, ed25519.Ed25519PrivateKey):
            raise ParseError(f"Unsupported key type {type(private_key).__name__}")

        return Signer(private_key=private_key, key_id=compute_key_id(private_key.public_key()))
