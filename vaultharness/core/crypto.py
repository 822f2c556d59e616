"""
vaultharness/core/crypto.py

Client identity keys.

Key contracts:
    SecretKeys              : Ed25519 signing key + X25519 encryption key
    SecretKeys.public_keys  : @property → PublicKeys (NO parentheses)
    PublicKeys.name         : @property → XorName = SHA3-256(raw sign key)
    client_name_from_key(k) : same derivation, from the sign key alone

The name derivation is shared network-wide: any participant holding only
the public signing key recomputes the client manager address.

Keys may be drawn from a caller-supplied random.Random so that a whole
simulated run is reproducible from one seed.
"""

import random
import secrets
from dataclasses import dataclass, field
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from vaultharness.core.xor_name import XorName

_KEY_LEN = 32


@dataclass(frozen=True, order=True)
class PublicSignKey:
    """Raw 32-byte Ed25519 public key. Ordered so sets of keys sort stably."""

    raw: bytes

    def __post_init__(self) -> None:
        if len(self.raw) != _KEY_LEN:
            raise ValueError(
                f"Ed25519 public key must be {_KEY_LEN} bytes, got {len(self.raw)}"
            )

    @property
    def hex(self) -> str:
        return self.raw.hex()

    def verify(self, data: bytes, signature: bytes) -> bool:
        """
        Verify an Ed25519 signature over data.
        Returns False for ANY failure. Never raises.
        """
        try:
            Ed25519PublicKey.from_public_bytes(self.raw).verify(signature, data)
            return True
        except (InvalidSignature, ValueError):
            return False

    def __repr__(self) -> str:
        return f"PublicSignKey({self.raw.hex()[:16]}...)"


@dataclass(frozen=True, order=True)
class PublicEncryptKey:
    """Raw 32-byte X25519 public key."""

    raw: bytes

    def __repr__(self) -> str:
        return f"PublicEncryptKey({self.raw.hex()[:16]}...)"


def client_name_from_key(key: PublicSignKey) -> XorName:
    """The client manager address for a signing key."""
    return XorName.from_content(key.raw)


@dataclass(frozen=True)
class PublicKeys:
    """Public half of a client identity."""

    sign_key:    PublicSignKey
    encrypt_key: PublicEncryptKey = field(compare=False)

    @property
    def name(self) -> XorName:
        return client_name_from_key(self.sign_key)


class SecretKeys:
    """
    Full client identity.

    Public surface:
        SecretKeys.generate(rng=None)   → new identity
        SecretKeys.from_seed(seed)      → deterministic identity from 32 bytes

        keys.public_keys   (@property) → PublicKeys
        keys.sign(data)                → raw 64-byte Ed25519 signature
        keys.seed()                    → raw 32-byte seed (never log it)
    """

    def __init__(
        self,
        sign_key:    Ed25519PrivateKey,
        encrypt_key: X25519PrivateKey,
    ) -> None:
        self._sign_key:    Ed25519PrivateKey = sign_key
        self._encrypt_key: X25519PrivateKey  = encrypt_key
        # Computed once; keys are immutable
        self._public_keys: PublicKeys = PublicKeys(
            sign_key=PublicSignKey(
                sign_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
            ),
            encrypt_key=PublicEncryptKey(
                encrypt_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
            ),
        )

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def generate(cls, rng: Optional[random.Random] = None) -> "SecretKeys":
        """Generate a new identity. Deterministic when rng is given."""
        if rng is None:
            return cls.from_seed(secrets.token_bytes(_KEY_LEN))
        return cls.from_seed(rng.getrandbits(8 * _KEY_LEN).to_bytes(_KEY_LEN, "big"))

    @classmethod
    def from_seed(cls, seed: bytes) -> "SecretKeys":
        """
        Build both key pairs from one 32-byte seed.
        Raises ValueError if seed is not exactly 32 bytes.
        """
        if len(seed) != _KEY_LEN:
            raise ValueError(f"identity seed must be {_KEY_LEN} bytes, got {len(seed)}")
        encrypt_seed = XorName.from_content(seed + b"encrypt")
        return cls(
            Ed25519PrivateKey.from_private_bytes(seed),
            X25519PrivateKey.from_private_bytes(bytes(encrypt_seed)),
        )

    # ── Public identity ───────────────────────────────────────

    @property
    def public_keys(self) -> PublicKeys:
        return self._public_keys

    @property
    def sign_key(self) -> PublicSignKey:
        return self._public_keys.sign_key

    @property
    def name(self) -> XorName:
        return self._public_keys.name

    # ── Signing ───────────────────────────────────────────────

    def sign(self, data: bytes) -> bytes:
        return self._sign_key.sign(data)

    def seed(self) -> bytes:
        return self._sign_key.private_bytes(
            encoding=             Encoding.Raw,
            format=               PrivateFormat.Raw,
            encryption_algorithm= NoEncryption(),
        )

    def __repr__(self) -> str:
        return f"SecretKeys(sign_key={self.sign_key.hex[:16]}...)"
