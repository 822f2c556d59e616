"""
vaultharness/core/xor_name.py

32-byte network addresses and the XOR metric between them.
"""

import hashlib
import random
import secrets
from typing import Optional

XOR_NAME_LEN = 32


class XorName(bytes):
    """
    A 32-byte network address.

    Being a bytes subclass it is hashable, totally ordered (bytewise) and
    usable directly as a dict key or set member.
    """

    def __new__(cls, value: bytes) -> "XorName":
        if len(value) != XOR_NAME_LEN:
            raise ValueError(
                f"XorName must be {XOR_NAME_LEN} bytes, got {len(value)}"
            )
        return super().__new__(cls, value)

    @classmethod
    def random(cls, rng: Optional[random.Random] = None) -> "XorName":
        """Uniform random name. Uses rng when given, else the OS source."""
        if rng is None:
            return cls(secrets.token_bytes(XOR_NAME_LEN))
        return cls(rng.getrandbits(8 * XOR_NAME_LEN).to_bytes(XOR_NAME_LEN, "big"))

    @classmethod
    def from_content(cls, content: bytes) -> "XorName":
        """SHA3-256 of content. Deterministic, content-addressed."""
        return cls(hashlib.sha3_256(content).digest())

    @classmethod
    def from_hex(cls, value: str) -> "XorName":
        return cls(bytes.fromhex(value))

    def distance(self, other: "XorName") -> int:
        """XOR distance as an integer; 0 iff the names are equal."""
        return int.from_bytes(self, "big") ^ int.from_bytes(other, "big")

    def closer(self, lhs: "XorName", rhs: "XorName") -> bool:
        """True if lhs is strictly closer to self than rhs is."""
        return self.distance(lhs) < self.distance(rhs)

    def __repr__(self) -> str:
        return f"XorName({self.hex()[:8]}..)"
