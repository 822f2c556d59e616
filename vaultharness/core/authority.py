"""
vaultharness/core/authority.py

Who is asking, and who must process the request.

    ClientAuthority         → a connected client: identity + proxy node
    ClientManagerAuthority  → the group managing a client's account
    Authority               → the network's generic address, one per kind

Conversions to Authority are total and lossless. All types are
immutable values; none of them talk to the network.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from vaultharness.core.crypto import PublicKeys, PublicSignKey, client_name_from_key
from vaultharness.core.xor_name import XorName


class AuthorityKind(str, Enum):
    CLIENT         = "client"
    CLIENT_MANAGER = "client_manager"
    NAE_MANAGER    = "nae_manager"
    MANAGED_NODE   = "managed_node"


@dataclass(frozen=True)
class Authority:
    """
    Generic network address.

    Only the CLIENT kind carries client_pub_id and proxy_node_name;
    every other kind is fully described by its name.
    """

    kind:            AuthorityKind
    name:            XorName
    client_pub_id:   Optional[PublicKeys] = None
    proxy_node_name: Optional[XorName]    = None

    @classmethod
    def client(cls, client_pub_id: PublicKeys, proxy_node_name: XorName) -> "Authority":
        return cls(
            AuthorityKind.CLIENT,
            client_pub_id.name,
            client_pub_id=client_pub_id,
            proxy_node_name=proxy_node_name,
        )

    @classmethod
    def client_manager(cls, name: XorName) -> "Authority":
        return cls(AuthorityKind.CLIENT_MANAGER, name)

    @classmethod
    def nae_manager(cls, name: XorName) -> "Authority":
        return cls(AuthorityKind.NAE_MANAGER, name)

    @classmethod
    def managed_node(cls, name: XorName) -> "Authority":
        return cls(AuthorityKind.MANAGED_NODE, name)

    @property
    def is_client(self) -> bool:
        return self.kind is AuthorityKind.CLIENT

    @property
    def client_key(self) -> Optional[PublicSignKey]:
        if self.client_pub_id is None:
            return None
        return self.client_pub_id.sign_key

    def __repr__(self) -> str:
        if self.is_client:
            return f"Authority.Client({self.name!r}, proxy={self.proxy_node_name!r})"
        return f"Authority.{self.kind.name}({self.name!r})"


@dataclass(frozen=True)
class ClientAuthority:
    """A client and the node currently relaying its traffic."""

    client_pub_id:   PublicKeys
    proxy_node_name: XorName

    def name(self) -> XorName:
        return self.client_pub_id.name

    def client_key(self) -> PublicSignKey:
        return self.client_pub_id.sign_key

    def to_authority(self) -> Authority:
        return Authority.client(self.client_pub_id, self.proxy_node_name)


@dataclass(frozen=True)
class ClientManagerAuthority:
    """The management group responsible for one client's mutations."""

    address: XorName

    @classmethod
    def for_client_key(cls, client_key: PublicSignKey) -> "ClientManagerAuthority":
        return cls(client_name_from_key(client_key))

    def name(self) -> XorName:
        return self.address

    def to_authority(self) -> Authority:
        return Authority.client_manager(self.address)
