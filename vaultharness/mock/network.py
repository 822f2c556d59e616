"""
vaultharness/mock/network.py

In-memory network the harness steps one round at a time.

The Network is only a switchboard: it knows which node and which client
sits behind a name and drops packets into their inboxes. It never processes
anything itself. Work happens when a participant's poll() is called, one
packet per call, which is what makes the simulation steppable.
"""

import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from vaultharness.core.authority import Authority
from vaultharness.core.crypto import PublicKeys
from vaultharness.core.exceptions import HarnessError
from vaultharness.core.messages import Response
from vaultharness.core.xor_name import XorName

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Packets
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Packet:
    """One hop's worth of traffic."""

    src:  Authority
    dst:  Authority
    body: Any


@dataclass(frozen=True)
class Bootstrap:
    """Client → proxy. signature covers bootstrap_challenge(pub_id.name)."""

    pub_id:    PublicKeys
    signature: bytes


@dataclass(frozen=True)
class BootstrapResponse:
    accepted: bool
    reason:   Optional[str] = None


@dataclass(frozen=True)
class Disconnect:
    """Proxy → client: the connection is gone."""

    reason: str


@dataclass(frozen=True)
class Forwarded:
    """Client manager → data manager: an accepted mutation."""

    request: Any
    origin:  Authority


@dataclass(frozen=True)
class DataManagerReply:
    """Data manager → client manager: outcome of a forwarded mutation."""

    response: Response
    origin:   Authority


def bootstrap_challenge(name: XorName) -> bytes:
    return b"vaultharness-bootstrap:" + bytes(name)


# ─────────────────────────────────────────────────────────────
# Network
# ─────────────────────────────────────────────────────────────

class Network:
    """
    Registry of simulated participants.

    Owns the root random stream; every node and client draws its own
    stream from new_rng() so a single seed reproduces the whole run.
    """

    def __init__(self, min_section_size: int = 8, seed: Optional[int] = None) -> None:
        if min_section_size < 1:
            raise ValueError(f"min_section_size must be >= 1, got {min_section_size}")
        self.min_section_size = min_section_size
        self._rng = random.Random(seed)
        # Insertion ordered; the first node is the default bootstrap proxy
        self._nodes:   Dict[XorName, Any] = {}
        self._clients: Dict[XorName, Any] = {}

    # ── Randomness ────────────────────────────────────────────

    def new_rng(self) -> random.Random:
        return random.Random(self._rng.getrandbits(64))

    # ── Membership ────────────────────────────────────────────

    def add_node(self, node) -> None:
        if node.name in self._nodes:
            raise HarnessError("duplicate node name", {"name": node.name.hex()})
        self._nodes[node.name] = node
        logger.debug("node %r joined (%d nodes)", node.name, len(self._nodes))

    def remove_node(self, name: XorName) -> None:
        self._nodes.pop(name, None)
        logger.debug("node %r left (%d nodes)", name, len(self._nodes))

    def node(self, name: XorName):
        return self._nodes.get(name)

    def node_names(self) -> List[XorName]:
        """Node names in join order."""
        return list(self._nodes)

    def nodes_by_name(self) -> Dict[XorName, Any]:
        return dict(self._nodes)

    def node_count(self) -> int:
        return len(self._nodes)

    def closest_node(self, name: XorName) -> XorName:
        """The node responsible for name: minimum XOR distance."""
        if not self._nodes:
            raise HarnessError("network has no nodes")
        return min(self._nodes, key=name.distance)

    def attach_client(self, name: XorName, client) -> None:
        if name in self._clients:
            logger.warning("client %r re-attached; previous handle replaced", name)
        self._clients[name] = client

    def detach_client(self, name: XorName, client) -> None:
        if self._clients.get(name) is client:
            del self._clients[name]

    # ── Delivery ──────────────────────────────────────────────

    def send_to_node(self, name: XorName, packet: Packet, from_client: bool = False) -> bool:
        """Queue packet at a node. False if no such node."""
        node = self._nodes.get(name)
        if node is None:
            logger.debug("dropping %s to missing node %r", type(packet.body).__name__, name)
            return False
        node.enqueue(packet, from_client=from_client)
        return True

    def send_to_client(self, name: XorName, packet: Packet) -> bool:
        """Queue packet at a client. False if no such client."""
        client = self._clients.get(name)
        if client is None:
            logger.debug("dropping %s to missing client %r", type(packet.body).__name__, name)
            return False
        client.enqueue(packet)
        return True
