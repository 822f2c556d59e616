"""
vaultharness/mock/routing.py

Client-side network participant.

RoutingClient is the asynchronous, event-producing handle a test client
drives. It never blocks:

    send(dst, request)  → queue only
    poll()              → one unit of work (flush one outbound packet,
                          or turn one inbound packet into an event)
    try_next_ev()       → next event, or None

Bootstrap is queued on construction. The proxy checks a signature made with
the client's own identity before accepting it.
"""

import logging
from collections import deque
from dataclasses import dataclass
from datetime import timedelta
from typing import Deque, Optional, Tuple

from vaultharness.core.authority import Authority
from vaultharness.core.config import CLIENT_MSG_EXPIRY
from vaultharness.core.crypto import SecretKeys
from vaultharness.core.exceptions import HarnessError
from vaultharness.core.messages import (
    Connected,
    Event,
    Request,
    RequestEvent,
    Response,
    ResponseEvent,
    Terminated,
)
from vaultharness.core.xor_name import XorName
from vaultharness.mock.network import (
    Bootstrap,
    BootstrapResponse,
    Disconnect,
    Network,
    Packet,
    bootstrap_challenge,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BootstrapConfig:
    """Preferred proxies, tried in order. Empty → first node of the network."""

    proxy_names: Tuple[XorName, ...] = ()


class RoutingClient:
    def __init__(
        self,
        network:          Network,
        bootstrap_config: Optional[BootstrapConfig] = None,
        full_id:          Optional[SecretKeys]      = None,
        msg_expiry:       timedelta                 = CLIENT_MSG_EXPIRY,
    ) -> None:
        self.network    = network
        self.full_id    = full_id if full_id is not None else SecretKeys.generate(network.new_rng())
        self.msg_expiry = msg_expiry

        self._outbox: Deque[Packet] = deque()
        self._inbox:  Deque[Packet] = deque()
        self._events: Deque[Event]  = deque()

        self.connected  = False
        self.terminated = False

        self.proxy_node_name = self._choose_proxy(bootstrap_config or BootstrapConfig())
        network.attach_client(self.name, self)

        if self.proxy_node_name is None:
            self._no_proxy = True
            logger.info("client %r has no node to bootstrap to", self.name)
        else:
            self._no_proxy = False
            challenge = bootstrap_challenge(self.name)
            self._outbox.append(Packet(
                src=self.authority(),
                dst=Authority.managed_node(self.proxy_node_name),
                body=Bootstrap(self.full_id.public_keys, self.full_id.sign(challenge)),
            ))

    def __repr__(self) -> str:
        return f"RoutingClient({self.name!r}, proxy={self.proxy_node_name!r})"

    def _choose_proxy(self, config: BootstrapConfig) -> Optional[XorName]:
        for name in config.proxy_names:
            if self.network.node(name) is not None:
                return name
        if config.proxy_names:
            return None
        names = self.network.node_names()
        return names[0] if names else None

    # ── Identity ──────────────────────────────────────────────

    @property
    def name(self) -> XorName:
        return self.full_id.name

    def authority(self) -> Authority:
        if self.proxy_node_name is None:
            raise HarnessError("client has no proxy node", {"client": self.name.hex()})
        return Authority.client(self.full_id.public_keys, self.proxy_node_name)

    # ── Traffic ───────────────────────────────────────────────

    def send(self, dst: Authority, request: Request) -> None:
        if self.terminated:
            logger.debug("client %r is terminated; dropping %s", self.name, request.kind.value)
            return
        logger.debug("client %r queues %s %r to %r", self.name, request.kind.value, request.msg_id, dst)
        self._outbox.append(Packet(src=self.authority(), dst=dst, body=request))

    def enqueue(self, packet: Packet) -> None:
        self._inbox.append(packet)

    def poll(self) -> bool:
        """Do one unit of work. False if there was nothing to do."""
        if self._no_proxy:
            self._no_proxy = False
            self._terminate("no node to bootstrap to")
            return True

        if self._outbox:
            packet = self._outbox.popleft()
            if not self.network.send_to_node(self.proxy_node_name, packet, from_client=True):
                self._terminate("proxy node unreachable")
            return True

        if self._inbox:
            self._receive(self._inbox.popleft())
            return True

        return False

    def try_next_ev(self) -> Optional[Event]:
        return self._events.popleft() if self._events else None

    def close(self) -> None:
        self.network.detach_client(self.name, self)

    # ── Internals ─────────────────────────────────────────────

    def _receive(self, packet: Packet) -> None:
        body = packet.body
        if isinstance(body, BootstrapResponse):
            if body.accepted:
                self.connected = True
                self._events.append(Connected())
            else:
                self._terminate(body.reason or "bootstrap refused")
        elif isinstance(body, Disconnect):
            self._terminate(body.reason)
        elif isinstance(body, Response):
            self._events.append(ResponseEvent(body, packet.src, packet.dst))
        elif isinstance(body, Request):
            self._events.append(RequestEvent(body, packet.src, packet.dst))
        else:
            logger.warning("client %r ignoring %r", self.name, body)

    def _terminate(self, reason: str) -> None:
        if self.terminated:
            return
        logger.info("client %r terminated: %s", self.name, reason)
        self.connected  = False
        self.terminated = True
        self._outbox.clear()
        self._events.append(Terminated())
