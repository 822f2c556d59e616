"""
vaultharness.mock - simulated network the harness steps deterministically.
"""

from vaultharness.mock.network import Network, Packet
from vaultharness.mock.routing import BootstrapConfig, RoutingClient
from vaultharness.mock.vault import (
    Account,
    ClientManager,
    DataManager,
    Invitations,
    TestNode,
    create_nodes,
)

__all__ = [
    "Network",
    "Packet",
    "BootstrapConfig",
    "RoutingClient",
    "Account",
    "ClientManager",
    "DataManager",
    "Invitations",
    "TestNode",
    "create_nodes",
]
