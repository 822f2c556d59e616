"""
vaultharness/__init__.py

vaultharness: Deterministic Test Harness for a Vault Storage Network

A synchronous test client over an asynchronous, message-passing client,
random data and action generators, and an in-memory network of storage
nodes to run them against.

    network = Network(min_section_size=3, seed=7)
    nodes   = create_nodes(network, 3)
    client  = TestClient(network)
    client.ensure_connected(nodes)
    client.create_account(nodes)
"""

__version__ = "0.3.0"

from vaultharness.core.authority import (
    Authority,
    AuthorityKind,
    ClientAuthority,
    ClientManagerAuthority,
)
from vaultharness.core.config import CLIENT_MSG_EXPIRY, HarnessConfig, iterations
from vaultharness.core.exceptions import (
    ClientError,
    ClientErrorCode,
    ConfigError,
    ContractViolation,
    GeneratorExhausted,
    HarnessError,
)
from vaultharness.core.messages import MessageId, Result
from vaultharness.harness import TestClient, expect_response
from vaultharness.mock import BootstrapConfig, Network, create_nodes

__all__ = [
    # Harness
    "TestClient",
    "expect_response",
    "HarnessConfig",
    "iterations",
    # Network
    "Network",
    "BootstrapConfig",
    "create_nodes",
    # Addresses
    "Authority",
    "AuthorityKind",
    "ClientAuthority",
    "ClientManagerAuthority",
    "MessageId",
    "Result",
    # Errors
    "HarnessError",
    "ClientError",
    "ClientErrorCode",
    "ContractViolation",
    "GeneratorExhausted",
    "ConfigError",
    # Constants
    "CLIENT_MSG_EXPIRY",
]
