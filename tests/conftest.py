"""
tests/conftest.py

Shared fixtures. Every network is seeded, so every test is reproducible.
"""

import random

import pytest

from vaultharness.core.config import HarnessConfig
from vaultharness.harness.test_client import TestClient
from vaultharness.mock.network import Network
from vaultharness.mock.vault import create_nodes


@pytest.fixture
def rng():
    """Random stream for generated test data."""
    return random.Random(0x5EED)


@pytest.fixture
def config():
    """Small sections keep the simulated network cheap."""
    return HarnessConfig(min_section_size=3, max_rounds=1_000)


@pytest.fixture
def network(config):
    return Network(min_section_size=config.min_section_size, seed=1234)


@pytest.fixture
def nodes(network, config):
    return create_nodes(network, config.min_section_size)


@pytest.fixture
def client(network, nodes, config):
    """A connected client without an account."""
    client = TestClient(network, config)
    client.ensure_connected(nodes)
    return client


@pytest.fixture
def account(client, nodes):
    """A connected client that owns an account."""
    client.create_account(nodes)
    return client
