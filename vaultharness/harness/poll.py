"""
vaultharness/harness/poll.py

Round driver.

One round gives every node, then every client, one chance to do a unit of
work. Rounds repeat until a whole round does nothing (quiescence). A run
that is still busy after max_rounds rounds is a livelock and raises
ContractViolation instead of spinning forever.
"""

import logging
from typing import Iterable, Sequence

from vaultharness.core.config import HarnessConfig
from vaultharness.core.exceptions import ContractViolation

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = HarnessConfig.max_rounds


def _run(nodes: Sequence, clients: Sequence, max_rounds: int) -> int:
    rounds = 0
    while True:
        progressed = False
        for node in nodes:
            progressed = node.poll() or progressed
        for client in clients:
            progressed = client.poll_once() or progressed

        if not progressed:
            logger.debug("quiescent after %d rounds", rounds)
            return rounds

        rounds += 1
        if rounds >= max_rounds:
            logger.error("network still busy after %d rounds", rounds)
            raise ContractViolation(
                "network did not quiesce",
                {"max_rounds": max_rounds},
            )


def nodes(nodes: Sequence, max_rounds: int = DEFAULT_MAX_ROUNDS) -> int:
    """Poll only the nodes until quiescent. Returns the number of busy rounds."""
    return _run(nodes, (), max_rounds)


def nodes_and_client(nodes: Sequence, client, max_rounds: int = DEFAULT_MAX_ROUNDS) -> int:
    """Poll the nodes and one client until quiescent."""
    return _run(nodes, (client,), max_rounds)


def nodes_and_clients(
    nodes:      Sequence,
    clients:    Iterable,
    max_rounds: int = DEFAULT_MAX_ROUNDS,
) -> int:
    """Poll the nodes and several clients until quiescent."""
    return _run(nodes, tuple(clients), max_rounds)
