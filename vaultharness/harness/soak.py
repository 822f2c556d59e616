"""
vaultharness/harness/soak.py

Randomized put / mutate / verify workload over one simulated network.

The client keeps a local model of every record it writes. After each
change it fetches the record back and compares. Any difference, or any
request the network refuses, is recorded as a Mismatch; harness failures
(ContractViolation, GeneratorExhausted) propagate.

The report is a pure function of (config, seed, node_count, iterations).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from vaultharness.core import canonical
from vaultharness.core.config import HarnessConfig
from vaultharness.core.generators import (
    gen_immutable_data,
    gen_mutable_data,
    gen_mutable_data_entry_actions,
)
from vaultharness.core.messages import Result
from vaultharness.harness.test_client import TestClient
from vaultharness.mock.network import Network
from vaultharness.mock.vault import create_nodes

logger = logging.getLogger(__name__)

# Random tags stay clear of the session packet tag
_MIN_TAG = 10_000
_MAX_TAG = 20_000

_MAX_IDATA_SIZE      = 1024
_MAX_INITIAL_ENTRIES = 10
_MUTATION_ROUNDS     = 3
_MAX_ACTIONS         = 5


@dataclass(frozen=True)
class Mismatch:
    iteration: int
    step:      str
    detail:    str

    def to_dict(self) -> Dict[str, Any]:
        return {"iteration": self.iteration, "step": self.step, "detail": self.detail}


@dataclass
class SoakReport:
    seed:          int
    nodes:         int
    iterations:    int
    idata_checked: int            = 0
    mdata_checked: int            = 0
    mutations:     int            = 0
    mismatches:    List[Mismatch] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.mismatches

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seed":          self.seed,
            "nodes":         self.nodes,
            "iterations":    self.iterations,
            "idata_checked": self.idata_checked,
            "mdata_checked": self.mdata_checked,
            "mutations":     self.mutations,
            "ok":            self.ok,
            "mismatches":    [m.to_dict() for m in self.mismatches],
        }

    def digest(self) -> str:
        """SHA-256 of the canonical report. Equal seeds give equal digests."""
        return canonical.canonical_hash(self.to_dict())


def run_soak(
    config:     HarnessConfig,
    seed:       int,
    node_count: Optional[int] = None,
    iterations: Optional[int] = None,
) -> SoakReport:
    node_count = node_count if node_count is not None else config.min_section_size
    iterations = iterations if iterations is not None else config.effective_iterations

    network = Network(min_section_size=config.min_section_size, seed=seed)
    nodes   = create_nodes(network, node_count, account_balance=config.account_balance)
    client  = TestClient(network, config)
    rng     = network.new_rng()

    report = SoakReport(seed=seed, nodes=node_count, iterations=iterations)

    client.ensure_connected(nodes)
    client.create_account(nodes)
    owner = client.signing_public_key

    def failed(i: int, step: str, result: Result) -> bool:
        if result:
            return False
        report.mismatches.append(Mismatch(i, step, repr(result.error)))
        return True

    for i in range(iterations):
        logger.debug("soak iteration %d/%d", i + 1, iterations)

        # ── Immutable data ────────────────────────────────────
        chunk = gen_immutable_data(rng.randrange(1, _MAX_IDATA_SIZE), rng)
        if failed(i, "put_idata", client.put_idata_response(chunk, nodes)):
            continue
        report.mutations += 1

        fetched = client.get_idata_response(chunk.name, nodes)
        if not failed(i, "get_idata", fetched):
            report.idata_checked += 1
            if fetched.value != chunk:
                report.mismatches.append(Mismatch(i, "get_idata", "content differs"))

        # ── Mutable data ──────────────────────────────────────
        tag   = rng.randrange(_MIN_TAG, _MAX_TAG)
        model = gen_mutable_data(
            tag, rng.randrange(0, _MAX_INITIAL_ENTRIES), owner, rng, config.key_retry_limit
        )
        if failed(i, "put_mdata", client.put_mdata_response(model.copy(), nodes)):
            continue
        report.mutations += 1

        for _ in range(_MUTATION_ROUNDS):
            actions = gen_mutable_data_entry_actions(
                model, rng.randrange(1, _MAX_ACTIONS), rng, retry_limit=config.key_retry_limit
            )
            result = client.mutate_mdata_entries_response(model.name, tag, actions, nodes)
            if failed(i, "mutate_mdata_entries", result):
                break
            report.mutations += 1
            model.mutate_entries(actions, owner)

            entries = client.list_mdata_entries_response(model.name, tag, nodes)
            if failed(i, "list_mdata_entries", entries):
                break
            report.mdata_checked += 1
            if entries.value != model.entries:
                report.mismatches.append(Mismatch(
                    i, "list_mdata_entries",
                    f"expected {len(model.entries)} entries, got {len(entries.value)}",
                ))
                break

    # ── Account ───────────────────────────────────────────────
    info = client.get_account_info_response(nodes)
    if not failed(iterations, "get_account_info", info):
        if info.value.mutations_done != report.mutations:
            report.mismatches.append(Mismatch(
                iterations, "get_account_info",
                f"expected {report.mutations} mutations, got {info.value.mutations_done}",
            ))

    logger.info(
        "soak seed=%d finished: %d mutations, %d mismatches",
        seed, report.mutations, len(report.mismatches),
    )
    return report
