"""
vaultharness/cli/soak.py

vaultharness soak - randomized workload against a simulated network
====================================================================

Usage:
    vaultharness soak                           Default config, random seed
    vaultharness soak --seed 7                  Reproduce a run
    vaultharness soak --nodes 12                Larger network
    vaultharness soak --iterations 100          Longer run
    vaultharness soak --quick                   Quick-mode iteration count
    vaultharness soak --config harness.yaml     Load HarnessConfig from YAML
    vaultharness soak --format json             Canonical JSON report
    vaultharness soak --verbose                 DEBUG protocol logging

Exit codes:
    0  Every fetched record matched the local model
    1  At least one mismatch
    2  Harness error (bad config, contract violation, exhausted generator)
"""

import json
import logging
import secrets
import sys
from typing import Optional

import click

from vaultharness.core import canonical
from vaultharness.core.config import HarnessConfig
from vaultharness.core.exceptions import ConfigError, HarnessError
from vaultharness.harness.soak import SoakReport, run_soak


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


def _load_config(config_path: Optional[str], quick: bool) -> HarnessConfig:
    config = HarnessConfig.from_yaml(config_path) if config_path else HarnessConfig.from_env()
    if quick:
        config = config.with_overrides(quick=True)
    return config


@click.command(name="soak")
@click.option(
    "--seed",
    type=int,
    default=None,
    help="Root random seed. Random when omitted; always printed.",
)
@click.option(
    "--nodes", "node_count",
    type=click.IntRange(min=1),
    default=None,
    help="Number of nodes. Defaults to the configured min_section_size.",
)
@click.option(
    "--iterations",
    type=click.IntRange(min=1),
    default=None,
    help="Workload iterations. Overrides the configured count.",
)
@click.option(
    "--quick",
    is_flag=True,
    default=False,
    help="Use the quick-mode iteration count.",
)
@click.option(
    "--config", "config_path",
    type=click.Path(),
    default=None,
    metavar="PATH",
    help="YAML file of HarnessConfig fields.",
)
@click.option(
    "--format", "fmt",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default="text",
    show_default=True,
    help="Output format.",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Log protocol traffic at DEBUG.",
)
def soak_command(
    seed:        Optional[int],
    node_count:  Optional[int],
    iterations:  Optional[int],
    quick:       bool,
    config_path: Optional[str],
    fmt:         str,
    verbose:     bool,
) -> None:
    """
    Run a randomized put/mutate/verify workload.

    \b
    Examples:
      vaultharness soak --seed 42
      vaultharness soak --quick --format json
      vaultharness soak --seed 42 && echo "clean"
    """
    _configure_logging(verbose)

    try:
        config = _load_config(config_path, quick)
    except ConfigError as e:
        _emit_error(f"Configuration error: {e}", fmt)
        sys.exit(2)

    if seed is None:
        seed = secrets.randbits(32)

    try:
        report = run_soak(config, seed=seed, node_count=node_count, iterations=iterations)
    except HarnessError as e:
        _emit_error(f"Harness error (seed {seed}): {e}", fmt)
        sys.exit(2)

    if fmt == "json":
        _output_json(report)
    else:
        _output_text(report)

    sys.exit(0 if report.ok else 1)


# ── Output ────────────────────────────────────────────────────

def _output_text(report: SoakReport) -> None:
    click.echo(f"seed          {report.seed}")
    click.echo(f"nodes         {report.nodes}")
    click.echo(f"iterations    {report.iterations}")
    click.echo(f"mutations     {report.mutations}")
    click.echo(f"idata checked {report.idata_checked}")
    click.echo(f"mdata checked {report.mdata_checked}")
    click.echo(f"digest        {report.digest()}")

    for m in report.mismatches:
        click.echo(f"MISMATCH  [{m.iteration}] {m.step}: {m.detail}")

    if report.ok:
        click.echo("OK  0 mismatches")
    else:
        click.echo(f"FAILED  {len(report.mismatches)} mismatch(es)")


def _output_json(report: SoakReport) -> None:
    out = {"vaultharness_soak": report.to_dict(), "digest": report.digest()}
    click.echo(canonical.serialise(out).decode("utf-8"))


def _emit_error(message: str, fmt: str) -> None:
    if fmt == "json":
        click.echo(json.dumps({"error": message}), err=True)
    else:
        click.echo(f"ERROR  {message}", err=True)
