"""
vaultharness/cli/__init__.py

vaultharness CLI - root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    vaultharness = "vaultharness.cli:cli"

Adding a new command:
    1. Create vaultharness/cli/your_command.py with a @click.command()
    2. Import it here
    3. cli.add_command(your_command)
"""

import click

from vaultharness.cli.soak import soak_command


@click.group()
@click.version_option(package_name="vaultharness")
def cli() -> None:
    """
    vaultharness - deterministic vault network test harness.

    \b
    Commands:
      soak      Run a randomized put/mutate/verify workload.

    \b
    Quick start:
      vaultharness soak
      vaultharness soak --seed 7 --iterations 50
      vaultharness soak --quick --format json
      vaultharness soak --config harness.yaml --verbose
    """
    pass


cli.add_command(soak_command)
