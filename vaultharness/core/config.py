"""
vaultharness Harness Configuration.

Every knob a test run depends on lives on HarnessConfig and is threaded
explicitly into setup. Nothing in the harness reads the environment on its
own; HarnessConfig.from_env() is the one place that does, and only when a
test driver calls it.

    HarnessConfig()                 → defaults (full run, 10 iterations)
    HarnessConfig.from_env()        → QUICK_TEST / VAULTHARNESS_MAX_ROUNDS
    HarnessConfig.from_yaml(path)   → YAML mapping of field names
"""

import os
from dataclasses import dataclass, fields, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from vaultharness.core.exceptions import ConfigError

# Duration clients expect a response by.
CLIENT_MSG_EXPIRY = timedelta(seconds=90)


@dataclass(frozen=True)
class HarnessConfig:
    iterations:        int       = 10
    quick_iterations:  int       = 4
    quick:             bool      = False
    max_rounds:        int       = 10_000
    key_retry_limit:   int       = 1_000
    min_section_size:  int       = 8
    account_balance:   int       = 1_000
    msg_expiry:        timedelta = CLIENT_MSG_EXPIRY

    def __post_init__(self) -> None:
        for name in ("iterations", "quick_iterations", "max_rounds",
                     "key_retry_limit", "min_section_size"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ConfigError(f"{name} must be a positive int", {"value": value})
        if not isinstance(self.account_balance, int) or self.account_balance < 0:
            raise ConfigError(
                "account_balance must be a non-negative int",
                {"value": self.account_balance},
            )

    # ── Factories ─────────────────────────────────────────────

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "HarnessConfig":
        """
        Build a config from environment variables.

        QUICK_TEST              - present (any value) → quick mode
        VAULTHARNESS_MAX_ROUNDS - integer round bound
        """
        environ = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {"quick": "QUICK_TEST" in environ}
        if "VAULTHARNESS_MAX_ROUNDS" in environ:
            raw = environ["VAULTHARNESS_MAX_ROUNDS"]
            try:
                overrides["max_rounds"] = int(raw)
            except ValueError as exc:
                raise ConfigError(
                    "VAULTHARNESS_MAX_ROUNDS is not an integer", {"value": raw}
                ) from exc
        return cls(**overrides)

    @classmethod
    def from_yaml(cls, path: Path) -> "HarnessConfig":
        """
        Load a config from a YAML mapping of field names.
        msg_expiry is given in seconds. Unknown keys are rejected.
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except OSError as exc:
            raise ConfigError(f"cannot read config {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"invalid YAML in {path}: {exc}") from exc

        if not isinstance(raw, dict):
            raise ConfigError(f"config {path} must be a mapping")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ConfigError(f"unknown config keys in {path}", {"keys": unknown})

        if "msg_expiry" in raw:
            seconds = raw["msg_expiry"]
            try:
                raw["msg_expiry"] = timedelta(seconds=seconds)
            except (TypeError, ValueError, OverflowError) as exc:
                raise ConfigError(
                    f"msg_expiry in {path} is not a number of seconds",
                    {"value": seconds},
                ) from exc
        return cls(**raw)

    def with_overrides(self, **changes: Any) -> "HarnessConfig":
        return replace(self, **changes)

    # ── Derived ───────────────────────────────────────────────

    @property
    def effective_iterations(self) -> int:
        return self.quick_iterations if self.quick else self.iterations


def iterations(config: Optional[HarnessConfig] = None) -> int:
    """Iteration count for randomized tests under the given config."""
    return (config or HarnessConfig()).effective_iterations
