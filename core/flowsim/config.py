"""Shared flowsim configuration utilities.

Reads ``~/.flowsim/configuration.json`` (or the file named by the
``FLOWSIM_CONFIG`` environment variable). Example file:

    {
      "simulator": {"speed": "fast", "seed": 42, "integration_failure_rate": 0},
      "editor": {"history_limit": 200},
      "logging": {"level": "DEBUG", "format": "json"}
    }
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from flowsim.graph.history import DEFAULT_HISTORY_LIMIT
from flowsim.schemas.execution import ErrorPolicy, Speed
from flowsim.simulation.simulator import (
    DEFAULT_CODE_FAILURE_RATE,
    DEFAULT_INTEGRATION_FAILURE_RATE,
)

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

FLOWSIM_CONFIG_FILE = Path.home() / ".flowsim" / "configuration.json"


def get_config_path() -> Path:
    override = os.environ.get("FLOWSIM_CONFIG")
    return Path(override).expanduser() if override else FLOWSIM_CONFIG_FILE


def get_flowsim_config() -> dict[str, Any]:
    """Load flowsim configuration. Missing or malformed files yield ``{}``."""
    path = get_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def _section(name: str) -> dict[str, Any]:
    section = get_flowsim_config().get(name, {})
    return section if isinstance(section, dict) else {}


def get_speed() -> Speed:
    """Configured pacing, falling back to ``normal`` for unknown values."""
    try:
        return Speed(_section("simulator").get("speed", Speed.NORMAL))
    except ValueError:
        return Speed.NORMAL


def get_error_policy() -> ErrorPolicy:
    try:
        return ErrorPolicy(_section("simulator").get("error_policy", ErrorPolicy.STALL))
    except ValueError:
        return ErrorPolicy.STALL


def get_seed() -> int | None:
    seed = _section("simulator").get("seed")
    return seed if isinstance(seed, int) else None


def get_failure_rate(category: str, default: float) -> float:
    rate = _section("simulator").get(f"{category}_failure_rate", default)
    if isinstance(rate, int | float) and 0 <= rate <= 1:
        return float(rate)
    return default


def get_history_limit() -> int | None:
    """Undo depth; ``null`` in the file means unbounded."""
    editor = _section("editor")
    if "history_limit" not in editor:
        return DEFAULT_HISTORY_LIMIT
    limit = editor["history_limit"]
    if limit is None or (isinstance(limit, int) and limit >= 1):
        return limit
    return DEFAULT_HISTORY_LIMIT


# ---------------------------------------------------------------------------
# SimulatorConfig
# ---------------------------------------------------------------------------


@dataclass
class SimulatorConfig:
    """Simulator, editor and logging settings loaded from the configuration file."""

    speed: Speed = field(default_factory=get_speed)
    history_limit: int | None = field(default_factory=get_history_limit)
    seed: int | None = field(default_factory=get_seed)
    code_failure_rate: float = field(
        default_factory=lambda: get_failure_rate("code", DEFAULT_CODE_FAILURE_RATE)
    )
    integration_failure_rate: float = field(
        default_factory=lambda: get_failure_rate("integration", DEFAULT_INTEGRATION_FAILURE_RATE)
    )
    error_policy: ErrorPolicy = field(default_factory=get_error_policy)
    log_level: str = field(default_factory=lambda: _section("logging").get("level", "WARNING"))
    log_format: str = field(default_factory=lambda: _section("logging").get("format", "auto"))
