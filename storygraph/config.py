"""Central configuration for the narrative graph engine.

Tuning constants live here instead of on an engine instance so that every
entry point can receive them explicitly. All values have a sensible default
and can be overridden via environment variables.
"""
from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Tuple


def _get_int_env(name: str, default: int, minval: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        v = int(raw)
        if minval is not None and v < minval:
            return default
        return v
    except ValueError:
        return default


def _get_list_env(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    items = tuple(part.strip() for part in raw.split(",") if part.strip())
    return items or default


# ---------------- Stuck detection ----------------
# Turns without progress before the player is considered stuck
DEFAULT_MAX_STUCK_TURNS: int = 5
ENV_MAX_STUCK_TURNS = "SG_MAX_STUCK_TURNS"

# Retries on the same node before intervention
DEFAULT_MAX_RETRIES: int = 3
ENV_MAX_RETRIES = "SG_MAX_RETRIES"

# Resources whose depletion blocks progress
DEFAULT_CRITICAL_RESOURCES: Tuple[str, ...] = ("health", "mana", "stamina")
ENV_CRITICAL_RESOURCES = "SG_CRITICAL_RESOURCES"


# ---------------- Guard DSL ----------------
# Deepest all/any/not nesting a guard may reach; deeper sub-expressions fail closed
DEFAULT_MAX_GUARD_DEPTH: int = 3
ENV_MAX_GUARD_DEPTH = "SG_MAX_GUARD_DEPTH"


@dataclass(frozen=True)
class EngineConfig:
    """Tuning constants passed into the engine entry points."""
    max_stuck_turns: int = DEFAULT_MAX_STUCK_TURNS
    max_retries: int = DEFAULT_MAX_RETRIES
    max_guard_depth: int = DEFAULT_MAX_GUARD_DEPTH
    critical_resources: Tuple[str, ...] = DEFAULT_CRITICAL_RESOURCES

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from environment variables.

        Invalid or out-of-range values fall back to the defaults.
        """
        return cls(
            max_stuck_turns=_get_int_env(ENV_MAX_STUCK_TURNS, DEFAULT_MAX_STUCK_TURNS, minval=1),
            max_retries=_get_int_env(ENV_MAX_RETRIES, DEFAULT_MAX_RETRIES, minval=1),
            max_guard_depth=_get_int_env(ENV_MAX_GUARD_DEPTH, DEFAULT_MAX_GUARD_DEPTH, minval=0),
            critical_resources=_get_list_env(ENV_CRITICAL_RESOURCES, DEFAULT_CRITICAL_RESOURCES),
        )


DEFAULT_CONFIG = EngineConfig()


def resolve_config(config: EngineConfig | None) -> EngineConfig:
    """Return ``config`` or the module default when it is None."""
    return DEFAULT_CONFIG if config is None else config


__all__ = [
    "EngineConfig", "DEFAULT_CONFIG", "resolve_config",
    "DEFAULT_MAX_STUCK_TURNS", "DEFAULT_MAX_RETRIES", "DEFAULT_MAX_GUARD_DEPTH",
    "DEFAULT_CRITICAL_RESOURCES",
    "ENV_MAX_STUCK_TURNS", "ENV_MAX_RETRIES", "ENV_MAX_GUARD_DEPTH", "ENV_CRITICAL_RESOURCES",
]
