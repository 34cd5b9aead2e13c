"""Stuck state detection.

Checks run in priority order and the first one that fires is reported:
no recent progress, current node preconditions broken, critical resources
depleted, too many retries.
"""

from typing import Any, List, Mapping, Optional, Sequence

from ..config import EngineConfig, resolve_config
from .fsm import can_enter_node
from .model import GameState, QuestGraph, StuckDiagnosis, TurnRecord

NO_PROGRESS_REASON = "No objective progress in recent turns"
PRECONDITIONS_REASON = "Current node preconditions not met"
DEPLETED_REASON_PREFIX = "Critical resources depleted"
MAX_RETRIES_REASON = "Maximum retries exceeded"

NO_PROGRESS_SUGGESTIONS = (
    "Try different approaches to current objective",
    "Look for alternative paths or solutions",
    "Consider asking NPCs for guidance",
)

PRECONDITIONS_SUGGESTIONS = (
    "Check if required flags or objectives are complete",
    "Verify resource requirements are satisfied",
    "Look for alternative entry conditions",
)

DEPLETED_SUGGESTIONS = (
    "Find ways to restore depleted resources",
    "Look for alternative approaches that don't require these resources",
    "Seek help from NPCs or use items",
)

MAX_RETRIES_SUGGESTIONS = (
    "Try a completely different approach",
    "Look for alternative paths or solutions",
    "Consider asking for help or guidance",
)

NOT_STUCK = StuckDiagnosis(is_stuck=False)


def _turn_made_progress(turn: Any) -> bool:
    if isinstance(turn, Mapping):
        turn = TurnRecord.from_dict(turn)

    objectives = getattr(turn, "objectives", None) or []
    flags = getattr(turn, "flags", None) or []

    return (
        any(isinstance(obj, Mapping) and obj.get("status") == "complete" for obj in objectives)
        or any(isinstance(flag, Mapping) and flag.get("set") is True for flag in flags)
    )


def depleted_resources(state: GameState, config: Optional[EngineConfig] = None) -> List[str]:
    """Critical resources at or below zero. Missing resources count as zero."""
    config = resolve_config(config)
    return [name for name in config.critical_resources if (state.resources.get(name) or 0) <= 0]


def detect_stuck_conditions(state: GameState, graph: QuestGraph, turn_history: Sequence[Any],
                            config: Optional[EngineConfig] = None) -> StuckDiagnosis:
    """Diagnose whether the player can currently make progress.

    Args:
        state: Current game state
        graph: Quest graph
        turn_history: Past turns, oldest first (TurnRecord or mappings)
        config: Engine tuning constants

    Returns:
        StuckDiagnosis for the highest priority condition that fires
    """
    config = resolve_config(config)

    recent = list(turn_history)[-config.max_stuck_turns:]
    if len(recent) >= config.max_stuck_turns and not any(_turn_made_progress(t) for t in recent):
        return StuckDiagnosis(True, NO_PROGRESS_REASON, NO_PROGRESS_SUGGESTIONS)

    current = graph.get_node(state.current_node_id)
    if current and not can_enter_node(current, state, config):
        return StuckDiagnosis(True, PRECONDITIONS_REASON, PRECONDITIONS_SUGGESTIONS)

    depleted = depleted_resources(state, config)
    if depleted:
        return StuckDiagnosis(True, f"{DEPLETED_REASON_PREFIX}: {', '.join(depleted)}", DEPLETED_SUGGESTIONS)

    if state.retries >= config.max_retries:
        return StuckDiagnosis(True, MAX_RETRIES_REASON, MAX_RETRIES_SUGGESTIONS)

    return NOT_STUCK
