"""Per-turn progression over the quest graph.

Folds one turn into a single pure call: apply the model's acts to the active
node, record success or failure, pick the next node, diagnose stuck states
and build the slice for the next prompt.

The runner keeps no state between calls. Callers must not resolve two turns
for the same game concurrently; the last write would win.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from ..config import EngineConfig, resolve_config
from .fsm import apply_outcome, generate_graph_slice, select_active_node
from .model import GameState, GraphNode, GraphSlice, OutcomeResult, QuestGraph, StuckDiagnosis
from .stuck import detect_stuck_conditions

logger = logging.getLogger(__name__)


@dataclass
class TurnResult:
    """Everything a turn produced, for persistence and the next prompt.

    ``node`` is the node the turn was resolved on and ``next_node`` the one
    the state moved to afterwards (None when nothing can be entered next).
    """
    state: GameState
    node: Optional[GraphNode]
    next_node: Optional[GraphNode]
    outcome: Optional[OutcomeResult]
    stuck: StuckDiagnosis
    graph_slice: Optional[GraphSlice]

    @property
    def dead_end(self) -> bool:
        """True when no node could be entered to resolve this turn."""
        return self.node is None


def _record_outcome(outcome: OutcomeResult, node: GraphNode) -> GameState:
    state = outcome.new_state
    if outcome.success:
        state.visited.append(node.id)
        state.retries = 0
    elif outcome.failed:
        state.failures.append(node.id)
        state.retries += 1
    return state


def resolve_turn(state: GameState, graph: QuestGraph, awf_acts: Sequence[Any],
                 turn_history: Sequence[Any] = (), config: Optional[EngineConfig] = None) -> TurnResult:
    """Resolve one turn of the narrative graph.

    Args:
        state: Game state loaded for this turn (not mutated)
        graph: Quest graph loaded for this turn
        awf_acts: Acts the model emitted this turn
        turn_history: Past turns, oldest first, for stuck detection
        config: Engine tuning constants

    Returns:
        TurnResult with the replacement state to persist
    """
    config = resolve_config(config)

    node = select_active_node(state, graph, config)
    if node is None:
        logger.debug("Graph %s: dead end at %r", graph.graph_id, state.current_node_id)
        return TurnResult(
            state=state.copy(),
            node=None,
            next_node=None,
            outcome=None,
            stuck=detect_stuck_conditions(state, graph, turn_history, config),
            graph_slice=None,
        )

    pinned = state.copy()
    pinned.current_node_id = node.id

    outcome = apply_outcome(node, awf_acts, pinned)
    new_state = _record_outcome(outcome, node)

    next_node = select_active_node(new_state, graph, config)
    if next_node is not None:
        new_state.current_node_id = next_node.id

    return TurnResult(
        state=new_state,
        node=node,
        next_node=next_node,
        outcome=outcome,
        stuck=detect_stuck_conditions(new_state, graph, turn_history, config),
        graph_slice=generate_graph_slice(new_state, graph, config),
    )
