"""Quest graph engine package."""

from .model import (
    GraphNode, GraphEdge, QuestGraph, GameState, GraphSlice, FrontierEntry,
    GuardContext, Compare, StateCondition, Membership, FlagTest, AllOf, AnyOf, Not,
    ActionKind, NodeAction, OutcomeResult, StuckDiagnosis, TurnRecord,
    QuestGraphError, GraphIntegrityError, GraphDocumentError, GuardParseError,
)
from .dsl import resolve_path, resolve_state_entry, evaluate, check_all, parse_guard, parse_guards, guard_to_json
from .fsm import (
    build_guard_context, can_enter_node, select_active_node, eligible_neighbors,
    apply_outcome, generate_graph_slice, compute_graph_hash,
)
from .stuck import detect_stuck_conditions
from .runtime import TurnResult, resolve_turn
from .loader import LintReport, parse_quest_graph, load_quest_graph, lint_quest_graph

__all__ = [
    'GraphNode', 'GraphEdge', 'QuestGraph', 'GameState', 'GraphSlice', 'FrontierEntry',
    'GuardContext', 'Compare', 'StateCondition', 'Membership', 'FlagTest', 'AllOf', 'AnyOf', 'Not',
    'ActionKind', 'NodeAction', 'OutcomeResult', 'StuckDiagnosis', 'TurnRecord',
    'QuestGraphError', 'GraphIntegrityError', 'GraphDocumentError', 'GuardParseError',
    'resolve_path', 'resolve_state_entry', 'evaluate', 'check_all', 'parse_guard', 'parse_guards', 'guard_to_json',
    'build_guard_context', 'can_enter_node', 'select_active_node', 'eligible_neighbors',
    'apply_outcome', 'generate_graph_slice', 'compute_graph_hash',
    'detect_stuck_conditions',
    'TurnResult', 'resolve_turn',
    'LintReport', 'parse_quest_graph', 'load_quest_graph', 'lint_quest_graph',
]
