"""State machine over the quest graph.

Nodes are states and guarded edges are transitions. ``select_active_node`` is
the transition function and ``apply_outcome`` folds a turn's narrated result
back into the game state before the next transition decision.

Every function here is pure: inputs are never mutated and replacements are
returned instead.
"""

import json
import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..config import EngineConfig, resolve_config
from .dsl import check_all
from .model import (
    ActionKind, FrontierEntry, GameState, GraphIntegrityError, GraphNode,
    GraphSlice, GuardContext, NodeAction, OutcomeResult, QuestGraph,
)

logger = logging.getLogger(__name__)

# Flags without a namespace land here in the guard context
DEFAULT_FLAG_NAMESPACE = "global"

_INT32_MAX = 2147483647


def build_guard_context(state: GameState) -> GuardContext:
    """Build the read-only guard context for a game state.

    Flags map to namespaces: a dict-valued flag is a namespace of its own,
    ``"ns.name"`` keys go to ``ns`` and anything else to ``"global"``.
    """
    flags: Dict[str, Dict[str, Any]] = {}
    for key, value in state.flags.items():
        if isinstance(value, Mapping):
            flags.setdefault(key, {}).update(value)
        elif "." in key:
            namespace, _, name = key.partition(".")
            flags.setdefault(namespace, {})[name] = value
        else:
            flags.setdefault(DEFAULT_FLAG_NAMESPACE, {})[key] = value

    return GuardContext(
        rel=state.relationships,
        inv=state.inventory,
        currency=state.currency,
        flag=flags,
        state={
            "flags": state.flags,
            "objectives": state.objectives,
            "resources": state.resources,
            "node": {"current": state.current_node_id, "retries": state.retries},
        },
    )


def can_enter_node(node: GraphNode, state: GameState, config: Optional[EngineConfig] = None) -> bool:
    """Check whether a node's entry conditions hold.

    Args:
        node: Node to check
        state: Current game state
        config: Engine tuning constants

    Returns:
        True if the node has no entry conditions or all of them hold
    """
    if not node.enter_if:
        return True
    config = resolve_config(config)
    return check_all(node.enter_if, build_guard_context(state), config.max_guard_depth)


def eligible_nodes(graph: QuestGraph, state: GameState, config: Optional[EngineConfig] = None) -> List[GraphNode]:
    """All nodes whose entry conditions hold, in authored order."""
    return [node for node in graph.nodes if can_enter_node(node, state, config)]


def _rolling_hash(text: str) -> int:
    """32-bit signed ``h * 31 + c`` over UTF-16 code units."""
    h = 0
    encoded = text.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        unit = encoded[i] | (encoded[i + 1] << 8)
        h = ((h << 5) - h + unit) & 0xFFFFFFFF
        if h & 0x80000000:
            h -= 0x100000000
    return h


def generate_seed(node_id: str) -> float:
    """Deterministic seed in [0, 1) derived from a node id."""
    seed = abs(_rolling_hash(node_id)) / _INT32_MAX
    # abs(-2**31) overshoots 1 by a hair
    return min(seed, math.nextafter(1.0, 0.0))


def select_node_deterministically(nodes: Sequence[GraphNode], seed: float) -> Optional[GraphNode]:
    if not nodes:
        return None
    if len(nodes) == 1:
        return nodes[0]
    index = min(int(math.floor(seed * len(nodes))), len(nodes) - 1)
    return nodes[index]


def select_active_node(state: GameState, graph: QuestGraph,
                       config: Optional[EngineConfig] = None) -> Optional[GraphNode]:
    """Select the node the game should be on this turn.

    The current node is kept while it can still be entered. Otherwise one of
    the eligible nodes is picked from a seed derived from the previous node
    id, so the same previous node and candidate order always give the same
    pick.

    Args:
        state: Current game state
        graph: Quest graph
        config: Engine tuning constants

    Returns:
        The active node, or None when no node can be entered
    """
    if state.current_node_id:
        current = graph.get_node(state.current_node_id)
        if current and can_enter_node(current, state, config):
            return current

    candidates = eligible_nodes(graph, state, config)
    if not candidates:
        logger.debug("Graph %s: no eligible node from %r", graph.graph_id, state.current_node_id)
        return None

    seed = generate_seed(state.current_node_id or "start")
    selected = select_node_deterministically(candidates, seed)
    logger.debug("Graph %s: moved from %r to %r (%d candidates)",
                 graph.graph_id, state.current_node_id, selected.id, len(candidates))
    return selected


def eligible_neighbors(node: GraphNode, graph: QuestGraph, state: GameState,
                       config: Optional[EngineConfig] = None) -> List[GraphNode]:
    """Compute the frontier of a node.

    Args:
        node: Node whose outgoing edges are followed
        graph: Quest graph
        state: Current game state
        config: Engine tuning constants

    Returns:
        Target nodes that can be entered through an open edge, in edge order
    """
    config = resolve_config(config)
    ctx = build_guard_context(state)
    neighbors = []

    for edge in graph.outgoing(node.id):
        target = graph.get_node(edge.to_id)
        if target is None or not can_enter_node(target, state, config):
            continue
        if check_all(edge.guard, ctx, config.max_guard_depth):
            neighbors.append(target)

    return neighbors


def _act_field(act: Any, name: str) -> Any:
    if isinstance(act, Mapping):
        return act.get(name)
    return getattr(act, name, None)


def _matches(act: Any, templates: Sequence[NodeAction]) -> bool:
    act_type = _act_field(act, "type")
    act_id = _act_field(act, "id")
    return any(
        act_type == template.act and (not template.id or act_id == template.id)
        for template in templates
    )


def _first_match(acts: Sequence[Any], templates: Sequence[NodeAction]) -> bool:
    if not templates:
        return False
    return any(_matches(act, templates) for act in acts)


def apply_actions(actions: Sequence[NodeAction], state: GameState) -> None:
    """Apply action templates to a game state in place.

    Args:
        actions: Actions to apply
        state: State to mutate (callers pass a copy)
    """
    for action in actions:
        kind = action.kind
        if kind is ActionKind.OBJECTIVE_UPDATE:
            if action.id and action.status:
                state.objectives[action.id] = action.status
        elif kind is ActionKind.FLAG_SET:
            if action.key is not None:
                state.flags[action.key] = action.val
        elif kind is ActionKind.RESOURCE_UPDATE:
            # Unclamped; limits are the caller's concern
            if action.key and isinstance(action.val, (int, float)) and not isinstance(action.val, bool):
                state.resources[action.key] = (state.resources.get(action.key) or 0) + action.val
        else:
            logger.debug("Ignoring unrecognized action %r", action.act)


def apply_outcome(node: GraphNode, awf_acts: Sequence[Any], state: GameState) -> OutcomeResult:
    """Fold the model's acts for a turn into the game state.

    The first act matching an onSuccess template applies every onSuccess
    action. Only when nothing matches onSuccess are the onFail templates
    tried, with the same rule. At most one of the two sets is applied.

    Args:
        node: Active node
        awf_acts: Acts emitted this turn (mappings or objects with type/id)
        state: Current game state (not mutated)

    Returns:
        OutcomeResult with the replacement state and the applied actions
    """
    new_state = state.copy()

    if _first_match(awf_acts, node.on_success):
        apply_actions(node.on_success, new_state)
        return OutcomeResult(success=True, new_state=new_state, applied_actions=list(node.on_success))

    if _first_match(awf_acts, node.on_fail):
        apply_actions(node.on_fail, new_state)
        return OutcomeResult(success=False, new_state=new_state,
                             applied_actions=list(node.on_fail), failed=True)

    return OutcomeResult(success=False, new_state=new_state)


def guard_summary(node: GraphNode, graph: QuestGraph) -> List[Dict[str, Any]]:
    """Describe the edges leading into a node."""
    return [
        {"from": edge.from_id, "guard": [g.to_json() for g in edge.guard]}
        for edge in graph.incoming(node.id)
    ]


def _to_base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def compute_graph_hash(graph: QuestGraph) -> str:
    """Order-independent fingerprint of the authored graph.

    Hashes the source document when the graph was loaded from one, otherwise
    the graph's own serialization. Object keys are sorted before hashing, so
    only content changes alter it.
    """
    document = graph.raw or graph.to_dict()
    serialized = json.dumps(document, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return _to_base36(abs(_rolling_hash(serialized)))


def generate_graph_slice(state: GameState, graph: QuestGraph,
                         config: Optional[EngineConfig] = None) -> GraphSlice:
    """Build the prompt-facing summary of the active node and its frontier.

    Raises:
        GraphIntegrityError: If the state's current node is not in the graph
    """
    current = graph.get_node(state.current_node_id)
    if current is None:
        raise GraphIntegrityError(
            f"Current node {state.current_node_id!r} not found in graph {graph.graph_id!r}"
        )

    neighbors = eligible_neighbors(current, graph, state, config)

    return GraphSlice(
        active_node={"id": current.id, "type": current.type, "synopsis": current.synopsis},
        frontier=[
            FrontierEntry(
                id=n.id,
                type=n.type,
                synopsis=n.synopsis,
                hint=n.hint,
                guard=guard_summary(n, graph),
            )
            for n in neighbors
        ],
        hash=compute_graph_hash(graph),
    )
