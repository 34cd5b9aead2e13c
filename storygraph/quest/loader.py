"""Quest graph loader from authored JSON documents.

This module validates graph documents against the JSON schema, converts
them into QuestGraph objects (parsing every guard once) and lints the
resulting structure for authoring mistakes.
"""

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Set

import jsonschema

from .dsl import parse_guards
from .fsm import DEFAULT_FLAG_NAMESPACE
from .model import (
    STATE_SOURCES, ActionKind, AllOf, AnyOf, FlagTest, GraphDocumentError, GraphEdge, GraphNode,
    GuardExpression, Not, NodeAction, QuestGraph, StateCondition,
)
from .schema import MAX_HINT_LENGTH, MAX_SYNOPSIS_LENGTH, QUEST_GRAPH_SCHEMA

logger = logging.getLogger(__name__)

_VALIDATOR = jsonschema.Draft7Validator(QUEST_GRAPH_SCHEMA)


def validate_schema(doc: Any) -> None:
    """Validate a graph document against the schema.

    Raises:
        GraphDocumentError: Listing every violation as "path: message"
    """
    errors = []
    for error in sorted(_VALIDATOR.iter_errors(doc), key=lambda e: [str(p) for p in e.absolute_path]):
        location = ".".join(str(part) for part in error.absolute_path) or "<root>"
        errors.append(f"{location}: {error.message}")

    if errors:
        raise GraphDocumentError(f"Invalid quest graph document ({len(errors)} errors)", errors)


def _parse_action(action_data: Mapping[str, Any]) -> NodeAction:
    return NodeAction(
        act=action_data["act"],
        id=action_data.get("id"),
        key=action_data.get("key"),
        val=action_data.get("val"),
        status=action_data.get("status"),
    )


def _parse_node(node_data: Mapping[str, Any]) -> GraphNode:
    return GraphNode(
        id=node_data["id"],
        type=node_data["type"],
        synopsis=node_data["synopsis"],
        enter_if=parse_guards(node_data.get("enterIf")),
        on_success=[_parse_action(a) for a in node_data.get("onSuccess", [])],
        on_fail=[_parse_action(a) for a in node_data.get("onFail", [])],
        hint=node_data.get("hint"),
    )


def _parse_edge(edge_data: Mapping[str, Any]) -> GraphEdge:
    return GraphEdge(
        from_id=edge_data["from"],
        to_id=edge_data["to"],
        guard=parse_guards(edge_data.get("guard")),
    )


def parse_quest_graph(doc: Mapping[str, Any]) -> QuestGraph:
    """Build a QuestGraph from a parsed JSON document.

    Args:
        doc: Graph document (graphId, start, nodes, edges)

    Returns:
        Parsed QuestGraph

    Raises:
        GraphDocumentError: If the document violates the schema
        GuardParseError: If any guard has an unknown shape
    """
    validate_schema(doc)

    graph = QuestGraph(
        graph_id=doc["graphId"],
        start=doc["start"],
        nodes=[_parse_node(n) for n in doc["nodes"]],
        edges=[_parse_edge(e) for e in doc.get("edges", [])],
        raw=copy.deepcopy(dict(doc)),
    )
    logger.debug("Loaded graph %s: %d nodes, %d edges", graph.graph_id, len(graph.nodes), len(graph.edges))
    return graph


def load_quest_graph(graph_file_path: str) -> QuestGraph:
    """Load a quest graph from a JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        GraphDocumentError: If the JSON is invalid or fails the schema
    """
    graph_path = Path(graph_file_path)
    if not graph_path.exists():
        raise FileNotFoundError(f"Graph file not found: {graph_file_path}")

    try:
        with open(graph_path, "r", encoding="utf-8") as f:
            doc = json.load(f)
    except json.JSONDecodeError as e:
        raise GraphDocumentError(f"Invalid JSON in graph file: {e}", [str(e)]) from e

    return parse_quest_graph(doc)


# ---------------- Linting ----------------

@dataclass
class LintReport:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def _walk_guard(expr: GuardExpression):
    yield expr
    if isinstance(expr, (AllOf, AnyOf)):
        for item in expr.items:
            yield from _walk_guard(item)
    elif isinstance(expr, Not):
        yield from _walk_guard(expr.item)


def _all_guards(graph: QuestGraph):
    for node in graph.nodes:
        for guard in node.enter_if:
            yield from _walk_guard(guard)
    for edge in graph.edges:
        for guard in edge.guard:
            yield from _walk_guard(guard)


def _referenced_keys(graph: QuestGraph, namespace: str) -> Set[str]:
    prefix = f"state.{namespace}."
    keys = set()
    for expr in _all_guards(graph):
        if isinstance(expr, StateCondition):
            if STATE_SOURCES[expr.source] == namespace:
                keys.add(expr.key)
            continue
        path = getattr(expr, "path", None)
        if isinstance(path, str) and path.startswith(prefix):
            keys.add(path[len(prefix):].split(".", 1)[0])
    return keys


def _set_keys(graph: QuestGraph, kind: ActionKind) -> Set[str]:
    keys = set()
    for node in graph.nodes:
        for action in node.on_success + node.on_fail:
            if action.kind is not kind:
                continue
            key = action.id if kind is ActionKind.OBJECTIVE_UPDATE else action.key
            if key:
                keys.add(key)
    return keys


def find_cycles(graph: QuestGraph) -> List[str]:
    """Find cycles reachable by depth-first search, rendered "a -> b -> a"."""
    visited: Set[str] = set()
    on_stack: Set[str] = set()
    cycles: List[str] = []

    def dfs(node_id: str, path: List[str]) -> None:
        if node_id in on_stack:
            cycles.append(" -> ".join(path[path.index(node_id):] + [node_id]))
            return
        if node_id in visited:
            return
        visited.add(node_id)
        on_stack.add(node_id)
        for edge in graph.outgoing(node_id):
            dfs(edge.to_id, path + [node_id])
        on_stack.discard(node_id)

    for node in graph.nodes:
        if node.id not in visited:
            dfs(node.id, [])

    return cycles


def find_unreachable_nodes(graph: QuestGraph) -> List[str]:
    """Nodes no edge path from the start node leads to."""
    reachable: Set[str] = set()
    pending = [graph.start]
    while pending:
        node_id = pending.pop()
        if node_id in reachable:
            continue
        reachable.add(node_id)
        pending.extend(edge.to_id for edge in graph.outgoing(node_id))

    return [node.id for node in graph.nodes if node.id not in reachable]


def lint_quest_graph(graph: QuestGraph) -> LintReport:
    """Check a graph for structural and authoring problems.

    Args:
        graph: Parsed quest graph

    Returns:
        LintReport; the graph is valid when it has no errors
    """
    report = LintReport()
    node_ids = {node.id for node in graph.nodes}

    if graph.start not in node_ids:
        report.errors.append(f"Start node '{graph.start}' not found in graph")

    for edge in graph.edges:
        for end in (edge.from_id, edge.to_id):
            if end not in node_ids:
                report.errors.append(f"Edge {edge.from_id} -> {edge.to_id}: unknown node '{end}'")

    cycles = find_cycles(graph)
    if cycles:
        report.errors.append(f"Cycles detected: {', '.join(cycles)}")
        report.suggestions.append("Consider breaking cycles by adding exit conditions")

    unreachable = find_unreachable_nodes(graph)
    if unreachable:
        report.warnings.append(f"Unreachable nodes: {', '.join(unreachable)}")
        report.suggestions.append("Consider adding paths to unreachable nodes or removing them")

    for node in graph.nodes:
        if len(node.synopsis) > MAX_SYNOPSIS_LENGTH:
            report.errors.append(
                f"Node {node.id}: synopsis too long ({len(node.synopsis)} > {MAX_SYNOPSIS_LENGTH})")
        if node.hint and len(node.hint) > MAX_HINT_LENGTH:
            report.errors.append(f"Node {node.id}: hint too long ({len(node.hint)} > {MAX_HINT_LENGTH})")

    referenced = _referenced_keys(graph, "objectives")
    defined = _set_keys(graph, ActionKind.OBJECTIVE_UPDATE)
    missing = sorted(referenced - defined)
    unused = sorted(defined - referenced)
    if missing:
        report.warnings.append(f"Missing objectives: {', '.join(missing)}")
        report.suggestions.append("Consider adding OBJECTIVE_UPDATE actions for referenced objectives")
    if unused:
        report.warnings.append(f"Unused objectives: {', '.join(unused)}")

    flags_set = _set_keys(graph, ActionKind.FLAG_SET)
    flags_read = _referenced_keys(graph, "flags") | _flag_test_keys(graph)
    unset = sorted(flags_read - flags_set)
    if unset:
        report.warnings.append(f"Flags read by guards but never set: {', '.join(unset)}")

    for warning in report.warnings:
        logger.warning("Graph %s: %s", graph.graph_id, warning)

    return report


def _flag_test_keys(graph: QuestGraph) -> Set[str]:
    keys = set()
    for expr in _all_guards(graph):
        if isinstance(expr, FlagTest):
            key = expr.name if expr.namespace == DEFAULT_FLAG_NAMESPACE else f"{expr.namespace}.{expr.name}"
            keys.add(key)
    return keys
