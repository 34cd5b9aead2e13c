"""Narrative graph data models.

This module defines the core data structures for the graph engine: the guard
expression union, quest graph nodes and edges, the mutable game state and the
read-only results the engine hands back to its callers.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple, Union

NodeType = Literal["beat", "objective", "gate", "setpiece"]
CompareOp = Literal["eq", "ne", "gt", "lt", "gte", "lte"]

NODE_TYPES = ("beat", "objective", "gate", "setpiece")
COMPARE_OPS = ("eq", "ne", "gt", "lt", "gte", "lte")

StateSource = Literal["flag", "objective", "resource"]

# Legacy condition key -> GameState mapping it reads from
STATE_SOURCES = {
    "flag": "flags",
    "objective": "objectives",
    "resource": "resources",
}


class QuestGraphError(Exception):
    """Base class for graph engine errors."""
    pass


class GraphIntegrityError(QuestGraphError):
    """Raised when a game state references a node the graph does not contain."""
    pass


class GraphDocumentError(QuestGraphError):
    """Raised when an authored graph document fails validation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class GuardParseError(QuestGraphError):
    """Raised when a guard expression has an unknown or malformed shape."""
    pass


# ---------------- Guard expressions ----------------

@dataclass(frozen=True)
class Compare:
    """``{"gte": ["rel.kiera.trust", 8]}``"""
    op: CompareOp
    path: str
    value: Any

    def to_json(self) -> Dict[str, Any]:
        return {self.op: [self.path, self.value]}


@dataclass(frozen=True)
class StateCondition:
    """``{"flag": "met_kiera", "op": "ne", "val": true}``

    Legacy condition reading one game state entry by its exact key, so keys
    containing dots are looked up as written.
    """
    source: StateSource
    key: str
    op: CompareOp
    value: Any

    def to_json(self) -> Dict[str, Any]:
        return {self.source: self.key, "op": self.op, "val": self.value}


@dataclass(frozen=True)
class Membership:
    """``{"in": ["state.world.weather", ["rain", "storm"]]}``"""
    path: str
    values: Tuple[Any, ...]

    def to_json(self) -> Dict[str, Any]:
        return {"in": [self.path, list(self.values)]}


@dataclass(frozen=True)
class FlagTest:
    """``{"flag": ["story", "met_guide", true]}``"""
    namespace: str
    name: str
    expected: bool

    def to_json(self) -> Dict[str, Any]:
        return {"flag": [self.namespace, self.name, self.expected]}


@dataclass(frozen=True)
class AllOf:
    items: Tuple["GuardExpression", ...] = ()

    def to_json(self) -> Dict[str, Any]:
        return {"all": [item.to_json() for item in self.items]}


@dataclass(frozen=True)
class AnyOf:
    items: Tuple["GuardExpression", ...] = ()

    def to_json(self) -> Dict[str, Any]:
        return {"any": [item.to_json() for item in self.items]}


@dataclass(frozen=True)
class Not:
    item: "GuardExpression"

    def to_json(self) -> Dict[str, Any]:
        return {"not": self.item.to_json()}


GuardExpression = Union[Compare, StateCondition, Membership, FlagTest, AllOf, AnyOf, Not]


@dataclass
class GuardContext:
    """Read-only snapshot a guard is evaluated against.

    Every category is a two-level mapping; missing entries resolve to the
    category's zero value instead of raising.
    """
    rel: Dict[str, Dict[str, int]] = field(default_factory=dict)
    inv: Dict[str, Dict[str, Dict[str, int]]] = field(default_factory=dict)
    currency: Dict[str, Dict[str, int]] = field(default_factory=dict)
    flag: Dict[str, Dict[str, bool]] = field(default_factory=dict)
    state: Dict[str, Dict[str, Any]] = field(default_factory=dict)


# ---------------- Actions ----------------

class ActionKind(str, Enum):
    """Known node action kinds.

    Anything else parses to UNRECOGNIZED so it can be skipped explicitly.
    """
    OBJECTIVE_UPDATE = "OBJECTIVE_UPDATE"
    FLAG_SET = "FLAG_SET"
    RESOURCE_UPDATE = "RESOURCE_UPDATE"
    UNRECOGNIZED = "UNRECOGNIZED"

    @classmethod
    def parse(cls, raw: Any) -> "ActionKind":
        try:
            return cls(raw)
        except ValueError:
            return cls.UNRECOGNIZED


@dataclass(frozen=True)
class NodeAction:
    """An onSuccess/onFail action template attached to a node."""
    act: str
    id: Optional[str] = None
    key: Optional[str] = None
    val: Any = None
    status: Optional[str] = None

    @property
    def kind(self) -> ActionKind:
        return ActionKind.parse(self.act)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"act": self.act}
        for name in ("id", "key", "val", "status"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


# ---------------- Graph ----------------

@dataclass
class GraphNode:
    """A single narrative node."""
    id: str
    type: NodeType
    synopsis: str
    enter_if: List[GuardExpression] = field(default_factory=list)  # conjunction
    on_success: List[NodeAction] = field(default_factory=list)
    on_fail: List[NodeAction] = field(default_factory=list)
    hint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "type": self.type, "synopsis": self.synopsis}
        if self.enter_if:
            data["enterIf"] = [guard.to_json() for guard in self.enter_if]
        if self.on_success:
            data["onSuccess"] = [action.to_dict() for action in self.on_success]
        if self.on_fail:
            data["onFail"] = [action.to_dict() for action in self.on_fail]
        if self.hint is not None:
            data["hint"] = self.hint
        return data


@dataclass
class GraphEdge:
    """A directed transition, optionally gated by a guard conjunction."""
    from_id: str
    to_id: str
    guard: List[GuardExpression] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"from": self.from_id, "to": self.to_id}
        if self.guard:
            data["guard"] = [g.to_json() for g in self.guard]
        return data


@dataclass
class QuestGraph:
    """An authored quest graph, immutable for the duration of a turn.

    ``raw`` keeps the document the graph was parsed from, unmodelled fields
    included; graphs built in code leave it empty.
    """
    graph_id: str
    start: str
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def get_node(self, node_id: Optional[str]) -> Optional[GraphNode]:
        if not node_id:
            return None
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def outgoing(self, node_id: str) -> List[GraphEdge]:
        return [e for e in self.edges if e.from_id == node_id]

    def incoming(self, node_id: str) -> List[GraphEdge]:
        return [e for e in self.edges if e.to_id == node_id]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "graphId": self.graph_id,
            "start": self.start,
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
        }


# ---------------- Game state ----------------

@dataclass
class GameState:
    """Per-game progression state, rewritten once per turn.

    relationships/inventory/currency are optional sources for the matching
    guard context categories.
    """
    current_node_id: Optional[str] = None
    visited: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    retries: int = 0
    flags: Dict[str, Any] = field(default_factory=dict)
    objectives: Dict[str, str] = field(default_factory=dict)
    resources: Dict[str, float] = field(default_factory=dict)
    relationships: Dict[str, Dict[str, int]] = field(default_factory=dict)
    inventory: Dict[str, Dict[str, Dict[str, int]]] = field(default_factory=dict)
    currency: Dict[str, Dict[str, int]] = field(default_factory=dict)

    def copy(self) -> "GameState":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase form used by the persistence layer."""
        return {
            "currentNodeId": self.current_node_id,
            "visited": list(self.visited),
            "failures": list(self.failures),
            "retries": self.retries,
            "flags": copy.deepcopy(self.flags),
            "objectives": dict(self.objectives),
            "resources": dict(self.resources),
            "relationships": copy.deepcopy(self.relationships),
            "inventory": copy.deepcopy(self.inventory),
            "currency": copy.deepcopy(self.currency),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GameState":
        return cls(
            current_node_id=data.get("currentNodeId"),
            visited=list(data.get("visited", [])),
            failures=list(data.get("failures", [])),
            retries=int(data.get("retries", 0) or 0),
            flags=copy.deepcopy(dict(data.get("flags", {}))),
            objectives=dict(data.get("objectives", {})),
            resources=dict(data.get("resources", {})),
            relationships=copy.deepcopy(dict(data.get("relationships", {}))),
            inventory=copy.deepcopy(dict(data.get("inventory", {}))),
            currency=copy.deepcopy(dict(data.get("currency", {}))),
        )


# ---------------- Engine results ----------------

@dataclass(frozen=True)
class FrontierEntry:
    id: str
    type: str
    synopsis: str
    hint: Optional[str] = None
    guard: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class GraphSlice:
    """Summary of the active node and its frontier for the next prompt."""
    active_node: Dict[str, str]
    frontier: List[FrontierEntry]
    hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "activeNode": dict(self.active_node),
            "frontier": [
                {
                    "id": entry.id,
                    "type": entry.type,
                    "synopsis": entry.synopsis,
                    "hint": entry.hint,
                    "guard": entry.guard,
                }
                for entry in self.frontier
            ],
            "hash": self.hash,
        }


@dataclass
class OutcomeResult:
    success: bool
    new_state: GameState
    applied_actions: List[NodeAction] = field(default_factory=list)
    failed: bool = False  # an onFail template matched


@dataclass(frozen=True)
class StuckDiagnosis:
    is_stuck: bool
    reason: str = ""
    suggestions: Tuple[str, ...] = ()


@dataclass
class TurnRecord:
    """What changed during a past turn, as far as stuck detection cares.

    Examples:
        objectives=[{"id": "meet_kiera", "status": "complete"}]
        flags=[{"key": "intro_complete", "set": True}]
    """
    objectives: List[Dict[str, Any]] = field(default_factory=list)
    flags: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TurnRecord":
        return cls(
            objectives=list(data.get("objectives") or []),
            flags=list(data.get("flags") or []),
        )
