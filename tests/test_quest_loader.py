"""Test the quest graph loader and linter."""

import json
import logging

import pytest

from storygraph.quest.loader import (
    find_cycles, find_unreachable_nodes, lint_quest_graph, load_quest_graph, parse_quest_graph,
)
from storygraph.quest.model import (
    ActionKind, Compare, FlagTest, GraphDocumentError, GraphEdge, GraphNode, GuardParseError, QuestGraph,
    StateCondition,
)


def _node(node_id, **kwargs):
    return {"id": node_id, "type": "beat", "synopsis": f"Scene {node_id}.", **kwargs}


def _doc(nodes, edges=(), start=None):
    return {
        "graphId": "test-graph",
        "start": start or nodes[0]["id"],
        "nodes": list(nodes),
        "edges": list(edges),
    }


def test_load_quest_graph(tmp_path, kiera_doc):
    graph_file = tmp_path / "kiera.json"
    graph_file.write_text(json.dumps(kiera_doc), encoding="utf-8")

    graph = load_quest_graph(str(graph_file))

    assert graph.graph_id == "kiera-glade"
    assert graph.start == "beat.intro"
    assert [n.id for n in graph.nodes] == ["beat.intro", "beat.trust_test", "setpiece.ruins"]
    assert len(graph.edges) == 2

    intro = graph.get_node("beat.intro")
    assert intro.hint == "Try a calm greeting or show a harmless token."
    assert [a.kind for a in intro.on_success] == [ActionKind.OBJECTIVE_UPDATE, ActionKind.FLAG_SET]
    assert intro.on_fail[0].key == "intro_failed"


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_quest_graph(str(tmp_path / "nope.json"))


def test_load_invalid_json(tmp_path):
    graph_file = tmp_path / "broken.json"
    graph_file.write_text("{ not json", encoding="utf-8")

    with pytest.raises(GraphDocumentError) as exc_info:
        load_quest_graph(str(graph_file))
    assert "Invalid JSON" in str(exc_info.value)


def test_schema_errors_list_locations():
    doc = {"graphId": "", "start": "a", "nodes": [{"id": "a", "type": "cutscene", "synopsis": "x"}]}

    with pytest.raises(GraphDocumentError) as exc_info:
        parse_quest_graph(doc)

    errors = exc_info.value.errors
    assert len(errors) == 2
    assert any(e.startswith("graphId:") for e in errors)
    assert any(e.startswith("nodes.0.type:") for e in errors)


def test_schema_missing_fields_reported_at_root():
    with pytest.raises(GraphDocumentError) as exc_info:
        parse_quest_graph({"graphId": "g"})

    errors = exc_info.value.errors
    assert any(e.startswith("<root>:") and "'start'" in e for e in errors)
    assert any(e.startswith("<root>:") and "'nodes'" in e for e in errors)


def test_schema_rejects_empty_graph_and_bad_actions():
    with pytest.raises(GraphDocumentError):
        parse_quest_graph({"graphId": "g", "start": "a", "nodes": []})

    with pytest.raises(GraphDocumentError):
        parse_quest_graph(_doc([_node("a", onSuccess=[{"key": "x"}])]))

    with pytest.raises(GraphDocumentError):
        parse_quest_graph(_doc([_node("a", synopsis="x" * 161)]))


def test_unknown_guard_shape_is_rejected():
    doc = _doc([_node("a", enterIf=[{"between": ["rel.a.trust", 1, 5]}])])

    with pytest.raises(GuardParseError):
        parse_quest_graph(doc)


def test_guards_are_parsed_once(kiera_graph):
    intro = kiera_graph.get_node("beat.intro")
    ruins = kiera_graph.get_node("setpiece.ruins")

    assert intro.enter_if == [StateCondition("flag", "met_kiera", "ne", True)]
    assert ruins.enter_if == [Compare("gte", "rel.kiera.trust", 8)]
    assert kiera_graph.edges[0].guard == [StateCondition("objective", "meet_kiera", "eq", "complete")]


def test_unrecognized_action_is_kept():
    graph = parse_quest_graph(_doc([_node("a", onSuccess=[{"act": "SUMMON_STORM", "key": "sky"}])]))
    assert graph.nodes[0].on_success[0].kind is ActionKind.UNRECOGNIZED


def test_lint_clean_graph(kiera_graph):
    report = lint_quest_graph(kiera_graph)

    assert report.valid == True
    assert report.errors == []
    assert report.warnings == []


def test_lint_cycle():
    graph = parse_quest_graph(_doc(
        [_node("a"), _node("b")],
        [{"from": "a", "to": "b"}, {"from": "b", "to": "a"}],
    ))

    assert find_cycles(graph) == ["a -> b -> a"]

    report = lint_quest_graph(graph)
    assert report.valid == False
    assert "Cycles detected: a -> b -> a" in report.errors


def test_lint_unreachable_nodes(caplog):
    graph = parse_quest_graph(_doc([_node("a"), _node("b"), _node("c")], [{"from": "a", "to": "b"}]))

    assert find_unreachable_nodes(graph) == ["c"]

    with caplog.at_level(logging.WARNING, logger="storygraph.quest.loader"):
        report = lint_quest_graph(graph)

    assert report.valid == True
    assert "Unreachable nodes: c" in report.warnings
    assert "Unreachable nodes: c" in caplog.text


def test_lint_missing_start_and_dangling_edge():
    graph = QuestGraph(
        graph_id="g",
        start="nowhere",
        nodes=[GraphNode("a", "beat", "Scene a.")],
        edges=[GraphEdge("a", "ghost")],
    )

    report = lint_quest_graph(graph)
    assert "Start node 'nowhere' not found in graph" in report.errors
    assert "Edge a -> ghost: unknown node 'ghost'" in report.errors


def test_lint_text_limits():
    graph = QuestGraph(
        graph_id="g",
        start="a",
        nodes=[GraphNode("a", "beat", "s" * 161, hint="h" * 121)],
    )

    report = lint_quest_graph(graph)
    assert "Node a: synopsis too long (161 > 160)" in report.errors
    assert "Node a: hint too long (121 > 120)" in report.errors


def test_lint_objectives():
    graph = parse_quest_graph(_doc([
        _node("a", onSuccess=[{"act": "OBJECTIVE_UPDATE", "id": "found_map", "status": "complete"}]),
        _node("b", enterIf=[{"objective": "reach_tower", "op": "eq", "val": "complete"}]),
    ], [{"from": "a", "to": "b"}]))

    report = lint_quest_graph(graph)
    assert report.valid == True
    assert "Missing objectives: reach_tower" in report.warnings
    assert "Unused objectives: found_map" in report.warnings


def test_lint_flags_never_set():
    graph = QuestGraph(
        graph_id="g",
        start="a",
        nodes=[
            GraphNode("a", "beat", "Scene a.", enter_if=[FlagTest("global", "lantern_lit", True)]),
            GraphNode("b", "gate", "Scene b.", enter_if=[Compare("eq", "state.flags.door_open", True),
                                                         FlagTest("story", "betrayed", False)]),
        ],
        edges=[GraphEdge("a", "b")],
    )

    report = lint_quest_graph(graph)
    assert "Flags read by guards but never set: door_open, lantern_lit, story.betrayed" in report.warnings


def test_lint_dotted_legacy_keys():
    graph = parse_quest_graph(_doc([
        _node("a", onSuccess=[
            {"act": "FLAG_SET", "key": "story.met_guide", "val": True},
            {"act": "OBJECTIVE_UPDATE", "id": "q1.find_key", "status": "complete"},
        ]),
        _node("b", enterIf=[
            {"flag": "story.met_guide", "op": "eq", "val": True},
            {"objective": "q1.find_key", "op": "eq", "val": "complete"},
        ]),
    ], [{"from": "a", "to": "b"}]))

    report = lint_quest_graph(graph)
    assert report.warnings == []


def test_parsed_graph_keeps_source_document(kiera_doc):
    kiera_doc["version"] = 2
    graph = parse_quest_graph(kiera_doc)

    assert graph.raw == kiera_doc
    assert graph.raw is not kiera_doc
