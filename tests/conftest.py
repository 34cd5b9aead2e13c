"""Shared fixtures for the quest graph tests."""

import copy

import pytest

from storygraph.quest.loader import parse_quest_graph
from storygraph.quest.model import GameState


KIERA_GRAPH = {
    "graphId": "kiera-glade",
    "start": "beat.intro",
    "nodes": [
        {
            "id": "beat.intro",
            "type": "beat",
            "synopsis": "Moonlit glade, first contact with Kiera.",
            "enterIf": [{"flag": "met_kiera", "op": "ne", "val": True}],
            "onSuccess": [
                {"act": "OBJECTIVE_UPDATE", "id": "meet_kiera", "status": "complete"},
                {"act": "FLAG_SET", "key": "met_kiera", "val": True},
            ],
            "onFail": [{"act": "FLAG_SET", "key": "intro_failed", "val": True}],
            "hint": "Try a calm greeting or show a harmless token.",
        },
        {
            "id": "beat.trust_test",
            "type": "objective",
            "synopsis": "Prove your worth to Kiera through actions.",
            "enterIf": [{"objective": "meet_kiera", "op": "eq", "val": "complete"}],
            "onSuccess": [
                {"act": "RESOURCE_UPDATE", "key": "stamina", "val": -10},
                {"act": "FLAG_SET", "key": "trust_earned", "val": True},
            ],
            "hint": "Kiera respects patience.",
        },
        {
            "id": "setpiece.ruins",
            "type": "setpiece",
            "synopsis": "The ruined shrine opens at last.",
            "enterIf": [{"gte": ["rel.kiera.trust", 8]}],
        },
    ],
    "edges": [
        {
            "from": "beat.intro",
            "to": "beat.trust_test",
            "guard": [{"objective": "meet_kiera", "op": "eq", "val": "complete"}],
        },
        {
            "from": "beat.trust_test",
            "to": "setpiece.ruins",
            "guard": [{"flag": "trust_earned", "op": "eq", "val": True}],
        },
    ],
}


@pytest.fixture
def kiera_doc():
    return copy.deepcopy(KIERA_GRAPH)


@pytest.fixture
def kiera_graph(kiera_doc):
    return parse_quest_graph(kiera_doc)


@pytest.fixture
def fresh_state():
    return GameState(
        current_node_id="beat.intro",
        resources={"health": 100, "mana": 50, "stamina": 30},
    )
