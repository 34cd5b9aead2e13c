"""JSON schema definition for authored quest graph documents.

Guard expressions are only checked for being objects here; their shape is
validated when they are parsed into the expression union.
"""

MAX_SYNOPSIS_LENGTH = 160
MAX_HINT_LENGTH = 120

_ACTION_SCHEMA = {
    "type": "object",
    "required": ["act"],
    "properties": {
        "act": {"type": "string", "minLength": 1},
        "id": {"type": "string"},
        "key": {"type": "string"},
        "val": {},
        "status": {"type": "string"},
    },
}

_GUARD_LIST_SCHEMA = {"type": "array", "items": {"type": "object"}}

QUEST_GRAPH_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["graphId", "start", "nodes"],
    "properties": {
        "graphId": {"type": "string", "minLength": 1, "maxLength": 100},
        "start": {"type": "string", "minLength": 1},
        "nodes": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["id", "type", "synopsis"],
                "properties": {
                    "id": {"type": "string", "minLength": 1, "maxLength": 50},
                    "type": {"type": "string", "enum": ["beat", "objective", "gate", "setpiece"]},
                    "synopsis": {"type": "string", "minLength": 1, "maxLength": MAX_SYNOPSIS_LENGTH},
                    "enterIf": _GUARD_LIST_SCHEMA,
                    "onSuccess": {"type": "array", "items": _ACTION_SCHEMA},
                    "onFail": {"type": "array", "items": _ACTION_SCHEMA},
                    "hint": {"type": "string", "maxLength": MAX_HINT_LENGTH},
                },
            },
        },
        "edges": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["from", "to"],
                "properties": {
                    "from": {"type": "string", "minLength": 1},
                    "to": {"type": "string", "minLength": 1},
                    "guard": _GUARD_LIST_SCHEMA,
                },
            },
        },
    },
}
