"""Guard expression DSL for the narrative graph.

Guards are authored as JSON and parsed once into the expression union defined
in ``model``. Evaluation runs against a read-only ``GuardContext`` and
supports:
- eq/ne/gt/lt/gte/lte: compare a context path against a literal
- in: membership of a context path in a literal list
- flag: strict boolean test of a namespaced flag
- all/any/not: combinators
- legacy {flag|objective|resource, op, val}: compare one game state entry

Evaluation never raises. Unresolvable paths, type mismatches and nesting
deeper than the configured limit all evaluate to False.
"""

import logging
import numbers
from typing import Any, Iterable, List, Mapping, Sequence

from ..config import DEFAULT_MAX_GUARD_DEPTH
from .model import (
    COMPARE_OPS, STATE_SOURCES, AllOf, AnyOf, Compare, FlagTest, GuardContext, GuardExpression,
    GuardParseError, Membership, Not, StateCondition,
)

logger = logging.getLogger(__name__)

# Zero value returned for a missing path, per category
_ZERO_VALUES = {
    "rel": 0,
    "inv": 0,
    "currency": 0,
    "flag": False,
    "state": None,
}

# Nesting accepted when parsing authored JSON
MAX_PARSE_DEPTH = 32


def resolve_path(path: str, ctx: GuardContext) -> Any:
    """Resolve a dotted ``category.key1.key2`` path against a context.

    Args:
        path: Dotted path, e.g. "rel.kiera.trust"
        ctx: Guard context snapshot

    Returns:
        The value found, or the category's zero value when any segment is
        missing (0 for rel/inv/currency, False for flag, None for state and
        for unknown categories)
    """
    if not isinstance(path, str) or not path:
        return None

    category, _, rest = path.partition(".")
    if category not in _ZERO_VALUES:
        return None

    zero = _ZERO_VALUES[category]
    current: Any = getattr(ctx, category, None)
    for segment in rest.split(".") if rest else []:
        if not isinstance(current, Mapping) or segment not in current:
            return zero
        current = current[segment]

    return zero if current is None else current


def resolve_state_entry(source: str, key: str, ctx: GuardContext) -> Any:
    """Read one game state entry by its exact key.

    Missing flags and objectives resolve to None; missing or null resources
    resolve to 0.
    """
    entries = ctx.state.get(STATE_SOURCES.get(source, ""))
    value = entries.get(key) if isinstance(entries, Mapping) else None
    if source == "resource":
        return value or 0
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _equals(actual: Any, expected: Any) -> bool:
    # True must not equal 1
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    return actual == expected


def _compare(op: str, actual: Any, expected: Any) -> bool:
    if op == "eq":
        return _equals(actual, expected)
    if op == "ne":
        return not _equals(actual, expected)

    if not (_is_number(actual) and _is_number(expected)):
        return False

    if op == "gt":
        return actual > expected
    if op == "lt":
        return actual < expected
    if op == "gte":
        return actual >= expected
    if op == "lte":
        return actual <= expected
    return False


class _DepthExceeded(Exception):
    """Aborts the whole evaluation so an enclosing 'not' cannot flip it."""
    pass


def _evaluate(expr: GuardExpression, ctx: GuardContext, depth: int, max_depth: int) -> bool:
    if depth > max_depth:
        raise _DepthExceeded(depth)

    if isinstance(expr, Compare):
        return _compare(expr.op, resolve_path(expr.path, ctx), expr.value)

    if isinstance(expr, StateCondition):
        return _compare(expr.op, resolve_state_entry(expr.source, expr.key, ctx), expr.value)

    if isinstance(expr, Membership):
        actual = resolve_path(expr.path, ctx)
        if actual is None:
            return False
        return any(_equals(actual, candidate) for candidate in expr.values)

    if isinstance(expr, FlagTest):
        actual = resolve_path(f"flag.{expr.namespace}.{expr.name}", ctx)
        return isinstance(actual, bool) and actual is expr.expected

    if isinstance(expr, AllOf):
        return all(_evaluate(item, ctx, depth + 1, max_depth) for item in expr.items)

    if isinstance(expr, AnyOf):
        return any(_evaluate(item, ctx, depth + 1, max_depth) for item in expr.items)

    if isinstance(expr, Not):
        return not _evaluate(expr.item, ctx, depth + 1, max_depth)

    # Unknown expression type
    return False


def evaluate(expr: GuardExpression, ctx: GuardContext, max_depth: int = DEFAULT_MAX_GUARD_DEPTH) -> bool:
    """Evaluate a guard expression.

    Args:
        expr: Parsed guard expression
        ctx: Guard context snapshot
        max_depth: Deepest all/any/not nesting allowed before failing closed

    Returns:
        True if the guard holds, False otherwise (including on any error)
    """
    try:
        return _evaluate(expr, ctx, 0, max_depth)
    except _DepthExceeded:
        logger.debug("Guard nesting exceeded depth %d, failing closed", max_depth)
        return False
    except (TypeError, ValueError, RecursionError) as e:
        logger.debug("Guard evaluation failed closed: %s", e)
        return False


def check_all(guards: Iterable[GuardExpression], ctx: GuardContext,
              max_depth: int = DEFAULT_MAX_GUARD_DEPTH) -> bool:
    """Check that every guard in a conjunction holds. Empty is True."""
    return all(evaluate(guard, ctx, max_depth) for guard in guards)


# ---------------- Parsing ----------------

def _expect_pair(op: str, arg: Any) -> Sequence[Any]:
    if not isinstance(arg, (list, tuple)) or len(arg) != 2:
        raise GuardParseError(f"'{op}' expects [path, value], got {arg!r}")
    if not isinstance(arg[0], str) or not arg[0]:
        raise GuardParseError(f"'{op}' path must be a non-empty string, got {arg[0]!r}")
    return arg


def _parse_legacy(data: Mapping[str, Any]) -> StateCondition:
    """Parse ``{"flag"|"objective"|"resource": key, "op": ..., "val": ...}``."""
    op = data.get("op")
    if op not in COMPARE_OPS:
        raise GuardParseError(f"Unknown comparison operator: {op!r}")

    for source in STATE_SOURCES:
        key = data.get(source)
        if isinstance(key, str) and key:
            return StateCondition(source=source, key=key, op=op, value=data.get("val"))

    raise GuardParseError(f"Legacy condition needs one of flag/objective/resource: {dict(data)!r}")


def _parse(data: Any, depth: int) -> GuardExpression:
    if depth > MAX_PARSE_DEPTH:
        raise GuardParseError(f"Guard nesting deeper than {MAX_PARSE_DEPTH} levels")

    if not isinstance(data, Mapping):
        raise GuardParseError(f"Guard must be an object, got {type(data).__name__}")

    if "op" in data:
        return _parse_legacy(data)

    if len(data) != 1:
        raise GuardParseError(f"Guard must have exactly one operator, got {sorted(data)!r}")

    (op, arg), = data.items()

    if op in COMPARE_OPS:
        path, value = _expect_pair(op, arg)
        return Compare(op=op, path=path, value=value)

    if op == "in":
        path, values = _expect_pair(op, arg)
        if not isinstance(values, (list, tuple)):
            raise GuardParseError(f"'in' expects a list of literals, got {values!r}")
        return Membership(path=path, values=tuple(values))

    if op == "flag":
        if not isinstance(arg, (list, tuple)) or len(arg) != 3:
            raise GuardParseError(f"'flag' expects [namespace, name, expected], got {arg!r}")
        namespace, name, expected = arg
        if not isinstance(namespace, str) or not isinstance(name, str):
            raise GuardParseError(f"'flag' namespace and name must be strings, got {arg!r}")
        if not isinstance(expected, bool):
            raise GuardParseError(f"'flag' expected value must be a boolean, got {expected!r}")
        return FlagTest(namespace=namespace, name=name, expected=expected)

    if op in ("all", "any"):
        if not isinstance(arg, (list, tuple)):
            raise GuardParseError(f"'{op}' expects a list of guards, got {arg!r}")
        items = tuple(_parse(item, depth + 1) for item in arg)
        return AllOf(items) if op == "all" else AnyOf(items)

    if op == "not":
        return Not(_parse(arg, depth + 1))

    raise GuardParseError(f"Unknown guard operator: {op!r}")


def parse_guard(data: Any) -> GuardExpression:
    """Parse a JSON guard into an expression.

    Accepts the operator form (``{"gte": ["rel.kiera.trust", 8]}``) and the
    legacy condition form (``{"flag": "met_kiera", "op": "ne", "val": true}``).

    Raises:
        GuardParseError: If the guard has an unknown or malformed shape
    """
    return _parse(data, 0)


def parse_guards(data: Any) -> List[GuardExpression]:
    """Parse an optional list of guards (a conjunction)."""
    if data is None:
        return []
    if not isinstance(data, (list, tuple)):
        raise GuardParseError(f"Guard list expected, got {type(data).__name__}")
    return [parse_guard(item) for item in data]


def guard_to_json(expr: GuardExpression) -> Any:
    """Render a parsed guard back to its JSON form."""
    return expr.to_json()
