"""Assertion evaluation against a received response.

An assertion row has a ``field``, an ``operator`` and an expected value::

    {"description": "created", "field": "status", "operator": "equals", "expectedValue": "201"}

Fields:

* ``status`` / ``statusCode``, ``statusText``, ``responseTime`` / ``duration``
* ``header.<Name>`` or ``headers.<Name>`` (case-insensitive)
* ``body.<path>`` or ``response.body.<path>``, ``response.<path>``
* anything else is read as a path into the body

The operator may also be written as the last word of the field
(``"body.items is-empty"``). Comparisons are made on the text form of the
actual value, except the numeric, emptiness, truthiness and type operators.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from reqflow.models import ResponseState
from reqflow.paths import MISSING, lookup_path


class Assertion(BaseModel):
    """One row of an ``assertions-table`` block."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    description: str = ""
    field: str = ""
    operator: str = "equals"
    expected: str = Field(default="", alias="expectedValue")
    enabled: bool = True


class AssertionResult(BaseModel):
    description: str
    field: str
    operator: str
    expected: str
    actual: Any = None
    passed: bool
    error: Optional[str] = None


def _as_text(value: Any) -> str:
    if value is None or value is MISSING:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def _as_number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _is_empty(value: Any) -> bool:
    if isinstance(value, (str, list, dict, tuple)):
        return len(value) == 0
    return value is None or value is MISSING or not value


def _type_name(value: Any) -> set[str]:
    if value is None or value is MISSING:
        return {"null", "undefined"}
    if isinstance(value, bool):
        return {"boolean"}
    if isinstance(value, (int, float)):
        return {"number"}
    if isinstance(value, str):
        return {"string"}
    if isinstance(value, list):
        return {"array", "object"}
    return {"object"}


def _matches(actual: Any, expected: str) -> bool:
    try:
        return re.search(expected, _as_text(actual)) is not None
    except re.error:
        return False


_OPERATORS: dict[str, Callable[[Any, str], bool]] = {
    "equals": lambda a, e: _as_text(a) == e,
    "not-equals": lambda a, e: _as_text(a) != e,
    "contains": lambda a, e: e in _as_text(a),
    "not-contains": lambda a, e: e not in _as_text(a),
    "starts-with": lambda a, e: _as_text(a).startswith(e),
    "ends-with": lambda a, e: _as_text(a).endswith(e),
    "matches": _matches,
    "exists": lambda a, e: a is not None and a is not MISSING,
    "not-exists": lambda a, e: a is None or a is MISSING,
    "gt": lambda a, e: _as_number(a) > _as_number(e),
    "lt": lambda a, e: _as_number(a) < _as_number(e),
    "gte": lambda a, e: _as_number(a) >= _as_number(e),
    "lte": lambda a, e: _as_number(a) <= _as_number(e),
    "is-empty": lambda a, e: _is_empty(a),
    "not-empty": lambda a, e: not _is_empty(a),
    "truthy": lambda a, e: not _is_empty(a) if not isinstance(a, (int, float)) else bool(a),
    "falsy": lambda a, e: _is_empty(a) if not isinstance(a, (int, float)) else not a,
    "type-is": lambda a, e: e.strip().lower() in _type_name(a),
}

_ALIASES = {
    "eq": "equals", "==": "equals", "===": "equals",
    "ne": "not-equals", "!=": "not-equals", "!==": "not-equals",
    "includes": "contains", "not-includes": "not-contains",
    "startswith": "starts-with", "endswith": "ends-with",
    "regex": "matches",
    "is-defined": "exists",
    "is-null": "not-exists", "is-undefined": "not-exists",
    "greater-than": "gt", ">": "gt",
    "less-than": "lt", "<": "lt",
    "greater-equal": "gte", ">=": "gte",
    "less-equal": "lte", "<=": "lte",
    "empty": "is-empty",
    "is-truthy": "truthy", "is-falsy": "falsy",
    "typeof": "type-is",
}


def canonical_operator(operator: str) -> Optional[str]:
    """Return the canonical spelling of *operator*, or ``None`` if unknown."""
    lowered = operator.strip().lower()
    if lowered in _OPERATORS:
        return lowered
    return _ALIASES.get(lowered)


def split_field(field: str) -> tuple[str, Optional[str]]:
    """Separate an operator written as the field's last word."""
    parts = field.strip().split()
    if len(parts) >= 2:
        operator = canonical_operator(parts[-1])
        if operator is not None:
            return " ".join(parts[:-1]), operator
    return field.strip(), None


def extract_field(field: str, response: ResponseState) -> Any:
    """Return the value *field* refers to in *response* (``MISSING`` if absent)."""
    if field in ("status", "statusCode"):
        return response.status
    if field == "statusText":
        return response.status_text
    if field in ("responseTime", "duration"):
        return response.elapsed_ms
    for prefix in ("header.", "headers.", "response.headers."):
        if field.startswith(prefix):
            value = response.get_header(field[len(prefix):])
            return MISSING if value is None else value
    for prefix in ("response.body.", "body."):
        if field.startswith(prefix):
            return lookup_path(response.body, field[len(prefix):])
    if field == "body":
        return response.body
    if field.startswith("response."):
        return lookup_path(response.capture_view(), field[len("response."):])
    return lookup_path(response.body, field)


def evaluate(assertion: Assertion, response: ResponseState) -> AssertionResult:
    """Evaluate one assertion. Unknown operators produce a failed result."""
    field, embedded = split_field(assertion.field)
    operator = embedded or canonical_operator(assertion.operator or "equals")
    actual = extract_field(field, response)
    shown = None if actual is MISSING else actual
    if operator is None:
        return AssertionResult(
            description=assertion.description,
            field=field,
            operator=assertion.operator,
            expected=assertion.expected,
            actual=shown,
            passed=False,
            error=f"Unknown operator: {assertion.operator}",
        )
    return AssertionResult(
        description=assertion.description,
        field=field,
        operator=operator,
        expected=assertion.expected,
        actual=shown,
        passed=_OPERATORS[operator](actual, assertion.expected),
    )


def run_assertions(assertions: list[Assertion], response: ResponseState) -> dict[str, Any]:
    """Evaluate enabled assertions and summarise them.

    Returns:
        ``{"results": [...], "total": n, "passed": p, "failed": f}``
    """
    results = [evaluate(a, response) for a in assertions if a.enabled]
    passed = sum(1 for r in results if r.passed)
    return {
        "results": [r.model_dump() for r in results],
        "total": len(results),
        "passed": passed,
        "failed": len(results) - passed,
    }
