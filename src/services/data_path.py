"""Dot-notation path expressions for connector payloads.

Paths such as ``content.items.0.title`` are parsed once into a tuple of
typed steps and evaluated against decoded JSON values. Evaluation never
raises for shape mismatches; it returns the ``ABSENT`` sentinel instead.

Semantics:
- A numeric step indexes into a list (negative or out-of-range is absent).
  Applied to a mapping it looks up the string key.
- A field step applied to a list maps over every element (broadcasting).
- A string produced by a field step that starts with ``{`` or ``[`` is
  decoded as JSON when possible.

Example:
    expr = parse_path("content.items")
    items = evaluate(expr, {"content": {"items": [1, 2]}})
"""

import json
import re
from dataclasses import dataclass
from typing import Any

_INDEX_PATTERN = re.compile(r"^-?\d+$")


class PathSyntaxError(ValueError):
    """Path could not be parsed into steps."""


class _Absent:
    """Sentinel for a path that did not resolve."""

    _instance = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


@dataclass(frozen=True)
class FieldStep:
    """Property access; broadcasts when applied to a list."""

    name: str


@dataclass(frozen=True)
class IndexStep:
    """Numeric segment; list index or string key on mappings."""

    index: int
    raw: str


PathStep = FieldStep | IndexStep


@dataclass(frozen=True)
class PathExpression:
    """Parsed dot-notation path."""

    source: str
    steps: tuple[PathStep, ...]

    def __str__(self) -> str:
        return self.source


_PATH_CACHE: dict[str, PathExpression] = {}


def parse_path(path: str) -> PathExpression:
    """Parse a dot-notation path into typed steps.

    Args:
        path: Path string, e.g. ``"orders.0.items"``.

    Returns:
        Cached PathExpression for the path.

    Raises:
        PathSyntaxError: If path is not a string.
    """
    if not isinstance(path, str):
        raise PathSyntaxError(f"Path must be a string, got {type(path).__name__}")

    cached = _PATH_CACHE.get(path)
    if cached is not None:
        return cached

    steps: list[PathStep] = []
    for segment in path.split("."):
        if _INDEX_PATTERN.match(segment):
            steps.append(IndexStep(index=int(segment), raw=segment))
        else:
            steps.append(FieldStep(name=segment))

    expression = PathExpression(source=path, steps=tuple(steps))
    _PATH_CACHE[path] = expression
    return expression


def maybe_parse_json(value: Any) -> Any:
    """Decode strings that look like JSON objects or arrays.

    Args:
        value: Any decoded value.

    Returns:
        The decoded JSON when value is a JSON-looking string that parses,
        otherwise value unchanged.
    """
    if isinstance(value, str) and value.startswith(("{", "[")):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def _field(current: Any, name: str) -> Any:
    if isinstance(current, dict):
        if name not in current:
            return ABSENT
        return maybe_parse_json(current[name])
    return ABSENT


def _apply_step(current: Any, step: PathStep) -> Any:
    if isinstance(step, IndexStep):
        if isinstance(current, list):
            if 0 <= step.index < len(current):
                return current[step.index]
            return ABSENT
        return _field(current, step.raw)

    if isinstance(current, list):
        # No JSON decoding while broadcasting
        return [
            item.get(step.name, ABSENT) if isinstance(item, dict) else ABSENT
            for item in current
        ]
    return _field(current, step.name)


def evaluate(expression: PathExpression, data: Any) -> Any:
    """Evaluate a parsed path against decoded JSON data.

    Args:
        expression: Parsed path.
        data: Root value.

    Returns:
        The resolved value, or ABSENT. Broadcast results are lists whose
        unresolved elements are None.
    """
    current = data
    for step in expression.steps:
        if current is None or current is ABSENT:
            return ABSENT
        current = _apply_step(current, step)
    if isinstance(current, list):
        return [None if item is ABSENT else item for item in current]
    return current


def resolve(data: Any, path: str) -> Any:
    """Parse and evaluate in one call; returns None for ABSENT."""
    value = evaluate(parse_path(path), data)
    return None if value is ABSENT else value
