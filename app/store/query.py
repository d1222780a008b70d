"""
Cozy Connect — Parameterized record-store conditions.

Callers describe filters as small immutable condition trees instead of
formula strings::

    from app.store.query import all_of, any_of, eq, record_id

    pair = any_of(
        all_of(eq("Swiper", a), eq("Swiped", b)),
        all_of(eq("Swiper", b), eq("Swiped", a)),
    )

Each backend consumes the tree in its own way: Airtable compiles it to a
formula with ``to_formula`` (values escaped, field names and identifiers
allowlisted), the SQL backend builds a SQLAlchemy clause, and the in-memory
backend evaluates it directly with ``evaluate``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping

# Record identifiers are opaque, but every backend issues alphanumeric ids.
_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

# Airtable field references are written ``{Field Name}`` and cannot be escaped.
_FORBIDDEN_FIELD_CHARS = frozenset("{}\n\r")


class UnsafeQueryValue(ValueError):
    """Raised when a field name or identifier fails the allowlist."""


def is_valid_identifier(value: str) -> bool:
    return isinstance(value, str) and bool(_IDENTIFIER_RE.match(value))


def check_identifier(value: str) -> str:
    if not is_valid_identifier(value):
        raise UnsafeQueryValue(f"Invalid record identifier: {value!r}")
    return value


def check_field_name(name: str) -> str:
    if not name or any(ch in _FORBIDDEN_FIELD_CHARS for ch in name):
        raise UnsafeQueryValue(f"Invalid field name: {name!r}")
    return name


# ──────────────────────────────────────────────────────────────────────────────
# Condition nodes
# ──────────────────────────────────────────────────────────────────────────────

class Condition:
    """Marker base class for condition nodes."""

    __slots__ = ()


@dataclass(frozen=True)
class FieldEquals(Condition):
    field: str
    value: Any


@dataclass(frozen=True)
class RecordIdEquals(Condition):
    record_id: str


@dataclass(frozen=True)
class IsBlank(Condition):
    field: str


@dataclass(frozen=True)
class AnyOf(Condition):
    conditions: tuple[Condition, ...]


@dataclass(frozen=True)
class AllOf(Condition):
    conditions: tuple[Condition, ...]


@dataclass(frozen=True)
class Not(Condition):
    condition: Condition


def eq(field: str, value: Any) -> FieldEquals:
    return FieldEquals(check_field_name(field), value)


def record_id(value: str) -> RecordIdEquals:
    return RecordIdEquals(check_identifier(value))


def blank(field: str) -> IsBlank:
    return IsBlank(check_field_name(field))


def any_of(*conditions: Condition) -> AnyOf:
    if not conditions:
        raise ValueError("any_of() needs at least one condition")
    return AnyOf(tuple(conditions))


def all_of(*conditions: Condition) -> AllOf:
    if not conditions:
        raise ValueError("all_of() needs at least one condition")
    return AllOf(tuple(conditions))


def not_(condition: Condition) -> Not:
    return Not(condition)


# ──────────────────────────────────────────────────────────────────────────────
# Airtable formula compilation
# ──────────────────────────────────────────────────────────────────────────────

def quote_string(value: str) -> str:
    """Render *value* as a double-quoted Airtable formula string literal."""
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )
    return f'"{escaped}"'


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "TRUE()" if value else "FALSE()"
    if isinstance(value, (int, float)):
        return repr(value)
    if value is None:
        return "BLANK()"
    return quote_string(str(value))


def to_formula(condition: Condition) -> str:
    """Compile *condition* into an Airtable ``filterByFormula`` expression."""
    if isinstance(condition, FieldEquals):
        return f"{{{check_field_name(condition.field)}}} = {_literal(condition.value)}"
    if isinstance(condition, RecordIdEquals):
        return f"RECORD_ID() = {quote_string(check_identifier(condition.record_id))}"
    if isinstance(condition, IsBlank):
        return f"{{{check_field_name(condition.field)}}} = BLANK()"
    if isinstance(condition, AnyOf):
        return "OR(" + ", ".join(to_formula(c) for c in condition.conditions) + ")"
    if isinstance(condition, AllOf):
        return "AND(" + ", ".join(to_formula(c) for c in condition.conditions) + ")"
    if isinstance(condition, Not):
        return f"NOT({to_formula(condition.condition)})"
    raise TypeError(f"Unsupported condition: {condition!r}")


# ──────────────────────────────────────────────────────────────────────────────
# In-process evaluation
# ──────────────────────────────────────────────────────────────────────────────

def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == []


def evaluate(condition: Condition, rec_id: str, fields: Mapping[str, Any]) -> bool:
    """Evaluate *condition* against a record's id and fields."""
    if isinstance(condition, FieldEquals):
        return fields.get(condition.field) == condition.value
    if isinstance(condition, RecordIdEquals):
        return rec_id == condition.record_id
    if isinstance(condition, IsBlank):
        return _is_blank(fields.get(condition.field))
    if isinstance(condition, AnyOf):
        return any(evaluate(c, rec_id, fields) for c in condition.conditions)
    if isinstance(condition, AllOf):
        return all(evaluate(c, rec_id, fields) for c in condition.conditions)
    if isinstance(condition, Not):
        return not evaluate(condition.condition, rec_id, fields)
    raise TypeError(f"Unsupported condition: {condition!r}")
