"""Predicate language for table queries.

Predicates are small immutable trees compiled to parameterized SQL:

    where = And(Eq("key", "a"), Or(IsNull("expires"), Gt("expires", now)))
    sql, params = compile_predicate(where)
"""

import itertools
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterator

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def quote_identifier(name: str) -> str:
    """Quote a column or table name after validating it."""
    if not IDENTIFIER_PATTERN.match(name):
        raise ValueError(
            f"Invalid identifier {name!r}: use letters, digits and underscores only"
        )
    return f'"{name}"'


def format_timestamp(value: datetime) -> str:
    """Render a datetime as fixed-width UTC text.

    Naive datetimes are taken to be UTC. Fixed width keeps text ordering
    identical to chronological ordering.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Any) -> datetime | None:
    """Inverse of ``format_timestamp``; passes ``None`` through."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.strptime(str(value), TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def adapt_param(value: Any) -> Any:
    """Convert a Python value into a database parameter."""
    if isinstance(value, datetime):
        return format_timestamp(value)
    return value


class Predicate:
    """Base class for all predicates."""

    def compile(self, names: Iterator[str]) -> tuple[str, dict[str, Any]]:
        raise NotImplementedError


@dataclass(frozen=True)
class Eq(Predicate):
    column: str
    value: Any

    def compile(self, names: Iterator[str]) -> tuple[str, dict[str, Any]]:
        name = next(names)
        return f"{quote_identifier(self.column)} = :{name}", {name: adapt_param(self.value)}


@dataclass(frozen=True)
class IsNull(Predicate):
    column: str

    def compile(self, names: Iterator[str]) -> tuple[str, dict[str, Any]]:
        return f"{quote_identifier(self.column)} IS NULL", {}


@dataclass(frozen=True)
class Gt(Predicate):
    column: str
    value: Any

    def compile(self, names: Iterator[str]) -> tuple[str, dict[str, Any]]:
        name = next(names)
        return f"{quote_identifier(self.column)} > :{name}", {name: adapt_param(self.value)}


@dataclass(frozen=True)
class Lte(Predicate):
    column: str
    value: Any

    def compile(self, names: Iterator[str]) -> tuple[str, dict[str, Any]]:
        name = next(names)
        return f"{quote_identifier(self.column)} <= :{name}", {name: adapt_param(self.value)}


@dataclass(frozen=True)
class Like(Predicate):
    """SQL LIKE match against an already translated pattern."""

    column: str
    pattern: str

    def compile(self, names: Iterator[str]) -> tuple[str, dict[str, Any]]:
        name = next(names)
        return f"{quote_identifier(self.column)} LIKE :{name}", {name: self.pattern}


@dataclass(frozen=True)
class StartsWith(Predicate):
    """Case-sensitive literal prefix match.

    ``%`` and ``_`` in the prefix only match themselves, and case is never
    folded, unlike SQLite's ``LIKE``.
    """

    column: str
    prefix: str

    def compile(self, names: Iterator[str]) -> tuple[str, dict[str, Any]]:
        name = next(names)
        column = quote_identifier(self.column)
        return f"substr({column}, 1, length(:{name})) = :{name}", {name: self.prefix}


class _Compound(Predicate):
    operator = ""

    def __init__(self, *clauses: Predicate) -> None:
        self.clauses = tuple(clauses)

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self) and other.clauses == self.clauses  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.clauses))

    def __repr__(self) -> str:
        return f"{type(self).__name__}{self.clauses!r}"

    def compile(self, names: Iterator[str]) -> tuple[str, dict[str, Any]]:
        if not self.clauses:
            # Empty AND is true, empty OR is false
            return ("1 = 1" if self.operator == "AND" else "1 = 0"), {}

        parts: list[str] = []
        params: dict[str, Any] = {}
        for clause in self.clauses:
            sql, clause_params = clause.compile(names)
            parts.append(f"({sql})")
            params.update(clause_params)
        return f" {self.operator} ".join(parts), params


class And(_Compound):
    operator = "AND"


class Or(_Compound):
    operator = "OR"


def compile_predicate(predicate: Predicate | None) -> tuple[str, dict[str, Any]]:
    """Compile a predicate into a WHERE fragment and its parameters.

    Returns an empty fragment for ``None``.
    """
    if predicate is None:
        return "", {}
    names = (f"p{i}" for i in itertools.count())
    return predicate.compile(names)
