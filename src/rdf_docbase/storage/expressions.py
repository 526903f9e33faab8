"""
Filter queries and textual filter expressions.

A ``FilterQuery`` is an ordered conjunction of clauses evaluated by the index.
The write path talks to the index with a textual form of the same thing
(``field:"value" AND field:[lower TO upper]``), built with
``ExpressionBuilder`` and turned back into a ``FilterQuery`` by
``parse_expression``.
"""

from dataclasses import dataclass
from typing import Any, Iterator, Optional, Union

from pyparsing import (
    CaselessKeyword, DelimitedList, Group, Literal as Lit, ParseException,
    QuotedString, Regex, Suppress, Word, alphanums, alphas,
)


class ExpressionSyntaxError(ValueError):
    """Raised when a textual filter expression cannot be parsed."""
    pass


# =============================================================================
# Clauses
# =============================================================================

def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def escape(value: Any) -> str:
    """Quote a value for use in a textual expression."""
    text = _format_value(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


@dataclass(frozen=True)
class TermClause:
    """Mandatory exact match of one field value."""
    field: str
    value: Any

    def __str__(self) -> str:
        return f"{self.field}:{escape(self.value)}"


@dataclass(frozen=True)
class RangeClause:
    """Mandatory inclusive range on an ordered field; None means unbounded."""
    field: str
    lower: Optional[Any] = None
    upper: Optional[Any] = None

    def __str__(self) -> str:
        lower = "*" if self.lower is None else escape(self.lower)
        upper = "*" if self.upper is None else escape(self.upper)
        return f"{self.field}:[{lower} TO {upper}]"


Clause = Union[TermClause, RangeClause]


class FilterQuery:
    """
    Conjunctive filter query.

    Starts out matching every document; each added clause narrows it.
    """

    __slots__ = ("_clauses",)

    def __init__(self, clauses: Optional[list[Clause]] = None):
        self._clauses: list[Clause] = list(clauses) if clauses else []

    def add(self, clause: Clause) -> "FilterQuery":
        self._clauses.append(clause)
        return self

    def term(self, field: str, value: Any) -> "FilterQuery":
        return self.add(TermClause(field, value))

    def range(self, field: str, lower: Optional[Any] = None, upper: Optional[Any] = None) -> "FilterQuery":
        return self.add(RangeClause(field, lower, upper))

    @property
    def clauses(self) -> tuple[Clause, ...]:
        return tuple(self._clauses)

    def is_match_all(self) -> bool:
        return not self._clauses

    def fields(self) -> set[str]:
        return {c.field for c in self._clauses}

    def __len__(self) -> int:
        return len(self._clauses)

    def __iter__(self) -> Iterator[Clause]:
        return iter(self._clauses)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FilterQuery):
            return NotImplemented
        return self._clauses == other._clauses

    def __str__(self) -> str:
        if not self._clauses:
            return "*:*"
        return " AND ".join(str(c) for c in self._clauses)

    def __repr__(self) -> str:
        return f"FilterQuery({self})"


# =============================================================================
# Textual expressions
# =============================================================================

class ExpressionBuilder:
    """
    Accumulates clauses of a textual conjunctive expression.

    Example:
        builder = ExpressionBuilder()
        builder.and_term("subject", "<http://example.org/a>")
        builder.and_range("numeric_object", 1.0, 5.0)
        str(builder)  # 'subject:"<http://example.org/a>" AND numeric_object:["1.0" TO "5.0"]'
    """

    def __init__(self):
        self._parts: list[str] = []

    def and_term(self, field: str, value: Any) -> "ExpressionBuilder":
        self._parts.append(str(TermClause(field, value)))
        return self

    def and_range(self, field: str, lower: Optional[Any] = None, upper: Optional[Any] = None) -> "ExpressionBuilder":
        self._parts.append(str(RangeClause(field, lower, upper)))
        return self

    def is_empty(self) -> bool:
        return not self._parts

    def __len__(self) -> int:
        return len(self._parts)

    def __str__(self) -> str:
        if not self._parts:
            return "*:*"
        return " AND ".join(self._parts)


_UNBOUNDED = object()


def _build_grammar():
    AND = CaselessKeyword("AND")
    TO = CaselessKeyword("TO")

    field_name = Word(alphas + "_", alphanums + "_")
    quoted = QuotedString('"', esc_char="\\", multiline=True, convert_whitespace_escapes=False)
    bare = ~AND + Regex(r'[^\s"\[\]]+')
    value = quoted | bare

    unbounded = Lit("*").set_parse_action(lambda: _UNBOUNDED)
    bound = unbounded | quoted | Regex(r'[^\s"\]]+')
    range_value = Group(Suppress("[") + bound + Suppress(TO) + bound + Suppress("]"))

    def make_clause(tokens):
        name, target = tokens[0][0], tokens[0][1]
        if isinstance(target, str):
            return TermClause(name, target)
        lower, upper = (None if b is _UNBOUNDED else b for b in target)
        return RangeClause(name, lower, upper)

    clause = Group(field_name + Suppress(":") + (range_value | value)).set_parse_action(make_clause)
    match_all = Suppress(Lit("*:*"))
    return match_all | DelimitedList(clause, delim=AND)


_GRAMMAR = _build_grammar()


def parse_expression(expression: str) -> FilterQuery:
    """
    Parse a textual conjunctive expression into a FilterQuery.

    Values stay strings; the index coerces them with its schema.

    Raises:
        ExpressionSyntaxError: if the expression is not well formed
    """
    text = expression.strip()
    if not text:
        raise ExpressionSyntaxError("Empty filter expression")
    try:
        result = _GRAMMAR.parse_string(text, parse_all=True)
    except ParseException as e:
        raise ExpressionSyntaxError(f"Invalid filter expression {expression!r}: {e}") from e
    return FilterQuery(list(result))
