"""
Per-datatype literal codecs.

A codec knows how to turn the lexical form of a literal into the index field
that makes it searchable (the opaque text field, or a sortable numeric, date
or boolean field) and how to express equality and range constraints over
that field. The registry maps datatype IRIs to codecs; it is built once per
store and never changes afterwards.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from rdf_docbase.sparql.ast import Literal, Node
from rdf_docbase.storage.expressions import ExpressionBuilder, FilterQuery
from rdf_docbase.storage.fields import Field, parse_boolean
from rdf_docbase.storage.terms import (
    XSD, XSD_BOOLEAN, XSD_DATE, XSD_DATETIME, XSD_DECIMAL, XSD_DOUBLE,
    XSD_FLOAT, XSD_INT, XSD_INTEGER, XSD_LONG, as_nt, parse_nt,
)


class UnsupportedConstraintError(Exception):
    """Raised when a codec cannot express the requested constraint."""
    pass


class TermCodec:
    """
    Base codec: opaque string semantics.

    Subclasses override ``field`` and ``to_field_value``; ``ordered`` codecs
    also accept range constraints.
    """

    field: str = Field.TEXT_OBJECT
    ordered: bool = False

    def __init__(self, datatypes: Iterable[str] = ()):
        self.datatypes = tuple(datatypes)

    def to_field_value(self, lexical: str) -> Any:
        """
        Convert a lexical form into the value stored in ``field``.

        Raises:
            ValueError: if the lexical form is not valid for this codec
        """
        return str(lexical)

    def is_indexable(self, lexical: str) -> bool:
        """
        False for valid values that get no posting in ``field``. Such values
        are matched on the exact ``object`` field instead.
        """
        return True

    def encode(self, literal: Literal) -> dict[str, Any]:
        """Index fields describing a literal object."""
        return {
            Field.OBJECT: as_nt(literal),
            self.field: self.to_field_value(literal.lexical),
        }

    def decode(self, fields: Mapping[str, Any]) -> Node:
        """Rebuild the object term from stored fields."""
        return parse_nt(fields[Field.OBJECT])

    def add_filter_constraint(self, query: FilterQuery, lexical: str) -> FilterQuery:
        """Add an exact match on this codec's field."""
        return query.term(self.field, self.to_field_value(lexical))

    def add_range_constraint(
        self,
        query: FilterQuery,
        lower: Optional[str] = None,
        upper: Optional[str] = None,
    ) -> FilterQuery:
        """Add an inclusive range on this codec's field; None leaves a side open."""
        if not self.ordered:
            raise UnsupportedConstraintError(
                f"{type(self).__name__} does not support range constraints"
            )
        return query.range(
            self.field,
            None if lower is None else self.to_field_value(lower),
            None if upper is None else self.to_field_value(upper),
        )

    def add_constraint(self, builder: ExpressionBuilder, lexical: str) -> ExpressionBuilder:
        """Add the textual equivalent of ``add_filter_constraint``."""
        return builder.and_term(self.field, self.to_field_value(lexical))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({len(self.datatypes)} datatypes)"


class StringCodec(TermCodec):
    """Catch-all codec: the lexical form as an opaque string."""
    pass


_DECIMAL_RE = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)")
_DOUBLE_RE = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?|[+-]?INF")
_INTEGER_RE = re.compile(r"[+-]?\d+")


class NumericCodec(TermCodec):
    """XSD numeric family, stored as a float so values compare across types."""

    field = Field.NUMERIC_OBJECT
    ordered = True

    INTEGER_TYPES = (
        XSD_INTEGER, XSD_INT, XSD_LONG, XSD + "short", XSD + "byte",
        XSD + "nonNegativeInteger", XSD + "nonPositiveInteger",
        XSD + "negativeInteger", XSD + "positiveInteger",
        XSD + "unsignedLong", XSD + "unsignedInt",
        XSD + "unsignedShort", XSD + "unsignedByte",
    )
    DATATYPES = INTEGER_TYPES + (XSD_DECIMAL, XSD_DOUBLE, XSD_FLOAT)

    def __init__(self, datatypes: Iterable[str] = DATATYPES):
        super().__init__(datatypes)

    def to_field_value(self, lexical: str) -> float:
        text = str(lexical).strip()
        # NaN is valid but unordered; it gets no posting (see is_indexable)
        if not _DOUBLE_RE.fullmatch(text):
            raise ValueError(f"Not a numeric literal: {lexical!r}")
        return float(text)

    def is_indexable(self, lexical: str) -> bool:
        return str(lexical).strip() != "NaN"

    def encode(self, literal: Literal) -> dict[str, Any]:
        text = literal.lexical.strip()
        if literal.datatype in self.INTEGER_TYPES and not _INTEGER_RE.fullmatch(text):
            raise ValueError(f"Not an integer literal: {literal.lexical!r}")
        if literal.datatype == XSD_DECIMAL and not _DECIMAL_RE.fullmatch(text):
            raise ValueError(f"Not a decimal literal: {literal.lexical!r}")
        if not self.is_indexable(text):
            return {Field.OBJECT: as_nt(literal)}
        return super().encode(literal)


_TZ_RE = re.compile(r"(Z|[+-]\d{2}:\d{2})$")
_FRACTION_RE = re.compile(r"\.(\d+)$")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_epoch_millis(lexical: str) -> int:
    """
    Milliseconds since the epoch of an xsd:dateTime or xsd:date lexical form.

    Values without a timezone are read as UTC.
    """
    text = str(lexical).strip()
    tz = timezone.utc
    match = _TZ_RE.search(text)
    if match:
        suffix = match.group(1)
        text = text[:match.start()]
        if suffix != "Z":
            sign = -1 if suffix[0] == "-" else 1
            hours, minutes = int(suffix[1:3]), int(suffix[4:6])
            tz = timezone(sign * timedelta(hours=hours, minutes=minutes))

    if "T" in text:
        # fromisoformat takes at most microseconds
        fraction = _FRACTION_RE.search(text)
        if fraction:
            text = text[:fraction.start()] + "." + fraction.group(1)[:6].ljust(6, "0")
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Not a dateTime literal: {lexical!r}")
        if value.tzinfo is not None:
            raise ValueError(f"Not a dateTime literal: {lexical!r}")
    else:
        try:
            value = datetime.strptime(text, "%Y-%m-%d")
        except ValueError:
            raise ValueError(f"Not a date literal: {lexical!r}")

    return (value.replace(tzinfo=tz) - _EPOCH) // timedelta(milliseconds=1)


class DateTimeCodec(TermCodec):
    """xsd:dateTime and xsd:date, stored as UTC epoch milliseconds."""

    field = Field.DATE_OBJECT
    ordered = True

    def __init__(self, datatypes: Iterable[str] = (XSD_DATETIME, XSD_DATE)):
        super().__init__(datatypes)

    def to_field_value(self, lexical: str) -> int:
        return to_epoch_millis(lexical)


class BooleanCodec(TermCodec):
    """xsd:boolean."""

    field = Field.BOOLEAN_OBJECT

    def __init__(self, datatypes: Iterable[str] = (XSD_BOOLEAN,)):
        super().__init__(datatypes)

    def to_field_value(self, lexical: str) -> bool:
        return parse_boolean(lexical)


class CodecRegistry:
    """
    Read-only lookup of codecs by datatype IRI.

    Example:
        registry = CodecRegistry.default()
        registry.lookup(XSD_INT)      # NumericCodec
        registry.lookup(None)         # the catch-all StringCodec
        registry.lookup("urn:other")  # the catch-all StringCodec
    """

    def __init__(self, codecs: Iterable[TermCodec], catch_all: Optional[TermCodec] = None):
        by_datatype: dict[str, TermCodec] = {}
        for codec in codecs:
            for datatype in codec.datatypes:
                if datatype in by_datatype:
                    raise ValueError(f"Datatype {datatype} has more than one codec")
                by_datatype[datatype] = codec
        self._codecs: Mapping[str, TermCodec] = MappingProxyType(by_datatype)
        self._catch_all = catch_all if catch_all is not None else StringCodec()

    @classmethod
    def default(cls) -> "CodecRegistry":
        return cls([NumericCodec(), DateTimeCodec(), BooleanCodec()], StringCodec())

    @property
    def catch_all(self) -> TermCodec:
        return self._catch_all

    def lookup(self, datatype: Optional[str]) -> TermCodec:
        if datatype is None:
            return self._catch_all
        return self._codecs.get(datatype, self._catch_all)

    def for_literal(self, literal: Literal) -> TermCodec:
        return self.lookup(literal.datatype)

    def datatypes(self) -> list[str]:
        return sorted(self._codecs)

    def __contains__(self, datatype: object) -> bool:
        return datatype in self._codecs

    def __len__(self) -> int:
        return len(self._codecs)
