"""
Canonical term serialization.

Every RDF term is stored in the index under its N-Triples form, which acts as
both the exact-match key and the source for decoding a stored field back into
a term. Serialization and parsing are delegated to rdflib; literals are built
with normalization disabled so lexical forms survive a round trip unchanged
(``"1.50"^^xsd:decimal`` stays ``1.50``).
"""

from enum import IntEnum
from typing import Optional

from rdflib import BNode, URIRef
from rdflib import Literal as RDFLiteral
from rdflib.util import from_n3

from rdf_docbase.sparql.ast import BlankNode, IRI, Literal, Node, Variable


# =============================================================================
# Well-known datatypes
# =============================================================================

XSD = "http://www.w3.org/2001/XMLSchema#"

XSD_STRING = XSD + "string"
XSD_INTEGER = XSD + "integer"
XSD_INT = XSD + "int"
XSD_LONG = XSD + "long"
XSD_DECIMAL = XSD + "decimal"
XSD_DOUBLE = XSD + "double"
XSD_FLOAT = XSD + "float"
XSD_BOOLEAN = XSD + "boolean"
XSD_DATE = XSD + "date"
XSD_DATETIME = XSD + "dateTime"
RDF_LANGSTRING = "http://www.w3.org/1999/02/22-rdf-syntax-ns#langString"


class TermKind(IntEnum):
    """RDF term kind enumeration."""
    IRI = 0
    LITERAL = 1
    BNODE = 2


def term_kind(node: Node) -> TermKind:
    """Return the kind of a concrete term."""
    if isinstance(node, IRI):
        return TermKind.IRI
    if isinstance(node, Literal):
        return TermKind.LITERAL
    if isinstance(node, BlankNode):
        return TermKind.BNODE
    raise TypeError(f"Not a concrete RDF term: {node!r}")


# =============================================================================
# N-Triples forms
# =============================================================================

def as_nt(node: Node) -> str:
    """
    Return the canonical (N-Triples) string form of a concrete term.

    Raises:
        ValueError: if the term cannot be serialized (e.g. an IRI with
            illegal characters or an invalid language tag)
        TypeError: if given a variable or something that is not a term
    """
    if isinstance(node, Variable):
        raise TypeError(f"Variable {node} has no canonical form")
    if isinstance(node, IRI):
        try:
            return URIRef(node.value).n3()
        except Exception as e:
            raise ValueError(str(e)) from e
    if isinstance(node, BlankNode):
        return BNode(node.label).n3()
    if isinstance(node, Literal):
        return _rdflib_literal(node).n3()
    raise TypeError(f"Not a concrete RDF term: {node!r}")


def _rdflib_literal(literal: Literal) -> RDFLiteral:
    datatype = URIRef(literal.datatype) if literal.datatype else None
    try:
        return RDFLiteral(
            literal.lexical,
            lang=literal.language or None,
            datatype=datatype,
            normalize=False,
        )
    except TypeError as e:
        raise ValueError(str(e)) from e


def parse_nt(value: str) -> Node:
    """
    Parse a canonical string form back into a term.

    Raises:
        ValueError: if the string is not a single N-Triples term
    """
    if not value:
        raise ValueError("Empty term")

    if value.startswith('"'):
        return _parse_literal(value)

    node = from_n3(value)
    if isinstance(node, URIRef):
        return IRI(str(node))
    if isinstance(node, BNode) and value.startswith("_:"):
        return BlankNode(str(node))
    raise ValueError(f"Not an N-Triples term: {value}")


def _parse_literal(value: str) -> Literal:
    quotes = '"""' if value.startswith('"""') else '"'
    try:
        body, rest = value.rsplit(quotes, 1)
    except ValueError:
        raise ValueError(f"Unterminated literal: {value}")
    if len(body) < len(quotes):
        raise ValueError(f"Unterminated literal: {value}")

    # A literal without a datatype is never normalized by rdflib, so this
    # only takes care of unescaping the lexical form.
    lexical = str(from_n3(body + quotes))

    if rest.startswith("^^"):
        datatype = from_n3(rest[2:])
        if not isinstance(datatype, URIRef):
            raise ValueError(f"Invalid datatype in literal: {value}")
        return Literal(lexical, datatype=str(datatype))
    if rest.startswith("@"):
        return Literal(lexical, language=rest[1:])
    if rest:
        raise ValueError(f"Trailing characters after literal: {value}")
    return Literal(lexical)


def language_of(literal: Literal) -> Optional[str]:
    """Language tag of a literal, with the empty string treated as absent."""
    return literal.language or None
