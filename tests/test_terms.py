"""
Tests for canonical term serialization.
"""

import pytest

from rdf_docbase.sparql.ast import BlankNode, IRI, Literal, Variable
from rdf_docbase.storage.terms import (
    XSD_INT,
    XSD_STRING,
    TermKind,
    as_nt,
    language_of,
    parse_nt,
    term_kind,
)


class TestAsNt:
    """Tests for the canonical string form."""

    def test_iri(self):
        """IRIs are written in angle brackets."""
        assert as_nt(IRI("http://example.org/a")) == "<http://example.org/a>"

    def test_blank_node(self):
        """Blank nodes keep their label."""
        assert as_nt(BlankNode("b1")) == "_:b1"

    def test_plain_literal(self):
        """Plain literals are quoted."""
        assert as_nt(Literal("chat")) == '"chat"'

    def test_language_literal(self):
        """Language tags follow the lexical form."""
        assert as_nt(Literal("chat", language="fr")) == '"chat"@fr'

    def test_typed_literal_keeps_lexical_form(self):
        """Typed literals are not normalized."""
        assert as_nt(Literal("01", datatype=XSD_INT)) == (
            '"01"^^<http://www.w3.org/2001/XMLSchema#int>'
        )

    def test_variable_rejected(self):
        """Variables have no canonical form."""
        with pytest.raises(TypeError):
            as_nt(Variable("x"))

    def test_invalid_iri_rejected(self):
        """IRIs with illegal characters cannot be serialized."""
        with pytest.raises(ValueError):
            as_nt(IRI("http://example.org/a b"))


class TestParseNt:
    """Tests for parsing canonical strings back into terms."""

    @pytest.mark.parametrize("term", [
        IRI("http://example.org/a"),
        BlankNode("b1"),
        Literal("chat"),
        Literal("chat", language="fr"),
        Literal("42", datatype=XSD_INT),
        Literal("1.50", datatype="http://www.w3.org/2001/XMLSchema#decimal"),
        Literal("x", datatype=XSD_STRING),
        Literal('say "hi"'),
        Literal("back\\slash"),
        Literal("two\nlines"),
    ])
    def test_round_trip(self, term):
        """Parsing the canonical form gives back the same term."""
        assert parse_nt(as_nt(term)) == term

    def test_empty_rejected(self):
        """An empty string is not a term."""
        with pytest.raises(ValueError):
            parse_nt("")

    def test_trailing_garbage_rejected(self):
        """Characters after a literal are an error."""
        with pytest.raises(ValueError):
            parse_nt('"chat"xyz')


class TestHelpers:
    """Tests for term kind and language helpers."""

    def test_term_kind(self):
        assert term_kind(IRI("http://example.org/a")) == TermKind.IRI
        assert term_kind(Literal("a")) == TermKind.LITERAL
        assert term_kind(BlankNode("b")) == TermKind.BNODE

    def test_term_kind_rejects_variable(self):
        with pytest.raises(TypeError):
            term_kind(Variable("x"))

    def test_language_of(self):
        """An empty tag counts as no language."""
        assert language_of(Literal("a", language="en")) == "en"
        assert language_of(Literal("a", language="")) is None
        assert language_of(Literal("a")) is None

    def test_literal_cannot_have_language_and_datatype(self):
        with pytest.raises(ValueError):
            Literal("a", language="en", datatype=XSD_INT)
