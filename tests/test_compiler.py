"""
Tests for triple pattern compilation.
"""

import uuid

import pytest

from rdf_docbase.sparql.ast import (
    DEFAULT_GRAPH, Binding, BlankNode, IRI, Literal, TriplePattern, Variable,
)
from rdf_docbase.storage.codecs import CodecRegistry
from rdf_docbase.storage.compiler import (
    PatternCompilationError,
    TriplePatternCompiler,
    document_id,
    graph_key,
)
from rdf_docbase.storage.expressions import TermClause, parse_expression
from rdf_docbase.storage.fields import Field, NO_LANGUAGE
from rdf_docbase.storage.terms import XSD_DOUBLE, XSD_INT

EX = "http://example.org/"
G = IRI(EX + "g")


@pytest.fixture
def compiler():
    return TriplePatternCompiler(CodecRegistry.default())


class TestCompile:
    """Tests for read path compilation."""

    def test_all_variables(self, compiler):
        """Variables add nothing; only the graph clause remains."""
        query = compiler.compile(TriplePattern(Variable("s"), Variable("p"), Variable("o")), G)
        assert query.clauses == (TermClause(Field.CONTEXT, f"<{EX}g>"),)

    def test_clause_order(self, compiler):
        """Subject, predicate, language, codec constraint, then graph."""
        pattern = TriplePattern(IRI(EX + "a"), IRI(EX + "p"), Literal("1", datatype=XSD_INT))
        query = compiler.compile(pattern, G)
        assert query.clauses == (
            TermClause(Field.SUBJECT, f"<{EX}a>"),
            TermClause(Field.PREDICATE, f"<{EX}p>"),
            TermClause(Field.LANG, NO_LANGUAGE),
            TermClause(Field.NUMERIC_OBJECT, 1.0),
            TermClause(Field.CONTEXT, f"<{EX}g>"),
        )

    def test_language_literal(self, compiler):
        pattern = TriplePattern(Variable("s"), Variable("p"), Literal("chat", language="fr"))
        query = compiler.compile(pattern, G)
        assert query.clauses[:2] == (
            TermClause(Field.LANG, "fr"),
            TermClause(Field.TEXT_OBJECT, "chat"),
        )

    def test_non_literal_object(self, compiler):
        pattern = TriplePattern(Variable("s"), Variable("p"), BlankNode("b1"))
        query = compiler.compile(pattern, G)
        assert query.clauses[0] == TermClause(Field.OBJECT, "_:b1")

    def test_nan_literal(self, compiler):
        """NaN has no numeric posting and is matched on its exact form."""
        nan = Literal("NaN", datatype=XSD_DOUBLE)
        query = compiler.compile(TriplePattern(Variable("s"), Variable("p"), nan), G)
        assert query.clauses[:2] == (
            TermClause(Field.LANG, NO_LANGUAGE),
            TermClause(Field.OBJECT, f'"NaN"^^<{XSD_DOUBLE}>'),
        )
        assert compiler.delete_expression(TriplePattern(Variable("s"), Variable("p"), nan), G).startswith(
            f'lang:"{NO_LANGUAGE}" AND object:'
        )

    def test_default_graph(self, compiler):
        query = compiler.compile(TriplePattern(Variable("s"), Variable("p"), Variable("o")), DEFAULT_GRAPH)
        assert query.clauses[-1] == TermClause(Field.CONTEXT, "<urn:x-arq:DefaultGraph>")

    def test_malformed_literal(self, compiler):
        pattern = TriplePattern(Variable("s"), IRI(EX + "p"), Literal("one", datatype=XSD_INT))
        with pytest.raises(PatternCompilationError) as excinfo:
            compiler.compile(pattern, G)
        assert excinfo.value.pattern == pattern

    def test_malformed_iri(self, compiler):
        pattern = TriplePattern(IRI("not an iri"), Variable("p"), Variable("o"))
        with pytest.raises(PatternCompilationError):
            compiler.compile(pattern, G)


class TestJoinQuery:
    """Tests for refinement filters."""

    def test_only_bound_slots(self, compiler):
        pattern = TriplePattern(Variable("s"), IRI(EX + "p"), Variable("o"))
        binding = Binding({"s": IRI(EX + "a")})
        query = compiler.join_query(pattern, binding)
        assert query.clauses == (TermClause(Field.SUBJECT, f"<{EX}a>"),)

    def test_nothing_bound(self, compiler):
        pattern = TriplePattern(Variable("s"), IRI(EX + "p"), Variable("o"))
        assert compiler.join_query(pattern, Binding()).is_match_all()

    def test_bound_literal_object(self, compiler):
        """A bound object is matched on its canonical form."""
        pattern = TriplePattern(Variable("s"), IRI(EX + "p"), Variable("o"))
        binding = Binding({"o": Literal("1", datatype=XSD_INT)})
        query = compiler.join_query(pattern, binding)
        assert query.clauses == (
            TermClause(Field.OBJECT, '"1"^^<http://www.w3.org/2001/XMLSchema#int>'),
        )


class TestDocument:
    """Tests for the write path document."""

    def test_literal_document(self, compiler):
        triple = TriplePattern(IRI(EX + "a"), IRI(EX + "p"), Literal("1", datatype=XSD_INT))
        doc = compiler.document(triple, G)
        assert doc[Field.CONTEXT] == f"<{EX}g>"
        assert doc[Field.SUBJECT] == f"<{EX}a>"
        assert doc[Field.PREDICATE] == f"<{EX}p>"
        assert doc[Field.LANG] == NO_LANGUAGE
        assert doc[Field.NUMERIC_OBJECT] == 1.0
        assert doc[Field.ID] == document_id(
            f"<{EX}g>", f"<{EX}a>", f"<{EX}p>", doc[Field.OBJECT]
        )

    def test_iri_document_has_no_language(self, compiler):
        doc = compiler.document(TriplePattern(IRI(EX + "a"), IRI(EX + "p"), IRI(EX + "b")), G)
        assert doc[Field.OBJECT] == f"<{EX}b>"
        assert Field.LANG not in doc

    def test_variables_rejected(self, compiler):
        with pytest.raises(ValueError):
            compiler.document(TriplePattern(Variable("s"), IRI(EX + "p"), IRI(EX + "b")), G)

    def test_graph_changes_id(self, compiler):
        triple = TriplePattern(IRI(EX + "a"), IRI(EX + "p"), IRI(EX + "b"))
        assert compiler.document(triple, G)[Field.ID] != compiler.document(triple, IRI(EX + "h"))[Field.ID]


class TestDocumentId:
    """Tests for deterministic ids."""

    def test_deterministic(self):
        assert document_id("<g>", "<s>", "<p>", "<o>") == document_id("<g>", "<s>", "<p>", "<o>")

    def test_name_based_md5_uuid(self):
        value = uuid.UUID(document_id("<g>", "<s>", "<p>", "<o>"))
        assert value.version == 3
        assert value.variant == uuid.RFC_4122


class TestDeleteExpression:
    """Tests for textual delete expressions."""

    def test_concrete_triple(self, compiler):
        triple = TriplePattern(IRI(EX + "a"), IRI(EX + "p"), Literal("1", datatype=XSD_INT))
        expression = compiler.delete_expression(triple, G)
        assert expression == (
            f'subject:"<{EX}a>" AND predicate:"<{EX}p>" AND lang:"{NO_LANGUAGE}"'
            f' AND numeric_object:"1.0" AND context:"<{EX}g>"'
        )

    def test_parses_to_compiled_query(self, compiler):
        """Delete and read paths select the same documents."""
        triple = TriplePattern(IRI(EX + "a"), Variable("p"), Literal("chat", language="fr"))
        parsed = parse_expression(compiler.delete_expression(triple, G))
        assert [str(c) for c in parsed] == [str(c) for c in compiler.compile(triple, G)]

    def test_only_context(self, compiler):
        pattern = TriplePattern(Variable("s"), Variable("p"), Variable("o"))
        assert compiler.delete_expression(pattern, G) == f'context:"<{EX}g>"'

    def test_non_literal_object(self, compiler):
        pattern = TriplePattern(Variable("s"), Variable("p"), IRI(EX + "b"))
        assert compiler.delete_expression(pattern, G).startswith(f'object:"<{EX}b>"')

    def test_malformed(self, compiler):
        pattern = TriplePattern(Variable("s"), Variable("p"), Literal("x", datatype=XSD_INT))
        with pytest.raises(PatternCompilationError):
            compiler.delete_expression(pattern, G)


class TestBind:
    """Tests for binding variables from a document."""

    def test_binds_variable_slots(self, compiler):
        triple = TriplePattern(IRI(EX + "a"), IRI(EX + "p"), Literal("1", datatype=XSD_INT))
        doc = compiler.document(triple, G)
        binding = compiler.bind(TriplePattern(Variable("s"), IRI(EX + "p"), Variable("o")), doc)
        assert binding == {"s": IRI(EX + "a"), "o": Literal("1", datatype=XSD_INT)}

    def test_parent_values_win(self, compiler):
        doc = compiler.document(TriplePattern(IRI(EX + "a"), IRI(EX + "p"), IRI(EX + "b")), G)
        parent = Binding({"s": IRI(EX + "other")})
        binding = compiler.bind(TriplePattern(Variable("s"), Variable("p"), Variable("o")), doc, parent)
        assert binding["s"] == IRI(EX + "other")
        assert binding["o"] == IRI(EX + "b")
        assert "o" not in parent

    def test_repeated_variable_must_agree(self, compiler):
        pattern = TriplePattern(Variable("x"), IRI(EX + "knows"), Variable("x"))
        same = compiler.document(TriplePattern(IRI(EX + "a"), IRI(EX + "knows"), IRI(EX + "a")), G)
        other = compiler.document(TriplePattern(IRI(EX + "a"), IRI(EX + "knows"), IRI(EX + "b")), G)
        assert compiler.bind(pattern, same) == {"x": IRI(EX + "a")}
        assert compiler.bind(pattern, other) is None

    def test_graph_key(self):
        assert graph_key(EX + "g") == f"<{EX}g>"
        assert graph_key(BlankNode("g1")) == "_:g1"
        with pytest.raises(TypeError):
            graph_key(Literal("g"))
