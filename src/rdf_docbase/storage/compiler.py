"""
Triple pattern compilation.

Turns triple patterns into index filter queries (read path) and textual
delete expressions (write path), and concrete triples into index documents.
"""

from __future__ import annotations

import hashlib
import uuid
from typing import Any, Mapping, Optional, Union

from rdf_docbase.sparql.ast import (
    Binding, BlankNode, IRI, Literal, Node, TriplePattern, Variable,
)
from rdf_docbase.storage.codecs import CodecRegistry, UnsupportedConstraintError
from rdf_docbase.storage.expressions import ExpressionBuilder, FilterQuery
from rdf_docbase.storage.fields import Field, NO_LANGUAGE, SLOT_FIELDS
from rdf_docbase.storage.terms import as_nt, language_of, parse_nt

GraphRef = Union[IRI, BlankNode, str]


class PatternCompilationError(Exception):
    """Raised when a triple pattern cannot be turned into a query."""

    def __init__(self, message: str, pattern: Optional[TriplePattern] = None):
        super().__init__(message)
        self.pattern = pattern


def graph_key(graph: GraphRef) -> str:
    """Canonical form of a graph context, as stored in the context field."""
    if isinstance(graph, str):
        graph = IRI(graph)
    if not isinstance(graph, (IRI, BlankNode)):
        raise TypeError(f"Not a graph name: {graph!r}")
    return as_nt(graph)


def document_id(context: str, subject: str, predicate: str, obj: str) -> str:
    """
    Deterministic document id: the name based (MD5, version 3) UUID of the
    concatenated canonical forms.
    """
    digest = hashlib.md5((context + subject + predicate + obj).encode("utf-8")).digest()
    return str(uuid.UUID(bytes=digest, version=3))


class TriplePatternCompiler:
    """
    Compiles patterns against one codec registry.

    Example:
        compiler = TriplePatternCompiler(CodecRegistry.default())
        query = compiler.compile(
            TriplePattern(Variable("s"), IRI("http://example.org/p"), Literal("1", datatype=XSD_INT)),
            DEFAULT_GRAPH,
        )
        str(query)
        # 'predicate:"<http://example.org/p>" AND lang:"__nolang__"
        #  AND numeric_object:"1.0" AND context:"<urn:x-arq:DefaultGraph>"'
    """

    def __init__(self, registry: CodecRegistry):
        self.registry = registry

    # -------------------------------------------------------------------------
    # Read path
    # -------------------------------------------------------------------------

    def compile(self, pattern: TriplePattern, graph: GraphRef) -> FilterQuery:
        """
        Build the filter query matching the candidate documents of a pattern.

        Variables add no clause; the graph clause always comes last.

        Raises:
            PatternCompilationError: on malformed terms or literal values
        """
        try:
            query = FilterQuery()
            if not isinstance(pattern.subject, Variable):
                query.term(Field.SUBJECT, as_nt(pattern.subject))
            if not isinstance(pattern.predicate, Variable):
                query.term(Field.PREDICATE, as_nt(pattern.predicate))

            obj = pattern.object
            if isinstance(obj, Literal):
                query.term(Field.LANG, language_of(obj) or NO_LANGUAGE)
                codec = self.registry.for_literal(obj)
                if codec.is_indexable(obj.lexical):
                    codec.add_filter_constraint(query, obj.lexical)
                else:
                    query.term(Field.OBJECT, as_nt(obj))
            elif not isinstance(obj, Variable):
                query.term(Field.OBJECT, as_nt(obj))

            query.term(Field.CONTEXT, graph_key(graph))
            return query
        except (ValueError, TypeError, UnsupportedConstraintError) as e:
            raise PatternCompilationError(f"Cannot compile {pattern}: {e}", pattern) from e

    def join_query(self, pattern: TriplePattern, binding: Binding) -> FilterQuery:
        """
        Refinement filter of a join step: one clause per variable slot whose
        variable is already bound, on that slot's field.
        """
        query = FilterQuery()
        for slot, term in pattern.slots():
            if isinstance(term, Variable) and term in binding:
                query.term(SLOT_FIELDS[slot], as_nt(binding[term]))
        return query

    def bind(
        self,
        pattern: TriplePattern,
        fields: Mapping[str, Any],
        parent: Optional[Binding] = None,
    ) -> Optional[Binding]:
        """
        Extend ``parent`` with the variable slots of a matching document.

        Variables already bound keep their value. Returns None when the
        document assigns two different values to one variable of the pattern
        (``?x ex:p ?x`` against a triple whose subject and object differ).
        """
        binding = parent.child() if parent is not None else Binding()
        seen: dict[str, Node] = {}
        for slot, term in pattern.slots():
            if not isinstance(term, Variable):
                continue
            value = self.decode(fields, slot)
            if seen.setdefault(term.name, value) != value:
                return None
            binding.bind(term, value)
        return binding

    def decode(self, fields: Mapping[str, Any], slot: str) -> Node:
        """Term stored in the given slot of a document."""
        return parse_nt(fields[SLOT_FIELDS[slot]])

    def to_triple(self, fields: Mapping[str, Any]) -> TriplePattern:
        return TriplePattern(
            self.decode(fields, "subject"),
            self.decode(fields, "predicate"),
            self.decode(fields, "object"),
        )

    # -------------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------------

    def document(self, triple: TriplePattern, graph: GraphRef) -> dict[str, Any]:
        """
        Index document of a concrete triple.

        Raises:
            ValueError: if a term is malformed or the triple has variables
        """
        if not triple.is_concrete():
            raise ValueError(f"Triple has unbound variables: {triple}")

        context = graph_key(graph)
        subject = as_nt(triple.subject)
        predicate = as_nt(triple.predicate)

        obj = triple.object
        if isinstance(obj, Literal):
            object_fields = self.registry.for_literal(obj).encode(obj)
            object_fields[Field.LANG] = language_of(obj) or NO_LANGUAGE
        else:
            object_fields = {Field.OBJECT: as_nt(obj)}

        document = {
            Field.ID: document_id(context, subject, predicate, object_fields[Field.OBJECT]),
            Field.CONTEXT: context,
            Field.SUBJECT: subject,
            Field.PREDICATE: predicate,
        }
        document.update(object_fields)
        return document

    def delete_expression(self, pattern: TriplePattern, graph: GraphRef) -> str:
        """
        Textual expression matching the documents a delete removes.

        Raises:
            PatternCompilationError: on malformed terms or literal values
        """
        try:
            builder = ExpressionBuilder()
            if not isinstance(pattern.subject, Variable):
                builder.and_term(Field.SUBJECT, as_nt(pattern.subject))
            if not isinstance(pattern.predicate, Variable):
                builder.and_term(Field.PREDICATE, as_nt(pattern.predicate))

            obj = pattern.object
            if isinstance(obj, Literal):
                builder.and_term(Field.LANG, language_of(obj) or NO_LANGUAGE)
                codec = self.registry.for_literal(obj)
                if codec.is_indexable(obj.lexical):
                    codec.add_constraint(builder, obj.lexical)
                else:
                    builder.and_term(Field.OBJECT, as_nt(obj))
            elif not isinstance(obj, Variable):
                builder.and_term(Field.OBJECT, as_nt(obj))

            builder.and_term(Field.CONTEXT, graph_key(graph))
            return str(builder)
        except (ValueError, TypeError) as e:
            raise PatternCompilationError(f"Cannot compile delete of {pattern}: {e}", pattern) from e
