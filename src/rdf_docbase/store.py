"""
Triple store backed by the document index.

Writes turn triples into one index document each; queries evaluate basic
graph patterns through the join planner and executor.

Example:
    store = TripleStore()
    store.insert(TriplePattern(IRI("http://ex/a"), IRI("http://ex/p"), Literal("1", datatype=XSD_INT)))
    for binding in store.execute([TriplePattern(Variable("s"), IRI("http://ex/p"), Variable("o"))]):
        print(binding["s"], binding["o"])
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional, Sequence

import polars as pl

from rdf_docbase.sparql.ast import IRI, Node, TriplePattern, Variable
from rdf_docbase.sparql.executor import BindingCursor
from rdf_docbase.sparql.planner import JoinPlan, JoinPlanner, merge_plans
from rdf_docbase.storage.codecs import CodecRegistry
from rdf_docbase.storage.compiler import (
    GraphRef, PatternCompilationError, TriplePatternCompiler, graph_key,
)
from rdf_docbase.storage.config import ConfigValidator, StoreConfig
from rdf_docbase.storage.expressions import ExpressionBuilder, ExpressionSyntaxError
from rdf_docbase.storage.fields import Field
from rdf_docbase.storage.indexing import DocumentIndex, IndexReader
from rdf_docbase.storage.query_context import ExplainPlan, QueryContext
from rdf_docbase.storage.terms import as_nt, parse_nt

logger = logging.getLogger(__name__)


class AddDeniedError(Exception):
    """Raised when a triple cannot be added; carries the offending triple."""

    def __init__(self, message: str, triple: Optional[TriplePattern] = None):
        super().__init__(message)
        self.triple = triple


class DeleteDeniedError(Exception):
    """Raised when a delete or clear fails; carries the offending pattern."""

    def __init__(self, message: str, pattern: Optional[TriplePattern] = None):
        super().__init__(message)
        self.pattern = pattern


@dataclass
class BatchResult:
    """Outcome of a batch insert. Failed triples do not undo the others."""
    inserted: int = 0
    errors: list[AddDeniedError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class TripleStore:
    """
    RDF triple store over an inverted document index.

    The codec registry is built once here and shared by the compiler, the
    planner and the write path.
    """

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        index: Optional[DocumentIndex] = None,
        registry: Optional[CodecRegistry] = None,
    ):
        self.config = config if config is not None else StoreConfig()
        ConfigValidator.validate_or_raise(self.config)

        self.registry = registry if registry is not None else CodecRegistry.default()
        self.compiler = TriplePatternCompiler(self.registry)
        self.planner = JoinPlanner(self.compiler, max_workers=self.config.query.planner_workers)
        self.index = index if index is not None else DocumentIndex()
        self.default_graph = IRI(self.config.default_graph)

        logger.info(
            f"Opened store '{self.config.name}' "
            f"({len(self.registry)} codec datatypes, {len(self.index)} documents)"
        )

    def _graph(self, graph: Optional[GraphRef]) -> GraphRef:
        return self.default_graph if graph is None else graph

    # -------------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------------

    def insert(self, triple: TriplePattern, graph: Optional[GraphRef] = None) -> None:
        """
        Add a triple to a graph. Adding a triple twice keeps one copy.

        Raises:
            AddDeniedError: if the triple has variables or a malformed term
        """
        try:
            document = self.compiler.document(triple, self._graph(graph))
            self.index.write(document)
        except (ValueError, TypeError) as e:
            logger.error(f"Cannot add {triple}: {e}")
            raise AddDeniedError(f"Cannot add {triple}: {e}", triple) from e

    def insert_many(
        self,
        triples: Iterable[TriplePattern],
        graph: Optional[GraphRef] = None,
    ) -> BatchResult:
        """Add triples one by one, collecting failures instead of stopping."""
        result = BatchResult()
        for triple in triples:
            try:
                self.insert(triple, graph)
            except AddDeniedError as e:
                result.errors.append(e)
            else:
                result.inserted += 1
        return result

    def delete(self, pattern: TriplePattern, graph: Optional[GraphRef] = None) -> int:
        """
        Remove every triple of a graph matching the concrete slots of a pattern.

        Returns:
            Number of removed triples

        Raises:
            DeleteDeniedError: if the pattern cannot be turned into a delete
        """
        try:
            expression = self.compiler.delete_expression(pattern, self._graph(graph))
            removed = self.index.delete_by_expression(expression)
        except (PatternCompilationError, ExpressionSyntaxError, ValueError) as e:
            logger.error(f"Cannot delete {pattern}: {e}")
            raise DeleteDeniedError(f"Cannot delete {pattern}: {e}", pattern) from e
        logger.debug(f"Deleted {removed} documents matching {expression}")
        return removed

    def clear(self, graph: Optional[GraphRef] = None) -> int:
        """Remove every triple of a graph; returns how many."""
        graph = self._graph(graph)
        try:
            expression = str(ExpressionBuilder().and_term(Field.CONTEXT, graph_key(graph)))
            removed = self.index.delete_by_expression(expression)
        except (ExpressionSyntaxError, ValueError, TypeError) as e:
            logger.error(f"Cannot clear graph {graph}: {e}")
            raise DeleteDeniedError(f"Cannot clear graph {graph}: {e}") from e
        logger.info(f"Cleared {removed} triples from graph {graph}")
        return removed

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def count(self, graph: Optional[GraphRef] = None) -> int:
        """Number of triples in a graph."""
        graph = self._graph(graph)
        return self.index.count(str(ExpressionBuilder().and_term(Field.CONTEXT, graph_key(graph))))

    def __len__(self) -> int:
        return len(self.index)

    def list_graphs(self) -> list[Node]:
        """Graphs holding at least one triple."""
        return [parse_nt(value) for value in self.index.distinct_values(Field.CONTEXT)]

    def reader(self) -> IndexReader:
        """Open a point-in-time snapshot, e.g. to plan several patterns lists against."""
        return self.index.reader()

    def find(self, pattern: TriplePattern, graph: Optional[GraphRef] = None) -> Iterator[TriplePattern]:
        """
        Triples of a graph matching one pattern, read with cursor paging.

        Raises:
            PatternCompilationError: if the pattern is malformed
        """
        query = self.compiler.compile(pattern, self._graph(graph))
        fetch_size = self.config.query.fetch_size
        with self.index.reader() as reader:
            cursor_mark = None
            while True:
                ids, cursor_mark = reader.search(query, rows=fetch_size, cursor_mark=cursor_mark)
                for doc_id in ids:
                    fields = reader.read_fields(doc_id)
                    if self.compiler.bind(pattern, fields) is not None:
                        yield self.compiler.to_triple(fields)
                if cursor_mark is None:
                    return

    # -------------------------------------------------------------------------
    # Basic graph patterns
    # -------------------------------------------------------------------------

    def plan(
        self,
        patterns: Sequence[TriplePattern],
        graph: Optional[GraphRef] = None,
        reader: Optional[IndexReader] = None,
    ) -> JoinPlan:
        """
        Evaluate and order the patterns of a basic graph pattern.

        Without a reader the plan gets a fresh snapshot of its own, carried
        as ``plan.reader``; ``execute_plan`` closes it once the bindings are
        exhausted. A plan that collapsed to empty holds no snapshot.
        """
        owned = reader is None
        reader = reader if reader is not None else self.index.reader()
        plan = self.planner.plan(reader, patterns, self._graph(graph))
        if owned and plan.reader is not reader:
            reader.close()
        if self.config.query.explain_plans:
            logger.info(f"BGP explain:\n{plan.explain()}")
        return plan

    def merge_plans(self, first: JoinPlan, second: JoinPlan) -> JoinPlan:
        return merge_plans(first, second)

    def _context(self, context: Optional[QueryContext]) -> QueryContext:
        if context is not None:
            return context
        return QueryContext(timeout_seconds=self.config.query.default_timeout_seconds)

    def execute(
        self,
        patterns: Sequence[TriplePattern],
        graph: Optional[GraphRef] = None,
        context: Optional[QueryContext] = None,
    ) -> BindingCursor:
        """Stream the bindings of a basic graph pattern."""
        reader = self.index.reader()
        plan = self.plan(patterns, graph, reader=reader)
        return BindingCursor(
            plan,
            self.compiler,
            reader=reader,
            context=self._context(context),
            page_size=self.config.query.fetch_size,
            owns_reader=True,
        )

    def execute_plan(
        self,
        plan: JoinPlan,
        reader: Optional[IndexReader] = None,
        context: Optional[QueryContext] = None,
    ) -> BindingCursor:
        """
        Stream the bindings of an already evaluated (possibly merged) plan.

        Without a reader the cursor runs against ``plan.reader`` and closes
        it when done, so such a plan can be executed once.
        """
        return BindingCursor(
            plan,
            self.compiler,
            reader=reader,
            context=self._context(context),
            page_size=self.config.query.fetch_size,
            owns_reader=reader is None,
        )

    def select(
        self,
        patterns: Sequence[TriplePattern],
        graph: Optional[GraphRef] = None,
        variables: Optional[Sequence[str]] = None,
    ) -> pl.DataFrame:
        """
        Collect the bindings of a basic graph pattern into a DataFrame.

        One column per variable (in order of first appearance unless given),
        holding canonical N-Triples strings.
        """
        if variables is None:
            variables = []
            for pattern in patterns:
                for _, term in pattern.slots():
                    if isinstance(term, Variable) and term.name not in variables:
                        variables.append(term.name)

        columns: dict[str, list[Optional[str]]] = {name: [] for name in variables}
        with self.execute(patterns, graph) as cursor:
            for binding in cursor:
                for name in variables:
                    value = binding.get(name)
                    columns[name].append(as_nt(value) if value is not None else None)

        return pl.DataFrame(columns, schema={name: pl.Utf8 for name in variables})

    def explain(self, patterns: Sequence[TriplePattern], graph: Optional[GraphRef] = None) -> ExplainPlan:
        """
        Describe the join order of a basic graph pattern, including every
        pattern of a plan that collapses to empty.
        """
        graph = self._graph(graph)
        with self.index.reader() as reader:
            results = self.planner.evaluate_all(reader, patterns, graph)
        if not results:
            return ExplainPlan(graph=graph_key(graph), empty=True)
        ordered = JoinPlan(
            steps=tuple(sorted(results, key=lambda r: r.cardinality)),
            graph=graph_key(graph),
        )
        return ordered.explain()
