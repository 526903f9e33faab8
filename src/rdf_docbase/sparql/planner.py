"""
Selectivity ordered join planning.

Every pattern of a basic graph pattern is compiled and evaluated on its own
against one index snapshot. The resulting candidate sets are sorted by
cardinality: the smallest one drives the join, the others refine it in
ascending order.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

import polars as pl

from rdf_docbase.sparql.ast import TriplePattern
from rdf_docbase.storage.compiler import GraphRef, TriplePatternCompiler, graph_key
from rdf_docbase.storage.expressions import FilterQuery
from rdf_docbase.storage.indexing import DocSet, EMPTY_DOCSET, IndexReader
from rdf_docbase.storage.query_context import ExplainPlan

logger = logging.getLogger(__name__)

_MAX_WORKERS = 4  # Default parallel pattern evaluations


@dataclass(frozen=True)
class PatternResult:
    """
    Outcome of evaluating one pattern.

    A failed evaluation carries the error message and an empty candidate set,
    so it collapses the plan instead of aborting the other patterns.
    """
    pattern: Optional[TriplePattern]
    position: int
    docset: DocSet = EMPTY_DOCSET
    query: Optional[FilterQuery] = None
    error: Optional[str] = None

    @property
    def cardinality(self) -> int:
        return self.docset.cardinality

    @property
    def failed(self) -> bool:
        return self.error is not None


_PLACEHOLDER = PatternResult(pattern=None, position=-1)


@dataclass(frozen=True)
class JoinPlan:
    """
    Candidate sets ordered by ascending cardinality.

    ``steps[0]`` is the driver, the rest are refinement steps. The reader the
    candidate sets were evaluated against travels with the plan.
    """
    steps: tuple[PatternResult, ...]
    graph: Optional[str] = None
    reader: Optional[IndexReader] = field(default=None, compare=False, repr=False)

    @property
    def is_empty(self) -> bool:
        return self is EMPTY_PLAN or not self.steps or self.steps[0].cardinality == 0

    @property
    def driver(self) -> PatternResult:
        return self.steps[0]

    @property
    def refinements(self) -> tuple[PatternResult, ...]:
        return self.steps[1:]

    def __len__(self) -> int:
        return len(self.steps)

    def explain(self) -> ExplainPlan:
        steps = []
        for i, step in enumerate(self.steps, 1):
            steps.append({
                "step": i,
                "role": "driver" if i == 1 else "refinement",
                "position": step.position,
                "pattern": str(step.pattern) if step.pattern is not None else "",
                "query": str(step.query) if step.query is not None else "",
                "cardinality": step.cardinality,
                "error": step.error,
            })
        return ExplainPlan(graph=self.graph or "", steps=steps, empty=self.is_empty)

    def to_dataframe(self) -> pl.DataFrame:
        return self.explain().to_dataframe()


# Fixed sentinel returned whenever no binding is possible
EMPTY_PLAN = JoinPlan(steps=(_PLACEHOLDER, _PLACEHOLDER))


def order_steps(
    results: Iterable[PatternResult],
    graph: Optional[str] = None,
    reader: Optional[IndexReader] = None,
) -> JoinPlan:
    """
    Sort evaluated patterns into a plan.

    The sort is stable, so equal cardinalities keep the order they were
    given in. Collapses to EMPTY_PLAN when there is nothing to join.
    """
    steps = sorted(results, key=lambda r: r.cardinality)
    if not steps or steps[0].cardinality == 0:
        return EMPTY_PLAN
    return JoinPlan(steps=tuple(steps), graph=graph, reader=reader)


def merge_plans(first: JoinPlan, second: JoinPlan) -> JoinPlan:
    """
    Combine two evaluated plans into one, re-sorting all steps from scratch.

    Both plans should come from the same index snapshot.
    """
    if first.is_empty or second.is_empty:
        return EMPTY_PLAN
    return order_steps(
        first.steps + second.steps,
        graph=first.graph,
        reader=first.reader if first.reader is not None else second.reader,
    )


class JoinPlanner:
    """
    Evaluates the patterns of a basic graph pattern in parallel and orders
    them by selectivity.
    """

    def __init__(self, compiler: TriplePatternCompiler, max_workers: int = _MAX_WORKERS):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.compiler = compiler
        self.max_workers = max_workers

    def evaluate(
        self,
        reader: IndexReader,
        pattern: TriplePattern,
        position: int,
        graph: GraphRef,
    ) -> PatternResult:
        """Evaluate one pattern; failures are reported in the result."""
        query = None
        try:
            query = self.compiler.compile(pattern, graph)
            docset = reader.evaluate(query)
        except Exception as e:
            logger.error(f"Pattern {position} ({pattern}) failed, treating as empty: {e}")
            return PatternResult(pattern, position, EMPTY_DOCSET, query, error=str(e))
        return PatternResult(pattern, position, docset, query)

    def evaluate_all(
        self,
        reader: IndexReader,
        patterns: Sequence[TriplePattern],
        graph: GraphRef,
    ) -> list[PatternResult]:
        """
        Evaluate every pattern, in parallel when there is more than one.

        All patterns are evaluated, even once one of them is known to be
        empty, so every failure gets reported. Results are in pattern order.
        """
        patterns = list(patterns)
        results: list[Optional[PatternResult]] = [None] * len(patterns)
        if len(patterns) <= 1 or self.max_workers == 1:
            for i, pattern in enumerate(patterns):
                results[i] = self.evaluate(reader, pattern, i, graph)
        else:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(patterns))) as executor:
                futures = {
                    executor.submit(self.evaluate, reader, pattern, i, graph): i
                    for i, pattern in enumerate(patterns)
                }
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
        return results

    def plan(
        self,
        reader: IndexReader,
        patterns: Sequence[TriplePattern],
        graph: GraphRef,
    ) -> JoinPlan:
        """Build the join plan of a basic graph pattern."""
        results = self.evaluate_all(reader, patterns, graph)
        if not results:
            return EMPTY_PLAN

        try:
            graph_name = graph_key(graph)
        except (TypeError, ValueError):
            graph_name = str(graph)
        plan = order_steps(results, graph=graph_name, reader=reader)

        if logger.isEnabledFor(logging.DEBUG):
            for step in sorted(results, key=lambda r: r.cardinality):
                logger.debug(
                    f"BGP explain: pattern={step.pattern} query={step.query} "
                    f"cardinality={step.cardinality}"
                )
        return plan
