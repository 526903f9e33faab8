"""
Nested document set join.

Walks a join plan depth first: every driver document binds the variables of
the driver pattern, each refinement step narrows its candidate set with the
variables bound so far, and every document reached at the last step yields
one binding. The walk keeps an explicit stack of frames instead of
recursing, and bindings are produced on demand.
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional

from rdf_docbase.sparql.ast import Binding
from rdf_docbase.sparql.planner import JoinPlan
from rdf_docbase.storage.compiler import TriplePatternCompiler
from rdf_docbase.storage.indexing import DocSet, IndexReader
from rdf_docbase.storage.query_context import (
    QueryCancelledException, QueryContext, QueryState, QueryTimeoutException,
)

logger = logging.getLogger(__name__)


class JoinExecutionError(Exception):
    """Raised when a join fails for a reason not tied to a single pattern."""
    pass


def paged_ids(reader: IndexReader, docset: DocSet, page_size: int) -> Iterator[str]:
    """Ids of a document set in ascending order, fetched a page at a time."""
    after = None
    while True:
        page = reader.page(docset, after, page_size)
        yield from page
        if len(page) < page_size:
            return
        after = page[-1]


class _Frame:
    """One level of the depth first walk: a step and the documents left to visit."""

    __slots__ = ("depth", "parent", "ids")

    def __init__(self, depth: int, parent: Optional[Binding], ids: Iterator[str]):
        self.depth = depth
        self.parent = parent
        self.ids = ids


class BindingCursor:
    """
    Pull based stream of the bindings of a join plan.

    Example:
        with store.execute(patterns) as cursor:
            while cursor.has_next():
                binding = cursor.next()

    Normal exhaustion ends iteration (``StopIteration``); a failure raises
    ``JoinExecutionError`` (or the query context's cancellation / timeout
    exception), and every later pull raises it again.
    """

    def __init__(
        self,
        plan: JoinPlan,
        compiler: TriplePatternCompiler,
        reader: Optional[IndexReader] = None,
        context: Optional[QueryContext] = None,
        page_size: int = 1000,
        owns_reader: bool = False,
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.plan = plan
        self.compiler = compiler
        self.context = context if context is not None else QueryContext()
        self.page_size = page_size
        self._reader = reader if reader is not None else plan.reader
        self._owns_reader = owns_reader
        self._stack: list[_Frame] = []
        self._lookahead: Optional[Binding] = None
        self._error: Optional[Exception] = None
        self._started = False
        self._done = plan.is_empty

        if self._done:
            logger.debug("Empty join plan, no bindings")
            if self._owns_reader and self._reader is not None:
                self._reader.close()
        elif self._reader is None:
            raise ValueError("No index reader to execute the plan against")

    @property
    def stats(self):
        return self.context.stats

    @property
    def failed(self) -> bool:
        return self._error is not None

    def has_next(self) -> bool:
        """
        True if another binding is available.

        Raises:
            JoinExecutionError: if the join failed (now or on an earlier pull)
        """
        if self._error is not None:
            raise self._error
        if self._lookahead is None and not self._done:
            try:
                self._lookahead = self._advance()
            except (QueryCancelledException, QueryTimeoutException) as e:
                self._abort(e)
                raise
            except Exception as e:
                logger.error(f"Join execution failed: {e}")
                error = JoinExecutionError(f"Join execution failed: {e}")
                self._abort(error)
                raise error from e
            if self._lookahead is None:
                self._finish()
        return self._lookahead is not None

    def next(self) -> Binding:
        """Return the next binding; StopIteration once exhausted."""
        if not self.has_next():
            raise StopIteration
        binding, self._lookahead = self._lookahead, None
        self.context.record_result()
        return binding

    def __iter__(self) -> "BindingCursor":
        return self

    def __next__(self) -> Binding:
        return self.next()

    def close(self) -> None:
        """Stop the walk and release the reader if this cursor owns it."""
        self._stack.clear()
        self._lookahead = None
        self._done = True
        if self._owns_reader and self._reader is not None:
            self._reader.close()

    def __enter__(self) -> "BindingCursor":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _start(self) -> None:
        self._started = True
        if self.context.stats.state == QueryState.PENDING:
            self.context.start()
        self.context.record_pattern(len(self.plan.steps))
        driver = self.plan.driver
        self._stack.append(
            _Frame(0, None, paged_ids(self._reader, driver.docset, self.page_size))
        )

    def _advance(self) -> Optional[Binding]:
        """Walk until the next leaf binding, or None when the walk is over."""
        if not self._started:
            self._start()

        steps = self.plan.steps
        last = len(steps) - 1
        while self._stack:
            self.context.check()
            frame = self._stack[-1]
            doc_id = next(frame.ids, None)
            if doc_id is None:
                self._stack.pop()
                continue

            self.context.count_row()
            fields = self._reader.read_fields(doc_id)
            binding = self.compiler.bind(steps[frame.depth].pattern, fields, frame.parent)
            if binding is None:
                continue
            if frame.depth == last:
                return binding

            step = steps[frame.depth + 1]
            query = self.compiler.join_query(step.pattern, binding)
            if query.is_match_all():
                docset = step.docset
            else:
                self.context.record_join()
                docset = self._reader.evaluate(query, within=step.docset)
            if docset:
                self._stack.append(_Frame(frame.depth + 1, binding, iter(docset.sorted_ids())))
        return None

    def _finish(self) -> None:
        self._done = True
        if self._started:
            self.context.complete()
            logger.debug(f"Join complete: {self.context.stats.to_dict()}")
        if self._owns_reader and self._reader is not None:
            self._reader.close()

    def _abort(self, error: Exception) -> None:
        self._error = error
        self._stack.clear()
        self._done = True
        if self.context.stats.state == QueryState.RUNNING:
            self.context.fail(str(error))
        if self._owns_reader and self._reader is not None:
            self._reader.close()
