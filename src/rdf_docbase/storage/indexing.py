"""
In-process inverted index for triple documents.

Each indexed field keeps a sorted posting list (sorted key array searched
with binary search, each key mapping to the ids of the documents holding
that value), so exact and range lookups are O(log n) plus the size of the
answer. Query evaluation intersects the posting sets of the clauses.

Readers are point-in-time snapshots: once a reader has been handed out, the
next write clones the index state before mutating it, so in-flight queries
keep seeing the data they started with.
"""

from __future__ import annotations

import bisect
import logging
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional

from rdf_docbase.storage.expressions import (
    FilterQuery, RangeClause, TermClause, parse_expression,
)
from rdf_docbase.storage.fields import Field, TRIPLE_SCHEMA

logger = logging.getLogger(__name__)


class IndexReadError(Exception):
    """Raised when a reader cannot serve a request (closed, missing document)."""
    pass


# =============================================================================
# Document sets
# =============================================================================

class DocSet:
    """
    Immutable set of document ids.

    Iteration is in ascending id order, which gives reproducible paging.
    """

    __slots__ = ("_ids", "_sorted")

    def __init__(self, ids: Iterable[str] = ()):
        self._ids: frozenset[str] = frozenset(ids)
        self._sorted: Optional[list[str]] = None

    @property
    def ids(self) -> frozenset[str]:
        return self._ids

    @property
    def cardinality(self) -> int:
        return len(self._ids)

    def sorted_ids(self) -> list[str]:
        if self._sorted is None:
            self._sorted = sorted(self._ids)
        return self._sorted

    def intersection(self, other: "DocSet") -> "DocSet":
        return DocSet(self._ids & other._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(self.sorted_ids())

    def __bool__(self) -> bool:
        return bool(self._ids)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DocSet):
            return NotImplemented
        return self._ids == other._ids

    def __hash__(self) -> int:
        return hash(self._ids)

    def __repr__(self) -> str:
        return f"DocSet(cardinality={len(self._ids)})"


EMPTY_DOCSET = DocSet()


# =============================================================================
# Posting lists
# =============================================================================

@dataclass
class IndexStats:
    """Statistics for one field's posting list."""
    field_name: str
    num_keys: int
    num_entries: int


class SortedPostings:
    """
    Sorted posting list for one field.

    Example:
        postings = SortedPostings("numeric_object")
        postings.add(3.0, "doc-1")
        postings.lookup(3.0)            # {"doc-1"}
        postings.range_lookup(1.0, 5.0) # {"doc-1"}
    """

    def __init__(self, field_name: str):
        self.field_name = field_name
        # Sorted key array for binary search
        self._keys: list[Any] = []
        # Parallel array of document id sets
        self._postings: list[set[str]] = []
        self._num_entries = 0

    def _find(self, key: Any) -> Optional[int]:
        idx = bisect.bisect_left(self._keys, key)
        if idx < len(self._keys) and self._keys[idx] == key:
            return idx
        return None

    def lookup(self, key: Any) -> set[str]:
        """Ids of the documents holding exactly this key."""
        idx = self._find(key)
        if idx is None:
            return set()
        return set(self._postings[idx])

    def range_lookup(self, min_key: Optional[Any] = None, max_key: Optional[Any] = None) -> set[str]:
        """Ids of the documents with a key in [min_key, max_key]; None is unbounded."""
        start = 0 if min_key is None else bisect.bisect_left(self._keys, min_key)
        end = len(self._keys) if max_key is None else bisect.bisect_right(self._keys, max_key)
        result: set[str] = set()
        for idx in range(start, end):
            result.update(self._postings[idx])
        return result

    def add(self, key: Any, doc_id: str) -> None:
        idx = bisect.bisect_left(self._keys, key)
        if idx < len(self._keys) and self._keys[idx] == key:
            postings = self._postings[idx]
            if doc_id in postings:
                return
            postings.add(doc_id)
        else:
            self._keys.insert(idx, key)
            self._postings.insert(idx, {doc_id})
        self._num_entries += 1

    def remove(self, key: Any, doc_id: str) -> None:
        idx = self._find(key)
        if idx is None or doc_id not in self._postings[idx]:
            return
        self._postings[idx].discard(doc_id)
        self._num_entries -= 1
        # Remove key if no documents left
        if not self._postings[idx]:
            del self._keys[idx]
            del self._postings[idx]

    def keys(self) -> list[Any]:
        return list(self._keys)

    def copy(self) -> "SortedPostings":
        clone = SortedPostings(self.field_name)
        clone._keys = list(self._keys)
        clone._postings = [set(p) for p in self._postings]
        clone._num_entries = self._num_entries
        return clone

    def stats(self) -> IndexStats:
        return IndexStats(
            field_name=self.field_name,
            num_keys=len(self._keys),
            num_entries=self._num_entries,
        )


# =============================================================================
# Index state, readers and the index itself
# =============================================================================

class _IndexState:
    """Documents plus one posting list per schema field."""

    def __init__(self, schema: Mapping[str, Callable]):
        self.docs: dict[str, Mapping[str, Any]] = {}
        self.postings: dict[str, SortedPostings] = {
            name: SortedPostings(name) for name in schema
        }

    def copy(self) -> "_IndexState":
        clone = _IndexState.__new__(_IndexState)
        clone.docs = dict(self.docs)
        clone.postings = {name: p.copy() for name, p in self.postings.items()}
        return clone


def _coerce(schema: Mapping[str, Callable], field_name: str, value: Any) -> Any:
    try:
        converter = schema[field_name]
    except KeyError:
        raise ValueError(f"Unknown index field: {field_name}")
    try:
        return converter(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value {value!r} for field {field_name}: {e}") from e


def _evaluate(
    state: _IndexState,
    schema: Mapping[str, Callable],
    query: FilterQuery,
    within: Optional[DocSet] = None,
) -> DocSet:
    result: Optional[set[str]] = None

    for clause in query:
        if result is not None and not result:
            break
        postings = state.postings.get(clause.field)
        if postings is None:
            raise ValueError(f"Unknown index field: {clause.field}")
        if isinstance(clause, TermClause):
            matches = postings.lookup(_coerce(schema, clause.field, clause.value))
        elif isinstance(clause, RangeClause):
            lower = None if clause.lower is None else _coerce(schema, clause.field, clause.lower)
            upper = None if clause.upper is None else _coerce(schema, clause.field, clause.upper)
            matches = postings.range_lookup(lower, upper)
        else:
            raise TypeError(f"Unsupported clause: {clause!r}")
        result = matches if result is None else result & matches

    if within is not None:
        # within is applied after the clauses, never copied
        return within if result is None else DocSet(result.intersection(within.ids))
    if result is None:
        return DocSet(state.docs.keys())
    return DocSet(result)


class IndexReader:
    """
    Point-in-time read view of a DocumentIndex.

    Supports use as a context manager; a closed reader refuses every request.
    """

    def __init__(self, state: _IndexState, schema: Mapping[str, Callable]):
        self._state: Optional[_IndexState] = state
        self._schema = schema

    def _live_state(self) -> _IndexState:
        if self._state is None:
            raise IndexReadError("Index reader is closed")
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is None

    def evaluate(self, query: FilterQuery, within: Optional[DocSet] = None) -> DocSet:
        """
        Return the documents matching every clause of the query.

        Args:
            query: Conjunctive filter query (no clauses matches everything)
            within: Optional set to restrict the answer to
        """
        return _evaluate(self._live_state(), self._schema, query, within)

    def count(self, query: FilterQuery) -> int:
        return self.evaluate(query).cardinality

    def read_fields(self, doc_id: str) -> Mapping[str, Any]:
        """Return the stored fields of a document."""
        state = self._live_state()
        try:
            return state.docs[doc_id]
        except KeyError:
            raise IndexReadError(f"Document {doc_id} not found")

    def page(self, docset: DocSet, after: Optional[str] = None, rows: int = 1000) -> list[str]:
        """
        Return up to ``rows`` ids of the set in ascending order, starting
        after the ``after`` id (exclusive).
        """
        self._live_state()
        ids = docset.sorted_ids()
        start = 0 if after is None else bisect.bisect_right(ids, after)
        return ids[start:start + rows]

    def search(
        self,
        query: FilterQuery,
        rows: int = 1000,
        cursor_mark: Optional[str] = None,
    ) -> tuple[list[str], Optional[str]]:
        """
        Cursor based paging over the answer of a query.

        Returns:
            (page of ids, cursor for the next page or None when exhausted)
        """
        docset = self.evaluate(query)
        ids = self.page(docset, cursor_mark, rows)
        next_mark = ids[-1] if len(ids) == rows and ids[-1] != docset.sorted_ids()[-1] else None
        return ids, next_mark

    def __len__(self) -> int:
        return len(self._live_state().docs)

    def close(self) -> None:
        self._state = None

    def __enter__(self) -> "IndexReader":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class DocumentIndex:
    """
    Inverted index of flat documents keyed by their ``id`` field.

    Example:
        index = DocumentIndex()
        index.write({"id": "1", "context": "<g>", "subject": "<s>", ...})
        with index.reader() as reader:
            docs = reader.evaluate(FilterQuery().term("subject", "<s>"))
        index.delete_by_expression('subject:"<s>"')
    """

    def __init__(self, schema: Mapping[str, Callable] = TRIPLE_SCHEMA):
        self._schema = schema
        self._state = _IndexState(schema)
        # True once a reader shares the current state
        self._shared = False
        self._lock = threading.RLock()

    @property
    def schema(self) -> Mapping[str, Callable]:
        return self._schema

    def _writable_state(self) -> _IndexState:
        if self._shared:
            self._state = self._state.copy()
            self._shared = False
        return self._state

    def reader(self) -> IndexReader:
        """Open a point-in-time reader."""
        with self._lock:
            self._shared = True
            return IndexReader(self._state, self._schema)

    def write(self, document: Mapping[str, Any]) -> None:
        """
        Add a document, replacing any document with the same id.

        Raises:
            ValueError: if the document has no id or a field fails its schema
        """
        if not document.get(Field.ID):
            raise ValueError("Document has no id")
        stored = {
            name: _coerce(self._schema, name, value)
            for name, value in document.items()
        }
        doc_id = stored[Field.ID]

        with self._lock:
            state = self._writable_state()
            previous = state.docs.get(doc_id)
            if previous is not None:
                self._unindex(state, doc_id, previous)
            state.docs[doc_id] = MappingProxyType(stored)
            for name, value in stored.items():
                state.postings[name].add(value, doc_id)

    def delete(self, query: FilterQuery) -> int:
        """Remove every document matching the query; returns how many."""
        with self._lock:
            matches = _evaluate(self._state, self._schema, query)
            if not matches:
                return 0
            state = self._writable_state()
            for doc_id in matches.ids:
                fields = state.docs.pop(doc_id)
                self._unindex(state, doc_id, fields)
            return matches.cardinality

    def delete_by_expression(self, expression: str) -> int:
        """Remove every document matching a textual expression."""
        return self.delete(parse_expression(expression))

    def count(self, expression: str) -> int:
        """Count the documents matching a textual expression."""
        query = parse_expression(expression)
        with self._lock:
            return _evaluate(self._state, self._schema, query).cardinality

    def distinct_values(self, field_name: str) -> list[Any]:
        """Sorted distinct values of a field."""
        with self._lock:
            postings = self._state.postings.get(field_name)
            if postings is None:
                raise ValueError(f"Unknown index field: {field_name}")
            return postings.keys()

    def stats(self) -> dict[str, IndexStats]:
        with self._lock:
            return {name: p.stats() for name, p in self._state.postings.items()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._state.docs)

    @staticmethod
    def _unindex(state: _IndexState, doc_id: str, fields: Mapping[str, Any]) -> None:
        for name, value in fields.items():
            state.postings[name].remove(value, doc_id)
