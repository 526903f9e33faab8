"""
Query execution context with timeout and cancellation support.

Provides:
- Query timeout (configurable per-query or from the store configuration)
- Query cancellation via token
- Join statistics
- EXPLAIN output for join plans
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import IntEnum, auto
from threading import Event
from typing import Optional
import time

import polars as pl


class QueryState(IntEnum):
    """Query execution states."""
    PENDING = auto()     # Created but not started
    RUNNING = auto()     # Currently executing
    COMPLETED = auto()   # Bindings exhausted
    CANCELLED = auto()   # Cancelled by user
    TIMEOUT = auto()     # Exceeded timeout
    FAILED = auto()      # Failed with error


@dataclass
class QueryStats:
    """Statistics for query execution."""
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    state: QueryState = QueryState.PENDING
    rows_scanned: int = 0
    rows_returned: int = 0
    pattern_count: int = 0
    join_count: int = 0
    error: Optional[str] = None

    @property
    def duration_ms(self) -> float:
        """Query duration in milliseconds."""
        if self.start_time is None:
            return 0.0
        end = self.end_time or time.time()
        return (end - self.start_time) * 1000

    def to_dict(self) -> dict:
        return {
            "duration_ms": self.duration_ms,
            "state": self.state.name,
            "rows_scanned": self.rows_scanned,
            "rows_returned": self.rows_returned,
            "pattern_count": self.pattern_count,
            "join_count": self.join_count,
            "error": self.error,
        }


class CancellationToken:
    """Token for cooperative query cancellation."""

    def __init__(self):
        self._cancelled = Event()

    def cancel(self):
        """Request cancellation."""
        self._cancelled.set()

    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()


class QueryCancelledException(Exception):
    """Exception raised when a query is cancelled."""
    pass


class QueryTimeoutException(Exception):
    """Exception raised when a query times out."""
    pass


@dataclass
class ExplainPlan:
    """Join order chosen for a basic graph pattern."""
    graph: str
    steps: list[dict] = field(default_factory=list)
    empty: bool = False

    def to_dict(self) -> dict:
        return {
            "graph": self.graph,
            "steps": self.steps,
            "empty": self.empty,
        }

    def to_dataframe(self) -> pl.DataFrame:
        """One row per join step, driver first."""
        return pl.DataFrame(
            {
                "step": [s["step"] for s in self.steps],
                "role": [s["role"] for s in self.steps],
                "position": [s["position"] for s in self.steps],
                "pattern": [s["pattern"] for s in self.steps],
                "query": [s["query"] for s in self.steps],
                "cardinality": [s["cardinality"] for s in self.steps],
                "error": [s["error"] for s in self.steps],
            },
            schema={
                "step": pl.Int64,
                "role": pl.Utf8,
                "position": pl.Int64,
                "pattern": pl.Utf8,
                "query": pl.Utf8,
                "cardinality": pl.Int64,
                "error": pl.Utf8,
            },
        )

    def __str__(self) -> str:
        lines = [f"Graph: {self.graph}"]
        if self.empty:
            lines.append("Plan: empty (no bindings possible)")
        lines.extend(["", "Steps:"])
        for s in self.steps:
            lines.append(f"  {s['step']}. {s['role']}: {s['pattern']}")
            lines.append(f"     Query: {s['query']}")
            lines.append(f"     Cardinality: {s['cardinality']}")
            if s["error"]:
                lines.append(f"     Error: {s['error']}")
        return "\n".join(lines)


@dataclass
class QueryContext:
    """
    Execution context for a query.

    Provides timeout, cancellation, and statistics tracking.
    """
    timeout_seconds: Optional[float] = None
    cancellation_token: Optional[CancellationToken] = None
    stats: QueryStats = field(default_factory=QueryStats)

    _check_interval: int = 1000  # Check cancellation every N rows
    _row_count: int = 0

    def start(self):
        """Mark query as started."""
        self.stats.start_time = time.time()
        self.stats.state = QueryState.RUNNING

    def complete(self):
        """Mark query as completed."""
        self.stats.end_time = time.time()
        self.stats.state = QueryState.COMPLETED

    def fail(self, error: str):
        """Mark query as failed."""
        self.stats.end_time = time.time()
        self.stats.state = QueryState.FAILED
        self.stats.error = error

    def check_cancelled(self):
        if self.cancellation_token and self.cancellation_token.is_cancelled():
            self.stats.end_time = time.time()
            self.stats.state = QueryState.CANCELLED
            raise QueryCancelledException("Query was cancelled")

    def check_timeout(self):
        if self.timeout_seconds is not None and self.stats.start_time is not None:
            elapsed = time.time() - self.stats.start_time
            if elapsed > self.timeout_seconds:
                self.stats.end_time = time.time()
                self.stats.state = QueryState.TIMEOUT
                raise QueryTimeoutException(
                    f"Query exceeded timeout of {self.timeout_seconds}s"
                )

    def check(self):
        """Check both cancellation and timeout."""
        self.check_cancelled()
        self.check_timeout()

    def count_row(self):
        """Count a scanned document and periodically check cancellation."""
        self._row_count += 1
        self.stats.rows_scanned += 1
        if self._row_count % self._check_interval == 0:
            self.check()

    def record_pattern(self, count: int = 1):
        self.stats.pattern_count += count

    def record_join(self):
        """Record a refinement query."""
        self.stats.join_count += 1

    def record_result(self):
        self.stats.rows_returned += 1
