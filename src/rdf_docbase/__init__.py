"""
RDF-DocBase: RDF triples stored as documents in an inverted index.

Basic graph patterns are answered by joining per-pattern candidate document
sets, smallest first, into a lazy stream of variable bindings.
"""

__version__ = "0.1.0"

from rdf_docbase.sparql.ast import (
    Variable,
    IRI,
    Literal,
    BlankNode,
    TriplePattern,
    Triple,
    Binding,
    DEFAULT_GRAPH,
)
from rdf_docbase.sparql.planner import JoinPlan, PatternResult, EMPTY_PLAN, merge_plans
from rdf_docbase.sparql.executor import BindingCursor, JoinExecutionError
from rdf_docbase.store import TripleStore, AddDeniedError, DeleteDeniedError, BatchResult
from rdf_docbase.storage.config import StoreConfig, QueryConfig

__all__ = [
    "Variable",
    "IRI",
    "Literal",
    "BlankNode",
    "TriplePattern",
    "Triple",
    "Binding",
    "DEFAULT_GRAPH",
    # Planning and execution
    "JoinPlan",
    "PatternResult",
    "EMPTY_PLAN",
    "merge_plans",
    "BindingCursor",
    "JoinExecutionError",
    # Store
    "TripleStore",
    "AddDeniedError",
    "DeleteDeniedError",
    "BatchResult",
    "StoreConfig",
    "QueryConfig",
]
