"""
Basic graph pattern model, join planning and join execution.
"""

from rdf_docbase.sparql.ast import (
    Variable,
    IRI,
    Literal,
    BlankNode,
    TriplePattern,
    Binding,
)
from rdf_docbase.sparql.planner import (
    JoinPlanner,
    JoinPlan,
    PatternResult,
    EMPTY_PLAN,
    merge_plans,
)
from rdf_docbase.sparql.executor import BindingCursor, JoinExecutionError

__all__ = [
    "Variable",
    "IRI",
    "Literal",
    "BlankNode",
    "TriplePattern",
    "Binding",
    "JoinPlanner",
    "JoinPlan",
    "PatternResult",
    "EMPTY_PLAN",
    "merge_plans",
    "BindingCursor",
    "JoinExecutionError",
]
