"""
RDF-DocBase Storage Layer.

Triple documents in an in-process inverted index, with per-datatype literal
codecs and the compiler turning triple patterns into index queries.
"""

from rdf_docbase.storage.terms import TermKind, as_nt, parse_nt
from rdf_docbase.storage.fields import Field, NO_LANGUAGE, TRIPLE_SCHEMA
from rdf_docbase.storage.expressions import (
    FilterQuery,
    TermClause,
    RangeClause,
    ExpressionBuilder,
    ExpressionSyntaxError,
    parse_expression,
)
from rdf_docbase.storage.indexing import (
    DocumentIndex,
    IndexReader,
    IndexReadError,
    DocSet,
    EMPTY_DOCSET,
    SortedPostings,
)
from rdf_docbase.storage.codecs import (
    CodecRegistry,
    TermCodec,
    StringCodec,
    NumericCodec,
    DateTimeCodec,
    BooleanCodec,
    UnsupportedConstraintError,
)
from rdf_docbase.storage.compiler import (
    TriplePatternCompiler,
    PatternCompilationError,
    document_id,
)
from rdf_docbase.storage.query_context import (
    QueryContext,
    QueryState,
    QueryStats,
    CancellationToken,
    QueryCancelledException,
    QueryTimeoutException,
    ExplainPlan,
)
from rdf_docbase.storage.config import (
    StoreConfig,
    QueryConfig,
    ConfigValidator,
    ConfigValidationError,
)

__all__ = [
    "TermKind",
    "as_nt",
    "parse_nt",
    "Field",
    "NO_LANGUAGE",
    "TRIPLE_SCHEMA",
    # Expressions
    "FilterQuery",
    "TermClause",
    "RangeClause",
    "ExpressionBuilder",
    "ExpressionSyntaxError",
    "parse_expression",
    # Index
    "DocumentIndex",
    "IndexReader",
    "IndexReadError",
    "DocSet",
    "EMPTY_DOCSET",
    "SortedPostings",
    # Codecs
    "CodecRegistry",
    "TermCodec",
    "StringCodec",
    "NumericCodec",
    "DateTimeCodec",
    "BooleanCodec",
    "UnsupportedConstraintError",
    # Compiler
    "TriplePatternCompiler",
    "PatternCompilationError",
    "document_id",
    # Query context
    "QueryContext",
    "QueryState",
    "QueryStats",
    "CancellationToken",
    "QueryCancelledException",
    "QueryTimeoutException",
    "ExplainPlan",
    # Configuration
    "StoreConfig",
    "QueryConfig",
    "ConfigValidator",
    "ConfigValidationError",
]
