"""
Term and pattern model for basic graph pattern queries.

These classes represent RDF terms, triple patterns and the variable
bindings produced while joining the patterns of a BGP.
"""

from dataclasses import dataclass
from typing import Any, Iterator, Optional, Union


# =============================================================================
# Term Types (subjects, predicates, objects)
# =============================================================================

@dataclass(frozen=True)
class Variable:
    """
    A SPARQL variable (e.g., ?name, $person).

    Variables are bound during query execution to values from matching triples.
    """
    name: str

    def __str__(self) -> str:
        return f"?{self.name}"

    def __hash__(self) -> int:
        return hash(self.name)


@dataclass(frozen=True)
class IRI:
    """An Internationalized Resource Identifier."""
    value: str

    def __str__(self) -> str:
        return f"<{self.value}>"

    def __hash__(self) -> int:
        return hash(self.value)


@dataclass(frozen=True)
class Literal:
    """
    An RDF Literal value.

    ``value`` is the lexical form. A literal has either a language tag
    (@en) or a datatype IRI (^^xsd:integer), never both.
    """
    value: Any
    language: Optional[str] = None
    datatype: Optional[str] = None

    def __post_init__(self):
        if self.language and self.datatype:
            raise ValueError("A literal cannot carry both a language tag and a datatype")

    @property
    def lexical(self) -> str:
        """The lexical form as a string."""
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        return str(self.value)

    def __str__(self) -> str:
        base = f'"{self.lexical}"'
        if self.language:
            return f"{base}@{self.language}"
        if self.datatype:
            return f"{base}^^<{self.datatype}>"
        return base

    def __hash__(self) -> int:
        return hash((self.value, self.language, self.datatype))


@dataclass(frozen=True)
class BlankNode:
    """A blank node (anonymous resource)."""
    label: str

    def __str__(self) -> str:
        return f"_:{self.label}"


# Concrete terms, i.e. anything that can be stored
Node = Union[IRI, Literal, BlankNode]

# Type alias for any term that can appear in a triple pattern
Term = Union[Variable, IRI, Literal, BlankNode]

# Graph context used when no named graph is given
DEFAULT_GRAPH = IRI("urn:x-arq:DefaultGraph")


# =============================================================================
# Triple Patterns
# =============================================================================

@dataclass(frozen=True)
class TriplePattern:
    """
    A triple pattern matching triples in the store.

    Each position can be a variable (for matching) or a concrete term (for
    filtering). A pattern without variables is a plain triple.
    """
    subject: Term
    predicate: Term
    object: Term

    def __str__(self) -> str:
        return f"{self.subject} {self.predicate} {self.object} ."

    def slots(self) -> tuple[tuple[str, Term], ...]:
        """Return (position name, term) pairs in subject, predicate, object order."""
        return (
            ("subject", self.subject),
            ("predicate", self.predicate),
            ("object", self.object),
        )

    def get_variables(self) -> set[Variable]:
        """Return all variables in this pattern."""
        return {term for _, term in self.slots() if isinstance(term, Variable)}

    def is_concrete(self) -> bool:
        """True if no slot is a variable."""
        return not self.get_variables()


# A stored triple is simply a pattern without variables
Triple = TriplePattern


# =============================================================================
# Bindings
# =============================================================================

class Binding:
    """
    Append-only mapping from variable name to RDF term.

    Built incrementally along one join path: once a variable is bound,
    further attempts to bind it are ignored, so the first assignment wins.
    Child bindings copy their parent, leaving it untouched.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Optional[dict[str, Node]] = None):
        self._values: dict[str, Node] = dict(values) if values else {}

    def child(self) -> "Binding":
        """Create a new binding extending this one."""
        return Binding(self._values)

    def bind(self, variable: Union[Variable, str], value: Node) -> bool:
        """
        Bind a variable unless it is already bound.

        Returns:
            True if the binding was added, False if the variable already had a value
        """
        name = variable.name if isinstance(variable, Variable) else variable
        if name in self._values:
            return False
        self._values[name] = value
        return True

    def get(self, variable: Union[Variable, str], default: Optional[Node] = None) -> Optional[Node]:
        name = variable.name if isinstance(variable, Variable) else variable
        return self._values.get(name, default)

    def __getitem__(self, variable: Union[Variable, str]) -> Node:
        name = variable.name if isinstance(variable, Variable) else variable
        return self._values[name]

    def __contains__(self, variable: Union[Variable, str]) -> bool:
        name = variable.name if isinstance(variable, Variable) else variable
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Binding):
            return self._values == other._values
        if isinstance(other, dict):
            return self._values == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._values.items()))

    def as_dict(self) -> dict[str, Node]:
        return dict(self._values)

    def __repr__(self) -> str:
        inner = ", ".join(f"?{k}={v}" for k, v in self._values.items())
        return f"Binding({inner})"
