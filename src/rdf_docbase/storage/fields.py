"""
Index field names and value types of a stored triple document.
"""

from types import MappingProxyType
from typing import Callable


class Field:
    """Names of the fields making up an indexed triple document."""
    ID = "id"
    CONTEXT = "context"
    SUBJECT = "subject"
    PREDICATE = "predicate"
    OBJECT = "object"
    LANG = "lang"

    # Datatype specific object fields, filled by the codecs
    TEXT_OBJECT = "text_object"
    NUMERIC_OBJECT = "numeric_object"
    DATE_OBJECT = "date_object"
    BOOLEAN_OBJECT = "boolean_object"


# Stored in the language field of literals without a tag. Distinct from the
# empty string so "no language" matches exactly.
NO_LANGUAGE = "__nolang__"


def parse_boolean(value) -> bool:
    """Coerce a boolean field value (bool, or "true"/"false"/"1"/"0")."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1"):
        return True
    if text in ("false", "0"):
        return False
    raise ValueError(f"Not a boolean: {value!r}")


# Field name -> coercion applied to values written or queried on that field
TRIPLE_SCHEMA: MappingProxyType[str, Callable] = MappingProxyType({
    Field.ID: str,
    Field.CONTEXT: str,
    Field.SUBJECT: str,
    Field.PREDICATE: str,
    Field.OBJECT: str,
    Field.LANG: str,
    Field.TEXT_OBJECT: str,
    Field.NUMERIC_OBJECT: float,
    Field.DATE_OBJECT: int,
    Field.BOOLEAN_OBJECT: parse_boolean,
})

# Term position in a triple pattern -> field holding its canonical form
SLOT_FIELDS: MappingProxyType[str, str] = MappingProxyType({
    "subject": Field.SUBJECT,
    "predicate": Field.PREDICATE,
    "object": Field.OBJECT,
})
