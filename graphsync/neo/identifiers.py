"""
Cypher identifier guards.

Relationship types and labels cannot be bound as query parameters, so they are
interpolated into statement text. Only identifiers made of uppercase letters,
digits and underscores are accepted for interpolation.
"""

import re

IDENTIFIER_PATTERN = re.compile(r"^[A-Z0-9_]+$")
PROPERTY_KEY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class InvalidIdentifier(ValueError):
    """Raised when a relationship type or label cannot be interpolated safely."""

    pass


def identifier_error(value: str, what: str = "Identifier") -> str | None:
    """Return a human message describing why ``value`` is rejected, or None."""
    if value is None or not str(value).strip():
        return f"{what} is empty"
    if not IDENTIFIER_PATTERN.match(value):
        return (
            f"{what} '{value}' is invalid: only uppercase letters, digits "
            "and underscores are allowed"
        )
    return None


def validate_identifier(value: str, what: str = "Identifier") -> str:
    error = identifier_error(value, what)
    if error:
        raise InvalidIdentifier(error)
    return value


def escape_property_key(key: str) -> str:
    """Backtick-quote a property key unless it is a plain identifier"""
    if PROPERTY_KEY_PATTERN.match(key):
        return key
    return "`" + key.replace("`", "``") + "`"


def node_label_clause(label: str) -> str:
    """Render ``:Label`` for the document node label (configurable, mixed case)"""
    return ":" + escape_property_key(label)
