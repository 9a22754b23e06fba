"""
Neo4j statement helpers.
Identifier validation for relationship types and labels that must be
interpolated into Cypher text.
"""

from .identifiers import (
    InvalidIdentifier,
    escape_property_key,
    identifier_error,
    node_label_clause,
    validate_identifier,
)

__all__ = [
    "InvalidIdentifier",
    "escape_property_key",
    "identifier_error",
    "node_label_clause",
    "validate_identifier",
]
