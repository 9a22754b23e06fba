"""
Error taxonomy for sync execution.

Row and batch failures are categorized and recorded on the item; only setup
failures (missing credentials, unreachable database) propagate as exceptions.
"""

from enum import Enum

from neo4j.exceptions import (
    ConstraintError,
    CypherSyntaxError,
    CypherTypeError,
    ServiceUnavailable,
    SessionExpired,
    TransactionError,
)

from graphsync.shared.credentials import CredentialsRequired


class ErrorType(str, Enum):
    NETWORK = "NETWORK"
    TRANSACTION = "TRANSACTION"
    SOURCE_MISSING = "SOURCE_MISSING"
    TARGET_FAILURE = "TARGET_FAILURE"
    VALIDATION = "VALIDATION"
    INVALID_TYPE = "INVALID_TYPE"
    QUERY_EXECUTION = "QUERY_EXECUTION"
    UNKNOWN = "UNKNOWN"


class SyncSetupError(RuntimeError):
    """Fatal to a single item: the executor could not start at all."""

    pass


# Driver exception classes, checked in order before message heuristics
_EXCEPTION_TYPES = (
    ((ServiceUnavailable, SessionExpired), ErrorType.NETWORK),
    ((TransactionError,), ErrorType.TRANSACTION),
    ((CypherSyntaxError,), ErrorType.QUERY_EXECUTION),
    ((CypherTypeError,), ErrorType.INVALID_TYPE),
    ((ConstraintError,), ErrorType.VALIDATION),
)

_MESSAGE_HEURISTICS = (
    (("connection", "network", "timeout", "econnrefused"), ErrorType.NETWORK),
    (("transaction", "rollback", "commit"), ErrorType.TRANSACTION),
    (("node not found", "does not exist", "source node"), ErrorType.SOURCE_MISSING),
    (("failed to create", "target node"), ErrorType.TARGET_FAILURE),
    (("invalid", "validation", "malformed"), ErrorType.VALIDATION),
    (("type", "cannot convert"), ErrorType.INVALID_TYPE),
    (("syntax", "cypher", "query", "neo4j"), ErrorType.QUERY_EXECUTION),
)


def categorize_error(exc: BaseException) -> ErrorType:
    for classes, error_type in _EXCEPTION_TYPES:
        if isinstance(exc, classes):
            return error_type

    message = str(exc).lower()
    for needles, error_type in _MESSAGE_HEURISTICS:
        if any(needle in message for needle in needles):
            return error_type
    return ErrorType.UNKNOWN


def categorize_with_default(exc: BaseException, fallback: ErrorType) -> ErrorType:
    """Categorize ``exc``, replacing UNKNOWN with a step-specific fallback."""
    error_type = categorize_error(exc)
    return fallback if error_type == ErrorType.UNKNOWN else error_type


__all__ = [
    "CredentialsRequired",
    "ErrorType",
    "SyncSetupError",
    "categorize_error",
    "categorize_with_default",
]
