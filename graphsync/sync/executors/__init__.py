"""Per-kind batch executors"""

from .base import BatchExecutor, Prepared
from .labels import LabelExecutor
from .nodes import NodePropertyExecutor
from .relationships import RelationshipExecutor

__all__ = [
    "BatchExecutor",
    "LabelExecutor",
    "NodePropertyExecutor",
    "Prepared",
    "RelationshipExecutor",
]
