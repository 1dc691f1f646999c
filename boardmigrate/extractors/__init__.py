"""Source connectors and object-type handlers."""

from .base import ChunkResult, ChunkedEnumerator, ObjectTypeHandler, SourceConnector
from .memory import InMemoryConnector, InMemoryHandler
from .relational import RelationalRangeHandler
from .sorted_set import SortedSetHandler
from .tree import TreeOrderedHandler, order_tree

__all__ = [
    "ChunkResult",
    "ChunkedEnumerator",
    "ObjectTypeHandler",
    "SourceConnector",
    "InMemoryConnector",
    "InMemoryHandler",
    "RelationalRangeHandler",
    "SortedSetHandler",
    "TreeOrderedHandler",
    "order_tree",
]
