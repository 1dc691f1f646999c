"""Import sinks for the destination platform."""

from .base import IDMapping, ImportSink, is_relation_id
from .memory_loader import InMemoryImportSink
from .api_loader import APIImportSink

__all__ = [
    "IDMapping",
    "ImportSink",
    "is_relation_id",
    "InMemoryImportSink",
    "APIImportSink",
]
