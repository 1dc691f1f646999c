"""Record models for migration data."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from enum import Enum

SourceID = Union[int, str]


class RecordStatus(str, Enum):
    """Outcome of processing one exported record."""
    IMPORTED = "imported"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class LegacyCredential:
    """A stored password hash together with what is needed to verify it."""
    scheme: str
    hash: Optional[str]
    salt: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExportRecord:
    """
    A record exported from a source connector.

    ``fields`` holds canonical field names. ``associations`` holds lists of
    source ids that are resolved against already imported object types
    before the record is handed to the import sink, keyed by field name.
    """
    source_id: Optional[SourceID]
    fields: Dict[str, Any] = field(default_factory=dict)
    aux: Dict[str, Any] = field(default_factory=dict)
    associations: Dict[str, List[SourceID]] = field(default_factory=dict)
    credential: Optional[LegacyCredential] = None
    file_path: Optional[str] = None  # Relative path of a binary asset
    dialect: Optional[str] = None  # Overrides the connector's markup dialect

