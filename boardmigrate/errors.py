"""Exception hierarchy for the migration engine.

Only schema, connection and queue-order errors are fatal. Everything else is
recovered at the record or asset boundary and recorded on the migration step.
"""

from typing import Any, Optional


class MigrationError(Exception):
    """Base class for all migration errors."""


class SourceSchemaError(MigrationError):
    """An expected table or key is missing from the source."""


class SourceConnectionError(MigrationError):
    """The source backend could not be reached."""


class SinkConnectionError(MigrationError):
    """The destination import endpoint could not be reached."""


class SourceRowError(MigrationError):
    """A single source row could not be parsed or decoded."""

    def __init__(self, message: str, source_id: Optional[Any] = None):
        super().__init__(message)
        self.source_id = source_id


class ForeignKeyUnresolved(MigrationError):
    """A referenced parent record has no destination id."""

    def __init__(self, tag: str, field: str, referenced_tag: str, source_id: Any):
        super().__init__(
            f"{tag}.{field} references {referenced_tag} {source_id!r} which was not imported"
        )
        self.tag = tag
        self.field = field
        self.referenced_tag = referenced_tag
        self.source_id = source_id


class FileAccessError(MigrationError):
    """An avatar or attachment file is missing or unreadable."""


class Base62DecodeError(MigrationError, ValueError):
    """A token contains a character outside the Base62 alphabet."""


class QueueOrderError(MigrationError):
    """An object type is queued before one of its prerequisites."""


class ImportRejected(MigrationError):
    """The destination refused a record it was asked to import."""

    def __init__(self, message: str, tag: str, source_id: Optional[Any] = None):
        super().__init__(message)
        self.tag = tag
        self.source_id = source_id
