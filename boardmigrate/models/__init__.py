"""Data models for the migration engine."""

from .object_type import (
    ObjectTypeDescriptor,
    OBJECT_TYPES,
    DEFAULT_CHUNK_SIZE,
    get_descriptor,
)
from .schema import (
    FieldType,
    FieldDefinition,
    EntitySchema,
    CANONICAL_SCHEMAS,
    apply_defaults,
    get_schema,
    to_unix_timestamp,
)
from .migration import (
    MigrationConfig,
    MigrationRun,
    MigrationStep,
    MigrationStatus,
    Checkpoint,
    CheckpointStore,
)
from .record import (
    SourceID,
    RecordStatus,
    LegacyCredential,
    ExportRecord,
)

__all__ = [
    "ObjectTypeDescriptor",
    "OBJECT_TYPES",
    "DEFAULT_CHUNK_SIZE",
    "get_descriptor",
    "FieldType",
    "FieldDefinition",
    "EntitySchema",
    "CANONICAL_SCHEMAS",
    "apply_defaults",
    "get_schema",
    "to_unix_timestamp",
    "MigrationConfig",
    "MigrationRun",
    "MigrationStep",
    "MigrationStatus",
    "Checkpoint",
    "CheckpointStore",
    "SourceID",
    "RecordStatus",
    "LegacyCredential",
    "ExportRecord",
]
