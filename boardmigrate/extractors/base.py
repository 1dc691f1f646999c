"""Source connector and object-type handler interfaces."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional
from datetime import datetime
import logging

from ..errors import SourceRowError, SourceSchemaError
from ..models.record import ExportRecord
from ..services.transcoder import MarkupDialect

logger = logging.getLogger(__name__)


@dataclass
class ChunkResult:
    """Records exported from one pagination window."""
    tag: str
    offset: int
    limit: int
    records: List[ExportRecord] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def next_offset(self) -> int:
        return self.offset + self.limit

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


class ObjectTypeHandler(ABC):
    """
    Count and export contract for one object type of one source.

    Subclasses implement ``count``, ``fetch`` (raw rows of a window) and
    ``convert`` (raw row to ExportRecord). ``export`` ties them together and
    skips rows that fail to convert.
    """

    # Exceptions from ``convert`` that only invalidate the current row
    ROW_ERRORS = (SourceRowError, KeyError, ValueError, TypeError)

    def __init__(self, tag: str):
        self.tag = tag
        self._errors: List[Dict[str, Any]] = []
        self._warnings: List[str] = []

    @abstractmethod
    def count(self) -> int:
        """
        Estimated number of records.

        Either an exact row count or the highest used source id. Callers
        use it to bound pagination and report progress, nothing more.
        """
        pass

    @abstractmethod
    def fetch(self, offset: int, limit: int) -> Iterable[Any]:
        """Raw rows of the window ``[offset, offset + limit)``, ascending by id."""
        pass

    @abstractmethod
    def convert(self, row: Any) -> ExportRecord:
        """
        Convert one raw row.

        Raises:
            SourceRowError: if the row cannot be interpreted
        """
        pass

    def validate(self) -> List[str]:
        """
        Probe the backing table or key.

        Returns:
            List of validation error messages
        """
        return []

    def export(self, offset: int, limit: int) -> List[ExportRecord]:
        """
        Export the records of one window.

        A row that fails to convert is skipped with a warning.
        """
        records = []
        for row in self.fetch(offset, limit):
            try:
                records.append(self.convert(row))
            except self.ROW_ERRORS as e:
                source_id = getattr(e, "source_id", None)
                self.add_error(f"Skipped malformed {self.tag} row: {e}", source_id=source_id)
        return records

    def add_error(self, message: str, source_id: Optional[Any] = None) -> None:
        """Record a skipped row."""
        self._errors.append({
            "message": message,
            "tag": self.tag,
            "source_id": source_id,
            "timestamp": datetime.utcnow().isoformat(),
        })
        logger.warning(message)

    def add_warning(self, message: str) -> None:
        self._warnings.append(message)
        logger.warning(message)

    def take_messages(self):
        """Return and reset the collected errors and warnings."""
        errors, warnings = self._errors, self._warnings
        self._errors, self._warnings = [], []
        return errors, warnings


class SourceConnector(ABC):
    """
    Base class for legacy platform connectors.

    A connector registers one ObjectTypeHandler per supported tag in
    ``setup()`` and declares its categories and sub-features in
    ``supported_data()``.
    """

    name: str = "source"
    dialect: MarkupDialect = MarkupDialect.BBCODE

    def __init__(self):
        self._handlers: Dict[str, ObjectTypeHandler] = {}
        self.setup()

    @abstractmethod
    def setup(self) -> None:
        """Register the handlers of this connector."""
        pass

    @abstractmethod
    def supported_data(self) -> Dict[str, List[str]]:
        """Map of top-level category to the optional sub-features it can export."""
        pass

    def register(self, handler: ObjectTypeHandler) -> None:
        self._handlers[handler.tag] = handler

    def handler(self, tag: str) -> ObjectTypeHandler:
        try:
            return self._handlers[tag]
        except KeyError:
            raise KeyError(f"{self.name} has no handler for {tag}") from None

    @property
    def tags(self) -> List[str]:
        return list(self._handlers)

    def validate(self, tags: Optional[Iterable[str]] = None) -> None:
        """
        Pre-flight probe of the handlers for ``tags`` (all by default).

        Raises:
            SourceSchemaError: listing every missing table or key
            SourceConnectionError: if the backend is unreachable
        """
        problems = []
        for tag in (tags if tags is not None else self.tags):
            if tag not in self._handlers:
                problems.append(f"no handler registered for {tag}")
                continue
            problems.extend(f"{tag}: {msg}" for msg in self._handlers[tag].validate())

        if problems:
            raise SourceSchemaError(f"{self.name} failed validation: " + "; ".join(problems))

    def count(self, tag: str) -> int:
        return self.handler(tag).count()

    def export(self, tag: str, offset: int, limit: int) -> List[ExportRecord]:
        return self.handler(tag).export(offset, limit)

    def resolve_attachment(self, sha1: str) -> Optional[Any]:
        """
        Look up an uploaded file by its SHA-1 hex digest.

        Returns:
            The source id of the stored upload, or None if no file matches
        """
        return None

    def close(self) -> None:
        """Release backend resources."""
        pass


class ChunkedEnumerator:
    """Pages through one object type of a connector in fixed-size windows."""

    def __init__(self, connector: SourceConnector, tag: str, chunk_size: int):
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.connector = connector
        self.tag = tag
        self.chunk_size = chunk_size

    def count(self) -> int:
        return self.connector.count(self.tag)

    def chunks(self, start_offset: int = 0, total: Optional[int] = None) -> Iterator[ChunkResult]:
        """
        Yield one ChunkResult per window, from ``start_offset`` up to the count.

        Windows past a gap in the source ids come back empty and are still
        yielded so the caller can checkpoint them.
        """
        if total is None:
            total = self.count()
        handler = self.connector.handler(self.tag)

        offset = start_offset
        while offset < total:
            chunk = ChunkResult(tag=self.tag, offset=offset, limit=self.chunk_size)
            chunk.started_at = datetime.utcnow()
            chunk.records = self.connector.export(self.tag, offset, self.chunk_size)
            chunk.errors, chunk.warnings = handler.take_messages()
            chunk.completed_at = datetime.utcnow()

            logger.debug(
                f"{self.tag}: window {offset}-{offset + self.chunk_size} "
                f"exported {len(chunk.records)} records in {chunk.duration_seconds:.2f}s"
            )
            yield chunk
            offset += self.chunk_size
