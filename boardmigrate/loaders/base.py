"""Import sink interface and identifier mapping."""

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Dict, Optional
import logging

from ..models.record import SourceID

logger = logging.getLogger(__name__)


def is_relation_id(source_id: Optional[SourceID]) -> bool:
    """Relation rows carry no source id (None, 0, "0" or "")."""
    return source_id is None or source_id == 0 or source_id in ("", "0")


class IDMapping:
    """
    Per object type map from source id to destination id.

    Entries are write-once: assigning a different destination id to a source
    id that is already mapped raises ValueError. Source ids are compared by
    their string form so ``5`` and ``"5"`` are the same record.
    """

    def __init__(self):
        self._maps: Dict[str, Dict[str, Any]] = defaultdict(dict)

    def get(self, tag: str, source_id: SourceID) -> Optional[Any]:
        if is_relation_id(source_id):
            return None
        return self._maps[tag].get(str(source_id))

    def assign(self, tag: str, source_id: SourceID, destination_id: Any) -> None:
        key = str(source_id)
        existing = self._maps[tag].get(key)
        if existing is not None and existing != destination_id:
            raise ValueError(
                f"{tag} {source_id} is already mapped to {existing}, "
                f"refusing to remap to {destination_id}"
            )
        self._maps[tag][key] = destination_id

    def count(self, tag: str) -> int:
        return len(self._maps.get(tag, {}))


class ImportSink(ABC):
    """
    Base class for destination import pipelines.

    The sink owns the IDMapping. ``import_record`` must be idempotent per
    ``(tag, source_id)``: importing the same pair again updates or no-ops
    and returns the destination id assigned the first time. Relation rows
    (no source id) are always newly allocated.
    """

    def __init__(self, dry_run: bool = False):
        """
        Initialize the sink.

        Args:
            dry_run: If True, simulate without making changes
        """
        self.dry_run = dry_run
        self.mapping = IDMapping()

    @abstractmethod
    def import_record(
        self,
        tag: str,
        source_id: Optional[SourceID],
        fields: Dict[str, Any],
        aux: Optional[Dict[str, Any]] = None
    ) -> Optional[Any]:
        """
        Import one record.

        Args:
            tag: Object type tag
            source_id: Source id, or None/0 for relation rows
            fields: Canonical field map with foreign keys already resolved
            aux: Auxiliary data such as ``fileLocation``

        Returns:
            Destination id, or None if the record was skipped

        Raises:
            ImportRejected: if the destination refused the record
            SinkConnectionError: if the destination cannot be reached
        """
        pass

    @abstractmethod
    def lookup(self, tag: str, source_id: SourceID) -> Optional[Any]:
        """Destination id of an imported record, or None."""
        pass

    @abstractmethod
    def update_credential(self, user_id: Any, tagged_credential: str) -> None:
        """Attach a tagged credential to an already imported user."""
        pass

    def validate_connection(self) -> None:
        """
        Check the destination is reachable.

        Raises:
            SinkConnectionError: if it is not
        """
        pass

    def close(self) -> None:
        pass
