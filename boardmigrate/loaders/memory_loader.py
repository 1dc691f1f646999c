"""In-memory import sink for tests and dry runs."""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from .base import ImportSink, is_relation_id
from ..models.record import SourceID

logger = logging.getLogger(__name__)


class InMemoryImportSink(ImportSink):
    """
    Keeps imported records in dictionaries.

    Destination ids are allocated per tag starting at 1. ``reject`` can be
    given to skip records, e.g. to simulate destination-side duplicates.
    """

    def __init__(
        self,
        dry_run: bool = False,
        reject: Optional[Callable[[str, Dict[str, Any]], bool]] = None
    ):
        super().__init__(dry_run)
        self.records: Dict[str, Dict[int, Dict[str, Any]]] = defaultdict(dict)
        self.aux: Dict[str, Dict[int, Dict[str, Any]]] = defaultdict(dict)
        self.credentials: Dict[Any, str] = {}
        self.import_calls: List[tuple] = []
        self.reject = reject
        self._next_id: Dict[str, int] = defaultdict(lambda: 1)

    def import_record(
        self,
        tag: str,
        source_id: Optional[SourceID],
        fields: Dict[str, Any],
        aux: Optional[Dict[str, Any]] = None
    ) -> Optional[Any]:
        self.import_calls.append((tag, source_id))

        if self.reject is not None and self.reject(tag, fields):
            logger.info(f"Rejected {tag} {source_id}")
            return None

        destination_id = None if is_relation_id(source_id) else self.mapping.get(tag, source_id)
        if destination_id is None:
            destination_id = self._next_id[tag]
            self._next_id[tag] += 1
            if not is_relation_id(source_id):
                self.mapping.assign(tag, source_id, destination_id)

        self.records[tag][destination_id] = dict(fields)
        if aux:
            self.aux[tag][destination_id] = dict(aux)
        return destination_id

    def lookup(self, tag: str, source_id: SourceID) -> Optional[Any]:
        return self.mapping.get(tag, source_id)

    def update_credential(self, user_id: Any, tagged_credential: str) -> None:
        self.credentials[user_id] = tagged_credential

    def get(self, tag: str, source_id: SourceID) -> Optional[Dict[str, Any]]:
        """Fields of the record imported for ``source_id``."""
        destination_id = self.lookup(tag, source_id)
        if destination_id is None:
            return None
        return self.records[tag].get(destination_id)
