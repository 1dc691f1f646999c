"""List-backed connector, used for fixtures and dry runs."""

import logging
from typing import Any, Callable, Dict, List, Optional, Union

from .base import ObjectTypeHandler, SourceConnector
from .tree import TreeOrderedHandler
from ..errors import SourceRowError
from ..models import object_type as ot
from ..models.record import ExportRecord
from ..services.transcoder import MarkupDialect

logger = logging.getLogger(__name__)

Row = Union[ExportRecord, Dict[str, Any]]


class InMemoryHandler(ObjectTypeHandler):
    """
    Serves a fixed list of rows by position.

    Rows are ExportRecords or plain dicts; a dict's ``id`` key becomes the
    source id and the remaining keys the fields.
    """

    def __init__(
        self,
        tag: str,
        rows: List[Row],
        converter: Optional[Callable[[Dict[str, Any]], ExportRecord]] = None,
    ):
        super().__init__(tag)
        self.rows = list(rows)
        self.converter = converter

    def count(self) -> int:
        return len(self.rows)

    def fetch(self, offset: int, limit: int) -> List[Row]:
        return self.rows[offset:offset + limit]

    def convert(self, row: Row) -> ExportRecord:
        if isinstance(row, ExportRecord):
            return row
        if self.converter is not None:
            return self.converter(row)
        if "id" not in row:
            raise SourceRowError(f"{self.tag} row without id: {row!r}")
        fields = {k: v for k, v in row.items() if k != "id"}
        return ExportRecord(source_id=row["id"], fields=fields)


class InMemoryConnector(SourceConnector):
    """
    Connector over in-memory rows keyed by object type tag.

    Boards are exported parent-first. ``uploads`` maps SHA-1 hex digests of
    embedded uploads to their source ids.
    """

    name = "memory"

    def __init__(
        self,
        data: Dict[str, List[Row]],
        dialect: MarkupDialect = MarkupDialect.BBCODE,
        uploads: Optional[Dict[str, Any]] = None,
        supported: Optional[Dict[str, List[str]]] = None,
    ):
        self.data = data
        self.dialect = dialect
        self.uploads = uploads or {}
        self._supported = supported
        super().__init__()

    def setup(self) -> None:
        for tag, rows in self.data.items():
            handler = InMemoryHandler(tag, rows)
            if tag == ot.BOARD:
                handler = TreeOrderedHandler(handler)
            self.register(handler)

    def supported_data(self) -> Dict[str, List[str]]:
        if self._supported is not None:
            return self._supported

        supported: Dict[str, List[str]] = {}
        for tag in self.data:
            category = tag.split(".", 1)[0]
            supported.setdefault(category, [])
            if tag != category:
                supported[category].append(tag)
        return supported

    def resolve_attachment(self, sha1: str) -> Optional[Any]:
        return self.uploads.get(sha1)
