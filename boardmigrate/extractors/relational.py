"""Handlers for relational sources queried through SQLAlchemy."""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from .base import ObjectTypeHandler
from ..errors import SourceConnectionError, SourceRowError
from ..models.record import ExportRecord

logger = logging.getLogger(__name__)

RowConverter = Callable[[Mapping[str, Any]], ExportRecord]


class RelationalRangeHandler(ObjectTypeHandler):
    """
    Exports one table in id order.

    Two pagination modes:

    - ``use_max_id=True`` (default): ``count()`` is ``MAX(id)`` and a window
      selects ``id BETWEEN offset + 1 AND offset + limit``. Gaps left by
      deleted rows make windows shorter, never shifted.
    - ``use_max_id=False``: ``count()`` is ``COUNT(*)`` and a window uses
      ``ORDER BY id LIMIT :limit OFFSET :offset``. Needed for string ids.

    A custom ``query`` must use the same bind parameters as the mode it runs
    in (``:start``/``:end`` or ``:limit``/``:offset``).
    """

    def __init__(
        self,
        tag: str,
        engine: Engine,
        table: str,
        id_column: str = "id",
        query: Optional[str] = None,
        count_query: Optional[str] = None,
        converter: Optional[RowConverter] = None,
        use_max_id: bool = True,
    ):
        super().__init__(tag)
        self.engine = engine
        self.table = table
        self.id_column = id_column
        self.use_max_id = use_max_id
        self.converter = converter

        if use_max_id:
            self.query = query or (
                f"SELECT * FROM {table} WHERE {id_column} BETWEEN :start AND :end "
                f"ORDER BY {id_column}"
            )
            self.count_query = count_query or f"SELECT MAX({id_column}) FROM {table}"
        else:
            self.query = query or (
                f"SELECT * FROM {table} ORDER BY {id_column} LIMIT :limit OFFSET :offset"
            )
            self.count_query = count_query or f"SELECT COUNT(*) FROM {table}"

    def validate(self) -> List[str]:
        try:
            if not inspect(self.engine).has_table(self.table):
                return [f"table {self.table} does not exist"]
        except OperationalError as e:
            raise SourceConnectionError(f"Cannot reach source database: {e}") from e
        return []

    def count(self) -> int:
        with self.engine.connect() as conn:
            value = conn.execute(text(self.count_query)).scalar()
        logger.debug(f"{self.tag}: {self.count_query} returned {value}")
        return int(value or 0)

    def fetch(self, offset: int, limit: int) -> List[Dict[str, Any]]:
        if self.use_max_id:
            params = {"start": offset + 1, "end": offset + limit}
        else:
            params = {"limit": limit, "offset": offset}

        try:
            with self.engine.connect() as conn:
                result = conn.execute(text(self.query), params)
                return [dict(row._mapping) for row in result]
        except OperationalError as e:
            raise SourceConnectionError(f"Query for {self.tag} failed: {e}") from e

    def convert(self, row: Mapping[str, Any]) -> ExportRecord:
        if self.converter is not None:
            return self.converter(row)

        if self.id_column not in row:
            raise SourceRowError(f"row has no {self.id_column} column")
        fields = {k: v for k, v in row.items() if k != self.id_column}
        return ExportRecord(source_id=row[self.id_column], fields=fields)
