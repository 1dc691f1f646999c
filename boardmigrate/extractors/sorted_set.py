"""Handlers for key/sorted-set sources (Redis style stores)."""

import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from .base import ObjectTypeHandler
from ..errors import SourceRowError
from ..models.record import ExportRecord

logger = logging.getLogger(__name__)

SortedSetRow = Tuple[str, Dict[str, str]]


def _decode(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class SortedSetHandler(ObjectTypeHandler):
    """
    Exports the members of a sorted-set index in score order.

    ``client`` is anything exposing ``zcard``, ``zrange``, ``hgetall`` and
    ``exists`` with redis-py semantics (``zrange`` bounds are inclusive).
    Each member id is loaded from the hash at ``hash_key.format(id=member)``.

    ``converter`` receives ``(member_id, hash_fields)``; a member whose hash
    is missing or empty is a row error.
    """

    def __init__(
        self,
        tag: str,
        client: Any,
        index_key: str,
        hash_key: str,
        converter: Optional[Callable[[str, Dict[str, str]], ExportRecord]] = None,
    ):
        super().__init__(tag)
        self.client = client
        self.index_key = index_key
        self.hash_key = hash_key
        self.converter = converter

    def validate(self) -> List[str]:
        if not self.client.exists(self.index_key):
            return [f"key {self.index_key} does not exist"]
        return []

    def count(self) -> int:
        return int(self.client.zcard(self.index_key) or 0)

    def fetch(self, offset: int, limit: int) -> Iterator[SortedSetRow]:
        members = self.client.zrange(self.index_key, offset, offset + limit - 1)
        for member in members:
            member_id = _decode(member)
            raw = self.client.hgetall(self.hash_key.format(id=member_id)) or {}
            yield member_id, {_decode(k): _decode(v) for k, v in raw.items()}

    def convert(self, row: SortedSetRow) -> ExportRecord:
        member_id, fields = row
        if not fields:
            raise SourceRowError(
                f"{self.hash_key.format(id=member_id)} is missing", source_id=member_id
            )
        if self.converter is not None:
            return self.converter(member_id, fields)

        source_id = int(member_id) if member_id.isdigit() else member_id
        return ExportRecord(source_id=source_id, fields=dict(fields))
