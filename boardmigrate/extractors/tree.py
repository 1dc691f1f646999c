"""Parent-first export of hierarchical object types (boards)."""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from .base import ObjectTypeHandler
from ..loaders.base import is_relation_id
from ..models.record import ExportRecord

logger = logging.getLogger(__name__)


def order_tree(
    records: List[ExportRecord],
    parent_field: str = "parentID",
    warn: Optional[Callable[[str], None]] = None
) -> List[ExportRecord]:
    """
    Order ``records`` so every parent precedes its children.

    Siblings keep their input order. A record whose parent is not in
    ``records`` is treated as a root. Records only reachable through a cycle
    are emitted as roots: the first of them in input order has its parent
    reference cleared, reported through ``warn``, and the traversal continues
    from there.
    """
    warn = warn or logger.warning
    by_id = {r.source_id: r for r in records}
    children: Dict[Any, List[ExportRecord]] = defaultdict(list)
    roots = []

    for record in records:
        parent = record.fields.get(parent_field)
        if is_relation_id(parent) or parent not in by_id or parent == record.source_id:
            roots.append(record)
        else:
            children[parent].append(record)

    ordered: List[ExportRecord] = []
    visited = set()

    def walk(start: ExportRecord) -> None:
        stack = [start]
        while stack:
            record = stack.pop()
            if record.source_id in visited:
                continue
            visited.add(record.source_id)
            ordered.append(record)
            stack.extend(reversed(children.get(record.source_id, [])))

    for root in roots:
        walk(root)

    for record in records:
        if record.source_id in visited:
            continue
        warn(
            f"Cycle in {parent_field} chain at {record.source_id}, "
            f"exporting it as a root"
        )
        record.fields[parent_field] = None
        walk(record)

    return ordered


class TreeOrderedHandler(ObjectTypeHandler):
    """
    Wraps a handler so the whole hierarchy is exported parent-first.

    Hierarchies are small, so the wrapped handler's records are exported in
    one window and ``count()`` is 1 whenever there is anything to export.
    """

    def __init__(self, inner: ObjectTypeHandler, parent_field: str = "parentID"):
        super().__init__(inner.tag)
        self.inner = inner
        self.parent_field = parent_field

    def validate(self) -> List[str]:
        return self.inner.validate()

    def count(self) -> int:
        return 1 if self.inner.count() > 0 else 0

    def fetch(self, offset: int, limit: int) -> List[ExportRecord]:
        if offset > 0:
            return []

        records = self.inner.export(0, self.inner.count())
        errors, warnings = self.inner.take_messages()
        self._errors.extend(errors)
        self._warnings.extend(warnings)
        return order_tree(records, self.parent_field, warn=self.add_warning)

    def convert(self, row: ExportRecord) -> ExportRecord:
        return row
