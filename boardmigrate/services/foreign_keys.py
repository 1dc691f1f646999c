"""Resolution of source foreign keys to destination ids."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..errors import ForeignKeyUnresolved
from ..loaders.base import ImportSink, is_relation_id
from ..models import object_type as ot
from ..models.record import ExportRecord

logger = logging.getLogger(__name__)

NULLIFY = "nullify"
DEFAULT = "default"
SKIP = "skip"  # The reference owns the record; skip the record


@dataclass(frozen=True)
class ForeignKey:
    field: str
    references: str
    on_missing: str = NULLIFY


def _fk(field: str, references: str, on_missing: str = NULLIFY) -> ForeignKey:
    return ForeignKey(field=field, references=references, on_missing=on_missing)


FOREIGN_KEYS: Dict[str, List[ForeignKey]] = {
    ot.USER_RANK: [_fk("groupID", ot.USER_GROUP)],
    ot.USER_AVATAR: [_fk("userID", ot.USER, SKIP)],
    ot.USER_FOLLOWER: [_fk("userID", ot.USER, SKIP), _fk("followUserID", ot.USER, SKIP)],
    ot.CONVERSATION_LABEL: [_fk("userID", ot.USER, SKIP)],
    ot.CONVERSATION: [_fk("userID", ot.USER)],
    ot.CONVERSATION_MESSAGE: [
        _fk("conversationID", ot.CONVERSATION, SKIP),
        _fk("userID", ot.USER),
    ],
    ot.CONVERSATION_USER: [
        _fk("conversationID", ot.CONVERSATION, SKIP),
        _fk("participantID", ot.USER),
    ],
    ot.CONVERSATION_ATTACHMENT: [
        _fk("objectID", ot.CONVERSATION_MESSAGE, SKIP),
        _fk("userID", ot.USER),
    ],
    ot.BOARD: [_fk("parentID", ot.BOARD)],
    ot.BOARD_THREAD: [_fk("boardID", ot.BOARD, DEFAULT), _fk("userID", ot.USER)],
    ot.BOARD_POST: [
        _fk("threadID", ot.BOARD_THREAD, SKIP),
        _fk("userID", ot.USER),
        _fk("editorID", ot.USER),
    ],
    ot.BOARD_ATTACHMENT: [_fk("objectID", ot.BOARD_POST, SKIP), _fk("userID", ot.USER)],
    ot.BOARD_WATCHED_THREAD: [
        _fk("objectID", ot.BOARD_THREAD, SKIP),
        _fk("userID", ot.USER, SKIP),
    ],
    ot.BOARD_POLL: [_fk("objectID", ot.BOARD_POST, SKIP)],
    ot.BOARD_POLL_OPTION: [_fk("pollID", ot.BOARD_POLL, SKIP)],
    ot.BOARD_POLL_OPTION_VOTE: [
        _fk("pollID", ot.BOARD_POLL, SKIP),
        _fk("optionID", ot.BOARD_POLL_OPTION, SKIP),
        _fk("userID", ot.USER, SKIP),
    ],
    ot.BOARD_LIKE: [
        _fk("objectID", ot.BOARD_POST, SKIP),
        _fk("objectUserID", ot.USER),
        _fk("userID", ot.USER, SKIP),
    ],
}

# Association lists resolved into destination id lists, per tag and field
ASSOCIATIONS: Dict[str, Dict[str, str]] = {
    ot.USER: {"groupIDs": ot.USER_GROUP},
    ot.BOARD_LABEL: {"boardIDs": ot.BOARD},
    ot.BOARD_THREAD: {"labelIDs": ot.BOARD_LABEL},
}


class ForeignKeyResolver:
    """
    Rewrites the foreign keys of exported records to destination ids.

    Unresolved references become None, or ``default_board_id`` for a
    thread's board. A record whose owning parent is unresolved raises
    ForeignKeyUnresolved so the caller can skip it.
    """

    def __init__(self, sink: ImportSink, default_board_id: int = 1):
        self.sink = sink
        self.default_board_id = default_board_id

    def default_for(self, key: ForeignKey) -> Optional[Any]:
        if key.on_missing == DEFAULT and key.references == ot.BOARD:
            return self.default_board_id
        return None

    def resolve(self, tag: str, record: ExportRecord) -> Dict[str, Any]:
        """
        Return ``record.fields`` with foreign keys and associations resolved.

        Raises:
            ForeignKeyUnresolved: if a reference that owns the record is unresolved
        """
        fields = dict(record.fields)

        for key in FOREIGN_KEYS.get(tag, []):
            source_ref = fields.get(key.field)
            destination_id = None
            if not is_relation_id(source_ref):
                destination_id = self.sink.lookup(key.references, source_ref)

            if destination_id is not None:
                fields[key.field] = destination_id
                continue

            if key.on_missing == SKIP:
                raise ForeignKeyUnresolved(tag, key.field, key.references, source_ref)

            fields[key.field] = self.default_for(key)
            if not is_relation_id(source_ref):
                logger.warning(
                    f"{tag} {record.source_id}: {key.field} references unknown "
                    f"{key.references} {source_ref}, using {fields[key.field]}"
                )

        known = ASSOCIATIONS.get(tag, {})
        for name, source_ids in record.associations.items():
            if name not in known:
                logger.warning(f"{tag} {record.source_id}: unknown association {name!r} dropped")
                continue
            resolved = []
            for source_ref in source_ids:
                destination_id = self.sink.lookup(known[name], source_ref)
                if destination_id is None:
                    logger.warning(
                        f"{tag} {record.source_id}: {name} entry {source_ref} "
                        f"not imported, dropped"
                    )
                else:
                    resolved.append(destination_id)
            fields[name] = resolved

        return fields
