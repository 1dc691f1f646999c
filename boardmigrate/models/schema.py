"""Canonical field-map schemas for every object type."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from enum import Enum

from dateutil import parser as date_parser

from ..errors import SourceRowError
from . import object_type as ot


class FieldType(str, Enum):
    """Supported canonical field types."""
    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"  # Stored as 0/1
    TIMESTAMP = "timestamp"  # Unix seconds
    MARKUP = "markup"  # Transcoded into canonical BBCode
    REFERENCE = "reference"  # Source id of another object type
    ARRAY = "array"
    OBJECT = "object"


_TYPE_DEFAULTS = {
    FieldType.STRING: "",
    FieldType.INTEGER: 0,
    FieldType.BOOLEAN: 0,
    FieldType.TIMESTAMP: 0,
    FieldType.MARKUP: "",
    FieldType.REFERENCE: None,
}


@dataclass
class FieldDefinition:
    """Definition of a canonical field."""
    name: str
    type: FieldType
    description: str = ""
    default: Optional[Any] = None

    def default_value(self) -> Any:
        """Zero, empty or null value used when the source has no equivalent."""
        if self.default is not None:
            return self.default
        if self.type == FieldType.ARRAY:
            return []
        if self.type == FieldType.OBJECT:
            return {}
        return _TYPE_DEFAULTS.get(self.type)


@dataclass
class EntitySchema:
    """Canonical fields of one object type."""
    tag: str
    fields: Dict[str, FieldDefinition] = field(default_factory=dict)

    @property
    def markup_fields(self) -> List[str]:
        return [name for name, f in self.fields.items() if f.type == FieldType.MARKUP]


def _schema(tag: str, **fields: FieldType) -> EntitySchema:
    return EntitySchema(
        tag=tag,
        fields={name: FieldDefinition(name=name, type=t) for name, t in fields.items()},
    )


S, I, B, T, M, R, A, O = (
    FieldType.STRING,
    FieldType.INTEGER,
    FieldType.BOOLEAN,
    FieldType.TIMESTAMP,
    FieldType.MARKUP,
    FieldType.REFERENCE,
    FieldType.ARRAY,
    FieldType.OBJECT,
)

_ATTACHMENT_FIELDS = dict(objectID=R, userID=R, filename=S, uploadTime=T)

CANONICAL_SCHEMAS: Dict[str, EntitySchema] = {
    s.tag: s for s in [
        _schema(ot.USER_GROUP, groupName=S, groupType=I),
        _schema(ot.USER_RANK, groupID=R, requiredPoints=I, rankTitle=S),
        _schema(
            ot.USER,
            username=S, email=S, registrationDate=T, lastActivityTime=T,
            banned=B, banReason=S, banExpires=T, groupIDs=A, signature=M, options=O,
        ),
        _schema(
            ot.USER_AVATAR,
            avatarName=S, avatarExtension=S, width=I, height=I, userID=R, fileHash=S,
        ),
        _schema(ot.USER_FOLLOWER, userID=R, followUserID=R, time=T),
        _schema(ot.CONVERSATION_LABEL, userID=R, label=S, cssClassName=S),
        _schema(ot.CONVERSATION, subject=S, time=T, userID=R, username=S, isClosed=B),
        _schema(ot.CONVERSATION_MESSAGE, conversationID=R, userID=R, username=S, message=M, time=T),
        _schema(
            ot.CONVERSATION_USER,
            conversationID=R, participantID=R, username=S, hideConversation=B, lastVisitTime=T,
        ),
        _schema(ot.CONVERSATION_ATTACHMENT, **_ATTACHMENT_FIELDS),
        _schema(
            ot.BOARD,
            parentID=R, position=I, boardType=I, title=S, description=S, externalURL=S,
        ),
        _schema(ot.BOARD_LABEL, label=S, cssClassName=S, boardIDs=A),
        _schema(
            ot.BOARD_THREAD,
            boardID=R, topic=S, time=T, userID=R, username=S, views=I,
            isSticky=B, isClosed=B, isDeleted=B, deleteTime=T, labelIDs=A,
        ),
        _schema(
            ot.BOARD_POST,
            threadID=R, userID=R, username=S, message=M, time=T,
            isDeleted=B, deleteTime=T, editorID=R, editor=S,
        ),
        _schema(ot.BOARD_ATTACHMENT, **_ATTACHMENT_FIELDS),
        _schema(ot.BOARD_WATCHED_THREAD, objectID=R, userID=R),
        _schema(
            ot.BOARD_POLL,
            objectID=R, question=S, time=T, endTime=T, isChangeable=B,
            isPublic=B, sortByVotes=B, maxVotes=I, votes=I,
        ),
        _schema(ot.BOARD_POLL_OPTION, pollID=R, optionValue=S, showOrder=I, votes=I),
        _schema(ot.BOARD_POLL_OPTION_VOTE, pollID=R, optionID=R, userID=R),
        _schema(ot.BOARD_LIKE, objectID=R, objectUserID=R, userID=R, likeValue=I, time=T),
    ]
}


def get_schema(tag: str) -> EntitySchema:
    """Look up the canonical schema of an object type."""
    try:
        return CANONICAL_SCHEMAS[tag]
    except KeyError:
        raise KeyError(f"No canonical schema for object type: {tag}") from None


def to_unix_timestamp(value: Any) -> int:
    """
    Normalize a timestamp to unix seconds.

    Accepts ints, floats, datetimes, digit strings and date strings. Naive
    datetimes are taken as UTC.

    Raises:
        ValueError: if the value cannot be interpreted as a timestamp
    """
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, datetime):
        moment = value
    else:
        text = str(value).strip()
        if text.lstrip("-").isdigit():
            return int(text)
        try:
            moment = date_parser.parse(text)
        except (ValueError, OverflowError) as e:
            raise ValueError(f"Not a timestamp: {value!r}") from e

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


def apply_defaults(tag: str, fields: Dict[str, Any], source_id: Any = None) -> Dict[str, Any]:
    """
    Return a copy of ``fields`` with every canonical field set.

    Absent fields get their zero/empty/null default; booleans become 0/1 and
    timestamps unix seconds. Fields outside the schema are passed through.

    Raises:
        SourceRowError: if a timestamp field cannot be parsed
    """
    schema = get_schema(tag)
    result = dict(fields)

    for name, definition in schema.fields.items():
        value = result.get(name)
        if value is None:
            result[name] = definition.default_value()
            continue

        if definition.type == FieldType.BOOLEAN:
            result[name] = 1 if value and value != "0" else 0
        elif definition.type == FieldType.TIMESTAMP:
            try:
                result[name] = to_unix_timestamp(value)
            except ValueError as e:
                raise SourceRowError(f"{tag}.{name}: {e}", source_id=source_id) from e

    return result
