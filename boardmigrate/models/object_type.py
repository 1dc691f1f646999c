"""Object type catalog: tags, labels, prerequisites and chunk sizes."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

DEFAULT_CHUNK_SIZE = 1000


# Top-level categories a user can select.
USER = "user"
BOARD = "board"
CONVERSATION = "conversation"

# Object type tags.
USER_GROUP = "user.group"
USER_RANK = "user.rank"
USER_AVATAR = "user.avatar"
USER_FOLLOWER = "user.follower"
CONVERSATION_LABEL = "conversation.label"
CONVERSATION_MESSAGE = "conversation.message"
CONVERSATION_USER = "conversation.user"
CONVERSATION_ATTACHMENT = "conversation.attachment"
BOARD_LABEL = "board.label"
BOARD_THREAD = "board.thread"
BOARD_POST = "board.post"
BOARD_ATTACHMENT = "board.attachment"
BOARD_WATCHED_THREAD = "board.watched_thread"
BOARD_POLL = "board.poll"
BOARD_POLL_OPTION = "board.poll.option"
BOARD_POLL_OPTION_VOTE = "board.poll.option.vote"
BOARD_LIKE = "board.like"


@dataclass(frozen=True)
class ObjectTypeDescriptor:
    """Describes one migrated object type."""
    tag: str
    label: str
    prerequisites: List[str] = field(default_factory=list)
    chunk_size: Optional[int] = None

    def effective_chunk_size(self, default: int = DEFAULT_CHUNK_SIZE) -> int:
        return self.chunk_size or default


def _descriptor(tag: str, label: str, *prerequisites: str, chunk_size: Optional[int] = None):
    return ObjectTypeDescriptor(tag=tag, label=label, prerequisites=list(prerequisites), chunk_size=chunk_size)


# Rows that need a file lookup get smaller chunks.
OBJECT_TYPES: Dict[str, ObjectTypeDescriptor] = {
    d.tag: d for d in [
        _descriptor(USER_GROUP, "User groups"),
        _descriptor(USER_RANK, "User ranks", USER_GROUP),
        _descriptor(USER, "Users", chunk_size=200),
        _descriptor(USER_AVATAR, "User avatars", USER, chunk_size=100),
        _descriptor(USER_FOLLOWER, "Followers", USER, chunk_size=100),
        _descriptor(CONVERSATION_LABEL, "Conversation labels", USER),
        _descriptor(CONVERSATION, "Conversations", USER),
        _descriptor(CONVERSATION_MESSAGE, "Conversation messages", CONVERSATION),
        _descriptor(CONVERSATION_USER, "Conversation participants", CONVERSATION),
        _descriptor(CONVERSATION_ATTACHMENT, "Conversation attachments", CONVERSATION_MESSAGE, chunk_size=100),
        _descriptor(BOARD, "Boards"),
        _descriptor(BOARD_LABEL, "Labels", BOARD),
        _descriptor(BOARD_THREAD, "Threads", BOARD, chunk_size=200),
        _descriptor(BOARD_POST, "Posts", BOARD_THREAD),
        _descriptor(BOARD_ATTACHMENT, "Attachments", BOARD_POST, chunk_size=100),
        _descriptor(BOARD_WATCHED_THREAD, "Watched threads", BOARD_THREAD),
        _descriptor(BOARD_POLL, "Polls", BOARD_POST),
        _descriptor(BOARD_POLL_OPTION, "Poll options", BOARD_POLL),
        _descriptor(BOARD_POLL_OPTION_VOTE, "Poll votes", BOARD_POLL_OPTION),
        _descriptor(BOARD_LIKE, "Likes", BOARD_POST),
    ]
}


def get_descriptor(tag: str) -> ObjectTypeDescriptor:
    """Look up a descriptor, raising KeyError for unknown tags."""
    try:
        return OBJECT_TYPES[tag]
    except KeyError:
        raise KeyError(f"Unknown object type: {tag}") from None
