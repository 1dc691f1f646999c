"""Turns a category selection into an ordered queue of object type tags."""

import logging
from typing import Dict, Iterable, List, Mapping, Optional

from ..errors import QueueOrderError
from ..models import object_type as ot

logger = logging.getLogger(__name__)

# Fixed precedence per domain. A category's own tag is queued whenever the
# category is selected, its sub-features only when requested and supported.
PRECEDENCE: Dict[str, List[str]] = {
    ot.USER: [
        ot.USER_GROUP,
        ot.USER_RANK,
        ot.USER,
        ot.USER_AVATAR,
        ot.USER_FOLLOWER,
    ],
    ot.CONVERSATION: [
        ot.CONVERSATION_LABEL,
        ot.CONVERSATION,
        ot.CONVERSATION_MESSAGE,
        ot.CONVERSATION_USER,
        ot.CONVERSATION_ATTACHMENT,
    ],
    ot.BOARD: [
        ot.BOARD,
        ot.BOARD_LABEL,
        ot.BOARD_THREAD,
        ot.BOARD_POST,
        ot.BOARD_ATTACHMENT,
        ot.BOARD_WATCHED_THREAD,
        ot.BOARD_POLL,
        ot.BOARD_POLL_OPTION,
        ot.BOARD_POLL_OPTION_VOTE,
        ot.BOARD_LIKE,
    ],
}

CATEGORY_ORDER = [ot.USER, ot.CONVERSATION, ot.BOARD]

# Tags queued with their category even if not requested explicitly
CORE_TAGS = {
    ot.BOARD: [ot.BOARD_THREAD, ot.BOARD_POST],
    ot.CONVERSATION: [ot.CONVERSATION_MESSAGE, ot.CONVERSATION_USER],
}

# Categories that only make sense together with another one
CATEGORY_REQUIRES = {
    ot.CONVERSATION: ot.USER,
}


class QueueBuilder:
    """
    Builds the export queue for a connector.

    ``supported`` is the connector's ``supported_data()``; selections it
    does not cover are dropped with a warning.
    """

    def __init__(self, supported: Mapping[str, Iterable[str]]):
        self.supported = {category: set(subs) for category, subs in supported.items()}

    def build(self, selection: Mapping[str, Iterable[str]]) -> List[str]:
        """
        Args:
            selection: Selected categories mapped to the requested sub-features

        Returns:
            Ordered list of object type tags
        """
        categories = self._selected_categories(selection)

        queue: List[str] = []
        for category in CATEGORY_ORDER:
            if category not in categories:
                continue

            wanted = {category} | set(CORE_TAGS.get(category, []))
            for sub in selection.get(category, []) or []:
                if sub not in PRECEDENCE[category]:
                    logger.warning(f"Unknown sub-feature {sub!r} of {category}, ignoring")
                elif sub in self.supported[category] or sub in wanted:
                    wanted.add(sub)
                else:
                    logger.warning(f"Source does not support {sub}, ignoring")

            # Core tags are only queued if the source can export them
            for tag in CORE_TAGS.get(category, []):
                if tag not in self.supported[category]:
                    wanted.discard(tag)

            queue.extend(tag for tag in PRECEDENCE[category] if tag in wanted)

        check_order(queue)
        logger.info(f"Export queue: {', '.join(queue) or '(empty)'}")
        return queue

    def _selected_categories(self, selection: Mapping[str, Iterable[str]]) -> List[str]:
        categories = []
        for category in selection:
            if category not in PRECEDENCE:
                logger.warning(f"Unknown category {category!r}, ignoring")
                continue
            if category not in self.supported:
                logger.warning(f"Source does not support {category}, ignoring")
                continue
            required = CATEGORY_REQUIRES.get(category)
            if required and required not in selection:
                logger.warning(f"{category} requires {required} to be selected, ignoring")
                continue
            categories.append(category)
        return categories


def check_order(queue: List[str]) -> None:
    """
    Assert every queued prerequisite of a tag is queued before it.

    Raises:
        QueueOrderError: on a violation
    """
    position = {tag: i for i, tag in enumerate(queue)}
    for i, tag in enumerate(queue):
        for prerequisite in ot.get_descriptor(tag).prerequisites:
            if prerequisite in position and position[prerequisite] > i:
                raise QueueOrderError(f"{prerequisite} must be queued before {tag}")


def build_queue(
    selection: Mapping[str, Iterable[str]],
    supported: Optional[Mapping[str, Iterable[str]]] = None
) -> List[str]:
    """
    Build a queue; without ``supported`` every known sub-feature is allowed.
    """
    if supported is None:
        supported = {category: tags for category, tags in PRECEDENCE.items()}
    return QueueBuilder(supported).build(selection)
