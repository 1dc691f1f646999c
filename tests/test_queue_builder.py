import logging

import pytest

from boardmigrate.errors import QueueOrderError
from boardmigrate.services.queue_builder import PRECEDENCE, QueueBuilder, build_queue, check_order


FULL_SUPPORT = {category: tags for category, tags in PRECEDENCE.items()}


def test_full_selection_order():
    selection = {
        "board": ["board.like", "board.attachment", "board.label", "board.poll", "board.poll.option"],
        "user": ["user.avatar", "user.group", "user.follower", "user.rank"],
        "conversation": ["conversation.attachment", "conversation.label"],
    }
    assert build_queue(selection) == [
        "user.group",
        "user.rank",
        "user",
        "user.avatar",
        "user.follower",
        "conversation.label",
        "conversation",
        "conversation.message",
        "conversation.user",
        "conversation.attachment",
        "board",
        "board.label",
        "board.thread",
        "board.post",
        "board.attachment",
        "board.poll",
        "board.poll.option",
        "board.like",
    ]


def test_deterministic_regardless_of_selection_order():
    a = build_queue({"user": ["user.group"], "board": ["board.like"]})
    b = build_queue({"board": ["board.like"], "user": ["user.group"]})
    assert a == b


def test_sub_feature_requires_its_category():
    queue = build_queue({"user": ["board.like", "user.group"]})
    assert queue == ["user.group", "user"]


def test_unsupported_sub_feature_dropped(caplog):
    supported = {"user": [], "board": ["board.thread", "board.post"]}
    with caplog.at_level(logging.WARNING):
        queue = QueueBuilder(supported).build({"board": ["board.like"]})
    assert queue == ["board", "board.thread", "board.post"]
    assert "does not support board.like" in caplog.text


def test_unsupported_category_dropped():
    queue = QueueBuilder({"user": []}).build({"user": [], "board": []})
    assert queue == ["user"]


def test_conversation_needs_user():
    assert build_queue({"conversation": []}) == []
    assert build_queue({"conversation": [], "user": []})[:2] == ["user", "conversation"]


def test_every_queue_respects_prerequisites():
    everything = {category: list(tags) for category, tags in PRECEDENCE.items()}
    check_order(build_queue(everything))


def test_order_violation_detected():
    with pytest.raises(QueueOrderError):
        check_order(["board.post", "board.thread"])


def test_unqueued_prerequisite_is_not_a_violation():
    check_order(["board.post"])
