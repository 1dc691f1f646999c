import pytest
from sqlalchemy import create_engine, text

from boardmigrate.errors import SourceRowError, SourceSchemaError
from boardmigrate.extractors import (
    ChunkedEnumerator,
    InMemoryConnector,
    RelationalRangeHandler,
    SortedSetHandler,
    SourceConnector,
    TreeOrderedHandler,
    order_tree,
)
from boardmigrate.extractors.memory import InMemoryHandler
from boardmigrate.models import ExportRecord


def _ids(chunks):
    return [r.source_id for chunk in chunks for r in chunk.records]


class TestChunkedEnumerator:
    def test_windows_cover_every_record_once(self):
        rows = [{"id": i, "username": f"u{i}"} for i in range(1, 24)]
        connector = InMemoryConnector({"user": rows})
        chunks = list(ChunkedEnumerator(connector, "user", 5).chunks())

        assert [c.offset for c in chunks] == [0, 5, 10, 15, 20]
        assert _ids(chunks) == list(range(1, 24))

    def test_resume_from_offset(self):
        rows = [{"id": i} for i in range(1, 11)]
        connector = InMemoryConnector({"user": rows})
        chunks = list(ChunkedEnumerator(connector, "user", 4).chunks(start_offset=4))
        assert _ids(chunks) == list(range(5, 11))

    def test_malformed_row_skipped(self):
        rows = [{"id": 1}, {"username": "no id"}, {"id": 3}]
        connector = InMemoryConnector({"user": rows})
        chunks = list(ChunkedEnumerator(connector, "user", 10).chunks())

        assert _ids(chunks) == [1, 3]
        assert len(chunks[0].errors) == 1
        assert chunks[0].errors[0]["tag"] == "user"

    def test_converter_errors_are_row_errors(self):
        def convert(row):
            if row["id"] == 2:
                raise SourceRowError("bad date", source_id=2)
            return ExportRecord(source_id=row["id"])

        connector = InMemoryConnector({})
        connector.register(InMemoryHandler("user", [{"id": 1}, {"id": 2}, {"id": 3}], converter=convert))
        chunks = list(ChunkedEnumerator(connector, "user", 2).chunks())

        assert _ids(chunks) == [1, 3]
        assert chunks[0].errors[0]["source_id"] == 2
        assert chunks[1].errors == []

    def test_relation_rows_may_repeat(self):
        rows = [ExportRecord(source_id=0, fields={"userID": 1}) for _ in range(3)]
        connector = InMemoryConnector({"board.like": rows})
        assert _ids(ChunkedEnumerator(connector, "board.like", 2).chunks()) == [0, 0, 0]

    def test_chunk_size_must_be_positive(self):
        with pytest.raises(ValueError):
            ChunkedEnumerator(InMemoryConnector({}), "user", 0)


class TestConnector:
    def test_validate_reports_missing_handlers(self):
        connector = InMemoryConnector({"user": []})
        with pytest.raises(SourceSchemaError) as exc:
            connector.validate(["user", "board"])
        assert "board" in str(exc.value)

    def test_unknown_tag(self):
        with pytest.raises(KeyError):
            InMemoryConnector({}).count("user")

    def test_supported_data_from_rows(self):
        connector = InMemoryConnector({"user": [], "user.group": [], "board": [], "board.post": []})
        assert connector.supported_data() == {"user": ["user.group"], "board": ["board.post"]}

    def test_resolve_attachment(self):
        connector = InMemoryConnector({}, uploads={"ab" * 20: 4})
        assert connector.resolve_attachment("ab" * 20) == 4
        assert connector.resolve_attachment("cd" * 20) is None

    def test_subclass_registry(self):
        class Source(SourceConnector):
            name = "custom"

            def setup(self):
                self.register(InMemoryHandler("user", [{"id": 1}]))

            def supported_data(self):
                return {"user": []}

        source = Source()
        assert source.tags == ["user"]
        assert source.count("user") == 1
        source.validate()


@pytest.fixture
def engine():
    engine = create_engine("sqlite://")
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE posts (post_id INTEGER PRIMARY KEY, body TEXT, created TEXT)"))
        for post_id in [1, 2, 4, 7, 8, 12]:
            conn.execute(
                text("INSERT INTO posts (post_id, body, created) VALUES (:id, :body, :created)"),
                {"id": post_id, "body": f"post {post_id}", "created": "2020-01-01"},
            )
    return engine


class TestRelationalRangeHandler:
    def test_max_id_windows(self, engine):
        handler = RelationalRangeHandler("board.post", engine, "posts", id_column="post_id")
        assert handler.count() == 12

        exported = []
        for offset in range(0, handler.count(), 5):
            exported.extend(r.source_id for r in handler.export(offset, 5))
        assert exported == [1, 2, 4, 7, 8, 12]

    def test_count_mode_windows(self, engine):
        handler = RelationalRangeHandler(
            "board.post", engine, "posts", id_column="post_id", use_max_id=False
        )
        assert handler.count() == 6
        assert [r.source_id for r in handler.export(2, 3)] == [4, 7, 8]

    def test_default_converter_drops_id_column(self, engine):
        handler = RelationalRangeHandler("board.post", engine, "posts", id_column="post_id")
        record = handler.export(0, 1)[0]
        assert record.fields == {"body": "post 1", "created": "2020-01-01"}

    def test_custom_converter(self, engine):
        handler = RelationalRangeHandler(
            "board.post", engine, "posts", id_column="post_id",
            converter=lambda row: ExportRecord(source_id=row["post_id"], fields={"message": row["body"]}),
        )
        assert handler.export(0, 2)[1].fields == {"message": "post 2"}

    def test_validate_missing_table(self, engine):
        handler = RelationalRangeHandler("user", engine, "users")
        assert handler.validate() == ["table users does not exist"]

    def test_validate_existing_table(self, engine):
        assert RelationalRangeHandler("board.post", engine, "posts").validate() == []

    def test_empty_table_counts_zero(self, engine):
        with engine.begin() as conn:
            conn.execute(text("CREATE TABLE users (id INTEGER PRIMARY KEY)"))
        assert RelationalRangeHandler("user", engine, "users").count() == 0


class FakeSortedSetClient:
    """Implements the redis-py calls the handler uses."""

    def __init__(self, sets, hashes):
        self.sets = sets
        self.hashes = hashes

    def exists(self, key):
        return int(key in self.sets or key in self.hashes)

    def zcard(self, key):
        return len(self.sets.get(key, []))

    def zrange(self, key, start, end):
        members = self.sets.get(key, [])
        return members[start:end + 1]

    def hgetall(self, key):
        return self.hashes.get(key, {})


class TestSortedSetHandler:
    @pytest.fixture
    def client(self):
        return FakeSortedSetClient(
            sets={"users:joindate": [b"1", b"2", b"5", b"9"]},
            hashes={
                "user:1": {b"username": b"alice"},
                "user:2": {b"username": b"bob"},
                "user:9": {b"username": b"carol"},
            },
        )

    def test_windows(self, client):
        handler = SortedSetHandler("user", client, "users:joindate", "user:{id}")
        assert handler.count() == 4
        first = handler.export(0, 2)
        second = handler.export(2, 2)
        assert [r.source_id for r in first] == [1, 2]
        assert [r.source_id for r in second] == [9]
        assert first[0].fields == {"username": "alice"}

    def test_missing_hash_is_row_error(self, client):
        handler = SortedSetHandler("user", client, "users:joindate", "user:{id}")
        handler.export(2, 2)
        errors, _ = handler.take_messages()
        assert len(errors) == 1
        assert errors[0]["source_id"] == "5"

    def test_validate(self, client):
        assert SortedSetHandler("user", client, "users:joindate", "user:{id}").validate() == []
        assert SortedSetHandler("board", client, "categories:cid", "category:{id}").validate() == [
            "key categories:cid does not exist"
        ]


class TestTreeOrder:
    @staticmethod
    def board(source_id, parent):
        return ExportRecord(source_id=source_id, fields={"parentID": parent})

    def test_parents_first(self):
        records = [self.board(3, 2), self.board(2, 1), self.board(1, None), self.board(4, 1)]
        assert [r.source_id for r in order_tree(records)] == [1, 2, 3, 4]

    def test_unknown_parent_is_root(self):
        records = [self.board(5, 99), self.board(6, 5)]
        assert [r.source_id for r in order_tree(records)] == [5, 6]

    def test_cycle_terminates(self):
        records = [self.board(1, None), self.board(2, 3), self.board(3, 2)]
        ordered = order_tree(records)
        assert [r.source_id for r in ordered] == [1, 2, 3]
        assert ordered[1].fields["parentID"] is None
        assert ordered[2].fields["parentID"] == 2

    def test_self_parent_is_root(self):
        assert [r.source_id for r in order_tree([self.board(1, 1)])] == [1]

    def test_deep_hierarchy_without_recursion(self):
        records = [self.board(i, i - 1 if i > 1 else None) for i in range(5000, 0, -1)]
        ordered = order_tree(records)
        assert [r.source_id for r in ordered] == list(range(1, 5001))

    def test_handler_exports_everything_in_first_window(self):
        rows = [{"id": 2, "parentID": 1}, {"id": 1, "parentID": 0}]
        handler = TreeOrderedHandler(InMemoryHandler("board", rows))
        assert handler.count() == 1
        assert [r.source_id for r in handler.export(0, 1)] == [1, 2]
        assert handler.export(1, 1) == []

    def test_handler_reports_cycles_as_warnings(self):
        rows = [{"id": 1, "parentID": 2}, {"id": 2, "parentID": 1}]
        handler = TreeOrderedHandler(InMemoryHandler("board", rows))
        assert [r.source_id for r in handler.export(0, 1)] == [1, 2]
        errors, warnings = handler.take_messages()
        assert errors == []
        assert len(warnings) == 1
        assert "Cycle in parentID chain at 1" in warnings[0]
