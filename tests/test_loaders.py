import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
import requests

from boardmigrate.errors import ImportRejected, SinkConnectionError
from boardmigrate.loaders import APIImportSink, IDMapping, InMemoryImportSink, is_relation_id


class TestIDMapping:
    def test_write_once(self):
        mapping = IDMapping()
        mapping.assign("user", 5, 100)
        mapping.assign("user", 5, 100)
        with pytest.raises(ValueError):
            mapping.assign("user", 5, 101)

    def test_string_and_int_ids_match(self):
        mapping = IDMapping()
        mapping.assign("user", 5, 100)
        assert mapping.get("user", "5") == 100

    def test_per_tag(self):
        mapping = IDMapping()
        mapping.assign("user", 1, 10)
        assert mapping.get("board", 1) is None
        assert mapping.count("user") == 1

    def test_relation_ids_never_mapped(self):
        assert IDMapping().get("board.like", 0) is None

    @pytest.mark.parametrize("source_id", [None, 0, "", "0"])
    def test_relation_ids(self, source_id):
        assert is_relation_id(source_id)

    @pytest.mark.parametrize("source_id", [1, "1", "a", "00"])
    def test_record_ids(self, source_id):
        assert not is_relation_id(source_id)


class TestInMemoryImportSink:
    def test_idempotent_per_source_id(self, sink):
        first = sink.import_record("user", 7, {"username": "a"})
        second = sink.import_record("user", 7, {"username": "b"})
        assert first == second
        assert sink.records["user"][first] == {"username": "b"}
        assert len(sink.records["user"]) == 1

    def test_relation_rows_always_new(self, sink):
        ids = {sink.import_record("board.like", 0, {"userID": 1}) for _ in range(3)}
        ids.add(sink.import_record("board.like", None, {"userID": 1}))
        assert len(ids) == 4
        assert sink.lookup("board.like", 0) is None

    def test_lookup_is_stable(self, sink):
        destination_id = sink.import_record("board", "a", {})
        for _ in range(3):
            assert sink.lookup("board", "a") == destination_id

    def test_reject(self):
        sink = InMemoryImportSink(reject=lambda tag, fields: fields.get("username") == "dup")
        assert sink.import_record("user", 1, {"username": "dup"}) is None
        assert sink.lookup("user", 1) is None

    def test_credentials(self, sink):
        sink.update_credential(3, "Bcrypt:x")
        assert sink.credentials == {3: "Bcrypt:x"}


def _response(status, payload=None):
    response = requests.Response()
    response.status_code = status
    response.encoding = "utf-8"
    response._content = json.dumps(payload).encode() if payload is not None else b""
    response.url = "http://import.test"
    return response


class FakeSession:
    """Replays canned responses and records the requests made."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, timeout=None, json=None):
        self.calls.append((method, url, json))
        result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        pass


def _sink(*responses):
    session = FakeSession(responses)
    return APIImportSink("http://import.test/api/", api_key="k", session=session), session


class TestAPIImportSink:
    def test_import_posts_payload(self):
        sink, session = _sink(_response(200, {"destination_id": 41}))
        assert sink.import_record("user", 7, {"username": "a"}, {"x": 1}) == 41

        method, url, payload = session.calls[0]
        assert (method, url) == ("POST", "http://import.test/api/import/user")
        assert payload == {"source_id": 7, "fields": {"username": "a"}, "aux": {"x": 1}}

    def test_import_caches_mapping(self):
        sink, session = _sink(_response(200, {"destination_id": 41}))
        sink.import_record("user", 7, {})
        assert sink.lookup("user", 7) == 41
        assert len(session.calls) == 1

    def test_conflict_updates(self):
        sink, session = _sink(_response(409, {"message": "exists"}), _response(200, {"destination_id": 9}))
        assert sink.import_record("board", 3, {"title": "t"}) == 9
        assert session.calls[1][:2] == ("PUT", "http://import.test/api/import/board/3")

    def test_skipped_import(self):
        sink, _ = _sink(_response(200, {"skipped": True, "message": "duplicate"}))
        assert sink.import_record("user", 1, {}) is None

    def test_rejected_import_raises(self):
        sink, _ = _sink(_response(422, {"message": "invalid email"}))
        with pytest.raises(ImportRejected) as exc:
            sink.import_record("user", 1, {})
        assert "invalid email" in str(exc.value)
        assert (exc.value.tag, exc.value.source_id) == ("user", 1)

    def test_server_error_is_fatal(self):
        sink, _ = _sink(_response(503))
        with pytest.raises(SinkConnectionError):
            sink.import_record("user", 1, {})

    def test_retry_exhausted_is_connection_error(self):
        sink, _ = _sink(requests.exceptions.RetryError("too many 503 error responses"))
        with pytest.raises(SinkConnectionError):
            sink.import_record("user", 1, {})

    def test_credential_server_error_is_fatal(self):
        sink, _ = _sink(_response(502))
        with pytest.raises(SinkConnectionError):
            sink.update_credential(41, "Bcrypt:x")

    def test_connection_error(self):
        sink, _ = _sink(requests.exceptions.ConnectionError("refused"))
        with pytest.raises(SinkConnectionError):
            sink.import_record("user", 1, {})

    def test_lookup(self):
        sink, session = _sink(_response(200, {"destination_id": "x9"}), _response(404))
        assert sink.lookup("board.thread", 5) == "x9"
        assert sink.lookup("board.thread", 5) == "x9"
        assert sink.lookup("board.thread", 6) is None
        assert [c[1] for c in session.calls] == [
            "http://import.test/api/mapping/board.thread/5",
            "http://import.test/api/mapping/board.thread/6",
        ]

    def test_update_credential(self):
        sink, session = _sink(_response(204))
        sink.update_credential(41, "invalid:-:-")
        assert session.calls == [
            ("PUT", "http://import.test/api/users/41/password", {"password": "invalid:-:-"})
        ]

    def test_validate_connection(self):
        sink, _ = _sink(_response(200, {}))
        sink.validate_connection()

        sink, _ = _sink(_response(401))
        with pytest.raises(SinkConnectionError):
            sink.validate_connection()

    def test_dry_run_makes_no_requests(self):
        session = FakeSession([])
        sink = APIImportSink("http://import.test", session=session, dry_run=True)
        assert sink.import_record("user", 4, {}) == 4
        assert sink.lookup("user", 4) == 4
        sink.update_credential(4, "x")
        sink.validate_connection()
        assert session.calls == []

    def test_default_session_has_auth_and_retries(self):
        sink = APIImportSink("http://import.test", api_key="secret")
        session = sink._session
        assert session.headers["Authorization"] == "Bearer secret"
        assert session.get_adapter("http://import.test").max_retries.total == 3
        assert session.get_adapter("http://import.test").max_retries.raise_on_status is False


class UnavailableHandler(BaseHTTPRequestHandler):
    """Answers every request with 503."""

    requests_seen = 0

    def _unavailable(self):
        UnavailableHandler.requests_seen += 1
        length = int(self.headers.get("Content-Length") or 0)
        self.rfile.read(length)
        self.send_response(503)
        self.send_header("Content-Length", "0")
        self.end_headers()

    do_GET = do_POST = do_PUT = _unavailable

    def log_message(self, format, *args):
        pass


@pytest.fixture
def unavailable_endpoint():
    UnavailableHandler.requests_seen = 0
    server = ThreadingHTTPServer(("127.0.0.1", 0), UnavailableHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


def test_unavailable_endpoint_after_retries(unavailable_endpoint):
    sink = APIImportSink(unavailable_endpoint, max_retries=2, backoff_factor=0)
    sink._session.trust_env = False
    with pytest.raises(SinkConnectionError):
        sink.import_record("user", 1, {"username": "a"})
    assert UnavailableHandler.requests_seen == 3
    sink.close()
