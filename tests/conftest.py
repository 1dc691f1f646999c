import hashlib

import pytest

from boardmigrate.loaders import InMemoryImportSink
from boardmigrate.models import MigrationConfig
from boardmigrate.services import base62


def _upload_token(content: bytes) -> tuple:
    digest = hashlib.sha1(content).hexdigest()
    return digest, base62.encode(int(digest, 16))


@pytest.fixture
def upload_token():
    """Returns (sha1 hex digest, base62 token) for some file content."""
    return _upload_token


@pytest.fixture
def sink():
    return InMemoryImportSink()


@pytest.fixture
def config(tmp_path):
    return MigrationConfig(
        name="test run",
        selection={"user": [], "board": ["board.thread", "board.post"]},
        output_dir=str(tmp_path / "out"),
        file_system_path=str(tmp_path / "files"),
    )
