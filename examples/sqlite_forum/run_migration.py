#!/usr/bin/env python3
"""
Example: migrate a small SQLite forum

A minimal connector for a forum stored in SQLite (tables ``users``,
``forums``, ``topics``, ``posts``), driven into an HTTP import endpoint or,
with --demo, into an in-memory sink.

Usage:
    # Demo with a generated sample database
    python run_migration.py --demo

    # Real database, dry run
    python run_migration.py --database forum.sqlite --dry-run

    # Full migration
    IMPORT_API_URL=https://forum.example/api IMPORT_API_KEY=... \\
        python run_migration.py --database forum.sqlite --files /srv/forum/files
"""

import argparse
import logging
import os
import sys
from typing import Any, Dict, List, Mapping

from sqlalchemy import create_engine, text

from boardmigrate.extractors import RelationalRangeHandler, SourceConnector, TreeOrderedHandler
from boardmigrate.loaders import APIImportSink, InMemoryImportSink
from boardmigrate.logs import setup_logging
from boardmigrate.models import ExportRecord, LegacyCredential, MigrationConfig, MigrationStatus
from boardmigrate.orchestrator import MigrationDriver
from boardmigrate.services import MarkupDialect

logger = logging.getLogger(__name__)


def _user(row: Mapping[str, Any]) -> ExportRecord:
    return ExportRecord(
        source_id=row["user_id"],
        fields={
            "username": row["name"],
            "email": row["email"],
            "registrationDate": row["joined"],
            "banned": row["banned"],
            "signature": row["signature"],
        },
        credential=LegacyCredential(scheme=row["hash_type"], hash=row["password"], salt=row["salt"]),
    )


def _board(row: Mapping[str, Any]) -> ExportRecord:
    return ExportRecord(
        source_id=row["forum_id"],
        fields={
            "parentID": row["parent_id"],
            "position": row["display_order"],
            "title": row["title"],
            "description": row["description"],
        },
    )


def _thread(row: Mapping[str, Any]) -> ExportRecord:
    return ExportRecord(
        source_id=row["topic_id"],
        fields={
            "boardID": row["forum_id"],
            "topic": row["title"],
            "time": row["created"],
            "userID": row["user_id"],
            "username": row["username"],
            "views": row["views"],
            "isSticky": row["sticky"],
        },
    )


def _post(row: Mapping[str, Any]) -> ExportRecord:
    return ExportRecord(
        source_id=row["post_id"],
        fields={
            "threadID": row["topic_id"],
            "userID": row["user_id"],
            "username": row["username"],
            "message": row["body"],
            "time": row["created"],
        },
    )


class SQLiteForumConnector(SourceConnector):
    """Connector for the example SQLite forum schema."""

    name = "sqlite-forum"
    dialect = MarkupDialect.MARKDOWN

    def __init__(self, engine):
        self.engine = engine
        super().__init__()

    def setup(self) -> None:
        self.register(RelationalRangeHandler(
            "user", self.engine, "users", id_column="user_id", converter=_user,
        ))
        self.register(TreeOrderedHandler(RelationalRangeHandler(
            "board", self.engine, "forums", id_column="forum_id", converter=_board,
        )))
        self.register(RelationalRangeHandler(
            "board.thread", self.engine, "topics", id_column="topic_id", converter=_thread,
        ))
        self.register(RelationalRangeHandler(
            "board.post", self.engine, "posts", id_column="post_id", converter=_post,
        ))

    def supported_data(self) -> Dict[str, List[str]]:
        return {"user": [], "board": ["board.thread", "board.post"]}

    def close(self) -> None:
        self.engine.dispose()


SAMPLE_SCHEMA = [
    "CREATE TABLE users (user_id INTEGER PRIMARY KEY, name TEXT, email TEXT, joined INTEGER,"
    " banned INTEGER, signature TEXT, hash_type TEXT, password TEXT, salt TEXT)",
    "CREATE TABLE forums (forum_id INTEGER PRIMARY KEY, parent_id INTEGER, display_order INTEGER,"
    " title TEXT, description TEXT)",
    "CREATE TABLE topics (topic_id INTEGER PRIMARY KEY, forum_id INTEGER, title TEXT, created INTEGER,"
    " user_id INTEGER, username TEXT, views INTEGER, sticky INTEGER)",
    "CREATE TABLE posts (post_id INTEGER PRIMARY KEY, topic_id INTEGER, user_id INTEGER,"
    " username TEXT, body TEXT, created INTEGER)",
]

SAMPLE_ROWS = [
    "INSERT INTO users VALUES (1, 'alice', 'alice@example.com', 1262304000, 0, '*Hi*',"
    " 'bcrypt', '$2y$10$abcdefghijklmnopqrstuv', NULL)",
    "INSERT INTO users VALUES (3, 'bob', 'bob@example.com', 1293840000, 0, '', 'md5crypt', 'x', NULL)",
    "INSERT INTO forums VALUES (2, 5, 1, 'Announcements', 'News')",
    "INSERT INTO forums VALUES (5, NULL, 0, 'Community', '')",
    "INSERT INTO topics VALUES (1, 2, 'Welcome', 1293840000, 1, 'alice', 10, 1)",
    "INSERT INTO posts VALUES (1, 1, 1, 'alice', '**Welcome** to the new forum!', 1293840000)",
    "INSERT INTO posts VALUES (2, 1, 3, 'bob', '```python\nprint(1)\n```', 1293840100)",
]


def create_sample_database():
    """In-memory SQLite database with a handful of rows."""
    engine = create_engine("sqlite://")
    with engine.begin() as conn:
        for statement in SAMPLE_SCHEMA + SAMPLE_ROWS:
            conn.execute(text(statement))
    return engine


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="SQLite forum migration")
    parser.add_argument("--database", help="Path to the SQLite forum database")
    parser.add_argument("--files", help="Directory holding avatars and attachments")
    parser.add_argument("--output", default="./migration_output", help="Report and checkpoint directory")
    parser.add_argument("--demo", action="store_true", help="Run against a generated sample database")
    parser.add_argument("--dry-run", action="store_true", help="Simulate migration without making changes")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    args = parser.parse_args()

    setup_logging(verbose=args.verbose)

    if args.demo:
        engine = create_sample_database()
    elif args.database:
        engine = create_engine(f"sqlite:///{args.database}")
    else:
        parser.error("--database is required unless --demo is given")

    config = MigrationConfig(
        name="SQLite forum migration",
        selection={"user": [], "board": ["board.thread", "board.post"]},
        file_system_path=args.files,
        output_dir=args.output,
        dry_run=args.dry_run or args.demo,
    )

    api_url = os.environ.get("IMPORT_API_URL")
    if args.demo or not api_url:
        if not args.demo:
            logger.info("IMPORT_API_URL not set, importing into memory")
        sink = InMemoryImportSink()
    else:
        sink = APIImportSink(api_url, api_key=os.environ.get("IMPORT_API_KEY"), dry_run=args.dry_run)

    run = MigrationDriver(config, SQLiteForumConnector(engine), sink).run_migration()

    for step in run.steps:
        logger.info(
            f"{step.tag}: {step.records_succeeded} imported, "
            f"{step.records_skipped} skipped, {step.records_failed} failed"
        )
    if isinstance(sink, InMemoryImportSink):
        for post in sink.records.get("board.post", {}).values():
            logger.info(f"Post: {post['message']!r}")

    sys.exit(0 if run.status == MigrationStatus.COMPLETED else 1)


if __name__ == "__main__":
    main()
