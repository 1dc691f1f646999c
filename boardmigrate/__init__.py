"""
Board Migration Engine

Migrates community platform data (users, groups, boards, threads, posts,
conversations, attachments, polls, likes, followers) from legacy forum
software into a destination import pipeline.

Supports:
- Dependency ordered, chunked and resumable export
- Relational (SQLAlchemy) and sorted-set sources
- Foreign key remapping across object types
- Markdown, HTML and BBCode transcoding into canonical BBCode
- Legacy password hash tagging without the plaintext
"""

__version__ = "0.1.0"
