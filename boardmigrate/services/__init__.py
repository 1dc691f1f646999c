"""Service layer of the migration engine."""

from .credentials import CredentialRewriter, UNRESOLVED_CREDENTIAL
from .file_storage import FileStorage
from .foreign_keys import ForeignKeyResolver
from .queue_builder import QueueBuilder, build_queue
from .transcoder import MarkupDialect, RewriteRule, TextRewritePipeline, transcode

__all__ = [
    "CredentialRewriter",
    "UNRESOLVED_CREDENTIAL",
    "FileStorage",
    "ForeignKeyResolver",
    "QueueBuilder",
    "build_queue",
    "MarkupDialect",
    "RewriteRule",
    "TextRewritePipeline",
    "transcode",
]
