"""Migration driver - exports every queued object type and hands it to the sink."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import FileAccessError, ForeignKeyUnresolved, ImportRejected, MigrationError, SourceRowError
from .extractors.base import ChunkedEnumerator, ChunkResult, SourceConnector
from .loaders.base import ImportSink
from .models import object_type as ot
from .models.migration import (
    Checkpoint,
    CheckpointStore,
    MigrationConfig,
    MigrationRun,
    MigrationStatus,
    MigrationStep,
)
from .models.record import ExportRecord, RecordStatus
from .models.schema import apply_defaults, get_schema
from .services.credentials import CredentialRewriter, UNRESOLVED_CREDENTIAL
from .services.file_storage import FileStorage
from .services.foreign_keys import ForeignKeyResolver
from .services.queue_builder import QueueBuilder
from .services.transcoder import TextRewritePipeline

logger = logging.getLogger(__name__)


class MigrationDriver:
    """
    Drives a complete migration from one source connector into one sink.

    Handles:
    - Pre-flight validation of source and destination
    - Building the dependency ordered export queue
    - Chunked export of each object type
    - Foreign key resolution, transcoding and credential rewriting
    - Checkpointing after every chunk and resuming interrupted runs
    - Progress tracking and reporting

    The connector and the sink are closed when the run ends.
    """

    def __init__(
        self,
        config: MigrationConfig,
        connector: SourceConnector,
        sink: ImportSink,
        pipeline: Optional[TextRewritePipeline] = None,
        rewriter: Optional[CredentialRewriter] = None,
        file_storage: Optional[FileStorage] = None,
        checkpoint_store: Optional[CheckpointStore] = None
    ):
        """
        Initialize the driver.

        Args:
            config: Migration configuration
            connector: Source connector with its handlers registered
            sink: Destination import sink
            pipeline: Text rewrite pipeline, built from config if omitted
            rewriter: Credential rewriter
            file_storage: Accessor for avatar and attachment files
            checkpoint_store: Where to persist progress (disabled on dry runs)
        """
        self.config = config
        self.connector = connector
        self.sink = sink
        self.pipeline = pipeline or TextRewritePipeline(config.accepted_font_sizes)
        self.rewriter = rewriter or CredentialRewriter()
        self.file_storage = file_storage or FileStorage(config.file_system_path)
        self.fk_resolver = ForeignKeyResolver(sink, default_board_id=config.default_board_id)

        if checkpoint_store is None and not config.dry_run:
            checkpoint_file = config.checkpoint_file or str(Path(config.output_dir) / "checkpoint.json")
            checkpoint_store = CheckpointStore(checkpoint_file)
        self.checkpoint_store = checkpoint_store

        # Runtime state
        self.run: Optional[MigrationRun] = None
        self.checkpoint: Optional[Checkpoint] = None

        self.logs_dir = Path(self.config.output_dir) / "logs"
        if self.config.save_report:
            self.logs_dir.mkdir(parents=True, exist_ok=True)

    def run_migration(self) -> MigrationRun:
        """
        Run the complete migration.

        Returns:
            MigrationRun with results and statistics
        """
        self.run = MigrationRun(
            name=self.config.name,
            description=self.config.description,
            dry_run=self.config.dry_run,
        )
        self.run.metadata = {
            "source": self.connector.name,
            "sink": type(self.sink).__name__,
        }
        self.run.started_at = datetime.utcnow()
        self.run.status = MigrationStatus.VALIDATING

        try:
            # Phase 1: Validation
            logger.info("=== PHASE 1: VALIDATION ===")
            queue = self._run_validation()

            # Phase 2: Resume
            logger.info("=== PHASE 2: CHECKPOINT ===")
            self._load_checkpoint(queue)

            # Phase 3: Export
            logger.info("=== PHASE 3: EXPORT ===")
            self.run.status = MigrationStatus.EXPORTING
            for tag in queue:
                self._run_tag(tag)

            self.run.status = MigrationStatus.COMPLETED
            self.run.current_step = None
            if self.checkpoint_store is not None:
                self.checkpoint_store.clear()
            logger.info("=== MIGRATION COMPLETED ===")

        except MigrationError as e:
            self._record_failure(e)

        except Exception as e:
            self._record_failure(e)
            raise

        finally:
            self.run.completed_at = datetime.utcnow()
            self.run.update_totals()
            if self.config.save_report:
                self._save_report()
            self.connector.close()
            self.sink.close()

        return self.run

    def _record_failure(self, error: Exception) -> None:
        logger.error(f"Migration failed: {error}")
        self.run.errors.append({
            "phase": self.run.status.value,
            "step": self.run.current_step,
            "error": str(error),
            "error_type": type(error).__name__,
            "timestamp": datetime.utcnow().isoformat(),
        })
        self.run.status = MigrationStatus.FAILED

    def _run_validation(self) -> List[str]:
        """Build the queue and probe source and destination before any export."""
        queue = QueueBuilder(self.connector.supported_data()).build(self.config.selection)
        self.run.queue = queue

        self.connector.validate(queue)
        self.sink.validate_connection()
        logger.info(f"Validated {self.connector.name} for {len(queue)} object types")
        return queue

    def _load_checkpoint(self, queue: List[str]) -> None:
        checkpoint = self.checkpoint_store.load() if self.checkpoint_store else None

        if checkpoint is not None and checkpoint.queue != queue:
            logger.warning("Checkpoint belongs to a different selection, starting over")
            checkpoint = None

        if checkpoint is None:
            self.checkpoint = Checkpoint(queue=list(queue))
            return

        self.checkpoint = checkpoint
        self.run.resumed = True
        logger.info(
            f"Resuming: {len(checkpoint.completed)} object types done, "
            f"{checkpoint.current_tag or 'next type'} from offset {checkpoint.next_offset}"
        )

    def _save_checkpoint(self, current_tag: Optional[str], next_offset: int) -> None:
        self.checkpoint.current_tag = current_tag
        self.checkpoint.next_offset = next_offset
        if self.checkpoint_store is not None:
            self.checkpoint_store.save(self.checkpoint)

    def _run_tag(self, tag: str) -> None:
        """Export one object type chunk by chunk."""
        descriptor = ot.get_descriptor(tag)
        step = self.run.add_step(name=descriptor.label, tag=tag)
        self.run.current_step = tag

        if tag in self.checkpoint.completed:
            step.status = MigrationStatus.COMPLETED
            step.warnings.append("Completed by an earlier run")
            logger.info(f"Skipping {tag}, completed by an earlier run")
            return

        step.status = MigrationStatus.EXPORTING
        step.started_at = datetime.utcnow()
        start_offset = self.checkpoint.resume_offset(tag)
        step.resumed_from = start_offset

        enumerator = ChunkedEnumerator(self.connector, tag, self.config.chunk_size_for(tag))
        total = enumerator.count()
        step.estimated_total = total
        logger.info(f"Exporting {descriptor.label} ({tag}): about {total}, chunk size {enumerator.chunk_size}")

        try:
            for chunk in enumerator.chunks(start_offset, total):
                self._process_chunk(chunk, step)
                self._save_checkpoint(tag, chunk.next_offset)
                logger.info(
                    f"{tag}: {min(chunk.next_offset, total)}/{total} "
                    f"({step.records_succeeded} imported, {step.records_skipped} skipped)"
                )
        except Exception:
            step.status = MigrationStatus.FAILED
            raise
        finally:
            step.completed_at = datetime.utcnow()

        step.status = MigrationStatus.COMPLETED
        self.checkpoint.completed.append(tag)
        self._save_checkpoint(None, 0)
        logger.info(f"Exported {step.records_succeeded}/{step.records_processed} {tag} records")

    def _process_chunk(self, chunk: ChunkResult, step: MigrationStep) -> None:
        # Rows the handler could not convert
        step.records_processed += len(chunk.errors)
        step.records_skipped += len(chunk.errors)
        step.errors.extend(chunk.errors)
        step.warnings.extend(chunk.warnings)

        for record in chunk.records:
            status = self._process_record(chunk.tag, record, step)
            step.records_processed += 1
            if status == RecordStatus.IMPORTED:
                step.records_succeeded += 1
            elif status == RecordStatus.SKIPPED:
                step.records_skipped += 1
            else:
                step.records_failed += 1

    def _process_record(self, tag: str, record: ExportRecord, step: MigrationStep) -> RecordStatus:
        """Compose one record and import it."""
        try:
            fields = self.fk_resolver.resolve(tag, record)
        except ForeignKeyUnresolved as e:
            self._record_error(step, record, str(e))
            return RecordStatus.SKIPPED

        fields = self._transcode_fields(tag, record, fields)

        try:
            fields = apply_defaults(tag, fields, source_id=record.source_id)
        except SourceRowError as e:
            self._record_error(step, record, str(e))
            return RecordStatus.SKIPPED

        aux: Dict[str, Any] = dict(record.aux)
        if record.file_path is not None:
            try:
                aux["fileLocation"] = self.file_storage.resolve(record.file_path)
            except FileAccessError as e:
                self._record_error(step, record, f"{tag} {record.source_id}: {e}")
                return RecordStatus.SKIPPED

        try:
            destination_id = self.sink.import_record(tag, record.source_id, fields, aux)
        except ImportRejected as e:
            self._record_error(step, record, str(e))
            return RecordStatus.FAILED

        if destination_id is None:
            logger.debug(f"Sink skipped {tag} {record.source_id}")
            return RecordStatus.SKIPPED

        if tag == ot.USER:
            self.sink.update_credential(destination_id, self._tag_credential(record))

        return RecordStatus.IMPORTED

    def _transcode_fields(self, tag: str, record: ExportRecord, fields: Dict[str, Any]) -> Dict[str, Any]:
        dialect = record.dialect or self.connector.dialect
        for name in get_schema(tag).markup_fields:
            if fields.get(name):
                fields[name] = self.pipeline.transcode(
                    dialect, fields[name], self.connector.resolve_attachment
                )
        return fields

    def _tag_credential(self, record: ExportRecord) -> str:
        credential = record.credential
        if credential is None:
            return UNRESOLVED_CREDENTIAL
        return self.rewriter.rewrite(credential.scheme, credential.hash, credential.salt, credential.params)

    def _record_error(self, step: MigrationStep, record: ExportRecord, message: str) -> None:
        step.errors.append({
            "message": message,
            "tag": step.tag,
            "source_id": record.source_id,
            "timestamp": datetime.utcnow().isoformat(),
        })
        logger.warning(message)

    def _save_report(self):
        """Save the migration report."""
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        filepath = self.logs_dir / f"migration_report_{datetime.utcnow().strftime('%Y%m%d_%H%M%S')}.json"
        with open(filepath, 'w') as f:
            json.dump(self.run.to_dict(), f, indent=2, default=str)
        logger.info(f"Saved migration report to {filepath}")
