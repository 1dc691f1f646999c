"""Migration execution models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime
from pathlib import Path
import json
import logging
import uuid

from .object_type import DEFAULT_CHUNK_SIZE, get_descriptor

logger = logging.getLogger(__name__)

DEFAULT_ACCEPTED_FONT_SIZES = [8, 10, 12, 14, 18, 24, 36]


class MigrationStatus(str, Enum):
    """Status of a migration run or step."""
    PENDING = "pending"
    VALIDATING = "validating"
    EXPORTING = "exporting"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class MigrationStep:
    """Progress of one object type within a run."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    tag: str = ""
    status: MigrationStatus = MigrationStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_total: int = 0
    resumed_from: int = 0
    records_processed: int = 0
    records_succeeded: int = 0
    records_failed: int = 0
    records_skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "tag": self.tag,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "estimated_total": self.estimated_total,
            "resumed_from": self.resumed_from,
            "records_processed": self.records_processed,
            "records_succeeded": self.records_succeeded,
            "records_failed": self.records_failed,
            "records_skipped": self.records_skipped,
            "errors": self.errors,
            "warnings": self.warnings,
        }

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


@dataclass
class MigrationRun:
    """A complete migration run."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    description: str = ""
    status: MigrationStatus = MigrationStatus.PENDING
    dry_run: bool = False

    # Timing
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    # Progress
    queue: List[str] = field(default_factory=list)
    steps: List[MigrationStep] = field(default_factory=list)
    current_step: Optional[str] = None
    resumed: bool = False

    # Statistics
    total_records_processed: int = 0
    total_records_succeeded: int = 0
    total_records_failed: int = 0
    total_records_skipped: int = 0

    errors: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "dry_run": self.dry_run,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "queue": self.queue,
            "steps": [s.to_dict() for s in self.steps],
            "current_step": self.current_step,
            "resumed": self.resumed,
            "total_records_processed": self.total_records_processed,
            "total_records_succeeded": self.total_records_succeeded,
            "total_records_failed": self.total_records_failed,
            "total_records_skipped": self.total_records_skipped,
            "errors": self.errors,
            "metadata": self.metadata,
        }

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def add_step(self, name: str, tag: str) -> MigrationStep:
        """Add a new step to the migration."""
        step = MigrationStep(name=name, tag=tag)
        self.steps.append(step)
        return step

    def get_step(self, tag: str) -> Optional[MigrationStep]:
        """Get the step of an object type."""
        for step in self.steps:
            if step.tag == tag:
                return step
        return None

    def update_totals(self) -> None:
        """Update total statistics from steps."""
        self.total_records_processed = sum(s.records_processed for s in self.steps)
        self.total_records_succeeded = sum(s.records_succeeded for s in self.steps)
        self.total_records_failed = sum(s.records_failed for s in self.steps)
        self.total_records_skipped = sum(s.records_skipped for s in self.steps)


@dataclass
class MigrationConfig:
    """Configuration for a migration."""
    name: str
    description: str = ""

    # Selected categories mapped to the sub-features wanted for each,
    # e.g. {"user": ["user.group", "user.avatar"], "board": ["board.like"]}
    selection: Dict[str, List[str]] = field(default_factory=dict)

    # Chunking
    default_chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_sizes: Dict[str, int] = field(default_factory=dict)  # Tag -> size

    # Files
    file_system_path: Optional[str] = None  # Base directory of avatars/attachments

    # Output
    output_dir: str = "./data"
    checkpoint_file: Optional[str] = None
    save_report: bool = True

    # Content
    default_board_id: int = 1
    accepted_font_sizes: List[int] = field(default_factory=lambda: list(DEFAULT_ACCEPTED_FONT_SIZES))

    dry_run: bool = False

    def chunk_size_for(self, tag: str) -> int:
        """Configured override, then the catalog size, then the default."""
        if tag in self.chunk_sizes:
            return self.chunk_sizes[tag]
        return get_descriptor(tag).effective_chunk_size(self.default_chunk_size)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "description": self.description,
            "selection": self.selection,
            "default_chunk_size": self.default_chunk_size,
            "chunk_sizes": self.chunk_sizes,
            "file_system_path": self.file_system_path,
            "output_dir": self.output_dir,
            "checkpoint_file": self.checkpoint_file,
            "save_report": self.save_report,
            "default_board_id": self.default_board_id,
            "accepted_font_sizes": self.accepted_font_sizes,
            "dry_run": self.dry_run,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationConfig":
        """Create from dictionary representation."""
        selection = data.get("selection", {})
        if isinstance(selection, list):
            # A bare list selects categories without sub-features
            selection = {category: [] for category in selection}

        return cls(
            name=data.get("name", ""),
            description=data.get("description", ""),
            selection={k: list(v or []) for k, v in selection.items()},
            default_chunk_size=data.get("default_chunk_size", DEFAULT_CHUNK_SIZE),
            chunk_sizes=data.get("chunk_sizes", {}),
            file_system_path=data.get("file_system_path"),
            output_dir=data.get("output_dir", "./data"),
            checkpoint_file=data.get("checkpoint_file"),
            save_report=data.get("save_report", True),
            default_board_id=data.get("default_board_id", 1),
            accepted_font_sizes=data.get("accepted_font_sizes", list(DEFAULT_ACCEPTED_FONT_SIZES)),
            dry_run=data.get("dry_run", False),
        )

    @classmethod
    def from_json_file(cls, path: str) -> "MigrationConfig":
        """Load a configuration file."""
        with open(path, "r") as f:
            return cls.from_dict(json.load(f))


@dataclass
class Checkpoint:
    """Where an interrupted run stopped."""
    queue: List[str] = field(default_factory=list)
    completed: List[str] = field(default_factory=list)
    current_tag: Optional[str] = None
    next_offset: int = 0
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "queue": self.queue,
            "completed": self.completed,
            "current_tag": self.current_tag,
            "next_offset": self.next_offset,
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Checkpoint":
        """Create from dictionary representation."""
        updated_at = data.get("updated_at")
        return cls(
            queue=list(data.get("queue", [])),
            completed=list(data.get("completed", [])),
            current_tag=data.get("current_tag"),
            next_offset=int(data.get("next_offset", 0)),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else datetime.utcnow(),
        )

    def resume_offset(self, tag: str) -> int:
        """Offset to restart ``tag`` from."""
        return self.next_offset if tag == self.current_tag else 0


class CheckpointStore:
    """
    Persists a run's checkpoint as a JSON file.

    The file is rewritten after every chunk and removed once the run
    completes, so its presence means a previous run was interrupted.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> Optional[Checkpoint]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r") as f:
                return Checkpoint.from_dict(json.load(f))
        except (ValueError, TypeError) as e:
            logger.warning(f"Ignoring unreadable checkpoint {self.path}: {e}")
            return None

    def save(self, checkpoint: Checkpoint) -> None:
        checkpoint.updated_at = datetime.utcnow()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(checkpoint.to_dict(), f, indent=2)
        tmp_path.replace(self.path)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
