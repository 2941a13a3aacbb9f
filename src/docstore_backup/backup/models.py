"""Backup data model: BackupRecord, its state machine, and request/result models.

A ``BackupRecord`` is created in ``pending`` for every backup attempt and
moves forward through the state machine below.  Only the backup
orchestrator (start/complete/fail) and the checksum verifier (verify)
mutate a record; restore never does.

    pending ──> in_progress ──> completed
       │             │
       ├──> failed <─┤
       └──> cancelled <┘

Usage:
    from docstore_backup.backup.models import BackupConfig, BackupRecord

    config = BackupConfig(
        name="nightly",
        excluded_collections=["sessions"],
        compression=True,
    )
"""

from __future__ import annotations

import traceback
import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import (
    BaseModel,
    Field,
    FieldSerializationInfo,
    SecretStr,
    field_serializer,
    model_validator,
)

from docstore_backup.backup.errors import InvalidTransitionError

ARTIFACT_FORMAT_VERSION = "1.0"


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


# ============================================================================
# Enums
# ============================================================================


class BackupType(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    DIFFERENTIAL = "differential"


class BackupStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class ScheduleFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    MANUAL = "manual"


TERMINAL_STATUSES = frozenset(
    {BackupStatus.COMPLETED, BackupStatus.FAILED, BackupStatus.CANCELLED}
)

# Allowed forward transitions.  Nothing re-enters PENDING.
TRANSITIONS: dict[BackupStatus, frozenset[BackupStatus]] = {
    BackupStatus.PENDING: frozenset(
        {BackupStatus.IN_PROGRESS, BackupStatus.FAILED, BackupStatus.CANCELLED}
    ),
    BackupStatus.IN_PROGRESS: frozenset(
        {BackupStatus.COMPLETED, BackupStatus.FAILED, BackupStatus.CANCELLED}
    ),
    BackupStatus.COMPLETED: frozenset(),
    BackupStatus.FAILED: frozenset(),
    BackupStatus.CANCELLED: frozenset(),
}


# ============================================================================
# Nested record sections
# ============================================================================


class BackupMetadata(BaseModel):
    """Populated only when a backup completes."""

    total_documents: int = 0
    total_collections: int = 0
    store_version: str = "unknown"
    artifact_version: str = ARTIFACT_FORMAT_VERSION


class BackupSchedule(BaseModel):
    """Declarative trigger configuration.  Consumed by an external scheduler."""

    frequency: ScheduleFrequency = ScheduleFrequency.MANUAL
    time: str | None = Field(default=None, pattern=r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    day_of_month: int | None = Field(default=None, ge=1, le=31)
    enabled: bool = False


class RetentionSettings(BaseModel):
    days: int = Field(default=30, ge=1)
    max_backups: int = Field(default=10, ge=1)


class BackupError(BaseModel):
    """Failure details, populated only when status is ``failed``."""

    message: str
    stack: str | None = None
    code: str | None = None


# ============================================================================
# Request model
# ============================================================================


class BackupConfig(BaseModel):
    """Caller-supplied configuration for a backup request."""

    name: str | None = None
    type: BackupType = BackupType.FULL
    compression: bool = True
    encryption: bool = False
    encryption_key: SecretStr | None = None
    collections: list[str] = Field(default_factory=list)
    excluded_collections: list[str] = Field(default_factory=list)
    schedule: BackupSchedule = Field(default_factory=BackupSchedule)
    retention: RetentionSettings = Field(default_factory=RetentionSettings)
    notes: str | None = None

    @model_validator(mode="after")
    def _key_required_with_encryption(self) -> BackupConfig:
        if self.encryption and not (
            self.encryption_key and self.encryption_key.get_secret_value()
        ):
            raise ValueError("encryption_key is required when encryption is enabled")
        if not self.encryption and self.encryption_key is not None:
            raise ValueError("encryption_key given but encryption is disabled")
        return self


# ============================================================================
# BackupRecord
# ============================================================================


class BackupRecord(BaseModel):
    """One backup attempt and its artifact descriptors."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str = ""
    type: BackupType = BackupType.FULL
    status: BackupStatus = BackupStatus.PENDING

    # Artifact descriptors
    location: str = ""
    format: str = "json"
    size: int | None = None
    compression: bool = True
    encryption: bool = False
    encryption_key: SecretStr | None = None

    # Collection selection
    collections: list[str] = Field(default_factory=list)
    excluded_collections: list[str] = Field(default_factory=list)

    metadata: BackupMetadata | None = None
    schedule: BackupSchedule = Field(default_factory=BackupSchedule)
    retention: RetentionSettings = Field(default_factory=RetentionSettings)

    # Timing
    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration: int | None = None  # milliseconds

    error: BackupError | None = None

    # Verification
    verified: bool = False
    verified_at: datetime | None = None
    verified_by: str | None = None
    checksum: str | None = None

    created_by: str = Field(frozen=True, min_length=1)
    notes: str | None = None

    @model_validator(mode="after")
    def _default_name(self) -> BackupRecord:
        if not self.name:
            timestamp = self.created_at.isoformat().replace(":", "-").replace(".", "-")
            self.name = f"backup-{self.type.value}-{timestamp}"
        return self

    @field_serializer("encryption_key")
    def _serialize_key(
        self, value: SecretStr | None, info: FieldSerializationInfo
    ) -> str | None:
        if value is None:
            return None
        if info.context and info.context.get("reveal_secrets"):
            return value.get_secret_value()
        return str(value)

    @classmethod
    def from_config(cls, config: BackupConfig, actor: str) -> BackupRecord:
        """Build a ``pending`` record from a request."""
        return cls(
            name=config.name or "",
            type=config.type,
            compression=config.compression,
            encryption=config.encryption,
            encryption_key=config.encryption_key,
            collections=list(config.collections),
            excluded_collections=list(config.excluded_collections),
            schedule=config.schedule.model_copy(),
            retention=config.retention.model_copy(),
            created_by=actor,
            notes=config.notes,
        )

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_collections(self, available: list[str]) -> list[str]:
        """Resolve the effective collection set.

        ``collections`` wins when non-empty, otherwise everything not in
        ``excluded_collections``, otherwise everything.  Store order is kept.
        """
        if self.collections:
            wanted = set(self.collections)
            return [name for name in available if name in wanted]
        if self.excluded_collections:
            excluded = set(self.excluded_collections)
            return [name for name in available if name not in excluded]
        return list(available)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, target: BackupStatus) -> None:
        if target not in TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Backup '{self.name}' cannot move from "
                f"{self.status.value} to {target.value}"
            )
        self.status = target

    def mark_started(self) -> None:
        self._transition(BackupStatus.IN_PROGRESS)
        self.started_at = utcnow()

    def mark_completed(self, size: int, duration: int, metadata: BackupMetadata) -> None:
        self._transition(BackupStatus.COMPLETED)
        self.completed_at = utcnow()
        self.size = size
        self.duration = duration
        self.metadata = metadata

    def mark_failed(self, exc: BaseException) -> None:
        self._transition(BackupStatus.FAILED)
        self.completed_at = utcnow()
        self.error = BackupError(
            message=str(exc) or type(exc).__name__,
            stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            code=getattr(exc, "code", None) or type(exc).__name__,
        )

    def mark_verified(self, actor: str, checksum: str) -> None:
        if self.status != BackupStatus.COMPLETED:
            raise InvalidTransitionError(
                f"Backup '{self.name}' is {self.status.value}; only completed "
                f"backups can be verified"
            )
        self.verified = True
        self.verified_at = utcnow()
        self.verified_by = actor
        self.checksum = checksum

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    @property
    def formatted_size(self) -> str:
        return format_size(self.size or 0)

    @property
    def formatted_duration(self) -> str:
        if not self.duration:
            return "N/A"
        seconds = self.duration // 1000
        minutes = seconds // 60
        hours = minutes // 60
        if hours > 0:
            return f"{hours}h {minutes % 60}m {seconds % 60}s"
        if minutes > 0:
            return f"{minutes}m {seconds % 60}s"
        return f"{seconds}s"


def format_size(size: int) -> str:
    """Human-readable byte count (``0 B``, ``1.50 KB``, ``2.00 MB``)."""
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{value:.2f} {units[index]}"


# ============================================================================
# Operation results
# ============================================================================


class RestoreResult(BaseModel):
    """Result of a successful restore."""

    success: bool
    duration: int  # milliseconds
    restored_collections: list[str] = Field(default_factory=list)
    failed_collection: str | None = None
    skipped_collections: list[str] = Field(default_factory=list)


class VerifyResult(BaseModel):
    verified: bool
    checksum: str


class PurgeResult(BaseModel):
    deleted_count: int = 0
    deleted_ids: list[str] = Field(default_factory=list)
    failed_ids: list[str] = Field(default_factory=list)


class StatusStats(BaseModel):
    """Aggregate over records sharing one status."""

    status: BackupStatus
    count: int = 0
    total_size: int = 0
    avg_duration: float | None = None


class BackupSummary(BaseModel):
    stats: list[StatusStats] = Field(default_factory=list)
    recent: list[BackupRecord] = Field(default_factory=list)
    scheduled: list[BackupRecord] = Field(default_factory=list)
    total_backups: int = 0
    total_size: int = 0
