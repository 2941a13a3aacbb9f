"""Audit event sink for pipeline stages.

The engine reports every stage through an ``AuditLog``.  Audit delivery is
fire-and-forget: ``emit_audit`` logs and drops any exception raised by the
sink, so a broken audit backend never aborts a backup or restore.

Usage:
    from docstore_backup.backup.audit import InMemoryAuditLog, emit_audit

    audit = InMemoryAuditLog()
    await emit_audit(audit, "info", "backup_started", "Backup nightly started",
                     actor_id="admin", resource_id=record.id)
    audit.find("backup_started")
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, Field

from docstore_backup.backup.models import utcnow

logger = logging.getLogger(__name__)

AUDIT_CATEGORY = "backup"
AUDIT_RESOURCE_TYPE = "backup"


class AuditLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SECURITY = "security"


class AuditEvent(BaseModel):
    level: AuditLevel
    category: str
    action: str
    message: str
    actor_id: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


class AuditLog(Protocol):
    """Structured event sink (external collaborator)."""

    async def record(
        self,
        level: AuditLevel,
        category: str,
        action: str,
        message: str,
        actor_id: str | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        ...


_LOG_LEVELS = {
    AuditLevel.DEBUG: logging.DEBUG,
    AuditLevel.INFO: logging.INFO,
    AuditLevel.WARNING: logging.WARNING,
    AuditLevel.ERROR: logging.ERROR,
    AuditLevel.SECURITY: logging.WARNING,
}


class LoggingAuditLog:
    """Writes audit events to the ``docstore_backup.audit`` logger."""

    def __init__(self, logger_name: str = "docstore_backup.audit") -> None:
        self._logger = logging.getLogger(logger_name)

    async def record(
        self,
        level: AuditLevel,
        category: str,
        action: str,
        message: str,
        actor_id: str | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        level = AuditLevel(level)
        self._logger.log(
            _LOG_LEVELS[level],
            f"[{category}:{action}] {message}",
            extra={
                "audit_action": action,
                "audit_actor": actor_id,
                "audit_resource": f"{resource_type}:{resource_id}",
                "audit_metadata": metadata or {},
            },
        )


class InMemoryAuditLog:
    """Collects events in a list.  Handy for tests and the CLI summary."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    async def record(
        self,
        level: AuditLevel,
        category: str,
        action: str,
        message: str,
        actor_id: str | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.events.append(
            AuditEvent(
                level=level,
                category=category,
                action=action,
                message=message,
                actor_id=actor_id,
                resource_type=resource_type,
                resource_id=resource_id,
                metadata=metadata or {},
            )
        )

    def find(self, action: str) -> list[AuditEvent]:
        return [e for e in self.events if e.action == action]

    def actions(self) -> list[str]:
        return [e.action for e in self.events]


async def emit_audit(
    audit: AuditLog,
    level: AuditLevel | str,
    action: str,
    message: str,
    actor_id: str | None = None,
    resource_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Record a backup-category event, never raising."""
    try:
        await audit.record(
            AuditLevel(level),
            AUDIT_CATEGORY,
            action,
            message,
            actor_id=actor_id,
            resource_type=AUDIT_RESOURCE_TYPE,
            resource_id=resource_id,
            metadata=metadata,
        )
    except Exception:
        logger.exception(f"Audit sink failed for action '{action}'")


def error_metadata(exc: BaseException, **extra: Any) -> dict[str, Any]:
    """Audit metadata describing a failure."""
    return {
        "error": str(exc),
        "code": getattr(exc, "code", None) or type(exc).__name__,
        **extra,
    }
