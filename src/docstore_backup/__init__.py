"""docstore-backup: backup and restore engine for multi-collection document stores.

Usage:
    from docstore_backup import BackupService, BackupConfig
    from docstore_backup.factory import build_service, get_store
"""

__version__ = "0.1.0"

from docstore_backup.adapters import (
    AsyncPostgresDocumentStore,
    DocumentStore,
    InMemoryDocumentStore,
)
from docstore_backup.backup import (
    BackupConfig,
    BackupEngineError,
    BackupRecord,
    BackupStatus,
    BackupType,
    RetentionPolicy,
)
from docstore_backup.service import BackupService
from docstore_backup.ticker import Ticker

__all__ = [
    "__version__",
    "AsyncPostgresDocumentStore",
    "DocumentStore",
    "InMemoryDocumentStore",
    "BackupConfig",
    "BackupEngineError",
    "BackupRecord",
    "BackupStatus",
    "BackupType",
    "RetentionPolicy",
    "BackupService",
    "Ticker",
]
