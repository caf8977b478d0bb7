"""
Backup module for the MongoDB backup service.

This module handles the core backup functionality including:
- Archive format (gzip, one document per line)
- Export and restore of database collections
- S3 storage
- Retention sweeps
- Execution orchestration
"""

from .archive import (
    ArchiveWriter,
    CollectionMarker,
    DocumentLine,
    MalformedArchiveError,
    decode,
    encode_collection,
    read_archive,
)
from .executor import BackupExecutor, BackupJobResult, CleanupWarning
from .exporter import ArchiveSummary, EmptyBackupError, export_database
from .importer import RestoreSummary, restore_archive
from .retention import RetentionManager, sweep_expired_archives
from .storage import S3Storage, StorageTransferError

__all__ = [
    'ArchiveWriter',
    'CollectionMarker',
    'DocumentLine',
    'MalformedArchiveError',
    'decode',
    'encode_collection',
    'read_archive',
    'BackupExecutor',
    'BackupJobResult',
    'CleanupWarning',
    'ArchiveSummary',
    'EmptyBackupError',
    'export_database',
    'RestoreSummary',
    'restore_archive',
    'RetentionManager',
    'sweep_expired_archives',
    'S3Storage',
    'StorageTransferError'
]
