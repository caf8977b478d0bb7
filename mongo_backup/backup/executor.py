"""
Backup executor - orchestrates backup and restore workflows.

Backup workflow:
1. Export the database to a local archive
2. Upload the archive to S3
3. Delete the local archive (always)
4. Delete expired archives from S3 (when retention is configured)

Restore workflow:
1. Download the named archive from S3
2. Replay it into the database
3. Delete the local archive (always)
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from mongo_backup.database import get_database
from .archive import ARCHIVE_CONTENT_TYPE, ARCHIVE_PREFIX, archive_key, generate_archive_filename
from .exporter import export_database
from .importer import restore_archive
from .retention import RetentionManager
from .storage import create_storage


logger = logging.getLogger(__name__)


class CleanupWarning(UserWarning):
    """Local temporary file or directory could not be removed."""
    pass


@dataclass
class BackupJobResult:
    """Transient outcome of one backup or restore run."""
    operation: str
    success: bool = False
    archive_key: Optional[str] = None
    document_counts: Dict[str, int] = field(default_factory=dict)
    deleted_count: int = 0
    error_message: Optional[str] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    logs: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.completed_at is None:
            return 'running'
        return 'success' if self.success else 'failed'

    @property
    def document_count(self) -> int:
        return sum(self.document_counts.values())

    def to_dict(self) -> dict:
        return {
            'operation': self.operation,
            'status': self.status,
            'archive_key': self.archive_key,
            'document_counts': self.document_counts,
            'document_count': self.document_count,
            'deleted_count': self.deleted_count,
            'error_message': self.error_message,
            'started_at': self.started_at.isoformat(),
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'logs': self.logs
        }


class BackupExecutor:
    """
    Runs backups and restores between one database and one S3 location.

    Jobs are expected to run one at a time; nothing here enforces it.
    """

    def __init__(self, database, storage, temp_dir: str, retention_days: Optional[int] = None,
                 prefix: str = ARCHIVE_PREFIX):
        """
        Initialize backup executor.

        Args:
            database: pymongo Database to back up / restore into
            storage: S3Storage holding the archives
            temp_dir: Scratch directory for archives in transit
            retention_days: Days to keep archives; None never sweeps
            prefix: Key prefix archives are stored under
        """
        self.database = database
        self.storage = storage
        self.temp_dir = temp_dir
        self.retention_days = retention_days
        self.prefix = prefix
        self.result = None

    def run_backup(self) -> BackupJobResult:
        """
        Export, upload and sweep.

        Never raises: any failure is logged and recorded on the result.

        Returns:
            BackupJobResult for this run
        """
        self.result = BackupJobResult(operation='backup')
        self._log("Running MongoDB backup process")

        try:
            self._backup_workflow()
            self.result.success = True
            self._log("MongoDB backup completed successfully")

        except Exception as e:
            self.result.error_message = str(e)
            self._log(f"Failed to complete MongoDB backup: {e}", level=logging.ERROR, exc_info=True)

        finally:
            self.result.completed_at = datetime.now(timezone.utc)

        return self.result

    def run_restore(self, archive_filename: str) -> BackupJobResult:
        """
        Download an archive and replay it into the database.

        Args:
            archive_filename: Archive file name, e.g. mongo-backup-20240115-120000.gz

        Returns:
            BackupJobResult for this run

        Raises:
            ValueError: If the file name is empty or contains a path
            StorageTransferError: If the download fails
            MalformedArchiveError: If the archive cannot be parsed
        """
        self.result = BackupJobResult(operation='restore')

        try:
            self._restore_workflow(archive_filename)
            self.result.success = True
            self._log("Restore completed successfully")

        except Exception as e:
            self.result.error_message = str(e)
            self._log(f"Restore failed: {e}", level=logging.ERROR)
            raise

        finally:
            self.result.completed_at = datetime.now(timezone.utc)

        return self.result

    def _backup_workflow(self):
        """Execute the backup steps."""
        filename = generate_archive_filename()
        local_path = os.path.join(self.temp_dir, filename)

        try:
            summary = export_database(self.database, local_path)
            self.result.document_counts = dict(summary.document_counts)
            self._log(
                f"Archive created: {filename} ({summary.collection_count} collections, "
                f"{summary.size_bytes / 1024 / 1024:.2f} MB)"
            )

            key = archive_key(filename, self.prefix)
            self._log(f"Uploading backup to S3: s3://{self.storage.bucket_name}/{key}")
            self.result.archive_key = self.storage.upload(local_path, key, ARCHIVE_CONTENT_TYPE)
            self._log(f"Successfully uploaded backup to S3: {key}")

        finally:
            self._cleanup(local_path)

        if self.retention_days is not None:
            retention = RetentionManager(self.storage, self.retention_days, self.prefix)
            outcome = retention.enforce()
            self.result.deleted_count = outcome['deleted']
            for line in outcome['logs']:
                self._record(line)
        else:
            self._log("Retention not configured, skipping cleanup of old backups")

    def _restore_workflow(self, archive_filename: str):
        """Execute the restore steps."""
        _validate_archive_filename(archive_filename)
        self._log(f"Starting restore from backup: {archive_filename}")

        os.makedirs(self.temp_dir, exist_ok=True)
        local_path = os.path.join(self.temp_dir, archive_filename)
        key = archive_key(archive_filename, self.prefix)
        self.result.archive_key = key

        try:
            self._log(f"Downloading backup from S3: s3://{self.storage.bucket_name}/{key}")
            self.storage.download(key, local_path)

            summary = restore_archive(self.database, local_path)
            self.result.document_counts = dict(summary.document_counts)
            self._log(f"Restored {summary.document_count} documents")

        finally:
            self._cleanup(local_path)

    def _cleanup(self, local_path: str):
        """Remove a local archive, then the temp directory if it is empty."""
        try:
            if os.path.exists(local_path):
                os.remove(local_path)
                self._log(f"Deleted temporary backup file: {os.path.basename(local_path)}")

            if os.path.isdir(self.temp_dir) and not os.listdir(self.temp_dir):
                os.rmdir(self.temp_dir)
                self._log("Deleted empty temp directory")

        except OSError as e:
            warning = CleanupWarning(f"Failed to clean up temp files: {e}")
            self._log(str(warning), level=logging.WARNING)

    def _log(self, message: str, level: int = logging.INFO, exc_info: bool = False):
        """
        Add a log message with timestamp to the current result.

        Args:
            message: Log message
            level: logging level for the module logger
            exc_info: Attach the active exception's traceback
        """
        self._record(message)
        logger.log(level, message, exc_info=exc_info)

    def _record(self, message: str):
        """Append a timestamped line to the current result without logging it."""
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        if self.result is not None:
            self.result.logs.append(f"[{timestamp}] {message}")


def _validate_archive_filename(archive_filename: str):
    if not archive_filename or not archive_filename.strip():
        raise ValueError("Backup file name is required")

    if '/' in archive_filename or '\\' in archive_filename or archive_filename in ('.', '..'):
        raise ValueError(f"Backup file name must not contain a path: {archive_filename}")


def create_executor(app) -> BackupExecutor:
    """
    Build a BackupExecutor from app configuration.

    Args:
        app: Flask app instance
    """
    return BackupExecutor(
        database=get_database(app),
        storage=create_storage(app.config),
        temp_dir=app.config['TEMP_DIR'],
        retention_days=app.config.get('BACKUP_RETENTION_DAYS'),
        prefix=app.config.get('BACKUP_PREFIX', ARCHIVE_PREFIX)
    )


def run_scheduled_backup(app) -> BackupJobResult:
    """
    Run a full backup for the app's database.

    Failures, including configuration problems, end up on the returned
    result rather than being raised.
    """
    try:
        executor = create_executor(app)
    except Exception as e:
        logger.error(f"Failed to prepare MongoDB backup: {e}", exc_info=True)
        result = BackupJobResult(operation='backup', error_message=str(e))
        result.completed_at = datetime.now(timezone.utc)
        return result

    return executor.run_backup()


def run_restore(app, archive_filename: str) -> BackupJobResult:
    """
    Restore the app's database from a named archive.

    Raises:
        Exception: Any failure from the restore, unchanged
    """
    executor = create_executor(app)
    return executor.run_restore(archive_filename)
