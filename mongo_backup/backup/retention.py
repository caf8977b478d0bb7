"""
Retention policy enforcement for backup archives.

Archives older than the retention window are deleted from S3. Age comes from
the timestamp embedded in the archive key, not from object metadata.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from .archive import ARCHIVE_PREFIX, parse_archive_key


logger = logging.getLogger(__name__)


def compute_cutoff(retention_days: int, now: Optional[datetime] = None) -> datetime:
    """Oldest creation time that is still retained."""
    now = now or datetime.now()
    return now - timedelta(days=retention_days)


def sweep_expired_archives(storage, prefix: str, cutoff: datetime) -> int:
    """
    Delete every archive under a prefix created at or before the cutoff.

    Pages through the listing until no continuation token is returned,
    deleting expired archives page by page. Keys that are not archive keys
    are left alone, as are archive keys whose timestamp cannot be parsed.

    Args:
        storage: S3Storage (anything with list_page and delete)
        prefix: Key prefix archives are stored under
        cutoff: Archives with backup_time <= cutoff are deleted

    Returns:
        Number of archives deleted

    Raises:
        StorageTransferError: If a listing or delete call fails
    """
    deleted_count = 0
    continuation_token = None

    while True:
        page = storage.list_page(prefix, continuation_token)

        for key in page.keys:
            try:
                backup_time = parse_archive_key(key, prefix)
            except ValueError as e:
                logger.warning(f"Skipping backup with unparseable timestamp '{key}': {e}")
                continue

            if backup_time is None:
                continue

            if backup_time <= cutoff:
                storage.delete(key)
                deleted_count += 1
                logger.info(f"Deleted old backup: {key}")

        continuation_token = page.next_token
        if not continuation_token:
            break

    return deleted_count


class RetentionManager:
    """
    Enforces the retention window for archives in one S3 location.
    """

    def __init__(self, storage, retention_days: Optional[int], prefix: str = ARCHIVE_PREFIX):
        """
        Initialize retention manager.

        Args:
            storage: S3Storage holding the archives
            retention_days: Days to keep archives; None disables cleanup
            prefix: Key prefix archives are stored under
        """
        self.storage = storage
        self.retention_days = retention_days
        self.prefix = prefix
        self.logs: List[str] = []

    def enforce(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Delete archives outside the retention window.

        Returns:
            Dict with 'deleted', 'cutoff' (None when disabled) and 'logs'
        """
        if self.retention_days is None:
            self._log("Retention not configured, skipping cleanup")
            return {'deleted': 0, 'cutoff': None, 'logs': self.logs}

        cutoff = compute_cutoff(self.retention_days, now)
        self._log(f"Checking for backups older than {self.retention_days} days to delete")

        deleted = sweep_expired_archives(self.storage, self.prefix, cutoff)

        self._log(f"Old backup cleanup completed; deleted {deleted} file(s)")
        return {'deleted': deleted, 'cutoff': cutoff, 'logs': self.logs}

    def _log(self, message: str):
        self.logs.append(message)
        logger.info(message)
