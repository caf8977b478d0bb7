"""
Database exporter - streams every collection into a gzip archive.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict

from mongo_backup.database import to_canonical_text
from .archive import ArchiveWriter


logger = logging.getLogger(__name__)


class EmptyBackupError(Exception):
    """Raised when an export produced a missing or zero-byte file."""
    pass


@dataclass
class ArchiveSummary:
    """Outcome of a single export."""
    path: str
    size_bytes: int = 0
    document_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def collection_count(self) -> int:
        return len(self.document_counts)

    @property
    def document_count(self) -> int:
        return sum(self.document_counts.values())


def export_database(database, destination_path: str) -> ArchiveSummary:
    """
    Export all collections of a database into an archive file.

    Collections are written in the order the server lists them, documents in
    natural query order.

    Args:
        database: pymongo Database
        destination_path: Path of the archive file to create

    Returns:
        ArchiveSummary with per-collection document counts

    Raises:
        EmptyBackupError: If the archive file is missing or empty afterwards
    """
    destination_dir = os.path.dirname(destination_path)
    if destination_dir:
        os.makedirs(destination_dir, exist_ok=True)

    logger.info(f"Creating MongoDB backup at: {destination_path}")

    summary = ArchiveSummary(path=destination_path)

    with ArchiveWriter(destination_path) as writer:
        for collection_name in database.list_collection_names():
            logger.info(f"Backing up collection: {collection_name}")
            documents = database[collection_name].find()
            count = writer.write_collection(
                collection_name,
                (to_canonical_text(document) for document in documents)
            )
            summary.document_counts[collection_name] = count
            logger.info(f"Backed up {count} documents from collection: {collection_name}")

    if not os.path.exists(destination_path) or os.path.getsize(destination_path) == 0:
        raise EmptyBackupError(f"Backup file was not created or is empty: {destination_path}")

    summary.size_bytes = os.path.getsize(destination_path)
    logger.info(
        f"MongoDB backup created: {os.path.basename(destination_path)} "
        f"({summary.collection_count} collections, {summary.document_count} documents, "
        f"{summary.size_bytes} bytes)"
    )
    return summary
