"""
Archive importer - replays archived documents into a database.

Restores are insert-only: existing data is neither truncated nor checked,
so restoring into a non-empty collection can produce duplicates.
"""

import logging
from contextlib import closing
from dataclasses import dataclass, field
from typing import Dict

from bson.errors import BSONError

from mongo_backup.database import parse_canonical_text
from .archive import CollectionMarker, MalformedArchiveError, read_archive


logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 1000


@dataclass
class RestoreSummary:
    """Outcome of a single restore."""
    document_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def document_count(self) -> int:
        return sum(self.document_counts.values())


def restore_archive(database, source_path: str) -> RestoreSummary:
    """
    Insert every archived document into its collection.

    Args:
        database: pymongo Database to restore into
        source_path: Path of the gzip archive

    Returns:
        RestoreSummary with inserted document counts

    Raises:
        MalformedArchiveError: If a document line cannot be parsed. Documents
            inserted before the bad line are kept.
    """
    logger.info(f"Restoring from file: {source_path}")

    summary = RestoreSummary()
    collection = None
    collection_name = None
    total = 0

    with closing(read_archive(source_path)) as entries:
        for entry in entries:
            if isinstance(entry, CollectionMarker):
                collection_name = entry.name
                collection = database[collection_name]
                summary.document_counts.setdefault(collection_name, 0)
                logger.info(f"Restoring collection: {collection_name}")
                continue

            try:
                document = parse_canonical_text(entry.text)
            except (ValueError, TypeError, BSONError) as e:
                raise MalformedArchiveError(
                    f"Invalid document in collection {collection_name} "
                    f"after {summary.document_counts[collection_name]} documents: {e}"
                )

            if not isinstance(document, dict):
                raise MalformedArchiveError(
                    f"Expected a document in collection {collection_name}, got {type(document).__name__}"
                )

            collection.insert_one(document)
            summary.document_counts[collection_name] += 1
            total += 1

            if total % PROGRESS_INTERVAL == 0:
                logger.info(f"Restored {total} documents so far...")

    logger.info(f"Restore completed: {total} documents restored")
    return summary
