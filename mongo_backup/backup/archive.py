"""
Archive codec for MongoDB backups.

An archive is a gzip-compressed UTF-8 text stream. A line starting with
``COLLECTION:`` names the collection that every following line belongs to,
until the next marker or end of stream. All other non-blank lines are single
documents in relaxed extended JSON, one per line.

Collection names and document text are written as-is. Readers rely on the
serializer never emitting a raw newline inside a document line.
"""

import gzip
import logging
import re
import zlib
from collections import namedtuple
from datetime import datetime
from typing import Iterable, Iterator, Optional, Union


logger = logging.getLogger(__name__)

COLLECTION_MARKER = 'COLLECTION:'

ARCHIVE_PREFIX = 'mongo-backups/'
ARCHIVE_CONTENT_TYPE = 'application/gzip'
ARCHIVE_TIMESTAMP_FORMAT = '%Y%m%d-%H%M%S'


def _archive_key_pattern(prefix: str):
    return re.compile(rf"^{re.escape(prefix)}mongo-backup-(\d{{8}}-\d{{6}})\.gz$")


ARCHIVE_KEY_PATTERN = _archive_key_pattern(ARCHIVE_PREFIX)


class MalformedArchiveError(Exception):
    """Raised when an archive line cannot be decoded or parsed."""
    pass


CollectionMarker = namedtuple('CollectionMarker', ['name'])
DocumentLine = namedtuple('DocumentLine', ['text'])

ArchiveEntry = Union[CollectionMarker, DocumentLine]


def encode_collection(collection_name: str, document_lines: Iterable[str]) -> Iterator[str]:
    """
    Encode one collection as archive lines.

    Args:
        collection_name: Name written after the marker prefix
        document_lines: Canonical text of each document

    Yields:
        Newline-terminated lines, marker first
    """
    yield f"{COLLECTION_MARKER}{collection_name}\n"
    for text in document_lines:
        yield f"{text}\n"


def decode(lines: Iterable[str], strict: bool = False) -> Iterator[ArchiveEntry]:
    """
    Lazily decode archive lines into markers and document lines.

    Args:
        lines: Text lines, with or without trailing newlines
        strict: Raise on document lines that precede every marker instead
            of skipping them

    Yields:
        CollectionMarker or DocumentLine entries in stream order

    Raises:
        MalformedArchiveError: In strict mode, for a document line seen
            before any collection marker
    """
    seen_marker = False

    for line_number, raw in enumerate(lines, start=1):
        line = raw.rstrip('\r\n')

        if line.startswith(COLLECTION_MARKER):
            seen_marker = True
            yield CollectionMarker(line[len(COLLECTION_MARKER):])
            continue

        if not line.strip():
            continue

        if not seen_marker:
            if strict:
                raise MalformedArchiveError(
                    f"Document on line {line_number} appears before any collection marker"
                )
            logger.warning(f"Skipping line {line_number}: no collection marker seen yet")
            continue

        yield DocumentLine(line)


class ArchiveWriter:
    """
    Gzip text sink that writes collections in archive format.

    Use as a context manager; leaving the block closes the stream and
    writes the gzip trailer.
    """

    def __init__(self, path: str):
        self.path = path
        self._stream = None

    def __enter__(self):
        self._stream = gzip.open(self.path, 'wt', encoding='utf-8', newline='\n')
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False

    def write_collection(self, collection_name: str, document_lines: Iterable[str]) -> int:
        """
        Write a collection marker followed by its documents.

        Returns:
            Number of document lines written
        """
        if self._stream is None:
            raise RuntimeError("ArchiveWriter is not open")

        lines = encode_collection(collection_name, document_lines)
        self._stream.write(next(lines))

        count = 0
        for line in lines:
            self._stream.write(line)
            count += 1
        return count

    def close(self):
        if self._stream is not None:
            self._stream.close()
            self._stream = None


def read_archive(path: str, strict: bool = False) -> Iterator[ArchiveEntry]:
    """
    Open a gzip archive and decode its entries lazily.

    The file stays open until the iterator is exhausted or closed.

    Raises:
        MalformedArchiveError: If the file is not valid gzip or UTF-8
        OSError: If the file cannot be opened or read
    """
    try:
        with gzip.open(path, 'rt', encoding='utf-8', newline='\n') as stream:
            yield from decode(stream, strict=strict)
    except (gzip.BadGzipFile, zlib.error, EOFError, UnicodeDecodeError) as e:
        raise MalformedArchiveError(f"Failed to read archive {path}: {e}")


def generate_archive_filename(now: Optional[datetime] = None) -> str:
    """
    Generate a timestamped archive filename.

    Format: mongo-backup-{YYYYMMDD-HHMMSS}.gz
    """
    now = now or datetime.now()
    return f"mongo-backup-{now.strftime(ARCHIVE_TIMESTAMP_FORMAT)}.gz"


def archive_key(filename: str, prefix: str = ARCHIVE_PREFIX) -> str:
    """Object storage key for an archive filename."""
    return f"{prefix}{filename}"


def parse_archive_key(key: str, prefix: str = ARCHIVE_PREFIX) -> Optional[datetime]:
    """
    Extract the creation time embedded in an archive key.

    Args:
        key: Object key, e.g. mongo-backups/mongo-backup-20240115-120000.gz
        prefix: Key prefix archives are stored under

    Returns:
        Creation time, or None if the key is not an archive key

    Raises:
        ValueError: If the key matches but the timestamp is not a valid date
    """
    pattern = ARCHIVE_KEY_PATTERN if prefix == ARCHIVE_PREFIX else _archive_key_pattern(prefix)
    match = pattern.match(key)
    if not match:
        return None
    return datetime.strptime(match.group(1), ARCHIVE_TIMESTAMP_FORMAT)
