"""
Unit tests for the importer (mongo_backup/backup/importer.py).

Includes the full export-then-restore scenario.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import mongomock
import pytest
from bson import Decimal128, Int64, ObjectId

from mongo_backup.backup.archive import MalformedArchiveError
from mongo_backup.backup.exporter import export_database
from mongo_backup.backup.importer import RestoreSummary, restore_archive
from mongo_backup.database import parse_canonical_text, to_canonical_text


@pytest.fixture
def target_db():
    """Empty database to restore into."""
    return mongomock.MongoClient()['restore-target']


class TestRestoreArchive:
    """Test restore_archive."""

    def test_restore_sample_archive(self, sample_archive, target_db):
        """Test documents land in their own collections."""
        summary = restore_archive(target_db, str(sample_archive))

        assert summary.document_counts == {'shows': 2, 'viewers': 1}
        assert summary.document_count == 3
        assert target_db['shows'].count_documents({}) == 2
        assert target_db['viewers'].find_one({})['viewer'] == 'alice'

    def test_export_then_restore(self, seeded_db, target_db, tmp_path):
        """Test 2 collections (a: 3 docs, b: 0 docs) restore as 3 docs in 'a'."""
        path = str(tmp_path / 'backup.gz')
        export_database(seeded_db, path)

        summary = restore_archive(target_db, path)

        assert summary.document_count == 3
        assert summary.document_counts == {'a': 3, 'b': 0}
        assert target_db['a'].count_documents({}) == 3
        assert target_db['b'].count_documents({}) == 0
        assert sorted(doc['viewers'] for doc in target_db['a'].find()) == [10, 20, 30]

    def test_restore_preserves_ids(self, seeded_db, target_db, tmp_path):
        """Test ObjectIds survive export and restore."""
        path = str(tmp_path / 'backup.gz')
        export_database(seeded_db, path)

        restore_archive(target_db, path)

        original_ids = sorted(str(doc['_id']) for doc in seeded_db['a'].find())
        restored_ids = sorted(str(doc['_id']) for doc in target_db['a'].find())
        assert restored_ids == original_ids

    def test_restore_is_additive(self, sample_archive, target_db):
        """Test existing documents are kept."""
        target_db['shows'].insert_one({'name': 'existing'})

        restore_archive(target_db, str(sample_archive))

        assert target_db['shows'].count_documents({}) == 3

    def test_orphan_lines_not_inserted(self, gzip_writer, tmp_path, target_db):
        """Test documents before any marker are never inserted."""
        path = gzip_writer(tmp_path / 'orphans.gz', [
            '{"orphan": 1}',
            'COLLECTION:a',
            '{"x": 1}',
        ])

        summary = restore_archive(target_db, str(path))

        assert summary.document_count == 1
        assert target_db.list_collection_names() == ['a']

    def test_blank_lines_ignored(self, gzip_writer, tmp_path, target_db):
        """Test blank lines between documents are skipped."""
        path = gzip_writer(tmp_path / 'blank.gz', ['COLLECTION:a', '', '{"x": 1}', '   ', '{"x": 2}'])

        summary = restore_archive(target_db, str(path))

        assert summary.document_count == 2

    def test_malformed_document_aborts(self, gzip_writer, tmp_path, target_db):
        """Test a bad line stops the restore and keeps earlier inserts."""
        path = gzip_writer(tmp_path / 'bad.gz', [
            'COLLECTION:a',
            '{"x": 1}',
            '{not json',
            '{"x": 3}',
        ])

        with pytest.raises(MalformedArchiveError, match="collection a"):
            restore_archive(target_db, str(path))

        assert target_db['a'].count_documents({}) == 1

    def test_non_document_json_rejected(self, gzip_writer, tmp_path, target_db):
        """Test JSON that is not an object is rejected."""
        path = gzip_writer(tmp_path / 'array.gz', ['COLLECTION:a', '[1, 2, 3]'])

        with pytest.raises(MalformedArchiveError, match="Expected a document"):
            restore_archive(target_db, str(path))

    def test_progress_logged_every_thousand(self, gzip_writer, tmp_path):
        """Test progress is logged at each 1000 documents."""
        path = gzip_writer(
            tmp_path / 'big.gz',
            ['COLLECTION:a'] + ['{"i": %d}' % i for i in range(2500)]
        )
        database = MagicMock()

        with patch('mongo_backup.backup.importer.logger') as mock_logger:
            summary = restore_archive(database, str(path))

        assert summary.document_count == 2500
        assert database['a'].insert_one.call_count == 2500
        progress = [
            call.args[0] for call in mock_logger.info.call_args_list
            if 'so far' in call.args[0]
        ]
        assert progress == [
            'Restored 1000 documents so far...',
            'Restored 2000 documents so far...',
        ]


class TestRestoreSummary:
    """Test RestoreSummary properties."""

    def test_document_count(self):
        assert RestoreSummary({'a': 1, 'b': 4}).document_count == 5
        assert RestoreSummary().document_count == 0


class TestCanonicalText:
    """Test the document text format used for archive lines."""

    def test_single_line(self):
        text = to_canonical_text({'note': 'line one\nline two\r\n'})

        assert '\n' not in text
        assert parse_canonical_text(text) == {'note': 'line one\nline two\r\n'}

    def test_small_int64_restores_as_int(self):
        """Test relaxed mode keeps the value but not the Int64 type."""
        restored = parse_canonical_text(to_canonical_text({'n': Int64(5)}))

        assert restored['n'] == 5
        assert type(restored['n']) is int

    def test_extended_types_survive(self):
        """Test ObjectId, dates and Decimal128 keep their types."""
        document = {
            '_id': ObjectId(),
            'at': datetime(2024, 1, 15, 12, 0, 0, 123000, tzinfo=timezone.utc),
            'price': Decimal128('9.99'),
        }

        restored = parse_canonical_text(to_canonical_text(document))

        assert restored['_id'] == document['_id']
        assert restored['price'] == Decimal128('9.99')
        assert restored['at'].replace(tzinfo=timezone.utc) == document['at']
