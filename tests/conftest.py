"""
Shared pytest fixtures for the MongoDB backup service tests.

This module provides fixtures for:
- Flask app and test client
- In-memory MongoDB (mongomock)
- Mocked S3 bucket (moto)
- Fake paginated storage for retention tests
- Sample archive files
"""

import gzip
import os
from collections import namedtuple

import pytest
import boto3
import mongomock
from moto import mock_aws

from mongo_backup import create_app
from mongo_backup.backup.storage import S3Storage, ListingPage


@pytest.fixture(scope='function')
def app(tmp_path):
    """
    Create Flask app with test configuration.

    The scheduler is never started under the testing config.
    """
    app = create_app('testing', {
        'TEMP_DIR': str(tmp_path / 'temp'),
        'LOG_DIR': str(tmp_path / 'logs'),
        'S3_BUCKET_NAME': 'test-bucket',
        'BACKUP_API_TOKEN': 'test-token',
        'BACKUP_RETENTION_DAYS': 21,
    })

    yield app


@pytest.fixture(scope='function')
def client(app):
    """Flask test client for making HTTP requests."""
    return app.test_client()


@pytest.fixture(scope='function')
def auth_headers():
    """Headers carrying the test shared secret."""
    return {'X-Backup-Token': 'test-token'}


@pytest.fixture(scope='function')
def mongo_db():
    """
    In-memory MongoDB database.

    Each test gets a fresh client, so nothing leaks between tests.
    """
    client = mongomock.MongoClient()
    yield client['remote-falcon']
    client.close()


@pytest.fixture(scope='function')
def seeded_db(mongo_db):
    """
    Database with two collections:
    - a: 3 documents
    - b: no documents
    """
    mongo_db['a'].insert_many([
        {'name': 'show-1', 'viewers': 10},
        {'name': 'show-2', 'viewers': 20},
        {'name': 'show-3', 'viewers': 30},
    ])
    mongo_db.create_collection('b')
    return mongo_db


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never touches a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def mock_s3(aws_credentials):
    """
    Mock AWS S3 service using moto.

    Creates a test bucket 'test-bucket' in us-east-1 region.
    """
    with mock_aws():
        s3 = boto3.resource('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='test-bucket')
        yield s3


@pytest.fixture
def s3_storage(mock_s3):
    """S3Storage bound to the mocked test bucket."""
    return S3Storage(bucket_name='test-bucket', region='us-east-1')


class FakePagedStorage:
    """
    In-memory stand-in for S3Storage's listing and delete calls.

    Keys are served in sorted, fixed-size pages. The continuation token is
    the last key of the previous page, so deletes between pages never shift
    later keys. list_page records each token it was called with.
    """

    Call = namedtuple('Call', ['prefix', 'token'])

    def __init__(self, keys, page_size=2, bucket_name='test-bucket'):
        self.keys = list(keys)
        self.page_size = page_size
        self.bucket_name = bucket_name
        self.deleted = []
        self.list_calls = []

    def list_page(self, prefix, continuation_token=None):
        self.list_calls.append(self.Call(prefix, continuation_token))
        matching = sorted(key for key in self.keys if key.startswith(prefix))
        if continuation_token:
            matching = [key for key in matching if key > continuation_token]
        page = matching[:self.page_size]
        next_token = page[-1] if len(matching) > self.page_size else None
        return ListingPage(page, next_token)

    def delete(self, key):
        self.keys.remove(key)
        self.deleted.append(key)


@pytest.fixture
def fake_storage_factory():
    """Build FakePagedStorage instances."""
    return FakePagedStorage


def write_gzip_lines(path, lines):
    """Write raw text lines into a gzip file."""
    with gzip.open(path, 'wt', encoding='utf-8') as f:
        for line in lines:
            f.write(line + '\n')
    return path


@pytest.fixture
def sample_archive(tmp_path):
    """
    Create a sample archive file for testing.

    Two collections: 'shows' with two documents and 'viewers' with one.
    """
    path = tmp_path / 'mongo-backup-20240115-120000.gz'
    write_gzip_lines(path, [
        'COLLECTION:shows',
        '{"name": "show-1", "slot": 1}',
        '{"name": "show-2", "slot": 2}',
        'COLLECTION:viewers',
        '{"viewer": "alice"}',
    ])
    return path


@pytest.fixture
def gzip_writer():
    """Helper to write arbitrary lines into a gzip archive."""
    return write_gzip_lines


@pytest.fixture
def temp_dir(tmp_path):
    """Scratch directory path for executor tests (not created)."""
    return os.path.join(str(tmp_path), 'mongo-backups')
