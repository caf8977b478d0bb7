"""
MongoDB access for backup and restore.

Holds one MongoClient per Flask app and the canonical text conversion used
for archive lines.
"""

from bson import json_util
from bson.json_util import RELAXED_JSON_OPTIONS
from pymongo import MongoClient


def get_mongo_client(app) -> MongoClient:
    """
    Get (or lazily create) the MongoClient for an app.

    Args:
        app: Flask app instance

    Returns:
        MongoClient connected to MONGO_URI
    """
    client = app.extensions.get('mongo_client')
    if client is None:
        client = MongoClient(app.config['MONGO_URI'])
        app.extensions['mongo_client'] = client
    return client


def get_database(app):
    """Get the configured backup target database."""
    return get_mongo_client(app)[app.config['MONGO_DATABASE']]


def close_mongo_client(app):
    """Close the app's MongoClient if one was created."""
    client = app.extensions.pop('mongo_client', None)
    if client is not None:
        client.close()


def to_canonical_text(document) -> str:
    """
    Serialize a document as single-line relaxed extended JSON.

    Newlines inside string values are escaped by the JSON encoder, so the
    result never contains a raw line break.

    Relaxed mode writes integers as plain JSON numbers, so an Int64 that
    fits in 32 bits restores as a plain int. The value is preserved, the
    BSON numeric type is not. Dates, ObjectIds, binary and
    Decimal128 keep their types.
    """
    return json_util.dumps(document, json_options=RELAXED_JSON_OPTIONS)


def parse_canonical_text(text: str):
    """
    Parse one line of extended JSON back into a document.

    Raises:
        ValueError: If the text is not valid extended JSON
    """
    return json_util.loads(text, json_options=RELAXED_JSON_OPTIONS)
