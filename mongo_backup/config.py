import os
from typing import Optional


def parse_retention_days(value) -> Optional[int]:
    """
    Parse a retention window setting.

    Empty values and the words 'none'/'off'/'disabled' mean the sweep
    never runs.

    Args:
        value: Raw setting (str, int or None)

    Returns:
        Number of days, or None when retention is disabled

    Raises:
        ValueError: If the value is not a non-negative integer
    """
    if value is None:
        return None

    if isinstance(value, int):
        days = value
    else:
        text = str(value).strip().lower()
        if text in ('', 'none', 'off', 'disabled'):
            return None
        try:
            days = int(text)
        except ValueError:
            raise ValueError(f"Invalid retention days: {value!r}")

    if days < 0:
        raise ValueError(f"Retention days must be non-negative, got {days}")

    return days


class Config:
    """Base configuration"""

    # MongoDB
    MONGO_URI = os.environ.get('MONGO_URI') or 'mongodb://localhost:27017'
    MONGO_DATABASE = os.environ.get('MONGO_DATABASE') or 'remote-falcon'

    # S3
    S3_BUCKET_NAME = os.environ.get('S3_BUCKET_NAME')
    S3_REGION = os.environ.get('AWS_REGION') or 'us-east-1'
    S3_ENDPOINT_URL = os.environ.get('S3_ENDPOINT_URL')
    # Explicit keys; the standard boto3 credential chain applies when unset
    S3_ACCESS_KEY_ID = os.environ.get('S3_ACCESS_KEY_ID')
    S3_SECRET_ACCESS_KEY = os.environ.get('S3_SECRET_ACCESS_KEY')
    BACKUP_PREFIX = 'mongo-backups/'

    # Scratch directory for archives in transit
    TEMP_DIR = os.environ.get('TEMP_DIR') or '/tmp/mongo-backups'

    # Scheduler
    BACKUP_SCHEDULE = os.environ.get('BACKUP_SCHEDULE') or '0 12 * * *'
    SCHEDULER_TIMEZONE = os.environ.get('SCHEDULER_TIMEZONE') or 'America/Chicago'

    # Retention (None disables the sweep)
    BACKUP_RETENTION_DAYS = parse_retention_days(os.environ.get('BACKUP_RETENTION_DAYS', '21'))

    # Shared secret for the trigger endpoints
    BACKUP_API_TOKEN = os.environ.get('BACKUP_API_TOKEN')

    # Logging
    LOG_DIR = os.environ.get('LOG_DIR') or os.path.join(
        os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'data', 'logs'
    )


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    TEMP_DIR = os.path.join(DATA_DIR, 'temp')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


class TestingConfig(Config):
    """Testing configuration"""
    DEBUG = False
    TESTING = True
    S3_BUCKET_NAME = 'test-bucket'
    BACKUP_API_TOKEN = 'test-token'


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': ProductionConfig
}
