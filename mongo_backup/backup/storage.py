"""
S3 storage handler for backup archives.

Wraps the four object operations the backup engine needs (put, get, paged
list, delete) and translates botocore failures into StorageTransferError.
"""

import os
from collections import namedtuple
from typing import Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import ClientError, BotoCoreError


class StorageTransferError(Exception):
    """Raised when an upload, download, listing or delete fails."""
    pass


ListingPage = namedtuple('ListingPage', ['keys', 'next_token'])

# Multipart upload for files larger than 100MB, in 10MB parts
MULTIPART_THRESHOLD = 100 * 1024 * 1024
MULTIPART_CHUNKSIZE = 10 * 1024 * 1024


def _client_error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', 'Unknown')


class S3Storage:
    """
    Handler for archive objects in an S3 bucket.
    """

    def __init__(self, bucket_name: str, region: str = 'us-east-1', endpoint_url: Optional[str] = None,
                 access_key: Optional[str] = None, secret_key: Optional[str] = None):
        """
        Initialize S3 storage handler.

        Credentials fall back to the standard boto3 chain (environment,
        shared config, instance role) when not given.

        Args:
            bucket_name: S3 bucket name
            region: AWS region (default: us-east-1)
            endpoint_url: Custom endpoint for S3-compatible stores
            access_key: AWS access key ID (optional)
            secret_key: AWS secret access key (optional)
        """
        if not bucket_name:
            raise StorageTransferError("S3 bucket name is not configured")

        self.bucket_name = bucket_name
        self.region = region
        self.transfer_config = TransferConfig(
            multipart_threshold=MULTIPART_THRESHOLD,
            multipart_chunksize=MULTIPART_CHUNKSIZE
        )

        try:
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
                endpoint_url=endpoint_url
            )
        except Exception as e:
            raise StorageTransferError(f"Failed to initialize S3 client: {e}")

    def upload(self, local_path: str, key: str, content_type: str = 'application/gzip') -> str:
        """
        Upload a local file.

        Large files are sent as a multipart upload, so archives above the
        single PUT limit still transfer.

        Args:
            local_path: Path to local archive file
            key: Destination object key
            content_type: Content-Type stored with the object

        Returns:
            Object key of uploaded file

        Raises:
            StorageTransferError: If upload fails
        """
        if not os.path.exists(local_path):
            raise StorageTransferError(f"Local file not found: {local_path}")

        try:
            self.s3_client.upload_file(
                local_path,
                self.bucket_name,
                key,
                ExtraArgs={'ContentType': content_type},
                Config=self.transfer_config
            )
            return key

        except ClientError as e:
            raise StorageTransferError(f"S3 upload failed ({_client_error_code(e)}): {e}")
        except (S3UploadFailedError, BotoCoreError) as e:
            raise StorageTransferError(f"S3 upload failed: {e}")
        except OSError as e:
            raise StorageTransferError(f"Failed to read {local_path}: {e}")

    def download(self, key: str, local_path: str) -> str:
        """
        Download an object to a local file.

        A partially written file is removed on failure.

        Returns:
            Local path of the downloaded file

        Raises:
            StorageTransferError: If the object is missing or the transfer fails
        """
        try:
            self.s3_client.download_file(self.bucket_name, key, local_path)
            return local_path

        except ClientError as e:
            self._discard_partial(local_path)
            error_code = _client_error_code(e)
            if error_code in ('404', 'NoSuchKey'):
                raise StorageTransferError(f"Backup not found in S3: {key}")
            raise StorageTransferError(f"S3 download failed ({error_code}): {e}")
        except BotoCoreError as e:
            self._discard_partial(local_path)
            raise StorageTransferError(f"S3 download failed: {e}")
        except OSError as e:
            self._discard_partial(local_path)
            raise StorageTransferError(f"Failed to write {local_path}: {e}")

    def list_page(self, prefix: str, continuation_token: Optional[str] = None,
                  max_keys: Optional[int] = None) -> ListingPage:
        """
        List one page of object keys under a prefix.

        Args:
            prefix: S3 key prefix to filter by
            continuation_token: Token from the previous page, None for the first
            max_keys: Page size limit (server default when None)

        Returns:
            ListingPage with the keys and the next token (None on the last page)

        Raises:
            StorageTransferError: If listing fails
        """
        params = {'Bucket': self.bucket_name, 'Prefix': prefix}
        if continuation_token:
            params['ContinuationToken'] = continuation_token
        if max_keys:
            params['MaxKeys'] = max_keys

        try:
            response = self.s3_client.list_objects_v2(**params)
        except ClientError as e:
            raise StorageTransferError(f"S3 list failed ({_client_error_code(e)}): {e}")
        except BotoCoreError as e:
            raise StorageTransferError(f"S3 list failed: {e}")

        keys = [obj['Key'] for obj in response.get('Contents', [])]
        next_token = response.get('NextContinuationToken') if response.get('IsTruncated') else None
        return ListingPage(keys, next_token)

    def delete(self, key: str):
        """
        Delete an object from S3.

        Raises:
            StorageTransferError: If deletion fails
        """
        try:
            self.s3_client.delete_object(
                Bucket=self.bucket_name,
                Key=key
            )
        except ClientError as e:
            raise StorageTransferError(f"S3 delete failed ({_client_error_code(e)}): {e}")
        except BotoCoreError as e:
            raise StorageTransferError(f"S3 delete failed: {e}")

    @staticmethod
    def _discard_partial(local_path: str):
        if os.path.exists(local_path):
            try:
                os.remove(local_path)
            except OSError:
                pass


def create_storage(app_config) -> S3Storage:
    """Build an S3Storage from app configuration."""
    return S3Storage(
        bucket_name=app_config.get('S3_BUCKET_NAME'),
        region=app_config.get('S3_REGION', 'us-east-1'),
        endpoint_url=app_config.get('S3_ENDPOINT_URL'),
        access_key=app_config.get('S3_ACCESS_KEY_ID'),
        secret_key=app_config.get('S3_SECRET_ACCESS_KEY')
    )
