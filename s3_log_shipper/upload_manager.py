#!/usr/bin/env python3
"""
Upload Manager for S3 Log Shipper
Ships a batch of closed log files to S3 and removes them locally

Files are uploaded one at a time through a transfer manager that lives
for the duration of one batch. A failure on one file never aborts the
batch: the file stays on disk and is picked up again on the next pass.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

import boto3.session
from boto3.s3.transfer import TransferConfig, create_transfer_manager
from botocore.exceptions import BotoCoreError, ClientError

from s3_log_shipper.file_selector import CandidateFile
from s3_log_shipper.key_builder import KeyBuilder
from s3_log_shipper.utils import format_bytes

logger = logging.getLogger(__name__)

# S3 Upload Configuration
MULTIPART_THRESHOLD = 5 * 1024**2  # 5 MB (use multipart for files larger than this)
MULTIPART_CHUNK_SIZE = 5 * 1024**2  # 5 MB per chunk for multipart uploads

# Error codes that will not resolve by retrying on the next pass
PERMANENT_ERROR_CODES = {
    'InvalidAccessKeyId': 'Invalid AWS credentials',
    'SignatureDoesNotMatch': 'Invalid AWS credentials',
    'NoSuchBucket': 'Bucket does not exist',
    'AccessDenied': 'Access denied - check IAM permissions and bucket policy',
    'EntityTooLarge': 'File size exceeds S3 limits',
}


class UploadStatus(Enum):
    """Per-file result of an upload attempt."""
    UPLOADED = 'uploaded'
    UPLOAD_FAILED = 'upload_failed'
    OPEN_FAILED = 'open_failed'


@dataclass
class UploadOutcome:
    """
    Result of processing one candidate file.

    Attributes:
        candidate (CandidateFile): The file processed
        status (UploadStatus): What happened
        key (str): S3 key used, None if no upload was attempted
        error (Exception): Error for OPEN_FAILED / UPLOAD_FAILED
        deleted (bool): True if the local file was removed after upload
    """
    candidate: CandidateFile
    status: UploadStatus
    key: Optional[str] = None
    error: Optional[BaseException] = None
    deleted: bool = False

    @property
    def uploaded(self) -> bool:
        return self.status is UploadStatus.UPLOADED


def create_s3_client(access_key: str, secret_key: str, region: str,
                     endpoint_url: Optional[str] = None):
    """
    Create a boto3 S3 client from explicit credentials.

    Args:
        access_key: AWS access key id
        secret_key: AWS secret access key
        region: AWS region (e.g., 'eu-west-1', 'cn-north-1')
        endpoint_url: Custom endpoint (LocalStack, MinIO). Falls back to
            the AWS_ENDPOINT_URL environment variable.

    Returns:
        botocore S3 client
    """
    session = boto3.session.Session(
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        region_name=region,
    )

    client_kwargs = {}
    endpoint_url = endpoint_url or os.getenv('AWS_ENDPOINT_URL')

    if endpoint_url:
        logger.info(f"Using custom endpoint: {endpoint_url}")
        client_kwargs['endpoint_url'] = endpoint_url
    elif region.startswith('cn-'):
        # AWS China uses different endpoints
        logger.info(f"Using AWS China endpoint for region: {region}")
        client_kwargs['endpoint_url'] = f'https://s3.{region}.amazonaws.com.cn'

    return session.client('s3', **client_kwargs)


class UploadExecutor:
    """
    Uploads batches of candidate files to one bucket.

    Example:
        >>> executor = UploadExecutor(s3_client, 'my-logs', KeyBuilder())
        >>> outcomes = executor.upload_batch(selector.scan('/var/log/myapp'))
        >>> [o.status for o in outcomes]
        [<UploadStatus.UPLOADED: 'uploaded'>, ...]

    Attributes:
        s3_client: Boto3 S3 client
        bucket (str): Target bucket name
        key_builder (KeyBuilder): Builds the S3 key per file
        transfer_config (TransferConfig): Multipart settings
        transfer_factory: Callable(client, config) returning a transfer
            manager context manager with ``upload(fileobj, bucket, key)``
    """

    def __init__(self, s3_client, bucket: str, key_builder: KeyBuilder,
                 transfer_config: Optional[TransferConfig] = None,
                 transfer_factory: Optional[Callable] = None):
        self.s3_client = s3_client
        self.bucket = bucket
        self.key_builder = key_builder
        self.transfer_config = transfer_config or TransferConfig(
            multipart_threshold=MULTIPART_THRESHOLD,
            multipart_chunksize=MULTIPART_CHUNK_SIZE,
        )
        self.transfer_factory = transfer_factory or create_transfer_manager

    def upload_batch(self, candidates: List[CandidateFile],
                     cancel_event=None) -> List[UploadOutcome]:
        """
        Upload files one at a time and delete each one after success.

        Args:
            candidates: Files to upload, processed in order
            cancel_event: Optional threading.Event; when set, the batch
                stops before the next file

        Returns:
            list: One UploadOutcome per processed file
        """
        outcomes = []
        if not candidates:
            return outcomes

        with self.transfer_factory(self.s3_client, self.transfer_config) as transfer:
            for candidate in candidates:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info(
                        f"Upload batch cancelled, {len(candidates) - len(outcomes)} "
                        f"files left for next pass"
                    )
                    break
                outcomes.append(self._upload_one(transfer, candidate))

        self._log_batch_results(outcomes)
        return outcomes

    def _upload_one(self, transfer, candidate: CandidateFile) -> UploadOutcome:
        try:
            stream = open(candidate.path, 'rb')
        except OSError as e:
            # Usually still held by the writer; retried on the next pass
            logger.debug(f"Cannot open {candidate.name}, skipping: {e}")
            return UploadOutcome(candidate, UploadStatus.OPEN_FAILED, error=e)

        key = None
        with stream:
            try:
                key = self.key_builder.build_key(candidate)
                transfer.upload(stream, self.bucket, key).result()
            except Exception as e:
                self._log_upload_error(candidate, e)
                return UploadOutcome(candidate, UploadStatus.UPLOAD_FAILED, key=key, error=e)

        logger.info(f"SUCCESS: {candidate.name} -> s3://{self.bucket}/{key}")

        outcome = UploadOutcome(candidate, UploadStatus.UPLOADED, key=key)
        outcome.deleted = self._delete_local(candidate)
        return outcome

    def _delete_local(self, candidate: CandidateFile) -> bool:
        """Remove an uploaded file. A leftover file is re-uploaded next pass."""
        try:
            candidate.path.unlink()
            return True
        except OSError as e:
            logger.debug(f"Could not delete uploaded file {candidate.name}: {e}")
            return False

    def _log_upload_error(self, candidate: CandidateFile, error: Exception):
        """
        Log an upload failure with classification and traceback.

        Must be called from inside the ``except`` block so the traceback
        is attached.
        """
        if isinstance(error, ClientError):
            error_code = error.response.get('Error', {}).get('Code', '')
            error_message = error.response.get('Error', {}).get('Message', str(error))

            if error_code in PERMANENT_ERROR_CODES:
                logger.error(
                    f"PERMANENT ERROR uploading {candidate.name}: "
                    f"{PERMANENT_ERROR_CODES[error_code]} ({error_code}) - {error_message}",
                    exc_info=True,
                )
            else:
                logger.error(
                    f"Upload failed for {candidate.name}: {error_code} - {error_message}",
                    exc_info=True,
                )
        elif isinstance(error, BotoCoreError):
            logger.error(f"Network error uploading {candidate.name}: {error}", exc_info=True)
        else:
            logger.error(
                f"Unexpected error uploading {candidate.name}: "
                f"{type(error).__name__}: {error}",
                exc_info=True,
            )

    def _log_batch_results(self, outcomes: List[UploadOutcome]):
        uploaded = [o for o in outcomes if o.uploaded]
        failed = sum(1 for o in outcomes if o.status is UploadStatus.UPLOAD_FAILED)
        skipped = sum(1 for o in outcomes if o.status is UploadStatus.OPEN_FAILED)
        total_bytes = sum(o.candidate.size for o in uploaded)

        logger.info(
            f"Upload batch complete: {len(uploaded)} uploaded ({format_bytes(total_bytes)}), "
            f"{failed} failed, {skipped} skipped (will retry next pass)"
        )
