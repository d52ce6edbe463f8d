"""
Object Lister/Fetcher
Enumerates redeemed-bonus objects under a folder prefix and mirrors them
into the local staging area.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

import boto3
from boto3.exceptions import Boto3Error
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger
from prometheus_client import Counter, Histogram

from ..config import parse_connection_string
from ..errors import ConfigResolutionError, DownloadError, ListingError, StagingError


ON_ERROR_ABORT = 'abort'
ON_ERROR_SKIP = 'skip'
ON_ERROR_POLICIES = (ON_ERROR_ABORT, ON_ERROR_SKIP)


# Prometheus metrics
OBJECTS_LISTED = Counter(
    'bonus_replayer_objects_listed_total',
    'Total number of remote objects enumerated'
)

OBJECTS_DOWNLOADED = Counter(
    'bonus_replayer_objects_downloaded_total',
    'Total number of remote objects downloaded',
    ['status']
)

DOWNLOAD_DURATION = Histogram(
    'bonus_replayer_download_duration_seconds',
    'Time spent downloading a single object'
)


@dataclass(frozen=True)
class RemoteObjectRef:
    """One object in the store, as returned by listing."""
    name: str
    size: Optional[int] = None
    last_modified: Optional[datetime] = None


@dataclass(frozen=True)
class StagedFile:
    """Local copy of a RemoteObjectRef."""
    object_name: str
    path: Path

    @property
    def file(self) -> str:
        return str(self.path)


@dataclass(frozen=True)
class SkippedObject:
    """An object whose download failed under the skip policy."""
    object_name: str
    path: str
    reason: str


@dataclass
class FetchResult:
    """Staged files in listing order, plus any recorded gaps."""
    staged: List[StagedFile] = field(default_factory=list)
    skipped: List[SkippedObject] = field(default_factory=list)


def create_s3_client(connection: str, timeout: float = 60.0, max_attempts: int = 3):
    """
    Create an S3 client from a storage connection string.

    Args:
        connection: `Key=Value;...` connection string
        timeout: Connect/read timeout in seconds for each store call
        max_attempts: Total attempts botocore makes per call
    """
    try:
        return boto3.client(
            's3',
            config=BotoConfig(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={'max_attempts': max_attempts, 'mode': 'standard'}
            ),
            **parse_connection_string(connection)
        )
    except (BotoCoreError, ValueError) as e:
        raise ConfigResolutionError(f"Cannot create storage client: {e}") from e


class BlobFetcher:
    """
    Mirrors remote objects into `<tmp_dir>/<object name>`.

    The local path is derived only from the object name, so fetching the
    same prefix twice overwrites the earlier copies.
    """

    def __init__(self, s3_client, bucket: str, tmp_dir: str = 'tmp'):
        self.s3_client = s3_client
        self.bucket = bucket
        self.tmp_dir = Path(tmp_dir)

    def ensure_staging_dir(self, folder: str) -> Path:
        """Create `<tmp_dir>/<folder>` (and parents) if it does not exist."""
        staging_dir = self.tmp_dir / folder
        if not staging_dir.resolve().is_relative_to(self.tmp_dir.resolve()):
            raise StagingError(str(staging_dir), "container folder resolves outside the staging directory")
        if not staging_dir.exists():
            try:
                staging_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StagingError(str(staging_dir), str(e)) from e
            logger.debug(f"Created staging directory {staging_dir}")
        return staging_dir

    def iter_objects(self, prefix: str) -> Iterator[RemoteObjectRef]:
        """
        Lazily enumerate objects under a prefix in the store's listing order.

        Each call starts a fresh listing.

        Raises:
            ListingError: If the store cannot be enumerated
        """
        try:
            paginator = self.s3_client.get_paginator('list_objects_v2')
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get('Contents', []):
                    key = obj['Key']
                    # Folder placeholder objects have nothing to replay
                    if key.endswith('/'):
                        logger.debug(f"Skipping folder marker {key}")
                        continue

                    OBJECTS_LISTED.inc()
                    yield RemoteObjectRef(
                        name=key,
                        size=obj.get('Size'),
                        last_modified=obj.get('LastModified')
                    )
        except (ClientError, BotoCoreError) as e:
            raise ListingError(prefix, str(e)) from e

    def staging_path(self, name: str) -> Path:
        """Local path for an object name; rejects names escaping tmp_dir."""
        path = self.tmp_dir / name
        if not path.resolve().is_relative_to(self.tmp_dir.resolve()):
            raise DownloadError(name, "object name resolves outside the staging directory")
        return path

    def download(self, ref: RemoteObjectRef) -> StagedFile:
        """
        Download one object into the staging area.

        Raises:
            DownloadError: If the object cannot be written locally
        """
        path = self.staging_path(ref.name)
        start = time.monotonic()

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self.s3_client.download_file(self.bucket, ref.name, str(path))
        except (ClientError, BotoCoreError, Boto3Error, OSError) as e:
            OBJECTS_DOWNLOADED.labels(status='error').inc()
            raise DownloadError(ref.name, str(e)) from e

        DOWNLOAD_DURATION.observe(time.monotonic() - start)
        OBJECTS_DOWNLOADED.labels(status='success').inc()
        return StagedFile(object_name=ref.name, path=path)

    def fetch_all(self, prefix: str, on_error: str = ON_ERROR_ABORT) -> FetchResult:
        """
        Download every object under a prefix.

        Args:
            prefix: Folder prefix to enumerate
            on_error: 'abort' re-raises the first DownloadError, 'skip' records
                the object as skipped and keeps going

        Returns:
            FetchResult with staged files in listing order
        """
        if on_error not in ON_ERROR_POLICIES:
            raise ValueError(f"Unknown download error policy: {on_error}")

        result = FetchResult()

        logger.info("Listing blobs...")
        logger.info("Downloading redeemed requests started...")

        for ref in self.iter_objects(prefix):
            logger.info(f"\t{ref.name}")
            try:
                result.staged.append(self.download(ref))
            except DownloadError as e:
                if on_error == ON_ERROR_ABORT:
                    raise
                logger.warning(f"Skipping {ref.name}: {e.reason}")
                result.skipped.append(SkippedObject(
                    object_name=ref.name,
                    path=str(self.tmp_dir / ref.name),
                    reason=e.reason
                ))

        logger.info(
            f"Downloading redeemed requests finished... "
            f"({len(result.staged)} staged, {len(result.skipped)} skipped)"
        )
        return result
