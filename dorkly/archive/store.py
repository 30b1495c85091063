"""
Archive Store — where the published relay archive lives between runs.

Behavioral Contract:
- fetch_existing() raises ArchiveNotFoundError, and only that, when nothing
  has been published yet. Every other failure propagates.
- save_new() replaces the published archive as a whole or not at all.
"""

import os
import shutil
import tempfile
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from dorkly.archive.codec import ArchiveError, PathLike, load_archive, write_tar_gz
from dorkly.models.archive import RelayArchive
from dorkly.models.settings import S3_OBJECT_KEY, ConfigurationError, DorklySettings

_NOT_FOUND_CODES = ("NoSuchKey", "404", "NotFound")


class ArchiveNotFoundError(ArchiveError):
    """No archive has been published at this location yet."""
    pass


class ArchiveStoreError(ArchiveError):
    """Raised when the storage backend fails."""
    pass


class ArchiveStore(ABC):
    """Fetches the previously published archive and publishes new ones."""

    @abstractmethod
    def fetch_existing(self) -> RelayArchive: ...

    @abstractmethod
    def save_new(self, archive: RelayArchive) -> None: ...


class LocalFileArchiveStore(ArchiveStore):
    """
    Reads and writes a tar.gz on the local filesystem.
    The same path is used for both, so save_new overwrites what fetch_existing read.
    """

    def __init__(
        self,
        archive_path: PathLike,
        work_dir: Optional[PathLike] = None,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ):
        self.archive_path = Path(archive_path)
        self.work_dir = Path(work_dir) if work_dir else self.archive_path.parent
        self.logger = (logger or structlog.get_logger()).bind(
            store="local", archive=str(self.archive_path)
        )

    def __str__(self) -> str:
        return f"LocalFileArchiveStore using path: [{self.archive_path}]"

    def fetch_existing(self) -> RelayArchive:
        if not self.archive_path.is_file():
            raise ArchiveNotFoundError(f"no archive at {self.archive_path}")
        return load_archive(self.archive_path, self.logger)

    def save_new(self, archive: RelayArchive) -> None:
        """Write next to the target, then rename over it."""
        self.archive_path.parent.mkdir(parents=True, exist_ok=True)
        staging_path = self.archive_path.with_name(
            f".{self.archive_path.name}.{time.time_ns()}.tmp"
        )
        try:
            write_tar_gz(archive, staging_path, self.work_dir, self.logger)
            os.replace(staging_path, self.archive_path)
        finally:
            staging_path.unlink(missing_ok=True)
        self.logger.info("Saved relay archive")


class S3ArchiveStore(ArchiveStore):
    """Reads and writes a single object in an S3 bucket."""

    def __init__(
        self,
        client,
        bucket: str,
        object_key: str = S3_OBJECT_KEY,
        work_dir: Optional[PathLike] = None,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ):
        self.client = client
        self.bucket = bucket
        self.object_key = object_key
        self.work_dir = Path(work_dir or tempfile.gettempdir())
        self.logger = (logger or structlog.get_logger()).bind(
            store="s3", bucket=bucket, object_key=object_key
        )

    def __str__(self) -> str:
        return f"S3ArchiveStore using bucket: [{self.bucket}] key: [{self.object_key}]"

    def _scratch_file(self) -> Path:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        return self.work_dir / f"dorkly-{time.time_ns()}.tar.gz"

    def fetch_existing(self) -> RelayArchive:
        local_path = self._scratch_file()
        self.logger.info("Fetching existing relay archive from S3", path=str(local_path))

        try:
            response = self.client.get_object(Bucket=self.bucket, Key=self.object_key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                raise ArchiveNotFoundError(
                    f"no archive at s3://{self.bucket}/{self.object_key}"
                ) from e
            raise ArchiveStoreError(
                f"failed to fetch s3://{self.bucket}/{self.object_key}: {e}"
            ) from e
        except BotoCoreError as e:
            raise ArchiveStoreError(
                f"failed to fetch s3://{self.bucket}/{self.object_key}: {e}"
            ) from e

        try:
            body = response["Body"]
            try:
                with open(local_path, "wb") as out:
                    shutil.copyfileobj(body, out)
            finally:
                body.close()
            return load_archive(local_path, self.logger)
        finally:
            local_path.unlink(missing_ok=True)

    def save_new(self, archive: RelayArchive) -> None:
        local_path = self._scratch_file()
        self.logger.info("Uploading new relay archive to S3", path=str(local_path))
        try:
            write_tar_gz(archive, local_path, self.work_dir, self.logger)
            with open(local_path, "rb") as body:
                self.client.put_object(Bucket=self.bucket, Key=self.object_key, Body=body)
        except (ClientError, BotoCoreError) as e:
            raise ArchiveStoreError(
                f"failed to upload s3://{self.bucket}/{self.object_key}: {e}"
            ) from e
        finally:
            local_path.unlink(missing_ok=True)
        self.logger.info("Saved relay archive")


def make_boto3_client(service: str, settings: DorklySettings):
    """A boto3 client honoring the region, endpoint and timeout settings."""
    try:
        return boto3.client(
            service,
            region_name=settings.aws_region,
            endpoint_url=settings.aws_endpoint_url,
            config=Config(
                connect_timeout=settings.storage_timeout_seconds,
                read_timeout=settings.storage_timeout_seconds,
            ),
        )
    except BotoCoreError as e:
        # e.g. NoRegionError when neither DORKLY_AWS_REGION nor AWS_REGION is set
        raise ConfigurationError(f"cannot create AWS {service} client: {e}") from e


def open_store(
    location: str,
    settings: DorklySettings,
    logger: Optional[structlog.stdlib.BoundLogger] = None,
    s3_client=None,
) -> ArchiveStore:
    """Build a store from `s3://bucket[/key]` or a filesystem path."""
    if location.startswith("s3://"):
        bucket, _, object_key = location[len("s3://"):].partition("/")
        if not bucket:
            raise ConfigurationError(f"no bucket in archive location [{location}]")
        return S3ArchiveStore(
            s3_client or make_boto3_client("s3", settings),
            bucket,
            object_key or S3_OBJECT_KEY,
            work_dir=settings.work_dir,
            logger=logger,
        )
    return LocalFileArchiveStore(location, work_dir=settings.work_dir, logger=logger)
