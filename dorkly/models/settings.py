"""Runtime configuration, read from DORKLY_* environment variables."""

import tempfile
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

S3_OBJECT_KEY = "flags.tar.gz"


class ConfigurationError(Exception):
    """Raised when the environment does not describe a runnable setup."""
    pass


class DorklySettings(BaseSettings):
    """Settings for the dorkly and dorkly-validate commands."""

    model_config = SettingsConfigDict(env_prefix="DORKLY_")

    yaml: str = "project"                       # Project YAML root
    s3_bucket: Optional[str] = None             # Shorthand for s3://<bucket>/flags.tar.gz
    archive_source: Optional[str] = None        # s3://bucket[/key] or a local path
    archive_destination: Optional[str] = None   # Defaults to the source
    work_dir: str = tempfile.gettempdir()

    aws_region: Optional[str] = None
    aws_endpoint_url: Optional[str] = None      # e.g. LocalStack
    storage_timeout_seconds: float = 30.0

    secrets_backend: Literal["insecure", "aws"] = "insecure"
    quote_data_id: bool = False

    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"
    log_file: Optional[str] = None

    def resolved_source(self) -> str:
        """Where the previously published archive lives."""
        if self.archive_source:
            return self.archive_source
        if self.s3_bucket:
            return f"s3://{self.s3_bucket}/{S3_OBJECT_KEY}"
        raise ConfigurationError(
            "Required env var [DORKLY_S3_BUCKET] or [DORKLY_ARCHIVE_SOURCE] not set."
        )

    def resolved_destination(self) -> str:
        """Where the reconciled archive is published."""
        return self.archive_destination or self.resolved_source()
