"""
Command-line entry points, configured entirely through DORKLY_* environment variables.

  dorkly            reconcile the project YAML with the published archive and publish
  dorkly-validate   load and validate the project YAML only
"""

import sys
from typing import Dict, Optional

import structlog
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from dorkly.archive.codec import ArchiveError
from dorkly.archive.store import make_boto3_client, open_store
from dorkly.models.settings import ConfigurationError, DorklySettings
from dorkly.project.loader import ProjectLoadError, load_project
from dorkly.reconciler.pipeline import Reconciler
from dorkly.secrets.service import (
    AwsSecretsService,
    InsecureSecretsService,
    SecretsError,
    SecretsService,
)
from dorkly.telemetry.logger import new_logger

EXIT_FAILURE = 1

_RUN_ERRORS = (
    ArchiveError,
    ConfigurationError,
    ProjectLoadError,
    SecretsError,
    OSError,
)


def _load_settings() -> Optional[DorklySettings]:
    try:
        return DorklySettings()
    except ValidationError as e:
        structlog.get_logger().error("Invalid DORKLY_* configuration", error=str(e))
        return None


def build_secrets(settings: DorklySettings) -> SecretsService:
    if settings.secrets_backend == "aws":
        return AwsSecretsService(make_boto3_client("secretsmanager", settings))
    return InsecureSecretsService()


def uses_aws(settings: DorklySettings) -> bool:
    locations = (settings.resolved_source(), settings.resolved_destination())
    return settings.secrets_backend == "aws" or any(
        location.startswith("s3://") for location in locations
    )


def log_caller_identity(sts_client, logger: structlog.stdlib.BoundLogger) -> Dict[str, str]:
    """Log the AWS principal this run acts as."""
    try:
        response = sts_client.get_caller_identity()
    except (ClientError, BotoCoreError) as e:
        raise ConfigurationError(f"failed to resolve AWS caller identity: {e}") from e
    identity = {
        "account": response.get("Account", ""),
        "arn": response.get("Arn", ""),
        "user_id": response.get("UserId", ""),
    }
    logger.info("AWS identity", **identity)
    return identity


def build_reconciler(
    settings: DorklySettings, logger: structlog.stdlib.BoundLogger
) -> Reconciler:
    """Wire stores, secrets and logger together from the settings."""
    source_location = settings.resolved_source()
    destination_location = settings.resolved_destination()

    source = open_store(source_location, settings, logger)
    destination = (
        source
        if destination_location == source_location
        else open_store(destination_location, settings, logger)
    )
    secrets = build_secrets(settings)
    if uses_aws(settings):
        log_caller_identity(make_boto3_client("sts", settings), logger)

    return Reconciler(
        source=source,
        destination=destination,
        project_path=settings.yaml,
        secrets=secrets,
        logger=logger,
        quote_data_id=settings.quote_data_id,
    )


def main() -> int:
    """Entry point for `dorkly`."""
    settings = _load_settings()
    if settings is None:
        return EXIT_FAILURE
    logger = new_logger(settings.log_level, settings.log_format, settings.log_file)

    try:
        reconciler = build_reconciler(settings, logger)
        reconciler.run()
    except _RUN_ERRORS as e:
        logger.exception("Reconcile failed", error=str(e))
        return EXIT_FAILURE

    logger.info("Reconcile finished")
    return 0


def validate() -> int:
    """Entry point for `dorkly-validate`."""
    settings = _load_settings()
    if settings is None:
        return EXIT_FAILURE
    logger = new_logger(
        settings.log_level, settings.log_format, settings.log_file
    ).bind(component="Validator", project_path=settings.yaml)

    try:
        project = load_project(settings.yaml, logger)
    except ProjectLoadError as e:
        logger.error("Failed to validate project yaml files", error=str(e))
        return EXIT_FAILURE

    logger.info(
        "Project yaml files validated successfully",
        key=project.key,
        environments=project.environments,
        flags=sorted(project.flags),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
