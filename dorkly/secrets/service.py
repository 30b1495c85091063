"""
Secrets — SDK and mobile keys the relay accepts for each environment.

Secret names must stay in sync with the infrastructure that creates them:
  dorkly-<project>-<env>-sdk-key
  dorkly-<project>-<env>-mob-key
"""

from abc import ABC, abstractmethod

from botocore.exceptions import BotoCoreError, ClientError

from dorkly.models.archive import RelayArchive


class SecretsError(Exception):
    """Raised when a key cannot be retrieved."""
    pass


def sdk_key_secret_name(project: str, env: str) -> str:
    return f"dorkly-{project}-{env}-sdk-key"


def mobile_key_secret_name(project: str, env: str) -> str:
    return f"dorkly-{project}-{env}-mob-key"


def insecure_sdk_key(env: str) -> str:
    return f"sdk-{env}-not-secure"


def insecure_mobile_key(env: str) -> str:
    return f"mob-{env}-not-secure"


class SecretsService(ABC):
    """Looks up the keys clients use to talk to the relay."""

    @abstractmethod
    def get_sdk_key(self, project: str, env: str) -> str: ...

    @abstractmethod
    def get_mobile_key(self, project: str, env: str) -> str: ...


class InsecureSecretsService(SecretsService):
    """Predictable placeholder keys. For local use and tests only."""

    def __str__(self) -> str:
        return "InsecureSecretsService"

    def get_sdk_key(self, project: str, env: str) -> str:
        return insecure_sdk_key(env)

    def get_mobile_key(self, project: str, env: str) -> str:
        return insecure_mobile_key(env)


class AwsSecretsService(SecretsService):
    """Reads keys from AWS Secrets Manager."""

    def __init__(self, client):
        self.client = client

    def __str__(self) -> str:
        return "AwsSecretsService"

    def _get_secret(self, name: str) -> str:
        try:
            response = self.client.get_secret_value(SecretId=name)
        except (ClientError, BotoCoreError) as e:
            raise SecretsError(f"failed to read secret [{name}]: {e}") from e
        value = response.get("SecretString")
        if not value:
            raise SecretsError(f"secret [{name}] has no string value")
        return value

    def get_sdk_key(self, project: str, env: str) -> str:
        return self._get_secret(sdk_key_secret_name(project, env))

    def get_mobile_key(self, project: str, env: str) -> str:
        return self._get_secret(mobile_key_secret_name(project, env))


def inject_secrets(archive: RelayArchive, secrets: SecretsService) -> None:
    """Write the SDK and mobile key of every environment into its metadata, in place."""
    for env in archive.environments.values():
        info = env.metadata.env
        info.sdk_key.value = secrets.get_sdk_key(info.proj_key, info.env_name)
        info.mob_key = secrets.get_mobile_key(info.proj_key, info.env_name)
