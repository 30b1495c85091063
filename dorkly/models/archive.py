"""Relay Archive — the data ld-relay serves in offline mode, one entry per environment."""

from typing import Dict, Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dorkly.models.flag import FeatureFlag, Segment


def format_data_id(value: str, quoted: bool) -> str:
    bare = value.strip('"')
    return f'"{bare}"' if quoted and bare else bare


class SDKKey(BaseModel):
    value: str = ""


class EnvironmentInfo(BaseModel):
    """The "env" object of <env>.json."""

    model_config = ConfigDict(populate_by_name=True)

    env_id: str = Field(default="", alias="envID")
    env_key: str = Field(default="", alias="envKey")
    env_name: str = Field(default="", alias="envName")
    mob_key: str = Field(default="", alias="mobKey")
    proj_key: str = Field(default="", alias="projKey")
    proj_name: str = Field(default="", alias="projName")
    sdk_key: SDKKey = Field(default_factory=SDKKey, alias="sdkKey")
    default_ttl: int = Field(default=0, alias="defaultTtl")
    secure_mode: bool = Field(default=False, alias="secureMode")
    version: int = 0


class EnvironmentMetadata(BaseModel):
    """<env>.json: environment identity plus the data id the relay keys its cache on."""

    model_config = ConfigDict(populate_by_name=True)

    env: EnvironmentInfo = Field(default_factory=EnvironmentInfo)
    data_id: str = Field(default="", alias="dataId")


class EnvironmentPayload(BaseModel):
    """<env>-data.json: everything served for the environment."""

    segments: Dict[str, Segment] = {}
    flags: Dict[str, FeatureFlag] = {}

    @field_validator("segments", "flags", mode="before")
    @classmethod
    def _null_as_empty(cls, value):
        return {} if value is None else value


class Environment(BaseModel):
    """One flag-serving environment, e.g. "production"."""

    metadata: EnvironmentMetadata = Field(default_factory=EnvironmentMetadata)
    payload: EnvironmentPayload = Field(default_factory=EnvironmentPayload)

    @property
    def name(self) -> str:
        return self.metadata.env.env_name

    @property
    def version(self) -> int:
        return self.metadata.env.version

    @property
    def data_id(self) -> str:
        return self.metadata.data_id

    def metadata_equal(self, other: "Environment", ignore: Iterable[str] = ("version",)) -> bool:
        """Compare the "env" objects field by field, skipping the named fields."""
        exclude = set(ignore)
        return (
            self.metadata.env.model_dump(exclude=exclude)
            == other.metadata.env.model_dump(exclude=exclude)
        )

    def content_equal(self, other: "Environment", ignore: Iterable[str] = ("version",)) -> bool:
        """
        Deep equality of metadata and payload with the named fields skipped
        on the environment and on every flag. The data id is derived from
        versions, so it is skipped whenever "version" is.
        """
        ignore = tuple(ignore)
        if not self.metadata_equal(other, ignore):
            return False
        if "version" not in ignore and self.data_id != other.data_id:
            return False
        if self.payload.segments != other.payload.segments:
            return False

        flags, other_flags = self.payload.flags, other.payload.flags
        if flags.keys() != other_flags.keys():
            return False
        return all(flags[key].content_equal(other_flags[key], ignore) for key in flags)

    def compute_data_id(self, quoted: bool = False) -> str:
        """
        Derive the data id from the environment version plus every flag version.

        Versions only ever grow, so any bump underneath the environment
        yields a new id. The official relay archive wraps the number in
        double quotes; `quoted` reproduces that.
        """
        total = self.version + sum(flag.version for flag in self.payload.flags.values())
        return format_data_id(str(total), quoted)

    def refresh_data_id(self, quoted: bool = False) -> None:
        self.metadata.data_id = self.compute_data_id(quoted)

    def requote_data_id(self, quoted: bool) -> None:
        """Switch the data id between quoted and bare form, keeping its value."""
        self.metadata.data_id = format_data_id(self.data_id, quoted)

    def summary(self) -> str:
        return (
            f"(Name: {self.name}, Version: {self.version}, "
            f"DataID: {self.data_id}, Flag count: {len(self.payload.flags)})"
        )


class RelayArchive(BaseModel):
    """The published artifact: environment name -> Environment."""

    environments: Dict[str, Environment] = {}

    @classmethod
    def empty(cls) -> "RelayArchive":
        """An archive with no environments, used when nothing has been published yet."""
        return cls(environments={})

    def summary(self) -> str:
        envs = ", ".join(
            self.environments[name].summary() for name in sorted(self.environments)
        )
        return f"Environments: {envs}"
