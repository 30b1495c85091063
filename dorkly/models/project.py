"""Project — the human-authored YAML definition of a set of flags across environments."""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class FlagType(str, Enum):
    BOOLEAN = "boolean"
    BOOLEAN_ROLLOUT = "booleanRollout"


class FlagBase(BaseModel):
    """flags/<key>.yml: fields shared by every environment."""

    model_config = ConfigDict(populate_by_name=True)

    key: str = ""                           # Taken from the file name
    description: str = ""
    type: FlagType
    server_side_only: bool = Field(default=False, alias="serverSideOnly")


class BooleanFlagConfig(BaseModel):
    """A flag that is either on (true) or off (false) in this environment."""

    type: Literal["boolean"] = "boolean"
    variation: bool


class PercentRollout(BaseModel):
    """Share of users served true/false, in percent."""

    model_config = ConfigDict(populate_by_name=True)

    true_percent: float = Field(default=0.0, alias="true")
    false_percent: float = Field(default=0.0, alias="false")

    @model_validator(mode="before")
    @classmethod
    def _yaml_bool_keys(cls, data: Any) -> Any:
        # YAML 1.1 reads unquoted `true:` / `false:` keys as booleans
        if isinstance(data, dict):
            return {
                (str(k).lower() if isinstance(k, bool) else k): v
                for k, v in data.items()
            }
        return data

    @model_validator(mode="after")
    def _check_and_complete(self) -> "PercentRollout":
        if self.true_percent < 0.0:
            raise ValueError("percentRollout.true must be >= 0")
        if self.false_percent < 0.0:
            raise ValueError("percentRollout.false must be >= 0")
        if self.true_percent + self.false_percent > 100.0:
            raise ValueError("sum of percentRollout values must be <= 100")
        if self.true_percent == 0.0 and self.false_percent == 0.0:
            raise ValueError(
                "at least one of percentRollout.true or percentRollout.false must be > 0"
            )

        if self.true_percent == 0.0:
            self.true_percent = 100.0 - self.false_percent
        if self.false_percent == 0.0:
            self.false_percent = 100.0 - self.true_percent
        return self


class BooleanRolloutFlagConfig(BaseModel):
    """A flag that is true for a percentage of users, bucketed by user key."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["booleanRollout"] = "booleanRollout"
    percent_rollout: PercentRollout = Field(alias="percentRollout")

    @field_validator("percent_rollout", mode="before")
    @classmethod
    def _bare_percentage(cls, value: Any) -> Any:
        """`percentRollout: 10` is shorthand for 10% true, 90% false."""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return {"true": value}
        return value


FlagConfig = Annotated[
    Union[BooleanFlagConfig, BooleanRolloutFlagConfig],
    Field(discriminator="type"),
]


class Flag(BaseModel):
    """Everything needed to serve one flag in every environment of a project."""

    base: FlagBase
    env_configs: Dict[str, FlagConfig] = {}  # environment name -> config

    @property
    def key(self) -> str:
        return self.base.key


class Project(BaseModel):
    """project.yml plus the flags and environments found next to it."""

    key: str
    description: str = ""
    environments: List[str] = []
    flags: Dict[str, Flag] = {}
    path: str = ""
