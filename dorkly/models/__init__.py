"""dorkly data models."""

from dorkly.models.archive import (
    Environment,
    EnvironmentInfo,
    EnvironmentMetadata,
    EnvironmentPayload,
    RelayArchive,
    SDKKey,
)
from dorkly.models.flag import (
    Clause,
    ClientSideAvailability,
    FeatureFlag,
    FlagRule,
    Prerequisite,
    Rollout,
    Segment,
    Target,
    VariationOrRollout,
    WeightedVariation,
)
from dorkly.models.project import (
    BooleanFlagConfig,
    BooleanRolloutFlagConfig,
    Flag,
    FlagBase,
    FlagConfig,
    FlagType,
    PercentRollout,
    Project,
)
from dorkly.models.settings import ConfigurationError, DorklySettings

__all__ = [
    "BooleanFlagConfig",
    "BooleanRolloutFlagConfig",
    "Clause",
    "ClientSideAvailability",
    "ConfigurationError",
    "DorklySettings",
    "Environment",
    "EnvironmentInfo",
    "EnvironmentMetadata",
    "EnvironmentPayload",
    "FeatureFlag",
    "Flag",
    "FlagBase",
    "FlagConfig",
    "FlagRule",
    "FlagType",
    "PercentRollout",
    "Prerequisite",
    "Project",
    "RelayArchive",
    "Rollout",
    "SDKKey",
    "Segment",
    "Target",
    "VariationOrRollout",
    "WeightedVariation",
]
