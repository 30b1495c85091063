"""Rendering — a loaded Project becomes a version-naive RelayArchive."""

import base64

from dorkly.models.archive import (
    Environment,
    EnvironmentInfo,
    EnvironmentMetadata,
    EnvironmentPayload,
    RelayArchive,
    SDKKey,
)
from dorkly.models.flag import (
    ClientSideAvailability,
    FeatureFlag,
    Rollout,
    VariationOrRollout,
    WeightedVariation,
)
from dorkly.models.project import (
    BooleanFlagConfig,
    BooleanRolloutFlagConfig,
    FlagBase,
    FlagConfig,
    Project,
)
from dorkly.secrets.service import insecure_mobile_key, insecure_sdk_key

CONTEXT_KIND_USER = "user"
ROLLOUT_KIND = "rollout"
VARIATION_TRUE = 0
VARIATION_FALSE = 1


def percent_to_weight(percent: float) -> int:
    """The relay expresses rollout weights in thousandths of a percent."""
    return int(percent * 1000.0)


def flag_salt(key: str) -> str:
    return base64.b64encode(key.encode("utf-8")).decode("ascii")


def _boolean_flag(base: FlagBase, on: bool) -> FeatureFlag:
    client_side = not base.server_side_only
    return FeatureFlag(
        key=base.key,
        on=on,
        fallthrough=VariationOrRollout(variation=VARIATION_TRUE),
        off_variation=VARIATION_FALSE,
        variations=[True, False],
        client_side_availability=ClientSideAvailability(
            using_mobile_key=client_side,
            using_environment_id=client_side,
        ),
        client_side=client_side,
        salt=flag_salt(base.key),
    )


def to_wire_flag(base: FlagBase, config: FlagConfig) -> FeatureFlag:
    """Turn a flag definition plus its config for one environment into a relay flag."""
    if isinstance(config, BooleanFlagConfig):
        return _boolean_flag(base, config.variation)

    if isinstance(config, BooleanRolloutFlagConfig):
        flag = _boolean_flag(base, True)
        flag.fallthrough = VariationOrRollout(
            rollout=Rollout(
                kind=ROLLOUT_KIND,
                context_kind=CONTEXT_KIND_USER,
                variations=[
                    WeightedVariation(
                        variation=VARIATION_TRUE,
                        weight=percent_to_weight(config.percent_rollout.true_percent),
                    ),
                    WeightedVariation(
                        variation=VARIATION_FALSE,
                        weight=percent_to_weight(config.percent_rollout.false_percent),
                    ),
                ],
            )
        )
        return flag

    raise TypeError(f"Unsupported flag config: {type(config).__name__}")


def render_environment(project: Project, env: str) -> Environment:
    """One environment with placeholder keys and every flag at version 0."""
    return Environment(
        metadata=EnvironmentMetadata(
            env=EnvironmentInfo(
                env_id=env,
                env_key=env,
                env_name=env,
                mob_key=insecure_mobile_key(env),
                proj_key=project.key,
                proj_name=project.key,
                sdk_key=SDKKey(value=insecure_sdk_key(env)),
            )
        ),
        payload=EnvironmentPayload(
            segments={},
            flags={
                flag.key: to_wire_flag(flag.base, flag.env_configs[env])
                for flag in project.flags.values()
            },
        ),
    )


def render_archive(project: Project) -> RelayArchive:
    """The desired state of every environment, before reconciliation."""
    return RelayArchive(
        environments={env: render_environment(project, env) for env in project.environments}
    )
