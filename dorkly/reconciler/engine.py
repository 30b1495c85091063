"""
Reconciliation — merges a freshly rendered archive into the last published one.

The relay uses flag and environment versions to decide what to stream to
SDKs, so the output must obey:
  - a version starts at 1 and grows by exactly 1 for each run that
    changed the entity's content (versions themselves are not content),
  - a flag removed from the project stays in the archive as a tombstone,
  - the data id of an environment moves whenever anything inside it did,
  - running twice on the same input changes nothing the second time.

Pure data transformation: neither input archive is modified.
"""

from typing import Optional

import structlog

from dorkly.models.archive import Environment, RelayArchive
from dorkly.reconciler.diff import compare_keys


def reconcile(
    old: RelayArchive,
    new: RelayArchive,
    quote_data_id: bool = False,
    logger: Optional[structlog.stdlib.BoundLogger] = None,
) -> RelayArchive:
    """
    Produce the archive to publish, given the last published archive `old`
    and the version-naive archive `new` rendered from the project.
    """
    log = logger or structlog.get_logger()
    reconciled = new.model_copy(deep=True)

    envs = compare_keys(old.environments, reconciled.environments)
    log.info(
        "Compared environments",
        new=envs.new,
        existing=envs.existing,
        deleted=envs.deleted,
    )

    for env_key in envs.new:
        _bootstrap_environment(reconciled.environments[env_key], quote_data_id)

    for env_key in envs.deleted:
        # TODO: decide whether removed environments should be tombstoned in the relay
        log.warning(
            "Environment no longer in project; dropping it from the archive",
            env=env_key,
        )

    for env_key in envs.existing:
        _reconcile_environment(
            old.environments[env_key],
            reconciled.environments[env_key],
            quote_data_id,
            log.bind(env=env_key),
        )

    return reconciled


def _bootstrap_environment(env: Environment, quote_data_id: bool) -> None:
    """First publish of an environment: everything starts at version 1."""
    env.metadata.env.version = 1
    for flag in env.payload.flags.values():
        flag.version = 1
    env.refresh_data_id(quote_data_id)


def _reconcile_environment(
    old_env: Environment,
    new_env: Environment,
    quote_data_id: bool,
    log,
) -> None:
    """Resolve versions, tombstones and the data id of one environment in place."""
    changed = False

    # The project has no notion of versions; start from what was published
    new_env.metadata.env.version = old_env.version
    new_env.metadata.data_id = old_env.data_id
    if not new_env.metadata_equal(old_env):
        new_env.metadata.env.version += 1
        changed = True

    old_flags = old_env.payload.flags
    new_flags = new_env.payload.flags
    flags = compare_keys(old_flags, new_flags)
    log.info(
        "Compared flags",
        new=flags.new,
        existing=flags.existing,
        deleted=flags.deleted,
    )

    for flag_key in flags.new:
        new_flags[flag_key].version = 1
        changed = True

    for flag_key in flags.deleted:
        old_flag = old_flags[flag_key]
        if old_flag.deleted:
            new_flags[flag_key] = old_flag.model_copy(deep=True)
            continue
        new_flags[flag_key] = old_flag.tombstone()
        changed = True

    for flag_key in flags.existing:
        old_flag = old_flags[flag_key]
        new_flag = new_flags[flag_key]
        if old_flag.deleted:
            # Tombstones are final
            log.warning(
                "Flag was deleted in an earlier run; keeping its tombstone",
                flag=flag_key,
            )
            new_flags[flag_key] = old_flag.model_copy(deep=True)
            continue

        new_flag.version = old_flag.version
        if not new_flag.content_equal(old_flag):
            new_flag.version += 1
            changed = True

    if changed:
        new_env.refresh_data_id(quote_data_id)
        log.info(
            "Environment changed",
            version=new_env.version,
            data_id=new_env.data_id,
        )
    else:
        # Same number, rendered the way this run asks for
        new_env.requote_data_id(quote_data_id)
