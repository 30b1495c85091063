"""
Project Loader — reads the YAML project tree.

Layout:
  <root>/project.yml                     key, description
  <root>/flags/<flag>.yml                description, type, serverSideOnly
  <root>/environments/<env>/<flag>.yml   per-environment config for <flag>

Every environment directory must hold a config for every flag.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import structlog
import yaml
from pydantic import TypeAdapter, ValidationError

from dorkly.models.project import Flag, FlagBase, FlagConfig, Project

PROJECT_FILE = "project.yml"
FLAGS_DIR = "flags"
ENVIRONMENTS_DIR = "environments"
YAML_SUFFIXES = (".yml", ".yaml")

_flag_config_adapter = TypeAdapter(FlagConfig)


class ProjectLoadError(Exception):
    """Raised when the project YAML files are missing, malformed or invalid."""
    pass


def _read_yaml(path: Path) -> Dict[str, Any]:
    """Read a YAML mapping. An empty file reads as {}."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ProjectLoadError(f"Failed to read YAML file: {path}") from e
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ProjectLoadError(f"Failed to parse YAML file: {path}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ProjectLoadError(f"Expected a mapping at the top of {path}")
    return data


def _find_yaml(directory: Path, name: str) -> Optional[Path]:
    for suffix in YAML_SUFFIXES:
        candidate = directory / f"{name}{suffix}"
        if candidate.is_file():
            return candidate
    return None


def _list_environments(root: Path) -> List[str]:
    envs_dir = root / ENVIRONMENTS_DIR
    if not envs_dir.is_dir():
        raise ProjectLoadError(f"Missing environments directory: {envs_dir}")
    return sorted(p.name for p in envs_dir.iterdir() if p.is_dir())


def _load_flag(
    root: Path, flag_path: Path, environments: List[str], log
) -> Flag:
    key = flag_path.stem
    log.info("Loading flag", file=str(flag_path), flag=key)
    try:
        base = FlagBase.model_validate({**_read_yaml(flag_path), "key": key})
    except ValidationError as e:
        raise ProjectLoadError(f"Invalid flag file {flag_path}: {e}") from e

    env_configs = {}
    for env in environments:
        env_path = _find_yaml(root / ENVIRONMENTS_DIR / env, key)
        if env_path is None:
            raise ProjectLoadError(
                f"Missing config for flag [{key}] in environment [{env}]: "
                f"expected {root / ENVIRONMENTS_DIR / env / (key + '.yml')}"
            )
        log.debug("Loading environment-specific flag config", file=str(env_path))
        data = {**_read_yaml(env_path), "type": base.type.value}
        try:
            env_configs[env] = _flag_config_adapter.validate_python(data)
        except ValidationError as e:
            raise ProjectLoadError(
                f"Invalid config for flag [{key}] in environment [{env}] ({env_path}): {e}"
            ) from e

    return Flag(base=base, env_configs=env_configs)


def _warn_orphan_configs(root: Path, project: Project, log) -> None:
    """Environment configs without a flags/<flag>.yml are ignored; say so."""
    for env in project.environments:
        for path in sorted((root / ENVIRONMENTS_DIR / env).iterdir()):
            if path.suffix in YAML_SUFFIXES and path.stem not in project.flags:
                log.warning(
                    "Ignoring environment config with no matching flag",
                    file=str(path),
                )


def load_project(
    path: Union[str, Path],
    logger: Optional[structlog.stdlib.BoundLogger] = None,
) -> Project:
    """Load and validate the project rooted at `path`."""
    log = (logger or structlog.get_logger()).bind(project_path=str(path))
    root = Path(path)
    if not root.is_dir():
        raise ProjectLoadError(f"path [{root}] is not a directory")

    log.info("Loading project config", file=str(root / PROJECT_FILE))
    data = _read_yaml(root / PROJECT_FILE)
    try:
        project = Project.model_validate(
            {"key": data.get("key"), "description": data.get("description") or ""}
        )
    except ValidationError as e:
        raise ProjectLoadError(f"Invalid project file {root / PROJECT_FILE}: {e}") from e
    project.path = str(root)
    project.environments = _list_environments(root)

    flags_dir = root / FLAGS_DIR
    if not flags_dir.is_dir():
        raise ProjectLoadError(f"Missing flags directory: {flags_dir}")
    for flag_path in sorted(flags_dir.iterdir()):
        if flag_path.is_dir():
            log.warning("Skipping unexpected directory", path=str(flag_path))
            continue
        if flag_path.suffix not in YAML_SUFFIXES:
            continue
        flag = _load_flag(root, flag_path, project.environments, log)
        if flag.key in project.flags:
            raise ProjectLoadError(f"Flag [{flag.key}] is defined more than once")
        project.flags[flag.key] = flag

    _warn_orphan_configs(root, project, log)
    log.info(
        "Loaded project",
        key=project.key,
        environments=project.environments,
        flags=sorted(project.flags),
    )
    return project
