"""
Archive Codec — RelayArchive <-> the tar.gz file ld-relay loads in offline mode.

Archive layout (all files at the root, members named ./<file>):
  <env>.json        environment metadata and data id
  <env>-data.json   flags and segments
  checksum.md5      raw MD5 digest of every JSON file, in filename order
"""

import hashlib
import json
import shutil
import tarfile
import time
from pathlib import Path
from typing import Any, Dict, Optional, Union

import structlog
from pydantic import BaseModel, ValidationError

from dorkly.models.archive import (
    Environment,
    EnvironmentMetadata,
    EnvironmentPayload,
    RelayArchive,
)

CHECKSUM_FILE = "checksum.md5"
METADATA_SUFFIX = ".json"
DATA_SUFFIX = "-data.json"

PathLike = Union[str, Path]


class ArchiveError(Exception):
    """Raised when an archive cannot be written or read."""
    pass


class ArchiveFormatError(ArchiveError):
    """Raised when archive contents are not a valid relay archive."""
    pass


def _dump_json(document: Any) -> bytes:
    return json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")


def _dump_map(models: Dict[str, BaseModel]) -> Dict[str, Any]:
    """Serialize a key -> model map with keys sorted."""
    return {
        key: models[key].model_dump(mode="json", by_alias=True)
        for key in sorted(models)
    }


def metadata_file_name(env_name: str) -> str:
    return env_name + METADATA_SUFFIX


def data_file_name(env_name: str) -> str:
    return env_name + DATA_SUFFIX


def archive_files(archive: RelayArchive) -> Dict[str, bytes]:
    """Render every environment into its two JSON documents, keyed by file name."""
    files: Dict[str, bytes] = {}
    for env_name, env in archive.environments.items():
        # "eu" and "eu-data" would both claim eu-data.json
        if metadata_file_name(env_name) in files or data_file_name(env_name) in files:
            raise ArchiveError(
                f"environment [{env_name}] clashes with the file names of another environment"
            )
        files[metadata_file_name(env_name)] = _dump_json(
            env.metadata.model_dump(mode="json", by_alias=True)
        )
        files[data_file_name(env_name)] = _dump_json({
            "segments": _dump_map(env.payload.segments),
            "flags": _dump_map(env.payload.flags),
        })
    return files


def md5_checksum(files: Dict[str, bytes]) -> bytes:
    """MD5 over the file contents concatenated in filename order."""
    digest = hashlib.md5()
    for name in sorted(files):
        digest.update(files[name])
    return digest.digest()


def ensure_empty_dir(path: PathLike) -> Path:
    """Create `path` if needed. Refuses to reuse a directory that has files in it."""
    directory = Path(path)
    if directory.exists():
        if any(directory.iterdir()):
            raise ArchiveError(
                f"directory {directory} is not empty. "
                "Refusing to write to non-empty directory"
            )
    else:
        directory.mkdir(parents=True)
    return directory


def write_archive_files(archive: RelayArchive, path: PathLike) -> Dict[str, bytes]:
    """Write the JSON documents and checksum.md5 into an empty directory."""
    directory = ensure_empty_dir(path)
    files = archive_files(archive)
    for name, content in files.items():
        (directory / name).write_bytes(content)
    (directory / CHECKSUM_FILE).write_bytes(md5_checksum(files))
    return files


def write_tar_gz(
    archive: RelayArchive,
    archive_path: PathLike,
    work_dir: PathLike,
    logger: Optional[structlog.stdlib.BoundLogger] = None,
) -> Path:
    """Write `archive` to a tar.gz at `archive_path`, staging files under `work_dir`."""
    log = logger or structlog.get_logger()
    files_dir = Path(work_dir) / f"dorkly-{time.time_ns()}"
    archive_path = Path(archive_path)

    log.info("Creating archive files", path=str(files_dir))
    try:
        write_archive_files(archive, files_dir)
        log.info(
            "Creating tar.gz archive",
            source=str(files_dir),
            archive=str(archive_path),
        )
        with tarfile.open(archive_path, "w:gz") as tar:
            tar.add(files_dir, arcname=".")
    finally:
        shutil.rmtree(files_dir, ignore_errors=True)
    return archive_path


def read_tar_gz(path: PathLike) -> Dict[str, bytes]:
    """Read every regular file of a tar.gz into memory, keyed by base name."""
    contents: Dict[str, bytes] = {}
    try:
        with tarfile.open(path, "r:gz") as tar:
            for member in tar.getmembers():
                if not member.isfile():
                    continue
                extracted = tar.extractfile(member)
                if extracted is None:
                    continue
                # Relay archives are flat; drop any leading ./
                contents[Path(member.name).name] = extracted.read()
    except tarfile.TarError as e:
        raise ArchiveFormatError(f"not a readable tar.gz archive: {path}") from e
    return contents


def parse_archive_files(files: Dict[str, bytes]) -> RelayArchive:
    """Rebuild a RelayArchive by pairing each <env>-data.json with its <env>.json."""
    environments: Dict[str, Environment] = {}
    for name in sorted(files):
        if not name.endswith(DATA_SUFFIX):
            continue
        env_name = name[: -len(DATA_SUFFIX)]
        if data_file_name(name[: -len(METADATA_SUFFIX)]) in files:
            # The metadata file of an environment whose name ends in -data
            continue
        metadata_name = metadata_file_name(env_name)
        if metadata_name not in files:
            raise ArchiveFormatError(f"missing metadata file for env: {env_name}")

        try:
            payload = EnvironmentPayload.model_validate_json(files[name])
            metadata = EnvironmentMetadata.model_validate_json(files[metadata_name])
        except ValidationError as e:
            raise ArchiveFormatError(
                f"invalid archive files for env [{env_name}]: {e}"
            ) from e

        environments[env_name] = Environment(metadata=metadata, payload=payload)
    return RelayArchive(environments=environments)


def load_archive(
    path: PathLike,
    logger: Optional[structlog.stdlib.BoundLogger] = None,
) -> RelayArchive:
    """Load a RelayArchive from a tar.gz file."""
    log = logger or structlog.get_logger()
    full_path = Path(path).resolve()
    log.info("Loading relay archive", archive=str(full_path))

    files = read_tar_gz(full_path)
    log.info("Found files in archive", count=len(files), contents=sorted(files))

    archive = parse_archive_files(files)
    log.info("Loaded relay archive", archive=archive.summary())
    return archive
