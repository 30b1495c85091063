"""
Reconcile pipeline — one end-to-end publish run.

  fetch existing archive (none yet -> empty archive)
  -> load project YAML and render the desired archive
  -> inject SDK/mobile keys
  -> reconcile
  -> publish

Any exception aborts the run before anything is published.
"""

import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, TextIO, Union

import structlog

from dorkly.archive.store import ArchiveNotFoundError, ArchiveStore
from dorkly.models.archive import RelayArchive
from dorkly.project.loader import load_project
from dorkly.project.render import render_archive
from dorkly.reconciler.engine import reconcile
from dorkly.secrets.service import InsecureSecretsService, SecretsService, inject_secrets


@contextmanager
def run_step(step: str, stream: Optional[TextIO] = None) -> Iterator[None]:
    """Wrap a step in a GitHub Actions log group."""
    out = stream or sys.stdout
    out.write(f"::group::{step}\n")
    out.flush()
    try:
        yield
    finally:
        out.write("::endgroup::\n")
        out.flush()


class Reconciler:
    """Publishes the project at `project_path` on top of what `source` holds."""

    def __init__(
        self,
        source: ArchiveStore,
        project_path: Union[str, Path],
        secrets: Optional[SecretsService] = None,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
        destination: Optional[ArchiveStore] = None,
        quote_data_id: bool = False,
    ):
        self.source = source
        self.destination = destination or source
        self.project_path = project_path
        self.secrets = secrets or InsecureSecretsService()
        self.quote_data_id = quote_data_id
        self.logger = (logger or structlog.get_logger()).bind(component="Reconciler")

    def fetch_existing(self) -> RelayArchive:
        try:
            return self.source.fetch_existing()
        except ArchiveNotFoundError:
            self.logger.warning(
                "Existing archive not found. Creating new empty archive.",
                source=str(self.source),
            )
            return RelayArchive.empty()

    def render_project(self) -> RelayArchive:
        project = load_project(self.project_path, self.logger)
        archive = render_archive(project)
        inject_secrets(archive, self.secrets)
        return archive

    def run(self) -> RelayArchive:
        """Run every step in order and return the archive that was published."""
        self.logger.info(
            "Begin reconcile",
            source=str(self.source),
            destination=str(self.destination),
            secrets=str(self.secrets),
        )

        with run_step("Fetch existing archive"):
            existing = self.fetch_existing()

        with run_step("Load local yaml project files"):
            desired = self.render_project()

        with run_step("Reconcile existing archive and local yaml project files"):
            reconciled = reconcile(
                existing,
                desired,
                quote_data_id=self.quote_data_id,
                logger=self.logger,
            )
            self.logger.info("Reconciled archive", archive=reconciled.summary())

        with run_step("Publish reconciled archive"):
            self.destination.save_new(reconciled)

        return reconciled
