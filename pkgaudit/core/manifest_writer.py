"""Manifest writer: materializes a dependency selection as ``package.json``."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from pkgaudit.core.errors import ManifestWriteFailed
from pkgaudit.models.selection import DependencySelection, PackageManifest
from pkgaudit.sandbox.base import Environment

logger = logging.getLogger(__name__)


class ManifestWriter:
    """Writes the minimal manifest the install step resolves.

    Not safe to run concurrently with another write or an install against
    the same environment; the orchestrator serializes runs.
    """

    def __init__(
        self,
        name: str = "npm-package-auditor",
        version: str = "1.0.0",
        *,
        path: str = "package.json",
    ) -> None:
        self.name = name
        self.version = version
        self.path = path

    def build(self, selection: DependencySelection) -> PackageManifest:
        return PackageManifest(
            name=self.name,
            version=self.version,
            dependencies=selection.as_mapping(),
        )

    def render(self, selection: DependencySelection) -> bytes:
        return self.build(selection).model_dump_json().encode("utf-8")

    async def write(self, environment: Environment, selection: DependencySelection) -> None:
        """Overwrite the manifest at the fixed workspace path."""
        data = self.render(selection)
        try:
            await environment.write_file(self.path, data)
        except (OSError, ValueError) as exc:
            raise ManifestWriteFailed(self.path, str(exc)) from exc
        logger.info(
            "Wrote %s with %d dependencies to %s",
            self.path, len(selection), environment.environment_id,
        )

    async def clean(self, environment: Environment, paths: Sequence[str]) -> None:
        """Remove the previous run's install state from the workspace."""
        for path in paths:
            try:
                await environment.remove_path(path)
            except (OSError, ValueError) as exc:
                raise ManifestWriteFailed(path, f"could not clean workspace: {exc}") from exc
        logger.debug("Cleaned %s in %s", ", ".join(paths), environment.environment_id)
