"""Dependency selection: the read-only input of an audit run.

A selection is produced outside the pipeline, either from a single package
name (constraint ``latest``) or from an uploaded ``package.json``.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

LATEST = "latest"


class Dependency(BaseModel):
    """A dependency name and its version constraint."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    constraint: str = LATEST


class DependencySelection(BaseModel):
    """Ordered, name-unique sequence of dependencies."""

    model_config = ConfigDict(frozen=True)

    dependencies: tuple[Dependency, ...] = ()

    @model_validator(mode="after")
    def _names_unique(self) -> DependencySelection:
        seen: set[str] = set()
        for dep in self.dependencies:
            if dep.name in seen:
                raise ValueError(f"Duplicate dependency name: {dep.name!r}")
            seen.add(dep.name)
        return self

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def single(cls, name: str, constraint: str = LATEST) -> DependencySelection:
        """Selection for one searched-for package."""
        return cls(dependencies=(Dependency(name=name, constraint=constraint),))

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, str]]) -> DependencySelection:
        return cls(
            dependencies=tuple(
                Dependency(name=name, constraint=constraint) for name, constraint in pairs
            )
        )

    @classmethod
    def from_manifest(cls, document: Mapping[str, Any]) -> DependencySelection:
        """Flatten ``dependencies`` then ``devDependencies`` of a manifest.

        A name listed in both sections keeps its first position and takes
        the ``devDependencies`` constraint.
        """
        merged: dict[str, str] = {}
        for section in ("dependencies", "devDependencies"):
            entries = document.get(section) or {}
            if not isinstance(entries, Mapping):
                raise ValueError(f"{section!r} must be an object, got {type(entries).__name__}")
            for name, constraint in entries.items():
                if not isinstance(constraint, str):
                    raise ValueError(f"Constraint for {name!r} in {section!r} must be a string")
                merged[name] = constraint
        return cls.from_pairs(merged.items())

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def as_mapping(self) -> dict[str, str]:
        """Name -> constraint, in selection order."""
        return {dep.name: dep.constraint for dep in self.dependencies}

    def names(self) -> list[str]:
        return [dep.name for dep in self.dependencies]

    def __len__(self) -> int:
        return len(self.dependencies)


class PackageManifest(BaseModel):
    """The minimal ``package.json`` written into the sandbox."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    dependencies: dict[str, str] = {}

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Manifest name must not be blank")
        return value


# ---------------------------------------------------------------------------
# Manifest / CLI input helpers
# ---------------------------------------------------------------------------


def load_manifest(path: Path) -> DependencySelection:
    """Read a ``package.json`` file and return its dependency selection."""
    if path.name != "package.json":
        raise ValueError(f"Expected a package.json file, got {path.name!r}")
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(document, dict):
        raise ValueError(f"{path} must contain a JSON object")
    return DependencySelection.from_manifest(document)


def parse_package_spec(spec: str) -> tuple[str, str]:
    """Split ``name[@constraint]`` into ``(name, constraint)``.

    Scoped names keep their leading ``@``: ``@types/node@^20`` becomes
    ``("@types/node", "^20")``.
    """
    spec = spec.strip()
    if not spec:
        raise ValueError("Empty package spec")
    at = spec.rfind("@")
    if at <= 0:
        return spec, LATEST
    name, constraint = spec[:at], spec[at + 1:]
    if not constraint:
        return name, LATEST
    return name, constraint
