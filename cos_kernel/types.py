"""Shared type definitions for cos_kernel.

This module contains enums and dataclasses shared across subpackages to
avoid circular imports.
"""

from dataclasses import dataclass
from enum import Enum


class ArtifactState(str, Enum):
    """Pipeline state of a single artifact, derived from sentinel files."""

    ABSENT = "absent"
    FETCHED = "fetched"
    VERIFIED = "verified"
    INSTALLED = "installed"


class LifecycleStatus(str, Enum):
    """Lifecycle status of a COS build in the compute image catalog."""

    ACTIVE = "active"
    DEPRECATED = "deprecated"
    OBSOLETE = "obsolete"

    @property
    def abbreviation(self) -> str:
        """Short marker used in catalog listings."""
        return {"deprecated": "dep", "obsolete": "obs"}.get(self.value, "")


class ArtifactKind(str, Enum):
    """How an artifact is installed."""

    ARCHIVE = "archive"
    FILE = "file"


@dataclass(frozen=True)
class CatalogEntry:
    """One compute image row parsed from the image catalog."""

    image_name: str
    milestone: str
    family: str
    status: LifecycleStatus


__all__ = [
    "ArtifactKind",
    "ArtifactState",
    "CatalogEntry",
    "LifecycleStatus",
]
