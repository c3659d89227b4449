"""Sentinel-file state of fetched artifacts.

Each artifact file ``<name>`` may be accompanied by ``<name>.md5`` (checksum
sidecar), ``<name>.verified`` and ``<name>.installed`` (empty markers). The
pipeline never checks these files directly; it asks probe_state() for the
current ArtifactState and moves between states with the transition helpers
below.
"""

from __future__ import annotations

import logging
from pathlib import Path

from cos_kernel.types import ArtifactState

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".md5"
VERIFIED_SUFFIX = ".verified"
INSTALLED_SUFFIX = ".installed"


def _with_suffix(artifact_path: Path, suffix: str) -> Path:
    return artifact_path.with_name(artifact_path.name + suffix)


def sidecar_path(artifact_path: Path) -> Path:
    return _with_suffix(artifact_path, SIDECAR_SUFFIX)


def verified_marker(artifact_path: Path) -> Path:
    return _with_suffix(artifact_path, VERIFIED_SUFFIX)


def installed_marker(artifact_path: Path) -> Path:
    return _with_suffix(artifact_path, INSTALLED_SUFFIX)


def has_artifact(artifact_path: Path) -> bool:
    """True if the raw artifact exists and is non-empty."""
    return artifact_path.is_file() and artifact_path.stat().st_size > 0


def has_sidecar(artifact_path: Path) -> bool:
    path = sidecar_path(artifact_path)
    return path.is_file() and path.stat().st_size > 0


def clear_markers(artifact_path: Path) -> None:
    """Drop the verified and installed markers of an artifact."""
    for marker in (verified_marker(artifact_path), installed_marker(artifact_path)):
        if marker.exists():
            logger.debug("Removing marker %s", marker)
            marker.unlink()


def probe_state(artifact_path: Path) -> ArtifactState:
    """Compute the state of an artifact from the filesystem.

    Markers left behind for a missing or empty artifact are removed, so a
    stale marker can never cause a stage to be skipped.
    """
    if not has_artifact(artifact_path):
        clear_markers(artifact_path)
        return ArtifactState.ABSENT
    if installed_marker(artifact_path).exists():
        return ArtifactState.INSTALLED
    if verified_marker(artifact_path).exists():
        return ArtifactState.VERIFIED
    return ArtifactState.FETCHED


def mark_fetched(artifact_path: Path) -> ArtifactState:
    """Record a fresh download: any earlier verification no longer applies."""
    clear_markers(artifact_path)
    return ArtifactState.FETCHED


def mark_verified(artifact_path: Path) -> ArtifactState:
    verified_marker(artifact_path).touch()
    return ArtifactState.VERIFIED


def mark_installed(artifact_path: Path) -> ArtifactState:
    installed_marker(artifact_path).touch()
    return ArtifactState.INSTALLED


__all__ = [
    "clear_markers",
    "has_artifact",
    "has_sidecar",
    "installed_marker",
    "mark_fetched",
    "mark_installed",
    "mark_verified",
    "probe_state",
    "sidecar_path",
    "verified_marker",
]
