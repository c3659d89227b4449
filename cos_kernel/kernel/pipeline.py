"""Fetch, verify and install pipeline.

This module provides the high-level pipeline over all artifacts of a build:
- fetch_stage(): download missing artifacts and their checksum sidecars
- verify_stage(): check artifacts against their sidecars
- install_stage(): extract archives and copy plain files into place
- run_pipeline(): all of the above plus kernel config splicing

Every stage processes ARTIFACTS in registry order and skips work already
recorded by sentinel files, so re-running after a failure resumes where the
previous run stopped.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx

from cos_kernel.errors import (
    ArtifactFetchError,
    ChecksumMismatchError,
    DownloadError,
    ExtractionError,
)
from cos_kernel.kernel.fetch import (
    compute_file_md5,
    download_file,
    extract_archive,
    object_url,
    read_checksum_sidecar,
)
from cos_kernel.kernel.registry import (
    ARTIFACTS,
    KERNEL_SRC,
    ArtifactDescriptor,
    InstallationLayout,
)
from cos_kernel.kernel.splicer import splice_kernel_config
from cos_kernel.kernel.state import (
    SIDECAR_SUFFIX,
    clear_markers,
    has_sidecar,
    mark_fetched,
    mark_installed,
    mark_verified,
    probe_state,
    sidecar_path,
    verified_marker,
)
from cos_kernel.types import ArtifactKind, ArtifactState

if TYPE_CHECKING:
    from cos_kernel.config import RunConfig, Settings

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Final per-artifact state after a pipeline run."""

    build_id: str
    states: dict[str, ArtifactState] = field(default_factory=dict)

    @property
    def missing(self) -> list[str]:
        return [n for n, s in self.states.items() if s is ArtifactState.ABSENT]


def _fetch_sidecar(
    client: httpx.Client,
    settings: Settings,
    layout: InstallationLayout,
    descriptor: ArtifactDescriptor,
) -> None:
    path = sidecar_path(layout.artifact_path(descriptor))
    path.unlink(missing_ok=True)
    url = object_url(
        settings.storage_base_url,
        settings.bucket,
        descriptor.remote_path(layout.build_id) + SIDECAR_SUFFIX,
    )
    try:
        download_file(client, url, path, timeout=settings.download_timeout)
    except DownloadError as e:
        # Older builds were published without sidecars
        logger.warning("No checksum sidecar for %s: %s", descriptor.name, e)
        path.unlink(missing_ok=True)


def fetch_artifact(
    client: httpx.Client,
    settings: Settings,
    layout: InstallationLayout,
    descriptor: ArtifactDescriptor,
) -> ArtifactState:
    """Fetch one artifact and its sidecar unless already present.

    Returns:
        State of the artifact after the fetch attempt.

    Raises:
        ArtifactFetchError: If a mandatory artifact cannot be fetched.
    """
    path = layout.artifact_path(descriptor)
    state = probe_state(path)
    fetched_now = False

    if state is ArtifactState.ABSENT:
        url = object_url(
            settings.storage_base_url,
            settings.bucket,
            descriptor.remote_path(layout.build_id),
        )
        try:
            download_file(client, url, path, timeout=settings.download_timeout)
        except DownloadError as e:
            if descriptor.optional:
                logger.warning(
                    "Optional artifact %s not fetched: %s", descriptor.name, e
                )
                return ArtifactState.ABSENT
            raise ArtifactFetchError(descriptor.name, str(e), code=e.code) from e
        state = mark_fetched(path)
        fetched_now = True
    else:
        logger.debug("%s already fetched (%s)", descriptor.name, state.value)

    if fetched_now or (state is ArtifactState.FETCHED and not has_sidecar(path)):
        _fetch_sidecar(client, settings, layout, descriptor)

    return state


def fetch_stage(
    client: httpx.Client,
    settings: Settings,
    layout: InstallationLayout,
) -> None:
    """Fetch every artifact of the build."""
    layout.fetched_dir.mkdir(parents=True, exist_ok=True)
    for descriptor in ARTIFACTS:
        fetch_artifact(client, settings, layout, descriptor)


def verify_artifact(
    layout: InstallationLayout,
    descriptor: ArtifactDescriptor,
) -> ArtifactState:
    """Check one artifact against its checksum sidecar.

    Raises:
        ChecksumMismatchError: If the digests differ. The artifact and its
            sidecar are deleted so the next run fetches them again.
    """
    path = layout.artifact_path(descriptor)
    state = probe_state(path)

    if state is ArtifactState.ABSENT:
        return state
    if verified_marker(path).exists():
        logger.debug("%s already verified", descriptor.name)
        return state
    if not has_sidecar(path):
        logger.warning(
            "No checksum available for %s, skipping verification", descriptor.name
        )
        return state

    expected = read_checksum_sidecar(sidecar_path(path))
    actual = compute_file_md5(path)
    if expected.lower() != actual.lower():
        # Remove the corrupted file
        path.unlink(missing_ok=True)
        sidecar_path(path).unlink(missing_ok=True)
        clear_markers(path)
        raise ChecksumMismatchError(descriptor.name, expected, actual)

    logger.info("Verified %s (md5 %s)", descriptor.name, actual)
    mark_verified(path)
    return probe_state(path)


def verify_stage(layout: InstallationLayout) -> None:
    """Verify every fetched artifact that has a sidecar."""
    for descriptor in ARTIFACTS:
        verify_artifact(layout, descriptor)


def link_kernel_source(layout: InstallationLayout) -> None:
    """Point the ``kernel`` symlink at this build's kernel source."""
    link = layout.kernel_symlink
    if link.is_symlink():
        link.unlink()
    elif link.exists():
        raise ExtractionError(
            f"{link} exists and is not a symlink",
            code="symlink_conflict",
        )
    link.symlink_to(layout.build_id, target_is_directory=True)
    logger.debug("Linked %s -> %s", link, layout.build_id)


def install_artifact(
    layout: InstallationLayout,
    descriptor: ArtifactDescriptor,
) -> ArtifactState:
    """Extract or copy one artifact into its install directory."""
    path = layout.artifact_path(descriptor)
    state = probe_state(path)

    if state is ArtifactState.ABSENT:
        logger.debug("%s not fetched, nothing to install", descriptor.name)
        return state
    if state is ArtifactState.INSTALLED:
        logger.debug("%s already installed", descriptor.name)
        return state

    target = layout.install_target(descriptor)
    target.mkdir(parents=True, exist_ok=True)

    if descriptor.kind is ArtifactKind.ARCHIVE:
        extract_archive(path, target)
    else:
        shutil.copy2(path, target / descriptor.remote_filename)
        logger.info("Installed %s to %s", descriptor.name, target)

    if descriptor is KERNEL_SRC:
        link_kernel_source(layout)

    return mark_installed(path)


def install_stage(layout: InstallationLayout) -> None:
    """Install every fetched artifact."""
    for descriptor in ARTIFACTS:
        install_artifact(layout, descriptor)


def collect_states(layout: InstallationLayout) -> dict[str, ArtifactState]:
    return {d.name: probe_state(layout.artifact_path(d)) for d in ARTIFACTS}


def run_pipeline(
    config: RunConfig,
    client: httpx.Client | None = None,
) -> PipelineResult:
    """Fetch, verify and optionally install all artifacts of a build.

    Args:
        config: Run configuration with build id and layout set.
        client: HTTPX client; a private one is created when omitted.

    Returns:
        PipelineResult with the final state of each artifact.
    """
    if config.layout is None:
        raise ValueError("run_pipeline requires a build id")
    layout = config.layout
    logger.info("Preparing COS build %s in %s", layout.build_id, layout.install_dir)

    if client is None:
        with httpx.Client(follow_redirects=True) as own_client:
            fetch_stage(own_client, config.settings, layout)
    else:
        fetch_stage(client, config.settings, layout)

    verify_stage(layout)

    if config.extract:
        install_stage(layout)
        splice_kernel_config(layout, config.kernel_config)

    return PipelineResult(build_id=layout.build_id, states=collect_states(layout))


__all__ = [
    "PipelineResult",
    "collect_states",
    "fetch_artifact",
    "fetch_stage",
    "install_artifact",
    "install_stage",
    "link_kernel_source",
    "run_pipeline",
    "verify_artifact",
    "verify_stage",
]
