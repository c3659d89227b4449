"""Listing of available COS builds and their artifacts."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from cos_kernel.buildid import validate_build_id
from cos_kernel.catalog.client import CatalogClient
from cos_kernel.catalog.parse import (
    build_ids_from_paths,
    image_matches_build,
    parse_compute_images,
)
from cos_kernel.kernel.registry import ARTIFACTS
from cos_kernel.types import LifecycleStatus

logger = logging.getLogger(__name__)

# Rows between repeated headers
HEADER_EVERY = 25

PRESENT_MARKER = "+++"
ABSENT_MARKER = "---"

_BUILD_WIDTH = 16
_MILESTONE_WIDTH = 11
_FAMILY_WIDTH = 8
_STATUS_WIDTH = 8


@dataclass(frozen=True)
class CatalogRow:
    """One line of the build listing.

    status is None when a requested build id has no compute image.
    availability holds one flag per artifact, in ARTIFACTS order.
    """

    build_id: str
    milestone: str
    family: str
    status: LifecycleStatus | None
    availability: tuple[bool, ...]


def list_builds(
    catalog: CatalogClient,
    filter_id: str | None = None,
    include_all: bool = False,
) -> list[CatalogRow]:
    """Join bucket contents with image metadata.

    Args:
        catalog: Catalog client.
        filter_id: Only list this build id, whatever its lifecycle status.
        include_all: Include deprecated and obsolete builds.

    Returns:
        Rows in ascending version order; a build id published under several
        image names yields one row per image.
    """
    paths = catalog.list_artifact_paths()
    entries = parse_compute_images(catalog.list_compute_images())

    if filter_id is not None:
        build_ids = [validate_build_id(filter_id)]
    else:
        build_ids = build_ids_from_paths(paths)

    rows: list[CatalogRow] = []
    for build_id in build_ids:
        availability = tuple(d.remote_path(build_id) in paths for d in ARTIFACTS)
        matches = [e for e in entries if image_matches_build(e.image_name, build_id)]

        if not matches and filter_id is not None:
            logger.warning("No compute image found for build %s", build_id)
            rows.append(CatalogRow(build_id, "-", "-", None, availability))
            continue

        for entry in matches:
            hidden = entry.status is not LifecycleStatus.ACTIVE
            if hidden and not include_all and filter_id is None:
                continue
            rows.append(
                CatalogRow(
                    build_id=build_id,
                    milestone=entry.milestone,
                    family=entry.family,
                    status=entry.status,
                    availability=availability,
                )
            )
    return rows


def format_header(include_status: bool) -> str:
    header = (
        f"{'BUILD_ID':<{_BUILD_WIDTH}}"
        f"{'MILESTONE':<{_MILESTONE_WIDTH}}"
        f"{'FAMILY':<{_FAMILY_WIDTH}}"
    )
    if include_status:
        header += f"{'STATUS':<{_STATUS_WIDTH}}"
    return header + " ".join(d.column for d in ARTIFACTS)


def format_row(row: CatalogRow, include_status: bool) -> str:
    line = (
        f"{row.build_id:<{_BUILD_WIDTH}}"
        f"{row.milestone:<{_MILESTONE_WIDTH}}"
        f"{row.family:<{_FAMILY_WIDTH}}"
    )
    if include_status:
        status = row.status.abbreviation if row.status else ""
        line += f"{status:<{_STATUS_WIDTH}}"
    markers = (PRESENT_MARKER if ok else ABSENT_MARKER for ok in row.availability)
    return line + " ".join(markers)


def format_rows(
    rows: list[CatalogRow],
    include_status: bool,
    header_every: int = HEADER_EVERY,
) -> list[str]:
    """Render rows as text lines, repeating the header every header_every rows."""
    lines: list[str] = []
    for index, row in enumerate(rows):
        if index % header_every == 0:
            lines.append(format_header(include_status))
        lines.append(format_row(row, include_status))
    return lines


__all__ = [
    "HEADER_EVERY",
    "CatalogRow",
    "format_header",
    "format_row",
    "format_rows",
    "list_builds",
]
