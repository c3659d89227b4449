"""Parsers for remote catalog listings.

All pattern matching against the text returned by the catalogs lives here:
- the compute image table printed by ``gcloud compute images list``
- the artifact bucket listing, one object name per line
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from cos_kernel.buildid import is_build_id, sort_build_ids
from cos_kernel.types import CatalogEntry, LifecycleStatus

# LTS images are named cos-<milestone>-<build>-<patch>-<rev>
_LTS_IMAGE = re.compile(r"^cos-\d")

# Status tokens in the DEPRECATED column of the image table
_STATUS_TOKENS = {
    "DEPRECATED": LifecycleStatus.DEPRECATED,
    "OBSOLETE": LifecycleStatus.OBSOLETE,
    "DELETED": LifecycleStatus.OBSOLETE,
}


def parse_image_name(name: str) -> tuple[str, str] | None:
    """Extract (milestone, family) from a COS image name.

    ``cos-65-10323-104-0`` is milestone 65 of the ``lts`` family;
    ``cos-dev-72-11190-0-0`` is milestone 72 of the ``dev`` family.

    Returns:
        (milestone, family), or None for names that are not COS images.
    """
    parts = name.split("-")
    if parts[0] != "cos" or len(parts) < 3:
        return None
    if _LTS_IMAGE.match(name):
        return parts[1], "lts"
    return parts[2], parts[1]


def parse_image_row(line: str) -> CatalogEntry | None:
    """Parse one row of the compute image table."""
    fields = line.split()
    if not fields:
        return None
    name = fields[0]
    parsed = parse_image_name(name)
    if parsed is None:
        return None

    status = LifecycleStatus.ACTIVE
    for token in fields[1:]:
        if token in _STATUS_TOKENS:
            status = _STATUS_TOKENS[token]
            break

    milestone, family = parsed
    return CatalogEntry(
        image_name=name, milestone=milestone, family=family, status=status
    )


def parse_compute_images(text: str) -> list[CatalogEntry]:
    """Parse the compute image table, skipping the header and foreign rows."""
    entries = []
    for line in text.splitlines():
        entry = parse_image_row(line)
        if entry is not None:
            entries.append(entry)
    return entries


def parse_artifact_paths(text: str) -> set[str]:
    """Parse a cached bucket listing into a set of object paths."""
    return {line.strip() for line in text.splitlines() if line.strip()}


def build_ids_from_paths(paths: Iterable[str]) -> list[str]:
    """Build ids that have a directory in the bucket, in version order."""
    ids = set()
    for path in paths:
        top = path.strip("/").split("/", 1)[0]
        if is_build_id(top):
            ids.add(top)
    return sort_build_ids(ids)


def image_matches_build(image_name: str, build_id: str) -> bool:
    """Whether an image name embeds build_id with dots replaced by hyphens."""
    token = build_id.replace(".", "-")
    return re.search(rf"(?:^|-){re.escape(token)}(?:-|$)", image_name) is not None


__all__ = [
    "build_ids_from_paths",
    "image_matches_build",
    "parse_artifact_paths",
    "parse_compute_images",
    "parse_image_name",
    "parse_image_row",
]
