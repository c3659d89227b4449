"""Build identifier resolution.

A COS build identifier is a three-component dotted version string such as
``16919.235.1``. It is taken from the command line when given, otherwise from
the ``BUILD_ID`` key of the local release-metadata file.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from cos_kernel.errors import InvalidBuildIdError, MissingReleaseMetadataError

logger = logging.getLogger(__name__)

BUILD_ID_PATTERN = re.compile(r"\d+\.\d+\.\d+", re.ASCII)

# Key in /etc/os-release carrying the build identifier
RELEASE_BUILD_ID_KEY = "BUILD_ID"


def validate_build_id(build_id: str) -> str:
    """Return build_id unchanged if it has the MAJOR.MINOR.PATCH shape.

    Raises:
        InvalidBuildIdError: If the string does not match exactly.
    """
    if not BUILD_ID_PATTERN.fullmatch(build_id):
        raise InvalidBuildIdError(build_id)
    return build_id


def is_build_id(value: str) -> bool:
    """Check whether value has the build identifier shape."""
    return BUILD_ID_PATTERN.fullmatch(value) is not None


def parse_release_metadata(content: str) -> dict[str, str]:
    """Parse KEY=VALUE release metadata, stripping optional quotes.

    Args:
        content: Text of an os-release style file.

    Returns:
        Mapping of keys to values. Comments and malformed lines are skipped.
    """
    values: dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        values[key.strip()] = value
    return values


def resolve_build_id(
    explicit_id: str | None,
    release_path: Path = Path("/etc/os-release"),
) -> str:
    """Determine the build identifier for this run.

    Args:
        explicit_id: Build id supplied by the caller, if any.
        release_path: Release-metadata file consulted when explicit_id is None.

    Returns:
        Validated build identifier.

    Raises:
        InvalidBuildIdError: If the id does not have the expected shape.
        MissingReleaseMetadataError: If no id was given and the metadata file
            is missing or has no BUILD_ID.
    """
    if explicit_id is not None:
        return validate_build_id(explicit_id)

    if not release_path.is_file():
        raise MissingReleaseMetadataError(
            f"No build id given and {release_path} does not exist"
        )

    metadata = parse_release_metadata(release_path.read_text(encoding="utf-8"))
    build_id = metadata.get(RELEASE_BUILD_ID_KEY)
    if not build_id:
        raise MissingReleaseMetadataError(
            f"{release_path} has no {RELEASE_BUILD_ID_KEY} entry"
        )

    logger.debug("Using build id %s from %s", build_id, release_path)
    return validate_build_id(build_id)


def version_key(build_id: str) -> tuple[int, int, int]:
    """Sort key comparing build ids component-wise as integers."""
    major, minor, patch = build_id.split(".")
    return int(major), int(minor), int(patch)


def sort_build_ids(build_ids: list[str] | set[str]) -> list[str]:
    """Deduplicate and sort build ids in ascending version order."""
    return sorted(set(build_ids), key=version_key)


__all__ = [
    "BUILD_ID_PATTERN",
    "is_build_id",
    "parse_release_metadata",
    "resolve_build_id",
    "sort_build_ids",
    "validate_build_id",
    "version_key",
]
