"""Remote catalog module.

This module handles:
- Querying the compute image catalog and the artifact bucket listing
- Caching both listings as short-lived scratch files
- Parsing the listings into structured records
- Joining them into the table of available builds
"""

from cos_kernel.catalog.client import CatalogClient, cache_files
from cos_kernel.catalog.lister import CatalogRow, format_rows, list_builds
from cos_kernel.catalog.parse import (
    build_ids_from_paths,
    parse_compute_images,
    parse_image_name,
)

__all__ = [
    "CatalogClient",
    "CatalogRow",
    "build_ids_from_paths",
    "cache_files",
    "format_rows",
    "list_builds",
    "parse_compute_images",
    "parse_image_name",
]
