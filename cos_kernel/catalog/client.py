"""Remote catalog client.

Two read-only catalogs are queried:
- the compute image listing of the COS image project, via the gcloud CLI
- the object listing of the artifact bucket, via the storage JSON API

Both results are kept as scratch files in the cache directory and reused
while younger than the configured maximum age.
"""

from __future__ import annotations

import logging
import subprocess
import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from cos_kernel.catalog.parse import parse_artifact_paths
from cos_kernel.errors import CatalogUnavailableError

if TYPE_CHECKING:
    from cos_kernel.config import Settings

logger = logging.getLogger(__name__)

IMAGES_CACHE_NAME = "compute-images.txt"
ARTIFACTS_CACHE_NAME = "artifact-paths.txt"


def cache_files(cache_dir: Path) -> list[Path]:
    """Scratch files written by CatalogClient."""
    return [cache_dir / IMAGES_CACHE_NAME, cache_dir / ARTIFACTS_CACHE_NAME]


def is_fresh(path: Path, max_age_seconds: float, now: float | None = None) -> bool:
    """Whether path exists and was modified within max_age_seconds."""
    if not path.is_file():
        return False
    if now is None:
        now = time.time()
    return now - path.stat().st_mtime < max_age_seconds


def compose_images_command(project: str) -> list[str]:
    return [
        "gcloud",
        "compute",
        "images",
        "list",
        "--project",
        project,
        "--show-deprecated",
        "--no-standard-images",
    ]


class CatalogClient:
    """Cached access to the image and artifact catalogs."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.Client | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.cache_dir = settings.cache_dir
        self.max_age_seconds = settings.catalog_max_age_minutes * 60

    def _cached(self, name: str, produce: Callable[[], str]) -> str:
        path = self.cache_dir / name
        if is_fresh(path, self.max_age_seconds):
            logger.debug("Using cached %s", path)
            return path.read_text(encoding="utf-8")

        content = produce()
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        logger.debug("Cached %s", path)
        return content

    def list_compute_images(self) -> str:
        """Raw compute image table of the image project.

        Raises:
            CatalogUnavailableError: If gcloud is missing or fails.
        """
        return self._cached(IMAGES_CACHE_NAME, self._fetch_compute_images)

    def list_artifact_paths(self) -> set[str]:
        """All object paths in the artifact bucket.

        Raises:
            CatalogUnavailableError: If the listing request fails.
        """
        return parse_artifact_paths(
            self._cached(ARTIFACTS_CACHE_NAME, self._fetch_artifact_paths)
        )

    def _fetch_compute_images(self) -> str:
        cmd = compose_images_command(self.settings.image_project)
        logger.info("Listing compute images in %s", self.settings.image_project)
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.settings.catalog_timeout,
                check=True,
            )
        except subprocess.TimeoutExpired as e:
            raise CatalogUnavailableError(
                f"Listing compute images timed out after {e.timeout}s",
                code="timeout",
            ) from e
        except subprocess.CalledProcessError as e:
            raise CatalogUnavailableError(
                f"Listing compute images failed: {e.stderr.strip()}",
            ) from e
        except OSError as e:
            raise CatalogUnavailableError(
                f"Failed to run {cmd[0]}: {e}",
                code="execution_error",
            ) from e
        return result.stdout

    def _fetch_artifact_paths(self) -> str:
        if self.client is None:
            with httpx.Client(follow_redirects=True) as client:
                return "\n".join(self._list_objects(client)) + "\n"
        return "\n".join(self._list_objects(self.client)) + "\n"

    def _list_objects(self, client: httpx.Client) -> list[str]:
        base = self.settings.storage_base_url.rstrip("/")
        url = f"{base}/storage/v1/b/{self.settings.bucket}/o"
        params = {"fields": "items(name),nextPageToken"}
        names: list[str] = []

        logger.info("Listing objects in bucket %s", self.settings.bucket)
        try:
            while True:
                response = client.get(
                    url, params=params, timeout=self.settings.catalog_timeout
                )
                response.raise_for_status()
                data = response.json()
                names.extend(item["name"] for item in data.get("items", []))
                token = data.get("nextPageToken")
                if not token:
                    break
                params["pageToken"] = token
        except httpx.HTTPStatusError as e:
            raise CatalogUnavailableError(
                f"HTTP error listing {url}: {e.response.status_code}",
                code="http_error",
            ) from e
        except httpx.TimeoutException as e:
            raise CatalogUnavailableError(
                f"Timeout listing {url}",
                code="timeout",
            ) from e
        except httpx.RequestError as e:
            raise CatalogUnavailableError(
                f"Network error listing {url}: {e}",
                code="network_error",
            ) from e
        except (ValueError, KeyError) as e:
            raise CatalogUnavailableError(
                f"Malformed listing from {url}: {e}",
                code="malformed_listing",
            ) from e

        logger.debug("Bucket %s lists %d objects", self.settings.bucket, len(names))
        return names


__all__ = [
    "ARTIFACTS_CACHE_NAME",
    "IMAGES_CACHE_NAME",
    "CatalogClient",
    "cache_files",
    "compose_images_command",
    "is_fresh",
]
