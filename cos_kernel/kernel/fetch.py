"""Artifact transfer primitives.

This module handles:
- URL construction for objects in the artifact bucket
- Streaming downloads that never leave partial or empty files behind
- MD5 checksums and sidecar parsing
- Safe archive extraction
"""

from __future__ import annotations

import hashlib
import logging
import os
import tarfile
import tempfile
from pathlib import Path

import httpx

from cos_kernel.errors import DownloadError, ExtractionError

logger = logging.getLogger(__name__)

# Timeout for downloads (seconds)
DOWNLOAD_TIMEOUT = 3600

# Chunk size for downloads and hashing (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB

# Archive suffixes and the tarfile modes that read them
_ARCHIVE_MODES = {
    ".tar.gz": "r:gz",
    ".tgz": "r:gz",
    ".tar.xz": "r:xz",
    ".tar": "r:",
}


def object_url(base_url: str, bucket: str, remote_path: str) -> str:
    """Build the HTTP URL of an object in the artifact bucket.

    Args:
        base_url: Object storage HTTP endpoint.
        bucket: Bucket name.
        remote_path: Object path relative to the bucket root.

    Returns:
        Download URL.
    """
    return f"{base_url.rstrip('/')}/{bucket}/{remote_path}"


def compute_file_md5(file_path: Path, chunk_size: int = DOWNLOAD_CHUNK_SIZE) -> str:
    """Compute MD5 checksum of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks to read.

    Returns:
        MD5 hex digest.
    """
    md5 = hashlib.md5()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            md5.update(chunk)
    return md5.hexdigest()


def read_checksum_sidecar(sidecar_path: Path) -> str:
    """Read the hex digest from a checksum sidecar.

    The first whitespace-separated token is the digest; a trailing filename,
    as written by md5sum, is ignored.
    """
    content = sidecar_path.read_text(encoding="utf-8").split()
    return content[0].lower() if content else ""


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> int:
    """Download a file, replacing dest_path only on success.

    The body is streamed into a temporary file next to dest_path and renamed
    into place once the transfer completed with a non-empty body.

    Args:
        client: HTTPX client instance.
        url: URL to download from.
        dest_path: Destination path for the downloaded file.
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to download.

    Returns:
        Number of bytes written.

    Raises:
        DownloadError: If the transfer fails or yields an empty body.
    """
    logger.info("Downloading %s to %s", url, dest_path)
    dest_path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=dest_path.parent, suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        total_bytes = 0
        with os.fdopen(fd, "wb") as f, client.stream(
            "GET", url, timeout=timeout
        ) as response:
            response.raise_for_status()
            for chunk in response.iter_bytes(chunk_size):
                f.write(chunk)
                total_bytes += len(chunk)

        if total_bytes == 0:
            raise DownloadError(f"Empty response from {url}", code="empty_file")

        tmp_path.replace(dest_path)
        logger.debug("Downloaded %s (%d bytes)", dest_path.name, total_bytes)
        return total_bytes

    except httpx.HTTPStatusError as e:
        raise DownloadError(
            f"HTTP error downloading {url}: {e.response.status_code} {e.response.reason_phrase}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise DownloadError(
            f"Timeout downloading {url}",
            code="timeout",
        ) from e
    except httpx.RequestError as e:
        raise DownloadError(
            f"Network error downloading {url}: {e}",
            code="network_error",
        ) from e
    finally:
        tmp_path.unlink(missing_ok=True)


def _archive_mode(archive_path: Path) -> str:
    name = archive_path.name.lower()
    for suffix, mode in _ARCHIVE_MODES.items():
        if name.endswith(suffix):
            return mode
    raise ExtractionError(
        f"Unsupported archive format: {archive_path.name}",
        code="unsupported_format",
    )


def extract_archive(archive_path: Path, dest_dir: Path) -> Path:
    """Extract an artifact archive into dest_dir.

    Args:
        archive_path: Path to the archive file.
        dest_dir: Destination directory for extraction.

    Returns:
        dest_dir.

    Raises:
        ExtractionError: If the archive is unreadable, empty, or unsafe.
    """
    logger.info("Extracting %s to %s", archive_path.name, dest_dir)
    mode = _archive_mode(archive_path)
    dest_dir.mkdir(parents=True, exist_ok=True)

    try:
        with tarfile.open(archive_path, mode) as tar:
            members = tar.getmembers()
            if not members:
                raise ExtractionError(
                    f"Archive {archive_path} is empty",
                    code="empty_archive",
                )

            for member in members:
                # Security: prevent path traversal
                member_path = Path(member.name)
                if member_path.is_absolute() or ".." in member_path.parts:
                    raise ExtractionError(
                        f"Refusing to extract {member.name}: path traversal detected",
                        code="path_traversal",
                    )

            tar.extractall(dest_dir, filter="data")

    except tarfile.TarError as e:
        raise ExtractionError(
            f"Failed to extract {archive_path}: {e}",
            code="tar_error",
        ) from e
    except OSError as e:
        raise ExtractionError(
            f"OS error extracting {archive_path}: {e}",
            code="os_error",
        ) from e

    return dest_dir


__all__ = [
    "DOWNLOAD_CHUNK_SIZE",
    "DOWNLOAD_TIMEOUT",
    "compute_file_md5",
    "download_file",
    "extract_archive",
    "object_url",
    "read_checksum_sidecar",
]
