"""Removal of installed artifacts and catalog caches."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from cos_kernel.catalog.client import cache_files
from cos_kernel.kernel.registry import InstallationLayout, category_roots

logger = logging.getLogger(__name__)


def _remove_path(path: Path) -> bool:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)
    else:
        return False
    logger.info("Removed %s", path)
    return True


def remove_installation(
    install_dir: Path,
    cache_dir: Path,
    layout: InstallationLayout | None = None,
    remove_all: bool = False,
) -> list[Path]:
    """Delete installed artifacts and cached catalog listings.

    Args:
        install_dir: Install root.
        cache_dir: Catalog scratch cache directory.
        layout: Layout of the build to remove; required unless remove_all.
        remove_all: Remove every build's category directories.

    Returns:
        Paths that were actually removed. Missing paths are ignored, so
        calling this twice is harmless.
    """
    if remove_all:
        targets = category_roots(install_dir)
    elif layout is None:
        raise ValueError("remove_installation needs a layout unless remove_all is set")
    else:
        targets = layout.build_dirs()
        link = layout.kernel_symlink
        # The kernel symlink only goes if it points at the removed build
        if link.is_symlink() and Path(link.readlink()).name == layout.build_id:
            targets.append(link)

    targets.extend(cache_files(cache_dir))
    return [path for path in targets if _remove_path(path)]


__all__ = ["remove_installation"]
