"""Artifact descriptors and installation layout.

The four artifacts published per COS build are described once here. The
order of ARTIFACTS is the processing order of every pipeline stage and the
column order of catalog listings.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from cos_kernel.types import ArtifactKind

# Top-level install category directories, one per artifact category
FETCHED_CATEGORY = "fetched-files"
KERNEL_HEADERS_CATEGORY = "cos-kernel-headers"
KERNEL_SRC_CATEGORY = "cos-kernel-src"
TOOLCHAIN_CATEGORY = "cos-toolchain"

CATEGORIES = (
    FETCHED_CATEGORY,
    KERNEL_HEADERS_CATEGORY,
    KERNEL_SRC_CATEGORY,
    TOOLCHAIN_CATEGORY,
)

# Symlink created next to the per-build kernel source directories
KERNEL_SYMLINK_NAME = "kernel"


@dataclass(frozen=True)
class ArtifactDescriptor:
    """Static description of one fetchable artifact.

    Attributes:
        name: Logical name used in logs and messages.
        remote_filename: Object name under ``<bucket>/<build_id>/``.
        category: Install category directory the artifact lands in.
        optional: Whether a failed fetch is tolerated.
        kind: Whether the artifact is extracted or copied.
        column: Three-character label for catalog listings.
        install_subpath: Subdirectory of the category directory to install
            into (plain files only).
    """

    name: str
    remote_filename: str
    category: str
    optional: bool
    kind: ArtifactKind
    column: str
    install_subpath: str = ""

    def remote_path(self, build_id: str) -> str:
        """Object path relative to the bucket root."""
        return f"{build_id}/{self.remote_filename}"


KERNEL_HEADERS = ArtifactDescriptor(
    name="kernel-headers",
    remote_filename="kernel-headers.tgz",
    category=KERNEL_HEADERS_CATEGORY,
    optional=False,
    kind=ArtifactKind.ARCHIVE,
    column="hdr",
)
KERNEL_SRC = ArtifactDescriptor(
    name="kernel-src",
    remote_filename="kernel-src.tar.gz",
    category=KERNEL_SRC_CATEGORY,
    optional=False,
    kind=ArtifactKind.ARCHIVE,
    column="src",
)
TRUSTED_KEY = ArtifactDescriptor(
    name="trusted-key",
    remote_filename="trusted_key.pem",
    category=KERNEL_SRC_CATEGORY,
    optional=True,
    kind=ArtifactKind.FILE,
    column="key",
    install_subpath="certs",
)
TOOLCHAIN = ArtifactDescriptor(
    name="toolchain",
    remote_filename="toolchain.tar.xz",
    category=TOOLCHAIN_CATEGORY,
    optional=True,
    kind=ArtifactKind.ARCHIVE,
    column="tch",
)

ARTIFACTS: tuple[ArtifactDescriptor, ...] = (
    KERNEL_HEADERS,
    KERNEL_SRC,
    TRUSTED_KEY,
    TOOLCHAIN,
)


@dataclass(frozen=True)
class InstallationLayout:
    """Directories used for one build id under an install root."""

    install_dir: Path
    build_id: str

    @classmethod
    def for_build(cls, install_dir: Path, build_id: str) -> InstallationLayout:
        return cls(install_dir=install_dir.absolute(), build_id=build_id)

    def category_dir(self, category: str) -> Path:
        return self.install_dir / category / self.build_id

    @property
    def fetched_dir(self) -> Path:
        return self.category_dir(FETCHED_CATEGORY)

    @property
    def kernel_headers_dir(self) -> Path:
        return self.category_dir(KERNEL_HEADERS_CATEGORY)

    @property
    def kernel_src_dir(self) -> Path:
        return self.category_dir(KERNEL_SRC_CATEGORY)

    @property
    def toolchain_dir(self) -> Path:
        return self.category_dir(TOOLCHAIN_CATEGORY)

    @property
    def kernel_symlink(self) -> Path:
        return self.install_dir / KERNEL_SRC_CATEGORY / KERNEL_SYMLINK_NAME

    def build_dirs(self) -> list[Path]:
        """The four per-build directories, in category order."""
        return [self.category_dir(c) for c in CATEGORIES]

    def artifact_path(self, descriptor: ArtifactDescriptor) -> Path:
        """Local path of the fetched artifact file."""
        return self.fetched_dir / descriptor.remote_filename

    def install_target(self, descriptor: ArtifactDescriptor) -> Path:
        """Directory the artifact is extracted or copied into."""
        target = self.category_dir(descriptor.category)
        if descriptor.install_subpath:
            target = target / descriptor.install_subpath
        return target


def category_roots(install_dir: Path) -> list[Path]:
    """Top-level category directories spanning all build ids."""
    return [install_dir / c for c in CATEGORIES]


__all__ = [
    "ARTIFACTS",
    "CATEGORIES",
    "KERNEL_HEADERS",
    "KERNEL_SRC",
    "TOOLCHAIN",
    "TRUSTED_KEY",
    "ArtifactDescriptor",
    "InstallationLayout",
    "category_roots",
]
