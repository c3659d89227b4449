"""Shared fixtures for cos_kernel tests.

Artifacts are real (tiny) archives built in the test's tmp_path and served
from a respx-mocked bucket, so the pipeline runs end to end without network.
"""

import hashlib
import io
import tarfile
from pathlib import Path

import pytest
import respx

from cos_kernel.config import Settings, make_run_config
from cos_kernel.kernel.registry import InstallationLayout

BASE_URL = "https://storage.example.com"
BUCKET = "cos-tools"
BUILD_ID = "18244.151.14"

HEADER_CONFIG = (
    "CONFIG_MODULES=y\n"
    'CONFIG_SYSTEM_TRUSTED_KEYS="certs/trusted_key.pem"\n'
    "# CONFIG_DEBUG_INFO is not set\n"
)
TRUSTED_KEY_PEM = b"-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n"


def make_tar(files: dict[str, str | bytes], mode: str = "w:gz") -> bytes:
    """Build an in-memory tar archive from a name -> content mapping."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode=mode) as tar:
        for name, content in files.items():
            data = content.encode() if isinstance(content, str) else content
            info = tarfile.TarInfo(name=name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def md5_sidecar(data: bytes) -> bytes:
    return (hashlib.md5(data).hexdigest() + "\n").encode()


def serve_bucket(
    router: respx.MockRouter,
    payloads: dict[str, bytes],
    build_id: str = BUILD_ID,
    sidecars: bool = True,
) -> None:
    """Register bucket objects on router; everything else answers 404."""
    for name, data in payloads.items():
        router.get(f"/{BUCKET}/{build_id}/{name}").respond(200, content=data)
        if sidecars:
            router.get(f"/{BUCKET}/{build_id}/{name}.md5").respond(
                200, content=md5_sidecar(data)
            )
    router.route().respond(404)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in tmp_path and pointed at the mocked bucket."""
    return Settings(
        install_dir=tmp_path / "install",
        cache_dir=tmp_path / "cache",
        os_release_path=tmp_path / "os-release",
        storage_base_url=BASE_URL,
        bucket=BUCKET,
    )


@pytest.fixture
def layout(settings: Settings) -> InstallationLayout:
    return InstallationLayout.for_build(settings.install_dir, BUILD_ID)


@pytest.fixture
def run_config(settings: Settings):
    return make_run_config(settings, BUILD_ID)


@pytest.fixture
def payloads() -> dict[str, bytes]:
    """Contents of the four artifacts of BUILD_ID."""
    return {
        "kernel-headers.tgz": make_tar(
            {
                "usr/src/linux-headers-6.6.56+/Makefile": "# headers\n",
                "usr/src/linux-headers-6.6.56+/.config": HEADER_CONFIG,
            }
        ),
        "kernel-src.tar.gz": make_tar(
            {"Makefile": "# kernel\n", "certs/Makefile": "# certs\n"}
        ),
        "trusted_key.pem": TRUSTED_KEY_PEM,
        "toolchain.tar.xz": make_tar(
            {"bin/x86_64-cros-linux-gnu-gcc": "#!/bin/sh\n"}, mode="w:xz"
        ),
    }


@pytest.fixture
def bucket(payloads: dict[str, bytes]):
    """A mocked bucket serving all artifacts with sidecars."""
    with respx.mock(base_url=BASE_URL, assert_all_called=False) as router:
        serve_bucket(router, payloads)
        yield router
