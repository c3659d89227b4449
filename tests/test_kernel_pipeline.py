"""Tests for kernel/pipeline.py module.

These tests run the fetch, verify and install stages against a mocked
bucket and check the resulting sentinel state on disk.
"""

import gzip
import hashlib
import logging
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
import respx
from conftest import BASE_URL, BUCKET, BUILD_ID, md5_sidecar, serve_bucket

from cos_kernel.errors import ArtifactFetchError, ChecksumMismatchError
from cos_kernel.kernel.pipeline import (
    fetch_stage,
    install_stage,
    run_pipeline,
    verify_artifact,
)
from cos_kernel.kernel.registry import KERNEL_HEADERS, KERNEL_SRC, TOOLCHAIN, TRUSTED_KEY
from cos_kernel.kernel.state import installed_marker, sidecar_path, verified_marker
from cos_kernel.types import ArtifactState


def _tree(root: Path) -> set[str]:
    return {str(p.relative_to(root)) for p in root.rglob("*")}


class TestRunPipeline:
    """Tests for a full pipeline run."""

    def test_installs_all_artifacts(self, bucket, run_config, layout):
        """Should fetch, verify and install every artifact."""
        result = run_pipeline(run_config)

        assert result.build_id == BUILD_ID
        assert all(s is ArtifactState.INSTALLED for s in result.states.values())
        assert result.missing == []

        headers = layout.kernel_headers_dir / "usr/src/linux-headers-6.6.56+"
        assert (headers / "Makefile").exists()
        assert (layout.kernel_src_dir / "Makefile").exists()
        assert (layout.toolchain_dir / "bin/x86_64-cros-linux-gnu-gcc").exists()
        assert (layout.kernel_src_dir / "certs/trusted_key.pem").exists()

        for descriptor in (KERNEL_HEADERS, KERNEL_SRC, TRUSTED_KEY, TOOLCHAIN):
            path = layout.artifact_path(descriptor)
            assert verified_marker(path).exists()
            assert installed_marker(path).exists()

    def test_points_kernel_symlink_at_build(self, bucket, run_config, layout):
        """Should link cos-kernel-src/kernel to the extracted build."""
        run_pipeline(run_config)

        link = layout.kernel_symlink
        assert link.is_symlink()
        assert link.resolve() == layout.kernel_src_dir.resolve()

    def test_replaces_existing_kernel_symlink(self, bucket, run_config, layout):
        """Should repoint a symlink left by another build."""
        other = layout.install_dir / "cos-kernel-src" / "1.2.3"
        other.mkdir(parents=True)
        layout.kernel_symlink.symlink_to("1.2.3")

        run_pipeline(run_config)

        assert layout.kernel_symlink.resolve() == layout.kernel_src_dir.resolve()

    def test_splices_header_config(self, bucket, run_config, layout):
        """Should copy the headers .config and keep the trusted key option."""
        run_pipeline(run_config)

        config = (layout.kernel_src_dir / ".config").read_text()
        assert 'CONFIG_SYSTEM_TRUSTED_KEYS="certs/trusted_key.pem"' in config
        assert not (layout.kernel_src_dir / ".config.orig").exists()

    def test_rerun_is_idempotent(self, bucket, run_config):
        """A second run should make no requests and extract nothing."""
        run_pipeline(run_config)
        calls_before = bucket.calls.call_count

        with patch("cos_kernel.kernel.pipeline.extract_archive") as extract:
            result = run_pipeline(run_config)

        assert bucket.calls.call_count == calls_before
        extract.assert_not_called()
        assert all(s is ArtifactState.INSTALLED for s in result.states.values())

    def test_missing_artifact_with_stale_markers_is_refetched(
        self, bucket, run_config, layout
    ):
        """Deleting an artifact should drop its markers and fetch it again."""
        run_pipeline(run_config)
        src = layout.artifact_path(KERNEL_SRC)
        src.unlink()
        (layout.kernel_src_dir / "Makefile").unlink()
        calls_before = bucket.calls.call_count

        result = run_pipeline(run_config)

        assert src.exists()
        assert bucket.calls.call_count > calls_before
        assert result.states[KERNEL_SRC.name] is ArtifactState.INSTALLED
        assert (layout.kernel_src_dir / "Makefile").exists()

    def test_rerun_after_checksum_mismatch_refetches(
        self, payloads, run_config, layout
    ):
        """A corrupted download is discarded, so the next run can recover."""
        headers = payloads["kernel-headers.tgz"]
        others = {k: v for k, v in payloads.items() if k != "kernel-headers.tgz"}
        headers_url = f"/{BUCKET}/{BUILD_ID}/kernel-headers.tgz"
        with respx.mock(base_url=BASE_URL, assert_all_called=False) as router:
            router.get(headers_url).respond(200, content=b"corrupted")
            router.get(headers_url + ".md5").respond(200, content=md5_sidecar(headers))
            serve_bucket(router, others)
            with pytest.raises(ChecksumMismatchError):
                run_pipeline(run_config)

        assert not layout.artifact_path(KERNEL_HEADERS).exists()

        with respx.mock(base_url=BASE_URL, assert_all_called=False) as router:
            serve_bucket(router, payloads)
            result = run_pipeline(run_config)

        assert all(s is ArtifactState.INSTALLED for s in result.states.values())
        assert layout.artifact_path(KERNEL_HEADERS).read_bytes() == headers

    def test_optional_artifacts_may_be_missing(self, payloads, run_config, layout):
        """Should warn about optional artifacts and disable the trusted key."""
        available = {
            name: data
            for name, data in payloads.items()
            if name not in ("trusted_key.pem", "toolchain.tar.xz")
        }
        with respx.mock(base_url=BASE_URL, assert_all_called=False) as router:
            serve_bucket(router, available)
            result = run_pipeline(run_config)

        assert result.states[TRUSTED_KEY.name] is ArtifactState.ABSENT
        assert result.states[TOOLCHAIN.name] is ArtifactState.ABSENT
        assert sorted(result.missing) == sorted([TRUSTED_KEY.name, TOOLCHAIN.name])
        assert not layout.toolchain_dir.exists()

        config = (layout.kernel_src_dir / ".config").read_text()
        assert 'CONFIG_SYSTEM_TRUSTED_KEYS=""' in config
        assert (layout.kernel_src_dir / ".config.orig").exists()
        assert (layout.kernel_src_dir / ".config.diff").exists()

    def test_mandatory_artifact_missing_raises(self, payloads, run_config, layout):
        """Should abort when the kernel source cannot be fetched."""
        available = {k: v for k, v in payloads.items() if k != "kernel-src.tar.gz"}
        with respx.mock(base_url=BASE_URL, assert_all_called=False) as router:
            serve_bucket(router, available)
            with pytest.raises(ArtifactFetchError) as exc_info:
                run_pipeline(run_config)

        assert exc_info.value.artifact == KERNEL_SRC.name
        assert exc_info.value.code == "http_error"
        assert layout.artifact_path(KERNEL_HEADERS).exists()
        assert not layout.artifact_path(KERNEL_SRC).exists()

    def test_missing_sidecars_skip_verification(
        self, payloads, run_config, layout, caplog
    ):
        """Artifacts without sidecars should install unverified with a warning."""
        with respx.mock(base_url=BASE_URL, assert_all_called=False) as router:
            serve_bucket(router, payloads, sidecars=False)
            with caplog.at_level(logging.WARNING):
                result = run_pipeline(run_config)

        assert all(s is ArtifactState.INSTALLED for s in result.states.values())
        headers = layout.artifact_path(KERNEL_HEADERS)
        assert not sidecar_path(headers).exists()
        assert not verified_marker(headers).exists()
        assert "No checksum available for kernel-headers" in caplog.text

    def test_no_extract_stops_after_verification(self, bucket, run_config, layout):
        """With extract disabled nothing is installed."""
        result = run_pipeline(replace(run_config, extract=False))

        assert all(s is ArtifactState.VERIFIED for s in result.states.values())
        assert not layout.kernel_headers_dir.exists()
        assert not (layout.kernel_src_dir / ".config").exists()

    def test_explicit_gzip_kernel_config(self, bucket, run_config, layout, tmp_path):
        """Should decompress a /proc/config.gz style kernel config."""
        config_gz = tmp_path / "config.gz"
        config_gz.write_bytes(gzip.compress(b"CONFIG_LOCALVERSION=\"-custom\"\n"))

        run_pipeline(replace(run_config, kernel_config=config_gz))

        config = (layout.kernel_src_dir / ".config").read_text()
        assert config == 'CONFIG_LOCALVERSION="-custom"\n'

    def test_remove_all_then_fetch_matches_fresh_install(
        self, bucket, settings, run_config, tmp_path
    ):
        """Cleanup followed by a fetch should recreate the fresh layout."""
        from cos_kernel.config import make_run_config
        from cos_kernel.kernel.cleanup import remove_installation

        fresh_settings = settings.model_copy(update={"install_dir": tmp_path / "fresh"})
        run_pipeline(make_run_config(fresh_settings, BUILD_ID))

        run_pipeline(run_config)
        remove_installation(settings.install_dir, settings.cache_dir, remove_all=True)
        run_pipeline(run_config)

        assert _tree(settings.install_dir) == _tree(tmp_path / "fresh")


class TestStages:
    """Tests for individual pipeline stages."""

    def test_checksum_mismatch_is_fatal(self, bucket, settings, layout):
        """Should raise and leave no verified marker on a bad sidecar."""
        with httpx.Client() as client:
            fetch_stage(client, settings, layout)
        path = layout.artifact_path(KERNEL_HEADERS)
        sidecar_path(path).write_text("0" * 32 + "\n")

        with pytest.raises(ChecksumMismatchError) as exc_info:
            verify_artifact(layout, KERNEL_HEADERS)

        assert exc_info.value.expected == "0" * 32
        assert not verified_marker(path).exists()
        assert not path.exists()
        assert not sidecar_path(path).exists()

    def test_installed_artifact_without_marker_is_verified(self, layout):
        """An installed artifact with a sidecar but no marker is checked."""
        path = layout.artifact_path(KERNEL_HEADERS)
        path.parent.mkdir(parents=True)
        path.write_bytes(b"headers")
        sidecar_path(path).write_text(hashlib.md5(b"headers").hexdigest() + "\n")
        installed_marker(path).touch()

        state = verify_artifact(layout, KERNEL_HEADERS)

        assert state is ArtifactState.INSTALLED
        assert verified_marker(path).exists()

    def test_sidecar_comparison_is_case_insensitive(self, layout):
        """Should accept an upper-case digest followed by a filename."""
        path = layout.artifact_path(KERNEL_HEADERS)
        path.parent.mkdir(parents=True)
        path.write_bytes(b"headers")
        digest = hashlib.md5(b"headers").hexdigest().upper()
        sidecar_path(path).write_text(f"{digest}  kernel-headers.tgz\n")

        state = verify_artifact(layout, KERNEL_HEADERS)

        assert state is ArtifactState.VERIFIED
        assert verified_marker(path).exists()

    def test_install_skips_absent_artifacts(self, layout):
        """Install stage should do nothing when nothing was fetched."""
        install_stage(layout)

        assert not layout.kernel_headers_dir.exists()
        assert not layout.kernel_symlink.exists()
