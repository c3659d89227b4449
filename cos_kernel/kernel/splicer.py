"""Kernel configuration splicing.

After the kernel headers and source are installed, the source tree needs a
``.config``. It comes from an operator-supplied file (plain or gzip
compressed, as exposed in /proc/config.gz) or from the config shipped in the
kernel headers. The config's trusted-keys option is then reconciled with
whether the trusted key could be fetched.
"""

from __future__ import annotations

import difflib
import gzip
import logging
import re
import shutil
from pathlib import Path

from cos_kernel.errors import MissingHeaderConfigError
from cos_kernel.kernel.registry import TRUSTED_KEY, InstallationLayout
from cos_kernel.kernel.state import has_artifact

logger = logging.getLogger(__name__)

TRUSTED_KEYS_OPTION = "CONFIG_SYSTEM_TRUSTED_KEYS"

# Path of the trusted key relative to the kernel source root
TRUSTED_KEY_CERT_PATH = f"{TRUSTED_KEY.install_subpath}/{TRUSTED_KEY.remote_filename}"

GZIP_MAGIC = b"\x1f\x8b"

_TRUSTED_KEY_LINE = re.compile(
    rf'^({TRUSTED_KEYS_OPTION}=)"{re.escape(TRUSTED_KEY_CERT_PATH)}"',
    re.MULTILINE,
)


def _read(path: Path) -> str:
    return path.read_bytes().decode("utf-8", errors="surrogateescape")


def _write(path: Path, text: str) -> None:
    path.write_bytes(text.encode("utf-8", errors="surrogateescape"))


def materialize_config(source: Path, dest: Path) -> None:
    """Copy a kernel config to dest, decompressing gzip input."""
    with source.open("rb") as f:
        compressed = f.read(2) == GZIP_MAGIC

    if compressed:
        logger.info("Decompressing kernel config %s to %s", source, dest)
        with gzip.open(source, "rb") as src, dest.open("wb") as out:
            shutil.copyfileobj(src, out)
    else:
        logger.info("Copying kernel config %s to %s", source, dest)
        shutil.copyfile(source, dest)


def find_header_config(headers_dir: Path) -> Path:
    """Locate the .config shipped inside an extracted kernel headers tree.

    Raises:
        MissingHeaderConfigError: If the tree has no .config.
    """
    candidates = sorted(p for p in headers_dir.rglob(".config") if p.is_file())
    if not candidates:
        raise MissingHeaderConfigError(str(headers_dir))
    if len(candidates) > 1:
        logger.debug("Several header configs found, using %s", candidates[0])
    return candidates[0]


def references_trusted_key(config_text: str) -> bool:
    """Whether the config points the trusted-keys option at the trusted key."""
    return _TRUSTED_KEY_LINE.search(config_text) is not None


def disable_trusted_keys(config_text: str) -> str:
    """Blank out the trusted-keys option, leaving every other line as is."""
    return _TRUSTED_KEY_LINE.sub(r'\1""', config_text)


def reconcile_trusted_key(layout: InstallationLayout, config_path: Path) -> bool:
    """Make the kernel config and the fetched trusted key agree.

    Args:
        layout: Installation layout of the build.
        config_path: The kernel source tree's .config.

    Returns:
        True if the config was rewritten to disable the trusted keys option.
    """
    text = _read(config_path)
    if not references_trusted_key(text):
        return False

    key_path = layout.artifact_path(TRUSTED_KEY)
    if has_artifact(key_path):
        cert = layout.kernel_src_dir / TRUSTED_KEY_CERT_PATH
        if not cert.exists():
            cert.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(key_path, cert)
            logger.info("Copied trusted key to %s", cert)
        return False

    logger.warning(
        "%s references %s but no trusted key was fetched; disabling it",
        TRUSTED_KEYS_OPTION,
        TRUSTED_KEY_CERT_PATH,
    )
    backup = config_path.with_name(config_path.name + ".orig")
    diff_path = config_path.with_name(config_path.name + ".diff")
    shutil.copyfile(config_path, backup)

    new_text = disable_trusted_keys(text)
    diff = difflib.unified_diff(
        text.splitlines(keepends=True),
        new_text.splitlines(keepends=True),
        fromfile=str(backup),
        tofile=str(config_path),
    )
    _write(diff_path, "".join(diff))
    _write(config_path, new_text)
    logger.info("Previous config saved to %s, changes in %s", backup, diff_path)
    return True


def splice_kernel_config(
    layout: InstallationLayout,
    kernel_config: Path | None = None,
) -> Path:
    """Provide the kernel source tree with a reconciled .config.

    Args:
        layout: Installation layout with headers and source installed.
        kernel_config: Operator-supplied config to use instead of the
            headers' one.

    Returns:
        Path of the kernel source .config.

    Raises:
        MissingHeaderConfigError: If a config must come from the headers
            and none is present there.
    """
    config_path = layout.kernel_src_dir / ".config"

    if kernel_config is not None:
        materialize_config(kernel_config, config_path)
    elif not config_path.exists():
        header_config = find_header_config(layout.kernel_headers_dir)
        logger.info("Using kernel config from %s", header_config)
        shutil.copyfile(header_config, config_path)
    else:
        logger.debug("Keeping existing %s", config_path)

    reconcile_trusted_key(layout, config_path)
    return config_path


__all__ = [
    "TRUSTED_KEYS_OPTION",
    "TRUSTED_KEY_CERT_PATH",
    "disable_trusted_keys",
    "find_header_config",
    "materialize_config",
    "reconcile_trusted_key",
    "references_trusted_key",
    "splice_kernel_config",
]
