"""Error types for cos_kernel.

Every fatal condition raised by the package derives from CosKernelError and
carries a ``code`` string for structured handling. Soft conditions (optional
artifacts, missing checksum sidecars, missing trusted key) are never raised;
they are logged as warnings where they occur.
"""


class CosKernelError(Exception):
    """Base class for fatal cos_kernel errors."""

    def __init__(self, message: str, code: str = "cos_kernel_error") -> None:
        """Initialize CosKernelError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class InvalidBuildIdError(CosKernelError):
    """Raised when a build identifier is not of the form MAJOR.MINOR.PATCH."""

    def __init__(self, build_id: str, code: str = "invalid_build_id") -> None:
        super().__init__(f"Invalid build id: {build_id!r}", code=code)
        self.build_id = build_id


class MissingReleaseMetadataError(CosKernelError):
    """Raised when no build id was given and release metadata is unusable."""

    def __init__(self, message: str, code: str = "missing_release_metadata") -> None:
        super().__init__(message, code=code)


class CatalogUnavailableError(CosKernelError):
    """Raised when a remote catalog listing cannot be retrieved."""

    def __init__(self, message: str, code: str = "catalog_unavailable") -> None:
        super().__init__(message, code=code)


class DownloadError(CosKernelError):
    """Raised when a single remote object cannot be downloaded."""

    def __init__(self, message: str, code: str = "download_error") -> None:
        super().__init__(message, code=code)


class ArtifactFetchError(CosKernelError):
    """Raised when a mandatory artifact cannot be fetched."""

    def __init__(self, artifact: str, reason: str, code: str = "fetch_failed") -> None:
        super().__init__(f"Failed to fetch {artifact}: {reason}", code=code)
        self.artifact = artifact


class ChecksumMismatchError(CosKernelError):
    """Raised when an artifact does not match its checksum sidecar."""

    def __init__(
        self,
        artifact: str,
        expected: str,
        actual: str,
        code: str = "checksum_mismatch",
    ) -> None:
        super().__init__(
            f"Checksum mismatch for {artifact}: expected {expected}, got {actual}",
            code=code,
        )
        self.artifact = artifact
        self.expected = expected
        self.actual = actual


class ExtractionError(CosKernelError):
    """Raised when archive extraction fails."""

    def __init__(self, message: str, code: str = "extraction_error") -> None:
        super().__init__(message, code=code)


class MissingHeaderConfigError(CosKernelError):
    """Raised when the kernel headers tree ships no .config."""

    def __init__(self, headers_dir: str, code: str = "missing_header_config") -> None:
        super().__init__(f"No .config found under {headers_dir}", code=code)
        self.headers_dir = headers_dir


class BuildExecutionError(CosKernelError):
    """Raised when a build command fails to start or exits non-zero."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "build_error",
    ) -> None:
        super().__init__(message, code=code)
        self.exit_code = exit_code


__all__ = [
    "ArtifactFetchError",
    "BuildExecutionError",
    "CatalogUnavailableError",
    "ChecksumMismatchError",
    "CosKernelError",
    "DownloadError",
    "ExtractionError",
    "InvalidBuildIdError",
    "MissingHeaderConfigError",
    "MissingReleaseMetadataError",
]
