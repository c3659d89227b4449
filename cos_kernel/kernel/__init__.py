"""Kernel artifact management module.

This module handles:
- The static table of per-build artifacts and their install layout
- Fetching, verifying and installing artifacts with resumable state
- Preparing the kernel config and driving the kernel build
- Removing installed builds
"""

from cos_kernel.kernel.registry import (
    ARTIFACTS,
    ArtifactDescriptor,
    InstallationLayout,
)
from cos_kernel.kernel.pipeline import PipelineResult, run_pipeline
from cos_kernel.kernel.splicer import splice_kernel_config
from cos_kernel.kernel.build import (
    Command,
    PrintExecutor,
    SubprocessExecutor,
    build_kernel,
)
from cos_kernel.kernel.cleanup import remove_installation

__all__ = [
    # Registry
    "ARTIFACTS",
    "ArtifactDescriptor",
    "InstallationLayout",
    # Pipeline
    "PipelineResult",
    "run_pipeline",
    "splice_kernel_config",
    # Build
    "Command",
    "PrintExecutor",
    "SubprocessExecutor",
    "build_kernel",
    # Cleanup
    "remove_installation",
]
