"""COS kernel tooling - fetch, verify and build Container-Optimized OS kernels.

This package downloads the kernel headers, kernel source, trusted key and
toolchain published for a COS build, verifies and installs them, and can
drive a kernel build with the installed toolchain.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
