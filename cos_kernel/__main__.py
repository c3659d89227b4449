"""Allow running the CLI with ``python -m cos_kernel``."""

from cos_kernel.cli import run

run()
