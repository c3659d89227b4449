"""Kernel build driver.

This module handles:
- Composing the make invocations for a COS kernel tree
- Deriving the build environment from the installed toolchain
- Executing commands, or only printing them for a dry run

Commands are handed to a CommandExecutor. SubprocessExecutor runs them;
PrintExecutor writes the exact text SubprocessExecutor would log.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from cos_kernel.errors import BuildExecutionError
from cos_kernel.kernel.pipeline import run_pipeline
from cos_kernel.kernel.registry import InstallationLayout

if TYPE_CHECKING:
    import httpx

    from cos_kernel.config import RunConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Command:
    """A process invocation: argv, working directory, environment overrides."""

    argv: tuple[str, ...]
    cwd: Path
    env: dict[str, str] = field(default_factory=dict)

    def render(self) -> str:
        """Shell text equivalent to running this command."""
        env_part = " ".join(
            f"{key}={shlex.quote(value)}" for key, value in sorted(self.env.items())
        )
        cmd = shlex.join(self.argv)
        if env_part:
            cmd = f"{env_part} {cmd}"
        return f"cd {shlex.quote(str(self.cwd))} && {cmd}"


class CommandExecutor(Protocol):
    def run(self, command: Command) -> None: ...


class SubprocessExecutor:
    """Runs commands with subprocess, failing on a non-zero exit."""

    def run(self, command: Command) -> None:
        logger.info("Executing: %s", command.render())
        env = dict(os.environ)
        env.update(command.env)
        try:
            result = subprocess.run(
                list(command.argv),
                cwd=command.cwd,
                env=env,
                check=False,
            )
        except OSError as e:
            raise BuildExecutionError(
                f"Failed to execute {command.argv[0]}: {e}",
                code="execution_error",
            ) from e

        if result.returncode != 0:
            raise BuildExecutionError(
                f"{shlex.join(command.argv)} failed with exit code {result.returncode}",
                exit_code=result.returncode,
            )


class PrintExecutor:
    """Emits the rendered commands instead of running them."""

    def __init__(self, emit: Callable[[str], None] = print) -> None:
        self.emit = emit

    def run(self, command: Command) -> None:
        self.emit(command.render())


def make_jobs(cpu_count: int | None = None) -> int:
    """Parallel make jobs: twice the available processing units."""
    if cpu_count is None:
        cpu_count = os.cpu_count() or 1
    return 2 * cpu_count


def build_environment(
    layout: InstallationLayout,
    base_path: str | None = None,
) -> dict[str, str]:
    """Environment overrides putting the toolchain first on PATH."""
    if base_path is None:
        base_path = os.environ.get("PATH", "")
    toolchain_bin = str(layout.toolchain_dir / "bin")
    path = f"{toolchain_bin}{os.pathsep}{base_path}" if base_path else toolchain_bin
    return {"PATH": path}


def compose_make_commands(
    layout: InstallationLayout,
    cross_compile: str,
    make_verbose: bool = False,
    jobs: int | None = None,
    base_path: str | None = None,
) -> list[Command]:
    """Compose the config refresh and the parallel kernel build.

    Args:
        layout: Installation layout of the build.
        cross_compile: Cross-compilation prefix for CROSS_COMPILE.
        make_verbose: Append V=1 for verbose make output.
        jobs: Parallel job count; defaults to make_jobs().
        base_path: PATH to extend; defaults to the current PATH.

    Returns:
        Commands in execution order.
    """
    if jobs is None:
        jobs = make_jobs()
    env = build_environment(layout, base_path)
    common = [f"CROSS_COMPILE={cross_compile}"]
    if make_verbose:
        common.append("V=1")

    return [
        Command(
            argv=("make", "olddefconfig", *common),
            cwd=layout.kernel_src_dir,
            env=env,
        ),
        Command(
            argv=("make", f"-j{jobs}", *common),
            cwd=layout.kernel_src_dir,
            env=env,
        ),
    ]


def build_kernel(
    config: RunConfig,
    executor: CommandExecutor | None = None,
    client: httpx.Client | None = None,
) -> list[Command]:
    """Prepare the build's artifacts and build the kernel.

    Args:
        config: Run configuration with build id and layout set.
        executor: Command executor; chosen from config.print_only when omitted.
        client: Optional HTTPX client for the pipeline.

    Returns:
        The commands that were executed or printed.

    Raises:
        BuildExecutionError: If a build command fails.
    """
    if config.layout is None:
        raise ValueError("build_kernel requires a build id")

    # A build always needs the extracted tree
    run_pipeline(replace(config, extract=True), client=client)

    if executor is None:
        executor = PrintExecutor() if config.print_only else SubprocessExecutor()

    commands = compose_make_commands(
        config.layout,
        config.settings.cross_compile,
        make_verbose=config.make_verbose,
    )
    for command in commands:
        executor.run(command)
    return commands


__all__ = [
    "Command",
    "CommandExecutor",
    "PrintExecutor",
    "SubprocessExecutor",
    "build_environment",
    "build_kernel",
    "compose_make_commands",
    "make_jobs",
]
