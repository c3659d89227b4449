"""Thin CLI wrapper for cos_kernel.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
from pathlib import Path
from typing import Annotated, NoReturn

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from cos_kernel import __version__
from cos_kernel.buildid import resolve_build_id, validate_build_id
from cos_kernel.config import Settings, get_settings, make_run_config, print_settings_json
from cos_kernel.errors import CosKernelError

app = typer.Typer(
    name="cos-kernel",
    help="COS kernel tool - fetch, verify and build Container-Optimized OS kernels",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

BuildIdArg = Annotated[
    str | None,
    typer.Argument(help="COS build id (defaults to BUILD_ID from os-release)"),
]
KernelConfigOpt = Annotated[
    Path | None,
    typer.Option(
        "--kernel-config",
        "-c",
        help="Kernel config to use (plain or gzip compressed)",
        exists=True,
        dir_okay=False,
    ),
]


def configure_logging(level: str) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[
            RichHandler(console=err_console, show_time=False, show_path=False)
        ],
        force=True,
    )


def _fail(error: CosKernelError | OSError) -> NoReturn:
    console.print(f"[red]Error: {escape(str(error))}[/red]")
    raise typer.Exit(code=1)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"cos-kernel version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    install_dir: Annotated[
        Path | None,
        typer.Option(
            "--dir",
            "-d",
            help="Install root (default: current directory)",
            file_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """COS kernel tool - fetch, verify and build Container-Optimized OS kernels."""
    settings = get_settings()
    if install_dir is not None:
        settings = settings.model_copy(update={"install_dir": install_dir})
    configure_logging("DEBUG" if verbose else settings.log_level)
    ctx.obj = settings


@app.command("list")
def list_cmd(
    ctx: typer.Context,
    build_id: BuildIdArg = None,
    include_all: Annotated[
        bool,
        typer.Option("--all", "-a", help="Include deprecated and obsolete builds"),
    ] = False,
) -> None:
    """List available builds and which artifacts they publish."""
    from cos_kernel.catalog import CatalogClient, format_rows, list_builds

    settings: Settings = ctx.obj
    try:
        if build_id is not None:
            validate_build_id(build_id)
        with httpx.Client(follow_redirects=True) as client:
            rows = list_builds(
                CatalogClient(settings, client),
                filter_id=build_id,
                include_all=include_all,
            )
    except (CosKernelError, OSError) as e:
        _fail(e)

    if not rows:
        console.print("[yellow]No builds found[/yellow]")
        return

    for line in format_rows(rows, include_status=include_all or build_id is not None):
        typer.echo(line)


@app.command()
def fetch(
    ctx: typer.Context,
    build_id: BuildIdArg = None,
    no_extract: Annotated[
        bool,
        typer.Option("--no-extract", "-x", help="Only fetch and verify artifacts"),
    ] = False,
    kernel_config: KernelConfigOpt = None,
) -> None:
    """Fetch, verify and install the artifacts of a build."""
    from cos_kernel.kernel import run_pipeline

    settings: Settings = ctx.obj
    try:
        resolved = resolve_build_id(build_id, settings.os_release_path)
        config = make_run_config(
            settings,
            resolved,
            extract=not no_extract,
            kernel_config=kernel_config,
        )
        result = run_pipeline(config)
    except (CosKernelError, OSError) as e:
        _fail(e)

    action = "fetched" if no_extract else "installed"
    console.print(
        f"[green]✓ COS build {resolved} {action} in {settings.install_dir}[/green]"
    )
    for name, state in result.states.items():
        color = "yellow" if name in result.missing else "white"
        console.print(f"  [{color}]{name:<16}{state.value}[/{color}]")


@app.command()
def build(
    ctx: typer.Context,
    build_id: BuildIdArg = None,
    kernel_config: KernelConfigOpt = None,
    print_only: Annotated[
        bool,
        typer.Option("--print-only", "-p", help="Print build commands, do not run"),
    ] = False,
    make_verbose: Annotated[
        bool,
        typer.Option("--make-verbose", "-m", help="Verbose make output (V=1)"),
    ] = False,
) -> None:
    """Fetch a build's artifacts and build its kernel."""
    from cos_kernel.kernel import PrintExecutor, SubprocessExecutor, build_kernel

    settings: Settings = ctx.obj
    executor = PrintExecutor(typer.echo) if print_only else SubprocessExecutor()
    try:
        resolved = resolve_build_id(build_id, settings.os_release_path)
        config = make_run_config(
            settings,
            resolved,
            kernel_config=kernel_config,
            print_only=print_only,
            make_verbose=make_verbose,
        )
        build_kernel(config, executor)
    except (CosKernelError, OSError) as e:
        _fail(e)

    if not print_only:
        console.print(f"[green]✓ Kernel for COS build {resolved} built[/green]")


@app.command()
def remove(
    ctx: typer.Context,
    build_id: BuildIdArg = None,
    remove_all: Annotated[
        bool,
        typer.Option("--all", "-a", help="Remove every build and all caches"),
    ] = False,
) -> None:
    """Remove installed artifacts and cached catalog listings."""
    from cos_kernel.kernel import remove_installation

    settings: Settings = ctx.obj
    try:
        layout = None
        if not remove_all:
            resolved = resolve_build_id(build_id, settings.os_release_path)
            layout = make_run_config(settings, resolved).layout
        removed = remove_installation(
            settings.install_dir,
            settings.cache_dir,
            layout=layout,
            remove_all=remove_all,
        )
    except (CosKernelError, OSError) as e:
        _fail(e)

    if not removed:
        console.print("[yellow]Nothing to remove[/yellow]")
        return
    console.print(f"[bold]Removed {len(removed)} path(s):[/bold]")
    for path in removed:
        console.print(f"  - {path}")


@app.command()
def config(
    ctx: typer.Context,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings: Settings = ctx.obj
    if json_output:
        typer.echo(print_settings_json(settings))
        return

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Install directory:   {settings.install_dir}")
    console.print(f"  Cache directory:     {settings.cache_dir}")
    console.print(f"  Release metadata:    {settings.os_release_path}")
    console.print()
    console.print("[bold]Catalogs:[/bold]")
    console.print(f"  Bucket:              {settings.bucket}")
    console.print(f"  Storage endpoint:    {settings.storage_base_url}")
    console.print(f"  Image project:       {settings.image_project}")
    console.print(f"  Cache max age (min): {settings.catalog_max_age_minutes}")
    console.print()
    console.print("[bold]Build:[/bold]")
    console.print(f"  Cross compile:       {settings.cross_compile}")
    console.print(f"  Log level:           {settings.log_level}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Download timeout:    {settings.download_timeout}")
    console.print(f"  Catalog timeout:     {settings.catalog_timeout}")


@app.command("help")
def help_cmd(ctx: typer.Context) -> None:
    """Show this help and exit."""
    typer.echo(ctx.parent.get_help() if ctx.parent else ctx.get_help())


def run() -> None:
    """Console-script entry point; malformed invocations exit with status 1."""
    try:
        app()
    except SystemExit as e:
        if e.code == 2:
            raise SystemExit(1) from None
        raise


if __name__ == "__main__":
    run()
