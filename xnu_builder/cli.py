"""Thin CLI wrapper for xnu_builder.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
from collections.abc import Callable
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from xnu_builder import __version__
from xnu_builder.build_config import (
    BuildConfiguration,
    configuration_from_settings,
    format_valid_machines,
    requires_validation,
)
from xnu_builder.config import Settings, get_settings, print_settings_json
from xnu_builder.errors import BuilderError, ExternalToolFailure, PipelineError
from xnu_builder.types import Action

app = typer.Typer(
    name="xnu-builder",
    help="XNU Builder - build the XNU kernel and install it on the boot volume",
    no_args_is_help=True,
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console()


def configure_logging(level: str) -> None:
    """Route log records through rich at the configured level."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"xnu-builder version {__version__}")
        raise typer.Exit()


def show_config_callback(value: bool) -> None:
    """Print effective settings as JSON and exit."""
    if value:
        console.print(print_settings_json())
        raise typer.Exit()


def machine_callback(value: str | None) -> str | None:
    """List valid machine configurations for `-m help` and exit."""
    if value is not None and value.strip().lower() == "help":
        console.print("[bold]Valid machine configurations (ARM64 only):[/bold]")
        for line in format_valid_machines().splitlines():
            console.print(f"  {line}")
        raise typer.Exit()
    return value


def _print_configuration(settings: Settings, config: BuildConfiguration) -> None:
    if config.is_default:
        console.print(
            "[blue]No specific configuration provided. Falling back to defaults![/blue]"
        )
    else:
        console.print("[blue]Custom configuration provided.[/blue]")
    console.print("[bold]Builder Variables:[/bold]")
    console.print(f"  KERNEL_CONFIG:  {config.kernel_variant.value}")
    console.print(f"  ARCH_CONFIG:    {config.architecture.value}")
    console.print(f"  MACHINE_CONFIG: {config.machine_config}")
    console.print(f"  MACOS_VERSION:  {config.target_os_version}")
    console.print(f"  WORK_DIR:       {settings.work_dir}")


def _confirm(assume_yes: bool, default: bool = False) -> Callable[[str], bool]:
    def confirm(question: str) -> bool:
        if assume_yes:
            return True
        return typer.confirm(question, default=default)

    return confirm


def _run_fetch(settings: Settings) -> None:
    from xnu_builder.pipeline.service import fetch_kernel_source

    console.print("Fetching XNU source...")
    source_dir = fetch_kernel_source(settings)
    console.print(f"[green]✓ XNU source ready at {source_dir}[/green]")


def _run_clean(settings: Settings, assume_yes: bool) -> None:
    from xnu_builder.pipeline.service import clean, plan_clean

    targets = plan_clean(settings)
    if not targets:
        console.print("[yellow]Nothing to clean[/yellow]")
        return

    console.print("[bold]The following paths will be deleted:[/bold]")
    for path in targets:
        console.print(f"  {path}")

    if not _confirm(assume_yes)("Are you sure?"):
        console.print("[yellow]Aborted[/yellow]")
        return

    removed = clean(settings)
    console.print(
        f"[green]✓ Working directory has been cleaned ({len(removed)} removed)[/green]"
    )


def _run_install(settings: Settings, config: BuildConfiguration) -> None:
    from xnu_builder.install.service import install_kernel

    # The reboot prompt is always asked, even with --yes
    report = install_kernel(config, confirm=_confirm(False), settings=settings)

    for warning in report.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning.message}")
    if report.rebooted:
        console.print("[green]✓ Kernel installed, rebooting[/green]")
    else:
        console.print("[green]✓ Kernel installed[/green]")


def _run_build(
    settings: Settings, config: BuildConfiguration, assume_yes: bool
) -> None:
    from xnu_builder.pipeline.service import build_kernel

    _print_configuration(settings, config)
    result = build_kernel(config, settings=settings)

    if result.skipped_stages:
        console.print(
            f"Skipped (already built): {', '.join(result.skipped_stages)}"
        )
    console.print(
        f"[green]✓ XNU build done: {result.artifacts.kernel_image_path}[/green]"
    )

    if _confirm(assume_yes, default=True)(
        "Do you want to install the built kernel now?"
    ):
        _run_install(settings, config)
    else:
        console.print("Install skipped.")


@app.command()
def main(
    action: Annotated[
        Action,
        typer.Argument(
            help="Action to perform: fetch, clean, build or install",
            case_sensitive=False,
        ),
    ],
    kerneltype: Annotated[
        str | None,
        typer.Option(
            "--kerneltype", "-k", help="Kernel type (RELEASE or DEVELOPMENT)"
        ),
    ] = None,
    arch: Annotated[
        str | None,
        typer.Option("--arch", "-a", help="Architecture (X86_64 or ARM64)"),
    ] = None,
    machine: Annotated[
        str | None,
        typer.Option(
            "--machine",
            "-m",
            help="Machine configuration, ARM64 only ('help' lists them)",
            callback=machine_callback,
        ),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option(
            "--yes", "-y", help="Answer yes to the install and clean prompts"
        ),
    ] = False,
    show_config: Annotated[
        bool | None,
        typer.Option(
            "--show-config",
            help="Show effective configuration as JSON and exit",
            callback=show_config_callback,
            is_eager=True,
        ),
    ] = None,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Build the XNU kernel and install it on the boot volume.

    Examples:

        xnu-builder fetch

        xnu-builder build -k DEVELOPMENT -a X86_64

        xnu-builder build -k RELEASE -a ARM64 -m VMAPPLE

        xnu-builder install
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    try:
        if not requires_validation(action):
            if action is Action.FETCH:
                _run_fetch(settings)
            else:
                _run_clean(settings, yes)
            return

        config = configuration_from_settings(
            settings, kernel_variant=kerneltype, architecture=arch, machine=machine
        )
        if action is Action.BUILD:
            _run_build(settings, config, yes)
        else:
            _run_install(settings, config)

    except BuilderError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        cause = e.cause if isinstance(e, PipelineError) else e
        if isinstance(cause, ExternalToolFailure) and cause.log_path is not None:
            console.print(f"  See log: {cause.log_path}")
        raise typer.Exit(code=1) from None


if __name__ == "__main__":
    app()
