"""Thin CLI wrapper for imagepack.

This module provides the command-line interface using Typer.
All packaging logic is delegated to the core modules.
"""

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from imagepack import __version__
from imagepack.config import Settings, get_settings, print_settings_json
from imagepack.context import ExecutionContext, Packager
from imagepack.errors import ImagePackError
from imagepack.image.artifacts import (
    describe_artifact,
    generate_manifest,
    write_manifest,
)
from imagepack.options import (
    COMMON_OPTIONS,
    Configuration,
    load_configuration,
    parse_overrides,
    save_configuration,
)
from imagepack.packagers import all_options, get_packager, list_packagers
from imagepack.templates.resources import save_templates

app = typer.Typer(
    name="imagepack",
    help="imagepack - build installable images and packages for applications",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"imagepack version {__version__}")
        raise typer.Exit()


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.effective_log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _fail(error: ImagePackError) -> typer.Exit:
    console.print(f"[red]Error ({error.code}): {escape(str(error))}[/red]")
    return typer.Exit(code=1)


def _load(
    packager: Packager, config_file: Path | None, properties: list[str] | None
) -> Configuration:
    """Configuration file values overridden by ``-P key=value`` properties."""
    configuration = Configuration()
    if config_file is not None:
        configuration = load_configuration(
            config_file, (*COMMON_OPTIONS, *packager.options)
        )
    configuration = configuration.merged(parse_overrides(properties or []))
    for key in configuration.unknown_keys((*COMMON_OPTIONS, *packager.options)):
        console.print(
            f"[yellow]Option '{escape(key)}' is not used by {packager.name}[/yellow]"
        )
    return configuration


def _report(
    context: ExecutionContext,
    result: Path,
    manifest: Path | None,
    image: Path | None = None,
) -> None:
    for warning in context.warnings:
        console.print(f"[yellow]Warning: {escape(warning)}[/yellow]")
    if manifest is not None:
        artifact = describe_artifact(result, context.packager.name)
        write_manifest(
            generate_manifest(artifact, image, context.configuration.as_dict()),
            manifest,
        )
        console.print(f"  Manifest: {manifest}")
    console.print(f"[green]Created {escape(str(result))}[/green]")


@app.callback()
def main(
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
    """imagepack - build installable images and packages for applications."""


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
    else:
        tmp_dir_display = (
            str(settings.tmp_dir) if settings.tmp_dir else "(system default)"
        )
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Output directory:    {settings.output_dir}")
        console.print(f"  Temp directory:      {tmp_dir_display}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  Verbose:             {settings.verbose}")


@app.command()
def packagers() -> None:
    """List available packagers."""
    console.print("[bold]Available packagers:[/bold]")
    for packager in list_packagers():
        console.print(f"  [green]{packager.name}[/green]  {packager.description}")


@app.command()
def options(
    packager_name: Annotated[
        str | None,
        typer.Option("--type", "-t", help="Only show options used by this packager"),
    ] = None,
) -> None:
    """List packaging options with their defaults."""
    if packager_name is None:
        shown = all_options()
    else:
        try:
            packager = get_packager(packager_name)
        except ImagePackError as e:
            raise _fail(e) from None
        shown = [*COMMON_OPTIONS, *packager.options]

    for option in shown:
        line = f"  [green]{option.key}[/green]"
        if option.is_path:
            line += " (path)"
        console.print(line)
        if option.help:
            console.print(f"    {escape(option.help)}")
        if option.default:
            console.print(f"    Default: {escape(option.default)}")


@app.command()
def templates(
    packager_name: Annotated[
        str,
        typer.Option("--type", "-t", help="Packager whose templates to show"),
    ],
    save: Annotated[
        Path | None,
        typer.Option("--save", "-s", help="Write the default templates here"),
    ] = None,
) -> None:
    """List a packager's templates, optionally saving the defaults."""
    try:
        packager = get_packager(packager_name)
    except ImagePackError as e:
        raise _fail(e) from None

    if save is None:
        for template in packager.templates:
            override = template.override.key if template.override else "-"
            console.print(f"  [green]{template.name}[/green]  override: {override}")
        return

    written = save_templates(packager.templates, save)
    console.print(f"[bold]Saved {len(written)} template(s) to {save}[/bold]")
    for path in written:
        console.print(f"  {path.name}")


@app.command()
def build(
    packager_name: Annotated[
        str,
        typer.Option("--type", "-t", help="Packager to use (see 'packagers')"),
    ],
    input_path: Annotated[
        Path,
        typer.Option("--input", "-i", help="Application directory or archive"),
    ],
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="YAML configuration file"),
    ] = None,
    properties: Annotated[
        list[str] | None,
        typer.Option("--property", "-P", help="Option override key=value"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Destination directory"),
    ] = None,
    image_only: Annotated[
        bool,
        typer.Option("--image-only", help="Stop after creating the image"),
    ] = False,
    save_config: Annotated[
        Path | None,
        typer.Option("--save-config", help="Write the effective options as YAML"),
    ] = None,
    manifest: Annotated[
        Path | None,
        typer.Option("--manifest", help="Write a JSON manifest here"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Build an image from an application and package it."""
    settings = get_settings()
    if verbose:
        settings = settings.model_copy(update={"verbose": True})
    _configure_logging(settings)

    try:
        packager = get_packager(packager_name)
        configuration = _load(packager, config_file, properties)
        if save_config is not None:
            save_configuration(configuration, save_config)
            console.print(f"  Configuration: {save_config}")
        context = ExecutionContext(
            packager,
            input_path,
            configuration,
            output or settings.output_dir,
            image_only=image_only,
            settings=settings,
        )
        result = context.execute()
        _report(context, result, manifest)
    except ImagePackError as e:
        raise _fail(e) from None


@app.command()
def package(
    packager_name: Annotated[
        str,
        typer.Option("--type", "-t", help="Packager to use (see 'packagers')"),
    ],
    image: Annotated[
        Path,
        typer.Option("--image", help="Existing image directory"),
    ],
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="YAML configuration file"),
    ] = None,
    properties: Annotated[
        list[str] | None,
        typer.Option("--property", "-P", help="Option override key=value"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Destination directory"),
    ] = None,
    manifest: Annotated[
        Path | None,
        typer.Option("--manifest", help="Write a JSON manifest here"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Build a package from an image created with --image-only."""
    settings = get_settings()
    if verbose:
        settings = settings.model_copy(update={"verbose": True})
    _configure_logging(settings)

    try:
        packager = get_packager(packager_name)
        configuration = _load(packager, config_file, properties)
        context = ExecutionContext(
            packager,
            None,
            configuration,
            output or settings.output_dir,
            settings=settings,
        )
        result = context.package_image(image.absolute())
        _report(context, result, manifest, image=image.absolute())
    except ImagePackError as e:
        raise _fail(e) from None


if __name__ == "__main__":
    app()
