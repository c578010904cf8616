import os
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Annotated

import typer

from .config import CONFIG_FILENAME, AppConfig, apply_environment
from .generate import generate_command
from .log import configure_logging
from .SnapshotStore import SnapshotWriteError
from .status import status_command


def installed_version() -> str:
    try:
        return version(distribution_name="photometa")
    except PackageNotFoundError:
        return "unknown (package not installed)"


app: typer.Typer = typer.Typer(
    help=f"photometa: incremental photo metadata & thumbnails\n\nVersion: {installed_version()}",
    invoke_without_command=True,
)

ConfigOption = Annotated[Path, typer.Option("--config", "-c", help="Path to config.yaml (optional).")]


def print_version(is_version: bool) -> None:
    """
    Callback for the global --version / -V option.

    Prints the installed version and stops before any command runs.
    """
    if not is_version:
        return

    typer.echo(installed_version())
    raise typer.Exit()


def load_config(config_path: Path) -> AppConfig:
    try:
        return AppConfig.load_or_default(config_path)
    except (ValueError, TypeError) as e:
        raise typer.BadParameter(f"{config_path}: {e}")


def run_generate(cfg: AppConfig, *, force: bool) -> None:
    try:
        cfg.validate()
    except ValueError as e:
        raise typer.BadParameter(str(e))

    try:
        generate_command(cfg, force=force)
    except (OSError, ValueError, SnapshotWriteError) as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1)


@app.command()
def init(
    config: ConfigOption = CONFIG_FILENAME,
    repository: Annotated[str | None, typer.Option(envvar="GITHUB_REPOSITORY")] = None,
    force: Annotated[bool, typer.Option()] = False,
) -> None:
    """
    Write a config file with default settings.
    """
    if config.exists() and not force:
        typer.echo("Config file already exists. Use --force to overwrite.")
        raise typer.Exit(code=1)

    cfg: AppConfig = AppConfig()
    if repository:
        cfg.repository = repository

    cfg.save(config)
    typer.echo(f"Config written to {config}")


@app.command()
def generate(
    config: ConfigOption = CONFIG_FILENAME,
    root: Annotated[Path | None, typer.Option(help="Project root holding photos/ and thumbnails/.")] = None,
    repository: Annotated[
        str | None, typer.Option(envvar="GITHUB_REPOSITORY", help="owner/name slug or absolute base URL.")
    ] = None,
    thumbnail_width: Annotated[int | None, typer.Option(envvar="PHOTOMETA_THUMBNAIL_WIDTH")] = None,
    thumbnail_quality: Annotated[int | None, typer.Option(envvar="PHOTOMETA_THUMBNAIL_QUALITY")] = None,
    thumbnail_format: Annotated[
        str | None, typer.Option(envvar="PHOTOMETA_THUMBNAIL_FORMAT", help="auto, jpeg or png.")
    ] = None,
    max_workers: Annotated[int | None, typer.Option(help="Processes used for fingerprinting.")] = None,
    force: Annotated[bool, typer.Option(help="Ignore the prior snapshot and reprocess every image.")] = False,
) -> None:
    """Generate metadata.json and thumbnails for every image under the photos directory."""
    cfg: AppConfig = load_config(config)

    if root is not None:
        cfg.root = root
    if repository:
        cfg.repository = repository
    if thumbnail_width is not None:
        cfg.thumbnail_width = thumbnail_width
    if thumbnail_quality is not None:
        cfg.thumbnail_quality = thumbnail_quality
    if thumbnail_format is not None:
        cfg.thumbnail_format = thumbnail_format.lower()
    if max_workers is not None:
        cfg.max_workers = max_workers

    run_generate(cfg, force=force)


@app.command()
def status(config: ConfigOption = CONFIG_FILENAME) -> None:
    """Show totals and categories of the current snapshot."""
    status_command(load_config(config))


@app.command(name="version")
def version_cmd() -> None:
    """Print the installed version of photometa."""
    print_version(True)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    _version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=print_version,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log per-image decisions.")] = False,
) -> None:
    """
    Global options for photometa. Without a subcommand, `generate` runs with
    the settings from ./config.yaml (or the defaults).
    """
    configure_logging(verbose)

    if ctx.invoked_subcommand is None:
        try:
            cfg: AppConfig = apply_environment(load_config(CONFIG_FILENAME), os.environ)
        except ValueError as e:
            raise typer.BadParameter(str(e))
        run_generate(cfg, force=False)


if __name__ == "__main__":
    app()
