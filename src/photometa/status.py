import typer

from .config import AppConfig
from .models import Snapshot, format_timestamp
from .SnapshotStore import SnapshotStore


def _format_bytes(size: int) -> str:
    value: float = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:,.0f} {unit}" if unit == "B" else f"{value:,.1f} {unit}"
        value /= 1024
    return f"{size} B"


def status_command(cfg: AppConfig) -> None:
    """
    Show what the current snapshot contains.
    """
    store: SnapshotStore = SnapshotStore(cfg.snapshot_path)
    if not store.exists():
        typer.echo(f"No snapshot at {cfg.snapshot_path}. Run photometa generate first.")
        raise typer.Exit(code=1)

    try:
        s: Snapshot = store.read()
    except (OSError, ValueError) as e:
        typer.echo(f"Snapshot {cfg.snapshot_path} is unreadable: {e}", err=True)
        raise typer.Exit(code=1)

    missing_thumbnails: int = sum(1 for p in s.photos if p.thumbnail is None)
    unknown_dimensions: int = sum(1 for p in s.photos if p.dimensions is None or p.dimensions.is_unknown)

    typer.echo("Snapshot status")
    typer.echo("---------------")
    typer.echo(f"Generated:           {format_timestamp(s.generated_at)}")
    typer.echo(f"Photos:              {s.total_photos}")
    typer.echo(f"Total size:          {s.total_size:,} bytes ({_format_bytes(s.total_size)})")

    typer.echo("\nCategories")
    typer.echo("----------")
    if not s.categories:
        typer.echo("No categories.")
    for c in s.categories:
        typer.echo(f"{c.name:<20} {c.photo_count:>6} photos  {_format_bytes(c.total_size):>10}")

    if missing_thumbnails or unknown_dimensions:
        typer.echo("\nAttention required")
        typer.echo("------------------")
        typer.echo(f"Without thumbnail:   {missing_thumbnails}")
        typer.echo(f"Unknown dimensions:  {unknown_dimensions}")
