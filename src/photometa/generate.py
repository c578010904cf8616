from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import typer

from .aggregate import build_snapshot
from .config import AppConfig
from .log import get_logger
from .models import ProbeWarning, ReconcileResult, ReconcileStats, Snapshot
from .probes import PillowProbes, ProbeServices
from .reconcile import Reconciler
from .SnapshotStore import SnapshotStore
from .walker import ScanResult, scan_images

logger = get_logger(__name__)


@dataclass(slots=True)
class GenerateOutcome:
    snapshot: Snapshot
    stats: ReconcileStats
    warnings: list[ProbeWarning] = field(default_factory=list)


def prepare_dirs(cfg: AppConfig) -> None:
    for path in (cfg.photos_path, cfg.thumbnails_path):
        path.mkdir(parents=True, exist_ok=True)


def generate(
    cfg: AppConfig,
    *,
    probes: ProbeServices | None = None,
    force: bool = False,
    now: datetime | None = None,
) -> GenerateOutcome:
    """
    Run one pass of the pipeline and persist the resulting snapshot.

    - Create the photos and thumbnails directories if needed
    - Scan and fingerprint the image tree
    - Reconcile it against the prior snapshot (ignored with `force`)
    - Aggregate categories and totals
    - Replace the snapshot document atomically

    Per-image failures end up in `GenerateOutcome.warnings`. Failing to
    create the directories, list the photo root or write the snapshot
    raises.
    """
    cfg.validate()
    prepare_dirs(cfg)

    store: SnapshotStore = SnapshotStore(cfg.snapshot_path)
    scan: ScanResult = scan_images(
        cfg.photos_path,
        algorithm=cfg.hash_algorithm,
        chunk_size=cfg.chunk_size,
        max_workers=cfg.max_workers,
    )

    prior: Snapshot | None = None
    if force:
        logger.info("Ignoring prior snapshot, reprocessing everything")
    elif scan.entries:
        prior = store.load()

    reconciler: Reconciler = Reconciler(
        probes if probes is not None else PillowProbes(cfg.thumbnail_policy()),
        photos_root=cfg.photos_path,
        thumbnails_root=cfg.thumbnails_path,
        policy=cfg.thumbnail_policy(),
        urls=cfg.url_builder(),
    )
    result: ReconcileResult = reconciler.reconcile(scan.entries, prior)

    snapshot: Snapshot = build_snapshot(result.photos, now or datetime.now(timezone.utc))
    store.save(snapshot)

    return GenerateOutcome(snapshot=snapshot, stats=result.stats, warnings=[*scan.warnings, *result.warnings])


def generate_command(cfg: AppConfig, *, force: bool = False) -> None:
    typer.echo("🔄 Generating metadata & thumbnails")

    outcome: GenerateOutcome = generate(cfg, force=force)

    if outcome.snapshot.total_photos == 0:
        typer.echo("⚠️  no photos")
        return

    for warning in outcome.warnings:
        typer.echo(f"⚠️  {warning.operation} failed for {warning.path}: {warning.message}", err=True)

    snapshot_path: Path = cfg.snapshot_path
    typer.echo(
        f"✅ done ({outcome.snapshot.total_photos} photos, {len(outcome.snapshot.categories)} cats) -> {snapshot_path}"
    )
