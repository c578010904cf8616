"""
Incremental reconciliation of the current image tree against the prior snapshot.

For every image found on disk:
1. Look up the prior record by relative path
2. Content hash differs or no prior record -> changed, probe everything again
3. Unchanged -> reuse dimensions/EXIF from the prior record, probing only
   the fields the prior record is missing
4. Render the thumbnail when the image changed, the thumbnail file is gone or
   its location moved. Sources that would share a thumbnail name (`x.jpg`,
   `x.jpeg`) get distinct names in walk order
5. Any probe failure falls back to that field's default and is recorded as
   a warning; the item and the batch carry on

The prior snapshot is only ever read. The new photo list is sorted by
modification time (newest first), keeping walk order for ties.
"""
import re
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path, PurePosixPath
from typing import TypeVar

from .log import get_logger
from .models import (
    UNCATEGORIZED,
    AssetRecord,
    Dimensions,
    ExifFacts,
    FileEntry,
    ProbeWarning,
    ReconcileResult,
    ReconcileStats,
    Snapshot,
    ThumbnailInfo,
)
from .probes import ProbeServices
from .thumbnails import ThumbnailPolicy
from .urls import UrlBuilder

logger = get_logger(__name__)

T = TypeVar("T")

_NON_ALNUM: re.Pattern[str] = re.compile(r"[^A-Za-z0-9]")


def asset_id(path: str) -> str:
    """Readable id for a relative path: every non-alphanumeric character becomes `_`."""
    return _NON_ALNUM.sub("_", path)


def category_for(path: str) -> str:
    parts: tuple[str, ...] = PurePosixPath(path).parts
    return parts[0] if len(parts) > 1 else UNCATEGORIZED


def sort_newest_first(records: Iterable[AssetRecord]) -> list[AssetRecord]:
    # sorted() is stable with reverse=True, so equal timestamps keep walk order
    return sorted(records, key=lambda r: r.modified_at, reverse=True)


class Reconciler:
    def __init__(
        self,
        probes: ProbeServices,
        *,
        photos_root: Path,
        thumbnails_root: Path,
        policy: ThumbnailPolicy,
        urls: UrlBuilder,
    ) -> None:
        self.probes: ProbeServices = probes
        self.photos_root: Path = photos_root
        self.thumbnails_root: Path = thumbnails_root
        self.policy: ThumbnailPolicy = policy
        self.urls: UrlBuilder = urls

    def reconcile(self, entries: Iterable[FileEntry], prior: Snapshot | None) -> ReconcileResult:
        """
        Build the new photo list for `entries`, reusing work recorded in `prior`.

        Records for paths no longer on disk are dropped.
        """
        previous: Mapping[str, AssetRecord] = {r.path: r for r in prior.photos} if prior is not None else {}
        result: ReconcileResult = ReconcileResult(photos=[], stats=ReconcileStats())
        seen: set[str] = set()
        claimed: set[str] = set()

        for entry in entries:
            seen.add(entry.path)
            result.photos.append(self._reconcile_one(entry, previous.get(entry.path), result, claimed))

        result.stats.scanned = len(seen)
        result.stats.removed = len(previous.keys() - seen)
        result.photos = sort_newest_first(result.photos)

        logger.info("Reconciled: %s", result.stats.summary)
        return result

    def _claim_thumbnail(self, path: str, claimed: set[str]) -> str | None:
        """Pick a thumbnail path no earlier item of this pass uses, or None if both candidates are taken."""
        for candidate in (self.policy.thumbnail_path(path), self.policy.thumbnail_path(path, qualified=True)):
            if candidate not in claimed:
                claimed.add(candidate)
                return candidate
        return None

    def _reconcile_one(
        self,
        entry: FileEntry,
        cached: AssetRecord | None,
        result: ReconcileResult,
        claimed: set[str],
    ) -> AssetRecord:
        source: Path = self.photos_root / entry.path
        changed: bool = cached is None or cached.content_hash != entry.content_hash

        if cached is None:
            result.stats.new += 1
            logger.debug("%s: new", entry.path)
        elif changed:
            result.stats.changed += 1
            logger.debug("%s: changed", entry.path)
        else:
            result.stats.unchanged += 1
            logger.debug("%s: unchanged", entry.path)

        dimensions: Dimensions
        if not changed and cached is not None and cached.dimensions is not None and not cached.dimensions.is_unknown:
            dimensions = cached.dimensions
        else:
            dimensions = self._attempt(
                result, entry.path, "dimensions", lambda: self.probes.probe_dimensions(source), Dimensions.unknown()
            )

        exif: ExifFacts
        if not changed and cached is not None and cached.exif is not None:
            exif = cached.exif
        else:
            exif = self._attempt(result, entry.path, "exif", lambda: self.probes.extract_exif(source), ExifFacts())

        claimed_path: str | None = self._claim_thumbnail(entry.path, claimed)
        if claimed_path is None:
            logger.warning("No free thumbnail name for %s", entry.path)
            result.warnings.append(
                ProbeWarning(path=entry.path, operation="thumbnail", message="thumbnail name already in use")
            )
            return self._record(entry, dimensions, exif, None, "")

        thumbnail_path: str = claimed_path
        thumbnail_file: Path = self.thumbnails_root / thumbnail_path
        thumbnail_url: str = self.urls.thumbnail_url(thumbnail_path)

        thumbnail: ThumbnailInfo | None
        if (
            changed
            or cached is None
            or cached.thumbnail_url != thumbnail_url
            or not thumbnail_file.is_file()
        ):
            thumbnail = self._attempt(
                result,
                entry.path,
                "thumbnail",
                lambda: self.probes.render_thumbnail(source, thumbnail_file, entry.path),
                None,
            )
            if thumbnail is not None:
                result.stats.thumbnails_rendered += 1
                logger.debug("%s: thumbnail rendered -> %s", entry.path, thumbnail_path)
        else:
            thumbnail = cached.thumbnail

        return self._record(entry, dimensions, exif, thumbnail, thumbnail_url)

    def _record(
        self,
        entry: FileEntry,
        dimensions: Dimensions,
        exif: ExifFacts,
        thumbnail: ThumbnailInfo | None,
        thumbnail_url: str,
    ) -> AssetRecord:
        return AssetRecord(
            id=asset_id(entry.path),
            path=entry.path,
            name=entry.name,
            category=category_for(entry.path),
            size=entry.size,
            modified_at=entry.modified_at,
            content_hash=entry.content_hash,
            dimensions=dimensions,
            exif=exif,
            thumbnail=thumbnail,
            source_url=self.urls.source_url(entry.path),
            thumbnail_url=thumbnail_url,
        )

    def _attempt(
        self,
        result: ReconcileResult,
        path: str,
        operation: str,
        probe: Callable[[], T],
        fallback: T,
    ) -> T:
        result.stats.probe_calls += 1
        try:
            return probe()
        except Exception as e:
            logger.warning("%s failed for %s: %s", operation, path, e)
            result.warnings.append(ProbeWarning(path=path, operation=operation, message=str(e) or type(e).__name__))
            return fallback


def reconcile(
    entries: Iterable[FileEntry],
    prior: Snapshot | None,
    probes: ProbeServices,
    *,
    photos_root: Path,
    thumbnails_root: Path,
    policy: ThumbnailPolicy,
    urls: UrlBuilder,
) -> ReconcileResult:
    """Convenience wrapper around `Reconciler.reconcile`."""
    reconciler: Reconciler = Reconciler(
        probes, photos_root=photos_root, thumbnails_root=thumbnails_root, policy=policy, urls=urls
    )
    return reconciler.reconcile(entries, prior)
