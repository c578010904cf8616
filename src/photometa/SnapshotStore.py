import json
import math
import uuid
from pathlib import Path
from typing import Any, TypedDict, cast

from .log import get_logger
from .models import (
    AssetRecord,
    CategoryStats,
    Dimensions,
    ExifFacts,
    GpsPosition,
    Snapshot,
    ThumbnailInfo,
    format_timestamp,
    parse_timestamp,
)

logger = get_logger(__name__)


class RawDimensions(TypedDict):
    width: int
    height: int
    format: str


class RawGps(TypedDict):
    latitude: float
    longitude: float


class RawExif(TypedDict):
    camera: str | None
    aperture: str | None
    iso: int | None
    shutterSpeed: str | None
    focalLength: str | None
    gps: RawGps | None
    dateTaken: str | None


class RawThumbnail(TypedDict):
    width: int
    height: int
    size: int


class RawPhoto(TypedDict):
    id: str
    path: str
    name: str
    category: str
    size: int
    modified: str
    hash: str
    dimensions: RawDimensions | None
    exif: RawExif | None
    thumbnail: RawThumbnail | None
    url: str
    thumbnailUrl: str


class RawCategory(TypedDict):
    name: str
    photoCount: int
    totalSize: int


class RawSnapshot(TypedDict):
    generated: str
    totalPhotos: int
    totalSize: int
    categories: list[RawCategory]
    photos: list[RawPhoto]


class SnapshotWriteError(Exception):
    """The snapshot document could not be persisted."""


def _optional_str(value: object) -> str | None:
    return value if isinstance(value, str) and value else None


def _optional_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return None


def dimensions_to_raw(d: Dimensions) -> RawDimensions:
    return {"width": d.width, "height": d.height, "format": d.format}


def dimensions_from_raw(raw: object) -> Dimensions | None:
    if not isinstance(raw, dict):
        return None
    data: dict[str, object] = cast(dict[str, object], raw)
    return Dimensions(
        width=_optional_int(data.get("width")) or 0,
        height=_optional_int(data.get("height")) or 0,
        format=_optional_str(data.get("format")) or "unknown",
    )


def exif_to_raw(e: ExifFacts) -> RawExif:
    return {
        "camera": e.camera,
        "aperture": e.aperture,
        "iso": e.iso,
        "shutterSpeed": e.shutter_speed,
        "focalLength": e.focal_length,
        "gps": {"latitude": e.gps.latitude, "longitude": e.gps.longitude} if e.gps is not None else None,
        "dateTaken": e.date_taken,
    }


def exif_from_raw(raw: object) -> ExifFacts | None:
    if not isinstance(raw, dict):
        return None
    data: dict[str, object] = cast(dict[str, object], raw)

    gps: GpsPosition | None = None
    raw_gps: object = data.get("gps")
    if isinstance(raw_gps, dict):
        lat: object = raw_gps.get("latitude")
        lon: object = raw_gps.get("longitude")
        if (
            isinstance(lat, (int, float))
            and isinstance(lon, (int, float))
            and math.isfinite(lat)
            and math.isfinite(lon)
        ):
            gps = GpsPosition(latitude=float(lat), longitude=float(lon))

    return ExifFacts(
        camera=_optional_str(data.get("camera")),
        aperture=_optional_str(data.get("aperture")),
        iso=_optional_int(data.get("iso")),
        shutter_speed=_optional_str(data.get("shutterSpeed")),
        focal_length=_optional_str(data.get("focalLength")),
        gps=gps,
        date_taken=_optional_str(data.get("dateTaken")),
    )


def thumbnail_to_raw(t: ThumbnailInfo | None) -> RawThumbnail | None:
    if t is None:
        return None
    return {"width": t.width, "height": t.height, "size": t.byte_size}


def thumbnail_from_raw(raw: object) -> ThumbnailInfo | None:
    if not isinstance(raw, dict):
        return None
    data: dict[str, object] = cast(dict[str, object], raw)
    width: int | None = _optional_int(data.get("width"))
    height: int | None = _optional_int(data.get("height"))
    size: int | None = _optional_int(data.get("size"))
    if width is None or height is None or size is None:
        return None
    return ThumbnailInfo(width=width, height=height, byte_size=size)


def photo_to_raw(p: AssetRecord) -> RawPhoto:
    return {
        "id": p.id,
        "path": p.path,
        "name": p.name,
        "category": p.category,
        "size": p.size,
        "modified": format_timestamp(p.modified_at),
        "hash": p.content_hash,
        "dimensions": dimensions_to_raw(p.dimensions) if p.dimensions is not None else None,
        "exif": exif_to_raw(p.exif) if p.exif is not None else None,
        "thumbnail": thumbnail_to_raw(p.thumbnail),
        "url": p.source_url,
        "thumbnailUrl": p.thumbnail_url,
    }


def photo_from_raw(raw: object) -> AssetRecord:
    """Parse one stored photo. Raises `ValueError` when identity fields are missing."""
    if not isinstance(raw, dict):
        raise ValueError(f"Photo entry is not an object: {raw!r}")
    data: dict[str, Any] = cast(dict[str, Any], raw)

    path: object = data.get("path")
    content_hash: object = data.get("hash")
    modified: object = data.get("modified")
    if not isinstance(path, str) or not isinstance(content_hash, str) or not isinstance(modified, str):
        raise ValueError(f"Photo entry lacks path, hash or modified: {raw!r}")

    return AssetRecord(
        id=str(data.get("id") or ""),
        path=path,
        name=str(data.get("name") or ""),
        category=str(data.get("category") or ""),
        size=_optional_int(data.get("size")) or 0,
        modified_at=parse_timestamp(modified),
        content_hash=content_hash,
        dimensions=dimensions_from_raw(data.get("dimensions")),
        exif=exif_from_raw(data.get("exif")),
        thumbnail=thumbnail_from_raw(data.get("thumbnail")),
        source_url=str(data.get("url") or ""),
        thumbnail_url=str(data.get("thumbnailUrl") or ""),
    )


def snapshot_to_raw(s: Snapshot) -> RawSnapshot:
    return {
        "generated": format_timestamp(s.generated_at),
        "totalPhotos": s.total_photos,
        "totalSize": s.total_size,
        "categories": [
            {"name": c.name, "photoCount": c.photo_count, "totalSize": c.total_size} for c in s.categories
        ],
        "photos": [photo_to_raw(p) for p in s.photos],
    }


def snapshot_from_raw(raw: object) -> Snapshot:
    if not isinstance(raw, dict):
        raise ValueError("Snapshot document is not an object")
    data: dict[str, Any] = cast(dict[str, Any], raw)

    raw_photos: object = data.get("photos") or []
    if not isinstance(raw_photos, list):
        raise ValueError("Snapshot photos is not a list")

    photos: list[AssetRecord] = []
    for raw_photo in raw_photos:
        try:
            photos.append(photo_from_raw(raw_photo))
        except ValueError as e:
            logger.warning("Ignoring unreadable snapshot entry: %s", e)

    raw_categories: object = data.get("categories") or []
    if not isinstance(raw_categories, list):
        raise ValueError("Snapshot categories is not a list")

    categories: list[CategoryStats] = []
    for raw_category in raw_categories:
        if isinstance(raw_category, dict):
            categories.append(
                CategoryStats(
                    name=str(raw_category.get("name") or ""),
                    photo_count=_optional_int(raw_category.get("photoCount")) or 0,
                    total_size=_optional_int(raw_category.get("totalSize")) or 0,
                )
            )

    generated: object = data.get("generated")
    if not isinstance(generated, str):
        raise ValueError("Snapshot lacks a generated timestamp")

    return Snapshot(
        generated_at=parse_timestamp(generated),
        total_photos=_optional_int(data.get("totalPhotos")) or 0,
        total_size=_optional_int(data.get("totalSize")) or 0,
        categories=categories,
        photos=photos,
    )


class SnapshotStore:
    """Reads and atomically replaces the JSON snapshot document at `path`."""

    def __init__(self, path: Path) -> None:
        self.path: Path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> Snapshot:
        """Load the snapshot, raising `OSError` or `ValueError` if it is missing or malformed."""
        with self.path.open("r", encoding="utf-8") as f:
            raw: object = json.load(f)
        return snapshot_from_raw(raw)

    def load(self) -> Snapshot | None:
        """
        Load the prior snapshot for reuse.

        A missing, unreadable or corrupt document is treated as no prior
        snapshot at all.
        """
        if not self.exists():
            logger.info("No prior snapshot at %s", self.path)
            return None

        try:
            snapshot: Snapshot = self.read()
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable snapshot %s: %s", self.path, e)
            return None

        logger.info("Loaded prior snapshot with %d photo(s)", len(snapshot.photos))
        return snapshot

    def save(self, snapshot: Snapshot) -> None:
        """Serialize the whole document, then rename it over the previous one."""
        payload: str = json.dumps(snapshot_to_raw(snapshot), indent=2, ensure_ascii=False)
        tmp: Path = self.path.with_name(self.path.name + f".tmp_{uuid.uuid4().hex}")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(payload, encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            if tmp.exists():
                tmp.unlink()
            raise SnapshotWriteError(f"Failed to write snapshot {self.path}: {e}") from e
