from dataclasses import dataclass, field
from datetime import datetime, timezone

UNCATEGORIZED: str = "uncategorized"


def format_timestamp(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    ts: datetime = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


@dataclass(frozen=True, slots=True)
class FileEntry:
    path: str
    name: str
    size: int
    modified_at: datetime
    content_hash: str


@dataclass(frozen=True, slots=True)
class Dimensions:
    width: int
    height: int
    format: str

    @staticmethod
    def unknown() -> "Dimensions":
        return Dimensions(width=0, height=0, format="unknown")

    @property
    def is_unknown(self) -> bool:
        return self.width == 0 and self.height == 0 and self.format == "unknown"


@dataclass(frozen=True, slots=True)
class GpsPosition:
    latitude: float
    longitude: float


@dataclass(frozen=True, slots=True)
class ExifFacts:
    camera: str | None = None
    aperture: str | None = None
    iso: int | None = None
    shutter_speed: str | None = None
    focal_length: str | None = None
    gps: GpsPosition | None = None
    date_taken: str | None = None


@dataclass(frozen=True, slots=True)
class ThumbnailInfo:
    width: int
    height: int
    byte_size: int


@dataclass(frozen=True, slots=True)
class AssetRecord:
    id: str
    path: str
    name: str
    category: str
    size: int
    modified_at: datetime
    content_hash: str
    # None only for records loaded from an older snapshot missing the field
    dimensions: Dimensions | None
    exif: ExifFacts | None
    thumbnail: ThumbnailInfo | None
    source_url: str
    thumbnail_url: str


@dataclass(frozen=True, slots=True)
class CategoryStats:
    name: str
    photo_count: int
    total_size: int


@dataclass(frozen=True, slots=True)
class Snapshot:
    generated_at: datetime
    total_photos: int
    total_size: int
    categories: list[CategoryStats] = field(default_factory=list)
    photos: list[AssetRecord] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ProbeWarning:
    path: str
    operation: str
    message: str


@dataclass(slots=True)
class ReconcileStats:
    scanned: int = 0
    new: int = 0
    changed: int = 0
    unchanged: int = 0
    removed: int = 0
    thumbnails_rendered: int = 0
    probe_calls: int = 0

    @property
    def summary(self) -> str:
        return (
            f"scanned={self.scanned}, new={self.new}, changed={self.changed}, "
            f"unchanged={self.unchanged}, removed={self.removed}, "
            f"thumbnails={self.thumbnails_rendered}, probes={self.probe_calls}"
        )


@dataclass(slots=True)
class ReconcileResult:
    photos: list[AssetRecord]
    stats: ReconcileStats
    warnings: list[ProbeWarning] = field(default_factory=list)
