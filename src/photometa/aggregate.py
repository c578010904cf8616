from collections.abc import Sequence
from datetime import datetime

from .models import AssetRecord, CategoryStats, Snapshot


def aggregate_categories(photos: Sequence[AssetRecord]) -> list[CategoryStats]:
    """
    Per-category photo counts and byte totals, largest category first.

    Categories with equal counts keep the order in which they first appear
    in `photos`.
    """
    counts: dict[str, int] = {}
    sizes: dict[str, int] = {}

    for photo in photos:
        counts[photo.category] = counts.get(photo.category, 0) + 1
        sizes[photo.category] = sizes.get(photo.category, 0) + photo.size

    categories: list[CategoryStats] = [
        CategoryStats(name=name, photo_count=count, total_size=sizes[name]) for name, count in counts.items()
    ]
    return sorted(categories, key=lambda c: c.photo_count, reverse=True)


def build_snapshot(photos: Sequence[AssetRecord], generated_at: datetime) -> Snapshot:
    return Snapshot(
        generated_at=generated_at,
        total_photos=len(photos),
        total_size=sum(photo.size for photo in photos),
        categories=aggregate_categories(photos),
        photos=list(photos),
    )
