"""
Tests for photometa.reconcile.

Key properties:
1. A second pass over an unchanged tree reuses everything and probes nothing
2. Only a content hash change (or a missing prior record) triggers re-probing
3. A deleted thumbnail is regenerated without touching other items
4. Probe failures degrade one field of one item and are reported as warnings
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

import pytest
from conftest import FakeProbes, make_entry

from photometa.aggregate import build_snapshot
from photometa.models import UNCATEGORIZED, Dimensions, ExifFacts, Snapshot, ThumbnailInfo
from photometa.reconcile import Reconciler, asset_id, category_for, reconcile, sort_newest_first
from photometa.SnapshotStore import snapshot_to_raw
from photometa.thumbnails import ThumbnailPolicy
from photometa.urls import UrlBuilder

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def reconciler(tmp_path: Path, fake_probes: FakeProbes, policy: ThumbnailPolicy, urls: UrlBuilder) -> Reconciler:
    return Reconciler(
        fake_probes,
        photos_root=tmp_path / "photos",
        thumbnails_root=tmp_path / "thumbnails",
        policy=policy,
        urls=urls,
    )


def snapshot_of(photos) -> Snapshot:
    return build_snapshot(photos, NOW)


def test_asset_id_replaces_non_alphanumerics() -> None:
    assert asset_id("a/cat 1.jpg") == "a_cat_1_jpg"
    assert asset_id("Summer-2024/IMG_001.JPG") == "Summer_2024_IMG_001_JPG"


def test_category_is_first_segment_or_uncategorized() -> None:
    assert category_for("travel/japan/tokyo.jpg") == "travel"
    assert category_for("a/cat1.jpg") == "a"
    assert category_for("loose.jpg") == UNCATEGORIZED


def test_first_run_probes_everything(reconciler: Reconciler, fake_probes: FakeProbes, tmp_path: Path) -> None:
    entries = [make_entry("a/cat1.jpg", "h1"), make_entry("b/cat2.png", "h2")]

    result = reconciler.reconcile(entries, None)

    assert fake_probes.calls == {"dimensions": 2, "exif": 2, "thumbnail": 2}
    assert result.stats.new == 2
    assert result.stats.thumbnails_rendered == 2
    assert result.warnings == []
    assert (tmp_path / "thumbnails" / "a" / "cat1_thumb.jpg").is_file()
    assert (tmp_path / "thumbnails" / "b" / "cat2_thumb.png").is_file()

    record = next(r for r in result.photos if r.path == "a/cat1.jpg")
    assert record.id == "a_cat1_jpg"
    assert record.category == "a"
    assert record.dimensions == Dimensions(800, 600, "jpeg")
    assert record.exif == ExifFacts(camera="Canon EOS R5", iso=100)
    assert record.thumbnail == ThumbnailInfo(600, 450, 5)
    assert record.source_url == "https://raw.githubusercontent.com/octo/photos/main/photos/a/cat1.jpg"
    assert record.thumbnail_url == "https://raw.githubusercontent.com/octo/photos/main/thumbnails/a/cat1_thumb.jpg"


def test_second_run_is_idempotent_and_probe_free(reconciler: Reconciler, fake_probes: FakeProbes) -> None:
    entries = [make_entry("a/cat1.jpg", "h1"), make_entry("b/cat2.png", "h2")]
    first = reconciler.reconcile(entries, None)
    fake_probes.reset()

    second = reconciler.reconcile(entries, snapshot_of(first.photos))

    assert fake_probes.total == 0
    assert second.stats.probe_calls == 0
    assert second.stats.unchanged == 2
    assert second.photos == first.photos
    assert snapshot_to_raw(snapshot_of(second.photos)) == snapshot_to_raw(snapshot_of(first.photos))


def test_changed_hash_reprobes_only_that_item(reconciler: Reconciler, fake_probes: FakeProbes) -> None:
    first = reconciler.reconcile([make_entry("a/cat1.jpg", "h1"), make_entry("b/cat2.png", "h2")], None)
    fake_probes.reset()

    result = reconciler.reconcile(
        [make_entry("a/cat1.jpg", "h1-new"), make_entry("b/cat2.png", "h2")], snapshot_of(first.photos)
    )

    assert fake_probes.calls == {"dimensions": 1, "exif": 1, "thumbnail": 1}
    assert {name for _, name in fake_probes.paths} == {"cat1.jpg"}
    assert result.stats.changed == 1
    assert result.stats.unchanged == 1


def test_size_and_mtime_changes_alone_do_not_reprobe(reconciler: Reconciler, fake_probes: FakeProbes) -> None:
    first = reconciler.reconcile([make_entry("a/cat1.jpg", "h1", modified=100, size=10)], None)
    fake_probes.reset()

    result = reconciler.reconcile([make_entry("a/cat1.jpg", "h1", modified=999, size=20)], snapshot_of(first.photos))

    assert fake_probes.total == 0
    assert result.photos[0].size == 20
    assert result.photos[0].modified_at == datetime.fromtimestamp(999, tz=timezone.utc)


def test_missing_thumbnail_is_regenerated(reconciler: Reconciler, fake_probes: FakeProbes, tmp_path: Path) -> None:
    first = reconciler.reconcile([make_entry("a/cat1.jpg", "h1"), make_entry("b/cat2.png", "h2")], None)
    (tmp_path / "thumbnails" / "b" / "cat2_thumb.png").unlink()
    fake_probes.reset()

    result = reconciler.reconcile(
        [make_entry("a/cat1.jpg", "h1"), make_entry("b/cat2.png", "h2")], snapshot_of(first.photos)
    )

    assert fake_probes.calls == {"thumbnail": 1}
    assert fake_probes.paths == [("thumbnail", "cat2.png")]
    assert (tmp_path / "thumbnails" / "b" / "cat2_thumb.png").is_file()
    assert result.photos == first.photos


def test_prior_record_without_fields_is_backfilled(reconciler: Reconciler, fake_probes: FakeProbes) -> None:
    first = reconciler.reconcile([make_entry("a/cat1.jpg", "h1"), make_entry("a/cat3.jpg", "h3")], None)
    stale = [replace(first.photos[0], dimensions=None), replace(first.photos[1], exif=None)]
    fake_probes.reset()

    result = reconciler.reconcile([make_entry("a/cat1.jpg", "h1"), make_entry("a/cat3.jpg", "h3")], snapshot_of(stale))

    assert fake_probes.calls == {"dimensions": 1, "exif": 1}
    assert all(r.dimensions is not None and r.exif is not None for r in result.photos)


def test_unknown_dimensions_sentinel_is_retried(reconciler: Reconciler, fake_probes: FakeProbes) -> None:
    first = reconciler.reconcile([make_entry("a/cat1.jpg", "h1")], None)
    stale = [replace(first.photos[0], dimensions=Dimensions.unknown())]
    fake_probes.reset()

    result = reconciler.reconcile([make_entry("a/cat1.jpg", "h1")], snapshot_of(stale))

    assert fake_probes.calls == {"dimensions": 1}
    assert result.photos[0].dimensions == Dimensions(800, 600, "jpeg")


def test_empty_exif_record_is_reused(reconciler: Reconciler, fake_probes: FakeProbes) -> None:
    first = reconciler.reconcile([make_entry("a/plain.png", "h1")], None)
    stale = [replace(first.photos[0], exif=ExifFacts())]
    fake_probes.reset()

    result = reconciler.reconcile([make_entry("a/plain.png", "h1")], snapshot_of(stale))

    assert fake_probes.total == 0
    assert result.photos[0].exif == ExifFacts()


def test_probe_failure_is_isolated(tmp_path: Path, policy: ThumbnailPolicy, urls: UrlBuilder) -> None:
    probes = FakeProbes(failing={"broken.jpg"})
    entries = [make_entry("a/ok.jpg", "h1"), make_entry("a/broken.jpg", "h2"), make_entry("b/fine.jpg", "h3")]

    result = reconcile(
        entries,
        None,
        probes,
        photos_root=tmp_path / "photos",
        thumbnails_root=tmp_path / "thumbnails",
        policy=policy,
        urls=urls,
    )

    assert len(result.photos) == 3
    broken = next(r for r in result.photos if r.name == "broken.jpg")
    assert broken.dimensions == Dimensions.unknown()
    assert broken.exif == ExifFacts()
    assert broken.thumbnail is None
    assert {(w.path, w.operation) for w in result.warnings} == {
        ("a/broken.jpg", "dimensions"),
        ("a/broken.jpg", "exif"),
        ("a/broken.jpg", "thumbnail"),
    }
    for sibling in (r for r in result.photos if r.name != "broken.jpg"):
        assert sibling.dimensions == Dimensions(800, 600, "jpeg")
        assert sibling.thumbnail is not None


def test_deleted_files_are_dropped(reconciler: Reconciler, fake_probes: FakeProbes) -> None:
    first = reconciler.reconcile([make_entry("a/cat1.jpg", "h1"), make_entry("b/cat2.png", "h2")], None)

    result = reconciler.reconcile([make_entry("a/cat1.jpg", "h1")], snapshot_of(first.photos))

    assert [r.path for r in result.photos] == ["a/cat1.jpg"]
    assert result.stats.removed == 1
    assert [c.name for c in snapshot_of(result.photos).categories] == ["a"]


def test_renamed_file_is_a_new_item(reconciler: Reconciler, fake_probes: FakeProbes) -> None:
    first = reconciler.reconcile([make_entry("a/cat1.jpg", "h1")], None)
    fake_probes.reset()

    result = reconciler.reconcile([make_entry("a/renamed.jpg", "h1")], snapshot_of(first.photos))

    assert result.stats.new == 1
    assert result.stats.removed == 1
    assert fake_probes.calls == {"dimensions": 1, "exif": 1, "thumbnail": 1}


def test_photos_sorted_newest_first_with_stable_ties(reconciler: Reconciler) -> None:
    entries = [
        make_entry("a/old.jpg", "h1", modified=100),
        make_entry("a/tie1.jpg", "h2", modified=500),
        make_entry("b/new.jpg", "h3", modified=900),
        make_entry("b/tie2.jpg", "h4", modified=500),
        make_entry("c/tie3.jpg", "h5", modified=500),
    ]

    result = reconciler.reconcile(entries, None)

    assert [r.name for r in result.photos] == ["new.jpg", "tie1.jpg", "tie2.jpg", "tie3.jpg", "old.jpg"]


def test_sort_newest_first_does_not_mutate_input(reconciler: Reconciler) -> None:
    result = reconciler.reconcile([make_entry("a/x.jpg", "h1", modified=1), make_entry("a/y.jpg", "h2", modified=2)], None)
    unsorted = list(reversed(result.photos))

    ordered = sort_newest_first(unsorted)

    assert [r.name for r in ordered] == ["y.jpg", "x.jpg"]
    assert [r.name for r in unsorted] == ["x.jpg", "y.jpg"]


def test_prior_snapshot_is_not_mutated(reconciler: Reconciler, fake_probes: FakeProbes) -> None:
    first = reconciler.reconcile([make_entry("a/cat1.jpg", "h1"), make_entry("b/cat2.png", "h2")], None)
    prior = snapshot_of(first.photos)
    before = snapshot_to_raw(prior)

    reconciler.reconcile([make_entry("a/cat1.jpg", "changed")], prior)

    assert snapshot_to_raw(prior) == before


def test_sibling_sources_get_distinct_thumbnails(reconciler: Reconciler, fake_probes: FakeProbes, tmp_path: Path) -> None:
    entries = [make_entry("a/x.jpeg", "h1"), make_entry("a/x.jpg", "h2"), make_entry("a/x.webp", "h3")]

    first = reconciler.reconcile(entries, None)

    urls = sorted(r.thumbnail_url.rsplit("/", 1)[-1] for r in first.photos)
    assert urls == ["x_jpg_thumb.jpg", "x_thumb.jpg", "x_webp_thumb.jpg"]
    assert fake_probes.calls["thumbnail"] == 3
    for name in urls:
        assert (tmp_path / "thumbnails" / "a" / name).is_file()

    fake_probes.reset()
    second = reconciler.reconcile(entries, snapshot_of(first.photos))

    assert fake_probes.total == 0
    assert second.photos == first.photos


def test_freed_thumbnail_name_is_rendered_again(reconciler: Reconciler, fake_probes: FakeProbes) -> None:
    first = reconciler.reconcile([make_entry("a/x.jpeg", "h1"), make_entry("a/x.jpg", "h2")], None)
    fake_probes.reset()

    result = reconciler.reconcile([make_entry("a/x.jpg", "h2")], snapshot_of(first.photos))

    assert fake_probes.paths == [("thumbnail", "x.jpg")]
    assert result.photos[0].thumbnail_url.endswith("/thumbnails/a/x_thumb.jpg")


def test_thumbnail_without_free_name_is_a_warning(reconciler: Reconciler, fake_probes: FakeProbes) -> None:
    entries = [make_entry("a/x.jpeg", "h1"), make_entry("a/x_jpg.jpg", "h2"), make_entry("a/x.jpg", "h3")]

    result = reconciler.reconcile(entries, None)

    stuck = next(r for r in result.photos if r.path == "a/x.jpg")
    assert stuck.thumbnail is None
    assert stuck.thumbnail_url == ""
    assert [(w.path, w.operation) for w in result.warnings] == [("a/x.jpg", "thumbnail")]
    assert fake_probes.calls["thumbnail"] == 2
