from __future__ import annotations

import logging
import os
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path

import pytest
from PIL import Image

from photometa.config import AppConfig
from photometa.log import ROOT_LOGGER
from photometa.models import Dimensions, ExifFacts, FileEntry, ThumbnailInfo
from photometa.probes import PillowProbes
from photometa.thumbnails import ThumbnailPolicy
from photometa.urls import UrlBuilder


def write_image(
    path: Path,
    size: tuple[int, int] = (800, 600),
    *,
    mode: str = "RGB",
    fmt: str | None = None,
    color: tuple[int, ...] = (200, 30, 30),
    exif: Image.Exif | None = None,
    mtime: float | None = None,
) -> Path:
    """Write a solid-color image and optionally pin its mtime."""
    path.parent.mkdir(parents=True, exist_ok=True)
    img = Image.new(mode, size, color)
    kwargs = {"exif": exif} if exif is not None else {}
    img.save(path, format=fmt, **kwargs)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def make_entry(path: str, content_hash: str = "h1", modified: int = 1_700_000_000, size: int = 100) -> FileEntry:
    return FileEntry(
        path=path,
        name=path.rsplit("/", 1)[-1],
        size=size,
        modified_at=datetime.fromtimestamp(modified, tz=timezone.utc),
        content_hash=content_hash,
    )


class FakeProbes:
    """Probe services that count calls, write a stub thumbnail and fail on demand."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.calls: Counter[str] = Counter()
        self.paths: list[tuple[str, str]] = []
        self.failing: set[str] = failing or set()

    def _record(self, operation: str, source: Path) -> None:
        self.calls[operation] += 1
        self.paths.append((operation, source.name))
        if source.name in self.failing:
            raise OSError(f"cannot identify image file {source.name}")

    def probe_dimensions(self, source: Path) -> Dimensions:
        self._record("dimensions", source)
        return Dimensions(width=800, height=600, format="jpeg")

    def extract_exif(self, source: Path) -> ExifFacts:
        self._record("exif", source)
        return ExifFacts(camera="Canon EOS R5", iso=100)

    def render_thumbnail(self, source: Path, destination: Path, source_path: str) -> ThumbnailInfo:
        self._record("thumbnail", source)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(b"thumb")
        return ThumbnailInfo(width=600, height=450, byte_size=5)

    @property
    def total(self) -> int:
        return sum(self.calls.values())

    def reset(self) -> None:
        self.calls.clear()
        self.paths.clear()


class CountingPillowProbes(PillowProbes):
    def __init__(self, policy: ThumbnailPolicy) -> None:
        super().__init__(policy)
        self.calls: Counter[str] = Counter()

    def probe_dimensions(self, source: Path) -> Dimensions:
        self.calls["dimensions"] += 1
        return super().probe_dimensions(source)

    def extract_exif(self, source: Path) -> ExifFacts:
        self.calls["exif"] += 1
        return super().extract_exif(source)

    def render_thumbnail(self, source: Path, destination: Path, source_path: str) -> ThumbnailInfo:
        self.calls["thumbnail"] += 1
        return super().render_thumbnail(source, destination, source_path)


@pytest.fixture
def fake_probes() -> FakeProbes:
    return FakeProbes()


@pytest.fixture
def policy() -> ThumbnailPolicy:
    return ThumbnailPolicy()


@pytest.fixture
def urls() -> UrlBuilder:
    return UrlBuilder(base="https://raw.githubusercontent.com/octo/photos/main")


@pytest.fixture
def cfg(tmp_path: Path) -> AppConfig:
    return AppConfig(root=tmp_path, repository="octo/photos")


@pytest.fixture(autouse=True)
def detach_console_logging():
    yield
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
