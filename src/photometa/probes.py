from pathlib import Path
from typing import Protocol

from PIL import Image

from .exif import read_exif
from .models import Dimensions, ExifFacts, ThumbnailInfo
from .thumbnails import ThumbnailPolicy, render_thumbnail


class ProbeServices(Protocol):
    """
    The expensive per-image work the reconciler may skip.

    Implementations may raise on any failure; the reconciler turns a raised
    error into the field's fallback value and a warning.
    """

    def probe_dimensions(self, source: Path) -> Dimensions: ...

    def extract_exif(self, source: Path) -> ExifFacts: ...

    def render_thumbnail(self, source: Path, destination: Path, source_path: str) -> ThumbnailInfo: ...


class PillowProbes:
    """Probe services backed by Pillow."""

    def __init__(self, policy: ThumbnailPolicy) -> None:
        self.policy: ThumbnailPolicy = policy

    def probe_dimensions(self, source: Path) -> Dimensions:
        with Image.open(source) as img:
            return Dimensions(
                width=img.width or 0,
                height=img.height or 0,
                format=(img.format or "unknown").lower(),
            )

    def extract_exif(self, source: Path) -> ExifFacts:
        return read_exif(source)

    def render_thumbnail(self, source: Path, destination: Path, source_path: str) -> ThumbnailInfo:
        return render_thumbnail(source, destination, self.policy, source_path)
