import math
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from PIL import Image, ImageOps

from .models import ThumbnailInfo

THUMBNAIL_FORMATS: tuple[str, ...] = ("auto", "jpeg", "png")
LOSSLESS_SOURCE_EXTENSIONS: frozenset[str] = frozenset({".png", ".gif"})


@dataclass(frozen=True, slots=True)
class ThumbnailPolicy:
    """
    Output encoding for thumbnails.

    `auto` keeps sources that usually carry transparency or animation
    (PNG, GIF) lossless and encodes everything else as JPEG at `quality`.
    """

    format: str = "auto"
    quality: int = 40
    width: int = 600

    def __post_init__(self) -> None:
        if self.format not in THUMBNAIL_FORMATS:
            raise ValueError(f"Thumbnail format must be one of {', '.join(THUMBNAIL_FORMATS)}")
        if not 1 <= self.quality <= 95:
            raise ValueError("Thumbnail quality must be between 1 and 95")
        if self.width <= 0:
            raise ValueError("Thumbnail width must be > 0")

    def is_lossless(self, source_path: str) -> bool:
        if self.format == "auto":
            return PurePosixPath(source_path).suffix.lower() in LOSSLESS_SOURCE_EXTENSIONS
        return self.format == "png"

    def thumbnail_path(self, source_path: str, qualified: bool = False) -> str:
        """
        Relative thumbnail path for a relative source path, e.g. `a/b.jpg` -> `a/b_thumb.jpg`.

        With `qualified` the source extension is kept in the name (`a/b_jpg_thumb.jpg`),
        for sources whose plain name is already taken by a sibling such as `a/b.jpeg`.
        """
        source: PurePosixPath = PurePosixPath(source_path)
        extension: str = "png" if self.is_lossless(source_path) else "jpg"
        stem: str = source.stem
        if qualified and source.suffix:
            stem = f"{stem}_{source.suffix[1:]}"
        return source.with_name(f"{stem}_thumb.{extension}").as_posix()


def target_size(source_width: int, source_height: int, target_width: int) -> tuple[int, int]:
    """Aspect-preserving size for `target_width`, never larger than the source."""
    if source_width <= 0 or source_height <= 0:
        raise ValueError(f"Invalid source size {source_width}x{source_height}")

    width: int = min(target_width, source_width)
    height: int = math.floor(width / (source_width / source_height) + 0.5)
    return width, max(1, height)


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA", "PA") or "transparency" in img.info


def _normalize_mode(img: Image.Image, lossless: bool) -> Image.Image:
    if lossless:
        if img.mode in ("RGB", "RGBA", "L", "LA"):
            return img
        return img.convert("RGBA" if _has_alpha(img) else "RGB")

    if img.mode == "RGB":
        return img
    if _has_alpha(img):
        rgba: Image.Image = img.convert("RGBA")
        background: Image.Image = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return img.convert("RGB")


def render_thumbnail(source: Path, destination: Path, policy: ThumbnailPolicy, source_path: str) -> ThumbnailInfo:
    """
    Write a resized copy of `source` to `destination`.

    EXIF orientation is applied first so the thumbnail is upright. The file is
    written next to the destination and renamed into place, so a failed render
    never leaves a truncated thumbnail behind.
    """
    lossless: bool = policy.is_lossless(source_path)

    with Image.open(source) as img:
        oriented: Image.Image = ImageOps.exif_transpose(img)
        width, height = target_size(oriented.width, oriented.height, policy.width)

        out: Image.Image = _normalize_mode(oriented, lossless)
        if out.size != (width, height):
            out = out.resize((width, height), Image.Resampling.LANCZOS)

        destination.parent.mkdir(parents=True, exist_ok=True)
        tmp: Path = destination.with_name(destination.name + f".tmp_{uuid.uuid4().hex}")
        try:
            if lossless:
                out.save(tmp, format="PNG", optimize=True, compress_level=9)
            else:
                out.save(tmp, format="JPEG", quality=policy.quality, optimize=True)
            tmp.replace(destination)
        finally:
            tmp.unlink(missing_ok=True)

    return ThumbnailInfo(width=width, height=height, byte_size=destination.stat().st_size)
