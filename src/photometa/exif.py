"""
EXIF normalization.

Pillow exposes EXIF values in their on-disk shapes: `IFDRational` objects,
single-element tuples, `(numerator, denominator)` pairs, NUL-padded byte
strings. Everything in here turns those into plain numbers and strings so the
snapshot never carries the source encoding.
"""
import math
from collections.abc import Mapping
from datetime import datetime, tzinfo
from numbers import Rational
from pathlib import Path
from typing import Any

from PIL import ExifTags, Image

from .models import ExifFacts, GpsPosition

EXIF_DATE_FORMAT: str = "%Y:%m:%d %H:%M:%S"


def to_number(value: Any) -> float | None:
    """Collapse an EXIF scalar, rational or wrapped value to a float."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (tuple, list)):
        if len(value) == 1:
            return to_number(value[0])
        if len(value) == 2 and all(isinstance(v, int) for v in value):
            # Legacy (numerator, denominator) pair
            if value[1] == 0:
                return None
            return value[0] / value[1]
        return None

    if isinstance(value, bytes):
        value = value.decode("ascii", errors="ignore")

    if isinstance(value, str):
        value = value.strip("\x00 ")
        if not value:
            return None

    try:
        if isinstance(value, Rational) and value.denominator == 0:
            return None
        number: float = float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None

    return number if math.isfinite(number) else None


def to_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (tuple, list)):
        return to_text(value[0]) if len(value) == 1 else None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    text: str = str(value).strip("\x00 ").strip()
    return text or None


def to_degrees(dms: Any, ref: Any) -> float | None:
    """Convert a (degrees, minutes, seconds) triple plus hemisphere ref to signed decimal degrees."""
    if isinstance(dms, (tuple, list)) and len(dms) == 3:
        parts: list[float | None] = [to_number(part) for part in dms]
        if any(part is None for part in parts):
            return None
        degrees, minutes, seconds = (float(p) for p in parts)  # type: ignore[arg-type]
        value: float = degrees + minutes / 60.0 + seconds / 3600.0
    else:
        single: float | None = to_number(dms)
        if single is None:
            return None
        value = single

    if to_text(ref) in {"S", "W"}:
        value = -value
    return round(value, 7)


def to_offset(value: Any) -> tzinfo | None:
    """Parse an EXIF `OffsetTime*` value such as `+02:00`."""
    text: str | None = to_text(value)
    if text is None:
        return None
    try:
        return datetime.strptime(text, "%z").tzinfo
    except ValueError:
        return None


def to_iso_date(value: Any, offset: Any = None) -> str | None:
    """
    ISO 8601 form of an EXIF date.

    EXIF dates are camera-local wall time. With an `OffsetTime*` value such as
    `+02:00` the offset is appended; without one the result stays naive.
    """
    text: str | None = to_text(value)
    if text is None:
        return None
    try:
        taken: datetime = datetime.strptime(text, EXIF_DATE_FORMAT)
    except ValueError:
        return None

    tz: tzinfo | None = to_offset(offset)
    return (taken.replace(tzinfo=tz) if tz is not None else taken).isoformat()


def exif_facts_from_tags(
    ifd0: Mapping[int, Any],
    exif_ifd: Mapping[int, Any],
    gps_ifd: Mapping[int, Any],
) -> ExifFacts:
    """Build normalized facts from the raw IFD0, Exif and GPS directories."""
    make: str = to_text(ifd0.get(ExifTags.Base.Make)) or ""
    model: str = to_text(ifd0.get(ExifTags.Base.Model)) or ""
    camera: str | None = f"{make} {model}".strip() or None

    f_number: float | None = to_number(exif_ifd.get(ExifTags.Base.FNumber))
    iso: float | None = to_number(exif_ifd.get(ExifTags.Base.ISOSpeedRatings))
    exposure: float | None = to_number(exif_ifd.get(ExifTags.Base.ExposureTime))
    focal: float | None = to_number(exif_ifd.get(ExifTags.Base.FocalLength))

    latitude: float | None = to_degrees(
        gps_ifd.get(ExifTags.GPS.GPSLatitude), gps_ifd.get(ExifTags.GPS.GPSLatitudeRef)
    )
    longitude: float | None = to_degrees(
        gps_ifd.get(ExifTags.GPS.GPSLongitude), gps_ifd.get(ExifTags.GPS.GPSLongitudeRef)
    )

    date_taken: str | None = to_iso_date(
        exif_ifd.get(ExifTags.Base.DateTimeOriginal), exif_ifd.get(ExifTags.Base.OffsetTimeOriginal)
    ) or to_iso_date(
        exif_ifd.get(ExifTags.Base.DateTimeDigitized), exif_ifd.get(ExifTags.Base.OffsetTimeDigitized)
    )

    return ExifFacts(
        camera=camera,
        aperture=f"f/{f_number:.1f}" if f_number else None,
        iso=round(iso) if iso is not None else None,
        shutter_speed=f"{exposure:.3f}s" if exposure else None,
        focal_length=f"{focal:.1f}mm" if focal else None,
        gps=GpsPosition(latitude=latitude, longitude=longitude)
        if latitude is not None and longitude is not None
        else None,
        date_taken=date_taken,
    )


def read_exif(path: Path) -> ExifFacts:
    """Read and normalize the EXIF block of an image. Raises on unreadable files."""
    with Image.open(path) as img:
        exif: Image.Exif = img.getexif()
        return exif_facts_from_tags(
            dict(exif),
            dict(exif.get_ifd(ExifTags.IFD.Exif)),
            dict(exif.get_ifd(ExifTags.IFD.GPSInfo)),
        )
