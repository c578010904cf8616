import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path

from .fingerprint import DEFAULT_ALGORITHM, DEFAULT_CHUNK_SIZE, Fingerprint, fingerprint_files
from .log import get_logger
from .models import FileEntry, ProbeWarning

logger = get_logger(__name__)

IMAGE_EXTENSIONS: frozenset[str] = frozenset({".jpg", ".jpeg", ".png", ".webp", ".gif"})


@dataclass(slots=True)
class ScanResult:
    entries: list[FileEntry] = field(default_factory=list)
    warnings: list[ProbeWarning] = field(default_factory=list)


def is_image(name: str) -> bool:
    return os.path.splitext(name)[1].lower() in IMAGE_EXTENSIONS


def discover_dir_entries(path: Path) -> tuple[list[Path], list[Path]]:
    """
    Return immediate subdirectories and image files of `path`, sorted by name.

    Symlinks are ignored.
    """
    subdirs: list[Path] = []
    files: list[Path] = []

    with os.scandir(path) as it:
        for entry in sorted(it, key=lambda e: e.name):
            if entry.is_symlink():
                continue

            if entry.is_dir(follow_symlinks=False):
                subdirs.append(Path(entry.path))
            elif entry.is_file(follow_symlinks=False) and is_image(entry.name):
                files.append(Path(entry.path))

    return subdirs, files


def find_image_files(root: Path, warnings: list[ProbeWarning] | None = None) -> Iterator[Path]:
    """
    Recursively yield image files under `root` in a stable depth-first order.

    Parameters
    ----------
    root : Path
        The directory to search in.
    warnings : list[ProbeWarning] | None
        Collects one entry per subdirectory that could not be read.

    Yields
    ------
    Path
        Absolute paths of image files.

    Raises
    ------
    ValueError
        If the root does not exist or is not a directory.
    OSError
        If the root itself cannot be listed.
    """
    top_path: Path = root.resolve()

    if not top_path.exists():
        raise ValueError(f"{top_path} does not exist")
    if not top_path.is_dir():
        raise ValueError(f"{top_path} is not a directory")

    def visit(dir_path: Path) -> Iterator[Path]:
        try:
            subdirs, files = discover_dir_entries(dir_path)
        except OSError as e:
            if dir_path == top_path:
                raise
            logger.warning("Skipping unreadable directory %s: %s", dir_path, e)
            if warnings is not None:
                warnings.append(
                    ProbeWarning(path=relative_posix(dir_path, top_path), operation="scan", message=str(e))
                )
            return

        yield from files
        for subdir in subdirs:
            yield from visit(subdir)

    yield from visit(top_path)


def relative_posix(path: Path, root: Path) -> str:
    return path.relative_to(root).as_posix()


def mtime_ms(st: os.stat_result) -> datetime:
    """Modification time truncated to the millisecond precision the snapshot stores."""
    ms: int = st.st_mtime_ns // 1_000_000
    return datetime.fromtimestamp(ms // 1000, tz=timezone.utc) + timedelta(milliseconds=ms % 1000)


def scan_images(
    root: Path,
    *,
    algorithm: str = DEFAULT_ALGORITHM,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_workers: int = 1,
) -> ScanResult:
    """List every image under `root` with its size, mtime and content fingerprint."""
    top_path: Path = root.resolve()
    result: ScanResult = ScanResult()

    paths: list[Path] = list(find_image_files(top_path, result.warnings))

    fingerprint: Fingerprint
    for fingerprint in fingerprint_files(
        paths, algorithm=algorithm, chunk_size=chunk_size, max_workers=max_workers
    ):
        rel: str = relative_posix(fingerprint.path, top_path)

        if fingerprint.digest is None:
            logger.warning("Skipping %s, fingerprint failed: %s", rel, fingerprint.error)
            result.warnings.append(
                ProbeWarning(path=rel, operation="fingerprint", message=fingerprint.error or "")
            )
            continue

        try:
            st: os.stat_result = fingerprint.path.stat()
        except OSError as e:
            logger.warning("Skipping %s, stat failed: %s", rel, e)
            result.warnings.append(ProbeWarning(path=rel, operation="fingerprint", message=str(e)))
            continue

        result.entries.append(
            FileEntry(
                path=rel,
                name=fingerprint.path.name,
                size=st.st_size,
                modified_at=mtime_ms(st),
                content_hash=fingerprint.digest,
            )
        )

    logger.info("Scanned %s: %d image(s)", top_path, len(result.entries))
    return result
