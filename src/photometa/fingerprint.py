import hashlib
from collections.abc import Iterable, Iterator
from concurrent.futures import Future, ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path

DEFAULT_ALGORITHM: str = "md5"
DEFAULT_CHUNK_SIZE: int = 64 * 1024


@dataclass(frozen=True, slots=True)
class Fingerprint:
    path: Path
    digest: str | None
    error: str | None = None


def check_algorithm(algorithm: str) -> str:
    if algorithm not in hashlib.algorithms_available:
        raise ValueError(f"Unknown hash algorithm: {algorithm}")
    return algorithm


def calculate_digest(path: Path, algorithm: str = DEFAULT_ALGORITHM, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """
    Return the hex digest of the bytes of `path`.

    The file is read in chunks of `chunk_size` bytes so large images never
    have to fit in memory at once.
    """
    hash = hashlib.new(algorithm)
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            hash.update(chunk)
    return hash.hexdigest()


def _fingerprint_one(path: Path, algorithm: str, chunk_size: int) -> Fingerprint:
    try:
        return Fingerprint(path=path, digest=calculate_digest(path, algorithm, chunk_size))
    except OSError as e:
        return Fingerprint(path=path, digest=None, error=str(e))


def fingerprint_files(
    paths: Iterable[Path],
    *,
    algorithm: str = DEFAULT_ALGORITHM,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_workers: int = 1,
    max_in_flight: int = 200,
) -> Iterator[Fingerprint]:
    """
    Fingerprint every path, yielding results in the order of `paths`.

    With `max_workers` above one the digests are computed in a bounded
    process pool; results are buffered and released in input order.
    """
    if max_in_flight <= 0:
        raise ValueError("max_in_flight must be > 0")
    if max_workers <= 0:
        raise ValueError("max_workers must be > 0")

    if max_workers == 1:
        for path in paths:
            yield _fingerprint_one(path, algorithm, chunk_size)
        return

    with ProcessPoolExecutor(max_workers=max_workers) as executor:
        in_flight: dict[Future[Fingerprint], int] = {}
        finished: dict[int, Fingerprint] = {}
        next_index: int = 0

        def release() -> Iterator[Fingerprint]:
            nonlocal next_index
            while next_index in finished:
                yield finished.pop(next_index)
                next_index += 1

        for index, path in enumerate(paths):
            # Apply backpressure
            while len(in_flight) >= max_in_flight:
                done: Future[Fingerprint] = next(as_completed(in_flight))
                finished[in_flight.pop(done)] = done.result()
                yield from release()

            future: Future[Fingerprint] = executor.submit(_fingerprint_one, path, algorithm, chunk_size)
            in_flight[future] = index

        # Drain remaining futures
        for future in as_completed(in_flight):
            finished[in_flight[future]] = future.result()
        yield from release()
