from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import NoReturn, TypedDict, cast

import yaml

from .fingerprint import DEFAULT_ALGORITHM, DEFAULT_CHUNK_SIZE, check_algorithm
from .thumbnails import ThumbnailPolicy
from .urls import UrlBuilder, base_url


class RawAppConfig(TypedDict):
    root: str
    photos_dir: str
    thumbnails_dir: str
    output_path: str
    repository: str
    branch: str
    thumbnail_width: int
    thumbnail_quality: int
    thumbnail_format: str
    hash_algorithm: str
    chunk_size: int
    max_workers: int


class RawConfigFile(TypedDict):
    config: RawAppConfig


CONFIG_FILENAME: Path = Path("config.yaml")
DEFAULT_REPOSITORY: str = "Remeic/justgiulio-photos"


def type_error(value: object) -> NoReturn:
    raise TypeError(f"Unexpected value of wrong type: {value!r}")


def _expect(raw: dict[str, object], key: str, kind: type, default: object) -> object:
    value: object = raw.get(key, default)
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        type_error(value)
    return value


@dataclass(slots=True)
class AppConfig:
    root: Path = field(default_factory=lambda: Path("."))
    photos_dir: Path = field(default_factory=lambda: Path("photos"))
    thumbnails_dir: Path = field(default_factory=lambda: Path("thumbnails"))
    output_path: Path = field(default_factory=lambda: Path("metadata.json"))
    repository: str = DEFAULT_REPOSITORY
    branch: str = "main"
    thumbnail_width: int = 600
    thumbnail_quality: int = 40
    thumbnail_format: str = "auto"
    hash_algorithm: str = DEFAULT_ALGORITHM
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_workers: int = 1

    @property
    def photos_path(self) -> Path:
        return self.root / self.photos_dir

    @property
    def thumbnails_path(self) -> Path:
        return self.root / self.thumbnails_dir

    @property
    def snapshot_path(self) -> Path:
        return self.root / self.output_path

    def thumbnail_policy(self) -> ThumbnailPolicy:
        return ThumbnailPolicy(format=self.thumbnail_format, quality=self.thumbnail_quality, width=self.thumbnail_width)

    def url_builder(self) -> UrlBuilder:
        return UrlBuilder(
            base=base_url(self.repository, self.branch),
            photos_prefix=self.photos_dir.as_posix(),
            thumbnails_prefix=self.thumbnails_dir.as_posix(),
        )

    def validate(self) -> None:
        """Raise `ValueError` for settings the pipeline cannot run with."""
        _ = self.thumbnail_policy()
        _ = check_algorithm(self.hash_algorithm)
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        if self.max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        if not self.repository.strip():
            raise ValueError("repository must not be empty")

    @staticmethod
    def load(path: Path = CONFIG_FILENAME) -> "AppConfig":
        if not path.exists():
            raise FileNotFoundError("Missing config file. Run photometa init first.")

        with path.open("r", encoding="UTF-8") as f:
            raw_loaded_obj: object | None = cast(object, yaml.safe_load(f))

        if not raw_loaded_obj:
            raise ValueError("Config file is empty or invalid YAML.")

        if not isinstance(raw_loaded_obj, dict):
            type_error(raw_loaded_obj)

        raw_dict: dict[str, object] = cast(dict[str, object], raw_loaded_obj)

        cfg_raw: object | None = raw_dict.get("config")
        if not isinstance(cfg_raw, dict):
            type_error(cfg_raw)

        cfg: dict[str, object] = cast(dict[str, object], cfg_raw)
        defaults: AppConfig = AppConfig()

        appConfig: AppConfig = AppConfig(
            root=Path(cast(str, _expect(cfg, "root", str, str(defaults.root)))),
            photos_dir=Path(cast(str, _expect(cfg, "photos_dir", str, str(defaults.photos_dir)))),
            thumbnails_dir=Path(cast(str, _expect(cfg, "thumbnails_dir", str, str(defaults.thumbnails_dir)))),
            output_path=Path(cast(str, _expect(cfg, "output_path", str, str(defaults.output_path)))),
            repository=cast(str, _expect(cfg, "repository", str, defaults.repository)),
            branch=cast(str, _expect(cfg, "branch", str, defaults.branch)),
            thumbnail_width=cast(int, _expect(cfg, "thumbnail_width", int, defaults.thumbnail_width)),
            thumbnail_quality=cast(int, _expect(cfg, "thumbnail_quality", int, defaults.thumbnail_quality)),
            thumbnail_format=cast(str, _expect(cfg, "thumbnail_format", str, defaults.thumbnail_format)),
            hash_algorithm=cast(str, _expect(cfg, "hash_algorithm", str, defaults.hash_algorithm)),
            chunk_size=cast(int, _expect(cfg, "chunk_size", int, defaults.chunk_size)),
            max_workers=cast(int, _expect(cfg, "max_workers", int, defaults.max_workers)),
        )

        return appConfig

    @staticmethod
    def load_or_default(path: Path = CONFIG_FILENAME) -> "AppConfig":
        if not path.exists():
            return AppConfig()
        return AppConfig.load(path)

    def save(self, path: Path = CONFIG_FILENAME) -> None:
        raw: RawConfigFile = {"config": self.to_raw()}
        with path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(raw, f, sort_keys=False)

    def to_raw(self) -> RawAppConfig:
        return {
            "root": str(self.root),
            "photos_dir": self.photos_dir.as_posix(),
            "thumbnails_dir": self.thumbnails_dir.as_posix(),
            "output_path": self.output_path.as_posix(),
            "repository": self.repository,
            "branch": self.branch,
            "thumbnail_width": self.thumbnail_width,
            "thumbnail_quality": self.thumbnail_quality,
            "thumbnail_format": self.thumbnail_format,
            "hash_algorithm": self.hash_algorithm,
            "chunk_size": self.chunk_size,
            "max_workers": self.max_workers,
        }


ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "GITHUB_REPOSITORY": ("repository", str),
    "PHOTOMETA_THUMBNAIL_WIDTH": ("thumbnail_width", int),
    "PHOTOMETA_THUMBNAIL_QUALITY": ("thumbnail_quality", int),
    "PHOTOMETA_THUMBNAIL_FORMAT": ("thumbnail_format", str),
}


def apply_environment(cfg: AppConfig, environ: Mapping[str, str]) -> AppConfig:
    """Override config values from environment variables that are set and non-empty."""
    for name, (attr, kind) in ENV_OVERRIDES.items():
        raw: str = environ.get(name, "").strip()
        if not raw:
            continue
        try:
            setattr(cfg, attr, kind(raw))
        except ValueError:
            raise ValueError(f"{name} must be of type {kind.__name__}, got {raw!r}")
    return cfg
