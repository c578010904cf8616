from dataclasses import dataclass
from urllib.parse import quote

RAW_CONTENT_HOST: str = "https://raw.githubusercontent.com"


def base_url(repository: str, branch: str = "main") -> str:
    """
    Resolve a repository slug (`owner/name`) or an absolute URL to a base URL.

    >>> base_url("octo/photos")
    'https://raw.githubusercontent.com/octo/photos/main'
    >>> base_url("https://cdn.example.com/site/")
    'https://cdn.example.com/site'
    """
    value: str = repository.strip()
    if value.startswith(("http://", "https://")):
        return value.rstrip("/")
    return f"{RAW_CONTENT_HOST}/{value.strip('/')}/{branch}"


@dataclass(frozen=True, slots=True)
class UrlBuilder:
    base: str
    photos_prefix: str = "photos"
    thumbnails_prefix: str = "thumbnails"

    def _join(self, prefix: str, path: str) -> str:
        parts: list[str] = [p for p in (prefix.strip("/"), path) if p]
        return "/".join([self.base, *(quote(p, safe="/") for p in parts)])

    def source_url(self, path: str) -> str:
        return self._join(self.photos_prefix, path)

    def thumbnail_url(self, thumbnail_path: str) -> str:
        return self._join(self.thumbnails_prefix, thumbnail_path)
