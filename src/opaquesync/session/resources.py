"""
Resource cache for auxiliary question files.

Engines ship images, scripts and stylesheets alongside the question markup.
They are stored per question version so that later sessions can tell the
engine which files they already hold.
"""

from pathlib import Path
from typing import Iterable, Optional, Protocol

from opaquesync.engine.models import Resource
from opaquesync.logger import get_logger

logger = get_logger(__name__)


class ResourceCache(Protocol):
    """What the synchronizer needs from a resource store."""

    def cache_resources(self, resources: Iterable[Resource]) -> None: ...

    def cache_file(self, filename: str, mime_type: str, content: str | bytes) -> None: ...

    def stylesheet_filename(self, session_handle: Optional[str]) -> str: ...

    def file_url(self, filename: str) -> str: ...

    def file_in_cache(self, filename: str) -> bool: ...

    def list_cached_resources(self) -> list[str]: ...


class FileResourceCache:
    """
    Stores resources on disk under ``<base_dir>/<engine>/<remote_id>/<version>/``.

    URLs are formed by joining ``base_url`` with the same relative path.
    """

    def __init__(
        self,
        engine_id: str,
        remote_id: str,
        remote_version: str,
        base_dir: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        if base_dir is None or base_url is None:
            from opaquesync.config import CONFIG

            base_dir = base_dir or CONFIG.resource_dir
            base_url = base_url or CONFIG.resource_base_url

        self._relative = f"{_safe(engine_id)}/{_safe(remote_id)}/{_safe(remote_version)}"
        self.folder = Path(base_dir) / self._relative
        self.base_url = base_url.rstrip("/")

    def cache_resources(self, resources: Iterable[Resource]) -> None:
        for resource in resources:
            self.cache_file(resource.filename, resource.mime_type, resource.content)

    def cache_file(self, filename: str, mime_type: str, content: str | bytes) -> None:
        """Write one file into the cache, replacing any older copy."""
        self.folder.mkdir(parents=True, exist_ok=True)
        data = content.encode("utf-8") if isinstance(content, str) else content
        (self.folder / _safe(filename)).write_bytes(data)
        logger.debug(f"Cached resource {filename} ({mime_type}, {len(data)} bytes)")

    def stylesheet_filename(self, session_handle: Optional[str]) -> str:
        return f"__styles_{session_handle}.css"

    def file_url(self, filename: str) -> str:
        return f"{self.base_url}/{self._relative}/{filename}"

    def file_in_cache(self, filename: str) -> bool:
        return (self.folder / _safe(filename)).is_file()

    def list_cached_resources(self) -> list[str]:
        """Names of cached files, excluding per-session stylesheets."""
        if not self.folder.is_dir():
            return []
        return sorted(
            p.name
            for p in self.folder.iterdir()
            if p.is_file() and not p.name.startswith("__styles_")
        )


def _safe(name: str) -> str:
    """Keep a path component inside its folder."""
    return str(name).replace("/", "_").replace("\\", "_").replace("..", "_")
