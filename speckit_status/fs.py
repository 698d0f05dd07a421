"""Filesystem access used by the artifact resolver and branch matcher."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Protocol, Tuple


logger = logging.getLogger("speckit.fs")


class FileAccessor(Protocol):
    """Read-only view of the files a status snapshot depends on."""

    async def read_text(self, location: Path) -> Optional[str]:
        ...

    async def exists(self, location: Path) -> bool:
        ...

    async def list_children(self, directory: Path) -> Optional[List[Tuple[str, bool]]]:
        ...

    async def modified_time(self, location: Path) -> Optional[float]:
        ...


class LocalFileAccessor:
    """FileAccessor over the local disk; blocking calls run off the event loop."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    async def read_text(self, location: Path) -> Optional[str]:
        """Return file text, or None when it cannot be read."""
        return await asyncio.to_thread(self._read_text, Path(location))

    async def exists(self, location: Path) -> bool:
        return await asyncio.to_thread(Path(location).exists)

    async def list_children(self, directory: Path) -> Optional[List[Tuple[str, bool]]]:
        """Return (name, is_directory) pairs, or None when the directory is absent."""
        return await asyncio.to_thread(self._list_children, Path(directory))

    async def modified_time(self, location: Path) -> Optional[float]:
        return await asyncio.to_thread(self._modified_time, Path(location))

    def _read_text(self, location: Path) -> Optional[str]:
        if not location.is_file():
            return None
        try:
            return location.read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Could not read {location}: {e}")
            return None

    def _list_children(self, directory: Path) -> Optional[List[Tuple[str, bool]]]:
        try:
            return sorted((child.name, child.is_dir()) for child in directory.iterdir())
        except OSError:
            return None

    def _modified_time(self, location: Path) -> Optional[float]:
        try:
            return location.stat().st_mtime
        except OSError:
            return None
