"""
In-memory package source usable as the installer's remote-fetch capability.

Each published version is stored as a tree mapping, archive bytes or a
FileSystem; every fetch returns a fresh copy so grafted trees never share nodes.
"""

import asyncio
import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from .archive import decode_archive
from .errors import FetchError
from .nodes import FileSystem

logger = logging.getLogger(__name__)

LATEST = 'latest'


class StaticRegistry:
    """Package name -> version -> package source, plus dist-tags."""

    def __init__(self, latency: float = 0.0):
        self.packages: Dict[str, Dict[str, Any]] = {}
        self.dist_tags: Dict[str, Dict[str, str]] = {}
        self.latency = latency
        self.fetches: List[Tuple[str, str]] = []

    def publish(self, name: str, version: str, source: Any,
                tag: Optional[str] = LATEST) -> None:
        """Add a version; `tag` (default 'latest') is moved to it."""
        self.packages.setdefault(name, {})[version] = source
        if tag:
            self.dist_tags.setdefault(name, {})[tag] = version

    def select(self, name: str, constraint: str) -> str:
        """
        Pick the version matching `constraint`.

        Accepts an exact version, a dist-tag, or '*' / '' for 'latest'.
        """
        versions = self.packages.get(name)
        if not versions:
            raise FetchError(name, constraint, 'package not found')
        if constraint in versions:
            return constraint
        tags = self.dist_tags.get(name, {})
        tag = LATEST if constraint in ('', '*') else constraint
        if tag in tags:
            return tags[tag]
        raise FetchError(name, constraint, 'no version matches')

    def _materialize(self, name: str, version: str, source: Any) -> FileSystem:
        origin = f'{name}@{version}'
        if isinstance(source, FileSystem):
            fs = copy.deepcopy(source)
            fs.origin = origin
            return fs
        if isinstance(source, (bytes, bytearray)):
            return decode_archive(bytes(source), origin)
        return FileSystem.from_dict(copy.deepcopy(source), origin)

    async def fetch(self, name: str, constraint: str) -> FileSystem:
        self.fetches.append((name, constraint))
        version = self.select(name, constraint)
        logger.debug("fetching %s@%s (constraint %s)", name, version, constraint)
        await asyncio.sleep(self.latency)
        return self._materialize(name, version, self.packages[name][version])

    async def __call__(self, name: str, constraint: str) -> FileSystem:
        return await self.fetch(name, constraint)
