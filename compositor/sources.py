"""
Source pools for background and overlay videos

A pool maps a category name to the sources in it. Sources are either local
files or references that must be resolved (downloaded, fetched from a
cache) to a local path just before use.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Union

from compositor.models.composition import VIDEO_EXTENSIONS


logger = logging.getLogger(__name__)


@dataclass
class LocalSource:
    """A video already on local disk"""
    path: str

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    async def resolve(self) -> str:
        return self.path


@dataclass
class DeferredSource:
    """
    A video that becomes a local path only when resolved.

    Attributes:
        name: Identifier used for logging and de-duplication
        resolver: Coroutine function returning the local path
    """
    name: str
    resolver: Callable[[], Awaitable[str]]
    _path: Optional[str] = field(default=None, init=False, repr=False)

    async def resolve(self) -> str:
        if self._path is None:
            self._path = await self.resolver()
            logger.debug("Resolved %s -> %s", self.name, self._path)
        return self._path


Source = Union[LocalSource, DeferredSource]
Pools = Dict[str, List[Source]]


def as_source(item: Union[str, Source]) -> Source:
    """Accept plain paths wherever a source is expected"""
    if isinstance(item, str):
        return LocalSource(item)
    return item


def load_pool(directory: str) -> List[Source]:
    """All video files directly inside a directory, sorted by name."""
    if not os.path.isdir(directory):
        logger.warning("Pool directory not found: %s", directory)
        return []

    return [
        LocalSource(os.path.join(directory, name))
        for name in sorted(os.listdir(directory))
        if name.lower().endswith(VIDEO_EXTENSIONS) and not name.startswith(".")
    ]


def load_pools(root_dir: str, categories: Optional[Iterable[str]] = None) -> Pools:
    """
    Load one pool per category subdirectory of root_dir.

    Args:
        root_dir: Directory containing one folder per category
        categories: Restrict to these folders (default: all subfolders)

    Returns:
        Mapping of category name to sources (empty categories included)
    """
    if categories is None:
        if not os.path.isdir(root_dir):
            logger.warning("Pool root not found: %s", root_dir)
            return {}
        categories = sorted(
            d for d in os.listdir(root_dir)
            if os.path.isdir(os.path.join(root_dir, d)) and not d.startswith(".")
        )

    pools = {category: load_pool(os.path.join(root_dir, category)) for category in categories}
    logger.info(
        "Loaded %d pools: %s",
        len(pools), ", ".join(f"{k}={len(v)}" for k, v in pools.items())
    )
    return pools
