"""Process-wide cache of cursor sprites keyed by style name."""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import numpy as np
from PIL import Image

from recast.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedSprite:
    """Decoded RGBA cursor sprite."""

    pixels: np.ndarray  # (height, width, 4) uint8
    width: int
    height: int


class SpriteCache:
    """Load-once map from cursor style to sprite.

    Entries are never evicted or replaced. A style whose asset is missing or
    unreadable is stored as ``None`` so the filesystem is only consulted once
    per style; callers treat ``None`` as "draw no sprite".

    Compositing runs in worker threads, so lookups are guarded by a lock.
    """

    def __init__(self, assets_dir: str | Path):
        self.assets_dir = Path(assets_dir)
        self._entries: dict[str, CachedSprite | None] = {}
        self._lock = threading.Lock()

    def path_for(self, style: str) -> Path:
        return self.assets_dir / f"cursor_{style}.png"

    def get(self, style: str) -> CachedSprite | None:
        with self._lock:
            if style in self._entries:
                return self._entries[style]
            sprite = self._load(style)
            self._entries[style] = sprite
            return sprite

    def preload(self, styles: Iterable[str]) -> None:
        for style in styles:
            self.get(style)

    def __contains__(self, style: str) -> bool:
        with self._lock:
            return style in self._entries

    def _load(self, style: str) -> CachedSprite | None:
        path = self.path_for(style)
        if not path.is_file():
            logger.warning(f"[SPRITE] No cursor sprite for style '{style}' at {path}; drawing without it")
            return None
        try:
            with Image.open(path) as img:
                pixels = np.array(img.convert("RGBA"), dtype=np.uint8)
        except (OSError, ValueError) as e:
            logger.warning(f"[SPRITE] Failed to load cursor sprite {path}: {e}")
            return None

        height, width = pixels.shape[:2]
        logger.debug(f"[SPRITE] Loaded {path} ({width}x{height})")
        return CachedSprite(pixels=pixels, width=width, height=height)


_sprite_cache: SpriteCache | None = None
_sprite_cache_lock = threading.Lock()


def get_sprite_cache() -> SpriteCache:
    """Get the process-wide sprite cache for the configured assets dir."""
    global _sprite_cache
    with _sprite_cache_lock:
        if _sprite_cache is None:
            _sprite_cache = SpriteCache(get_settings().cursor_assets_dir)
        return _sprite_cache
