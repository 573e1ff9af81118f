from recast.render.frame_compositor import FrameCompositor
from recast.render.sprite_cache import CachedSprite, SpriteCache, get_sprite_cache
from recast.render.transcode_pipeline import (
    PipelineStats,
    TranscodePipeline,
    TranscodeResult,
)

__all__ = [
    "FrameCompositor",
    "CachedSprite",
    "SpriteCache",
    "get_sprite_cache",
    "TranscodePipeline",
    "TranscodeResult",
    "PipelineStats",
]
