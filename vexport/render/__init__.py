from vexport.render.audio_mixer import AudioMixCompiler
from vexport.render.captions import CaptionCompiler
from vexport.render.effects import compile_effects
from vexport.render.fonts import FontResolver, get_font_resolver
from vexport.render.pipeline import (
    ExportPipeline,
    ExportProgress,
    ExportStatus,
    export_video,
)
from vexport.render.segments import Concatenator, SegmentEncoder

__all__ = [
    "ExportPipeline",
    "ExportProgress",
    "ExportStatus",
    "export_video",
    "FontResolver",
    "get_font_resolver",
    "SegmentEncoder",
    "Concatenator",
    "CaptionCompiler",
    "compile_effects",
    "AudioMixCompiler",
]
