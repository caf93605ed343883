from vexport.schemas.export import (
    AsciiEffect,
    Caption,
    CaptionWord,
    ChromaticAberrationEffect,
    DitherEffect,
    DuotoneEffect,
    Effect,
    ExportAudioClip,
    ExportClip,
    ExportJobOptions,
    ExportResult,
    PixelateEffect,
)

__all__ = [
    "ExportClip",
    "ExportAudioClip",
    "CaptionWord",
    "Caption",
    "PixelateEffect",
    "DuotoneEffect",
    "AsciiEffect",
    "DitherEffect",
    "ChromaticAberrationEffect",
    "Effect",
    "ExportJobOptions",
    "ExportResult",
]
