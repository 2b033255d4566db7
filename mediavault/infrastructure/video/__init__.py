"""Video processing services."""

from mediavault.infrastructure.video.base import (
    ExtractedThumbnail,
    ProgressCallback,
    TranscodeResult,
    TranscoderBase,
    VideoAnalysis,
)
from mediavault.infrastructure.video.ffmpeg_transcoder import (
    FFmpegTranscoder,
    parse_progress_line,
)

__all__ = [
    # Base classes
    "TranscoderBase",
    "VideoAnalysis",
    "TranscodeResult",
    "ExtractedThumbnail",
    "ProgressCallback",
    # Implementations
    "FFmpegTranscoder",
    "parse_progress_line",
]
