"""Infrastructure layer - external service implementations.

The service factory lives in ``mediavault.infrastructure.factory``; it
wires application services and is imported from there directly.
"""

from mediavault.infrastructure.upload import (
    ChunkProgressCallback,
    UploadSessionOrchestratorBase,
    UploadSessionService,
)
from mediavault.infrastructure.video import (
    ExtractedThumbnail,
    FFmpegTranscoder,
    TranscodeResult,
    TranscoderBase,
    VideoAnalysis,
)

__all__ = [
    # Upload
    "UploadSessionOrchestratorBase",
    "UploadSessionService",
    "ChunkProgressCallback",
    # Video
    "TranscoderBase",
    "VideoAnalysis",
    "TranscodeResult",
    "ExtractedThumbnail",
    "FFmpegTranscoder",
]
