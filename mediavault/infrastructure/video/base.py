"""Abstract base class for video transcoding services."""

import math
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from mediavault.domain.value_objects import TranscodingPreset

ProgressCallback = Callable[[int], Awaitable[None]]


@dataclass
class VideoAnalysis:
    """Stream information about a source video."""

    path: Path
    duration_seconds: float
    width: int
    height: int
    fps: float
    codec: str
    bitrate: int
    has_audio: bool
    audio_codec: str | None
    file_size_bytes: int
    audio_channels: int | None = None
    sample_rate: int | None = None

    @property
    def aspect_ratio(self) -> str | None:
        if not self.width or not self.height:
            return None
        divisor = math.gcd(self.width, self.height)
        return f"{self.width // divisor}:{self.height // divisor}"

    def to_dict(self) -> dict[str, object]:
        return {
            "duration_seconds": self.duration_seconds,
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "codec": self.codec,
            "bitrate": self.bitrate,
            "has_audio": self.has_audio,
            "audio_codec": self.audio_codec,
            "file_size_bytes": self.file_size_bytes,
            "audio_channels": self.audio_channels,
            "sample_rate": self.sample_rate,
            "aspect_ratio": self.aspect_ratio,
        }


@dataclass
class TranscodeResult:
    """A finished transcode output on local disk."""

    path: Path
    quality: str
    size_bytes: int
    codec: str
    bitrate_kbps: int


@dataclass
class ExtractedThumbnail:
    """A still frame captured from a video."""

    path: Path
    index: int
    timestamp: float
    width: int
    height: int


class TranscoderBase(ABC):
    """Abstract base class for the external video encoder.

    Implementations should handle:
    - FFmpeg (subprocess)
    """

    @abstractmethod
    async def analyze(self, video_path: Path) -> VideoAnalysis:
        """Inspect a video file.

        Args:
            video_path: Path to video file.

        Returns:
            Stream information.
        """

    @abstractmethod
    async def transcode(
        self,
        video_path: Path,
        output_path: Path,
        preset: TranscodingPreset,
        duration_seconds: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> TranscodeResult:
        """Encode a video into one quality tier.

        Args:
            video_path: Path to input video.
            output_path: Where to write the encoded file.
            preset: Encoder parameters.
            duration_seconds: Source duration, used to turn encoder time
                into a percentage.
            on_progress: Awaited with the integer percentage as it changes.

        Returns:
            The encoded output.
        """

    @abstractmethod
    async def extract_thumbnail(
        self,
        video_path: Path,
        timestamp: float,
        output_path: Path,
        width: int = 320,
        height: int = 180,
    ) -> ExtractedThumbnail:
        """Capture one scaled frame at a timestamp.

        Args:
            video_path: Path to input video.
            timestamp: Time in seconds.
            output_path: Where to save the frame.
            width: Output width in pixels.
            height: Output height in pixels.

        Returns:
            Thumbnail metadata.
        """
