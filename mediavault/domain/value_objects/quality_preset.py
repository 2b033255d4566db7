"""Transcoding quality presets value object."""

from pydantic import BaseModel, Field


class TranscodingPreset(BaseModel):
    """Encoder parameters of one quality tier.

    Presets are immutable value objects; look them up through
    :func:`get_preset` rather than constructing ad-hoc tiers.
    """

    model_config = {"frozen": True}

    quality: str = Field(description="Quality label, e.g. '720p'")
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    video_bitrate_kbps: int = Field(gt=0)
    audio_bitrate_kbps: int = Field(gt=0)
    codec: str = Field(default="libx264", description="ffmpeg video encoder")
    container_format: str = "mp4"

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    def ffmpeg_args(self) -> list[str]:
        """Encoder arguments placed between the input and output paths."""
        return [
            "-vf",
            f"scale={self.width}:{self.height}",
            "-c:v",
            self.codec,
            "-b:v",
            f"{self.video_bitrate_kbps}k",
            "-c:a",
            "aac",
            "-b:a",
            f"{self.audio_bitrate_kbps}k",
            "-preset",
            "medium",
            "-movflags",
            "+faststart",
        ]


# quality, width, height, video kbps, audio kbps, codec
_PRESET_TABLE: tuple[tuple[str, int, int, int, int, str], ...] = (
    ("360p", 640, 360, 800, 96, "libx264"),
    ("480p", 854, 480, 1200, 128, "libx264"),
    ("720p", 1280, 720, 2500, 128, "libx264"),
    ("1080p", 1920, 1080, 5000, 192, "libx264"),
    ("1440p", 2560, 1440, 8000, 192, "libx264"),
    ("2160p", 3840, 2160, 15000, 256, "libx265"),
)

QUALITY_PRESETS: dict[str, TranscodingPreset] = {
    quality: TranscodingPreset(
        quality=quality,
        width=width,
        height=height,
        video_bitrate_kbps=video_kbps,
        audio_bitrate_kbps=audio_kbps,
        codec=codec,
    )
    for quality, width, height, video_kbps, audio_kbps, codec in _PRESET_TABLE
}


def get_preset(quality: str) -> TranscodingPreset | None:
    """Look up the preset for a quality label, or None when unknown."""
    return QUALITY_PRESETS.get(quality)
