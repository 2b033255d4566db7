"""FFmpeg implementation of video transcoding."""

import asyncio
import json
import subprocess
from pathlib import Path

from PIL import Image

from mediavault.commons.telemetry import get_logger
from mediavault.domain.exceptions import TranscodingException
from mediavault.domain.value_objects import TranscodingPreset
from mediavault.infrastructure.video.base import (
    ExtractedThumbnail,
    ProgressCallback,
    TranscodeResult,
    TranscoderBase,
    VideoAnalysis,
)


def parse_progress_line(line: str, duration_seconds: float | None) -> int | None:
    """Turn one ``-progress`` key=value line into a percentage.

    Only ``out_time_us``/``out_time_ms`` lines carry a position (both are in
    microseconds); ``progress=end`` maps to 100.
    """
    key, _, value = line.strip().partition("=")
    if key == "progress" and value == "end":
        return 100
    if key not in ("out_time_us", "out_time_ms") or not duration_seconds:
        return None
    try:
        position_seconds = int(value) / 1_000_000
    except ValueError:
        return None
    percent = int(position_seconds / duration_seconds * 100)
    return max(0, min(percent, 99))


class FFmpegTranscoder(TranscoderBase):
    """FFmpeg-based transcoding and thumbnail capture.

    Requires ffmpeg and ffprobe to be installed and available in PATH.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        timeout_seconds: float | None = None,
    ) -> None:
        """Initialize FFmpeg transcoder.

        Args:
            ffmpeg_path: Path to ffmpeg executable.
            ffprobe_path: Path to ffprobe executable.
            timeout_seconds: Maximum wall time of one transcode, None for no limit.
        """
        self._ffmpeg = ffmpeg_path
        self._ffprobe = ffprobe_path
        self._timeout = timeout_seconds
        self._logger = get_logger(__name__)

    async def analyze(self, video_path: Path) -> VideoAnalysis:
        """Read stream and format details with ffprobe."""
        cmd = [
            self._ffprobe,
            "-v",
            "quiet",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            str(video_path),
        ]

        result = await self._run(cmd, "analyze")
        data = json.loads(result.stdout)

        video_stream = None
        audio_stream = None
        for stream in data.get("streams", []):
            if stream.get("codec_type") == "video" and video_stream is None:
                video_stream = stream
            elif stream.get("codec_type") == "audio" and audio_stream is None:
                audio_stream = stream

        if not video_stream:
            raise TranscodingException("analyze", f"no video stream in {video_path}")

        format_info = data.get("format", {})

        fps_str = video_stream.get("r_frame_rate", "30/1")
        if "/" in fps_str:
            num, den = fps_str.split("/")
            fps = float(num) / float(den) if float(den) != 0 else 30.0
        else:
            fps = float(fps_str)

        audio = audio_stream or {}

        return VideoAnalysis(
            path=video_path,
            duration_seconds=float(format_info.get("duration", 0)),
            width=int(video_stream.get("width", 0)),
            height=int(video_stream.get("height", 0)),
            fps=fps,
            codec=video_stream.get("codec_name", "unknown"),
            bitrate=int(format_info.get("bit_rate", 0)),
            has_audio=audio_stream is not None,
            audio_codec=audio_stream.get("codec_name") if audio_stream else None,
            file_size_bytes=int(format_info.get("size", 0)),
            audio_channels=int(audio.get("channels", 0)) or None,
            sample_rate=int(audio.get("sample_rate", 0)) or None,
        )

    async def transcode(
        self,
        video_path: Path,
        output_path: Path,
        preset: TranscodingPreset,
        duration_seconds: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> TranscodeResult:
        """Encode one quality tier, streaming progress from ``-progress pipe:1``."""
        output_path.parent.mkdir(parents=True, exist_ok=True)

        cmd = [
            self._ffmpeg,
            "-i",
            str(video_path),
            *preset.ffmpeg_args(),
            "-progress",
            "pipe:1",
            "-nostats",
            "-y",
            str(output_path),
        ]

        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        async def _pump_progress() -> None:
            assert process.stdout is not None
            last = -1
            async for raw in process.stdout:
                line = raw.decode(errors="replace")
                percent = parse_progress_line(line, duration_seconds)
                if percent is not None and percent != last:
                    last = percent
                    if on_progress:
                        await on_progress(percent)

        async def _run_to_end() -> bytes:
            assert process.stderr is not None
            _, stderr = await asyncio.gather(_pump_progress(), process.stderr.read())
            await process.wait()
            return stderr

        try:
            stderr = await asyncio.wait_for(_run_to_end(), timeout=self._timeout)
        except TimeoutError:
            process.kill()
            await process.wait()
            output_path.unlink(missing_ok=True)
            raise TranscodingException(
                "transcode", f"{preset.quality} timed out after {self._timeout}s"
            ) from None

        if process.returncode != 0:
            output_path.unlink(missing_ok=True)
            tail = stderr.decode(errors="replace").strip().splitlines()[-5:]
            raise TranscodingException(
                "transcode",
                f"{preset.quality} exited with {process.returncode}: {' | '.join(tail)}",
            )

        self._logger.debug(
            "Transcode finished",
            extra={"quality": preset.quality, "output": str(output_path)},
        )

        return TranscodeResult(
            path=output_path,
            quality=preset.quality,
            size_bytes=output_path.stat().st_size,
            codec=preset.codec,
            bitrate_kbps=preset.video_bitrate_kbps,
        )

    async def extract_thumbnail(
        self,
        video_path: Path,
        timestamp: float,
        output_path: Path,
        width: int = 320,
        height: int = 180,
    ) -> ExtractedThumbnail:
        """Capture a single scaled frame at a timestamp."""
        output_path.parent.mkdir(parents=True, exist_ok=True)

        cmd = [
            self._ffmpeg,
            "-ss",
            str(timestamp),
            "-i",
            str(video_path),
            "-vframes",
            "1",
            "-vf",
            f"scale={width}:{height}",
            "-q:v",
            "2",
            "-y",
            str(output_path),
        ]

        await self._run(cmd, "thumbnail")

        with Image.open(output_path) as img:
            actual_width, actual_height = img.size

        return ExtractedThumbnail(
            path=output_path,
            index=0,
            timestamp=timestamp,
            width=actual_width,
            height=actual_height,
        )

    async def _run(
        self, cmd: list[str], operation: str
    ) -> subprocess.CompletedProcess[bytes]:
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(
                None,
                lambda: subprocess.run(cmd, capture_output=True, check=True),
            )
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or b"").decode(errors="replace").strip()
            raise TranscodingException(operation, stderr or str(e)) from e
        except FileNotFoundError as e:
            raise TranscodingException(operation, f"executable not found: {cmd[0]}") from e
