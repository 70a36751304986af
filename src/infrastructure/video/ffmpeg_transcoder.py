"""FFmpeg implementation of the transcoder."""

import asyncio
import json
import subprocess
from collections.abc import Awaitable, Callable
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from src.commons.settings.models import TranscodingSettings
from src.commons.telemetry import get_logger, timed
from src.domain.exceptions import TranscodeError
from src.infrastructure.video.base import TranscoderBase, TranscodeResult


class FFmpegTranscoder(TranscoderBase):
    """FFmpeg-based transcoding.

    Requires ffmpeg and ffprobe to be installed. Binary paths and the
    encoding profile come from the settings object; nothing is read from
    global state. Concurrent runs are capped by
    ``settings.max_concurrent_transcodes``.
    """

    def __init__(self, settings: TranscodingSettings | None = None) -> None:
        self._settings = settings or TranscodingSettings()
        self._slots = asyncio.Semaphore(self._settings.max_concurrent_transcodes)
        self._logger = get_logger(__name__)

    def normalize_command(self, input_path: Path, output_path: Path) -> list[str]:
        s = self._settings
        return [
            s.ffmpeg_path,
            "-hide_banner",
            "-y",
            "-i",
            str(input_path),
            # even width keeps yuv420p happy
            "-vf",
            f"scale=-2:{s.output_height}",
            "-c:v",
            s.video_codec,
            "-b:v",
            f"{s.video_bitrate_kbps}k",
            "-maxrate",
            f"{s.video_maxrate_kbps}k",
            "-bufsize",
            f"{s.video_bufsize_kbps}k",
            "-profile:v",
            s.profile,
            "-level",
            s.level,
            "-pix_fmt",
            "yuv420p",
            "-movflags",
            "+faststart",
            "-c:a",
            s.audio_codec,
            "-b:a",
            f"{s.audio_bitrate_kbps}k",
            "-ar",
            str(s.audio_sample_rate),
            str(output_path),
        ]

    def thumbnail_command(self, input_path: Path, output_path: Path) -> list[str]:
        s = self._settings
        return [
            s.ffmpeg_path,
            "-hide_banner",
            "-y",
            "-ss",
            f"{s.thumbnail_offset_seconds:g}",
            "-i",
            str(input_path),
            "-frames:v",
            "1",
            "-vf",
            f"scale={s.thumbnail_width}:{s.thumbnail_height}",
            str(output_path),
        ]

    def probe_command(self, video_path: Path) -> list[str]:
        return [
            self._settings.ffprobe_path,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_format",
            str(video_path),
        ]

    async def _run(self, cmd: list[str], stage: str) -> subprocess.CompletedProcess[bytes]:
        loop = asyncio.get_running_loop()
        tool = Path(cmd[0]).name
        future = loop.run_in_executor(
            None,
            lambda: subprocess.run(
                cmd,
                capture_output=True,
                check=True,
                timeout=self._settings.timeout_seconds,
            ),
        )
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            # The worker thread can't be interrupted; the caller keeps its
            # transcode slot until the process exits.
            self._logger.info(
                "Cancelled, waiting for subprocess to exit",
                extra={"tool": tool, "stage": stage},
            )
            await asyncio.gather(future, return_exceptions=True)
            raise
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or b"").decode("utf-8", errors="replace")
            raise TranscodeError(
                f"{tool} exited with status {e.returncode}",
                stage=stage,
                stderr=stderr,
                return_code=e.returncode,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise TranscodeError(
                f"{tool} timed out after {e.timeout}s",
                stage=stage,
            ) from e
        except OSError as e:
            raise TranscodeError(f"Could not run {tool}: {e}", stage=stage) from e

    @timed(operation="ffmpeg.normalize")
    async def normalize(self, input_path: Path, output_path: Path) -> None:
        await self._run(self.normalize_command(input_path, output_path), "transcoding")
        if not output_path.exists() or output_path.stat().st_size == 0:
            raise TranscodeError(
                "Encoder reported success but produced no output",
                stage="transcoding",
            )

    @timed(operation="ffmpeg.thumbnail")
    async def extract_thumbnail(
        self,
        input_path: Path,
        output_path: Path,
    ) -> tuple[int, int]:
        await self._run(
            self.thumbnail_command(input_path, output_path), "thumbnail_extraction"
        )

        def _verify() -> tuple[int, int]:
            with Image.open(output_path) as img:
                img.verify()
            with Image.open(output_path) as img:
                return img.size

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, _verify)
        except (OSError, UnidentifiedImageError) as e:
            # Sources shorter than the offset yield no frame
            raise TranscodeError(
                f"Thumbnail is not a readable image: {e}",
                stage="thumbnail_extraction",
            ) from e

    async def probe_duration(self, video_path: Path) -> float:
        result = await self._run(self.probe_command(video_path), "transcoding")
        try:
            data = json.loads(result.stdout)
            return float(data["format"]["duration"])
        except (ValueError, KeyError, TypeError) as e:
            raise TranscodeError(
                f"Could not read duration of {video_path.name}",
                stage="transcoding",
            ) from e

    async def transcode(
        self,
        input_path: Path,
        output_dir: Path,
        on_normalized: Callable[[], Awaitable[None]] | None = None,
    ) -> TranscodeResult:
        async with self._slots:
            self._logger.info(
                "Transcoding started",
                extra={"input": input_path.name},
            )
            result = await super().transcode(input_path, output_dir, on_normalized)
            self._logger.info(
                "Transcoding finished",
                extra={
                    "input": input_path.name,
                    "duration_seconds": result.duration_seconds,
                    "output_bytes": result.video_size_bytes,
                },
            )
            return result
