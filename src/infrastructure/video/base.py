"""Abstract base class for video transcoding."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from src.commons.telemetry import get_logger

logger = get_logger(__name__)


@dataclass
class TranscodeResult:
    """Artifacts of a successful transcode run."""

    video_path: Path
    thumbnail_path: Path
    duration_seconds: float
    thumbnail_size: tuple[int, int]

    @property
    def video_size_bytes(self) -> int:
        return self.video_path.stat().st_size


class TranscoderBase(ABC):
    """Turns an uploaded source file into a web-playable video and thumbnail.

    Subclasses provide the three primitive steps; `transcode` sequences
    them and guarantees that a failed run leaves no output files behind.

    Implementations may shell out to a binary, call a library binding or
    delegate to a remote service.
    """

    @abstractmethod
    async def normalize(self, input_path: Path, output_path: Path) -> None:
        """Re-encode the source to the fixed playback profile.

        Raises:
            TranscodeError: If the encoder fails.
        """

    @abstractmethod
    async def extract_thumbnail(
        self,
        input_path: Path,
        output_path: Path,
    ) -> tuple[int, int]:
        """Capture one still frame from the source.

        Returns:
            (width, height) of the written image.

        Raises:
            TranscodeError: If no usable frame could be written.
        """

    @abstractmethod
    async def probe_duration(self, video_path: Path) -> float:
        """Read a video's duration in seconds.

        Raises:
            TranscodeError: If the file can't be probed.
        """

    async def transcode(
        self,
        input_path: Path,
        output_dir: Path,
        on_normalized: Callable[[], Awaitable[None]] | None = None,
    ) -> TranscodeResult:
        """Normalize the source, then extract its thumbnail.

        Args:
            input_path: Staged source file.
            output_dir: Directory for the outputs (created if needed).
            on_normalized: Awaited between the two steps, used by callers
                to report stage progress.

        Returns:
            Paths and probed properties of the outputs.

        Raises:
            TranscodeError: On any failure. Partial outputs are deleted first.
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        stem = input_path.name.split(".", 1)[0]
        video_path = output_dir / f"{stem}.mp4"
        thumbnail_path = output_dir / f"{stem}.jpg"

        try:
            await self.normalize(input_path, video_path)
            if on_normalized is not None:
                await on_normalized()
            thumbnail_size = await self.extract_thumbnail(input_path, thumbnail_path)
            duration = await self.probe_duration(video_path)
        except BaseException:
            for path in (video_path, thumbnail_path):
                path.unlink(missing_ok=True)
            logger.debug(
                "Discarded partial transcode outputs",
                extra={"input": str(input_path)},
            )
            raise

        return TranscodeResult(
            video_path=video_path,
            thumbnail_path=thumbnail_path,
            duration_seconds=duration,
            thumbnail_size=thumbnail_size,
        )
