"""Video transcoding services."""

from src.infrastructure.video.base import TranscoderBase, TranscodeResult
from src.infrastructure.video.ffmpeg_transcoder import FFmpegTranscoder

__all__ = [
    "TranscoderBase",
    "TranscodeResult",
    "FFmpegTranscoder",
]
