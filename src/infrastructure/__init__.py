"""Infrastructure layer - external service implementations."""

from src.infrastructure.factory import (
    InfrastructureFactory,
    get_factory,
    reset_factory,
)
from src.infrastructure.video import (
    FFmpegTranscoder,
    TranscoderBase,
    TranscodeResult,
)

__all__ = [
    # Factory
    "InfrastructureFactory",
    "get_factory",
    "reset_factory",
    # Video
    "TranscoderBase",
    "TranscodeResult",
    "FFmpegTranscoder",
]
