"""Захват медиапотоков и управление их жизненным циклом."""

from aidetect.capture.provider import MediaCaptureProvider
from aidetect.capture.sources import (
    AudioSource,
    FrameSource,
    SourceEnded,
    TrackAudioSource,
    TrackFrameSource,
)
from aidetect.capture.streams import (
    CaptureConstraints,
    CaptureProvider,
    OwnerState,
    Stream,
    StreamManager,
)

__all__ = [
    "AudioSource",
    "CaptureConstraints",
    "CaptureProvider",
    "FrameSource",
    "MediaCaptureProvider",
    "OwnerState",
    "SourceEnded",
    "Stream",
    "StreamManager",
    "TrackAudioSource",
    "TrackFrameSource",
]
