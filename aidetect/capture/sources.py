"""Adapters from media tracks to the sampler's pull interfaces."""

import logging
from typing import Any, Protocol

import numpy as np
from aiortc.mediastreams import MediaStreamError

logger = logging.getLogger(__name__)


class SourceEnded(Exception):
    """The underlying track ended; the sampler stops pulling."""


class FrameSource(Protocol):
    async def next_frame(self) -> np.ndarray | None:
        """RGBA frame, or None when the source has no sized frame yet."""
        ...


class AudioSource(Protocol):
    async def next_chunk(self) -> np.ndarray | None:
        ...


class TrackFrameSource:
    def __init__(self, track: Any) -> None:
        self._track = track

    async def next_frame(self) -> np.ndarray | None:
        try:
            frame = await self._track.recv()
        except MediaStreamError as exc:
            raise SourceEnded(str(exc)) from exc
        if frame is None or not frame.width or not frame.height:
            return None
        return frame.to_ndarray(format="rgba")


def audio_channels(frame: Any) -> np.ndarray:
    """Samples of ``frame`` as ``(channels, samples)`` for packed and planar layouts."""
    samples = frame.to_ndarray()
    if frame.format.is_packed:
        # Packed frames come back as one interleaved row
        samples = samples.reshape(-1, len(frame.layout.channels)).T
    return samples


class TrackAudioSource:
    def __init__(self, track: Any) -> None:
        self._track = track

    async def next_chunk(self) -> np.ndarray | None:
        try:
            frame = await self._track.recv()
        except MediaStreamError as exc:
            raise SourceEnded(str(exc)) from exc
        if frame is None or not frame.samples:
            return None
        return audio_channels(frame)
