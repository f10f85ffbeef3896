"""Per-owner capture stream lifecycle."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from aidetect.errors import BusyError, SourceUnavailableError
from aidetect.messages import SourceRef

logger = logging.getLogger(__name__)


class MediaTrack(Protocol):
    kind: str
    readyState: str  # noqa: N815 - aiortc API

    def stop(self) -> None: ...


@dataclass
class CaptureConstraints:
    source: SourceRef | None = None
    kinds: tuple[str, ...] = ("screen", "window", "tab", "audio")
    video: bool = True
    audio: bool = False
    width: int | None = None
    height: int | None = None
    frame_rate: int | None = None


@dataclass
class Stream:
    id: str
    tracks: list[Any] = field(default_factory=list)
    owner: str = ""
    source: SourceRef | None = None

    @property
    def video_track(self) -> Any | None:
        return next((t for t in self.tracks if t.kind == "video"), None)

    @property
    def audio_track(self) -> Any | None:
        return next((t for t in self.tracks if t.kind == "audio"), None)

    def stop(self) -> None:
        """Stop every track; one failing track does not keep the others alive."""
        for track in self.tracks:
            if track.readyState == "ended":
                continue
            try:
                track.stop()
            except Exception:
                logger.exception("Failed to stop %s track of stream %s", track.kind, self.id)


class CaptureProvider(Protocol):
    async def choose_source(self, kinds: set[str]) -> SourceRef | None:
        """Return the chosen source, or None when the choice was cancelled."""
        ...

    async def open_stream(self, ref: SourceRef, constraints: CaptureConstraints) -> Stream:
        """Open ``ref``; raise ``SourceUnavailableError`` on failure."""
        ...


class OwnerState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    ACTIVE = "active"


class StreamManager:
    """
    Holds at most one stream per owner.

    The capture node creates exactly one instance and releases everything
    through ``release_all`` when it shuts down.
    """

    def __init__(self, provider: CaptureProvider) -> None:
        self._provider = provider
        self._states: dict[str, OwnerState] = {}
        self._streams: dict[str, Stream] = {}
        self._cancelled: set[str] = set()

    def state(self, owner: str) -> OwnerState:
        return self._states.get(owner, OwnerState.IDLE)

    def get(self, owner: str) -> Stream | None:
        return self._streams.get(owner)

    @property
    def owners(self) -> list[str]:
        return list(self._streams)

    async def acquire(self, owner: str, constraints: CaptureConstraints | None = None) -> Stream:
        constraints = constraints or CaptureConstraints()
        current = self.state(owner)
        if current is not OwnerState.IDLE:
            raise BusyError(f"capture already {current.value} for {owner}; stop it first")

        self._states[owner] = OwnerState.REQUESTING
        self._cancelled.discard(owner)
        try:
            ref = constraints.source
            if ref is None:
                ref = await self._provider.choose_source(set(constraints.kinds))
            if ref is None:
                raise SourceUnavailableError("no capture source was selected")
            stream = await self._provider.open_stream(ref, constraints)
        except asyncio.CancelledError:
            self._states.pop(owner, None)
            self._cancelled.discard(owner)
            logger.info("Capture request for %s cancelled", owner)
            raise
        except SourceUnavailableError:
            self._states.pop(owner, None)
            raise
        except Exception as exc:
            self._states.pop(owner, None)
            logger.error("Opening capture for %s failed: %s", owner, exc)
            raise SourceUnavailableError(f"capture failed: {exc}") from exc

        if owner in self._cancelled:
            self._cancelled.discard(owner)
            self._states.pop(owner, None)
            stream.stop()
            logger.info("Capture for %s released while requesting; stopped late stream", owner)
            raise SourceUnavailableError("capture was stopped before it started")

        stream.owner = owner
        self._streams[owner] = stream
        self._states[owner] = OwnerState.ACTIVE
        logger.info(
            "Stream %s active for %s (%d tracks)", stream.id, owner, len(stream.tracks)
        )
        return stream

    async def release(self, owner: str) -> None:
        current = self.state(owner)
        if current is OwnerState.IDLE:
            return
        if current is OwnerState.REQUESTING:
            self._cancelled.add(owner)
            return

        stream = self._streams[owner]
        try:
            stream.stop()
        finally:
            del self._streams[owner]
            self._states.pop(owner, None)
        logger.info("Stream %s released for %s", stream.id, owner)

    async def release_all(self) -> None:
        for owner in list(self._states):
            await self.release(owner)
