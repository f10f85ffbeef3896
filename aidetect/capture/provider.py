import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from aiortc.contrib.media import MediaPlayer

from aidetect.capture.streams import CaptureConstraints, Stream
from aidetect.capture.tracks import OpenCvCameraTrack
from aidetect.config import SourceConfig, config
from aidetect.errors import SourceUnavailableError
from aidetect.messages import SourceRef

logger = logging.getLogger(__name__)

T = TypeVar("T")

Chooser = Callable[[list[SourceRef]], Awaitable[SourceRef | None]]


async def first_available(candidates: list[SourceRef]) -> SourceRef | None:
    return candidates[0] if candidates else None


def _to_ref(source: SourceConfig) -> SourceRef:
    return SourceRef(
        kind=source.kind,
        uri=source.uri,
        format=source.format,
        options=dict(source.options),
        label=source.label or source.uri,
    )


def _stop_player(player: MediaPlayer) -> None:
    for track in (player.video, player.audio):
        if track is not None:
            track.stop()


async def _open_in_thread(
    stop: Callable[[T], None], opener: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """
    Run a blocking device open in a worker thread.

    The thread cannot be interrupted, so when the caller is cancelled the
    result is stopped as soon as the thread hands it back.
    """
    task = asyncio.ensure_future(asyncio.to_thread(opener, *args, **kwargs))
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:

        def stop_late(done: asyncio.Future[T]) -> None:
            if done.cancelled() or done.exception() is not None:
                return
            logger.info("Stopping device opened after its request was cancelled")
            stop(done.result())

        task.add_done_callback(stop_late)
        raise


class MediaCaptureProvider:
    """
    Capture provider backed by a configured source catalog.

    ``choose_source`` delegates the actual pick to ``chooser`` (the host's
    permission prompt); the default takes the first catalog entry of a
    requested kind.
    """

    def __init__(
        self,
        sources: list[SourceConfig] | None = None,
        chooser: Chooser = first_available,
    ) -> None:
        self._sources = sources if sources is not None else config.capture.sources
        self._chooser = chooser

    def catalog(self, kinds: set[str]) -> list[SourceRef]:
        return [_to_ref(s) for s in self._sources if s.kind in kinds]

    async def choose_source(self, kinds: set[str]) -> SourceRef | None:
        candidates = self.catalog(kinds)
        if not candidates:
            logger.info("No capture source matches %s", sorted(kinds))
            return None
        return await self._chooser(candidates)

    async def open_stream(self, ref: SourceRef, constraints: CaptureConstraints) -> Stream:
        if ref.kind == "camera":
            tracks = await self._open_camera(ref, constraints)
        else:
            tracks = await self._open_player(ref, constraints)

        if not tracks:
            raise SourceUnavailableError(f"{ref.label or ref.uri} produced no usable tracks")
        stream = Stream(id=uuid.uuid4().hex[:12], tracks=tracks, source=ref)
        logger.info("Opened %s source %s", ref.kind, ref.label or ref.uri)
        return stream

    async def _open_camera(self, ref: SourceRef, constraints: CaptureConstraints) -> list:
        try:
            index = int(ref.uri)
        except ValueError as exc:
            raise SourceUnavailableError(f"bad camera index {ref.uri!r}") from exc
        track = await _open_in_thread(
            OpenCvCameraTrack.stop,
            OpenCvCameraTrack,
            index,
            constraints.width,
            constraints.height,
            constraints.frame_rate or config.capture.frame_rate,
        )
        return [track]

    async def _open_player(self, ref: SourceRef, constraints: CaptureConstraints) -> list:
        options = dict(ref.options)
        if ref.kind != "audio":
            if constraints.width and constraints.height:
                options.setdefault("video_size", f"{constraints.width}x{constraints.height}")
            if constraints.frame_rate:
                options.setdefault("framerate", str(constraints.frame_rate))

        try:
            player = await _open_in_thread(
                _stop_player, MediaPlayer, ref.uri, format=ref.format, options=options
            )
        except Exception as exc:
            raise SourceUnavailableError(f"cannot open {ref.label or ref.uri}: {exc}") from exc

        want_video = constraints.video and ref.kind != "audio"
        want_audio = constraints.audio or ref.kind == "audio"

        tracks = []
        for track, wanted in ((player.video, want_video), (player.audio, want_audio)):
            if track is None:
                continue
            if wanted:
                tracks.append(track)
            else:
                track.stop()
        return tracks
