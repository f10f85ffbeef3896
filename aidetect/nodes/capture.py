import logging
from collections.abc import Awaitable, Callable

from aidetect.capture import (
    CaptureConstraints,
    CaptureProvider,
    StreamManager,
    TrackAudioSource,
    TrackFrameSource,
)
from aidetect.config import config
from aidetect.coordination import CoordinationBus
from aidetect.errors import SourceUnavailableError
from aidetect.messages import AnnotationBatch, BeginCapture, ContextClosed, Envelope, Reply, StopCapture
from aidetect.sampling import FrameSampler
from aidetect.scoring import HeuristicScorer

logger = logging.getLogger(__name__)


def batch_source(owner: str) -> str:
    """Overlay source name for batches sampled from ``owner``'s stream."""
    return f"{CaptureNode.name}/{owner}"


class CaptureNode:
    """Owns live streams and the frame samplers that read them."""

    name = "capture"

    def __init__(
        self,
        bus: CoordinationBus,
        provider: CaptureProvider,
        overlay_target: str = "overlay",
        scorer: HeuristicScorer | None = None,
    ) -> None:
        self._bus = bus
        self._overlay_target = overlay_target
        self._scorer = scorer or HeuristicScorer()
        self.streams = StreamManager(provider)
        self._samplers: dict[str, FrameSampler] = {}

    async def start(self) -> None:
        self._bus.subscribe(BeginCapture.kind, self._on_begin_capture)
        self._bus.subscribe(StopCapture.kind, self._on_stop_capture)
        self._bus.subscribe(ContextClosed.kind, self._on_context_closed)
        await self._bus.start()

    async def stop(self) -> None:
        for owner in list(self._samplers):
            await self._stop_sampler(owner)
        await self.streams.release_all()
        await self._bus.close()

    async def _on_begin_capture(self, msg: BeginCapture, envelope: Envelope) -> Reply:
        owner = msg.owner or envelope.sender
        constraints = CaptureConstraints(
            source=msg.stream_ref,
            audio=config.capture.audio,
            width=config.capture.width,
            height=config.capture.height,
            frame_rate=config.capture.frame_rate,
        )
        stream = await self.streams.acquire(owner, constraints)

        video, audio = stream.video_track, stream.audio_track
        if video is None and audio is None:
            await self.streams.release(owner)
            raise SourceUnavailableError("stream has neither video nor audio")

        sampler = FrameSampler(self._scorer)
        await sampler.start(
            TrackFrameSource(video) if video is not None else None,
            self._forwarder(owner),
            audio=TrackAudioSource(audio) if audio is not None else None,
        )
        self._samplers[owner] = sampler
        return Reply(data={"stream": stream.id, "owner": owner, "tracks": len(stream.tracks)})

    async def _on_stop_capture(self, msg: StopCapture, envelope: Envelope) -> Reply:
        owner = msg.owner or envelope.sender
        await self._release(owner)
        return Reply(data={"owner": owner})

    async def _on_context_closed(self, msg: ContextClosed, envelope: Envelope) -> None:
        if self.streams.get(msg.context) is not None or msg.context in self._samplers:
            logger.info("Owner %s went away, releasing its capture", msg.context)
        await self._release(msg.context)

    async def _release(self, owner: str) -> None:
        await self._stop_sampler(owner)
        await self.streams.release(owner)

    async def _stop_sampler(self, owner: str) -> None:
        sampler = self._samplers.pop(owner, None)
        if sampler is not None:
            await sampler.stop()

    def _forwarder(self, owner: str) -> Callable[[AnnotationBatch], Awaitable[None]]:
        source = batch_source(owner)

        async def forward(batch: AnnotationBatch) -> None:
            await self._bus.send(self._overlay_target, batch, source=source)

        return forward
