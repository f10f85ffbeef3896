import logging

from aidetect.capture import CaptureProvider
from aidetect.config import config
from aidetect.coordination import CoordinationBus
from aidetect.errors import ErrorCode
from aidetect.messages import BeginCapture, FeedbackMark, Reply, StartOverlay, StopCapture

logger = logging.getLogger(__name__)


class ControllerNode:
    """Entry point for user triggers; talks to the other contexts only by message."""

    name = "controller"

    def __init__(
        self,
        bus: CoordinationBus,
        provider: CaptureProvider,
        capture_target: str = "capture",
        overlay_target: str = "overlay",
    ) -> None:
        self._bus = bus
        self._provider = provider
        self._capture_target = capture_target
        self._overlay_target = overlay_target

    async def start(self) -> None:
        await self._bus.start()

    async def stop(self) -> None:
        await self._bus.close()

    async def start_capture(self, owner: str, kinds: list[str] | None = None) -> Reply:
        wanted = set(kinds or config.capture.default_kinds)
        ref = await self._provider.choose_source(wanted)
        if ref is None:
            logger.info("Capture for %s cancelled: no source chosen", owner)
            return Reply.failure(ErrorCode.SOURCE_UNAVAILABLE, config.capture.declined_message)

        await self.start_overlay()
        reply = await self._bus.request(
            self._capture_target, BeginCapture(streamRef=ref, owner=owner)
        )
        if reply.ok:
            logger.info("Capture started for %s from %s", owner, ref.label or ref.uri)
            return reply

        logger.warning("Capture for %s failed: %s", owner, reply.error)
        if reply.error is not None and reply.error.code is ErrorCode.TIMEOUT:
            # Queued behind the pending BeginCapture, so it releases whatever that opens
            await self._bus.send(self._capture_target, StopCapture(owner=owner))
        return reply

    async def stop_capture(self, owner: str) -> Reply:
        return await self._bus.request(self._capture_target, StopCapture(owner=owner))

    async def start_overlay(self) -> None:
        await self._bus.send(self._overlay_target, StartOverlay())

    async def feedback(self, value: str) -> None:
        await self._bus.send(self._overlay_target, FeedbackMark(value=value))
