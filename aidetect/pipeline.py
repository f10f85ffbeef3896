import logging

from aidetect.bus import EventBus
from aidetect.capture import CaptureProvider, MediaCaptureProvider
from aidetect.coordination import CoordinationBus
from aidetect.nodes import CaptureNode, ControllerNode, OverlayNode
from aidetect.overlay import CanvasSurface
from aidetect.sampling import StaticDocumentSource
from aidetect.storage import KeyValueStore

logger = logging.getLogger(__name__)


class Pipeline:
    """
    One controller, one capture and one overlay context on a shared bus.

    Created once per process by the host; ``stop`` releases every stream
    and detaches all contexts.
    """

    def __init__(
        self,
        provider: CaptureProvider | None = None,
        surface: CanvasSurface | None = None,
        document: StaticDocumentSource | None = None,
        store: KeyValueStore | None = None,
        event_bus: EventBus | None = None,
        request_timeout_s: float | None = None,
    ) -> None:
        self.event_bus = event_bus or EventBus()
        provider = provider or MediaCaptureProvider()

        def bus_for(name: str) -> CoordinationBus:
            return CoordinationBus(self.event_bus, name, request_timeout_s)

        self.overlay = OverlayNode(
            bus_for(OverlayNode.name), surface=surface, document=document, store=store
        )
        self.capture = CaptureNode(
            bus_for(CaptureNode.name), provider, overlay_target=OverlayNode.name
        )
        self.controller = ControllerNode(
            bus_for(ControllerNode.name),
            provider,
            capture_target=CaptureNode.name,
            overlay_target=OverlayNode.name,
        )
        self._started = False

    async def start(self) -> None:
        if self._started:
            return
        await self.overlay.start()
        await self.capture.start()
        await self.controller.start()
        self._started = True
        logger.info("Pipeline started")

    async def stop(self) -> None:
        if not self._started:
            return
        await self.controller.stop()
        await self.capture.stop()
        await self.overlay.stop()
        self._started = False
        logger.info("Pipeline stopped")
