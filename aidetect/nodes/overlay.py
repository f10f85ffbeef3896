import asyncio
import logging
import time
from collections.abc import Callable

from aidetect.config import config
from aidetect.coordination import CoordinationBus
from aidetect.messages import AnnotationBatch, Envelope, FeedbackMark, StartOverlay
from aidetect.overlay import AnnotationRenderer, CanvasSurface
from aidetect.sampling import StaticDocumentSource, StructuralScanner
from aidetect.storage import KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)

FEEDBACK_KEY = "aid-last-feedback"
DOCUMENT_SOURCE = "document"


class OverlayNode:
    """
    Display-side context.

    Paints batches coming from other contexts plus its own structural scan
    of the document. ``StartOverlay`` may arrive any number of times and in
    any order relative to batches.
    """

    name = "overlay"

    def __init__(
        self,
        bus: CoordinationBus,
        surface: CanvasSurface | None = None,
        document: StaticDocumentSource | None = None,
        store: KeyValueStore | None = None,
        scanner: StructuralScanner | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        cfg = config.overlay
        self._bus = bus
        self.surface = surface or CanvasSurface(
            cfg.width, cfg.height, cfg.pixel_ratio, font_scale=cfg.font_scale
        )
        self.document = document or StaticDocumentSource()
        self.store = store or MemoryStore()
        self._scanner = scanner or StructuralScanner()
        self._clock = clock
        self.renderer: AnnotationRenderer | None = None
        self._housekeeping: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._bus.subscribe(StartOverlay.kind, self._on_start_overlay)
        self._bus.subscribe(AnnotationBatch.kind, self._on_annotation_batch)
        self._bus.subscribe(FeedbackMark.kind, self._on_feedback)
        await self._bus.start()

    async def stop(self) -> None:
        await self._scanner.stop()
        if self._housekeeping is not None:
            self._housekeeping.cancel()
            try:
                await self._housekeeping
            except asyncio.CancelledError:
                pass
            self._housekeeping = None
        await self._bus.close()

    def ensure_overlay(self) -> AnnotationRenderer:
        if self.renderer is None:
            self.renderer = AnnotationRenderer(self.surface, clock=self._clock)
            self._housekeeping = asyncio.create_task(self._housekeeping_loop(), name="overlay-housekeeping")
            logger.info(
                "Overlay initialised (%.0fx%.0f @%.2fx)",
                self.surface.width,
                self.surface.height,
                self.surface.pixel_ratio,
            )
        return self.renderer

    async def _on_start_overlay(self, msg: StartOverlay, envelope: Envelope) -> None:
        self.ensure_overlay()
        await self._scanner.start(self.document, self._on_document_batch)

    async def _on_annotation_batch(self, msg: AnnotationBatch, envelope: Envelope) -> None:
        self.ensure_overlay().render(msg, source=envelope.source or envelope.sender)

    async def _on_document_batch(self, batch: AnnotationBatch) -> None:
        self.ensure_overlay().render(batch, source=DOCUMENT_SOURCE)

    async def _on_feedback(self, msg: FeedbackMark, envelope: Envelope) -> None:
        self.store.set(FEEDBACK_KEY, msg.value)
        logger.info("Feedback recorded: %s", msg.value)

    async def _housekeeping_loop(self) -> None:
        interval = config.overlay.housekeeping_interval_ms / 1000
        while self.renderer is not None:
            await asyncio.sleep(interval)
            self.renderer.tick()
