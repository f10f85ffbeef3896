"""Сквозные тесты: контроллер, захват и оверлей на одной шине."""

import asyncio

import numpy as np
from aiortc.mediastreams import MediaStreamError

from aidetect.capture import CaptureConstraints, OwnerState, Stream
from aidetect.config import config
from aidetect.coordination import CoordinationBus
from aidetect.errors import ErrorCode
from aidetect.messages import AnnotationBatch, BeginCapture, Box, SourceRef
from aidetect.nodes.capture import batch_source
from aidetect.nodes.overlay import FEEDBACK_KEY
from aidetect.overlay import CanvasSurface
from aidetect.pipeline import Pipeline
from aidetect.sampling import DocumentElement, DocumentSnapshot
from aidetect.storage import MemoryStore

SCREEN = SourceRef(kind="screen", uri=":0.0", format="x11grab", label="Display :0")
WINDOW = SourceRef(kind="window", uri=":0.0+100,100", format="x11grab", label="Window")

UNIFORM = np.full((36, 64, 4), 200, dtype=np.uint8)
NOISE = np.random.default_rng(3).integers(0, 256, size=(36, 64, 4), dtype=np.uint8)

AI_LIKE = (
    "In conclusion, it is important to note that the integration of the system "
    "with the platform is essential for the success of the project and the "
    "growth of the team in the context of the organization and the market. "
) * 6


async def _wait_for(predicate, timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class _DummyFrame:
    def __init__(self, pixels: np.ndarray) -> None:
        self._pixels = pixels
        self.height, self.width = pixels.shape[:2]

    def to_ndarray(self, format: str = "rgba") -> np.ndarray:
        return self._pixels


class _DummyVideoTrack:
    kind = "video"

    def __init__(self, pixels: np.ndarray = UNIFORM) -> None:
        self.readyState = "live"
        self._pixels = pixels

    async def recv(self) -> _DummyFrame:
        await asyncio.sleep(0.005)
        if self.readyState != "live":
            raise MediaStreamError
        return _DummyFrame(self._pixels)

    def stop(self) -> None:
        self.readyState = "ended"


class _DummyProvider:
    """Экран отдаёт однотонные кадры, окно - шум; открытие может быть медленным."""

    def __init__(self, open_delays: list[float] | None = None) -> None:
        self.opened: list[Stream] = []
        self._delays = list(open_delays or [])

    async def choose_source(self, kinds: set[str]) -> SourceRef | None:
        return next((ref for ref in (SCREEN, WINDOW) if ref.kind in kinds), None)

    async def open_stream(self, ref: SourceRef, constraints: CaptureConstraints) -> Stream:
        if self._delays:
            await asyncio.sleep(self._delays.pop(0))
        pixels = UNIFORM if ref.kind == "screen" else NOISE
        stream = Stream(
            id=f"stream-{len(self.opened)}", tracks=[_DummyVideoTrack(pixels)], source=ref
        )
        self.opened.append(stream)
        return stream


def _pipeline(
    provider: _DummyProvider,
    store: MemoryStore | None = None,
    request_timeout_s: float = 2.0,
) -> Pipeline:
    return Pipeline(
        provider=provider,
        surface=CanvasSurface(320, 180),
        store=store,
        request_timeout_s=request_timeout_s,
    )


def test_capture_flow_end_to_end() -> None:
    """Запуск захвата рисует аннотации; повторный запуск - busy; остановка освобождает."""

    async def _run_test() -> None:
        provider = _DummyProvider()
        pipeline = _pipeline(provider)
        await pipeline.start()

        reply = await pipeline.controller.start_capture("tab-1", ["screen"])
        assert reply.ok, reply.error
        assert reply.data["owner"] == "tab-1"
        assert reply.data["tracks"] == 1

        await _wait_for(
            lambda: pipeline.overlay.renderer is not None
            and pipeline.overlay.renderer.visible(batch_source("tab-1"))
        )
        annotation = pipeline.overlay.renderer.visible(batch_source("tab-1"))[0]
        assert annotation.score.flagged
        assert pipeline.overlay.surface.pixels[..., 3].any()

        again = await pipeline.controller.start_capture("tab-1", ["screen"])
        assert not again.ok
        assert again.error is not None and again.error.code is ErrorCode.BUSY

        stopped = await pipeline.controller.stop_capture("tab-1")
        assert stopped.ok
        assert provider.opened[0].tracks[0].readyState == "ended"
        assert pipeline.capture.streams.state("tab-1") is OwnerState.IDLE

        # После остановки захват можно начать заново
        restarted = await pipeline.controller.start_capture("tab-1", ["screen"])
        assert restarted.ok

        await pipeline.stop()
        assert all(s.tracks[0].readyState == "ended" for s in provider.opened)

    asyncio.run(_run_test())


def test_timed_out_capture_is_released_and_can_be_retried() -> None:
    """Поток, открытый после таймаута запроса, закрывается; повторный запуск проходит."""

    async def _run_test() -> None:
        provider = _DummyProvider(open_delays=[0.3])
        pipeline = _pipeline(provider, request_timeout_s=0.1)
        await pipeline.start()

        reply = await pipeline.controller.start_capture("tab-1", ["screen"])
        assert not reply.ok
        assert reply.error is not None and reply.error.code is ErrorCode.TIMEOUT

        await _wait_for(lambda: len(provider.opened) == 1)
        await _wait_for(lambda: pipeline.capture.streams.state("tab-1") is OwnerState.IDLE)
        assert provider.opened[0].tracks[0].readyState == "ended"

        retry = await pipeline.controller.start_capture("tab-1", ["screen"])
        assert retry.ok, retry.error
        assert pipeline.capture.streams.state("tab-1") is OwnerState.ACTIVE

        await pipeline.stop()

    asyncio.run(_run_test())


def test_owners_do_not_overwrite_each_other() -> None:
    """Пустые пакеты одного владельца не стирают рамки другого."""

    async def _run_test() -> None:
        pipeline = _pipeline(_DummyProvider())
        await pipeline.start()

        assert (await pipeline.controller.start_capture("a", ["screen"])).ok
        assert (await pipeline.controller.start_capture("b", ["window"])).ok

        def visible(owner: str) -> list:
            renderer = pipeline.overlay.renderer
            return renderer.visible(batch_source(owner)) if renderer is not None else []

        await _wait_for(lambda: visible("a"))
        for _ in range(10):
            await asyncio.sleep(0.02)
            assert visible("a"), "owner b cleared owner a's annotations"
        assert visible("b") == []

        await pipeline.stop()

    asyncio.run(_run_test())


def test_declined_capture_reports_message() -> None:
    """Нет подходящего источника: понятное сообщение и никакого потока."""

    async def _run_test() -> None:
        provider = _DummyProvider()
        pipeline = _pipeline(provider)
        await pipeline.start()

        reply = await pipeline.controller.start_capture("tab-1", ["tab"])

        assert not reply.ok
        assert reply.error is not None
        assert reply.error.code is ErrorCode.SOURCE_UNAVAILABLE
        assert reply.error.message == config.capture.declined_message
        assert provider.opened == []

        await pipeline.stop()

    asyncio.run(_run_test())


def test_start_overlay_is_idempotent() -> None:
    """Повторный StartOverlay не создаёт второй рендерер."""

    async def _run_test() -> None:
        pipeline = _pipeline(_DummyProvider())
        await pipeline.start()

        await pipeline.controller.start_overlay()
        await _wait_for(lambda: pipeline.overlay.renderer is not None)
        first = pipeline.overlay.renderer

        await pipeline.controller.start_overlay()
        await pipeline.controller.feedback("sync")
        await _wait_for(lambda: pipeline.overlay.store.get(FEEDBACK_KEY) == "sync")

        assert pipeline.overlay.renderer is first

        await pipeline.stop()

    asyncio.run(_run_test())


def test_batch_before_start_overlay_initialises_lazily() -> None:
    """Пакет, пришедший раньше StartOverlay, всё равно отрисовывается."""

    async def _run_test() -> None:
        pipeline = _pipeline(_DummyProvider())
        await pipeline.start()
        sidecar = CoordinationBus(pipeline.event_bus, "sidecar")
        await sidecar.start()

        assert pipeline.overlay.renderer is None
        await sidecar.send(
            "overlay",
            AnnotationBatch(
                boxes=[Box(x=10, y=10, w=50, h=50, score=0.9, label="AI?")],
                frameW=320,
                frameH=180,
            ),
        )
        await _wait_for(
            lambda: pipeline.overlay.renderer is not None
            and pipeline.overlay.renderer.visible("sidecar")
        )

        await sidecar.close()
        await pipeline.stop()

    asyncio.run(_run_test())


def test_feedback_is_stored() -> None:
    async def _run_test() -> None:
        store = MemoryStore()
        pipeline = _pipeline(_DummyProvider(), store=store)
        await pipeline.start()

        await pipeline.controller.feedback("like")
        await _wait_for(lambda: store.get(FEEDBACK_KEY) == "like")

        await pipeline.stop()

    asyncio.run(_run_test())


def test_owner_departure_releases_capture() -> None:
    """Уход владельца освобождает его поток без явного StopCapture."""

    async def _run_test() -> None:
        provider = _DummyProvider()
        pipeline = _pipeline(provider)
        await pipeline.start()
        tab = CoordinationBus(pipeline.event_bus, "tab-7")
        await tab.start()

        reply = await tab.request("capture", BeginCapture(streamRef=SCREEN))
        assert reply.ok, reply.error
        assert reply.data["owner"] == "tab-7"
        assert pipeline.capture.streams.state("tab-7") is OwnerState.ACTIVE

        await tab.close()
        await _wait_for(lambda: pipeline.capture.streams.state("tab-7") is OwnerState.IDLE)
        assert provider.opened[0].tracks[0].readyState == "ended"

        await pipeline.stop()

    asyncio.run(_run_test())


def test_document_scan_draws_flagged_blocks() -> None:
    """Структурное сканирование документа рисует помеченные блоки."""

    async def _run_test() -> None:
        pipeline = _pipeline(_DummyProvider())
        await pipeline.start()
        pipeline.overlay.document.update(
            DocumentSnapshot(
                viewportWidth=1280,
                viewportHeight=720,
                elements=[
                    DocumentElement(selector="article", x=100, y=100, w=600, h=300, text=AI_LIKE),
                    DocumentElement(selector="p", x=100, y=500, w=600, h=20, text="Hi."),
                ],
            )
        )

        await pipeline.controller.start_overlay()
        await _wait_for(
            lambda: pipeline.overlay.renderer is not None
            and pipeline.overlay.renderer.visible("document")
        )

        visible = pipeline.overlay.renderer.visible("document")
        assert len(visible) == 1
        assert visible[0].region.x == 100
        mapping = pipeline.overlay.renderer.mapping_for("document")
        assert mapping is not None
        assert mapping.scale_x == 320 / 1280

        await pipeline.stop()

    asyncio.run(_run_test())
