import asyncio
import logging
from collections.abc import Awaitable, Callable

import cv2
import numpy as np

from aidetect.capture.sources import AudioSource, FrameSource, SourceEnded
from aidetect.config import config
from aidetect.messages import AnnotationBatch, Region
from aidetect.scoring import AudioSample, HeuristicScorer, ImageSample, Score
from aidetect.scoring.audio import magnitude_spectrum

logger = logging.getLogger(__name__)

OnBatch = Callable[[AnnotationBatch], Awaitable[None]]


def to_working_frame(pixels: np.ndarray, width: int, height: int) -> np.ndarray:
    """Rescale to the working resolution and make sure the frame is RGBA."""
    if pixels.ndim == 2:
        pixels = cv2.cvtColor(pixels, cv2.COLOR_GRAY2RGBA)
    elif pixels.shape[2] == 3:
        pixels = cv2.cvtColor(pixels, cv2.COLOR_RGB2RGBA)
    if pixels.shape[1] != width or pixels.shape[0] != height:
        pixels = cv2.resize(pixels, (width, height), interpolation=cv2.INTER_AREA)
    return pixels


class FrameSampler:
    """
    Frame-rate driven sampling of a live capture.

    Each cycle pulls the latest frame, scores it as one whole-frame image
    and emits exactly one batch (empty when nothing is flagged). Cycles are
    capped at ``max_fps``.
    """

    def __init__(
        self,
        scorer: HeuristicScorer | None = None,
        max_fps: float | None = None,
        working_size: tuple[int, int] | None = None,
        fft_size: int | None = None,
    ) -> None:
        cfg = config.sampler
        self._scorer = scorer or HeuristicScorer()
        self.max_fps = max_fps if max_fps is not None else cfg.max_fps
        self.working_size = working_size or (cfg.working_width, cfg.working_height)
        self.fft_size = fft_size if fft_size is not None else cfg.fft_size
        self.frames_scored = 0
        self.last_audio_score: Score | None = None
        self._running = False
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return self._running

    def process(self, pixels: np.ndarray) -> AnnotationBatch:
        width, height = self.working_size
        frame = to_working_frame(pixels, width, height)
        score = self._scorer.score(ImageSample.from_array(frame))
        self.frames_scored += 1

        scored: list[tuple[Region, Score]] = []
        if score is not None and score.flagged:
            scored.append((Region(0, 0, width, height), score))
        return AnnotationBatch.from_scored(scored, width, height)

    async def start(
        self,
        source: FrameSource | None,
        on_batch: OnBatch,
        audio: AudioSource | None = None,
    ) -> None:
        if self._running:
            return
        if source is None and audio is None:
            raise ValueError("nothing to sample")
        self._running = True
        self._tasks = []
        if source is not None:
            self._tasks.append(
                asyncio.create_task(self._video_loop(source, on_batch), name="frame-sampler")
            )
        if audio is not None:
            self._tasks.append(asyncio.create_task(self._audio_loop(audio), name="audio-sampler"))
        logger.info("Frame sampler started (max %.1f fps)", self.max_fps)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        tasks, self._tasks = self._tasks, []
        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()
        for task in tasks:
            if task is current:
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Frame sampler stopped after %d frames", self.frames_scored)

    async def _video_loop(self, source: FrameSource, on_batch: OnBatch) -> None:
        loop = asyncio.get_running_loop()
        period = 1.0 / self.max_fps
        while self._running:
            started = loop.time()
            try:
                pixels = await source.next_frame()
            except SourceEnded as exc:
                logger.info("Video source ended: %s", exc)
                break
            if not self._running:
                break

            if pixels is None or pixels.size == 0:
                # No sized frame yet; try again next cycle
                logger.debug("Waiting for first sized frame")
            else:
                await on_batch(self.process(pixels))

            if not self._running:
                break
            await asyncio.sleep(max(0.0, period - (loop.time() - started)))
        self._running = False

    async def _audio_loop(self, source: AudioSource) -> None:
        while self._running:
            try:
                chunk = await source.next_chunk()
            except SourceEnded as exc:
                logger.info("Audio source ended: %s", exc)
                return
            if not self._running:
                return
            if chunk is None or chunk.size == 0:
                continue
            sample = AudioSample(magnitude_spectrum(chunk, self.fft_size))
            self.last_audio_score = self._scorer.score(sample)
