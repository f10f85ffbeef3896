import asyncio
import logging
from collections.abc import Awaitable, Callable

from aidetect.config import config
from aidetect.messages import AnnotationBatch, Region
from aidetect.sampling.document import DocumentSnapshot, DocumentSource
from aidetect.scoring import HeuristicScorer, Score, TextSample, TextVariant
from aidetect.scoring.text import normalize_whitespace

logger = logging.getLogger(__name__)

OnBatch = Callable[[AnnotationBatch], Awaitable[None]]


class StructuralScanner:
    """
    Timer-driven scan of large text containers.

    Every cycle takes one document snapshot, scores all eligible elements,
    and only then emits a single batch that replaces the previous one.
    """

    def __init__(
        self,
        scorer: HeuristicScorer | None = None,
        interval_s: float | None = None,
        include_threshold: float | None = None,
        selectors: list[str] | None = None,
    ) -> None:
        self._scorer = scorer or HeuristicScorer(TextVariant.STRUCTURAL)
        self.interval_s = (
            interval_s if interval_s is not None else config.scanner.interval_ms / 1000
        )
        self.include_threshold = (
            include_threshold
            if include_threshold is not None
            else config.scoring.structural_include_threshold
        )
        self.selectors = frozenset(selectors or config.scanner.selectors)
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._running

    def scan(self, snapshot: DocumentSnapshot) -> AnnotationBatch:
        candidates: list[tuple[Region, TextSample]] = []
        for element in snapshot.elements:
            if element.selector not in self.selectors:
                continue
            sample = TextSample(normalize_whitespace(element.text))
            # Short blocks never reach the estimator
            if not self._scorer.eligible(sample):
                continue
            candidates.append((element.region, sample))

        scored: list[tuple[Region, Score]] = []
        for region, sample in candidates:
            score = self._scorer.score(sample)
            if score is not None:
                scored.append((region, score))

        included = [(r, s) for r, s in scored if s.value >= self.include_threshold]
        return AnnotationBatch.from_scored(
            included, snapshot.viewport_width, snapshot.viewport_height
        )

    async def start(self, source: DocumentSource, on_batch: OnBatch) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run(source, on_batch), name="structural-scan")
        logger.info("Structural scan started (every %.2fs)", self.interval_s)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Structural scan stopped")

    async def _run(self, source: DocumentSource, on_batch: OnBatch) -> None:
        while self._running:
            snapshot = await source.snapshot()
            if not self._running:
                break
            if snapshot is not None:
                batch = self.scan(snapshot)
                await on_batch(batch)
            if not self._running:
                break
            await asyncio.sleep(self.interval_s)
