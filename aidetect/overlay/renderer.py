"""Рендерер аннотаций с ограниченным временем жизни."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from aidetect.config import config
from aidetect.errors import RenderTargetLostError
from aidetect.messages import Annotation, AnnotationBatch
from aidetect.overlay.base import Color, DrawSurface
from aidetect.overlay.mapping import CoordinateMapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnnotationStyle:
    outline: Color = (0, 0, 0, 1.0)
    fill: Color = (255, 255, 0, 0.25)
    chip: Color = (0, 0, 0, 0.7)
    text: Color = (255, 255, 255, 1.0)
    line_width: int = 3
    label_height: int = 18
    label_padding: int = 10


@dataclass(frozen=True)
class _SourceState:
    annotations: tuple[Annotation, ...]
    frame_width: float
    frame_height: float


class AnnotationRenderer:
    """
    Рендерер аннотаций.

    Каждый вызов ``render`` заменяет аннотации своего источника, очищает
    поверхность и рисует все живые аннотации заново (clear-then-draw,
    без накопления). ``tick`` удаляет устаревшие аннотации даже без
    новых пакетов.
    """

    def __init__(
        self,
        surface: DrawSurface,
        ttl_s: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        style: AnnotationStyle | None = None,
    ) -> None:
        """
        Инициализация рендерера.

        Args:
            surface: Поверхность отрисовки
            ttl_s: Время жизни аннотации в секундах
            clock: Источник монотонного времени
            style: Цвета и размеры
        """
        self.surface = surface
        self.ttl_s = ttl_s if ttl_s is not None else config.overlay.ttl_ms / 1000
        self._clock = clock
        self.style = style or AnnotationStyle(
            line_width=config.overlay.line_width,
            label_height=config.overlay.label_height,
        )
        self._sources: dict[str, _SourceState] = {}
        self.batches_dropped = 0
        surface.observe_resize(self._on_resize)

    def mapping_for(self, source: str) -> CoordinateMapping | None:
        state = self._sources.get(source)
        if state is None:
            return None
        return CoordinateMapping.between(
            state.frame_width, state.frame_height, self.surface.width, self.surface.height
        )

    def visible(self, source: str | None = None) -> list[Annotation]:
        if source is None:
            states = list(self._sources.values())
        else:
            states = [self._sources[source]] if source in self._sources else []
        return [a for state in states for a in state.annotations]

    def render(self, batch: AnnotationBatch, source: str = "default") -> bool:
        """
        Отрисовать пакет.

        Returns:
            False, если поверхность пропала и пакет отброшен
        """
        now = self._clock()
        sources = dict(self._sources)
        sources[source] = _SourceState(
            annotations=tuple(batch.to_annotations(now, self.ttl_s)),
            frame_width=batch.frame_w,
            frame_height=batch.frame_h,
        )
        sources = self._prune(sources, now)
        try:
            self._draw(sources)
        except RenderTargetLostError:
            self.batches_dropped += 1
            logger.debug("Render target lost, dropping batch from %s", source)
            return False
        self._sources = sources
        return True

    def tick(self, now: float | None = None) -> int:
        """Удалить устаревшие аннотации; вернуть число удалённых."""
        now = self._clock() if now is None else now
        before = sum(len(s.annotations) for s in self._sources.values())
        self._sources = self._prune(self._sources, now)
        removed = before - sum(len(s.annotations) for s in self._sources.values())
        if removed:
            self._redraw()
        return removed

    def clear(self) -> None:
        self._sources = {}
        self._redraw()

    def _prune(self, sources: dict[str, _SourceState], now: float) -> dict[str, _SourceState]:
        pruned: dict[str, _SourceState] = {}
        for name, state in sources.items():
            live = tuple(a for a in state.annotations if not a.expired(now))
            if live:
                pruned[name] = _SourceState(live, state.frame_width, state.frame_height)
        return pruned

    def _on_resize(self) -> None:
        self._redraw()

    def _redraw(self) -> None:
        try:
            self._draw(self._sources)
        except RenderTargetLostError:
            logger.debug("Render target lost during redraw")

    def _draw(self, sources: dict[str, _SourceState]) -> None:
        self.surface.clear()
        for state in sources.values():
            mapping = CoordinateMapping.between(
                state.frame_width,
                state.frame_height,
                self.surface.width,
                self.surface.height,
            )
            for annotation in state.annotations:
                self._draw_annotation(annotation, mapping)

    def _draw_annotation(self, annotation: Annotation, mapping: CoordinateMapping) -> None:
        style = self.style
        box = mapping.project(annotation.region)

        self.surface.stroke_rect(box.x, box.y, box.width, box.height, style.outline, style.line_width)
        self.surface.fill_rect(box.x, box.y, box.width, box.height, style.fill)

        text = f"{annotation.score.label.value} {annotation.score.value:.2f}"
        text_width, _ = self.surface.measure_text(text)
        chip_w = text_width + style.label_padding
        chip_h = style.label_height

        # Плашка над рамкой, но всегда в пределах поверхности
        chip_x = min(max(0.0, box.x), max(0.0, self.surface.width - chip_w))
        chip_y = min(max(0.0, box.y - chip_h), max(0.0, self.surface.height - chip_h))

        self.surface.fill_rect(chip_x, chip_y, chip_w, chip_h, style.chip)
        self.surface.fill_text(text, chip_x + 4, chip_y + chip_h - 5, style.text)
