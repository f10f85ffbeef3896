"""Базовые интерфейсы для системы оверлеев."""

from collections.abc import Callable
from typing import Protocol

# RGBA, альфа в диапазоне 0..1
Color = tuple[int, int, int, float]
ResizeCallback = Callable[[], None]


class DrawSurface(Protocol):
    """
    Интерфейс поверхности отрисовки.

    Все координаты задаются в CSS пикселях; поверхность сама переводит
    их в физические пиксели с учётом ``pixel_ratio``. Если поверхность
    пропала, любой вызов отрисовки бросает ``RenderTargetLostError``.
    """

    @property
    def width(self) -> float: ...

    @property
    def height(self) -> float: ...

    @property
    def pixel_ratio(self) -> float: ...

    def clear(self) -> None:
        """Очистить всю поверхность."""
        ...

    def stroke_rect(self, x: float, y: float, w: float, h: float, color: Color, line_width: int) -> None:
        ...

    def fill_rect(self, x: float, y: float, w: float, h: float, color: Color) -> None:
        ...

    def measure_text(self, text: str) -> tuple[float, float]:
        """
        Измерить текст.

        Returns:
            Ширина и высота текста в CSS пикселях
        """
        ...

    def fill_text(self, text: str, x: float, y: float, color: Color) -> None:
        """Нарисовать текст; ``y`` - базовая линия."""
        ...

    def observe_resize(self, callback: ResizeCallback) -> None:
        """Подписаться на изменение размера или плотности пикселей."""
        ...
