"""Оверлей: отрисовка аннотаций поверх экрана или кадра."""

from aidetect.overlay.base import Color, DrawSurface
from aidetect.overlay.canvas import CanvasSurface
from aidetect.overlay.mapping import CoordinateMapping
from aidetect.overlay.renderer import AnnotationRenderer, AnnotationStyle

__all__ = [
    "AnnotationRenderer",
    "AnnotationStyle",
    "CanvasSurface",
    "Color",
    "CoordinateMapping",
    "DrawSurface",
]
