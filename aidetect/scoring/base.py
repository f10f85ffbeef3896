"""Базовые типы эвристической оценки."""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

import numpy as np

from aidetect.errors import MalformedSampleError


class Label(str, Enum):
    FLAGGED = "AI?"
    LOW = "Low"

    @classmethod
    def from_text(cls, text: str) -> "Label":
        return cls.FLAGGED if text == cls.FLAGGED.value else cls.LOW


@dataclass(frozen=True)
class Score:
    value: float  # 0..1
    label: Label

    @property
    def flagged(self) -> bool:
        return self.label is Label.FLAGGED


DEFAULT_SCORE = Score(0.0, Label.LOW)


class Sample:
    """Маркерный базовый класс для вариантов выборки."""

    __slots__ = ()


@dataclass(frozen=True)
class TextSample(Sample):
    content: str


@dataclass(frozen=True, eq=False)
class ImageSample(Sample):
    """
    Кадр или изображение.

    Атрибуты:
        pixels: массив HxWx4 (RGBA, uint8)
    """

    pixels: np.ndarray = field(repr=False)
    width: int
    height: int

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> "ImageSample":
        height, width = pixels.shape[:2]
        return cls(pixels=pixels, width=int(width), height=int(height))


@dataclass(frozen=True)
class AudioSample(Sample):
    spectrum: tuple[float, ...]


def clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


S = TypeVar("S", bound=Sample)


class Estimator(ABC, Generic[S]):
    """
    Оценщик одного вида выборки.

    Реализации чистые: никакого I/O и состояния между вызовами.
    Некорректный вход сигнализируется ``MalformedSampleError``.
    """

    threshold: float = 1.0

    def eligible(self, sample: S) -> bool:
        """Нужно ли вообще оценивать выборку (например, минимальная длина)."""
        return True

    @abstractmethod
    def estimate(self, sample: S) -> float:
        """Вернуть значение эвристики в [0, 1]."""
        ...

    def score(self, sample: S) -> Score:
        value = self.estimate(sample)
        if not math.isfinite(value):
            raise MalformedSampleError(f"non-finite estimate {value!r}")
        value = clamp01(value)
        label = Label.FLAGGED if value >= self.threshold else Label.LOW
        return Score(value, label)
