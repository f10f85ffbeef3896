"""Эвристика гладкости изображения по сетке яркости."""

import cv2
import numpy as np

from aidetect.config import config
from aidetect.errors import MalformedSampleError
from aidetect.scoring.base import Estimator, ImageSample
from aidetect.scoring.registry import register_estimator

# BT.601
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)
BASELINE = 0.8
VARIANCE_SCALE = 35.0


def cap_resolution(pixels: np.ndarray, max_side: int) -> np.ndarray:
    """Уменьшить изображение так, чтобы каждая сторона была не больше ``max_side``."""
    height, width = pixels.shape[:2]
    new_w = min(max_side, width)
    new_h = min(max_side, height)
    if (new_w, new_h) == (width, height):
        return pixels
    return cv2.resize(pixels, (new_w, new_h), interpolation=cv2.INTER_AREA)


def luminance(pixels: np.ndarray) -> np.ndarray:
    return pixels[..., :3].astype(np.float64) @ LUMA_WEIGHTS


def grid_variation(luma: np.ndarray, stride: int) -> float:
    """
    Средняя разница яркости между соседними узлами сетки.

    Каждый узел сравнивается с диагональным соседом через ``stride``
    пикселей; на краях сосед прижимается к последней строке/колонке.
    """
    height, width = luma.shape
    ys = np.arange(0, height, stride)
    xs = np.arange(0, width, stride)
    ys2 = np.minimum(ys + stride, height - 1)
    xs2 = np.minimum(xs + stride, width - 1)

    here = luma[np.ix_(ys, xs)]
    there = luma[np.ix_(ys2, xs2)]
    total = float(np.abs(here - there).sum())
    return total / ((width / stride) * (height / stride))


@register_estimator(ImageSample)
class ImageEstimator(Estimator[ImageSample]):
    def __init__(
        self,
        threshold: float | None = None,
        max_side: int | None = None,
        stride: int | None = None,
    ) -> None:
        cfg = config.scoring
        self.threshold = threshold if threshold is not None else cfg.image_flag_threshold
        self.max_side = max_side if max_side is not None else cfg.image_max_side
        self.stride = stride if stride is not None else cfg.image_stride

    def estimate(self, sample: ImageSample) -> float:
        return BASELINE - self.variation(sample) / VARIANCE_SCALE

    def variation(self, sample: ImageSample) -> float:
        pixels = sample.pixels
        if not isinstance(pixels, np.ndarray) or pixels.ndim != 3:
            raise MalformedSampleError("image must be an HxWxC array")
        if pixels.shape[2] not in (3, 4):
            raise MalformedSampleError(f"unsupported channel count {pixels.shape[2]}")
        if pixels.shape[0] == 0 or pixels.shape[1] == 0 or sample.width <= 0 or sample.height <= 0:
            raise MalformedSampleError("zero-area image")

        capped = cap_resolution(pixels, self.max_side)
        return grid_variation(luminance(capped), self.stride)
