"""OpenCV поверхность отрисовки поверх numpy буфера."""

import logging
import math

import cv2
import numpy as np

from aidetect.errors import RenderTargetLostError
from aidetect.overlay.base import Color, ResizeCallback

logger = logging.getLogger(__name__)


class CanvasSurface:
    """
    Поверхность отрисовки на основе OpenCV.

    Хранит RGBA буфер размером ``width * pixel_ratio`` на
    ``height * pixel_ratio`` и переводит CSS координаты в физические
    пиксели, как это делает ``setTransform(dpr, ...)`` у canvas.
    """

    def __init__(
        self,
        width: float,
        height: float,
        pixel_ratio: float = 1.0,
        font_scale: float = 0.45,
    ) -> None:
        """
        Инициализация поверхности.

        Args:
            width: Ширина в CSS пикселях
            height: Высота в CSS пикселях
            pixel_ratio: Плотность пикселей устройства
            font_scale: Размер шрифта подписи (в CSS масштабе)
        """
        self._width = float(width)
        self._height = float(height)
        self._pixel_ratio = float(pixel_ratio)
        self.font = cv2.FONT_HERSHEY_SIMPLEX
        self.font_scale = font_scale
        self.attached = True
        self._observers: list[ResizeCallback] = []
        self._pixels = self._allocate()

    @property
    def width(self) -> float:
        return self._width

    @property
    def height(self) -> float:
        return self._height

    @property
    def pixel_ratio(self) -> float:
        return self._pixel_ratio

    @property
    def pixels(self) -> np.ndarray:
        """Физический RGBA буфер (не копия)."""
        return self._pixels

    def _allocate(self) -> np.ndarray:
        pw = max(1, math.floor(self._width * self._pixel_ratio))
        ph = max(1, math.floor(self._height * self._pixel_ratio))
        return np.zeros((ph, pw, 4), dtype=np.uint8)

    def _check(self) -> None:
        if not self.attached:
            raise RenderTargetLostError("overlay surface is detached")

    def _px(self, value: float) -> int:
        return int(round(value * self._pixel_ratio))

    def observe_resize(self, callback: ResizeCallback) -> None:
        self._observers.append(callback)

    def resize(self, width: float, height: float, pixel_ratio: float | None = None) -> None:
        """
        Изменить размер и/или плотность пикселей.

        Буфер пересоздаётся, наблюдатели уведомляются и перерисовывают
        содержимое.
        """
        if pixel_ratio is not None:
            self._pixel_ratio = float(pixel_ratio)
        self._width = float(width)
        self._height = float(height)
        self._pixels = self._allocate()
        logger.debug(
            "Surface resized to %.0fx%.0f @%.2fx", self._width, self._height, self._pixel_ratio
        )
        for callback in list(self._observers):
            callback()

    def detach(self) -> None:
        self.attached = False

    def attach(self) -> None:
        self.attached = True
        for callback in list(self._observers):
            callback()

    def clear(self) -> None:
        self._check()
        self._pixels[:] = 0

    def stroke_rect(self, x: float, y: float, w: float, h: float, color: Color, line_width: int) -> None:
        self._check()
        r, g, b, a = color
        cv2.rectangle(
            self._pixels,
            (self._px(x), self._px(y)),
            (self._px(x + w), self._px(y + h)),
            (r, g, b, int(round(a * 255))),
            max(1, self._px(line_width)),
            cv2.LINE_AA,
        )

    def fill_rect(self, x: float, y: float, w: float, h: float, color: Color) -> None:
        self._check()
        ph, pw = self._pixels.shape[:2]
        x0, y0 = max(0, self._px(x)), max(0, self._px(y))
        x1, y1 = min(pw, self._px(x + w)), min(ph, self._px(y + h))
        if x1 <= x0 or y1 <= y0:
            return

        r, g, b, a = color
        roi = self._pixels[y0:y1, x0:x1].astype(np.float32)
        src = np.array([r, g, b, 255], dtype=np.float32)
        # source-over
        roi[..., :3] = src[:3] * a + roi[..., :3] * (1.0 - a)
        roi[..., 3] = 255 * a + roi[..., 3] * (1.0 - a)
        self._pixels[y0:y1, x0:x1] = np.clip(roi, 0, 255).astype(np.uint8)

    def measure_text(self, text: str) -> tuple[float, float]:
        (text_width, text_height), baseline = cv2.getTextSize(
            text, self.font, self.font_scale * self._pixel_ratio, 1
        )
        return text_width / self._pixel_ratio, (text_height + baseline) / self._pixel_ratio

    def fill_text(self, text: str, x: float, y: float, color: Color) -> None:
        self._check()
        r, g, b, a = color
        cv2.putText(
            self._pixels,
            text,
            (self._px(x), self._px(y)),
            self.font,
            self.font_scale * self._pixel_ratio,
            (r, g, b, int(round(a * 255))),
            1,
            cv2.LINE_AA,
        )

    def composite(self, frame: np.ndarray) -> np.ndarray:
        """
        Наложить оверлей на RGB кадр того же размера, что и экран.

        Args:
            frame: Кадр в формате RGB (numpy array)

        Returns:
            Новый RGB кадр
        """
        overlay = self._pixels
        if frame.shape[:2] != overlay.shape[:2]:
            frame = cv2.resize(frame, (overlay.shape[1], overlay.shape[0]))
        alpha = overlay[..., 3:4].astype(np.float32) / 255.0
        mixed = overlay[..., :3].astype(np.float32) * alpha + frame.astype(np.float32) * (1 - alpha)
        return mixed.astype(np.uint8)

    def encode_jpeg(self, quality: int = 80) -> bytes | None:
        """Кодировать текущее содержимое (на чёрном фоне) в JPEG."""
        black = np.zeros(self._pixels.shape[:2] + (3,), dtype=np.uint8)
        frame = cv2.cvtColor(self.composite(black), cv2.COLOR_RGB2BGR)
        ret, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, quality])
        if not ret:
            logger.error("Failed to encode overlay as JPEG")
            return None
        return buffer.tobytes()
