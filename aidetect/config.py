import os
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

CONFIG_ENV = "AIDETECT_CONFIG"


class ServerConfig(BaseModel):
    """Настройки веб-сервера"""
    host: str = Field("0.0.0.0", description="Адрес для привязки сервера")
    port: int = Field(8000, ge=1, le=65535, description="Порт сервера")
    reload: bool = Field(False, description="Auto-reload при изменении кода (для разработки)")


class SourceConfig(BaseModel):
    """Источник захвата из каталога"""
    kind: str = Field(..., description="screen | window | tab | audio | camera")
    uri: str = Field(..., description="URI для MediaPlayer или индекс камеры")
    format: str | None = Field(None, description="Формат ffmpeg (x11grab, pulse, v4l2 ...)")
    options: dict[str, str] = Field(default_factory=dict, description="Опции ffmpeg")
    label: str = Field("", description="Человекочитаемое имя источника")


def _default_sources() -> list[SourceConfig]:
    return [
        SourceConfig(kind="screen", uri=":0.0", format="x11grab", label="Display :0"),
        SourceConfig(kind="audio", uri="default", format="pulse", label="Default audio"),
        SourceConfig(kind="camera", uri="0", label="Camera 0"),
    ]


class CaptureConfig(BaseModel):
    """Настройки захвата"""
    sources: list[SourceConfig] = Field(default_factory=_default_sources, description="Каталог источников")
    default_kinds: list[str] = Field(
        default_factory=lambda: ["screen", "window", "tab", "audio"],
        description="Типы источников, предлагаемые по умолчанию",
    )
    width: int = Field(1280, ge=160, le=3840, description="Запрашиваемая ширина захвата")
    height: int = Field(720, ge=120, le=2160, description="Запрашиваемая высота захвата")
    frame_rate: int = Field(30, ge=1, le=60, description="Запрашиваемая частота кадров")
    audio: bool = Field(False, description="Захватывать аудио вместе с видео")
    declined_message: str = Field(
        "Grant screen capture permission to analyze video/audio.",
        description="Сообщение пользователю при отказе в захвате",
    )


class SamplerConfig(BaseModel):
    """Настройки непрерывного сэмплирования кадров"""
    max_fps: float = Field(20.0, gt=0.0, le=60.0, description="Ограничение частоты циклов")
    working_width: int = Field(640, ge=16, le=1920, description="Рабочая ширина кадра")
    working_height: int = Field(360, ge=16, le=1080, description="Рабочая высота кадра")
    fft_size: int = Field(1024, ge=32, le=32768, description="Размер FFT для аудиоспектра")

    @model_validator(mode="after")
    def _check_fft_size(self) -> "SamplerConfig":
        if self.fft_size & (self.fft_size - 1):
            raise ValueError("fft_size must be a power of two")
        return self


class ScannerConfig(BaseModel):
    """Настройки периодического сканирования структуры документа"""
    interval_ms: int = Field(1000, ge=50, le=60000, description="Интервал сканирования (мс)")
    selectors: list[str] = Field(
        default_factory=lambda: [
            "article",
            "main",
            "p",
            "div[role='article']",
            ".content",
            ".post",
            ".entry",
            ".markdown",
            ".ProseMirror",
        ],
        description="Структурные селекторы кандидатов",
    )


class ScoringConfig(BaseModel):
    """Пороги эвристик"""
    structural_min_chars: int = Field(400, ge=1, description="Минимальная длина текста (структурный вариант)")
    structural_flag_threshold: float = Field(0.6, ge=0.0, le=1.0, description="Порог пометки")
    structural_include_threshold: float = Field(0.5, ge=0.0, le=1.0, description="Порог включения блока")
    coarse_min_chars: int = Field(80, ge=1, description="Минимальная длина текста (грубый вариант)")
    coarse_flag_threshold: float = Field(0.75, ge=0.0, le=1.0, description="Порог пометки (грубый вариант)")
    image_flag_threshold: float = Field(0.75, ge=0.0, le=1.0, description="Порог пометки изображений")
    image_max_side: int = Field(512, ge=16, le=4096, description="Максимальная сторона изображения")
    image_stride: int = Field(16, ge=1, le=256, description="Шаг сетки по пикселям")


class OverlayConfig(BaseModel):
    """Настройки отрисовки аннотаций"""
    width: int = Field(1280, ge=16, le=7680, description="Ширина поверхности (CSS px)")
    height: int = Field(720, ge=16, le=4320, description="Высота поверхности (CSS px)")
    pixel_ratio: float = Field(1.0, gt=0.0, le=4.0, description="Плотность пикселей устройства")
    ttl_ms: int = Field(3000, ge=100, le=60000, description="Время жизни аннотации (мс)")
    housekeeping_interval_ms: int = Field(250, ge=10, le=5000, description="Интервал удаления устаревших аннотаций")
    line_width: int = Field(3, ge=1, le=16, description="Толщина рамки")
    label_height: int = Field(18, ge=8, le=64, description="Высота плашки с подписью")
    font_scale: float = Field(0.45, gt=0.0, le=4.0, description="Размер шрифта подписи")
    jpeg_quality: int = Field(80, ge=10, le=100, description="Качество MJPEG превью")


class BusConfig(BaseModel):
    """Настройки шины координации"""
    request_timeout_s: float = Field(5.0, gt=0.0, le=120.0, description="Таймаут запроса (сек)")


class Config(BaseModel):
    """Главная конфигурация приложения"""
    server: ServerConfig = ServerConfig()
    capture: CaptureConfig = CaptureConfig()
    sampler: SamplerConfig = SamplerConfig()
    scanner: ScannerConfig = ScannerConfig()
    scoring: ScoringConfig = ScoringConfig()
    overlay: OverlayConfig = OverlayConfig()
    bus: BusConfig = BusConfig()


def load_config(path: str | Path) -> Config:
    """Загрузить конфигурацию из JSON файла."""
    return Config.model_validate_json(Path(path).read_text(encoding="utf-8"))


def _initial_config() -> Config:
    path = os.environ.get(CONFIG_ENV)
    return load_config(path) if path else Config()


# Глобальный экземпляр конфигурации
config = _initial_config()
