"""Тесты для провайдера захвата и адаптеров треков."""

from __future__ import annotations

import asyncio
import time
from typing import Any

import numpy as np
import pytest
from aiortc.mediastreams import MediaStreamError
from av import AudioFrame, VideoFrame

from aidetect.capture import (
    CaptureConstraints,
    MediaCaptureProvider,
    SourceEnded,
    TrackAudioSource,
    TrackFrameSource,
)
from aidetect.capture import provider as provider_module
from aidetect.config import SourceConfig
from aidetect.errors import SourceUnavailableError
from aidetect.messages import SourceRef
from aidetect.scoring.audio import magnitude_spectrum

SOURCES = [
    SourceConfig(kind="screen", uri=":0.0", format="x11grab", label="Display :0"),
    SourceConfig(kind="screen", uri=":1.0", format="x11grab"),
    SourceConfig(kind="audio", uri="default", format="pulse"),
    SourceConfig(kind="camera", uri="0"),
]


class _DummyTrack:
    """Мок медиатрека без доступа к устройству."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self.readyState = "live"
        self.stop_called = False

    def stop(self) -> None:
        self.stop_called = True
        self.readyState = "ended"


class _DummyPlayer:
    """Упрощённый MediaPlayer, фиксирующий параметры открытия."""

    instances: list["_DummyPlayer"] = []

    def __init__(self, file: str, format: str | None = None, options: dict | None = None) -> None:
        self.file = file
        self.format = format
        self.options = options or {}
        self.video = _DummyTrack("video")
        self.audio = _DummyTrack("audio")
        _DummyPlayer.instances.append(self)


class _DummyCamera(_DummyTrack):
    def __init__(self, index: int, width: Any, height: Any, frame_rate: int) -> None:
        super().__init__("video")
        self.args = (index, width, height, frame_rate)


class _EndedTrack:
    async def recv(self) -> Any:
        raise MediaStreamError


class _FrameTrack:
    def __init__(self, frame: Any) -> None:
        self._frame = frame

    async def recv(self) -> Any:
        return self._frame


@pytest.fixture(autouse=True)
def _no_devices(monkeypatch: pytest.MonkeyPatch) -> None:
    _DummyPlayer.instances = []
    monkeypatch.setattr(provider_module, "MediaPlayer", _DummyPlayer)
    monkeypatch.setattr(provider_module, "OpenCvCameraTrack", _DummyCamera)


def test_catalog_filters_by_kind() -> None:
    provider = MediaCaptureProvider(SOURCES)

    refs = provider.catalog({"screen"})

    assert [r.uri for r in refs] == [":0.0", ":1.0"]
    assert refs[1].label == ":1.0"


def test_choose_source_uses_chooser() -> None:
    """Выбор делегируется chooser; пустой выбор означает отказ."""

    async def _run_test() -> None:
        async def pick_last(candidates: list[SourceRef]) -> SourceRef | None:
            return candidates[-1]

        async def decline(candidates: list[SourceRef]) -> SourceRef | None:
            return None

        assert (await MediaCaptureProvider(SOURCES).choose_source({"screen"})).uri == ":0.0"
        assert (await MediaCaptureProvider(SOURCES, pick_last).choose_source({"screen"})).uri == ":1.0"
        assert await MediaCaptureProvider(SOURCES, decline).choose_source({"screen"}) is None
        assert await MediaCaptureProvider(SOURCES).choose_source({"window"}) is None

    asyncio.run(_run_test())


def test_open_screen_keeps_video_and_stops_unwanted_audio() -> None:
    """Видео без аудио: лишний аудиотрек сразу останавливается."""

    async def _run_test() -> None:
        provider = MediaCaptureProvider(SOURCES)
        ref = provider.catalog({"screen"})[0]

        stream = await provider.open_stream(
            ref, CaptureConstraints(width=1280, height=720, frame_rate=30)
        )

        player = _DummyPlayer.instances[-1]
        assert player.file == ":0.0"
        assert player.format == "x11grab"
        assert player.options == {"video_size": "1280x720", "framerate": "30"}
        assert stream.tracks == [player.video]
        assert player.audio.stop_called
        assert stream.source == ref

    asyncio.run(_run_test())


def test_open_audio_source_keeps_only_audio() -> None:
    async def _run_test() -> None:
        provider = MediaCaptureProvider(SOURCES)
        ref = provider.catalog({"audio"})[0]

        stream = await provider.open_stream(ref, CaptureConstraints(width=1280, height=720))

        player = _DummyPlayer.instances[-1]
        assert stream.audio_track is player.audio
        assert stream.video_track is None
        assert "video_size" not in player.options

    asyncio.run(_run_test())


def test_open_camera_uses_opencv_track() -> None:
    async def _run_test() -> None:
        provider = MediaCaptureProvider(SOURCES)
        ref = provider.catalog({"camera"})[0]

        stream = await provider.open_stream(
            ref, CaptureConstraints(width=640, height=480, frame_rate=15)
        )

        assert isinstance(stream.video_track, _DummyCamera)
        assert stream.video_track.args == (0, 640, 480, 15)
        assert _DummyPlayer.instances == []

    asyncio.run(_run_test())


def test_open_failures_are_source_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ошибки устройства превращаются в SourceUnavailableError."""

    def broken_player(*args: Any, **kwargs: Any) -> Any:
        raise OSError("no display")

    async def _run_test() -> None:
        provider = MediaCaptureProvider(SOURCES)
        with pytest.raises(SourceUnavailableError):
            await provider.open_stream(
                SourceRef(kind="camera", uri="front"), CaptureConstraints()
            )

        monkeypatch.setattr(provider_module, "MediaPlayer", broken_player)
        with pytest.raises(SourceUnavailableError):
            await provider.open_stream(provider.catalog({"screen"})[0], CaptureConstraints())

    asyncio.run(_run_test())


def test_track_frame_source_converts_to_rgba() -> None:
    async def _run_test() -> None:
        frame = VideoFrame.from_ndarray(np.zeros((36, 64, 3), dtype=np.uint8), format="rgb24")

        pixels = await TrackFrameSource(_FrameTrack(frame)).next_frame()

        assert pixels is not None
        assert pixels.shape == (36, 64, 4)

    asyncio.run(_run_test())


def test_track_frame_source_reports_end() -> None:
    async def _run_test() -> None:
        with pytest.raises(SourceEnded):
            await TrackFrameSource(_EndedTrack()).next_frame()

    asyncio.run(_run_test())


def test_cancelled_open_stops_late_player(monkeypatch: pytest.MonkeyPatch) -> None:
    """Плеер, открывшийся после отмены запроса, сразу останавливается."""

    class _SlowPlayer(_DummyPlayer):
        def __init__(self, *args: Any, **kwargs: Any) -> None:
            time.sleep(0.2)
            super().__init__(*args, **kwargs)

    monkeypatch.setattr(provider_module, "MediaPlayer", _SlowPlayer)

    async def _run_test() -> None:
        provider = MediaCaptureProvider(SOURCES)
        opening = asyncio.create_task(
            provider.open_stream(provider.catalog({"screen"})[0], CaptureConstraints())
        )
        await asyncio.sleep(0.05)
        opening.cancel()
        with pytest.raises(asyncio.CancelledError):
            await opening

        loop = asyncio.get_running_loop()
        deadline = loop.time() + 2.0
        while not (_DummyPlayer.instances and _DummyPlayer.instances[0].video.stop_called):
            assert loop.time() < deadline, "late player was not stopped"
            await asyncio.sleep(0.01)
        assert _DummyPlayer.instances[0].audio.stop_called

    asyncio.run(_run_test())


def test_track_audio_source_splits_packed_channels() -> None:
    """Упакованный стерео-кадр раскладывается по каналам, а не в одну строку."""

    async def _run_test() -> None:
        interleaved = np.empty((1, 2 * 1024), dtype=np.int16)
        interleaved[0, 0::2] = 1000
        interleaved[0, 1::2] = -1000
        frame = AudioFrame.from_ndarray(interleaved, format="s16", layout="stereo")
        frame.sample_rate = 48000

        chunk = await TrackAudioSource(_FrameTrack(frame)).next_chunk()

        assert chunk is not None
        assert chunk.shape == (2, 1024)
        assert (chunk[0] == 1000).all()
        assert (chunk[1] == -1000).all()
        # Противофазные каналы в сумме дают тишину
        assert max(magnitude_spectrum(chunk, 256)) == 0.0

    asyncio.run(_run_test())
