import asyncio
import fractions
import logging
import time

import cv2
from aiortc import MediaStreamTrack
from aiortc.mediastreams import MediaStreamError
from av import VideoFrame

from aidetect.errors import SourceUnavailableError

logger = logging.getLogger(__name__)

PTS_CLOCK_HZ = 90000


class OpenCvCameraTrack(MediaStreamTrack):
    """
    Video track reading a local camera through OpenCV.

    Used for ``camera`` sources; screen/window/tab/audio go through
    ``MediaPlayer``. Frames are RGB ``VideoFrame`` objects paced to
    ``frame_rate``.
    """

    kind = "video"

    def __init__(
        self,
        camera_index: int,
        width: int | None = None,
        height: int | None = None,
        frame_rate: int = 30,
    ) -> None:
        super().__init__()
        self._start_time: float | None = None
        self._frame_rate = frame_rate
        self._size = (width, height) if width and height else None

        self._cap = cv2.VideoCapture(camera_index)
        if not self._cap.isOpened():
            self._cap.release()
            raise SourceUnavailableError(f"failed to open camera at index {camera_index}")

    async def recv(self) -> VideoFrame:
        if self._start_time is None:
            self._start_time = time.time()

        while True:
            if self.readyState != "live":
                raise MediaStreamError

            # Control frame rate
            await asyncio.sleep(1 / self._frame_rate)

            ret, frame = await asyncio.to_thread(self._cap.read)
            if ret and frame is not None:
                break

        frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        if self._size is not None:
            frame = cv2.resize(frame, self._size)

        elapsed = time.time() - self._start_time
        video_frame = VideoFrame.from_ndarray(frame, format="rgb24")
        video_frame.pts = int(elapsed * PTS_CLOCK_HZ)
        video_frame.time_base = fractions.Fraction(1, PTS_CLOCK_HZ)
        return video_frame

    def stop(self) -> None:
        super().stop()
        self._cap.release()
        logger.info("Camera track stopped")
