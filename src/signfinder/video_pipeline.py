"""
SignFinder Video Pipeline - Sequential frame reading and performance overlay.

Frames are read synchronously: the detector must finish frame n before
frame n+1 is requested, so there is no capture thread or frame dropping.
"""

import time
from collections import deque
import logging
from typing import Optional, Tuple, Iterator, Union
from dataclasses import dataclass

import cv2
import numpy as np

from .errors import SignFinderError


@dataclass
class FrameMetadata:
    """Metadata for a read frame."""
    timestamp: float
    frame_number: int
    width: int
    height: int
    fps: float


class VideoFileReader:
    """
    Sequential reader for video files (or camera indices).

    Usage:
        with VideoFileReader("walkthrough.mp4") as reader:
            for frame in reader:
                detections = detector.detect(frame)
    """

    def __init__(
        self,
        source: Union[int, str] = 0,
        loop: bool = False,
        resolution: Optional[Tuple[int, int]] = None
    ):
        self.source = source
        self.loop = loop
        self.resolution = resolution

        self._cap: Optional[cv2.VideoCapture] = None
        self._frame_count = 0
        self._total_frames = 0
        self._native_fps = 0.0
        self._width = 0
        self._height = 0

        self.logger = logging.getLogger(__name__)

    def open(self):
        """Open the source. Raises SignFinderError when it cannot be read."""
        self._cap = cv2.VideoCapture(self.source)
        if not self._cap.isOpened():
            raise SignFinderError(f"Unable to load video source: {self.source}")

        if self.resolution:
            self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.resolution[0])
            self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.resolution[1])

        self._width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self._height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self._native_fps = self._cap.get(cv2.CAP_PROP_FPS) or 0.0
        self._total_frames = int(self._cap.get(cv2.CAP_PROP_FRAME_COUNT))
        self._frame_count = 0

        self.logger.info(
            f"Video source opened: {self._width}x{self._height} @ {self._native_fps:.1f}fps"
        )

    def read(self) -> Optional[np.ndarray]:
        """Next frame, or None at the end of the stream."""
        if self._cap is None:
            return None
        ret, frame = self._cap.read()
        if not ret and self.loop and self._frame_count > 0:
            self._cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
            ret, frame = self._cap.read()
        if not ret:
            return None
        self._frame_count += 1
        return frame

    def __iter__(self) -> Iterator[np.ndarray]:
        while True:
            frame = self.read()
            if frame is None:
                return
            yield frame

    def release(self):
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    @property
    def metadata(self) -> FrameMetadata:
        return FrameMetadata(
            timestamp=time.perf_counter(),
            frame_number=self._frame_count,
            width=self._width,
            height=self._height,
            fps=self._native_fps
        )

    @property
    def total_frames(self) -> int:
        return self._total_frames

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


class PerformanceOverlay:
    """Running 'fps = ' counter over the last `history_size` frames, drawn top-left."""

    def __init__(self, history_size: int = 30):
        self._stamps = deque(maxlen=history_size + 1)
        self._latencies = deque(maxlen=history_size)

    def update(self, latency_ms: float = 0.0):
        self._stamps.append(time.perf_counter())
        self._latencies.append(latency_ms)

    def get_fps(self) -> float:
        if len(self._stamps) < 2:
            return 0.0
        elapsed = self._stamps[-1] - self._stamps[0]
        return (len(self._stamps) - 1) / elapsed if elapsed > 0 else 0.0

    def get_latency(self) -> float:
        if not self._latencies:
            return 0.0
        return sum(self._latencies) / len(self._latencies)

    def draw(self, frame: np.ndarray, extra_info: str = "") -> np.ndarray:
        lines = [f"fps = {self.get_fps():.1f}  ({self.get_latency():.0f} ms)"]
        if extra_info:
            lines.append(extra_info)
        for k, text in enumerate(lines):
            cv2.putText(frame, text, (10, 20 + 20 * k),
                        cv2.FONT_HERSHEY_PLAIN, 1.2, (0, 255, 255), 1, cv2.LINE_AA)
        return frame
