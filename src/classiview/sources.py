"""Image sources: file uploads, browser snapshots, and a server-attached webcam.

Every source yields the same HxWx3 RGB uint8 array consumed by the classifier.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import threading
from typing import TYPE_CHECKING, Self

import cv2
import numpy as np

from classiview.errors import DeviceError, ImageDecodeError

if TYPE_CHECKING:
    from types import TracebackType

    from numpy.typing import NDArray

    from classiview.ml.preprocessing import ImagePreprocessor

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(?P<mime>image/[\w.+-]+)(?:;[\w-]+=[\w.-]+)*;base64,(?P<data>.*)$", re.DOTALL)


def decode_upload(data: bytes, preprocessor: ImagePreprocessor) -> NDArray[np.uint8]:
    """Decode the bytes of an uploaded image file."""
    return preprocessor.decode_image(data)


def decode_data_url(url: str, preprocessor: ImagePreprocessor) -> NDArray[np.uint8]:
    """Decode a ``data:image/...;base64,`` URL as produced by a browser canvas."""
    match = _DATA_URL_RE.match(url.strip())
    if match is None:
        raise ImageDecodeError("Expected a base64 data:image/... URL")
    try:
        payload = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageDecodeError(f"Invalid base64 image payload: {exc}") from exc
    logger.debug("Decoded %s snapshot (%d bytes)", match.group("mime"), len(payload))
    return preprocessor.decode_image(payload)


class WebcamCapture:
    """Exclusive handle on a local video device.

    Use as a context manager; the device is released on every exit path::

        with WebcamCapture(0) as camera:
            frame = camera.capture()
    """

    def __init__(self, device_index: int, warmup_frames: int = 0) -> None:
        self._device_index = device_index
        self._warmup_frames = warmup_frames
        self._capture: cv2.VideoCapture | None = None

    def __enter__(self) -> Self:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def open(self) -> None:
        """Acquire the video device.

        Raises:
            DeviceError: If the device does not exist or cannot be opened.
        """
        if self._capture is not None:
            return
        capture = cv2.VideoCapture(self._device_index)
        if not capture.isOpened():
            capture.release()
            raise DeviceError(f"Camera {self._device_index} is unavailable")
        self._capture = capture
        logger.info("Opened camera %d", self._device_index)

        # Auto exposure needs a few frames to settle.
        for _ in range(self._warmup_frames):
            capture.grab()

    def capture(self) -> NDArray[np.uint8]:
        """Grab a single frame as an RGB array."""
        if self._capture is None:
            raise DeviceError("Camera is not open")
        ok, frame = self._capture.read()
        if not ok or frame is None:
            raise DeviceError(f"Failed to read a frame from camera {self._device_index}")
        # OpenCV frames are BGR.
        return np.ascontiguousarray(frame[:, :, ::-1], dtype=np.uint8)

    def release(self) -> None:
        """Stop the device. Safe to call more than once."""
        if self._capture is None:
            return
        self._capture.release()
        self._capture = None
        logger.info("Released camera %d", self._device_index)


class WebcamSource:
    """Serializes snapshot requests against a single configured camera."""

    def __init__(self, device_index: int | None, warmup_frames: int = 0) -> None:
        self._device_index = device_index
        self._warmup_frames = warmup_frames
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._device_index is not None

    def snapshot(self) -> NDArray[np.uint8]:
        """Open the camera, take one frame, and release it.

        Raises:
            DeviceError: If no camera is configured or the capture fails.
        """
        if self._device_index is None:
            raise DeviceError("Server webcam is disabled (set CLASSIVIEW_WEBCAM_DEVICE)")
        with self._lock, WebcamCapture(self._device_index, self._warmup_frames) as camera:
            return camera.capture()
