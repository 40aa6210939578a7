"""Webcam capture + MediaPipe FaceLandmarker pose detector.

Provides CameraCapture, which wraps cv2.VideoCapture and MediaPipe
FaceLandmarker (Tasks API) and reports the pose landmarks of the first face
in each frame.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Optional

import cv2
import mediapipe as mp
import numpy as np
from mediapipe.tasks.python import BaseOptions
from mediapipe.tasks.python.vision import (
    FaceLandmarker,
    FaceLandmarkerOptions,
    RunningMode,
)

from flowstate.camera.landmarks import to_face_landmarks
from flowstate.config import FACE_LANDMARKER
from flowstate.scoring.pose import FaceLandmarks

# FaceLandmarker configuration
_NUM_FACES = 1
_MIN_DETECTION_CONFIDENCE = 0.5
_MIN_TRACKING_CONFIDENCE = 0.5

# Camera defaults
DEFAULT_WIDTH = 640
DEFAULT_HEIGHT = 480
DEFAULT_CAMERA_INDEX = 0

# Mean pixel value below which a frame is treated as covered / lid closed
DARK_FRAME_BRIGHTNESS_THRESHOLD = 15

_MODEL_DOWNLOAD_URL = (
    "https://storage.googleapis.com/mediapipe-models/"
    "face_landmarker/face_landmarker/float16/1/face_landmarker.task"
)


def is_frame_too_dark(
    frame: np.ndarray, threshold: int = DARK_FRAME_BRIGHTNESS_THRESHOLD,
) -> bool:
    """Whether a BGR frame is too dark for face detection to mean anything."""
    return float(np.mean(frame)) < threshold


class CameraCapture:
    """Webcam + FaceLandmarker pipeline.

    Usage:
        with CameraCapture() as cam:
            landmarks = cam.read_landmarks()
    """

    def __init__(
        self,
        camera_index: int = DEFAULT_CAMERA_INDEX,
        width: int = DEFAULT_WIDTH,
        height: int = DEFAULT_HEIGHT,
        model_path: Optional[str] = None,
    ) -> None:
        self._camera_index = camera_index
        self._width = width
        self._height = height
        self._model_path = Path(model_path) if model_path else FACE_LANDMARKER
        self._cap: Optional[cv2.VideoCapture] = None
        self._landmarker: Optional[FaceLandmarker] = None
        self._last_timestamp_ms: int = 0

    def __enter__(self) -> CameraCapture:
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    def open(self) -> None:
        """Open camera and initialize FaceLandmarker."""
        if self._cap is not None:
            return

        if not self._model_path.exists():
            raise RuntimeError(
                f"FaceLandmarker model not found at {self._model_path}. "
                f"Download it with: curl -L -o {self._model_path} "
                f'"{_MODEL_DOWNLOAD_URL}"'
            )

        cap = cv2.VideoCapture(self._camera_index)
        if not cap.isOpened():
            cap.release()
            raise RuntimeError(
                f"Failed to open camera at index {self._camera_index}. "
                "Check the browser or OS camera permission."
            )

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self._width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self._height)

        options = FaceLandmarkerOptions(
            base_options=BaseOptions(model_asset_path=str(self._model_path)),
            running_mode=RunningMode.VIDEO,
            num_faces=_NUM_FACES,
            min_face_detection_confidence=_MIN_DETECTION_CONFIDENCE,
            min_tracking_confidence=_MIN_TRACKING_CONFIDENCE,
        )
        self._landmarker = FaceLandmarker.create_from_options(options)
        self._cap = cap
        self._last_timestamp_ms = 0

    def close(self) -> None:
        """Release camera and FaceLandmarker resources."""
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None

        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def read_landmarks(self) -> Optional[FaceLandmarks]:
        """Capture a frame and detect the pose landmarks.

        Returns:
            FaceLandmarks of the first face, or None if no face was found.

        Raises:
            RuntimeError: If camera is not opened or frame capture fails.
        """
        if self._cap is None or self._landmarker is None:
            raise RuntimeError("Camera not opened. Call open() or use context manager.")

        ret, frame = self._cap.read()
        if not ret or frame is None:
            raise RuntimeError("Failed to capture frame from camera.")

        # A covered camera is reported as no face
        if is_frame_too_dark(frame):
            return None

        # FaceLandmarker Tasks API expects mp.Image in RGB
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb_frame)

        # VIDEO mode timestamps must strictly increase
        timestamp_ms = max(int(time.monotonic() * 1000), self._last_timestamp_ms + 1)
        self._last_timestamp_ms = timestamp_ms
        result = self._landmarker.detect_for_video(mp_image, timestamp_ms)

        if not result.face_landmarks:
            return None
        height, width = frame.shape[:2]
        return to_face_landmarks(result.face_landmarks[0], width, height)
