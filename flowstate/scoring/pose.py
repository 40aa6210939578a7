"""Geometric head-pose classifier.

Turns four facial landmarks (nose tip, outer eye corners, chin) into a
discrete human-attention state. Runs once per detection tick; pure and
deterministic.

The yaw ratio compares a horizontal nose/left-eye distance with a vertical
nose/right-eye distance. The thresholds below were tuned against that exact
ratio, so it is kept as-is.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class HumanState(str, Enum):
    """Attention label produced by the pose classifier."""

    ABSENT = "ABSENT"
    FOCUSED = "FOCUSED"
    DISTRACTED = "DISTRACTED"
    NOTE_TAKING = "NOTE_TAKING"


@dataclass(frozen=True)
class Point:
    """A 2D landmark position (any consistent unit)."""

    x: float
    y: float


@dataclass(frozen=True)
class FaceLandmarks:
    """The named landmarks the classifier needs."""

    nose: Point
    left_eye: Point
    right_eye: Point
    jaw: Point

    @classmethod
    def from_dict(cls, data: dict) -> FaceLandmarks:
        """Build from {"nose": {"x":..,"y":..}, "left_eye": ..., ...}."""
        return cls(
            nose=Point(**data["nose"]),
            left_eye=Point(**data["left_eye"]),
            right_eye=Point(**data["right_eye"]),
            jaw=Point(**data["jaw"]),
        )


@dataclass(frozen=True)
class PoseThresholds:
    """Sensitivity settings for the classifier.

    Attributes:
        yaw_min: Yaw ratio below this is a head turn.
        yaw_max: Yaw ratio above this is a head turn.
        pitch_min: Pitch ratio below this is looking down.
    """

    yaw_min: float
    yaw_max: float
    pitch_min: float


POSE_PRESETS: dict[str, PoseThresholds] = {
    # Triggers on a slight head turn and when looking at the keyboard
    "sensitive": PoseThresholds(yaw_min=0.46, yaw_max=0.61, pitch_min=0.6),
    # Requires a clear head turn and looking further down
    "relaxed": PoseThresholds(yaw_min=0.3, yaw_max=0.7, pitch_min=0.45),
}


def get_pose_thresholds(preset: str) -> PoseThresholds:
    """Look up a named threshold preset.

    Raises:
        ValueError: If the preset name is unknown.
    """
    try:
        return POSE_PRESETS[preset]
    except KeyError:
        raise ValueError(
            f"Unknown pose preset: {preset!r} (expected one of {sorted(POSE_PRESETS)})"
        ) from None


def yaw_ratio(landmarks: FaceLandmarks) -> float:
    """Left/right turn ratio. About 0.5 when facing the screen."""
    d_left = abs(landmarks.nose.x - landmarks.left_eye.x)
    d_right = abs(landmarks.nose.y - landmarks.right_eye.y)
    return d_left / ((d_left + d_right) or 1)


def pitch_ratio(landmarks: FaceLandmarks) -> float:
    """Up/down tilt ratio. Lower means looking further down."""
    nose_to_jaw = abs(landmarks.jaw.y - landmarks.nose.y)
    face_height = abs(landmarks.jaw.y - landmarks.left_eye.y)
    return nose_to_jaw / (face_height or 1)


def classify_pose(
    landmarks: Optional[FaceLandmarks],
    thresholds: PoseThresholds = POSE_PRESETS["sensitive"],
) -> HumanState:
    """Classify a landmark set into a human-attention state.

    Args:
        landmarks: Landmarks for the detected face, or None if no face was found.
        thresholds: Sensitivity preset.

    Returns:
        ABSENT, DISTRACTED, NOTE_TAKING or FOCUSED, checked in that order.
    """
    if landmarks is None:
        return HumanState.ABSENT

    yaw = yaw_ratio(landmarks)
    if yaw < thresholds.yaw_min or yaw > thresholds.yaw_max:
        return HumanState.DISTRACTED

    if pitch_ratio(landmarks) < thresholds.pitch_min:
        return HumanState.NOTE_TAKING

    return HumanState.FOCUSED
