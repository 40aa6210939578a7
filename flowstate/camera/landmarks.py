"""Map a MediaPipe face mesh to the four points the pose classifier uses.

MediaPipe FaceLandmarker returns 478 points per face, normalized to [0, 1]
by frame width and height. Only the nose tip, the two outer eye corners and
the chin are needed. The yaw ratio mixes an x distance with a y distance,
so the points are scaled back to pixels before classification.
"""

from __future__ import annotations

from typing import Optional, Sequence

from flowstate.scoring.pose import FaceLandmarks, Point

# MediaPipe face mesh indices
NOSE_TIP = 1
LEFT_EYE_OUTER = 33
RIGHT_EYE_OUTER = 263
CHIN = 152

_REQUIRED = max(NOSE_TIP, LEFT_EYE_OUTER, RIGHT_EYE_OUTER, CHIN) + 1


def to_face_landmarks(
    mesh: Optional[Sequence], width: int, height: int,
) -> Optional[FaceLandmarks]:
    """Pick the pose points from a face mesh, in pixel coordinates.

    Args:
        mesh: Sequence of normalized points with .x and .y attributes, or
            None when no face was detected.
        width: Frame width in pixels.
        height: Frame height in pixels.

    Returns:
        FaceLandmarks, or None if there is no face or the mesh is too short.
    """
    if mesh is None or len(mesh) < _REQUIRED:
        return None

    def point(index: int) -> Point:
        lm = mesh[index]
        return Point(x=float(lm.x) * width, y=float(lm.y) * height)

    return FaceLandmarks(
        nose=point(NOSE_TIP),
        left_eye=point(LEFT_EYE_OUTER),
        right_eye=point(RIGHT_EYE_OUTER),
        jaw=point(CHIN),
    )
