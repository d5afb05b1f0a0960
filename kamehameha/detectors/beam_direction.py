"""
Beam direction estimation.

Two independent estimators over a labeled hand pair:

- `estimate_lock_in_direction`: one-shot aim taken when charging turns into
  firing. Tries finger convergence, then palm facing, then falls back to a
  direction perpendicular to the wrist axis, which always succeeds.
- `estimate_continuous_direction`: per-frame aim while firing, from the wrist
  midpoint toward the middle-fingertip midpoint.

Every normalization is guarded; degenerate geometry yields a default unit
vector instead of NaN.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from kamehameha.config.config_manager import Config, dataclass_from_section
from kamehameha.detectors.hand_types import (
    DEFAULT_BEAM, INDEX_TIP, MIDDLE_TIP, WRIST,
    BeamDirection, BeamMethod, LabeledHandPair, Point2D, Vector3D,
)
from kamehameha.detectors.pose_scoring import energy_sphere_center
from kamehameha.utils.math_utils import midpoint, safe_unit


LOCK_IN_DEFAULT_VECTOR = (1.0, 0.0)
CONTINUOUS_DEFAULT_VECTOR = (0.0, -1.0)  # straight up


@dataclass(frozen=True)
class BeamSettings:
    mirror_x: bool = False
    video_width: float = 640.0
    forward_vector: Tuple[float, float] = (1.0, 0.0)
    min_convergence_magnitude: float = 10.0
    min_wrist_axis_length: float = 10.0
    sphere_wrist_blend: float = 0.3
    beam_length: float = 1000.0

    @classmethod
    def from_config(cls, cfg: Optional[Config] = None) -> 'BeamSettings':
        return dataclass_from_section(cls, 'beam_direction', cfg)


def _point(v) -> Point2D:
    return Point2D(float(v[0]), float(v[1]))


def _orient_forward(v: np.ndarray, forward) -> np.ndarray:
    """Negate `v` when it points more than 90 degrees away from `forward`."""
    if float(np.dot(v, np.asarray(forward, dtype=float))) < 0.0:
        return -v
    return v


def _finger_vector(hand, keypoint_getter) -> Optional[np.ndarray]:
    """Mean of wrist->index-tip and wrist->middle-tip for one hand."""
    wrist = keypoint_getter(hand, WRIST)
    middle = keypoint_getter(hand, MIDDLE_TIP)
    if wrist is None or middle is None:
        return None
    index = keypoint_getter(hand, INDEX_TIP)
    if index is None:
        return middle - wrist
    return ((middle - wrist) + (index - wrist)) / 2.0


def finger_convergence_vector(pair: LabeledHandPair, settings: BeamSettings) -> Optional[np.ndarray]:
    """
    Unit vector of where both hands' fingers point, oriented forward.
    None when a keypoint is missing or the combined vector is shorter than
    `min_convergence_magnitude`.
    """
    left = _finger_vector(pair.left, lambda h, n: h.point(n))
    right = _finger_vector(pair.right, lambda h, n: h.point(n))
    if left is None or right is None:
        return None
    combined = (left + right) / 2.0
    if float(np.linalg.norm(combined)) < settings.min_convergence_magnitude:
        return None
    return _orient_forward(safe_unit(combined, LOCK_IN_DEFAULT_VECTOR), settings.forward_vector)


def palm_facing_vector(pair: LabeledHandPair, settings: BeamSettings) -> Optional[np.ndarray]:
    """
    Beam leaves the backs of the palms: the negated mean wrist->finger
    direction, oriented forward. Fingers are the index/middle tip midpoint,
    or the middle tip alone unless both hands have an index tip. None when a
    middle tip is missing or the vector has zero length.
    """
    hands = (pair.left, pair.right)
    if any(hand.point(MIDDLE_TIP) is None for hand in hands):
        return None
    use_index = all(hand.point(INDEX_TIP) is not None for hand in hands)

    per_hand = []
    for hand in hands:
        fingers = hand.point(MIDDLE_TIP)
        if use_index:
            fingers = midpoint(hand.point(INDEX_TIP), fingers)
        per_hand.append(fingers - hand.point(WRIST))

    direction = -(per_hand[0] + per_hand[1]) / 2.0
    if float(np.linalg.norm(direction)) == 0.0:
        return None
    return _orient_forward(safe_unit(direction, LOCK_IN_DEFAULT_VECTOR), settings.forward_vector)


def perpendicular_wrist_vector(pair: LabeledHandPair) -> np.ndarray:
    """Wrist axis rotated 90 degrees; clockwise when the axis is within 90 degrees of +x."""
    axis = pair.right.point(WRIST) - pair.left.point(WRIST)
    if abs(np.arctan2(axis[1], axis[0])) < np.pi / 2:
        perpendicular = np.array([-axis[1], axis[0]])
    else:
        perpendicular = np.array([axis[1], -axis[0]])
    return safe_unit(perpendicular, LOCK_IN_DEFAULT_VECTOR)


def direction_3d(pair: LabeledHandPair, vector_2d) -> Vector3D:
    """
    3D finger-convergence direction when both hands carry world keypoints
    for wrist, index and middle tips; otherwise the 2D vector with z = 0.
    """
    left = _finger_vector(pair.left, lambda h, n: h.point_3d(n))
    right = _finger_vector(pair.right, lambda h, n: h.point_3d(n))
    if left is not None and right is not None:
        combined = (left + right) / 2.0
        if float(np.linalg.norm(combined)) > 0.0:
            v = safe_unit(combined, (vector_2d[0], vector_2d[1], 0.0))
            return Vector3D(float(v[0]), float(v[1]), float(v[2]))
    return Vector3D(float(vector_2d[0]), float(vector_2d[1]), 0.0)


def estimate_lock_in_direction(
    pair: Optional[LabeledHandPair],
    settings: Optional[BeamSettings] = None,
) -> BeamDirection:
    """One-shot beam aim for the charging -> firing transition."""
    s = settings or BeamSettings()
    if pair is None:
        return DEFAULT_BEAM

    l_wrist, r_wrist = pair.left.point(WRIST), pair.right.point(WRIST)
    wrist_mid = midpoint(l_wrist, r_wrist)
    if float(np.linalg.norm(r_wrist - l_wrist)) < s.min_wrist_axis_length:
        # wrists nearly coincide; no usable axis
        return BeamDirection(
            angle=0.0,
            vector=Point2D(*LOCK_IN_DEFAULT_VECTOR),
            origin=_point(wrist_mid),
            method=BeamMethod.DEFAULT,
            vector_3d=Vector3D(LOCK_IN_DEFAULT_VECTOR[0], LOCK_IN_DEFAULT_VECTOR[1], 0.0),
        )

    vector = finger_convergence_vector(pair, s)
    method = BeamMethod.FINGER_CONVERGENCE
    if vector is None:
        vector = palm_facing_vector(pair, s)
        method = BeamMethod.PALM_FACING
    if vector is None:
        vector = perpendicular_wrist_vector(pair)
        method = BeamMethod.PERPENDICULAR_WRIST

    origin = energy_sphere_center(pair, s.sphere_wrist_blend)
    return BeamDirection(
        angle=float(np.arctan2(vector[1], vector[0])),
        vector=_point(vector),
        origin=_point(origin),
        method=method,
        vector_3d=direction_3d(pair, vector),
    )


def estimate_continuous_direction(
    pair: Optional[LabeledHandPair],
    settings: Optional[BeamSettings] = None,
) -> BeamDirection:
    """
    Per-frame beam aim: wrist midpoint -> middle-fingertip midpoint.

    With `mirror_x` set, x coordinates are reflected around `video_width`
    before the vector is taken.
    """
    s = settings or BeamSettings()
    if pair is None:
        return DEFAULT_BEAM

    l_wrist, r_wrist = pair.left.point(WRIST), pair.right.point(WRIST)
    l_middle, r_middle = pair.left.point(MIDDLE_TIP), pair.right.point(MIDDLE_TIP)
    if l_middle is None or r_middle is None:
        return DEFAULT_BEAM

    points = np.array([l_wrist, r_wrist, l_middle, r_middle])
    if s.mirror_x:
        points[:, 0] = s.video_width - points[:, 0]

    origin = midpoint(points[0], points[1])
    target = midpoint(points[2], points[3])
    vector = safe_unit(target - origin, CONTINUOUS_DEFAULT_VECTOR)

    return BeamDirection(
        angle=float(np.arctan2(vector[1], vector[0])),
        vector=_point(vector),
        origin=_point(origin),
        method=BeamMethod.ORIGIN_TO_MIDPOINT,
        vector_3d=Vector3D(float(vector[0]), float(vector[1]), 0.0),
    )


__all__ = [
    'BeamSettings',
    'finger_convergence_vector',
    'palm_facing_vector',
    'perpendicular_wrist_vector',
    'direction_3d',
    'estimate_lock_in_direction',
    'estimate_continuous_direction',
]
