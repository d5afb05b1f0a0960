"""
MediaPipe landmarks -> `Hand` records.

Accepts both the legacy solution output (objects with a `.landmark` list) and
the Tasks API output (plain lists of landmarks). Image landmarks are mapped to
pixel floats; world landmarks, when given, become `keypoints_3d` unchanged.
"""

from typing import Iterable, List, Optional, Sequence, Tuple

from kamehameha.detectors.hand_types import KEYPOINT_ORDER, Hand, Keypoint
from kamehameha.utils.math_utils import landmarks_to_array, normalized_to_pixels


def _landmark_list(hand_landmarks) -> Sequence:
    """Unwrap a legacy NormalizedLandmarkList; Tasks API lists pass through."""
    return getattr(hand_landmarks, 'landmark', hand_landmarks)


def _handedness_label(entry) -> Optional[str]:
    if entry is None or isinstance(entry, str):
        return entry
    # legacy: ClassificationList; tasks: list of Category
    classification = getattr(entry, 'classification', entry)
    try:
        first = classification[0]
    except (IndexError, TypeError):
        return None
    return getattr(first, 'label', None) or getattr(first, 'category_name', None)


def hand_from_landmarks(
    hand_landmarks,
    frame_shape: Tuple[int, ...],
    world_landmarks=None,
    handedness: Optional[str] = None,
) -> Hand:
    """Convert one hand's 21 landmarks to a pixel-space `Hand`."""
    points = landmarks_to_array(_landmark_list(hand_landmarks), with_z=True)
    pixels = normalized_to_pixels(points[:, :2], frame_shape, as_int=False)

    keypoints = tuple(
        Keypoint(name=name, x=float(px[0]), y=float(px[1]), z=float(pt[2]))
        for name, px, pt in zip(KEYPOINT_ORDER, pixels, points)
    )

    keypoints_3d = None
    if world_landmarks is not None:
        world = landmarks_to_array(_landmark_list(world_landmarks), with_z=True)
        keypoints_3d = tuple(
            Keypoint(name=name, x=float(w[0]), y=float(w[1]), z=float(w[2]))
            for name, w in zip(KEYPOINT_ORDER, world)
        )

    return Hand(keypoints=keypoints, keypoints_3d=keypoints_3d, handedness=handedness)


def hands_from_landmarks(
    multi_hand_landmarks: Optional[Iterable],
    frame_shape: Tuple[int, ...],
    world_landmarks: Optional[Sequence] = None,
    handedness: Optional[Sequence] = None,
) -> List[Hand]:
    """
    Convert every detected hand of one frame.

    Args:
        multi_hand_landmarks: `results.multi_hand_landmarks` (legacy) or
            `results.hand_landmarks` (Tasks API); None means no hands
        frame_shape: frame shape used for the pixel mapping (height, width, ...)
        world_landmarks: optional parallel world-landmark lists
        handedness: optional parallel handedness entries (labels or MediaPipe
            classification objects)
    """
    if not multi_hand_landmarks:
        return []

    hands = []
    for i, hand_landmarks in enumerate(multi_hand_landmarks):
        world = world_landmarks[i] if world_landmarks is not None and i < len(world_landmarks) else None
        label = _handedness_label(handedness[i]) if handedness is not None and i < len(handedness) else None
        hands.append(hand_from_landmarks(hand_landmarks, frame_shape, world, label))
    return hands


__all__ = [
    'hand_from_landmarks',
    'hands_from_landmarks',
]
