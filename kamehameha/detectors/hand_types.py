"""
Data model for two-hand gesture recognition.

Hands arrive as lists of named keypoints in pixel space (y grows downward),
optionally with a parallel list of world-space 3D keypoints. Handedness is
not trusted from the producer; it is resolved geometrically (see hand_roles).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, NamedTuple, Optional, Tuple

import numpy as np


# MediaPipe Hand Landmark indices mapped to the keypoint vocabulary
LANDMARK_NAMES = {
    'wrist': 0,
    'thumb_cmc': 1, 'thumb_mcp': 2, 'thumb_ip': 3, 'thumb_tip': 4,
    'index_finger_mcp': 5, 'index_finger_pip': 6, 'index_finger_dip': 7, 'index_finger_tip': 8,
    'middle_finger_mcp': 9, 'middle_finger_pip': 10, 'middle_finger_dip': 11, 'middle_finger_tip': 12,
    'ring_finger_mcp': 13, 'ring_finger_pip': 14, 'ring_finger_dip': 15, 'ring_finger_tip': 16,
    'pinky_mcp': 17, 'pinky_pip': 18, 'pinky_dip': 19, 'pinky_tip': 20,
}
KEYPOINT_ORDER = tuple(sorted(LANDMARK_NAMES, key=LANDMARK_NAMES.get))

WRIST = 'wrist'
THUMB_TIP = 'thumb_tip'
INDEX_TIP = 'index_finger_tip'
MIDDLE_TIP = 'middle_finger_tip'
RING_TIP = 'ring_finger_tip'
PINKY_TIP = 'pinky_tip'

# thumb -> pinky, the order used for adjacent-fingertip spread
FINGERTIPS = (THUMB_TIP, INDEX_TIP, MIDDLE_TIP, RING_TIP, PINKY_TIP)
# the four long fingers, by keypoint prefix (tip/pip/mcp suffixes)
FINGER_BASES = ('index_finger', 'middle_finger', 'ring_finger', 'pinky')


class Point2D(NamedTuple):
    x: float
    y: float


class Vector3D(NamedTuple):
    x: float
    y: float
    z: float


@dataclass(frozen=True)
class Keypoint:
    """A single named landmark. `z` and `score` are optional."""
    name: str
    x: float
    y: float
    z: Optional[float] = None
    score: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict) -> 'Keypoint':
        try:
            name = str(data['name'])
            x = float(data['x'])
            y = float(data['y'])
            z = None if data.get('z') is None else float(data['z'])
            score = None if data.get('score') is None else float(data['score'])
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ValueError(f"Invalid keypoint {data!r}: {e}") from e
        return cls(name=name, x=x, y=y, z=z, score=score)


@dataclass(frozen=True)
class Hand:
    """
    One detected hand: unordered named keypoints (pixel space) plus an
    optional parallel list of 3D world keypoints.
    """
    keypoints: Tuple[Keypoint, ...]
    keypoints_3d: Optional[Tuple[Keypoint, ...]] = None
    handedness: Optional[str] = None  # producer's label, informational only
    score: Optional[float] = None

    def get(self, name: str) -> Optional[Keypoint]:
        # first match wins; uniqueness of names is assumed, not enforced
        for kp in self.keypoints:
            if kp.name == name:
                return kp
        return None

    def get_3d(self, name: str) -> Optional[Keypoint]:
        if not self.keypoints_3d:
            return None
        for kp in self.keypoints_3d:
            if kp.name == name:
                return kp
        return None

    def point(self, name: str) -> Optional[np.ndarray]:
        """2D position of `name` as a float array, or None when missing."""
        kp = self.get(name)
        if kp is None:
            return None
        return np.array([kp.x, kp.y], dtype=float)

    def point_3d(self, name: str) -> Optional[np.ndarray]:
        kp = self.get_3d(name)
        if kp is None:
            return None
        return np.array([kp.x, kp.y, kp.z or 0.0], dtype=float)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Hand':
        """Build a Hand from the producer's dictionary shape.

        Expected keys: `keypoints` (list of {name, x, y, z?, score?}),
        optional `keypoints3D`, `handedness` and `score`.
        """
        if not isinstance(data, dict) or not isinstance(data.get('keypoints'), list):
            raise ValueError("hand record must be a dict with a 'keypoints' list")
        keypoints = tuple(Keypoint.from_dict(kp) for kp in data['keypoints'])
        raw_3d = data.get('keypoints3D')
        if raw_3d is not None and not isinstance(raw_3d, list):
            raise ValueError("'keypoints3D' must be a list")
        keypoints_3d = None if raw_3d is None else tuple(Keypoint.from_dict(kp) for kp in raw_3d)
        score = data.get('score')
        try:
            score = None if score is None else float(score)
        except (TypeError, ValueError) as e:
            raise ValueError(f"invalid hand score {score!r}") from e
        return cls(
            keypoints=keypoints,
            keypoints_3d=keypoints_3d,
            handedness=data.get('handedness'),
            score=score,
        )


@dataclass(frozen=True)
class LabeledHandPair:
    """Two hands with resolved roles. Both are guaranteed to expose a wrist."""
    left: Hand
    right: Hand


@dataclass(frozen=True)
class PoseScore:
    """Result of a multi-criterion pose check."""
    score: int
    satisfied_criteria: FrozenSet[str]
    details: Tuple[str, ...]
    min_score: int
    metrics: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_valid(self) -> bool:
        return self.score >= self.min_score

    def satisfied(self, criterion: str) -> bool:
        return criterion in self.satisfied_criteria


class BeamMethod(str, Enum):
    DEFAULT = 'default'
    FINGER_CONVERGENCE = 'finger_convergence'
    PALM_FACING = 'palm_facing'
    PERPENDICULAR_WRIST = 'perpendicular_wrist'
    ORIGIN_TO_MIDPOINT = 'origin-to-midpoint'


@dataclass(frozen=True)
class BeamDirection:
    angle: float          # radians, atan2 of `vector`
    vector: Point2D       # 2-D unit vector
    origin: Point2D
    method: BeamMethod = BeamMethod.DEFAULT
    vector_3d: Optional[Vector3D] = None

    def endpoint(self, length: float = 1000.0) -> Point2D:
        return Point2D(self.origin.x + self.vector.x * length,
                       self.origin.y + self.vector.y * length)

    def as_dict(self) -> Dict:
        data = {
            'angle': self.angle,
            'vector': {'x': self.vector.x, 'y': self.vector.y},
            'origin': {'x': self.origin.x, 'y': self.origin.y},
            'method': self.method.value,
        }
        if self.vector_3d is not None:
            data['vector3D'] = {'x': self.vector_3d.x, 'y': self.vector_3d.y, 'z': self.vector_3d.z}
        return data


# Flat horizontal right, no depth
DEFAULT_BEAM = BeamDirection(
    angle=0.0,
    vector=Point2D(1.0, 0.0),
    origin=Point2D(0.0, 0.0),
    method=BeamMethod.DEFAULT,
    vector_3d=Vector3D(1.0, 0.0, 0.0),
)


def hands_from_dicts(records: List[Dict]) -> List[Hand]:
    return [Hand.from_dict(r) for r in records]


__all__ = [
    'LANDMARK_NAMES',
    'KEYPOINT_ORDER',
    'FINGERTIPS',
    'FINGER_BASES',
    'Point2D',
    'Vector3D',
    'Keypoint',
    'Hand',
    'LabeledHandPair',
    'PoseScore',
    'BeamMethod',
    'BeamDirection',
    'DEFAULT_BEAM',
    'hands_from_dicts',
]
