"""
Pose scoring for the Kamehameha gesture.

Two independent multi-criterion checks over a labeled hand pair:

- Charging pose (6 criteria): cupped hands close together forming an energy
  sphere between the palms.
- Firing pose (4 criteria): hands pushed out, fingers curved around the sphere,
  wrists rotated inward.

Each criterion is scored independently; a missing keypoint fails only the
criteria that need it. Per-criterion diagnostics go into `PoseScore.details`
and numeric values into `PoseScore.metrics`; nothing here logs or raises.
All distances are in pixels and angles in degrees, in screen space (y down).
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from kamehameha.config.config_manager import Config, dataclass_from_section
from kamehameha.detectors.hand_roles import identify_hands
from kamehameha.detectors.hand_types import (
    FINGER_BASES, FINGERTIPS, INDEX_TIP, MIDDLE_TIP, THUMB_TIP, WRIST,
    Hand, LabeledHandPair, PoseScore,
)
from kamehameha.utils.math_utils import (
    angle_between_deg, distance_point_to_segment, euclidean, heading_deg, midpoint,
)


# Charging criteria, in scoring order
WRIST_SEPARATION = 'wrist_separation'
V_FORMATION = 'v_formation'
PALM_ORIENTATION = 'palm_orientation'
WRIST_ROTATION = 'wrist_rotation'
FINGER_SPREAD = 'finger_spread'
ENERGY_FUNNEL = 'energy_funnel'
CHARGING_CRITERIA = (
    WRIST_SEPARATION, V_FORMATION, PALM_ORIENTATION,
    WRIST_ROTATION, FINGER_SPREAD, ENERGY_FUNNEL,
)

# Firing criteria
FINGERS_CURVED = 'fingers_curved'
HANDS_ALIGNED = 'hands_aligned'
WRISTS_ROTATED_INWARD = 'wrists_rotated_inward'
ENERGY_SPHERE_FORMATION = 'energy_sphere_formation'
FIRING_CRITERIA = (
    FINGERS_CURVED, HANDS_ALIGNED, WRISTS_ROTATED_INWARD, ENERGY_SPHERE_FORMATION,
)


@dataclass(frozen=True)
class ChargingPoseThresholds:
    min_wrist_distance: float = 30.0
    max_wrist_distance: float = 120.0
    min_v_angle: float = 120.0
    max_v_angle: float = 180.0
    max_palm_angle: float = 45.0
    left_thumb_angle_range: Tuple[float, float] = (90.0, 150.0)
    right_thumb_angle_range: Tuple[float, float] = (30.0, 90.0)
    min_finger_spread: float = 100.0
    min_finger_intensity: float = 0.7
    spread_normalizer: float = 150.0
    extension_normalizer: float = 80.0
    funnel_distance_ratio: float = 1.2
    max_funnel_angle: float = 45.0
    funnel_excellent_angle: float = 20.0
    funnel_good_angle: float = 35.0
    sphere_wrist_blend: float = 0.3
    min_score: int = 2

    @classmethod
    def from_config(cls, cfg: Optional[Config] = None) -> 'ChargingPoseThresholds':
        return dataclass_from_section(cls, 'charging_pose', cfg)


@dataclass(frozen=True)
class FiringPoseThresholds:
    expected_curl_distance: float = 40.0
    curl_tolerance: float = 20.0
    max_vertical_offset: float = 30.0
    min_hand_distance: float = 80.0
    max_hand_distance: float = 200.0
    left_inward_angle_range: Tuple[float, float] = (-45.0, 45.0)
    right_inward_min_abs_angle: float = 135.0
    sphere_distance_tolerance: float = 20.0
    min_sphere_radius: float = 30.0
    max_sphere_radius: float = 100.0
    sphere_wrist_blend: float = 0.3
    min_score: int = 2

    @classmethod
    def from_config(cls, cfg: Optional[Config] = None) -> 'FiringPoseThresholds':
        return dataclass_from_section(cls, 'firing_pose', cfg)


@dataclass(frozen=True)
class FingerSpread:
    """Spread/extension analysis of one hand."""
    total_spread: float = 0.0
    intensity: float = 0.0
    avg_extension: float = 0.0
    max_extension: float = 0.0
    finger_arch: float = 0.0


@dataclass(frozen=True)
class FunnelAnalysis:
    is_valid: bool
    quality: str
    reason: str
    left_convergence: Optional[float] = None
    right_convergence: Optional[float] = None

    @property
    def avg_convergence(self) -> Optional[float]:
        if self.left_convergence is None or self.right_convergence is None:
            return None
        return (self.left_convergence + self.right_convergence) / 2.0


# Geometry helpers

def energy_sphere_center(pair: LabeledHandPair, wrist_blend: float = 0.3) -> np.ndarray:
    """
    Focal point of the cupped hands.

    The midpoint of each hand's index/middle tips is averaged across both
    hands, then moved `wrist_blend` of the way toward the wrist midpoint.
    Falls back to the wrist midpoint when a fingertip is missing.
    """
    l_wrist, r_wrist = pair.left.point(WRIST), pair.right.point(WRIST)
    wrist_mid = midpoint(l_wrist, r_wrist)

    tips = [pair.left.point(INDEX_TIP), pair.left.point(MIDDLE_TIP),
            pair.right.point(INDEX_TIP), pair.right.point(MIDDLE_TIP)]
    if any(t is None for t in tips):
        return wrist_mid

    finger_mid = midpoint(midpoint(tips[0], tips[1]), midpoint(tips[2], tips[3]))
    return finger_mid + wrist_blend * (wrist_mid - finger_mid)


def finger_arch(hand: Hand) -> float:
    """Mean PIP deviation from the MCP->tip line, relative to its length."""
    arches = []
    for base in FINGER_BASES:
        tip = hand.point(f'{base}_tip')
        pip = hand.point(f'{base}_pip')
        mcp = hand.point(f'{base}_mcp')
        if tip is None or pip is None or mcp is None:
            continue
        straight = float(euclidean(tip, mcp))
        if straight == 0.0:
            continue
        arches.append(distance_point_to_segment(pip, mcp, tip) / straight)
    return float(np.mean(arches)) if arches else 0.0


def finger_spread(hand: Hand, thresholds: Optional[ChargingPoseThresholds] = None) -> FingerSpread:
    """
    Adjacent-fingertip spread (thumb->index->middle->ring->pinky) and
    wrist-to-tip extension of one hand, folded into an intensity in 0..1.
    Returns zeros when any fingertip or the wrist is missing.
    """
    t = thresholds or ChargingPoseThresholds()
    wrist = hand.point(WRIST)
    tips = [hand.point(name) for name in FINGERTIPS]
    if wrist is None or any(p is None for p in tips):
        return FingerSpread()

    tips_arr = np.array(tips)
    total_spread = float(np.sum(euclidean(tips_arr[1:], tips_arr[:-1])))
    extensions = euclidean(tips_arr, wrist)
    avg_extension = float(np.mean(extensions))

    spread_intensity = min(total_spread / t.spread_normalizer, 1.0)
    extension_intensity = min(avg_extension / t.extension_normalizer, 1.0)

    return FingerSpread(
        total_spread=total_spread,
        intensity=(spread_intensity + extension_intensity) / 2.0,
        avg_extension=avg_extension,
        max_extension=float(np.max(extensions)),
        finger_arch=finger_arch(hand),
    )


def analyze_energy_funnel(
    pair: LabeledHandPair,
    sphere_center: np.ndarray,
    thresholds: Optional[ChargingPoseThresholds] = None,
) -> FunnelAnalysis:
    """
    Fingers channel energy toward the sphere when, for both hands, the
    index/middle tips are nearer the center than `funnel_distance_ratio` x the
    wrist distance, and the wrist->index direction is within
    `max_funnel_angle` of the wrist->center direction.
    """
    t = thresholds or ChargingPoseThresholds()
    per_hand = []
    for hand in (pair.left, pair.right):
        wrist = hand.point(WRIST)
        index = hand.point(INDEX_TIP)
        middle = hand.point(MIDDLE_TIP)
        if index is None or middle is None:
            return FunnelAnalysis(False, 'poor', 'missing keypoints')
        wrist_to_center = float(euclidean(wrist, sphere_center))
        limit = wrist_to_center * t.funnel_distance_ratio
        narrows = (float(euclidean(index, sphere_center)) < limit
                   and float(euclidean(middle, sphere_center)) < limit)
        convergence = angle_between_deg(index - wrist, sphere_center - wrist)
        per_hand.append((narrows, convergence))

    (left_narrows, left_conv), (right_narrows, right_conv) = per_hand
    if left_conv is None or right_conv is None:
        return FunnelAnalysis(False, 'poor', 'degenerate finger geometry', left_conv, right_conv)

    if not (left_narrows and right_narrows):
        return FunnelAnalysis(False, 'poor', 'fingers not converging toward sphere', left_conv, right_conv)
    if not (left_conv < t.max_funnel_angle and right_conv < t.max_funnel_angle):
        return FunnelAnalysis(False, 'poor', 'finger direction not aligned with sphere', left_conv, right_conv)

    avg = (left_conv + right_conv) / 2.0
    if avg < t.funnel_excellent_angle:
        quality, reason = 'excellent', 'perfect energy funnel formation'
    elif avg < t.funnel_good_angle:
        quality, reason = 'good', 'strong energy funnel'
    else:
        quality, reason = 'fair', 'moderate energy funnel'
    return FunnelAnalysis(True, quality, reason, left_conv, right_conv)


def _in_range(value: Optional[float], bounds: Tuple[float, float]) -> bool:
    return value is not None and bounds[0] <= value <= bounds[1]


def _fmt(value: Optional[float], unit: str = '') -> str:
    return 'n/a' if value is None else f'{value:.1f}{unit}'


def _mark(ok: bool) -> str:
    return '✓' if ok else '✗'


class _Tally:
    """Accumulates satisfied criteria and their detail lines."""

    def __init__(self):
        self.satisfied: List[str] = []
        self.details: List[str] = []

    def record(self, criterion: str, ok: bool, detail: str) -> bool:
        if ok:
            self.satisfied.append(criterion)
        self.details.append(f'{_mark(ok)} {criterion}: {detail}')
        return ok

    def result(self, min_score: int, metrics: dict) -> PoseScore:
        return PoseScore(
            score=len(self.satisfied),
            satisfied_criteria=frozenset(self.satisfied),
            details=tuple(self.details),
            min_score=min_score,
            metrics=metrics,
        )


def _unidentified(min_score: int) -> PoseScore:
    return PoseScore(0, frozenset(), ('✗ hands: need exactly two hands with wrists',), min_score)


# Charging pose

def score_charging_pose(
    pair: Optional[LabeledHandPair],
    thresholds: Optional[ChargingPoseThresholds] = None,
) -> PoseScore:
    """Score the charging pose (0..6). Valid when score >= `min_score`."""
    t = thresholds or ChargingPoseThresholds()
    if pair is None:
        return _unidentified(t.min_score)

    left, right = pair.left, pair.right
    l_wrist, r_wrist = left.point(WRIST), right.point(WRIST)
    l_index, r_index = left.point(INDEX_TIP), right.point(INDEX_TIP)
    l_thumb, r_thumb = left.point(THUMB_TIP), right.point(THUMB_TIP)
    center = energy_sphere_center(pair, t.sphere_wrist_blend)
    tally = _Tally()
    metrics = {'sphere_center': (float(center[0]), float(center[1]))}

    # 1. Wrists close together but not touching
    wrist_distance = float(euclidean(l_wrist, r_wrist))
    metrics['wrist_distance'] = wrist_distance
    tally.record(
        WRIST_SEPARATION,
        t.min_wrist_distance <= wrist_distance <= t.max_wrist_distance,
        f'{wrist_distance:.1f}px (need {t.min_wrist_distance:.0f}-{t.max_wrist_distance:.0f}px)',
    )

    # 2. V-formation: wrist-to-sphere vectors open wide around the sphere
    l_to_center = center - l_wrist
    r_to_center = center - r_wrist
    v_angle = angle_between_deg(l_to_center, r_to_center)
    metrics['v_angle'] = v_angle
    tally.record(
        V_FORMATION,
        _in_range(v_angle, (t.min_v_angle, t.max_v_angle)),
        f'{_fmt(v_angle, "°")} (need {t.min_v_angle:.0f}-{t.max_v_angle:.0f}°)',
    )

    # 3. Palms facing the sphere
    l_palm = r_palm = None
    if l_index is not None and r_index is not None:
        l_palm = angle_between_deg(l_index - l_wrist, l_to_center)
        r_palm = angle_between_deg(r_index - r_wrist, r_to_center)
    metrics['left_palm_angle'] = l_palm
    metrics['right_palm_angle'] = r_palm
    tally.record(
        PALM_ORIENTATION,
        l_palm is not None and r_palm is not None
        and l_palm < t.max_palm_angle and r_palm < t.max_palm_angle,
        f'left {_fmt(l_palm, "°")}, right {_fmt(r_palm, "°")} (need < {t.max_palm_angle:.0f}°)',
    )

    # 4. Wrists rotated outward, read from the thumb heading
    l_rot = heading_deg(l_thumb - l_wrist) if l_thumb is not None else None
    r_rot = heading_deg(r_thumb - r_wrist) if r_thumb is not None else None
    metrics['left_thumb_angle'] = l_rot
    metrics['right_thumb_angle'] = r_rot
    tally.record(
        WRIST_ROTATION,
        _in_range(l_rot, t.left_thumb_angle_range) and _in_range(r_rot, t.right_thumb_angle_range),
        f'left {_fmt(l_rot, "°")}, right {_fmt(r_rot, "°")}',
    )

    # 5. Wide, aggressive finger spread
    l_spread = finger_spread(left, t)
    r_spread = finger_spread(right, t)
    avg_spread = (l_spread.total_spread + r_spread.total_spread) / 2.0
    intensity = (l_spread.intensity + r_spread.intensity) / 2.0
    metrics['avg_finger_spread'] = avg_spread
    metrics['finger_intensity'] = intensity
    metrics['finger_arch'] = (l_spread.finger_arch + r_spread.finger_arch) / 2.0
    tally.record(
        FINGER_SPREAD,
        avg_spread > t.min_finger_spread and intensity > t.min_finger_intensity,
        f'{avg_spread:.1f}px intensity {intensity:.2f} '
        f'(need > {t.min_finger_spread:.0f}px and > {t.min_finger_intensity:.2f})',
    )

    # 6. Fingers funnel energy toward the sphere
    funnel = analyze_energy_funnel(pair, center, t)
    metrics['funnel_convergence'] = funnel.avg_convergence
    metrics['funnel_quality'] = funnel.quality if funnel.is_valid else 'poor'
    tally.record(
        ENERGY_FUNNEL,
        funnel.is_valid,
        f'{_fmt(funnel.avg_convergence, "°")} convergence ({funnel.quality if funnel.is_valid else funnel.reason})',
    )

    return tally.result(t.min_score, metrics)


# Firing pose

def _mean_curl_distance(hand: Hand) -> Optional[float]:
    distances = []
    for base in FINGER_BASES:
        tip = hand.point(f'{base}_tip')
        mcp = hand.point(f'{base}_mcp')
        if tip is not None and mcp is not None:
            distances.append(float(euclidean(tip, mcp)))
    return float(np.mean(distances)) if distances else None


def score_firing_pose(
    pair: Optional[LabeledHandPair],
    thresholds: Optional[FiringPoseThresholds] = None,
) -> PoseScore:
    """Score the firing pose (0..4). Valid when score >= `min_score`."""
    t = thresholds or FiringPoseThresholds()
    if pair is None:
        return _unidentified(t.min_score)

    left, right = pair.left, pair.right
    l_wrist, r_wrist = left.point(WRIST), right.point(WRIST)
    tally = _Tally()
    metrics = {}

    # Fingers curved around the sphere
    l_curl = _mean_curl_distance(left)
    r_curl = _mean_curl_distance(right)
    metrics['left_curl_distance'] = l_curl
    metrics['right_curl_distance'] = r_curl
    tally.record(
        FINGERS_CURVED,
        l_curl is not None and r_curl is not None
        and abs(l_curl - t.expected_curl_distance) < t.curl_tolerance
        and abs(r_curl - t.expected_curl_distance) < t.curl_tolerance,
        f'left {_fmt(l_curl, "px")}, right {_fmt(r_curl, "px")} '
        f'(need {t.expected_curl_distance:.0f}±{t.curl_tolerance:.0f}px)',
    )

    # Hands level and at pushing distance
    vertical_offset = float(abs(l_wrist[1] - r_wrist[1]))
    hand_distance = float(euclidean(l_wrist, r_wrist))
    metrics['vertical_offset'] = vertical_offset
    metrics['hand_distance'] = hand_distance
    tally.record(
        HANDS_ALIGNED,
        vertical_offset < t.max_vertical_offset
        and t.min_hand_distance < hand_distance < t.max_hand_distance,
        f'offset {vertical_offset:.1f}px, distance {hand_distance:.1f}px',
    )

    # Wrists rotated inward: thumbs point toward each other
    l_thumb, r_thumb = left.point(THUMB_TIP), right.point(THUMB_TIP)
    l_rot = heading_deg(l_thumb - l_wrist) if l_thumb is not None else None
    r_rot = heading_deg(r_thumb - r_wrist) if r_thumb is not None else None
    metrics['left_thumb_angle'] = l_rot
    metrics['right_thumb_angle'] = r_rot
    lo, hi = t.left_inward_angle_range
    tally.record(
        WRISTS_ROTATED_INWARD,
        l_rot is not None and r_rot is not None
        and lo < l_rot < hi and abs(r_rot) > t.right_inward_min_abs_angle,
        f'left {_fmt(l_rot, "°")}, right {_fmt(r_rot, "°")}',
    )

    # Fingertips equidistant from the sphere center
    tips = [left.point(INDEX_TIP), right.point(INDEX_TIP),
            left.point(MIDDLE_TIP), right.point(MIDDLE_TIP)]
    sphere_ok = False
    radius = spread = None
    if all(p is not None for p in tips):
        center = energy_sphere_center(pair, t.sphere_wrist_blend)
        distances = euclidean(np.array(tips), center)
        radius = float(np.mean(distances))
        spread = float(np.max(np.abs(distances - radius)))
        sphere_ok = (spread < t.sphere_distance_tolerance
                     and t.min_sphere_radius < radius < t.max_sphere_radius)
    metrics['sphere_radius'] = radius
    metrics['sphere_max_variance'] = spread
    tally.record(
        ENERGY_SPHERE_FORMATION,
        sphere_ok,
        f'radius {_fmt(radius, "px")}, max deviation {_fmt(spread, "px")}',
    )

    return tally.result(t.min_score, metrics)


# Convenience checks over raw hand lists

def is_in_starting_position(
    hands: Optional[Sequence[Hand]],
    thresholds: Optional[ChargingPoseThresholds] = None,
) -> bool:
    return score_charging_pose(identify_hands(hands), thresholds).is_valid


def is_in_firing_position(
    hands: Optional[Sequence[Hand]],
    thresholds: Optional[FiringPoseThresholds] = None,
) -> bool:
    return score_firing_pose(identify_hands(hands), thresholds).is_valid


__all__ = [
    'CHARGING_CRITERIA',
    'FIRING_CRITERIA',
    'ChargingPoseThresholds',
    'FiringPoseThresholds',
    'FingerSpread',
    'FunnelAnalysis',
    'energy_sphere_center',
    'finger_arch',
    'finger_spread',
    'analyze_energy_funnel',
    'score_charging_pose',
    'score_firing_pose',
    'is_in_starting_position',
    'is_in_firing_position',
]
