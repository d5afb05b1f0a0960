"""Bounded rolling history of hand-pair positions."""

from dataclasses import dataclass, replace
from typing import Optional, Tuple

import numpy as np

from kamehameha.config.config_manager import Config, config
from kamehameha.detectors.hand_types import WRIST, LabeledHandPair, Point2D
from kamehameha.utils.math_utils import EWMA, euclidean, midpoint


@dataclass(frozen=True)
class HandSample:
    center: Point2D       # wrist midpoint
    left_wrist: Point2D
    right_wrist: Point2D
    distance: float       # wrist-to-wrist, px
    timestamp_ms: float

    @classmethod
    def from_pair(cls, pair: LabeledHandPair, timestamp_ms: float) -> 'HandSample':
        l_wrist = pair.left.point(WRIST)
        r_wrist = pair.right.point(WRIST)
        center = midpoint(l_wrist, r_wrist)
        return cls(
            center=Point2D(float(center[0]), float(center[1])),
            left_wrist=Point2D(float(l_wrist[0]), float(l_wrist[1])),
            right_wrist=Point2D(float(r_wrist[0]), float(r_wrist[1])),
            distance=float(euclidean(l_wrist, r_wrist)),
            timestamp_ms=float(timestamp_ms),
        )


@dataclass(frozen=True)
class HandPositionHistory:
    """
    Immutable ring of the most recent `max_length` samples, oldest first.
    `push` returns a new history; the receiver is never modified.
    """
    samples: Tuple[HandSample, ...] = ()
    max_length: int = 10
    ewma_alpha: float = 0.4

    @classmethod
    def from_config(cls, cfg: Optional[Config] = None) -> 'HandPositionHistory':
        source = cfg if cfg is not None else config
        return cls(
            max_length=int(source.get('position_history', 'max_length', default=10)),
            ewma_alpha=float(source.get('position_history', 'ewma_alpha', default=0.4)),
        )

    def push(self, sample: HandSample) -> 'HandPositionHistory':
        samples = (self.samples + (sample,))[-self.max_length:] if self.max_length > 0 else ()
        return replace(self, samples=samples)

    def record(self, pair: Optional[LabeledHandPair], timestamp_ms: float) -> 'HandPositionHistory':
        if pair is None:
            return self
        return self.push(HandSample.from_pair(pair, timestamp_ms))

    def clear(self) -> 'HandPositionHistory':
        return replace(self, samples=())

    def latest(self) -> Optional[HandSample]:
        return self.samples[-1] if self.samples else None

    def average_center(self) -> Optional[Point2D]:
        if not self.samples:
            return None
        mean = np.mean([s.center for s in self.samples], axis=0)
        return Point2D(float(mean[0]), float(mean[1]))

    def smoothed_center(self, alpha: Optional[float] = None) -> Optional[Point2D]:
        """EWMA of the centers, oldest to newest."""
        if not self.samples:
            return None
        smoother = EWMA(alpha=self.ewma_alpha if alpha is None else alpha)
        value = None
        for s in self.samples:
            value = smoother.update(s.center)
        return Point2D(float(value[0]), float(value[1]))

    def __len__(self) -> int:
        return len(self.samples)
