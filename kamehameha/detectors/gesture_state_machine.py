"""
Kamehameha gesture state machine.

    idle -> positioning -> charging -> firing -> idle

The transition logic is a pure reducer:

    step(state, hands, now_ms, ...) -> (new_state, output, events)

`DetectorState` is immutable; every call returns a fresh one together with the
per-frame `GestureOutput` and the list of `TransitionEvent`s the frame caused
(zero or one). `KamehamehaDetector` wraps the reducer for callers that want an
object: it owns the current state, queues events, and notifies listeners only
after the reducer has returned.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from kamehameha.config.config_manager import Config, dataclass_from_section
from kamehameha.detectors.beam_direction import (
    BeamSettings, estimate_continuous_direction, estimate_lock_in_direction,
)
from kamehameha.detectors.hand_roles import identify_hands
from kamehameha.detectors.hand_types import DEFAULT_BEAM, BeamDirection, BeamMethod, Hand, Point2D, PoseScore
from kamehameha.detectors.pose_scoring import (
    ChargingPoseThresholds, FiringPoseThresholds,
    energy_sphere_center, score_charging_pose, score_firing_pose,
)
from kamehameha.detectors.position_history import HandPositionHistory, HandSample

logger = logging.getLogger(__name__)


class GesturePhase(str, Enum):
    IDLE = 'idle'
    POSITIONING = 'positioning'
    CHARGING = 'charging'
    FIRING = 'firing'


# Transition reasons
NO_HANDS = 'no_hands'
POSE_DETECTED = 'pose_detected'
POSITION_HELD = 'position_held'
LOST_POSITION = 'lost_position'
MAX_CHARGE_REACHED = 'max_charge_reached'
THRUST_DETECTED = 'thrust_detected'
DURATION_LIMIT = 'duration_limit'
FRAME_LIMIT = 'frame_limit'
STABILITY_THRESHOLD = 'stability_threshold'
RESET = 'reset'


@dataclass(frozen=True)
class GestureTimings:
    """Frame counts and durations (ms) that gate the transitions."""
    positioning_frames: int = 15
    min_charging_ms: float = 5000.0
    max_charging_ms: float = 20000.0
    max_firing_ms: float = 15000.0
    min_firing_ms: float = 1875.0
    max_firing_frames: int = 120
    firing_stability_threshold: int = 5

    @classmethod
    def from_config(cls, cfg: Optional[Config] = None) -> 'GestureTimings':
        return dataclass_from_section(cls, 'state_machine', cfg)

    def allowed_firing_duration(self, charging_duration_ms: float) -> float:
        """Firing time earned by a charge: linear in charge, with a floor."""
        ratio = min(charging_duration_ms / self.max_charging_ms, 1.0)
        return max(self.min_firing_ms, ratio * self.max_firing_ms)


@dataclass(frozen=True)
class DetectorState:
    phase: GesturePhase = GesturePhase.IDLE
    phase_entered_at: float = 0.0
    charging_duration_ms: float = 0.0
    allowed_firing_duration_ms: float = 0.0
    firing_started_at: float = 0.0
    positioning_frame_count: int = 0
    firing_frame_count: int = 0
    firing_invalid_streak: int = 0
    last_beam_direction: BeamDirection = DEFAULT_BEAM
    charging_position: Optional[HandSample] = None
    position_history: HandPositionHistory = field(default_factory=HandPositionHistory)

    @classmethod
    def initial(cls, history_length: int = 10) -> 'DetectorState':
        return cls(position_history=HandPositionHistory(max_length=history_length))


@dataclass(frozen=True)
class GestureOutput:
    """Per-frame telemetry."""
    state: GesturePhase
    charging_duration: float
    charging_progress: float
    firing_frame_count: int
    firing_direction: BeamDirection
    energy_sphere_center: Optional[Point2D]   # only while charging
    allowed_firing_duration: float
    current_firing_duration: float
    firing_progress: float
    charging_pose: Optional[PoseScore] = None
    firing_pose: Optional[PoseScore] = None

    def as_dict(self) -> Dict:
        center = self.energy_sphere_center
        return {
            'state': self.state.value,
            'chargingDuration': self.charging_duration,
            'chargingProgress': self.charging_progress,
            'firingFrameCount': self.firing_frame_count,
            'firingDirection': self.firing_direction.as_dict(),
            'energySphereCenter': None if center is None else {'x': center.x, 'y': center.y},
            'allowedFiringDuration': self.allowed_firing_duration,
            'currentFiringDuration': self.current_firing_duration,
            'firingProgress': self.firing_progress,
        }


@dataclass(frozen=True)
class TransitionEvent:
    previous: GesturePhase
    current: GesturePhase
    timestamp_ms: float
    reason: str
    telemetry: GestureOutput


def _to_idle(state: DetectorState, history: HandPositionHistory) -> DetectorState:
    # every counter and timer goes; the last beam survives until reset()
    return DetectorState(
        last_beam_direction=state.last_beam_direction,
        position_history=history,
    )


def _output(
    state: DetectorState,
    now: float,
    timings: GestureTimings,
    sphere_center: Optional[Point2D],
    charging_pose: Optional[PoseScore],
    firing_pose: Optional[PoseScore],
) -> GestureOutput:
    firing = state.phase == GesturePhase.FIRING
    elapsed = now - state.firing_started_at if firing else 0.0
    progress = 0.0
    if firing and state.allowed_firing_duration_ms > 0:
        progress = min(elapsed / state.allowed_firing_duration_ms, 1.0)
    return GestureOutput(
        state=state.phase,
        charging_duration=state.charging_duration_ms,
        charging_progress=min(state.charging_duration_ms / timings.max_charging_ms, 1.0),
        firing_frame_count=state.firing_frame_count,
        firing_direction=state.last_beam_direction,
        energy_sphere_center=sphere_center if state.phase == GesturePhase.CHARGING else None,
        allowed_firing_duration=state.allowed_firing_duration_ms,
        current_firing_duration=elapsed,
        firing_progress=progress,
        charging_pose=charging_pose,
        firing_pose=firing_pose,
    )


def step(
    state: DetectorState,
    hands: Optional[Sequence[Hand]],
    now: float,
    timings: Optional[GestureTimings] = None,
    charging_thresholds: Optional[ChargingPoseThresholds] = None,
    firing_thresholds: Optional[FiringPoseThresholds] = None,
    beam_settings: Optional[BeamSettings] = None,
) -> Tuple[DetectorState, GestureOutput, List[TransitionEvent]]:
    """
    Advance the detector by one frame.

    Args:
        state: state returned by the previous call (or `DetectorState.initial()`)
        hands: hands detected this frame; anything but exactly two forces idle
        now: frame timestamp in ms, non-decreasing across calls

    Returns:
        (new_state, output, events)
    """
    timings = timings or GestureTimings()
    charging_thresholds = charging_thresholds or ChargingPoseThresholds()
    firing_thresholds = firing_thresholds or FiringPoseThresholds()
    beam_settings = beam_settings or BeamSettings()

    previous = state.phase
    charging_pose = firing_pose = None
    sphere_center = None
    reason = None

    if not hands or len(hands) != 2:
        new_state = _to_idle(state, state.position_history)
        reason = NO_HANDS
    else:
        pair = identify_hands(hands)
        history = state.position_history.record(pair, now)
        if pair is not None:
            center = energy_sphere_center(pair, charging_thresholds.sphere_wrist_blend)
            sphere_center = Point2D(float(center[0]), float(center[1]))

        if previous == GesturePhase.IDLE:
            charging_pose = score_charging_pose(pair, charging_thresholds)
            if charging_pose.is_valid:
                new_state = replace(
                    state,
                    phase=GesturePhase.POSITIONING,
                    phase_entered_at=now,
                    positioning_frame_count=1,
                    position_history=history,
                )
                reason = POSE_DETECTED
            else:
                new_state = replace(state, position_history=history)

        elif previous == GesturePhase.POSITIONING:
            charging_pose = score_charging_pose(pair, charging_thresholds)
            if charging_pose.is_valid:
                count = state.positioning_frame_count + 1
                if count >= timings.positioning_frames:
                    new_state = replace(
                        state,
                        phase=GesturePhase.CHARGING,
                        phase_entered_at=now,
                        charging_duration_ms=0.0,
                        positioning_frame_count=count,
                        charging_position=history.latest(),
                        position_history=history,
                    )
                    reason = POSITION_HELD
                else:
                    new_state = replace(state, positioning_frame_count=count, position_history=history)
            else:
                new_state = _to_idle(state, history)
                reason = LOST_POSITION

        elif previous == GesturePhase.CHARGING:
            charging_pose = score_charging_pose(pair, charging_thresholds)
            if charging_pose.is_valid:
                duration = now - state.phase_entered_at
                if duration >= timings.max_charging_ms:
                    new_state = _to_idle(state, history)
                    reason = MAX_CHARGE_REACHED
                else:
                    new_state = replace(state, charging_duration_ms=duration, position_history=history)
            else:
                firing_pose = score_firing_pose(pair, firing_thresholds)
                if firing_pose.is_valid and state.charging_duration_ms >= timings.min_charging_ms:
                    new_state = replace(
                        state,
                        phase=GesturePhase.FIRING,
                        phase_entered_at=now,
                        firing_started_at=now,
                        allowed_firing_duration_ms=timings.allowed_firing_duration(state.charging_duration_ms),
                        firing_frame_count=1,
                        firing_invalid_streak=0,
                        last_beam_direction=estimate_lock_in_direction(pair, beam_settings),
                        position_history=history,
                    )
                    reason = THRUST_DETECTED
                else:
                    new_state = _to_idle(state, history)
                    reason = LOST_POSITION

        else:  # firing
            firing_pose = score_firing_pose(pair, firing_thresholds)
            count = state.firing_frame_count + 1
            if firing_pose.is_valid:
                beam = estimate_continuous_direction(pair, beam_settings)
                if beam.method == BeamMethod.DEFAULT:
                    # no fingertips to aim with this frame
                    beam = state.last_beam_direction
                new_state = replace(
                    state,
                    firing_invalid_streak=0,
                    firing_frame_count=count,
                    last_beam_direction=beam,
                    position_history=history,
                )
                if now - state.firing_started_at >= state.allowed_firing_duration_ms:
                    new_state = _to_idle(new_state, history)
                    reason = DURATION_LIMIT
                elif count >= timings.max_firing_frames:
                    new_state = _to_idle(new_state, history)
                    reason = FRAME_LIMIT
            else:
                streak = state.firing_invalid_streak + 1
                if streak >= timings.firing_stability_threshold:
                    new_state = _to_idle(state, history)
                    reason = STABILITY_THRESHOLD
                else:
                    new_state = replace(
                        state,
                        firing_invalid_streak=streak,
                        firing_frame_count=count,
                        position_history=history,
                    )

    output = _output(new_state, now, timings, sphere_center, charging_pose, firing_pose)
    events = []
    if new_state.phase != previous:
        events.append(TransitionEvent(previous, new_state.phase, now, reason, output))
    return new_state, output, events


Listener = Callable[[GesturePhase, GestureOutput], None]


class KamehamehaDetector:
    """
    Stateful front end over `step`.

    Holds the current `DetectorState`, queues transition events for
    `drain_events()`, and calls registered listeners with
    `(new_phase, telemetry)` once the frame has been reduced.
    """

    def __init__(
        self,
        timings: Optional[GestureTimings] = None,
        charging_thresholds: Optional[ChargingPoseThresholds] = None,
        firing_thresholds: Optional[FiringPoseThresholds] = None,
        beam_settings: Optional[BeamSettings] = None,
        history_length: Optional[int] = None,
        cfg: Optional[Config] = None,
    ):
        self.timings = timings or GestureTimings.from_config(cfg)
        self.charging_thresholds = charging_thresholds or ChargingPoseThresholds.from_config(cfg)
        self.firing_thresholds = firing_thresholds or FiringPoseThresholds.from_config(cfg)
        self.beam_settings = beam_settings or BeamSettings.from_config(cfg)
        self.empty_history = HandPositionHistory.from_config(cfg)
        if history_length is not None:
            self.empty_history = replace(self.empty_history, max_length=history_length)
        self.history_length = self.empty_history.max_length

        self.state = DetectorState(position_history=self.empty_history)
        self.beams_fired = 0
        self.last_output: Optional[GestureOutput] = None
        self._listeners: List[Listener] = []
        self._events: List[TransitionEvent] = []
        self._last_now = 0.0
        self._charging_valid: Optional[bool] = None

    @property
    def phase(self) -> GesturePhase:
        return self.state.phase

    def add_listener(self, listener: Listener):
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def process_frame(self, hands: Optional[Sequence[Hand]], now: float) -> GestureOutput:
        """Reduce one frame, then log and dispatch any transition."""
        self.state, output, events = step(
            self.state, hands, now,
            self.timings, self.charging_thresholds, self.firing_thresholds, self.beam_settings,
        )
        self._last_now = now
        self.last_output = output

        if output.charging_pose is not None and output.charging_pose.is_valid != self._charging_valid:
            self._charging_valid = output.charging_pose.is_valid
            logger.debug("charging pose %s (score %d, need %d)",
                         'valid' if self._charging_valid else 'invalid',
                         output.charging_pose.score, output.charging_pose.min_score)

        self._publish(events)
        return output

    def reset(self):
        """Back to idle with every counter, timer and the beam cleared."""
        previous = self.state.phase
        self.state = DetectorState(position_history=self.empty_history)
        self.beams_fired = 0
        self._charging_valid = None
        output = _output(self.state, self._last_now, self.timings, None, None, None)
        self.last_output = output
        if previous != GesturePhase.IDLE:
            self._publish([TransitionEvent(previous, GesturePhase.IDLE, self._last_now, RESET, output)])

    def drain_events(self) -> List[TransitionEvent]:
        events, self._events = self._events, []
        return events

    def _publish(self, events: List[TransitionEvent]):
        for event in events:
            if event.reason == THRUST_DETECTED:
                self.beams_fired += 1
                beam = event.telemetry.firing_direction
                logger.info("%s → %s (%s): charged %.0fms, firing for %.0fms, beam %.1f° via %s",
                            event.previous.value, event.current.value, event.reason,
                            event.telemetry.charging_duration, event.telemetry.allowed_firing_duration,
                            math.degrees(beam.angle), beam.method.value)
            else:
                logger.info("%s → %s (%s)", event.previous.value, event.current.value, event.reason)
            self._events.append(event)
            for listener in list(self._listeners):
                listener(event.current, event.telemetry)


__all__ = [
    'GesturePhase',
    'GestureTimings',
    'DetectorState',
    'GestureOutput',
    'TransitionEvent',
    'step',
    'KamehamehaDetector',
]
