"""
Visual Feedback Overlay for the Kamehameha detector

Debug overlay drawn with OpenCV: hand skeletons, the energy sphere while
charging, the beam while firing, and a status panel with phase, progress and
per-criterion pose diagnostics.
"""

import cv2
import numpy as np
from typing import Optional, Sequence, Tuple
from dataclasses import dataclass
import time

from kamehameha.detectors.gesture_state_machine import GestureOutput, GesturePhase
from kamehameha.detectors.hand_types import Hand, LabeledHandPair, PoseScore


# Skeleton edges by keypoint name
HAND_CONNECTIONS = [
    # Thumb
    ('wrist', 'thumb_cmc'), ('thumb_cmc', 'thumb_mcp'), ('thumb_mcp', 'thumb_ip'), ('thumb_ip', 'thumb_tip'),
    # Index
    ('wrist', 'index_finger_mcp'), ('index_finger_mcp', 'index_finger_pip'),
    ('index_finger_pip', 'index_finger_dip'), ('index_finger_dip', 'index_finger_tip'),
    # Middle
    ('wrist', 'middle_finger_mcp'), ('middle_finger_mcp', 'middle_finger_pip'),
    ('middle_finger_pip', 'middle_finger_dip'), ('middle_finger_dip', 'middle_finger_tip'),
    # Ring
    ('wrist', 'ring_finger_mcp'), ('ring_finger_mcp', 'ring_finger_pip'),
    ('ring_finger_pip', 'ring_finger_dip'), ('ring_finger_dip', 'ring_finger_tip'),
    # Pinky
    ('wrist', 'pinky_mcp'), ('pinky_mcp', 'pinky_pip'), ('pinky_pip', 'pinky_dip'), ('pinky_dip', 'pinky_tip'),
    # Palm
    ('index_finger_mcp', 'middle_finger_mcp'), ('middle_finger_mcp', 'ring_finger_mcp'),
    ('ring_finger_mcp', 'pinky_mcp'),
]


@dataclass
class UIColors:
    """BGR palette."""
    left_hand = (0, 255, 255)     # Cyan
    right_hand = (255, 128, 0)    # Orange

    idle = (100, 100, 120)        # Grey
    positioning = (0, 200, 255)   # Amber
    charging = (255, 200, 0)      # Blue-white energy
    firing = (255, 255, 100)      # Bright cyan

    background = (20, 20, 30)
    text_primary = (255, 255, 255)
    text_secondary = (180, 180, 200)
    accent = (0, 200, 255)
    ok = (0, 255, 0)
    fail = (50, 50, 255)


class GestureOverlay:
    """
    Draws detector state on a BGR frame in place.
    """

    def __init__(self, config=None):
        self.colors = UIColors()

        if config:
            self.show_pose_details = config.get('display', 'show_pose_details', default=True)
            self.beam_length = config.get('beam_direction', 'beam_length', default=1000.0)
        else:
            self.show_pose_details = True
            self.beam_length = 1000.0

        self.panel_x = 10
        self.panel_y = 10
        self.panel_width = 330
        self.line_spacing = 18
        self.panel_alpha = 0.7
        self.sphere_min_radius = 10
        self.sphere_max_radius = 60
        self.pulse_freq = 2.0

    def draw(self, frame, hands: Sequence[Hand], output: Optional[GestureOutput],
             pair: Optional[LabeledHandPair] = None):
        """Draw everything for one frame."""
        if pair is not None:
            self.draw_hand(frame, pair.left, self.colors.left_hand)
            self.draw_hand(frame, pair.right, self.colors.right_hand)
        else:
            for hand in hands or ():
                self.draw_hand(frame, hand, self.colors.text_secondary)

        if output is None:
            return
        if output.state == GesturePhase.CHARGING and output.energy_sphere_center is not None:
            self.draw_energy_sphere(frame, output.energy_sphere_center, output.charging_progress)
        elif output.state == GesturePhase.FIRING:
            self.draw_beam(frame, output)
        self.draw_status_panel(frame, output)

    def draw_hand(self, frame, hand: Hand, color):
        for start_name, end_name in HAND_CONNECTIONS:
            start, end = hand.get(start_name), hand.get(end_name)
            if start is None or end is None:
                continue
            cv2.line(frame, (int(start.x), int(start.y)), (int(end.x), int(end.y)), color, 2)
        for kp in hand.keypoints:
            if kp.name.endswith('_tip') or kp.name == 'wrist':
                cv2.circle(frame, (int(kp.x), int(kp.y)), 5, color, -1)

    def draw_energy_sphere(self, frame, center, progress: float):
        """Sphere grows with charge and pulses."""
        pulse = self._get_pulse_intensity(self.pulse_freq)
        radius = self.sphere_min_radius + progress * (self.sphere_max_radius - self.sphere_min_radius)
        radius = int(radius * (0.9 + 0.1 * pulse))
        c = (int(center.x), int(center.y))

        overlay = frame.copy()
        cv2.circle(overlay, c, radius + 8, self.colors.charging, -1, cv2.LINE_AA)
        cv2.addWeighted(overlay, 0.3, frame, 0.7, 0, frame)
        cv2.circle(frame, c, radius, self.colors.charging, -1, cv2.LINE_AA)
        cv2.circle(frame, c, max(radius // 2, 2), self.colors.text_primary, -1, cv2.LINE_AA)

    def draw_beam(self, frame, output: GestureOutput):
        beam = output.firing_direction
        start = (int(beam.origin.x), int(beam.origin.y))
        end_pt = beam.endpoint(self.beam_length)
        end = (int(end_pt.x), int(end_pt.y))
        # beam narrows as the allowed firing time runs out
        width = max(int(24 * (1.0 - output.firing_progress)), 4)
        cv2.line(frame, start, end, self.colors.firing, width, cv2.LINE_AA)
        cv2.line(frame, start, end, self.colors.text_primary, max(width // 3, 1), cv2.LINE_AA)

    def draw_status_panel(self, frame, output: GestureOutput):
        lines = [
            (f"STATE: {output.state.value.upper()}", self._phase_color(output.state), 0.6),
            (f"Charge: {output.charging_duration / 1000.0:.1f}s ({output.charging_progress * 100:.0f}%)",
             self.colors.text_secondary, 0.45),
        ]
        if output.state == GesturePhase.FIRING:
            lines.append((f"Firing: {output.current_firing_duration / 1000.0:.1f}s / "
                          f"{output.allowed_firing_duration / 1000.0:.1f}s  frame {output.firing_frame_count}",
                          self.colors.text_secondary, 0.45))
            beam = output.firing_direction
            lines.append((f"Beam: {np.degrees(beam.angle):.1f} deg ({beam.method.value})",
                          self.colors.text_secondary, 0.45))

        detail_lines = []
        if self.show_pose_details:
            for title, pose in (('Charging', output.charging_pose), ('Firing', output.firing_pose)):
                if pose is not None:
                    detail_lines.extend(self._pose_lines(title, pose))

        panel_height = 20 + self.line_spacing * (len(lines) + len(detail_lines))
        overlay = frame.copy()
        cv2.rectangle(overlay, (self.panel_x, self.panel_y),
                      (self.panel_x + self.panel_width, self.panel_y + panel_height),
                      self.colors.background, -1, cv2.LINE_AA)
        cv2.addWeighted(overlay, self.panel_alpha, frame, 1.0 - self.panel_alpha, 0, frame)
        cv2.rectangle(frame, (self.panel_x, self.panel_y),
                      (self.panel_x + self.panel_width, self.panel_y + panel_height),
                      self.colors.accent, 1, cv2.LINE_AA)

        y = self.panel_y + 20
        for text, color, scale in lines + detail_lines:
            cv2.putText(frame, text, (self.panel_x + 10, y),
                        cv2.FONT_HERSHEY_SIMPLEX, scale, color, 1, cv2.LINE_AA)
            y += self.line_spacing

    def _pose_lines(self, title: str, pose: PoseScore):
        lines = [(f"{title}: {pose.score} (need {pose.min_score})",
                  self.colors.ok if pose.is_valid else self.colors.fail, 0.45)]
        for detail in pose.details:
            ok = detail.startswith('✓')
            # Hershey fonts have no check marks
            text = ('+ ' if ok else '- ') + detail[2:]
            lines.append((text, self.colors.ok if ok else self.colors.fail, 0.35))
        return lines

    def _phase_color(self, phase: GesturePhase) -> Tuple[int, int, int]:
        return {
            GesturePhase.IDLE: self.colors.idle,
            GesturePhase.POSITIONING: self.colors.positioning,
            GesturePhase.CHARGING: self.colors.charging,
            GesturePhase.FIRING: self.colors.firing,
        }[phase]

    def _get_pulse_intensity(self, frequency=2.0):
        """Pulsing intensity (0..1)."""
        t = time.time()
        return 0.5 + 0.5 * np.sin(t * frequency * 2 * np.pi)
