import math
import unittest
import sys
import os

# Add path to source
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kamehameha.detectors.beam_direction import (
    BeamSettings, estimate_continuous_direction, estimate_lock_in_direction,
    perpendicular_wrist_vector,
)
from kamehameha.detectors.hand_roles import identify_hands
from kamehameha.detectors.hand_types import DEFAULT_BEAM, BeamMethod, LabeledHandPair, Point2D
from hand_fixtures import firing_hands, make_hand, neutral_hands


def pair_from(left_points, right_points, left_3d=None, right_3d=None):
    return identify_hands([make_hand(left_points, left_3d), make_hand(right_points, right_3d)])


def fingers(wrist, tip):
    return {'wrist': wrist, 'index_finger_tip': tip, 'middle_finger_tip': tip}


class TestLockInDirection(unittest.TestCase):
    def test_finger_convergence(self):
        beam = estimate_lock_in_direction(identify_hands(firing_hands()))
        self.assertEqual(beam.method, BeamMethod.FINGER_CONVERGENCE)
        self.assertAlmostEqual(beam.vector.x, 0.0)
        self.assertAlmostEqual(beam.vector.y, -1.0)
        self.assertAlmostEqual(beam.angle, -math.pi / 2)
        # origin is the energy sphere center
        self.assertAlmostEqual(beam.origin.x, 325.0)
        self.assertAlmostEqual(beam.origin.y, 242.25)

    def test_finger_convergence_is_flipped_forward(self):
        # fingers point back toward -x; beam is reversed to face forward
        pair = pair_from(fingers((100, 100), (50, 90)), fingers((200, 100), (150, 90)))
        beam = estimate_lock_in_direction(pair)
        self.assertEqual(beam.method, BeamMethod.FINGER_CONVERGENCE)
        norm = math.hypot(50, 10)
        self.assertAlmostEqual(beam.vector.x, 50 / norm)
        self.assertAlmostEqual(beam.vector.y, 10 / norm)

    def test_custom_forward_vector(self):
        pair = pair_from(fingers((100, 100), (150, 100)), fingers((200, 100), (250, 100)))
        beam = estimate_lock_in_direction(pair, BeamSettings(forward_vector=(-1.0, 0.0)))
        self.assertAlmostEqual(beam.vector.x, -1.0)

    def test_palm_facing_when_convergence_too_short(self):
        pair = pair_from(fingers((100, 100), (103, 100)), fingers((200, 100), (203, 100)))
        beam = estimate_lock_in_direction(pair)
        self.assertEqual(beam.method, BeamMethod.PALM_FACING)
        self.assertAlmostEqual(beam.vector.x, 1.0)
        self.assertAlmostEqual(beam.vector.y, 0.0)

    def test_palm_facing_without_index_tips(self):
        pair = pair_from({'wrist': (100, 100), 'middle_finger_tip': (103, 100)},
                         {'wrist': (200, 100), 'middle_finger_tip': (203, 100)})
        beam = estimate_lock_in_direction(pair)
        self.assertEqual(beam.method, BeamMethod.PALM_FACING)
        self.assertAlmostEqual(beam.vector.x, 1.0)
        self.assertAlmostEqual(beam.vector.y, 0.0)

    def test_palm_facing_uses_middle_only_when_one_index_missing(self):
        left = {'wrist': (100, 100), 'index_finger_tip': (100, 130), 'middle_finger_tip': (103, 100)}
        right = {'wrist': (200, 100), 'middle_finger_tip': (203, 100)}
        beam = estimate_lock_in_direction(pair_from(left, right))
        self.assertEqual(beam.method, BeamMethod.PALM_FACING)
        self.assertAlmostEqual(beam.vector.x, 1.0)
        self.assertAlmostEqual(beam.vector.y, 0.0)

    def test_perpendicular_when_palms_cancel(self):
        pair = pair_from(fingers((100, 100), (103, 100)), fingers((200, 100), (197, 100)))
        beam = estimate_lock_in_direction(pair)
        self.assertEqual(beam.method, BeamMethod.PERPENDICULAR_WRIST)
        self.assertAlmostEqual(beam.vector.x, 0.0)
        self.assertAlmostEqual(beam.vector.y, 1.0)

    def test_perpendicular_with_wrists_only(self):
        beam = estimate_lock_in_direction(identify_hands(neutral_hands()))
        self.assertEqual(beam.method, BeamMethod.PERPENDICULAR_WRIST)
        self.assertAlmostEqual(beam.vector.y, 1.0)
        # no fingertips: origin falls back to the wrist midpoint
        self.assertEqual(beam.origin, Point2D(330.0, 300.0))

    def test_perpendicular_rotation_sense(self):
        horizontal = LabeledHandPair(make_hand({'wrist': (100, 100)}), make_hand({'wrist': (200, 100)}))
        vx, vy = perpendicular_wrist_vector(horizontal)
        self.assertAlmostEqual(vx, 0.0)
        self.assertAlmostEqual(vy, 1.0)
        vertical = LabeledHandPair(make_hand({'wrist': (100, 100)}), make_hand({'wrist': (100, 200)}))
        vx, vy = perpendicular_wrist_vector(vertical)
        self.assertAlmostEqual(vx, 1.0)
        self.assertAlmostEqual(vy, 0.0)

    def test_coincident_wrists_give_default(self):
        pair = pair_from({'wrist': (100, 100)}, {'wrist': (105, 100)})
        beam = estimate_lock_in_direction(pair)
        self.assertEqual(beam.method, BeamMethod.DEFAULT)
        self.assertEqual(beam.vector, Point2D(1.0, 0.0))
        self.assertEqual(beam.origin, Point2D(102.5, 100.0))

    def test_no_pair(self):
        self.assertEqual(estimate_lock_in_direction(None), DEFAULT_BEAM)

    def test_vector_3d_from_world_keypoints(self):
        left_3d = {'wrist': (0.0, 0.0, 0.0), 'index_finger_tip': (0.0, -0.1, -0.1),
                   'middle_finger_tip': (0.0, -0.1, -0.1)}
        right_3d = {'wrist': (0.1, 0.0, 0.0), 'index_finger_tip': (0.1, -0.1, -0.1),
                    'middle_finger_tip': (0.1, -0.1, -0.1)}
        pair = pair_from(fingers((100, 100), (100, 50)), fingers((200, 100), (200, 50)), left_3d, right_3d)
        beam = estimate_lock_in_direction(pair)
        self.assertAlmostEqual(beam.vector_3d.x, 0.0)
        self.assertAlmostEqual(beam.vector_3d.y, -math.sqrt(0.5))
        self.assertAlmostEqual(beam.vector_3d.z, -math.sqrt(0.5))

    def test_vector_3d_falls_back_to_2d(self):
        beam = estimate_lock_in_direction(identify_hands(firing_hands()))
        self.assertAlmostEqual(beam.vector_3d.x, beam.vector.x)
        self.assertAlmostEqual(beam.vector_3d.y, beam.vector.y)
        self.assertEqual(beam.vector_3d.z, 0.0)

    def test_vectors_are_unit_length(self):
        for hands in (firing_hands(), neutral_hands()):
            beam = estimate_lock_in_direction(identify_hands(hands))
            self.assertAlmostEqual(math.hypot(beam.vector.x, beam.vector.y), 1.0)


class TestContinuousDirection(unittest.TestCase):
    def test_wrist_midpoint_to_fingertips(self):
        beam = estimate_continuous_direction(identify_hands(firing_hands()))
        self.assertEqual(beam.method, BeamMethod.ORIGIN_TO_MIDPOINT)
        self.assertEqual(beam.origin, Point2D(325.0, 300.0))
        self.assertAlmostEqual(beam.vector.x, 0.0)
        self.assertAlmostEqual(beam.vector.y, -1.0)

    def test_mirroring_is_configurable(self):
        settings = BeamSettings(mirror_x=True, video_width=640)
        beam = estimate_continuous_direction(identify_hands(firing_hands()), settings)
        self.assertEqual(beam.origin, Point2D(315.0, 300.0))
        self.assertAlmostEqual(beam.vector.y, -1.0)

        tilted = pair_from({'wrist': (100, 100), 'middle_finger_tip': (150, 50)},
                           {'wrist': (200, 100), 'middle_finger_tip': (250, 50)})
        plain = estimate_continuous_direction(tilted)
        mirrored = estimate_continuous_direction(tilted, settings)
        self.assertAlmostEqual(plain.vector.x, -mirrored.vector.x)
        self.assertAlmostEqual(plain.vector.y, mirrored.vector.y)

    def test_zero_length_defaults_up(self):
        pair = pair_from({'wrist': (100, 100), 'middle_finger_tip': (100, 100)},
                         {'wrist': (200, 100), 'middle_finger_tip': (200, 100)})
        beam = estimate_continuous_direction(pair)
        self.assertEqual(beam.vector, Point2D(0.0, -1.0))
        self.assertFalse(math.isnan(beam.angle))

    def test_missing_fingertips(self):
        self.assertEqual(estimate_continuous_direction(identify_hands(neutral_hands())), DEFAULT_BEAM)


class TestBeamDirection(unittest.TestCase):
    def test_endpoint(self):
        beam = estimate_continuous_direction(identify_hands(firing_hands()))
        end = beam.endpoint(100)
        self.assertAlmostEqual(end.x, 325.0)
        self.assertAlmostEqual(end.y, 200.0)

    def test_as_dict(self):
        data = estimate_lock_in_direction(identify_hands(firing_hands())).as_dict()
        self.assertEqual(data['method'], 'finger_convergence')
        self.assertIn('vector3D', data)
        self.assertEqual(set(data['origin']), {'x', 'y'})


if __name__ == '__main__':
    unittest.main()
