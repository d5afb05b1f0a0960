import unittest
import sys
import os

import numpy as np

# Add path to source
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kamehameha.detectors.hand_roles import identify_hands
from kamehameha.detectors.hand_types import LabeledHandPair
from kamehameha.detectors.pose_scoring import (
    CHARGING_CRITERIA, FIRING_CRITERIA,
    ChargingPoseThresholds, FiringPoseThresholds,
    analyze_energy_funnel, energy_sphere_center, finger_arch, finger_spread,
    is_in_firing_position, is_in_starting_position,
    score_charging_pose, score_firing_pose,
)
from hand_fixtures import (
    CHARGING_LEFT, FIRING_LEFT,
    charging_hands, firing_hands, make_hand, neutral_hands, wide_charging_hands,
)


def pair_of(hands):
    return identify_hands(hands)


class TestEnergySphereCenter(unittest.TestCase):
    def test_blended_toward_wrists(self):
        center = energy_sphere_center(pair_of(charging_hands()))
        np.testing.assert_allclose(center, [320.0, 289.5])

    def test_firing_geometry(self):
        center = energy_sphere_center(pair_of(firing_hands()))
        np.testing.assert_allclose(center, [325.0, 242.25])

    def test_falls_back_to_wrist_midpoint(self):
        center = energy_sphere_center(pair_of(neutral_hands()))
        np.testing.assert_allclose(center, [330.0, 300.0])

    def test_zero_blend_is_fingertip_midpoint(self):
        center = energy_sphere_center(pair_of(charging_hands()), wrist_blend=0.0)
        np.testing.assert_allclose(center, [320.0, 285.0])


class TestChargingPose(unittest.TestCase):
    def test_scenario_a_scores_six(self):
        result = score_charging_pose(pair_of(charging_hands()))
        self.assertEqual(result.score, 6)
        self.assertEqual(result.satisfied_criteria, frozenset(CHARGING_CRITERIA))
        self.assertTrue(result.is_valid)
        self.assertEqual(len(result.details), 6)
        self.assertTrue(all(d.startswith('✓') for d in result.details))
        self.assertTrue(is_in_starting_position(charging_hands()))

    def test_scenario_a_metrics(self):
        m = score_charging_pose(pair_of(charging_hands())).metrics
        self.assertAlmostEqual(m['wrist_distance'], 40.0)
        self.assertAlmostEqual(m['v_angle'], 124.6, delta=0.1)
        self.assertAlmostEqual(m['left_palm_angle'], 21.7, delta=0.1)
        self.assertAlmostEqual(m['right_palm_angle'], 21.7, delta=0.1)
        self.assertAlmostEqual(m['left_thumb_angle'], 119.9, delta=0.1)
        self.assertAlmostEqual(m['right_thumb_angle'], 60.1, delta=0.1)
        self.assertAlmostEqual(m['avg_finger_spread'], 260.9, delta=0.1)
        self.assertAlmostEqual(m['finger_intensity'], 0.91, delta=0.01)
        self.assertEqual(m['funnel_quality'], 'good')

    def test_scenario_b_wrists_too_far(self):
        result = score_charging_pose(pair_of(wide_charging_hands()))
        self.assertFalse(result.satisfied('wrist_separation'))
        self.assertAlmostEqual(result.metrics['wrist_distance'], 260.0)

    def test_scenario_b_below_min_score(self):
        # only the V-formation survives on bare wrists
        result = score_charging_pose(pair_of(neutral_hands()))
        self.assertEqual(result.score, 1)
        self.assertEqual(result.satisfied_criteria, frozenset({'v_formation'}))
        self.assertFalse(result.is_valid)
        self.assertFalse(is_in_starting_position(neutral_hands()))

    def test_firing_geometry_fails_every_charging_criterion(self):
        result = score_charging_pose(pair_of(firing_hands()))
        self.assertEqual(result.score, 0)
        self.assertFalse(result.is_valid)
        self.assertTrue(all(d.startswith('✗') for d in result.details))

    def test_missing_keypoints_fail_only_their_criteria(self):
        left = dict(CHARGING_LEFT)
        del left['thumb_tip']
        hands = charging_hands()
        pair = LabeledHandPair(left=make_hand(left), right=hands[1])
        result = score_charging_pose(pair)
        self.assertFalse(result.satisfied('wrist_rotation'))
        self.assertFalse(result.satisfied('finger_spread'))
        self.assertEqual(result.score, 4)
        self.assertIsNone(result.metrics['left_thumb_angle'])

    def test_no_pair_scores_zero(self):
        result = score_charging_pose(None)
        self.assertEqual(result.score, 0)
        self.assertFalse(result.is_valid)
        self.assertFalse(is_in_starting_position(charging_hands()[:1]))

    def test_threshold_override(self):
        strict = ChargingPoseThresholds(min_score=7)
        self.assertFalse(score_charging_pose(pair_of(charging_hands()), strict).is_valid)
        narrow = ChargingPoseThresholds(max_wrist_distance=35.0)
        self.assertFalse(score_charging_pose(pair_of(charging_hands()), narrow).satisfied('wrist_separation'))


class TestFingerSpread(unittest.TestCase):
    def test_intensity(self):
        spread = finger_spread(make_hand(CHARGING_LEFT))
        self.assertAlmostEqual(spread.total_spread, 260.9, delta=0.1)
        self.assertAlmostEqual(spread.avg_extension, 65.59, delta=0.01)
        # spread saturates at 1.0, extension contributes 65.59 / 80
        self.assertAlmostEqual(spread.intensity, (1.0 + 65.59 / 80.0) / 2.0, delta=0.001)
        self.assertAlmostEqual(spread.max_extension, 100.5, delta=0.01)

    def test_missing_fingertip_gives_zeros(self):
        left = dict(CHARGING_LEFT)
        del left['pinky_tip']
        spread = finger_spread(make_hand(left))
        self.assertEqual(spread.total_spread, 0.0)
        self.assertEqual(spread.intensity, 0.0)

    def test_finger_arch(self):
        straight = make_hand({
            'index_finger_mcp': (0, 0), 'index_finger_pip': (0, 20), 'index_finger_tip': (0, 40),
        })
        self.assertAlmostEqual(finger_arch(straight), 0.0)
        bent = make_hand({
            'index_finger_mcp': (0, 0), 'index_finger_pip': (10, 20), 'index_finger_tip': (0, 40),
        })
        self.assertAlmostEqual(finger_arch(bent), 10.0 / 40.0)
        self.assertEqual(finger_arch(make_hand({'wrist': (0, 0)})), 0.0)


class TestEnergyFunnel(unittest.TestCase):
    def test_good_funnel(self):
        pair = pair_of(charging_hands())
        funnel = analyze_energy_funnel(pair, energy_sphere_center(pair))
        self.assertTrue(funnel.is_valid)
        self.assertEqual(funnel.quality, 'good')
        self.assertAlmostEqual(funnel.avg_convergence, 21.7, delta=0.1)

    def test_quality_tiers(self):
        pair = pair_of(charging_hands())
        center = energy_sphere_center(pair)
        excellent = analyze_energy_funnel(pair, center, ChargingPoseThresholds(funnel_excellent_angle=25.0))
        self.assertEqual(excellent.quality, 'excellent')
        fair = analyze_energy_funnel(pair, center, ChargingPoseThresholds(funnel_good_angle=20.0))
        self.assertEqual(fair.quality, 'fair')

    def test_fingers_not_aimed_at_sphere(self):
        pair = pair_of(firing_hands())
        funnel = analyze_energy_funnel(pair, energy_sphere_center(pair))
        self.assertFalse(funnel.is_valid)
        self.assertEqual(funnel.quality, 'poor')

    def test_missing_fingertips(self):
        pair = pair_of(neutral_hands())
        funnel = analyze_energy_funnel(pair, energy_sphere_center(pair))
        self.assertFalse(funnel.is_valid)
        self.assertIsNone(funnel.avg_convergence)


class TestFiringPose(unittest.TestCase):
    def test_all_criteria(self):
        result = score_firing_pose(pair_of(firing_hands()))
        self.assertEqual(result.score, 4)
        self.assertEqual(result.satisfied_criteria, frozenset(FIRING_CRITERIA))
        self.assertTrue(result.is_valid)
        self.assertTrue(is_in_firing_position(firing_hands()))

    def test_metrics(self):
        m = score_firing_pose(pair_of(firing_hands())).metrics
        self.assertAlmostEqual(m['left_curl_distance'], 40.0)
        self.assertAlmostEqual(m['vertical_offset'], 0.0)
        self.assertAlmostEqual(m['hand_distance'], 150.0)
        self.assertAlmostEqual(m['left_thumb_angle'], -26.57, delta=0.01)
        self.assertAlmostEqual(m['right_thumb_angle'], -153.43, delta=0.01)
        self.assertAlmostEqual(m['sphere_radius'], 71.05, delta=0.01)

    def test_bare_wrists_fail(self):
        result = score_firing_pose(pair_of(neutral_hands()))
        self.assertEqual(result.score, 0)
        self.assertFalse(is_in_firing_position(neutral_hands()))

    def test_two_criteria_are_enough(self):
        # keep alignment and inward rotation only
        left = {k: v for k, v in FIRING_LEFT.items() if k in ('wrist', 'thumb_tip')}
        right = {'wrist': (400, 300), 'thumb_tip': (370, 285)}
        result = score_firing_pose(LabeledHandPair(make_hand(left), make_hand(right)))
        self.assertEqual(result.satisfied_criteria, frozenset({'hands_aligned', 'wrists_rotated_inward'}))
        self.assertTrue(result.is_valid)

    def test_right_inward_accepts_both_signs(self):
        # right thumb pointing left and slightly down: heading ~ +153
        left = {'wrist': (250, 300), 'thumb_tip': (280, 285)}
        right = {'wrist': (400, 300), 'thumb_tip': (370, 315)}
        result = score_firing_pose(LabeledHandPair(make_hand(left), make_hand(right)))
        self.assertTrue(result.satisfied('wrists_rotated_inward'))

    def test_misaligned_hands(self):
        left = {'wrist': (250, 300)}
        right = {'wrist': (400, 340)}
        result = score_firing_pose(LabeledHandPair(make_hand(left), make_hand(right)))
        self.assertFalse(result.satisfied('hands_aligned'))

    def test_no_pair_scores_zero(self):
        self.assertEqual(score_firing_pose(None).score, 0)

    def test_threshold_override(self):
        tight = FiringPoseThresholds(expected_curl_distance=80.0)
        self.assertFalse(score_firing_pose(pair_of(firing_hands()), tight).satisfied('fingers_curved'))


def wrists(dx, dy=0.0):
    return LabeledHandPair(make_hand({'wrist': (100.0, 100.0)}), make_hand({'wrist': (100.0 + dx, 100.0 + dy)}))


class TestCriterionBoundaries(unittest.TestCase):
    """Range ends: inclusive for the charging pose, exclusive for the firing pose."""

    def test_wrist_separation_is_inclusive(self):
        for dx, ok in ((29.5, False), (30.0, True), (120.0, True), (120.5, False)):
            result = score_charging_pose(wrists(dx))
            self.assertEqual(result.satisfied('wrist_separation'), ok, dx)

    def test_v_angle_is_inclusive(self):
        pair = pair_of(charging_hands())
        v_angle = score_charging_pose(pair).metrics['v_angle']
        cases = (
            (ChargingPoseThresholds(min_v_angle=v_angle), True),
            (ChargingPoseThresholds(min_v_angle=v_angle + 1e-6), False),
            (ChargingPoseThresholds(max_v_angle=v_angle), True),
            (ChargingPoseThresholds(max_v_angle=v_angle - 1e-6), False),
        )
        for thresholds, ok in cases:
            self.assertEqual(score_charging_pose(pair, thresholds).satisfied('v_formation'), ok)

    def test_straight_line_wrists_hit_v_angle_maximum(self):
        # no fingertips: sphere sits on the wrist midpoint, an exact 180 degrees
        result = score_charging_pose(wrists(60.0))
        self.assertEqual(result.metrics['v_angle'], 180.0)
        self.assertTrue(result.satisfied('v_formation'))

    def test_thumb_ranges_are_inclusive(self):
        pair = pair_of(charging_hands())
        m = score_charging_pose(pair).metrics
        left, right = m['left_thumb_angle'], m['right_thumb_angle']
        at_edges = ChargingPoseThresholds(left_thumb_angle_range=(left, left),
                                          right_thumb_angle_range=(right, right))
        self.assertTrue(score_charging_pose(pair, at_edges).satisfied('wrist_rotation'))
        past_edge = ChargingPoseThresholds(left_thumb_angle_range=(left + 1e-6, 150.0))
        self.assertFalse(score_charging_pose(pair, past_edge).satisfied('wrist_rotation'))

    def test_hand_distance_is_exclusive(self):
        for dx, ok in ((80.0, False), (80.5, True), (199.5, True), (200.0, False)):
            result = score_firing_pose(wrists(dx))
            self.assertEqual(result.satisfied('hands_aligned'), ok, dx)

    def test_vertical_offset_is_exclusive(self):
        self.assertTrue(score_firing_pose(wrists(100.0, 29.5)).satisfied('hands_aligned'))
        self.assertFalse(score_firing_pose(wrists(100.0, 30.0)).satisfied('hands_aligned'))

    def test_inward_angles_are_exclusive(self):
        pair = pair_of(firing_hands())
        m = score_firing_pose(pair).metrics
        left, right = m['left_thumb_angle'], m['right_thumb_angle']
        cases = (
            (FiringPoseThresholds(left_inward_angle_range=(left, 45.0)), False),
            (FiringPoseThresholds(left_inward_angle_range=(left - 1e-6, 45.0)), True),
            (FiringPoseThresholds(left_inward_angle_range=(-45.0, left)), False),
            (FiringPoseThresholds(left_inward_angle_range=(-45.0, left + 1e-6)), True),
            (FiringPoseThresholds(right_inward_min_abs_angle=abs(right)), False),
            (FiringPoseThresholds(right_inward_min_abs_angle=abs(right) - 1e-6), True),
        )
        for thresholds, ok in cases:
            self.assertEqual(score_firing_pose(pair, thresholds).satisfied('wrists_rotated_inward'), ok)

    def test_sphere_radius_is_exclusive(self):
        pair = pair_of(firing_hands())
        radius = score_firing_pose(pair).metrics['sphere_radius']
        cases = (
            (FiringPoseThresholds(min_sphere_radius=radius), False),
            (FiringPoseThresholds(min_sphere_radius=radius - 1e-6), True),
            (FiringPoseThresholds(max_sphere_radius=radius), False),
            (FiringPoseThresholds(max_sphere_radius=radius + 1e-6), True),
        )
        for thresholds, ok in cases:
            self.assertEqual(score_firing_pose(pair, thresholds).satisfied('energy_sphere_formation'), ok)


if __name__ == '__main__':
    unittest.main()
