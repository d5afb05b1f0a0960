#!/usr/bin/env python3
"""
Kamehameha webcam demo

Runs MediaPipe hand tracking on a camera feed, feeds both hands to the
KamehamehaDetector once per frame, and draws the debug overlay.
"""

import argparse
import cv2
import logging
import mediapipe as mp
import time
import sys
import urllib.request
from pathlib import Path

from kamehameha.config.config_manager import config, Config
from kamehameha.detectors.gesture_state_machine import GesturePhase, KamehamehaDetector
from kamehameha.detectors.hand_roles import identify_hands
from kamehameha.utils.landmark_adapter import hands_from_landmarks
from kamehameha.utils.visual_feedback import GestureOverlay

# MediaPipe Tasks API
from mediapipe.tasks.python import vision as mp_vision
from mediapipe.tasks.python.core.base_options import BaseOptions

HAND_LANDMARKER_MODEL_URL = 'https://storage.googleapis.com/mediapipe-models/hand_landmarker/hand_landmarker/float16/1/hand_landmarker.task'
HAND_LANDMARKER_MODEL_PATH = Path(__file__).parent.parent / 'models' / 'hand_landmarker.task'


def ensure_model_downloaded():
    """Download the hand landmarker model if not present."""
    model_path = HAND_LANDMARKER_MODEL_PATH
    model_path.parent.mkdir(parents=True, exist_ok=True)

    if not model_path.exists():
        print("📥 Downloading hand landmarker model...")
        try:
            urllib.request.urlretrieve(HAND_LANDMARKER_MODEL_URL, str(model_path))
            print(f"✓ Model downloaded to {model_path}")
        except OSError as e:
            print(f"⚠ Failed to download model: {e}")
            return None

    return str(model_path)


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class KamehamehaApplication:
    """Camera loop around the detector."""

    def __init__(self, camera_idx=None):
        print("\n" + "=" * 60)
        print("KAMEHAMEHA - two-hand gesture detector")
        print("=" * 60 + "\n")

        if camera_idx is None:
            camera_idx = config.get('camera', 'index', default=0)
        camera_width = config.get('camera', 'width', default=640)
        camera_height = config.get('camera', 'height', default=480)
        camera_fps = config.get('camera', 'fps', default=30)

        self.cap = cv2.VideoCapture(camera_idx)
        if not self.cap.isOpened():
            raise RuntimeError(f"❌ Could not open camera {camera_idx}")

        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, camera_width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, camera_height)
        self.cap.set(cv2.CAP_PROP_FPS, camera_fps)

        actual_width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        actual_height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        print(f"✓ Camera initialized: {actual_width}x{actual_height} @ {self.cap.get(cv2.CAP_PROP_FPS):.1f} FPS")

        detection_conf = config.get('performance', 'min_detection_confidence', default=0.7)
        tracking_conf = config.get('performance', 'min_tracking_confidence', default=0.5)
        max_hands = config.get('performance', 'max_hands', default=2)

        self.hands = None
        self.hand_landmarker = None
        model_path = ensure_model_downloaded()
        if model_path:
            try:
                options = mp_vision.HandLandmarkerOptions(
                    base_options=BaseOptions(model_asset_path=model_path),
                    running_mode=mp_vision.RunningMode.IMAGE,
                    num_hands=max_hands,
                    min_hand_detection_confidence=detection_conf,
                    min_tracking_confidence=tracking_conf,
                )
                self.hand_landmarker = mp_vision.HandLandmarker.create_from_options(options)
                print(f"✓ MediaPipe HandLandmarker initialized (max_hands={max_hands})")
            except (RuntimeError, ValueError) as e:
                print(f"⚠ HandLandmarker initialization failed: {e}")
                print("  Falling back to legacy MediaPipe Hands...")

        if self.hand_landmarker is None:
            self.hands = mp.solutions.hands.Hands(
                min_detection_confidence=detection_conf,
                min_tracking_confidence=tracking_conf,
                max_num_hands=max_hands,
            )
            print(f"✓ MediaPipe Hands (legacy) initialized (max_hands={max_hands})")

        self.detector = KamehamehaDetector()
        self.detector.add_listener(self.on_state_change)
        print("✓ Detector initialized")

        self.overlay = GestureOverlay(config)
        self.flip_horizontal = config.get('display', 'flip_horizontal', default=True)
        self.window_name = config.get('display', 'window_name', default='Kamehameha')
        self.running = True

        self.frame_count = 0
        self.fps_time = time.time()
        self.fps = 0.0

    def on_state_change(self, phase, telemetry):
        if phase == GesturePhase.FIRING:
            print(f"🔥 KAMEHAMEHA! beam #{self.detector.beams_fired} "
                  f"for {telemetry.allowed_firing_duration / 1000.0:.1f}s")
        else:
            print(f"  → {phase.value}")

    def detect_hands(self, frame_bgr):
        frame_rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        if self.hand_landmarker is not None:
            mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=frame_rgb)
            results = self.hand_landmarker.detect(mp_image)
            return hands_from_landmarks(
                results.hand_landmarks, frame_bgr.shape,
                world_landmarks=results.hand_world_landmarks,
                handedness=results.handedness,
            )
        results = self.hands.process(frame_rgb)
        return hands_from_landmarks(
            results.multi_hand_landmarks, frame_bgr.shape,
            world_landmarks=results.multi_hand_world_landmarks,
            handedness=results.multi_handedness,
        )

    def run(self):
        """Main application loop."""
        self.print_controls()

        try:
            while self.running:
                self.frame_count += 1
                ret, frame_bgr = self.cap.read()
                if not ret:
                    print("❌ Failed to read frame")
                    break

                if self.flip_horizontal:
                    frame_bgr = cv2.flip(frame_bgr, 1)
                h, w = frame_bgr.shape[:2]

                if self.frame_count % 30 == 0:
                    now = time.time()
                    self.fps = 30.0 / (now - self.fps_time)
                    self.fps_time = now

                hands = self.detect_hands(frame_bgr)
                output = self.detector.process_frame(hands, monotonic_ms())

                self.overlay.draw(frame_bgr, hands, output, identify_hands(hands))
                cv2.putText(frame_bgr, f"FPS: {self.fps:.1f}", (w - 140, 30),
                            cv2.FONT_HERSHEY_SIMPLEX, 0.7, (0, 255, 0), 2, cv2.LINE_AA)
                cv2.imshow(self.window_name, frame_bgr)

                k = cv2.waitKey(1) & 0xFF
                if k == ord('q'):
                    self.running = False
                elif k == ord('r'):
                    self.detector.reset()
                    print("↺ Detector reset")
                elif k == ord('d'):
                    self.overlay.show_pose_details = not self.overlay.show_pose_details
                    print(f"Pose details: {'ON' if self.overlay.show_pose_details else 'OFF'}")
        finally:
            self.cleanup()

    def cleanup(self):
        """Clean up resources."""
        print("\n🧹 Cleaning up...")
        if self.cap:
            self.cap.release()
        if self.hand_landmarker:
            self.hand_landmarker.close()
        if self.hands:
            self.hands.close()
        cv2.destroyAllWindows()
        print(f"✓ Stopped after {self.detector.beams_fired} beam(s)\n")

    def print_controls(self):
        print("\n" + "=" * 60)
        print("KEYBOARD CONTROLS")
        print("=" * 60)
        print("  Q - Quit")
        print("  R - Reset detector")
        print("  D - Toggle pose details")
        print("\n" + "=" * 60)
        print("GESTURE")
        print("=" * 60)
        print("  1. Cup both hands close together, fingers spread (hold to charge)")
        print("  2. Keep charging at least 5s; 20s is full power")
        print("  3. Push both palms forward to fire")
        print("=" * 60 + "\n")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Kamehameha gesture detector webcam demo")
    parser.add_argument('--camera', type=int, default=None,
                        help='Camera device index (default: camera.index from config)')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to config.json (default: bundled config)')
    args = parser.parse_args()

    if args.config:
        Config(args.config)

    logging.basicConfig(
        level=str(config.get('logging', 'level', default='INFO')).upper(),
        format='%(asctime)s %(name)s %(levelname)s %(message)s',
    )

    try:
        app = KamehamehaApplication(camera_idx=args.camera)
        app.run()
    except KeyboardInterrupt:
        print("\n⚠ Interrupted by user")
    except RuntimeError as e:
        print(f"\n❌ Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
