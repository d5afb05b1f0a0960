#!/usr/bin/env python3
"""
Replay recorded hand frames through the Kamehameha detector.

Input is JSON lines, one frame per line:

  {"t": 1234.0, "hands": [{"keypoints": [{"name": "wrist", "x": 300, "y": 300}, ...]}, ...]}

Every state transition is printed. Malformed lines are reported and skipped.
"""

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, TextIO

from kamehameha.config.config_manager import config, Config
from kamehameha.detectors.gesture_state_machine import KamehamehaDetector, TransitionEvent
from kamehameha.detectors.hand_types import hands_from_dicts


@dataclass
class ReplayResult:
    frames: int = 0
    skipped: int = 0
    beams_fired: int = 0
    events: List[TransitionEvent] = field(default_factory=list)


def parse_frame(line: str):
    """Return (timestamp_ms, hands) for one JSON line; ValueError if malformed."""
    try:
        record = json.loads(line)
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid JSON: {e}") from e
    if not isinstance(record, dict) or 't' not in record:
        raise ValueError("frame must be an object with a 't' timestamp")
    try:
        t = float(record['t'])
    except (TypeError, ValueError) as e:
        raise ValueError(f"invalid timestamp {record['t']!r}") from e
    hands = record.get('hands') or []
    if not isinstance(hands, list):
        raise ValueError("'hands' must be a list")
    return t, hands_from_dicts(hands)


def replay(lines: Iterable[str], detector: Optional[KamehamehaDetector] = None,
           out: Optional[TextIO] = None) -> ReplayResult:
    """
    Feed every frame to `detector` and print its transitions to `out`.

    Args:
        lines: JSON lines, blank lines are ignored
        detector: detector to drive (a fresh one from config by default)
        out: where transitions and warnings go (default: stdout)
    """
    detector = detector or KamehamehaDetector()
    out = out or sys.stdout
    result = ReplayResult()

    for lineno, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            t, hands = parse_frame(line)
        except ValueError as e:
            print(f"⚠ line {lineno}: {e}", file=out)
            result.skipped += 1
            continue

        detector.process_frame(hands, t)
        result.frames += 1
        for event in detector.drain_events():
            result.events.append(event)
            print(f"{event.timestamp_ms:10.0f}ms  {event.previous.value:>11} → "
                  f"{event.current.value:<11} ({event.reason})", file=out)

    result.beams_fired = detector.beams_fired
    return result


def main(argv=None):
    parser = argparse.ArgumentParser(description="Replay recorded hand frames through the detector")
    parser.add_argument('frames', nargs='?', default='-',
                        help='JSON-lines file of frames (default: stdin)')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to config.json (default: bundled config)')
    args = parser.parse_args(argv)

    if args.config:
        Config(args.config)
    logging.basicConfig(level=str(config.get('logging', 'level', default='INFO')).upper())

    if args.frames == '-':
        result = replay(sys.stdin)
    else:
        try:
            with open(args.frames, 'r') as f:
                result = replay(f)
        except OSError as e:
            print(f"❌ Could not read {args.frames}: {e}")
            return 1

    print(f"✓ {result.frames} frames, {len(result.events)} transitions, "
          f"{result.beams_fired} beam(s) fired"
          + (f", ⚠ {result.skipped} skipped" if result.skipped else ""))
    return 0


if __name__ == "__main__":
    sys.exit(main())
