"""
Configuration Management for the Kamehameha gesture detector

Loads and provides access to configuration from config.json.
Allows runtime configuration of every pose threshold and timing constant.
Supports both old format (direct values) and new format ([value, description]).
"""

import dataclasses
import json
import logging
from typing import Dict, Any, Optional, Tuple
from pathlib import Path

logger = logging.getLogger(__name__)


class Config:
    """
    Singleton configuration manager that loads from config.json
    """
    _instance = None
    _config_data: Dict[str, Any] = {}
    _config_path: str = ""

    def __new__(cls, *args, **kwargs):
        # Allow passing through extra args (e.g., Config(path)) without
        # breaking the singleton __new__ signature.
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration from JSON file.

        Args:
            config_path: Path to config.json. If provided, force reload from
                         that path. If None, load from the default location
                         only on first initialization.
        """
        if config_path is not None:
            self._config_path = str(config_path)
            self.reload()
            return

        if not self._config_data:  # Only load once
            self._config_path = str(default_config_path())
            self.reload()

    def reload(self):
        """Reload configuration from file."""
        try:
            with open(self._config_path, 'r') as f:
                self._config_data = json.load(f)
            logger.info("✓ Loaded configuration from %s", self._config_path)
        except FileNotFoundError:
            logger.warning("⚠ Config file not found: %s, using default values", self._config_path)
            self._config_data = self._get_defaults()
        except json.JSONDecodeError as e:
            logger.warning("⚠ Error parsing config file %s: %s, using default values", self._config_path, e)
            self._config_data = self._get_defaults()

    def save(self) -> bool:
        """Save current configuration back to file."""
        try:
            with open(self._config_path, 'w') as f:
                json.dump(self._config_data, f, indent=2)
        except OSError as e:
            logger.error("✗ Error saving config to %s: %s", self._config_path, e)
            return False
        logger.info("✓ Saved configuration to %s", self._config_path)
        return True

    def get(self, *keys, default=None) -> Any:
        """
        Get configuration value using dot notation.
        Handles both old format (direct values) and new format ([value, description]).

        Examples:
            config.get('camera', 'width')  # Returns 640
            config.get('charging_pose', 'min_wrist_distance')

        Args:
            keys: Path to value (e.g., 'firing_pose', 'min_score')
            default: Default value if path doesn't exist

        Returns:
            Configuration value or default
        """
        current = self._config_data
        for key in keys:
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default

        # Handle new [value, description] format
        if _is_described(current):
            return current[0]

        return current

    def get_with_description(self, *keys, default=None) -> Tuple[Any, str]:
        """
        Get configuration value AND description.

        Returns:
            Tuple of (value, description) or (default, "")
        """
        current = self._config_data
        for key in keys:
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return (default, "")

        if _is_described(current):
            return (current[0], current[1])

        return (current, "")

    def set(self, *keys, value):
        """
        Set configuration value using dot notation.
        Keeps the description when the existing entry is a [value, description] pair.

        Example:
            config.set('state_machine', 'positioning_frames', value=20)
        """
        if len(keys) == 0:
            return

        current = self._config_data
        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        existing = current.get(keys[-1])
        if _is_described(existing):
            current[keys[-1]] = [value, existing[1]]
        else:
            current[keys[-1]] = value

    def _get_defaults(self) -> Dict:
        """Return default configuration values."""
        return {
            "charging_pose": {
                "min_wrist_distance": 30.0,
                "max_wrist_distance": 120.0,
                "min_v_angle": 120.0,
                "max_v_angle": 180.0,
                "max_palm_angle": 45.0,
                "left_thumb_angle_range": [90.0, 150.0],
                "right_thumb_angle_range": [30.0, 90.0],
                "min_finger_spread": 100.0,
                "min_finger_intensity": 0.7,
                "spread_normalizer": 150.0,
                "extension_normalizer": 80.0,
                "funnel_distance_ratio": 1.2,
                "max_funnel_angle": 45.0,
                "funnel_excellent_angle": 20.0,
                "funnel_good_angle": 35.0,
                "sphere_wrist_blend": 0.3,
                "min_score": 2
            },
            "firing_pose": {
                "expected_curl_distance": 40.0,
                "curl_tolerance": 20.0,
                "max_vertical_offset": 30.0,
                "min_hand_distance": 80.0,
                "max_hand_distance": 200.0,
                "left_inward_angle_range": [-45.0, 45.0],
                "right_inward_min_abs_angle": 135.0,
                "sphere_distance_tolerance": 20.0,
                "min_sphere_radius": 30.0,
                "max_sphere_radius": 100.0,
                "sphere_wrist_blend": 0.3,
                "min_score": 2
            },
            "state_machine": {
                "positioning_frames": 15,
                "min_charging_ms": 5000,
                "max_charging_ms": 20000,
                "max_firing_ms": 15000,
                "min_firing_ms": 1875,
                "max_firing_frames": 120,
                "firing_stability_threshold": 5
            },
            "beam_direction": {
                "mirror_x": False,
                "video_width": 640,
                "forward_vector": [1.0, 0.0],
                "min_convergence_magnitude": 10.0,
                "min_wrist_axis_length": 10.0,
                "sphere_wrist_blend": 0.3,
                "beam_length": 1000.0
            },
            "position_history": {
                "max_length": 10,
                "ewma_alpha": 0.4
            },
            "camera": {
                "index": 0,
                "width": 640,
                "height": 480,
                "fps": 30
            },
            "display": {
                "flip_horizontal": True,
                "show_pose_details": True,
                "window_name": "Kamehameha"
            },
            "performance": {
                "max_hands": 2,
                "min_detection_confidence": 0.7,
                "min_tracking_confidence": 0.5
            },
            "logging": {
                "level": "INFO"
            }
        }

    @property
    def data(self) -> Dict:
        """Get entire configuration dictionary."""
        return self._config_data

    @property
    def path(self) -> str:
        return self._config_path


def _is_described(entry) -> bool:
    # [value, "description"]; plain 2-element number lists (ranges) are values
    return isinstance(entry, list) and len(entry) == 2 and isinstance(entry[1], str)


def default_config_path() -> Path:
    return Path(__file__).parent / "config.json"


def dataclass_from_section(cls, section: str, cfg: Optional['Config'] = None):
    """
    Build a frozen settings dataclass from one config section.

    Each field is read as `section.<field name>`; missing keys keep the
    dataclass default. Values are coerced to the type of the default, with
    list values becoming tuples.
    """
    source = cfg if cfg is not None else config
    kwargs = {}
    for f in dataclasses.fields(cls):
        if f.default is dataclasses.MISSING:
            continue
        value = source.get(section, f.name, default=f.default)
        if isinstance(f.default, bool):
            value = bool(value)
        elif isinstance(f.default, int):
            value = int(value)
        elif isinstance(f.default, float):
            value = float(value)
        elif isinstance(f.default, tuple):
            value = tuple(float(v) for v in value)
        kwargs[f.name] = value
    return cls(**kwargs)


# Global configuration instance
config = Config()

