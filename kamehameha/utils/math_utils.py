import numpy as np
from typing import Iterable, Optional, Tuple, Union


def landmarks_to_array(landmarks: Iterable, with_z: bool = False) -> np.ndarray:
    """Convert an iterable of landmarks with .x and .y into an Nx2 NumPy array.

    Args:
        landmarks: iterable of objects with `.x`, `.y` (and optionally `.z`)
        with_z: include a third column with `.z` (0.0 when the attribute is missing)

    Returns:
        np.ndarray of shape (N, 2) or (N, 3), dtype float.
    """
    if with_z:
        return np.array([[lm.x, lm.y, getattr(lm, 'z', 0.0)] for lm in landmarks], dtype=float)
    return np.array([[lm.x, lm.y] for lm in landmarks], dtype=float)


def normalized_to_pixels(
    norm_xy: Union[Tuple[float, float], np.ndarray], frame_shape: Tuple[int, ...], as_int: bool = True
) -> np.ndarray:
    """Map normalized coordinates (0..1) to pixel coordinates and clip to frame bounds.

    Accepts a single point `(x,y)` or an array of points shape `(N,2)`.

    Args:
        norm_xy: (2,) or (N,2) array-like with values in 0..1
        frame_shape: frame shape as returned by `frame.shape` (height, width, ...)
        as_int: round down to integer pixel indices (drawing); keep floats for geometry

    Returns:
        np.ndarray with same leading shape as `norm_xy`, mapped to pixels.
    """
    h, w = int(frame_shape[0]), int(frame_shape[1])
    arr = np.asarray(norm_xy, dtype=float)

    # Handle single point (2,) -> convert to (1,2) for unified processing
    single = False
    if arr.ndim == 1:
        if arr.size != 2:
            raise ValueError("norm_xy must be shape (2,) or (N,2)")
        arr = arr.reshape((1, 2))
        single = True

    arr_px = np.empty_like(arr)
    arr_px[..., 0] = np.clip(arr[..., 0] * w, 0, w - 1)
    arr_px[..., 1] = np.clip(arr[..., 1] * h, 0, h - 1)

    if as_int:
        arr_px = arr_px.astype(int)
    return arr_px[0] if single else arr_px


def euclidean(a, b):
    """Euclidean distance between points.

    - If `a` and `b` are 1-D points, returns a scalar.
    - If arrays of points, returns distances per-row.
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    return np.linalg.norm(a - b, axis=-1)


def midpoint(a, b) -> np.ndarray:
    """Point halfway between `a` and `b`."""
    return (np.asarray(a, dtype=float) + np.asarray(b, dtype=float)) / 2.0


def safe_unit(v, default) -> np.ndarray:
    """Normalize `v` to unit length; return `default` for a zero-length vector."""
    v = np.asarray(v, dtype=float)
    n = float(np.linalg.norm(v))
    if n == 0.0 or not np.isfinite(n):
        return np.asarray(default, dtype=float)
    return v / n


def heading_deg(v) -> float:
    """atan2 heading of a 2-D vector in degrees, in (-180, 180]."""
    return float(np.degrees(np.arctan2(v[1], v[0])))


def angle_between_deg(u, v) -> Optional[float]:
    """Unsigned angle between two vectors in degrees (0..180).

    Returns None when either vector has zero length.
    """
    u = np.asarray(u, dtype=float)
    v = np.asarray(v, dtype=float)
    nu = float(np.linalg.norm(u))
    nv = float(np.linalg.norm(v))
    if nu == 0.0 or nv == 0.0:
        return None
    cos = float(np.dot(u, v)) / (nu * nv)
    return float(np.degrees(np.arccos(np.clip(cos, -1.0, 1.0))))


def distance_point_to_segment(p, a, b) -> float:
    """Shortest distance from point `p` to the segment `a`-`b`."""
    p = np.asarray(p, dtype=float)
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    ab = b - a
    len_sq = float(np.dot(ab, ab))
    if len_sq == 0.0:
        return float(np.linalg.norm(p - a))
    t = float(np.clip(np.dot(p - a, ab) / len_sq, 0.0, 1.0))
    return float(np.linalg.norm(p - (a + t * ab)))


class EWMA:
    """Exponential weighted moving average for smoothing 1-D or 2-D points.

    Example:
        s = EWMA(alpha=0.2)
        smoothed = s.update([x, y])
    """

    def __init__(self, alpha: float = 0.2, init: Union[None, Iterable] = None) -> None:
        self.alpha = float(alpha)
        self.value = None if init is None else np.array(init, dtype=float)

    def update(self, x: Iterable) -> np.ndarray:
        x = np.array(x, dtype=float)
        if self.value is None:
            self.value = x
        else:
            self.value = self.alpha * x + (1 - self.alpha) * self.value
        return self.value


__all__ = [
    "landmarks_to_array",
    "normalized_to_pixels",
    "euclidean",
    "midpoint",
    "safe_unit",
    "heading_deg",
    "angle_between_deg",
    "distance_point_to_segment",
    "EWMA",
]
