# vml_localizer/utils/geometry_utils.py

import logging
import math
import numpy as np

logger = logging.getLogger(__name__)

def planar_squared_distance(points, origin):
    """
    Squared 2D (x, y) distance between point(s) and an origin.
    Points can be a single [x, y(, z)] or an (N, 2+) array.
    """
    pts = np.asarray(points, dtype=np.float64)
    o = np.asarray(origin, dtype=np.float64)
    d = pts[..., :2] - o[:2]
    return np.sum(d * d, axis=-1)

def heading_to_vector(heading_deg):
    """
    Converts a heading angle in degrees to a 2D unit vector [vx, vy].
    0 degrees is +X, 90 degrees is +Y.
    Accepts a scalar or an array of headings.
    """
    heading_rad = np.radians(heading_deg)
    return np.stack([np.cos(heading_rad), np.sin(heading_rad)], axis=-1)

def abs_cos(direction, heading_deg):
    """
    Absolute cosine similarity between a direction vector and an unsigned
    (axis-only) heading, so a line and its reverse score the same.

    Args:
        direction (array-like): Direction vector [dx, dy(, dz)]; only x, y are used.
        heading_deg (float or numpy.ndarray): Heading(s) in degrees.

    Returns:
        float or numpy.ndarray: |normalize(direction) . (cos, sin)|, 0 for a zero-length direction.
    """
    d = np.asarray(direction, dtype=np.float64)[:2]
    norm = math.hypot(d[0], d[1])
    if norm == 0.0 or not math.isfinite(norm):
        return np.zeros_like(np.asarray(heading_deg, dtype=np.float64))
    return np.abs(heading_to_vector(heading_deg) @ (d / norm))

def segment_heading_deg(start, end):
    """
    Unsigned heading of the segment start->end in degrees, folded into [0, 180).
    """
    deg = math.degrees(math.atan2(end[1] - start[1], end[0] - start[0]))
    deg = deg % 180.0
    return deg

def normalize_angle(angle_rad):
    """Wraps an angle in radians to [-pi, pi)."""
    return (angle_rad + math.pi) % (2.0 * math.pi) - math.pi
