# vml_localizer/utils/color_scale.py

import numpy as np

def hsv_to_rgb(h, s, v):
    """
    Converts an HSV color to RGB.

    Args:
        h (float): Hue in degrees, clamped to [0, 360].
        s (float): Saturation in [0, 1].
        v (float): Value in [0, 1].

    Returns:
        tuple: (r, g, b) floats in [0, 1].
    """
    h = min(max(float(h), 0.0), 360.0)
    hi = v
    lo = hi * (1.0 - s)

    if h < 60:
        return (hi, h / 60 * (hi - lo) + lo, lo)
    elif h < 120:
        return ((120 - h) / 60 * (hi - lo) + lo, hi, lo)
    elif h < 180:
        return (lo, hi, (h - 120) / 60 * (hi - lo) + lo)
    elif h < 240:
        return (lo, (240 - h) / 60 * (hi - lo) + lo, hi)
    elif h < 300:
        return ((h - 240) / 60 * (hi - lo) + lo, lo, hi)
    else:
        return (hi, lo, (360 - h) / 60 * (hi - lo) + lo)

def blue_red(value):
    """
    Diverging color scale: 0 -> red, 0.5 -> white, 1 -> blue.

    Args:
        value (float): Normalized value, clamped to [0, 1].

    Returns:
        tuple: (r, g, b) floats in [0, 1].
    """
    value = min(max(float(value), 0.0), 1.0)
    h = 0.0 if value < 0.5 else 240.0
    s = abs(value - 0.5) / 0.5
    return hsv_to_rgb(h, s, 1.0)

def blue_red_bytes(values):
    """Maps an array of normalized values to an (N, 3) uint8 RGB array with `blue_red`."""
    values = np.asarray(values, dtype=np.float64).ravel()
    colors = np.array([blue_red(v) for v in values], dtype=np.float64).reshape(-1, 3)
    return np.clip(np.rint(colors * 255.0), 0, 255).astype(np.uint8)
