# vml_localizer/maps/cost_map/gamma_converter.py

import cv2
import numpy as np

class GammaConverter:
    """
    Power-law remap of 8-bit cost values through a 256-entry lookup table.

    out = 255 * (in / 255) ** gamma. With gamma > 1 the top of the range is
    stretched, so small differences close to a lane marking stay distinguishable.
    """
    def __init__(self, gamma=1.0):
        self.reset(gamma)

    def reset(self, gamma):
        if not gamma > 0:
            raise ValueError(f"gamma must be positive, got {gamma}")
        self.gamma = float(gamma)
        levels = np.arange(256, dtype=np.float64) / 255.0
        self._lut = np.clip(np.rint(255.0 * np.power(levels, self.gamma)), 0, 255).astype(np.uint8)

    def __call__(self, image):
        """Applies the lookup table to a uint8 image."""
        return cv2.LUT(np.ascontiguousarray(image, dtype=np.uint8), self._lut)
