"""Three-stop color gradient for slope grids."""

from typing import Tuple

import numpy as np

RGB = Tuple[int, int, int]

LOW_COLOR: RGB = (0, 255, 0)
MEDIUM_COLOR: RGB = (255, 255, 0)
HIGH_COLOR: RGB = (255, 0, 0)
SENTINEL_COLOR: RGB = (0, 0, 0)


class GradientColorizer:
    def __init__(self, max_angle: float = 45.0, low: RGB = LOW_COLOR, medium: RGB = MEDIUM_COLOR,
                 high: RGB = HIGH_COLOR, sentinel: RGB = SENTINEL_COLOR) -> None:
        """
        Initialize the slope colorizer.

        Args:
            max_angle (float): Slope in degrees mapped to the high color. Default is 45.0.
            low (RGB): Color for 0 degrees. Default is green.
            medium (RGB): Color for half of ``max_angle``. Default is yellow.
            high (RGB): Color for ``max_angle`` and above. Default is red.
            sentinel (RGB): Color for negative slopes and grid borders. Default is black.
        """
        if max_angle <= 0:
            raise ValueError("max_angle must be > 0 degrees")
        for name, color in (("low", low), ("medium", medium), ("high", high), ("sentinel", sentinel)):
            if len(color) != 3 or any(not 0 <= c <= 255 for c in color):
                raise ValueError(f"{name} color must be an RGB triple in 0..255, got {color}")
        self.max_angle = float(max_angle)
        self.low = np.array(low, dtype=np.float64)
        self.medium = np.array(medium, dtype=np.float64)
        self.high = np.array(high, dtype=np.float64)
        self.sentinel = np.array(sentinel, dtype=np.uint8)

    def normalize(self, slope):
        """Slope in degrees to [0, 1] relative to the ceiling angle."""
        return np.clip(np.asarray(slope, dtype=np.float64) / self.max_angle, 0.0, 1.0)

    def _interpolate(self, value: np.ndarray) -> np.ndarray:
        # value has shape (..., 1) so stops broadcast over the RGB axis
        lower = self.medium * value * 2.0 + self.low * (0.5 - value) * 2.0
        upper = self.high * (value - 0.5) * 2.0 + self.medium * (1.0 - value) * 2.0
        rgb = np.where(value < 0.5, lower, upper)
        return np.rint(rgb).astype(np.uint8)

    def colorize_value(self, slope: float) -> RGB:
        """Color of a single slope value in degrees."""
        if slope < 0:
            return tuple(int(c) for c in self.sentinel)
        value = self.normalize(slope).reshape(1)
        return tuple(int(c) for c in self._interpolate(value))

    def colorize(self, slope: np.ndarray, mark_border: bool = True) -> np.ndarray:
        """
        Map a slope grid to an RGB color grid.

        Args:
            slope (np.ndarray): Slope grid in degrees
            mark_border (bool): Paint the outer row/column frame with the sentinel color,
                since the stencil computes no slope there.

        Returns:
            np.ndarray: uint8 array of shape ``slope.shape + (3,)``
        """
        slope = np.asarray(slope)
        value = self.normalize(slope)[..., np.newaxis]
        colors = self._interpolate(value)
        colors[slope < 0] = self.sentinel
        if mark_border and colors.ndim == 3 and colors.size:
            colors[0, :] = self.sentinel
            colors[-1, :] = self.sentinel
            colors[:, 0] = self.sentinel
            colors[:, -1] = self.sentinel
        return colors


__all__ = ['GradientColorizer', 'LOW_COLOR', 'MEDIUM_COLOR', 'HIGH_COLOR', 'SENTINEL_COLOR']
