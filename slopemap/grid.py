"""Elevation grid construction and derived grid statistics."""

import re
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .errors import MalformedInputError

# Compensates for the 2-cell wide, 4-weight finite difference denominator of the stencil
SPACING_FACTOR = 8.0

_HEIGHT_RE = re.compile(r"height=(-?\d+)")
_WIDTH_RE = re.compile(r"width=(-?\d+)")


@dataclass(frozen=True)
class GridStats:
    """Scalar metadata computed once per elevation grid."""

    height: int
    width: int
    grid_spacing: float

    @property
    def shape(self) -> Tuple[int, int]:
        return self.height, self.width

    @classmethod
    def from_samples(cls, xs: np.ndarray, height: int, width: int) -> "GridStats":
        """
        Derive grid statistics from the X coordinates of the sample stream.

        The spacing is ``8 * |X2 - X1|`` where X1, X2 are the first two distinct
        consecutive X values in scan order.

        Args:
            xs (np.ndarray): X coordinates in scan order
            height (int): Declared number of rows
            width (int): Declared number of columns

        Returns:
            GridStats: Validated statistics
        """
        check_dimensions(height, width)
        xs = np.asarray(xs, dtype=np.float64)
        if xs.size < 2:
            raise MalformedInputError(f"At least 2 samples are needed to derive grid spacing, got {xs.size}")
        steps = np.diff(xs)
        changed = np.flatnonzero(steps)
        if changed.size == 0:
            raise MalformedInputError("Grid spacing is undeterminable: all samples share one X coordinate")
        spacing = SPACING_FACTOR * abs(float(steps[changed[0]]))
        return cls(height=int(height), width=int(width), grid_spacing=spacing)


def check_dimensions(height: Optional[int], width: Optional[int]) -> None:
    if height is None or width is None:
        raise MalformedInputError("Grid height and width must both be declared")
    if height <= 0 or width <= 0:
        raise MalformedInputError(f"Grid dimensions must be positive, got {height}x{width}")


def parse_dimensions(line: str) -> Tuple[int, int]:
    """Parse a ``# height=H width=W`` footer line into ``(height, width)``."""
    height = _HEIGHT_RE.search(line)
    width = _WIDTH_RE.search(line)
    if height is None or width is None:
        raise MalformedInputError(f"Dimension footer is missing height or width: {line.strip()!r}")
    dims = int(height.group(1)), int(width.group(1))
    check_dimensions(*dims)
    return dims


def format_dimensions(height: int, width: int) -> str:
    return f"# height={height} width={width}"


def build_elevation_grid(samples: np.ndarray, height: int, width: int) -> Tuple[np.ndarray, GridStats]:
    """
    Build the read-only elevation grid and its statistics from sample triples.

    Args:
        samples (np.ndarray): ``(n, 3)`` array of X, Y, elevation rows, row-major by Y then X
        height (int): Declared number of rows
        width (int): Declared number of columns

    Returns:
        tuple: (float32 elevation grid of shape (height, width), GridStats)
    """
    check_dimensions(height, width)
    samples = np.asarray(samples, dtype=np.float64)
    if samples.ndim != 2 or samples.shape[1] < 3:
        raise MalformedInputError(f"Expected X Y Z sample triples, got array of shape {samples.shape}")
    if samples.shape[0] != height * width:
        raise MalformedInputError(
            f"Declared {height}x{width} grid needs {height * width} samples, got {samples.shape[0]}")

    stats = GridStats.from_samples(samples[:, 0], height, width)
    elevation = samples[:, 2].astype(np.float32).reshape(height, width)
    # Missing samples, below sea level or sensor noise floor
    np.nan_to_num(elevation, copy=False, nan=0.0)
    np.maximum(elevation, np.float32(0.0), out=elevation)
    elevation.setflags(write=False)
    return elevation, stats


__all__ = ['GridStats', 'SPACING_FACTOR', 'build_elevation_grid', 'check_dimensions',
           'parse_dimensions', 'format_dimensions']
