"""Horn-style 8-neighbour slope stencil.

All three forms below evaluate the same single precision expression with the
same term order:

    Sew = ((nw + 2*w + e) - (ne + 2*e + se)) / spacing
    Sns = ((nw + 2*n + ne) - (sw + 2*s + se)) / spacing
    slope = atan(sqrt(Sew^2 + Sns^2)) * 180 / pi

Border rows and columns are never evaluated and stay at 0.
"""

import math

import numpy as np

from .partition import RowBand

RADIANS_TO_DEGREES = np.float32(180.0 / math.pi)


def horn_slope(window: np.ndarray, grid_spacing: float) -> np.float32:
    """
    Slope angle in degrees for the centre of a 3x3 elevation window.

    Args:
        window (np.ndarray): 3x3 neighbourhood, ``window[1, 1]`` is the evaluated cell
        grid_spacing (float): Scaled grid spacing from GridStats

    Returns:
        np.float32: Slope in degrees, in [0, 90)
    """
    e = np.asarray(window, dtype=np.float32)
    if e.shape != (3, 3):
        raise ValueError(f"Expected a 3x3 window, got shape {e.shape}")
    spacing = np.float32(grid_spacing)
    slope_ew = ((e[0, 0] + 2 * e[1, 0] + e[1, 2]) - (e[0, 2] + 2 * e[1, 2] + e[2, 2])) / spacing
    slope_ns = ((e[0, 0] + 2 * e[0, 1] + e[0, 2]) - (e[2, 0] + 2 * e[2, 1] + e[2, 2])) / spacing
    return np.float32(np.arctan(np.sqrt(slope_ew * slope_ew + slope_ns * slope_ns)) * RADIANS_TO_DEGREES)


def slope_band(elevation: np.ndarray, band: RowBand, grid_spacing: float, out: np.ndarray) -> None:
    """
    Evaluate the stencil for the interior cells of ``band`` and write them into ``out``.

    Only rows ``band.start .. band.stop - 1`` of ``out`` are written, so bands
    handed to different workers never touch the same memory.
    """
    rows, cols = elevation.shape
    lo = max(band.start, 1)
    hi = min(band.stop, rows - 1)
    if hi <= lo or cols < 3:
        return

    spacing = np.float32(grid_spacing)
    up = elevation[lo - 1:hi - 1]
    mid = elevation[lo:hi]
    down = elevation[lo + 1:hi + 1]
    nw, n, ne = up[:, :-2], up[:, 1:-1], up[:, 2:]
    w, e = mid[:, :-2], mid[:, 2:]
    sw, s, se = down[:, :-2], down[:, 1:-1], down[:, 2:]

    slope_ew = ((nw + 2 * w + e) - (ne + 2 * e + se)) / spacing
    slope_ns = ((nw + 2 * n + ne) - (sw + 2 * s + se)) / spacing
    magnitude = np.sqrt(slope_ew * slope_ew + slope_ns * slope_ns)
    del slope_ew, slope_ns
    out[lo:hi, 1:cols - 1] = np.arctan(magnitude) * RADIANS_TO_DEGREES


def slope_grid(elevation: np.ndarray, grid_spacing: float) -> np.ndarray:
    """Single-threaded reference evaluation over a whole grid."""
    out = np.zeros(elevation.shape, dtype=np.float32)
    slope_band(np.asarray(elevation, dtype=np.float32), RowBand(0, elevation.shape[0]), grid_spacing, out)
    return out


# One thread per cell of a row-major (rows, cols) float32 buffer.
CUDA_SOURCE = r'''
extern "C" __global__
void horn_slope(const float* elev, float* slope, const int rows, const int cols,
                const float spacing, const float rad_to_deg)
{
    long long idx = (long long)blockDim.x * blockIdx.x + threadIdx.x;
    if (idx >= (long long)rows * cols) return;
    int i = (int)(idx / cols);
    int j = (int)(idx % cols);
    if (i < 1 || i >= rows - 1 || j < 1 || j >= cols - 1) return;

    const float* up = elev + (long long)(i - 1) * cols;
    const float* mid = elev + (long long)i * cols;
    const float* down = elev + (long long)(i + 1) * cols;

    float slope_ew = ((up[j - 1] + 2.0f * mid[j - 1] + mid[j + 1]) -
                      (up[j + 1] + 2.0f * mid[j + 1] + down[j + 1])) / spacing;
    float slope_ns = ((up[j - 1] + 2.0f * up[j] + up[j + 1]) -
                      (down[j - 1] + 2.0f * down[j] + down[j + 1])) / spacing;
    slope[idx] = atanf(sqrtf(slope_ew * slope_ew + slope_ns * slope_ns)) * rad_to_deg;
}
'''
CUDA_KERNEL_NAME = "horn_slope"


__all__ = ['RADIANS_TO_DEGREES', 'horn_slope', 'slope_band', 'slope_grid', 'CUDA_SOURCE', 'CUDA_KERNEL_NAME']
