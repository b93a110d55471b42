import numpy as np
import pytest
from slopemap.colorize import GradientColorizer, HIGH_COLOR, LOW_COLOR, MEDIUM_COLOR, SENTINEL_COLOR
from slopemap.grid import GridStats
from slopemap.engine import SlopeComputeEngine


@pytest.fixture
def colorizer():
    return GradientColorizer()


def test_color_stops(colorizer):
    assert colorizer.colorize_value(0.0) == LOW_COLOR
    assert colorizer.colorize_value(22.5) == MEDIUM_COLOR
    assert colorizer.colorize_value(45.0) == HIGH_COLOR


def test_ceiling_clamps_to_high(colorizer):
    assert colorizer.colorize_value(80.5) == HIGH_COLOR
    assert colorizer.colorize_value(89.9) == HIGH_COLOR


def test_negative_slope_is_sentinel(colorizer):
    assert colorizer.colorize_value(-0.1) == SENTINEL_COLOR
    grid = np.array([[1.0, -2.0], [3.0, 4.0]], dtype=np.float32)
    colors = colorizer.colorize(grid, mark_border=False)
    assert tuple(colors[0, 1]) == SENTINEL_COLOR


def test_midpoint_segments(colorizer):
    # Quarter of the ceiling sits halfway between low and medium
    assert colorizer.colorize_value(11.25) == (128, 255, 0)
    # Three quarters sits halfway between medium and high
    assert colorizer.colorize_value(33.75) == (255, 128, 0)


def test_monotonic_segments(colorizer):
    lower = [colorizer.colorize_value(s) for s in np.linspace(0.0, 22.4, 60)]
    reds = [c[0] for c in lower]
    assert reds == sorted(reds)
    assert reds[0] < reds[-1]

    upper = [colorizer.colorize_value(s) for s in np.linspace(22.5, 45.0, 60)]
    greens = [c[1] for c in upper]
    assert greens == sorted(greens, reverse=True)
    assert greens[0] > greens[-1]


def test_grid_matches_scalar_mapping(colorizer):
    rng = np.random.default_rng(3)
    slope = rng.uniform(0.0, 60.0, size=(6, 7)).astype(np.float32)
    colors = colorizer.colorize(slope, mark_border=False)
    assert colors.dtype == np.uint8
    assert colors.shape == (6, 7, 3)
    for (i, j), value in np.ndenumerate(slope):
        assert tuple(colors[i, j]) == colorizer.colorize_value(float(value))


def test_flat_grid_low_inside_black_border(colorizer):
    elevation = np.full((5, 5), 100.0, dtype=np.float32)
    slope = SlopeComputeEngine().compute(elevation, GridStats(5, 5, 1.0))
    colors = colorizer.colorize(slope)
    assert np.all(colors[1:-1, 1:-1] == LOW_COLOR)
    for edge in (colors[0], colors[-1], colors[:, 0], colors[:, -1]):
        assert np.all(edge == SENTINEL_COLOR)


def test_steep_ramp_maps_to_high(colorizer):
    elevation = np.tile(100.0 - np.arange(5, dtype=np.float32), (5, 1))
    slope = SlopeComputeEngine().compute(elevation, GridStats(5, 5, 1.0))
    assert np.all(slope[1:-1, 1:-1] > 45.0)
    colors = colorizer.colorize(slope)
    assert np.all(colors[1:-1, 1:-1] == HIGH_COLOR)


def test_custom_ceiling():
    colorizer = GradientColorizer(max_angle=90.0)
    assert colorizer.colorize_value(45.0) == MEDIUM_COLOR


@pytest.mark.parametrize("kwargs", [{"max_angle": 0}, {"low": (0, 256, 0)}, {"high": (1, 2)}])
def test_invalid_parameters(kwargs):
    with pytest.raises(ValueError):
        GradientColorizer(**kwargs)
