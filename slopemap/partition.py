"""Row-band partitioning of elevation grids and stitching of partition results."""

from dataclasses import dataclass
from typing import Iterator, List

import numpy as np

from .config import DEFAULT_BYTES_PER_GB_ALLOWANCE

BYTES_PER_GB = 1073741824


@dataclass(frozen=True)
class RowBand:
    """Half-open row range ``[start, stop)`` owned by exactly one worker or partition."""

    start: int
    stop: int

    @property
    def count(self) -> int:
        return self.stop - self.start


@dataclass(frozen=True)
class GridPartition:
    """A row band of the elevation grid together with its own buffer."""

    band: RowBand
    data: np.ndarray


def row_budget(memory_bytes: int, width: int,
               bytes_per_gb_allowance: int = DEFAULT_BYTES_PER_GB_ALLOWANCE) -> int:
    """
    Maximum number of grid rows one partition may hold on the device.

    Args:
        memory_bytes (int): Total device memory (or configured budget) in bytes
        width (int): Grid width in cells
        bytes_per_gb_allowance (int): Allowed bytes per whole GB of device memory

    Returns:
        int: ``floor(allowance * floor(memory / GB) / width)``
    """
    if width <= 0:
        raise ValueError("Grid width must be positive")
    return (bytes_per_gb_allowance * (memory_bytes // BYTES_PER_GB)) // width


def split_rows(start: int, stop: int, parts: int) -> List[RowBand]:
    """Split ``[start, stop)`` into at most ``parts`` contiguous, non-empty bands."""
    total = stop - start
    if total <= 0:
        return []
    parts = max(1, min(parts, total))
    base, extra = divmod(total, parts)
    bands = []
    row = start
    for k in range(parts):
        count = base + (1 if k < extra else 0)
        bands.append(RowBand(row, row + count))
        row += count
    return bands


def plan_partitions(height: int, budget: int) -> List[RowBand]:
    """Row bands of at most ``budget`` rows covering ``[0, height)`` in order."""
    if budget <= 0:
        raise ValueError(f"Row budget must be positive, got {budget}")
    return [RowBand(i, min(i + budget, height)) for i in range(0, height, budget)]


def iter_partitions(elevation: np.ndarray, budget: int) -> Iterator[GridPartition]:
    """
    Yield self-contained partitions of ``elevation`` in original row order.

    When the whole grid fits the budget a single partition aliasing the grid
    is produced. Otherwise every partition gets its own copy of its rows and
    has no access to neighbouring bands, so its first and last rows are
    treated as stencil borders.

    Args:
        elevation (np.ndarray): Full elevation grid
        budget (int): Maximum rows per partition

    Yields:
        GridPartition: Band descriptor with its row buffer
    """
    height = elevation.shape[0]
    if budget >= height:
        yield GridPartition(RowBand(0, height), elevation)
        return
    for band in plan_partitions(height, budget):
        yield GridPartition(band, elevation[band.start:band.stop].copy())


def stitch(slope: np.ndarray, band: RowBand, result: np.ndarray) -> None:
    """Write a partition result into its absolute row range of the full slope grid."""
    if result.shape != (band.count, slope.shape[1]):
        raise ValueError(f"Partition result of shape {result.shape} does not fit band {band}")
    slope[band.start:band.stop] = result


__all__ = ['RowBand', 'GridPartition', 'BYTES_PER_GB', 'row_budget', 'split_rows',
           'plan_partitions', 'iter_partitions', 'stitch']
