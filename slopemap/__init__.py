"""Slopemap - CPU/GPU terrain slope computation for DEM grids

A package that computes Horn-style slope angles for elevation grids on a
multi-core CPU or a CUDA device (memory-budgeted row partitions) and renders
them as a three-color gradient image.
"""

__version__ = "0.1.0"
from .colorize import GradientColorizer
from .config import ExecutionMode, Settings
from .engine import SlopeComputeEngine
from .errors import (AcceleratorAllocationError, AcceleratorUnavailableError, ExportRangeError,
                     MalformedInputError, SlopeMapError)
from .grid import GridStats, build_elevation_grid
from .partition import GridPartition, RowBand, iter_partitions, row_budget
from .pipeline import PipelineContext, run_pipeline

__all__ = ['GradientColorizer',
           'ExecutionMode', 'Settings',
           'SlopeComputeEngine',
           'SlopeMapError', 'MalformedInputError', 'AcceleratorUnavailableError',
           'AcceleratorAllocationError', 'ExportRangeError',
           'GridStats', 'build_elevation_grid',
           'GridPartition', 'RowBand', 'iter_partitions', 'row_budget',
           'PipelineContext', 'run_pipeline']
