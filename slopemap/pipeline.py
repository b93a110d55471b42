"""Per-run pipeline: ingest -> compute -> colorize -> export."""

import time
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import structlog

from .colorize import GradientColorizer
from .config import Settings
from .engine import SlopeComputeEngine
from .grid import GridStats
from .utils import export_image, read_elevation

logger = structlog.get_logger(__name__)


@dataclass
class PipelineContext:
    """State of one run, created once and handed from stage to stage."""

    settings: Settings
    elevation: Optional[np.ndarray] = None
    stats: Optional[GridStats] = None
    slope: Optional[np.ndarray] = None
    colors: Optional[np.ndarray] = None
    timings_ms: List[float] = field(default_factory=list)

    @property
    def average_ms(self) -> float:
        return sum(self.timings_ms) / len(self.timings_ms) if self.timings_ms else 0.0


def ingest(context: PipelineContext, input_path: str) -> PipelineContext:
    context.elevation, context.stats = read_elevation(input_path, gdalinfo=context.settings.gdalinfo_path)
    return context


def compute(context: PipelineContext, engine: Optional[SlopeComputeEngine] = None) -> PipelineContext:
    """Run the slope computation ``settings.iterations`` times, keeping the last result."""
    settings = context.settings
    if engine is None:
        engine = SlopeComputeEngine(mode=settings.execution_mode, workers=settings.workers,
                                    device_id=settings.device_id,
                                    memory_budget_bytes=settings.device_memory_budget_bytes,
                                    bytes_per_gb_allowance=settings.bytes_per_gb_allowance)
    for _ in range(settings.iterations):
        started = time.perf_counter()
        slope = engine.compute(context.elevation, context.stats)
        elapsed = (time.perf_counter() - started) * 1000.0
        context.timings_ms.append(elapsed)
        logger.info("Calculations finished", mode=engine.mode.value, elapsed_ms=round(elapsed, 3))
    if settings.iterations > 1:
        logger.info("Benchmark average", iterations=settings.iterations, average_ms=round(context.average_ms, 3))
    slope.setflags(write=False)
    context.slope = slope
    return context


def colorize(context: PipelineContext) -> PipelineContext:
    colorizer = GradientColorizer(max_angle=context.settings.max_angle)
    context.colors = colorizer.colorize(context.slope)
    return context


def export(context: PipelineContext, output_path: str) -> PipelineContext:
    export_image(context.colors, output_path, context.stats.height, context.stats.width)
    return context


def run_pipeline(settings: Settings, input_path: str, output_path: str,
                 engine: Optional[SlopeComputeEngine] = None) -> PipelineContext:
    """
    Turn an elevation file into a colored slope image.

    Args:
        settings (Settings): Run configuration
        input_path (str): .xyz grid or GDAL-readable raster
        output_path (str): Output image path
        engine (SlopeComputeEngine, optional): Preconfigured engine, built from settings if None

    Returns:
        PipelineContext: The finished run
    """
    context = PipelineContext(settings=settings)
    ingest(context, input_path)
    compute(context, engine)
    logger.info("Normalizing slope for gradient and exporting image")
    colorize(context)
    export(context, output_path)
    logger.info("Finished", output=output_path)
    return context


__all__ = ['PipelineContext', 'ingest', 'compute', 'colorize', 'export', 'run_pipeline']
