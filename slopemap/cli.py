"""Command line entry point: ``slopemap -i dem.tif -o slope.png -m gpu``."""

import argparse
import sys
from typing import List, Optional

import structlog
from pydantic import ValidationError

from .config import Settings
from .errors import SlopeMapError
from .log import configure_logging
from .pipeline import run_pipeline

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slopemap",
        description="Compute terrain slope from a DEM and render it as a color gradient image.")
    parser.add_argument("-i", "--input", required=True, help="Input .xyz grid or GDAL-readable raster")
    parser.add_argument("-o", "--output", required=True, help="Output image (.png, .jpg, .bmp, .tif)")
    parser.add_argument("-m", "--mode", choices=["cpu", "gpu", "accelerator"], default=None,
                        help="Execution mode (default: cpu)")
    parser.add_argument("-b", "--benchmark", type=int, default=None, metavar="N",
                        help="Repeat the slope computation N times and report the average")
    parser.add_argument("--workers", type=int, default=None, help="CPU worker threads")
    parser.add_argument("--memory-budget", type=int, default=None, metavar="BYTES",
                        help="Device memory budget instead of the queried total")
    parser.add_argument("--log-format", choices=["console", "json"], default=None)
    return parser


def _settings_from_args(args: argparse.Namespace) -> Settings:
    overrides = {
        "execution_mode": args.mode,
        "iterations": args.benchmark,
        "cpu_workers": args.workers,
        "device_memory_budget_bytes": args.memory_budget,
        "log_format": args.log_format,
    }
    return Settings(**{k: v for k, v in overrides.items() if v is not None})


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = _settings_from_args(args)
    except ValidationError as exc:
        parser.error(str(exc))

    configure_logging(settings.log_level, settings.log_format)
    try:
        run_pipeline(settings, args.input, args.output)
    except (SlopeMapError, FileNotFoundError) as exc:
        logger.error("Slope run failed", error=str(exc), error_type=type(exc).__name__)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
