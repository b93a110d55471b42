"""I/O adapters for slopemap: XYZ samples, raster conversion and image export."""

import json
import os
import subprocess
import tempfile
import warnings
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import rasterio
import structlog
from pydantic import BaseModel, ValidationError, field_validator
from rasterio.errors import NotGeoreferencedWarning, RasterioIOError

from .errors import ExportRangeError, MalformedInputError
from .grid import GridStats, build_elevation_grid, format_dimensions, parse_dimensions

logger = structlog.get_logger(__name__)

IMAGE_DRIVERS = {'.png': 'PNG', '.jpg': 'JPEG', '.jpeg': 'JPEG', '.bmp': 'BMP',
                 '.tif': 'GTiff', '.tiff': 'GTiff'}


@dataclass(frozen=True)
class RasterInfo:
    height: int
    width: int


class GdalInfoDocument(BaseModel):
    """The subset of ``gdalinfo -json`` output slopemap relies on."""

    size: List[int]

    @field_validator("size")
    @classmethod
    def _check_size(cls, value: List[int]) -> List[int]:
        if len(value) != 2 or any(v <= 0 for v in value):
            raise ValueError(f"size must be [width, height] with positive entries, got {value}")
        return value


def parse_gdalinfo_json(text: str) -> RasterInfo:
    """
    Decode raster dimensions from ``gdalinfo -json`` output.

    Args:
        text (str): JSON document printed by gdalinfo

    Returns:
        RasterInfo: Raster height and width
    """
    try:
        document = GdalInfoDocument.model_validate(json.loads(text))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise MalformedInputError(f"Unusable gdalinfo output: {exc}") from exc
    width, height = document.size
    return RasterInfo(height=height, width=width)


def read_raster_info(input_path: str, gdalinfo: Optional[str] = None) -> RasterInfo:
    """
    Read raster dimensions with rasterio, or with an external gdalinfo executable.

    Args:
        input_path (str): Path to a GDAL-readable raster
        gdalinfo (str, optional): gdalinfo executable. If None, rasterio is used.

    Returns:
        RasterInfo: Raster height and width
    """
    if not os.path.exists(input_path):
        raise FileNotFoundError(f"Raster file not found: {input_path}")
    if gdalinfo:
        try:
            proc = subprocess.run([gdalinfo, "-json", "-stats", input_path],
                                  capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as exc:
            raise MalformedInputError(
                f"gdalinfo failed on {input_path} (exit {exc.returncode}): {(exc.stderr or '').strip()}") from exc
        return parse_gdalinfo_json(proc.stdout)
    try:
        with rasterio.open(input_path) as src:
            return RasterInfo(height=src.height, width=src.width)
    except RasterioIOError as exc:
        raise MalformedInputError(f"Unreadable raster {input_path}: {exc}") from exc


def read_xyz(input_path: str, height: Optional[int] = None,
             width: Optional[int] = None) -> Tuple[np.ndarray, GridStats]:
    """
    Read an XYZ text grid into an elevation grid.

    Lines hold ``X Y Z`` in scan order (row-major by Y then X). Lines starting
    with ``#`` are comments; a ``# height=H width=W`` comment declares the grid
    dimensions unless they are given explicitly.

    Args:
        input_path (str): Path to the .xyz file
        height (int, optional): Number of rows, overrides the footer
        width (int, optional): Number of columns, overrides the footer

    Returns:
        tuple: (read-only float32 elevation grid, GridStats)
    """
    if not os.path.exists(input_path):
        raise FileNotFoundError(f"XYZ file not found: {input_path}")

    if height is None or width is None:
        footer = None
        with open(input_path, 'r') as f:
            for line in f:
                if line.startswith('#') and 'height=' in line:
                    footer = line
        if footer is None:
            raise MalformedInputError(f"No '# height=H width=W' line in {input_path}")
        footer_height, footer_width = parse_dimensions(footer)
        height = footer_height if height is None else height
        width = footer_width if width is None else width

    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", UserWarning)  # empty input
            samples = np.loadtxt(input_path, comments='#', usecols=(0, 1, 2), ndmin=2)
    except ValueError as exc:
        raise MalformedInputError(f"Unparseable sample line in {input_path}: {exc}") from exc
    if samples.size == 0:
        raise MalformedInputError(f"No samples in {input_path}")

    elevation, stats = build_elevation_grid(samples, height, width)
    logger.info("Read elevation points", path=input_path, height=stats.height,
                width=stats.width, grid_spacing=stats.grid_spacing)
    return elevation, stats


def translate_to_xyz(input_path: str, output_path: Optional[str] = None,
                     gdalinfo: Optional[str] = None) -> str:
    """
    Convert a single-band raster to an XYZ text grid with a dimension footer.

    Args:
        input_path (str): Path to a GDAL-readable raster
        output_path (str, optional): Destination .xyz file. A temporary file is created if None.
        gdalinfo (str, optional): gdalinfo executable used for the dimension footer

    Returns:
        str: Path of the written XYZ file
    """
    info = read_raster_info(input_path, gdalinfo)
    try:
        with rasterio.open(input_path) as src:
            if src.count != 1:
                raise MalformedInputError(f"Expected single-band terrain data, got {src.count} bands")
            dem = src.read(1).astype(np.float64)
            transform = src.transform
    except RasterioIOError as exc:
        raise MalformedInputError(f"Unreadable raster {input_path}: {exc}") from exc

    rows, cols = np.mgrid[0:dem.shape[0], 0:dem.shape[1]]
    xs, ys = transform * (cols.ravel() + 0.5, rows.ravel() + 0.5)
    del rows, cols

    temporary = output_path is None
    if temporary:
        fd, output_path = tempfile.mkstemp(suffix='.xyz', dir=os.getcwd())
        os.close(fd)
    try:
        with open(output_path, 'w') as f:
            np.savetxt(f, np.column_stack([xs, ys, dem.ravel()]), fmt='%.10g')
            f.write(format_dimensions(info.height, info.width) + '\n')
    except Exception:
        if temporary:
            os.remove(output_path)
        raise
    logger.info("Converted raster to XYZ", source=input_path, path=output_path)
    return output_path


def read_elevation(input_path: str, gdalinfo: Optional[str] = None) -> Tuple[np.ndarray, GridStats]:
    """
    Read an elevation grid from an .xyz file or any GDAL-readable raster.

    Rasters go through a temporary XYZ file which is deleted afterwards.
    """
    if input_path.lower().endswith('.xyz'):
        return read_xyz(input_path)

    logger.info("Converting to readable form", path=input_path)
    xyz_path = translate_to_xyz(input_path, gdalinfo=gdalinfo)
    try:
        return read_xyz(xyz_path)
    finally:
        logger.info("Deleting generated XYZ file", path=xyz_path)
        os.remove(xyz_path)


def _check_extent(axis: str, size: int, limit: int) -> None:
    if size > limit:
        raise ExportRangeError(f"Color grid {axis}s {limit}..{size - 1} fall outside the raster ({limit} {axis}s)")


def export_image(colors: np.ndarray, output_path: str, height: Optional[int] = None,
                 width: Optional[int] = None) -> None:
    """
    Write an RGB color grid as a 3-band uint8 image.

    Pixels outside the ``height`` x ``width`` raster are logged and skipped;
    raster pixels not covered by the color grid stay black.

    Args:
        colors (np.ndarray): uint8 array of shape (rows, cols, 3)
        output_path (str): Output image path; the driver follows the extension
        height (int, optional): Raster height. Defaults to the color grid height.
        width (int, optional): Raster width. Defaults to the color grid width.
    """
    if colors.ndim != 3 or colors.shape[2] != 3:
        raise ValueError(f"Expected an RGB grid of shape (rows, cols, 3), got {colors.shape}")
    height = colors.shape[0] if height is None else height
    width = colors.shape[1] if width is None else width

    for axis, size, limit in (("row", colors.shape[0], height), ("column", colors.shape[1], width)):
        try:
            _check_extent(axis, size, limit)
        except ExportRangeError as exc:
            logger.warning("Problem exporting image, skipping pixels", error=str(exc))

    rows = min(height, colors.shape[0])
    cols = min(width, colors.shape[1])
    bands = np.zeros((3, height, width), dtype=np.uint8)
    bands[:, :rows, :cols] = np.moveaxis(colors[:rows, :cols], -1, 0)

    output_dir = os.path.dirname(output_path)
    if output_dir and not os.path.exists(output_dir):
        os.makedirs(output_dir)

    driver = IMAGE_DRIVERS.get(os.path.splitext(output_path)[1].lower(), 'GTiff')
    profile = {'driver': driver, 'height': height, 'width': width, 'count': 3,
               'dtype': rasterio.uint8}
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", NotGeoreferencedWarning)
        with rasterio.open(output_path, 'w', **profile) as dst:
            dst.write(bands)
    logger.info("Exported slope image", path=output_path, driver=driver)


__all__ = ['RasterInfo', 'parse_gdalinfo_json', 'read_raster_info', 'read_xyz',
           'translate_to_xyz', 'read_elevation', 'export_image']
