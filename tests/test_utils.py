import os
import subprocess
import warnings

import numpy as np
import pytest
import rasterio
from unittest.mock import patch
from rasterio.errors import NotGeoreferencedWarning
from rasterio.transform import from_origin
from slopemap.errors import MalformedInputError
from slopemap.utils import (export_image, parse_gdalinfo_json, read_elevation, read_raster_info,
                            read_xyz, translate_to_xyz)


@pytest.fixture
def small_dem():
    return np.array([
        [100, 120, 130, 140],
        [110, 150, 160, 170],
        [200, 210, 220, 230],
    ], dtype=np.float32)


def write_xyz(path, dem, spacing=10.0, footer=True):
    with open(path, 'w') as f:
        for i, row in enumerate(dem):
            for j, z in enumerate(row):
                f.write(f"{100 + spacing * j} {50 - spacing * i} {z}\n")
        if footer:
            f.write(f"# height={dem.shape[0]} width={dem.shape[1]}\n")
    return str(path)


@pytest.fixture
def small_tif(tmp_path, small_dem):
    path = str(tmp_path / "small_dem.tif")
    profile = {
        'driver': 'GTiff', 'height': 3, 'width': 4, 'count': 1,
        'dtype': rasterio.float32, 'crs': 'EPSG:32633',
        'transform': from_origin(1000.0, 2000.0, 30.0, 30.0),
    }
    with rasterio.open(path, 'w', **profile) as dst:
        dst.write(small_dem, 1)
    return path


def test_read_xyz(tmp_path, small_dem):
    dem = small_dem.copy()
    dem[0, 0] = -12.0
    elevation, stats = read_xyz(write_xyz(tmp_path / "dem.xyz", dem))
    assert elevation.shape == (3, 4)
    assert elevation[0, 0] == 0.0
    np.testing.assert_array_equal(elevation[1:], small_dem[1:])
    assert (stats.height, stats.width, stats.grid_spacing) == (3, 4, 80.0)
    assert not elevation.flags.writeable


def test_read_xyz_explicit_dimensions(tmp_path, small_dem):
    path = write_xyz(tmp_path / "dem.xyz", small_dem, footer=False)
    elevation, stats = read_xyz(path, height=3, width=4)
    assert stats.shape == (3, 4)
    np.testing.assert_array_equal(elevation, small_dem)


def test_read_xyz_missing_footer(tmp_path, small_dem):
    path = write_xyz(tmp_path / "dem.xyz", small_dem, footer=False)
    with pytest.raises(MalformedInputError, match="height=H width=W"):
        read_xyz(path)


def test_read_xyz_wrong_sample_count(tmp_path, small_dem):
    path = write_xyz(tmp_path / "dem.xyz", small_dem, footer=False)
    with pytest.raises(MalformedInputError):
        read_xyz(path, height=4, width=4)


def test_read_xyz_garbage_line(tmp_path):
    path = tmp_path / "bad.xyz"
    path.write_text("1 2 3\n4 five 6\n# height=1 width=2\n")
    with pytest.raises(MalformedInputError):
        read_xyz(str(path))


def test_read_xyz_only_footer(tmp_path):
    path = tmp_path / "empty.xyz"
    path.write_text("# height=2 width=2\n")
    with pytest.raises(MalformedInputError):
        read_xyz(str(path))


def test_read_xyz_missing_file():
    with pytest.raises(FileNotFoundError):
        read_xyz("nonexistent.xyz")


def test_parse_gdalinfo_json():
    info = parse_gdalinfo_json('{"description": "dem.tif", "size": [400, 300], "bands": []}')
    assert (info.height, info.width) == (300, 400)


@pytest.mark.parametrize("text", ['{"bands": []}', '{"size": [400]}', '{"size": ["a", 3]}',
                                  '{"size": [0, 3]}', 'not json'])
def test_parse_gdalinfo_json_malformed(text):
    with pytest.raises(MalformedInputError):
        parse_gdalinfo_json(text)


def test_read_raster_info_rasterio(small_tif):
    info = read_raster_info(small_tif)
    assert (info.height, info.width) == (3, 4)


@patch('slopemap.utils.subprocess.run')
def test_read_raster_info_gdalinfo(mock_run, small_tif):
    mock_run.return_value = subprocess.CompletedProcess(args=[], returncode=0, stdout='{"size": [4, 3]}')
    info = read_raster_info(small_tif, gdalinfo="/usr/bin/gdalinfo")
    assert (info.height, info.width) == (3, 4)
    assert mock_run.call_args[0][0] == ["/usr/bin/gdalinfo", "-json", "-stats", small_tif]


def test_translate_to_xyz(tmp_path, small_tif, small_dem):
    xyz = translate_to_xyz(small_tif, str(tmp_path / "out.xyz"))
    lines = open(xyz).read().splitlines()
    assert lines[-1] == "# height=3 width=4"
    assert lines[0].split() == ["1015", "1985", "100"]
    elevation, stats = read_xyz(xyz)
    np.testing.assert_array_equal(elevation, small_dem)
    assert stats.grid_spacing == 240.0


def test_read_elevation_removes_temporary_xyz(tmp_path, monkeypatch, small_tif, small_dem):
    monkeypatch.chdir(tmp_path)
    elevation, stats = read_elevation(small_tif)
    np.testing.assert_array_equal(elevation, small_dem)
    assert not [name for name in os.listdir(tmp_path) if name.endswith('.xyz')]


def test_export_image_roundtrip(tmp_path):
    colors = np.random.default_rng(1).integers(0, 256, size=(4, 5, 3), dtype=np.uint8)
    path = str(tmp_path / "nested" / "slope.png")
    export_image(colors, path)
    with rasterio.open(path) as src:
        assert src.driver == 'PNG'
        assert (src.count, src.height, src.width) == (3, 4, 5)
        np.testing.assert_array_equal(np.moveaxis(src.read(), 0, -1), colors)


def test_export_image_skips_out_of_range_pixels(tmp_path):
    colors = np.full((4, 5, 3), 200, dtype=np.uint8)
    path = str(tmp_path / "slope.tif")
    export_image(colors, path, height=3, width=6)
    with rasterio.open(path) as src:
        data = src.read()
    assert data.shape == (3, 3, 6)
    assert np.all(data[:, :, :5] == 200)
    assert np.all(data[:, :, 5] == 0)


def test_export_image_rejects_non_rgb(tmp_path):
    with pytest.raises(ValueError):
        export_image(np.zeros((4, 5), dtype=np.uint8), str(tmp_path / "x.png"))


@pytest.fixture
def two_band_tif(tmp_path, small_dem):
    path = str(tmp_path / "two_band.tif")
    profile = {
        'driver': 'GTiff', 'height': 3, 'width': 4, 'count': 2,
        'dtype': rasterio.float32, 'transform': from_origin(0.0, 0.0, 1.0, 1.0),
    }
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", NotGeoreferencedWarning)
        with rasterio.open(path, 'w', **profile) as dst:
            dst.write(np.stack([small_dem, small_dem]))
    return path


@pytest.fixture
def junk_tif(tmp_path):
    path = tmp_path / "junk.tif"
    path.write_bytes(b"this is not a raster\n" * 8)
    return str(path)


def test_translate_rejects_multi_band(two_band_tif, tmp_path):
    with pytest.raises(MalformedInputError, match="single-band"):
        translate_to_xyz(two_band_tif, str(tmp_path / "out.xyz"))


def test_unreadable_raster(junk_tif, tmp_path):
    with pytest.raises(MalformedInputError, match="Unreadable raster"):
        read_raster_info(junk_tif)
    with pytest.raises(MalformedInputError):
        translate_to_xyz(junk_tif, str(tmp_path / "out.xyz"))


@patch('slopemap.utils.subprocess.run')
def test_read_raster_info_gdalinfo_failure(mock_run, small_tif):
    mock_run.side_effect = subprocess.CalledProcessError(1, ["gdalinfo"], stderr="ERROR 4: not recognized")
    with pytest.raises(MalformedInputError, match="gdalinfo failed"):
        read_raster_info(small_tif, gdalinfo="gdalinfo")


def test_translate_removes_temporary_file_on_write_error(tmp_path, monkeypatch, small_tif):
    monkeypatch.chdir(tmp_path)
    with patch('slopemap.utils.np.savetxt', side_effect=OSError("disk full")):
        with pytest.raises(OSError, match="disk full"):
            translate_to_xyz(small_tif)
    assert not [name for name in os.listdir(tmp_path) if name.endswith('.xyz')]
