"""Unit tests for stack grid construction, alignment, assembly, and writing."""

from pathlib import Path

import numpy as np
import pytest
import rasterio
from shapely.geometry import box

from landcover_rf.stacking import (
    FLOAT_NODATA,
    StackAlignmentError,
    StackGrid,
    assemble_stack,
    check_alignment,
    grid_from_aoi,
    write_dataarray,
)


class TestStackGrid:
    """Tests for StackGrid and grid_from_aoi()."""

    def test_bounds_and_coords(self, grid: StackGrid):
        assert grid.bounds == (300000.0, 6179800.0, 300200.0, 6180000.0)
        coords = grid.coords()
        assert coords["x"][0] == pytest.approx(300005.0)
        assert coords["y"][0] == pytest.approx(6179995.0)
        assert grid.epsg == 32719

    def test_empty_is_nan(self, grid: StackGrid):
        empty = grid.empty(["a", "b"])
        assert empty.shape == (2, grid.height, grid.width)
        assert np.isnan(empty.values).all()
        assert empty.rio.crs == grid.crs

    def test_grid_from_aoi_snaps_to_resolution(self):
        aoi = box(-71.5, -34.7, -71.45, -34.65)
        grid = grid_from_aoi(aoi, "EPSG:32719", 10.0)
        minx, miny, maxx, maxy = grid.bounds
        for value in (minx, miny, maxx, maxy):
            assert value % 10.0 == pytest.approx(0.0, abs=1e-6)
        assert grid.width > 400 and grid.height > 500


class TestCheckAlignment:
    """Tests for check_alignment()."""

    def test_aligned_layers_pass(self, make_layer):
        check_alignment([make_layer(["a"]), make_layer(["b"])])

    def test_shape_mismatch(self, make_layer):
        other = make_layer(["b"]).isel(x=slice(0, 10))
        with pytest.raises(StackAlignmentError, match="shape"):
            check_alignment([make_layer(["a"]), other])

    def test_crs_mismatch(self, make_layer):
        other = make_layer(["b"]).rio.write_crs("EPSG:32718")
        with pytest.raises(StackAlignmentError, match="CRS"):
            check_alignment([make_layer(["a"]), other])

    def test_transform_mismatch(self, make_layer):
        other = make_layer(["b"])
        other = other.assign_coords(x=other.x + 5.0)
        with pytest.raises(StackAlignmentError, match="transform"):
            check_alignment([make_layer(["a"]), other])


class TestAssembleStack:
    """Tests for assemble_stack()."""

    def test_concatenates_in_order(self, make_layer, grid: StackGrid):
        stack = assemble_stack([make_layer(["a", "b"], fill=1.0), make_layer(["c"], fill=2.0)])
        assert list(stack.band.values) == ["a", "b", "c"]
        assert stack.dtype == np.float32
        assert stack.rio.crs == grid.crs
        assert float(stack.sel(band="c").isel(y=0, x=0)) == 2.0

    def test_duplicate_band_names(self, make_layer):
        with pytest.raises(ValueError, match="Duplicate band names"):
            assemble_stack([make_layer(["a"]), make_layer(["a"])])

    def test_clip_sets_outside_to_nan(self, make_layer, aoi_geometry):
        stack = assemble_stack([make_layer(["a"], fill=5.0)], aoi=aoi_geometry)
        assert np.isnan(float(stack.isel(band=0, y=0, x=0)))
        assert float(stack.isel(band=0, y=10, x=10)) == 5.0
        assert stack.sizes["x"] == 20


class TestWriteDataarray:
    """Tests for write_dataarray()."""

    def test_writes_bands_and_nodata(self, tmp_path: Path, make_layer):
        layer = make_layer(["elev", "slope"], fill=3.0)
        layer.values[1, 0, 0] = np.nan
        path = tmp_path / "out" / "stack.tif"

        write_dataarray(layer, path, ["elev", "slope"])

        with rasterio.open(path) as src:
            assert src.count == 2
            assert src.descriptions == ("elev", "slope")
            assert src.nodata == FLOAT_NODATA
            assert src.read(2)[0, 0] == FLOAT_NODATA
            assert src.read(1)[0, 0] == 3.0

    def test_label_count_mismatch(self, tmp_path: Path, make_layer):
        with pytest.raises(ValueError, match="Band label count"):
            write_dataarray(make_layer(["a"]), tmp_path / "x.tif", ["a", "b"])
