"""Tests for terrain processing: DEM mosaicking, slope, and layer alignment."""

import logging
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import numpy as np
import pytest
import rasterio
import xarray as xr
from affine import Affine
from pystac import Item

from landcover_rf.config.models import TerrainConfig
from landcover_rf.stacking import StackGrid
from landcover_rf.topography.pipeline import DEM_ASSET_ID, fetch_stac_dem, load_local_dem, prepare_terrain
from landcover_rf.topography.processing import compute_slope, mosaic_dem, terrain_layers


class TestComputeSlope:
    """Tests for compute_slope()."""

    def test_flat_surface(self):
        slope = compute_slope(np.full((5, 5), 250.0), pixel_size=10.0)
        np.testing.assert_allclose(slope, 0.0)

    def test_forty_five_degree_plane(self):
        cols = np.arange(6, dtype="float64") * 10.0
        dem = np.tile(cols, (6, 1))
        slope = compute_slope(dem, pixel_size=10.0)
        np.testing.assert_allclose(slope, 45.0, rtol=1e-5)

    def test_nan_elevation_gives_nan_slope(self):
        dem = np.full((5, 5), 100.0)
        dem[2, 2] = np.nan
        slope = compute_slope(dem, pixel_size=10.0)
        assert np.isnan(slope[2, 2])
        assert slope.dtype == np.float32


class TestMosaicDem:
    """Tests for mosaic_dem()."""

    def test_reads_onto_grid(self, dem_path: Path, grid: StackGrid):
        dem = mosaic_dem([dem_path], grid)
        assert dem.shape == (grid.height, grid.width)
        assert dem[0, 0] == pytest.approx(100.0)
        assert dem[0, 5] == pytest.approx(105.0)

    def test_two_tiles_merged(self, tmp_path: Path, grid: StackGrid):
        half = grid.width // 2
        for index, offset in enumerate((0, half)):
            transform = grid.transform * Affine.translation(offset, 0)
            with rasterio.open(
                tmp_path / f"tile{index}.tif",
                "w",
                driver="GTiff",
                dtype="float32",
                width=half,
                height=grid.height,
                count=1,
                crs=grid.crs,
                transform=transform,
            ) as dst:
                dst.write(np.full((grid.height, half), 50.0 * (index + 1), dtype="float32"), 1)

        dem = mosaic_dem(sorted(tmp_path.glob("tile*.tif")), grid)
        assert dem[3, 2] == pytest.approx(50.0)
        assert dem[3, half + 2] == pytest.approx(100.0)

    def test_no_tiles(self, grid: StackGrid):
        with pytest.raises(ValueError, match="No DEM tiles"):
            mosaic_dem([], grid)


class TestTerrainLayers:
    """Tests for terrain_layers() and prepare_terrain()."""

    def test_bands_and_grid(self, dem_path: Path, grid: StackGrid):
        dem = load_local_dem([dem_path], grid)
        layers = terrain_layers(dem, grid)
        assert list(layers.band.values) == ["elev", "slope"]
        assert layers.rio.crs == grid.crs
        assert layers.rio.transform().almost_equals(grid.transform)
        # 1 m rise per 10 m pixel
        expected = np.degrees(np.arctan(0.1))
        assert float(layers.sel(band="slope").isel(y=5, x=5)) == pytest.approx(expected, rel=1e-4)

    def test_misaligned_dem_is_resampled(self, grid: StackGrid):
        coarse = xr.DataArray(
            np.full((5, 5), 300.0, dtype="float32"),
            dims=["y", "x"],
            coords={
                "y": grid.transform.f - 40.0 * (np.arange(5) + 0.5),
                "x": grid.transform.c + 40.0 * (np.arange(5) + 0.5),
            },
        )
        coarse.rio.write_crs(grid.crs, inplace=True)
        layers = terrain_layers(coarse, grid)
        assert layers.sizes["y"] == grid.height
        assert float(layers.sel(band="elev").isel(y=10, x=10)) == pytest.approx(300.0)

    def test_prepare_terrain_uses_local_paths(self, dem_path: Path, grid: StackGrid, aoi_geometry):
        layers = prepare_terrain(TerrainConfig(dem_paths=(dem_path,)), aoi_geometry, grid)
        assert float(layers.sel(band="elev").isel(y=0, x=3)) == pytest.approx(103.0)

    def test_missing_local_path(self, tmp_path: Path, grid: StackGrid):
        with pytest.raises(FileNotFoundError):
            load_local_dem([tmp_path / "missing.tif"], grid)


class TestFetchStacDem:
    """Tests for fetch_stac_dem() with the catalog replaced."""

    @pytest.fixture
    def tiles(self, make_series, grid: StackGrid):
        """Two DEM tiles, each covering one half of the grid."""
        data = np.full((2, 1, grid.height, grid.width), np.nan, dtype="float32")
        half = grid.width // 2
        data[0, 0, :, :half] = 200.0
        data[1, 0, :, half:] = 300.0
        return make_series(["elev"], data=data).chunk({"time": 1})

    @staticmethod
    def _items(count):
        return [
            Item(id=f"dem-{i}", geometry=None, bbox=None, datetime=datetime(2021, 1, 1), properties={})
            for i in range(count)
        ]

    def test_mosaics_tiles_onto_grid(self, tiles, grid: StackGrid, aoi_geometry):
        with patch("landcover_rf.topography.pipeline.open_client"), patch(
            "landcover_rf.topography.pipeline.search_items", return_value=self._items(2)
        ), patch("landcover_rf.topography.pipeline.stack_assets", return_value=tiles) as stack:
            dem = fetch_stac_dem(aoi_geometry, grid, "cop-dem-glo-30")

        assert stack.call_args.args[1] == [DEM_ASSET_ID]
        assert stack.call_args.args[2] == ["elev"]
        assert dem.dims == ("y", "x")
        assert dem.rio.crs == grid.crs
        values = dem.values
        assert values[4, 2] == pytest.approx(200.0)
        assert values[4, 15] == pytest.approx(300.0)

    def test_no_tiles_gives_nan_dem(self, grid: StackGrid, aoi_geometry, caplog):
        with patch("landcover_rf.topography.pipeline.open_client"), patch(
            "landcover_rf.topography.pipeline.search_items", return_value=[]
        ), patch("landcover_rf.topography.pipeline.stack_assets") as stack:
            with caplog.at_level(logging.WARNING, logger="landcover_rf.topography.pipeline"):
                dem = fetch_stac_dem(aoi_geometry, grid, "cop-dem-glo-30")

        stack.assert_not_called()
        assert "no tiles" in caplog.text
        assert dem.shape == (grid.height, grid.width)
        assert np.isnan(dem.values).all()
        assert dem.rio.transform().almost_equals(grid.transform)

    def test_prepare_terrain_without_tiles(self, grid: StackGrid, aoi_geometry):
        with patch("landcover_rf.topography.pipeline.open_client"), patch(
            "landcover_rf.topography.pipeline.search_items", return_value=[]
        ):
            layers = prepare_terrain(TerrainConfig(), aoi_geometry, grid)

        assert list(layers.band.values) == ["elev", "slope"]
        assert np.isnan(layers.values).all()
