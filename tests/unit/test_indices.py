"""Unit tests for spectral indices."""

import numpy as np
import pytest
import xarray as xr

from landcover_rf.sentinel2.indices import INDEX_BANDS, add_indices, normalized_difference

OPTICAL = ["B2", "B3", "B4", "B8", "B11", "B12"]


class TestNormalizedDifference:
    """Tests for normalized_difference()."""

    def test_ndvi_value(self):
        """NIR 0.3 and red 0.1 give NDVI 0.5."""
        result = normalized_difference(xr.DataArray([0.3]), xr.DataArray([0.1]))
        assert float(result[0]) == pytest.approx(0.5)

    def test_zero_sum_is_nan_only_there(self):
        a = xr.DataArray([0.0, 0.2])
        b = xr.DataArray([0.0, 0.2])
        result = normalized_difference(a, b)
        assert np.isnan(result[0])
        assert float(result[1]) == 0.0

    def test_nan_propagates(self):
        result = normalized_difference(xr.DataArray([np.nan]), xr.DataArray([0.1]))
        assert np.isnan(result[0])


class TestAddIndices:
    """Tests for add_indices()."""

    def test_index_definitions(self):
        assert INDEX_BANDS["NDVI"] == ("B8", "B4")
        assert INDEX_BANDS["NDWI"] == ("B3", "B8")
        assert INDEX_BANDS["NBR2"] == ("B12", "B11")

    def test_appends_bands_and_keeps_inputs(self, make_series):
        data = np.zeros((2, 6, 20, 20), dtype="float32")
        values = {"B2": 0.05, "B3": 0.08, "B4": 0.1, "B8": 0.3, "B11": 0.2, "B12": 0.1}
        for i, band in enumerate(OPTICAL):
            data[:, i] = values[band]
        series = make_series(OPTICAL, data=data)

        result = add_indices(series)

        assert list(result.band.values) == OPTICAL + ["NDVI", "NDWI", "NBR2"]
        np.testing.assert_allclose(result.sel(band="B8").values, series.sel(band="B8").values)
        np.testing.assert_allclose(result.sel(band="NDVI").values, 0.5, rtol=1e-5)
        np.testing.assert_allclose(result.sel(band="NDWI").values, (0.08 - 0.3) / (0.08 + 0.3), rtol=1e-5)
        np.testing.assert_allclose(result.sel(band="NBR2").values, (0.1 - 0.2) / (0.1 + 0.2), rtol=1e-5)
        assert result.dims == ("time", "band", "y", "x")
