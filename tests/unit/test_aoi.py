"""Unit tests for AOI parsing module."""

import json
from pathlib import Path

import geopandas as gpd
import pytest
from shapely.geometry import Polygon, box

from landcover_rf.aoi import parse_aoi

COLCHAGUA_BBOX = (-71.6, -34.8, -70.9, -34.4)


class TestParseAoi:
    """Tests for parse_aoi() function."""

    def test_parse_bbox_string(self):
        """Should parse comma-separated bounding box string."""
        geom = parse_aoi("-71.6,-34.8,-70.9,-34.4")
        assert geom.bounds == pytest.approx(COLCHAGUA_BBOX)

    def test_parse_json_array_bbox(self):
        """Should parse JSON array bounding box."""
        geom = parse_aoi(json.dumps(list(COLCHAGUA_BBOX)))
        assert geom.bounds == pytest.approx(COLCHAGUA_BBOX)

    def test_parse_wkt_polygon(self):
        """Should parse WKT polygon string."""
        geom = parse_aoi(box(*COLCHAGUA_BBOX).wkt)
        assert isinstance(geom, Polygon)
        assert geom.is_valid

    def test_parse_geojson_feature(self):
        """Should parse GeoJSON feature with geometry property."""
        feature = {"type": "Feature", "properties": {}, "geometry": box(*COLCHAGUA_BBOX).__geo_interface__}
        geom = parse_aoi(json.dumps(feature))
        assert geom.bounds == pytest.approx(COLCHAGUA_BBOX)

    def test_vector_file_reprojected_to_wgs84(self, tmp_path: Path):
        """Projected vector files should come back in EPSG:4326."""
        gdf = gpd.GeoDataFrame(geometry=[box(*COLCHAGUA_BBOX)], crs="EPSG:4326").to_crs(32719)
        path = tmp_path / "area_estudio.gpkg"
        gdf.to_file(path, driver="GPKG")

        geom = parse_aoi(str(path))
        assert geom.bounds[0] == pytest.approx(COLCHAGUA_BBOX[0], abs=1e-3)
        assert geom.bounds[3] == pytest.approx(COLCHAGUA_BBOX[3], abs=1e-3)

    def test_multiple_features_unioned(self, tmp_path: Path):
        gdf = gpd.GeoDataFrame(
            geometry=[box(-71.6, -34.8, -71.2, -34.4), box(-71.2, -34.8, -70.9, -34.4)],
            crs="EPSG:4326",
        )
        path = tmp_path / "parts.geojson"
        gdf.to_file(path, driver="GeoJSON")
        geom = parse_aoi(str(path))
        assert geom.bounds == pytest.approx(COLCHAGUA_BBOX)

    def test_missing_vector_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            parse_aoi(str(tmp_path / "missing.gpkg"))

    def test_invalid_string(self):
        with pytest.raises(ValueError, match="Could not parse AOI"):
            parse_aoi("not a geometry")

    def test_empty_geometry(self):
        with pytest.raises(ValueError, match="empty"):
            parse_aoi("POLYGON EMPTY")
