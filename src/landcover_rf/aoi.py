"""AOI (Area of Interest) parsing.

The AOI fixes the spatial extent of every catalog query and the clip
boundary of the feature stack.

Supported AOI Formats
---------------------
1. **Vector file**: GeoPackage (.gpkg), Shapefile (.shp) or GeoJSON (.geojson).
   All features are unioned and reprojected to EPSG:4326.
2. **Bounding box string**: "minx,miny,maxx,maxy" in degrees.
3. **JSON array**: "[minx, miny, maxx, maxy]".
4. **GeoJSON**: geometry or Feature object as a string.
5. **WKT**: "POLYGON ((...))".
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import geopandas as gpd
from shapely import wkt
from shapely.errors import GEOSException
from shapely.geometry import box, shape
from shapely.geometry.base import BaseGeometry

LOGGER = logging.getLogger(__name__)

VECTOR_SUFFIXES = {".gpkg", ".shp", ".geojson"}


def _read_vector(path: Path) -> BaseGeometry:
    gdf = gpd.read_file(path)
    if gdf.empty:
        raise ValueError(f"AOI file '{path}' contains no features.")
    if gdf.crs is not None:
        gdf = gdf.to_crs(4326)
    else:
        LOGGER.warning("AOI file %s has no CRS; assuming EPSG:4326 coordinates.", path)
    geom_series = gdf.geometry.dropna()
    if geom_series.empty:
        raise ValueError(f"AOI file '{path}' contains no valid geometries.")
    return geom_series.union_all()


def parse_aoi(aoi: str) -> BaseGeometry:
    """Parse AOI from various input formats.

    Args:
        aoi: AOI specification (vector file path, GeoJSON, WKT, or bbox).

    Returns:
        Parsed geometry in EPSG:4326 coordinates.

    Raises:
        ValueError: If the AOI is empty or cannot be parsed.
        FileNotFoundError: If a vector file path does not exist.
    """
    candidate = str(aoi).strip()
    path = Path(candidate)
    geom: Optional[BaseGeometry] = None

    if path.suffix.lower() in VECTOR_SUFFIXES:
        if not path.exists():
            raise FileNotFoundError(f"AOI file not found: {path}")
        geom = _read_vector(path)
    elif path.suffix.lower() in {".json", ".wkt"} and path.exists():
        candidate = path.read_text(encoding="utf-8").strip()

    if geom is None:
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            payload = None

        if isinstance(payload, dict):
            geom = shape(payload.get("geometry", payload))
        elif isinstance(payload, list) and len(payload) == 4:
            geom = box(*payload)
        elif candidate.count(",") == 3 and "(" not in candidate:
            geom = box(*[float(x) for x in candidate.split(",")])
        else:
            try:
                geom = wkt.loads(candidate)
            except GEOSException as e:
                raise ValueError(f"Could not parse AOI '{candidate[:80]}': {e}")

    if geom.is_empty:
        raise ValueError("AOI geometry is empty.")
    if not geom.is_valid:
        geom = geom.buffer(0)
    return geom


__all__ = ["parse_aoi"]
