"""
Geometric transform operations.

Thin wrappers over geopandas / shapely / pyproj that take a feature
collection and return a new one. The geometry work itself (reprojection,
unions, centroids, overlays) is left entirely to those libraries.
"""

import geopandas as gpd
import numpy as np
from shapely.geometry import LineString, MultiLineString, MultiPoint, MultiPolygon
from pyproj import CRS
from pyproj.exceptions import CRSError
from typing import Any, List, Optional, Union
import logging

from ..errors import InvalidReferenceError

logger = logging.getLogger(__name__)

WGS84 = "EPSG:4326"

GEOMETRY_KINDS = {
    "POINT": (("Point", "MultiPoint"), MultiPoint),
    "LINE": (("LineString", "MultiLineString", "LinearRing"), MultiLineString),
    "POLYGON": (("Polygon", "MultiPolygon"), MultiPolygon),
}


def parse_crs(crs: Any) -> CRS:
    """
    Parse any CRS description pyproj understands ('EPSG:4326', '+proj=eck4', ...).

    Raises:
        InvalidReferenceError: If pyproj cannot interpret the description
    """
    try:
        return CRS.from_user_input(crs)
    except CRSError as e:
        raise InvalidReferenceError(f"Invalid coordinate reference '{crs}': {e}") from e


def reproject(gdf: Union[gpd.GeoDataFrame, gpd.GeoSeries], crs: Any) -> Union[gpd.GeoDataFrame, gpd.GeoSeries]:
    """
    Reproject a feature collection to another coordinate reference system.

    Args:
        gdf: GeoDataFrame or GeoSeries with a CRS
        crs: Target CRS (EPSG code, proj string, WKT or pyproj CRS)

    Returns:
        Reprojected copy

    Raises:
        InvalidReferenceError: If the target CRS is invalid or the input has no CRS
    """
    target = parse_crs(crs)
    if gdf.crs is None:
        raise InvalidReferenceError("Cannot reproject data without a coordinate reference system")

    if gdf.crs == target:
        logger.debug(f"Data already in {target.to_string()}")
        return gdf.copy()

    logger.info(f"Reprojecting {len(gdf)} features from {gdf.crs.to_string()} to {target.to_string()}")
    return gdf.to_crs(target)


def union(gdf: Union[gpd.GeoDataFrame, gpd.GeoSeries]) -> gpd.GeoSeries:
    """Dissolve all features into a single geometry, kept as a one-row GeoSeries."""
    geometry = gdf.geometry if isinstance(gdf, gpd.GeoDataFrame) else gdf
    merged = geometry.union_all()
    logger.debug(f"Unioned {len(geometry)} features into one {merged.geom_type}")
    return gpd.GeoSeries([merged], crs=geometry.crs)


def _largest_part(geom):
    if geom is None or geom.is_empty:
        return geom
    if isinstance(geom, MultiPolygon):
        return max(geom.geoms, key=lambda part: part.area)
    return geom


def centroid(gdf: gpd.GeoDataFrame, of_largest_polygon: bool = False) -> gpd.GeoDataFrame:
    """
    Replace each feature's geometry with its centroid point.

    Args:
        gdf: Input GeoDataFrame
        of_largest_polygon: For multipolygons, use the centroid of the largest
            part instead of the whole shape

    Returns:
        GeoDataFrame with point geometries and the same attributes
    """
    geometry = gdf.geometry
    if of_largest_polygon:
        geometry = gpd.GeoSeries(
            [_largest_part(geom) for geom in geometry], index=gdf.index, crs=gdf.crs
        )

    result = gdf.copy()
    result[gdf.geometry.name] = geometry.centroid
    return result


def intersection(gdf: gpd.GeoDataFrame, other: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """
    Intersect two feature collections, keeping the attributes of both.

    Geometry types are not filtered; use extract_geometry_type afterwards.

    Raises:
        InvalidReferenceError: If the two collections use different CRSs
    """
    if gdf.crs != other.crs:
        raise InvalidReferenceError(
            f"CRS mismatch: {gdf.crs} vs {other.crs}; reproject one side first"
        )

    result = gpd.overlay(gdf, other, how="intersection", keep_geom_type=False)
    logger.info(f"Intersection kept {len(result)} of {len(gdf)} features")
    return result


def _parts_of_kind(geom, kinds) -> List[Any]:
    if geom is None or geom.is_empty:
        return []
    if geom.geom_type in kinds:
        if hasattr(geom, "geoms"):
            return list(geom.geoms)
        return [geom]
    if geom.geom_type == "GeometryCollection":
        parts = []
        for part in geom.geoms:
            parts.extend(_parts_of_kind(part, kinds))
        return parts
    return []


def extract_geometry_type(gdf: gpd.GeoDataFrame, kind: str) -> gpd.GeoDataFrame:
    """
    Keep only the POINT, LINE or POLYGON parts of each feature.

    Features with no part of the requested kind are dropped; features with
    several parts become the matching multi-geometry.

    Raises:
        InvalidReferenceError: If kind is not POINT, LINE or POLYGON
    """
    kind = kind.upper()
    if kind not in GEOMETRY_KINDS:
        raise InvalidReferenceError(f"Geometry kind must be one of {list(GEOMETRY_KINDS)}")
    kinds, multi_type = GEOMETRY_KINDS[kind]

    extracted = []
    for geom in gdf.geometry:
        parts = _parts_of_kind(geom, kinds)
        if not parts:
            extracted.append(None)
        elif len(parts) == 1:
            extracted.append(parts[0])
        else:
            extracted.append(multi_type(parts))

    result = gdf.copy()
    result[gdf.geometry.name] = gpd.GeoSeries(extracted, index=gdf.index, crs=gdf.crs)
    result = result[~result.geometry.isna()].copy()

    logger.debug(f"Extracted {kind} parts from {len(result)} of {len(gdf)} features")
    return result


def graticule(crs: Optional[Any] = None, lon_step: float = 30, lat_step: float = 30,
              lat_limit: float = 90, densify: float = 2.0) -> gpd.GeoDataFrame:
    """
    Build meridians and parallels as line features.

    Args:
        crs: Optional CRS to project the lines into (defaults to WGS84)
        lon_step: Spacing between meridians in degrees
        lat_step: Spacing between parallels in degrees
        lat_limit: Latitude extent of the meridians
        densify: Vertex spacing in degrees, so lines curve after projection

    Returns:
        GeoDataFrame with 'type' ('E' for meridians, 'N' for parallels),
        'degree' and line geometry
    """
    lats = np.arange(-lat_limit, lat_limit + densify / 2, densify)
    lons = np.arange(-180, 180 + densify / 2, densify)

    records = []
    for lon in np.arange(-180, 180 + lon_step / 2, lon_step):
        records.append({'type': 'E', 'degree': float(lon),
                        'geometry': LineString([(lon, lat) for lat in lats])})
    for lat in np.arange(-lat_limit + lat_step, lat_limit, lat_step):
        records.append({'type': 'N', 'degree': float(lat),
                        'geometry': LineString([(lon, lat) for lon in lons])})

    grid = gpd.GeoDataFrame(records, geometry='geometry', crs=WGS84)
    if crs is not None:
        grid = reproject(grid, crs)
    return grid


def to_points(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Return point features unchanged and other features as their centroids."""
    is_point = gdf.geometry.geom_type.isin(["Point", "MultiPoint"])
    if is_point.all():
        return gdf
    return centroid(gdf, of_largest_polygon=True)
