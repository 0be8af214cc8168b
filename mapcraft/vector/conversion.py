"""
Conversion between GeoDataFrames and an alternate spatial representation.

Some tools still expect plain GeoJSON-like mappings (anything exposing
``__geo_interface__``) instead of GeoDataFrames. These helpers convert in
both directions and carry the CRS along in the legacy GeoJSON ``crs`` member.
"""

from typing import Any, Dict, Optional
import logging

import geopandas as gpd

from ..errors import InvalidReferenceError

logger = logging.getLogger(__name__)


def to_feature_collection(gdf: gpd.GeoDataFrame) -> Dict[str, Any]:
    """
    Convert a GeoDataFrame to a GeoJSON-like FeatureCollection mapping.

    Args:
        gdf: Input GeoDataFrame

    Returns:
        Dictionary with 'type', 'features' and, when known, 'crs'
    """
    collection = dict(gdf.__geo_interface__)
    if gdf.crs is not None:
        collection['crs'] = {
            'type': 'name',
            'properties': {'name': gdf.crs.to_string()},
        }

    logger.debug(f"Converted {len(gdf)} features to a FeatureCollection mapping")
    return collection


def from_feature_collection(collection: Any, crs: Optional[Any] = None) -> gpd.GeoDataFrame:
    """
    Build a GeoDataFrame from a FeatureCollection mapping or any object
    exposing ``__geo_interface__``.

    Args:
        collection: FeatureCollection mapping or geo-interface object
        crs: CRS to assign; defaults to the mapping's 'crs' member

    Returns:
        GeoDataFrame with one row per feature

    Raises:
        InvalidReferenceError: If the input is not a FeatureCollection
    """
    if hasattr(collection, '__geo_interface__'):
        collection = collection.__geo_interface__

    if not isinstance(collection, dict) or collection.get('type') != 'FeatureCollection':
        raise InvalidReferenceError("Expected a GeoJSON FeatureCollection mapping")

    if crs is None:
        crs = collection.get('crs', {}).get('properties', {}).get('name')

    gdf = gpd.GeoDataFrame.from_features(collection['features'], crs=crs)
    logger.debug(f"Built GeoDataFrame with {len(gdf)} features from mapping")
    return gdf
