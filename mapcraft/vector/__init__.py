"""
Vector component - feature collection loading, subsetting and transforms.

Feature collections are plain geopandas GeoDataFrames; geometry, CRS and
file-format work is delegated to geopandas, shapely and pyproj.
"""

from .loader import VectorDataLoader, load_vector
from .transforms import (
    reproject, union, centroid, intersection, extract_geometry_type, graticule
)
from .conversion import to_feature_collection, from_feature_collection

__all__ = [
    'VectorDataLoader',
    'load_vector',
    'reproject',
    'union',
    'centroid',
    'intersection',
    'extract_geometry_type',
    'graticule',
    'to_feature_collection',
    'from_feature_collection'
]
