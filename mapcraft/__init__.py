"""
mapcraft - load, transform and map geographic vector and raster data.

Feature collections are geopandas GeoDataFrames, grids are GridDatasets
backed by numpy and rasterio. Maps are described once as a MapSpec and
rendered as static matplotlib figures or interactive folium maps.
"""

from .errors import MapcraftError, MissingResourceError, ShapeMismatchError, InvalidReferenceError
from .config import MapConfig, get_map_config, get_map_mode, set_map_mode
from .datasets import list_samples, sample_path
from .vector import VectorDataLoader, load_vector
from .raster import GridDataset, RasterDataLoader, open_raster
from .maps import MapSpec, map_shape, view

__version__ = "0.1.0"

__all__ = [
    'MapcraftError',
    'MissingResourceError',
    'ShapeMismatchError',
    'InvalidReferenceError',
    'MapConfig',
    'get_map_config',
    'get_map_mode',
    'set_map_mode',
    'list_samples',
    'sample_path',
    'VectorDataLoader',
    'load_vector',
    'GridDataset',
    'RasterDataLoader',
    'open_raster',
    'MapSpec',
    'map_shape',
    'view'
]
