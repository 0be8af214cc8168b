"""
Raster component - grid datasets, file reading, synthetic grids and stacks.
"""

from .grid import GridDataset
from .loader import RasterDataLoader, open_raster

__all__ = [
    'GridDataset',
    'RasterDataLoader',
    'open_raster'
]
