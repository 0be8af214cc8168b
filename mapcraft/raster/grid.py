"""
Grid (raster) dataset model.

A GridDataset is a (layers, rows, cols) numpy array plus the spatial
metadata rasterio uses: an affine transform (origin and resolution), a CRS,
an optional nodata value and per-layer names. Categorical grids carry a
levels table mapping integer cell codes to labels.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple
from pathlib import Path
import logging

import numpy as np
import pandas as pd
import rasterio
from rasterio.coords import BoundingBox
from rasterio.crs import CRS
from rasterio.errors import CRSError
from rasterio.transform import Affine, array_bounds
from rasterio.warp import Resampling, calculate_default_transform, reproject

from ..errors import InvalidReferenceError, ShapeMismatchError

logger = logging.getLogger(__name__)

LEVEL_ID = "ID"
LEVEL_LABEL = "category"


def parse_raster_crs(crs: Any) -> Optional[CRS]:
    """Parse a CRS description for rasterio, None passes through."""
    if crs is None or isinstance(crs, CRS):
        return crs
    try:
        return CRS.from_user_input(crs)
    except CRSError as e:
        raise InvalidReferenceError(f"Invalid coordinate reference '{crs}': {e}") from e


class GridDataset:
    """In-memory raster with one or more layers sharing one grid."""

    def __init__(self, data: Any, transform: Affine, crs: Any = None,
                 names: Optional[Sequence[str]] = None, nodata: Optional[float] = None,
                 levels: Optional[pd.DataFrame] = None):
        array = np.asarray(data)
        if array.ndim == 2:
            array = array[np.newaxis, ...]
        if array.ndim != 3:
            raise ShapeMismatchError(f"Grid data must be 2-D or 3-D, got {array.ndim}-D")

        self.data = array
        self.transform = transform
        self.crs = parse_raster_crs(crs)
        self.nodata = nodata

        if names is None:
            names = [f"layer_{i}" for i in range(1, array.shape[0] + 1)]
        names = list(names)
        if len(names) != array.shape[0]:
            raise ShapeMismatchError(
                f"{len(names)} layer names given for {array.shape[0]} layers"
            )
        self.names = names
        self.levels = levels

    def __repr__(self) -> str:
        return (f"GridDataset(layers={self.count}, rows={self.height}, cols={self.width}, "
                f"res={self.res}, crs={self.crs.to_string() if self.crs else None})")

    @property
    def count(self) -> int:
        return self.data.shape[0]

    @property
    def height(self) -> int:
        return self.data.shape[1]

    @property
    def width(self) -> int:
        return self.data.shape[2]

    @property
    def shape(self) -> Tuple[int, int, int]:
        return self.data.shape

    @property
    def ncell(self) -> int:
        return self.height * self.width

    @property
    def res(self) -> Tuple[float, float]:
        return (abs(self.transform.a), abs(self.transform.e))

    @property
    def bounds(self) -> BoundingBox:
        west, south, east, north = array_bounds(self.height, self.width, self.transform)
        return BoundingBox(west, south, east, north)

    @property
    def extent(self) -> Tuple[float, float, float, float]:
        """(xmin, xmax, ymin, ymax)."""
        b = self.bounds
        return (b.left, b.right, b.bottom, b.top)

    @property
    def is_categorical(self) -> bool:
        return self.levels is not None

    def layer(self, n: int) -> "GridDataset":
        """
        Return one layer as a new single-layer grid.

        Args:
            n: 1-based layer number, as with rasterio bands

        Raises:
            InvalidReferenceError: If the layer does not exist
        """
        if not 1 <= n <= self.count:
            raise InvalidReferenceError(f"Layer {n} outside 1..{self.count}")
        return GridDataset(
            self.data[n - 1].copy(), self.transform, self.crs,
            names=[self.names[n - 1]], nodata=self.nodata,
            levels=None if self.levels is None else self.levels.copy(),
        )

    def masked(self, n: int = 1) -> np.ma.MaskedArray:
        """Layer n as a float masked array, nodata and NaN cells masked."""
        band = self.data[n - 1].astype("float64")
        mask = ~np.isfinite(band)
        if self.nodata is not None:
            mask |= band == self.nodata
        return np.ma.masked_array(band, mask=mask)

    def values(self, n: int = 1) -> np.ndarray:
        """Cell values of layer n in row-major order."""
        return self.data[n - 1].ravel()

    def cell_values(self, cells: Sequence[int], n: int = 1) -> np.ndarray:
        """
        Look up values by 0-based cell number (row-major from the top-left).

        Raises:
            InvalidReferenceError: If a cell number is outside the grid
        """
        cells = np.asarray(cells, dtype=int)
        if cells.size and (cells.min() < 0 or cells.max() >= self.ncell):
            raise InvalidReferenceError(f"Cell numbers must lie in 0..{self.ncell - 1}")
        return self.values(n)[cells]

    def factor_values(self, cells: Sequence[int], n: int = 1) -> pd.DataFrame:
        """
        Resolve categorical codes at the given cells to their level rows.

        Returns:
            DataFrame with the level label and any auxiliary level columns

        Raises:
            InvalidReferenceError: If the grid is not categorical
        """
        if self.levels is None:
            raise InvalidReferenceError("Grid has no categorical levels")

        codes = self.cell_values(cells, n)
        lookup = self.levels.set_index(LEVEL_ID)
        return lookup.reindex(codes).reset_index(drop=True)

    def add_level_attribute(self, name: str, values: Sequence[Any]) -> None:
        """
        Attach an auxiliary column to the levels table in place.

        Raises:
            InvalidReferenceError: If the grid is not categorical
            ShapeMismatchError: If values do not match the number of levels
        """
        if self.levels is None:
            raise InvalidReferenceError("Grid has no categorical levels")
        values = list(values)
        if len(values) != len(self.levels):
            raise ShapeMismatchError(
                f"{len(values)} values given for {len(self.levels)} levels"
            )
        self.levels[name] = values
        logger.debug(f"Added level attribute '{name}'")

    def with_crs(self, crs: Any) -> "GridDataset":
        """Return a copy labelled with a CRS (no resampling)."""
        return GridDataset(self.data.copy(), self.transform, parse_raster_crs(crs),
                           names=self.names, nodata=self.nodata,
                           levels=None if self.levels is None else self.levels.copy())

    def reproject(self, crs: Any) -> "GridDataset":
        """
        Warp the grid into another CRS with rasterio.

        Categorical grids use nearest-neighbour resampling, others bilinear.
        The result is float64 with NaN for cells outside the source.

        Raises:
            InvalidReferenceError: If the grid has no CRS or the target is invalid
        """
        if self.crs is None:
            raise InvalidReferenceError("Cannot reproject a grid without a coordinate reference system")
        dst_crs = parse_raster_crs(crs)

        dst_transform, dst_width, dst_height = calculate_default_transform(
            self.crs, dst_crs, self.width, self.height, *self.bounds
        )
        source = self.masked_stack()
        destination = np.full((self.count, dst_height, dst_width), np.nan, dtype="float64")

        reproject(
            source=source,
            destination=destination,
            src_transform=self.transform,
            src_crs=self.crs,
            src_nodata=np.nan,
            dst_transform=dst_transform,
            dst_crs=dst_crs,
            dst_nodata=np.nan,
            resampling=Resampling.nearest if self.is_categorical else Resampling.bilinear,
        )

        logger.info(f"Reprojected grid from {self.crs.to_string()} to {dst_crs.to_string()}")
        return GridDataset(destination, dst_transform, dst_crs, names=self.names,
                           nodata=None, levels=None if self.levels is None else self.levels.copy())

    def masked_stack(self) -> np.ndarray:
        """All layers as float64 with nodata cells set to NaN."""
        return np.stack([self.masked(n).filled(np.nan) for n in range(1, self.count + 1)])

    def save(self, path: str) -> Path:
        """Write the grid to a GeoTIFF file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self.data.astype("uint8") if self.data.dtype == bool else self.data
        profile = {
            'driver': 'GTiff',
            'height': self.height,
            'width': self.width,
            'count': self.count,
            'dtype': data.dtype.name,
            'crs': self.crs,
            'transform': self.transform,
            'nodata': self.nodata,
        }
        with rasterio.open(path, 'w', **profile) as dst:
            dst.write(data)
            for i, name in enumerate(self.names, start=1):
                dst.set_band_description(i, name)

        logger.info(f"Saved {self.count}-layer grid to {path}")
        return path

    def describe(self) -> Dict[str, Any]:
        """Summary of dimensions, resolution, extent, CRS and value range."""
        stats = []
        for n in range(1, self.count + 1):
            band = self.masked(n)
            stats.append({
                'name': self.names[n - 1],
                'min': float(band.min()) if band.count() else None,
                'max': float(band.max()) if band.count() else None,
            })
        return {
            'dimensions': {'rows': self.height, 'cols': self.width,
                           'ncell': self.ncell, 'layers': self.count},
            'resolution': self.res,
            'extent': self.extent,
            'crs': self.crs.to_string() if self.crs else None,
            'dtype': self.data.dtype.name,
            'layers': stats,
            'levels': None if self.levels is None else self.levels.to_dict('records'),
        }

    def layer_names(self) -> List[str]:
        return list(self.names)
