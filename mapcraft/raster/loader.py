"""
Raster data loading module.

Reads single- and multi-band grids from the bundled samples or any file
rasterio can open, builds synthetic grids from literal values, and stacks
compatible grids into multi-layer datasets.
"""

import numpy as np
import pandas as pd
import rasterio
from rasterio.errors import RasterioIOError
from rasterio.transform import from_origin
from typing import Any, List, Optional, Sequence
import logging

from ..datasets import RASTER_SAMPLES, resolve_source
from ..errors import InvalidReferenceError, ShapeMismatchError
from .grid import LEVEL_ID, LEVEL_LABEL, GridDataset

logger = logging.getLogger(__name__)


def _cells_along(span: float, res: float, label: str) -> int:
    cells = int(round(span / res))
    if cells < 1 or not np.isclose(cells * res, span):
        raise ShapeMismatchError(
            f"{label} extent {span} is not a whole number of {res} cells"
        )
    return cells


def _is_categorical(values: Any) -> bool:
    if isinstance(values, (pd.Categorical, pd.Series)) and isinstance(
            getattr(values, 'dtype', None), pd.CategoricalDtype):
        return True
    array = np.asarray(values)
    return array.dtype.kind in ('U', 'S', 'O')


def _encode_categories(values: Any):
    """Return 1-based integer codes plus the levels table for label values."""
    categorical = pd.Categorical(values)
    if (categorical.codes < 0).any():
        raise ShapeMismatchError("Categorical grid values may not contain missing labels")

    codes = categorical.codes.astype("int32") + 1
    levels = pd.DataFrame({
        LEVEL_ID: np.arange(1, len(categorical.categories) + 1, dtype="int32"),
        LEVEL_LABEL: [str(c) for c in categorical.categories],
    })
    return codes, levels


class RasterDataLoader:
    """Handles opening, constructing and stacking grid datasets."""

    def open(self, source: str, band: Optional[int] = None) -> GridDataset:
        """
        Read a raster file.

        Args:
            source: Bundled sample name ('srtm', 'landsat') or a file path
            band: 1-based band to read; all bands when omitted

        Returns:
            GridDataset holding the requested band(s)

        Raises:
            MissingResourceError: If the sample or file does not exist
            InvalidReferenceError: If the band does not exist
        """
        path = resolve_source(source, RASTER_SAMPLES)

        try:
            with rasterio.open(path) as src:
                if band is not None and not 1 <= band <= src.count:
                    raise InvalidReferenceError(
                        f"Band {band} outside 1..{src.count} in {path.name}"
                    )
                indexes = list(range(1, src.count + 1)) if band is None else [band]
                data = src.read(indexes)
                names = [
                    src.descriptions[i - 1] or f"{path.stem}_{i}" for i in indexes
                ]
                grid = GridDataset(data, src.transform, src.crs,
                                   names=names, nodata=src.nodata)
        except RasterioIOError as e:
            logger.error(f"Failed to read raster {path}: {e}")
            raise

        logger.info(f"Opened {path.name}: {grid.count} layer(s), {grid.height}x{grid.width} cells")
        return grid

    def brick(self, source: str) -> GridDataset:
        """Read every band of one multi-band file."""
        return self.open(source)

    def create(self, xmin: float, xmax: float, ymin: float, ymax: float,
               res: Optional[float] = None, nrows: Optional[int] = None,
               ncols: Optional[int] = None, values: Optional[Sequence[Any]] = None,
               crs: Any = None, name: str = "layer") -> GridDataset:
        """
        Build a synthetic single-layer grid.

        Values fill the grid row by row starting at the top-left cell. Label
        values (strings or a pandas Categorical) produce a categorical grid
        whose cells hold 1-based level codes.

        Args:
            xmin, xmax, ymin, ymax: Grid extent
            res: Cell size; derived from nrows/ncols when omitted
            nrows, ncols: Grid dimensions; derived from res when omitted
            values: Flat cell values, length nrows * ncols; NaN when omitted
            crs: Optional CRS for the grid
            name: Layer name

        Returns:
            GridDataset

        Raises:
            ShapeMismatchError: If dimensions, resolution and extent disagree,
                or the number of values is not nrows * ncols
        """
        width, height = xmax - xmin, ymax - ymin
        if width <= 0 or height <= 0:
            raise ShapeMismatchError(f"Empty extent ({xmin}, {xmax}, {ymin}, {ymax})")

        if res is None and nrows is None and ncols is None:
            res = 1.0

        if res is not None:
            xres = yres = float(res)
            derived_cols = _cells_along(width, xres, "x")
            derived_rows = _cells_along(height, yres, "y")
            if ncols is not None and ncols != derived_cols:
                raise ShapeMismatchError(f"ncols={ncols} disagrees with res {res} over width {width}")
            if nrows is not None and nrows != derived_rows:
                raise ShapeMismatchError(f"nrows={nrows} disagrees with res {res} over height {height}")
            ncols, nrows = derived_cols, derived_rows
        else:
            if nrows is None or ncols is None:
                raise ShapeMismatchError("Give both nrows and ncols when res is omitted")
            xres, yres = width / ncols, height / nrows

        transform = from_origin(xmin, ymax, xres, yres)
        ncell = nrows * ncols
        levels = None

        if values is None:
            data = np.full((nrows, ncols), np.nan, dtype="float64")
        else:
            if len(values) != ncell:
                raise ShapeMismatchError(
                    f"{len(values)} values supplied for a {nrows}x{ncols} grid ({ncell} cells)"
                )
            if _is_categorical(values):
                codes, levels = _encode_categories(values)
                data = codes.reshape(nrows, ncols)
            else:
                data = np.asarray(values).reshape(nrows, ncols)

        logger.debug(f"Created {nrows}x{ncols} grid with res ({xres}, {yres})")
        return GridDataset(data, transform, crs, names=[name], levels=levels)

    def stack(self, grids: Sequence[GridDataset]) -> GridDataset:
        """
        Combine grids sharing one geometry into a multi-layer grid.

        Raises:
            ShapeMismatchError: If dimensions, resolution, extent or CRS differ
        """
        grids = list(grids)
        if not grids:
            raise ShapeMismatchError("Nothing to stack")

        first = grids[0]
        for other in grids[1:]:
            if (other.height, other.width) != (first.height, first.width):
                raise ShapeMismatchError(
                    f"Dimensions differ: {first.height}x{first.width} vs {other.height}x{other.width}"
                )
            if not np.allclose(other.res, first.res):
                raise ShapeMismatchError(f"Resolutions differ: {first.res} vs {other.res}")
            if not np.allclose(other.extent, first.extent):
                raise ShapeMismatchError(f"Extents differ: {first.extent} vs {other.extent}")
            if other.crs != first.crs:
                raise ShapeMismatchError(f"CRS differ: {first.crs} vs {other.crs}")

        data = np.concatenate([grid.data for grid in grids], axis=0)
        names = self._unique_names([name for grid in grids for name in grid.names])

        levels = None
        categorical = [grid for grid in grids if grid.is_categorical]
        if categorical:
            # one levels table covers every layer
            if len(categorical) == len(grids) and all(
                    grid.levels.equals(first.levels) for grid in categorical):
                levels = first.levels.copy()
            else:
                logger.warning(
                    f"Dropped categorical levels of {len(categorical)} of {len(grids)} stacked grids; "
                    f"the layers do not share one levels table"
                )

        nodata = {grid.nodata for grid in grids}
        stacked = GridDataset(data, first.transform, first.crs, names=names,
                              nodata=nodata.pop() if len(nodata) == 1 else None, levels=levels)
        logger.info(f"Stacked {len(grids)} grids into {stacked.count} layers")
        return stacked

    def _unique_names(self, names: List[str]) -> List[str]:
        totals = pd.Series(names).value_counts()
        seen = {}
        unique = []
        for name in names:
            if totals[name] == 1:
                unique.append(name)
                continue
            seen[name] = seen.get(name, 0) + 1
            unique.append(f"{name}.{seen[name]}")
        return unique


def open_raster(source: str, band: Optional[int] = None) -> GridDataset:
    """Read a raster with the default loader."""
    return RasterDataLoader().open(source, band)
