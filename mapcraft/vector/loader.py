"""
Vector data loading module.

This module reads feature collections (points, lines, polygons plus their
attribute table) from the bundled samples or from any file geopandas can
read, and offers the attribute-side subsetting used throughout the
walkthrough.
"""

import numbers

import geopandas as gpd
from shapely.validation import make_valid
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import logging

from ..datasets import VECTOR_SAMPLES, resolve_source
from ..errors import InvalidReferenceError

logger = logging.getLogger(__name__)

RangeLike = Union[slice, Tuple[int, int]]


def _is_range(value: Any) -> bool:
    if isinstance(value, slice):
        return True
    return (isinstance(value, tuple) and len(value) == 2
            and all(isinstance(v, numbers.Integral) and not isinstance(v, bool) for v in value))


def _checked_range(value: RangeLike, length: int, label: str) -> slice:
    """Turn a (start, stop) pair or slice into a slice lying inside 0:length."""
    if isinstance(value, slice):
        start, stop = value.start, value.stop
    else:
        start, stop = value
    start = 0 if start is None else start
    stop = length if stop is None else stop
    if start < 0 or stop > length or start > stop:
        raise InvalidReferenceError(f"{label} range {start}:{stop} outside 0:{length}")
    return slice(int(start), int(stop))


class VectorDataLoader:
    """Handles loading, validation and attribute subsetting of feature collections."""

    def __init__(self, repair_geometries: bool = True):
        self.repair_geometries = repair_geometries

    def load(self, source: str) -> gpd.GeoDataFrame:
        """
        Load a feature collection.

        Args:
            source: Bundled sample name (e.g. 'world') or a file path

        Returns:
            GeoDataFrame with an active geometry column

        Raises:
            MissingResourceError: If the sample or file does not exist
            InvalidReferenceError: If the file carries no geometry column
        """
        path = resolve_source(source, VECTOR_SAMPLES)

        try:
            gdf = gpd.read_file(path)
        except Exception as e:
            logger.error(f"Failed to load vector data {path}: {e}")
            raise

        self.validate_geometry_column(gdf, str(path))

        if self.repair_geometries:
            gdf = self.cleanup_invalid_geometries(gdf)

        logger.info(f"Loaded {len(gdf)} features from {path.name} (CRS: {gdf.crs})")
        return gdf

    def validate_geometry_column(self, gdf: Any, label: str = "data") -> None:
        """
        Check that data is a GeoDataFrame with an active geometry column.

        Raises:
            InvalidReferenceError: If no geometry column is present
        """
        if not isinstance(gdf, gpd.GeoDataFrame):
            raise InvalidReferenceError(f"{label} has no geometry column")
        try:
            geometry_name = gdf.geometry.name
        except AttributeError:
            raise InvalidReferenceError(f"{label} has no active geometry column")
        if geometry_name not in gdf.columns:
            raise InvalidReferenceError(f"{label} has no geometry column")

    def cleanup_invalid_geometries(self, gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
        """
        Repair invalid geometries and drop null or empty ones.

        Args:
            gdf: Input GeoDataFrame

        Returns:
            GeoDataFrame with valid geometries
        """
        initial_count = len(gdf)

        null_geom_mask = gdf.geometry.isna()
        if null_geom_mask.any():
            logger.warning(f"Removing {null_geom_mask.sum()} features with null geometries")
            gdf = gdf[~null_geom_mask].copy()

        empty_geom_mask = gdf.geometry.is_empty
        if empty_geom_mask.any():
            logger.warning(f"Removing {empty_geom_mask.sum()} features with empty geometries")
            gdf = gdf[~empty_geom_mask].copy()

        invalid_mask = ~gdf.geometry.is_valid
        if invalid_mask.any():
            logger.warning(f"Found {invalid_mask.sum()} invalid geometries, repairing")
            gdf = gdf.copy()
            geometry_name = gdf.geometry.name
            gdf.loc[invalid_mask, geometry_name] = gdf.loc[invalid_mask, geometry_name].apply(make_valid)

        removed_count = initial_count - len(gdf)
        if removed_count > 0:
            logger.info(f"Removed {removed_count} features, {len(gdf)} features remaining")

        return gdf

    def column_names(self, gdf: gpd.GeoDataFrame) -> List[str]:
        """Return all column names, geometry column included."""
        return list(gdf.columns)

    def attribute_columns(self, gdf: gpd.GeoDataFrame) -> List[str]:
        """Return the non-geometry column names in table order."""
        geometry_name = gdf.geometry.name
        return [col for col in gdf.columns if col != geometry_name]

    def _check_columns(self, gdf: gpd.GeoDataFrame, names: Sequence[str]) -> None:
        missing = [name for name in names if name not in gdf.columns]
        if missing:
            raise InvalidReferenceError(
                f"Unknown column(s) {missing}; available: {list(gdf.columns)}"
            )

    def subset(self, gdf: gpd.GeoDataFrame, rows: Optional[RangeLike] = None,
               columns: Optional[Union[RangeLike, Sequence[str]]] = None) -> gpd.GeoDataFrame:
        """
        Subset a feature collection by row range and attribute column range.

        The geometry column always survives the column selection.

        Args:
            gdf: Input GeoDataFrame
            rows: Half-open row range as (start, stop) or a slice
            columns: Half-open attribute column range as (start, stop) or a
                slice, or an explicit list of column names

        Returns:
            New GeoDataFrame

        Raises:
            InvalidReferenceError: If the row range falls outside the data or
                a column name is unknown
        """
        result = gdf
        if rows is not None:
            result = result.iloc[_checked_range(rows, len(gdf), "Row")]

        geometry_name = gdf.geometry.name
        if columns is not None:
            attributes = self.attribute_columns(gdf)
            if _is_range(columns):
                selected = attributes[_checked_range(columns, len(attributes), "Column")]
            else:
                selected = list(columns)
                self._check_columns(gdf, selected)
                selected = [col for col in selected if col != geometry_name]
            result = result[selected + [geometry_name]]

        logger.debug(f"Subset to {len(result)} features and {len(result.columns)} columns")
        return result.copy()

    def select_columns(self, gdf: gpd.GeoDataFrame, names: Union[str, Sequence[str]]) -> gpd.GeoDataFrame:
        """Project the attribute table onto the given columns, keeping geometry."""
        if isinstance(names, str):
            names = [names]
        return self.subset(gdf, columns=list(names))

    def filter_rows(self, gdf: gpd.GeoDataFrame, column: str, values: Any,
                    exclude: bool = False) -> gpd.GeoDataFrame:
        """
        Keep (or drop) features whose column value is in values.

        Args:
            gdf: Input GeoDataFrame
            column: Attribute column to test
            values: A single value or a collection of values
            exclude: Drop matching features instead of keeping them

        Returns:
            Filtered GeoDataFrame
        """
        self._check_columns(gdf, [column])
        if isinstance(values, (str, bytes)) or not hasattr(values, '__iter__'):
            values = [values]

        mask = gdf[column].isin(list(values))
        if exclude:
            mask = ~mask

        result = gdf[mask].copy()
        logger.info(f"Filtered on {column}: {len(result)} of {len(gdf)} features kept")
        return result

    def summarize(self, gdf: gpd.GeoDataFrame, column: str) -> Dict[str, Any]:
        """
        Summarize one attribute column together with its geometry.

        Returns:
            Dictionary with pandas describe() statistics, missing count,
            geometry type counts and the CRS string
        """
        self._check_columns(gdf, [column])
        series = gdf[column]

        return {
            'column': column,
            'statistics': series.describe().to_dict(),
            'missing': int(series.isna().sum()),
            'geometry_types': gdf.geometry.geom_type.value_counts().to_dict(),
            'crs': gdf.crs.to_string() if gdf.crs is not None else None,
        }


def load_vector(source: str) -> gpd.GeoDataFrame:
    """Load a feature collection with the default loader."""
    return VectorDataLoader().load(source)
