"""
Declarative map specifications.

A MapSpec lists the layers of a map (each a dataset plus how to draw it),
an optional facet rule, a basemap and a caption. Specs are immutable: every
builder method returns a new spec, and ``spec + other`` accumulates layers.
The same spec renders as a static figure or an interactive web map
depending on the active map mode.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Optional, Sequence, Tuple, Union
import logging

import geopandas as gpd

from ..config import get_map_mode
from ..errors import InvalidReferenceError
from ..raster.grid import GridDataset

logger = logging.getLogger(__name__)

LAYER_KINDS = ("auto", "polygons", "borders", "symbols", "dots", "lines", "raster")

MapData = Union[gpd.GeoDataFrame, GridDataset]


def as_map_data(data: Any) -> MapData:
    """Accept GeoDataFrames, GeoSeries and grids; wrap GeoSeries as frames."""
    if isinstance(data, (gpd.GeoDataFrame, GridDataset)):
        return data
    if isinstance(data, gpd.GeoSeries):
        return gpd.GeoDataFrame(geometry=data)
    raise InvalidReferenceError(
        f"Cannot map {type(data).__name__}; expected a GeoDataFrame, GeoSeries or GridDataset"
    )


def has_key(data: MapData, key: str) -> bool:
    if isinstance(data, GridDataset):
        return key in data.names
    return key in data.columns


@dataclass(frozen=True, eq=False)
class Layer:
    """One dataset and the way it is drawn."""
    data: Any
    kind: str = "auto"
    column: Optional[str] = None
    style: Optional[str] = None
    n_classes: Optional[int] = None
    palette: Optional[str] = None
    breaks: Optional[Tuple[float, ...]] = None
    color: Optional[str] = None
    border_color: Optional[str] = None
    size: Union[float, str, None] = None
    alpha: float = 1.0
    line_width: Optional[float] = None
    name: Optional[str] = None
    title: Optional[str] = None
    burst: bool = False
    band: Optional[int] = None

    def resolved_kind(self) -> str:
        """Concrete kind, inferring 'auto' from the data's geometry."""
        if self.kind != "auto":
            return self.kind
        if isinstance(self.data, GridDataset):
            return "raster"

        geom_types = set(self.data.geometry.geom_type.dropna())
        if geom_types and geom_types <= {"Point", "MultiPoint"}:
            return "symbols" if isinstance(self.size, str) else "dots"
        if geom_types and geom_types <= {"LineString", "MultiLineString", "LinearRing"}:
            return "lines"
        return "polygons"

    @property
    def label(self) -> str:
        return self.name or self.title or self.column or self.resolved_kind()


@dataclass(frozen=True, eq=False)
class FacetSpec:
    """Partition rule: panels by a key, or animation frames along a key."""
    by: Optional[str] = None
    along: Optional[str] = None
    values: Optional[Tuple[Any, ...]] = None
    nrow: Optional[int] = None
    ncol: Optional[int] = None
    free_coords: bool = False

    @property
    def key(self) -> str:
        return self.by or self.along


@dataclass(frozen=True, eq=False)
class MapSpec:
    """Immutable description of a map."""
    layers: Tuple[Layer, ...] = ()
    facet: Optional[FacetSpec] = None
    tiles: Optional[str] = None
    caption: Optional[str] = None
    current: Any = field(default=None, repr=False)

    def shape(self, data: Any) -> "MapSpec":
        """Set the dataset the following layer calls draw."""
        return replace(self, current=as_map_data(data))

    def _require_shape(self, method: str) -> MapData:
        if self.current is None:
            raise InvalidReferenceError(f"{method}() needs a dataset; call shape() first")
        return self.current

    def _check_column(self, data: MapData, column: Optional[str]) -> None:
        if column is None or isinstance(data, GridDataset):
            return
        if column not in data.columns:
            raise InvalidReferenceError(
                f"Unknown column '{column}'; available: {list(data.columns)}"
            )

    def _with_layer(self, layer: Layer) -> "MapSpec":
        logger.debug(f"Added {layer.kind} layer {layer.label}")
        return replace(self, layers=self.layers + (layer,))

    def polygons(self, column: Optional[str] = None, style: Optional[str] = None,
                 n_classes: Optional[int] = None, palette: Optional[str] = None,
                 breaks: Optional[Sequence[float]] = None, color: Optional[str] = None,
                 border_color: Optional[str] = None, alpha: float = 1.0,
                 title: Optional[str] = None, **kwargs) -> "MapSpec":
        """Fill polygons, coloured by column or with a fixed colour."""
        data = self._require_shape("polygons")
        self._check_column(data, column)
        return self._with_layer(Layer(
            data, "polygons", column=column, style=style, n_classes=n_classes,
            palette=palette, breaks=tuple(breaks) if breaks is not None else None,
            color=color, border_color=border_color, alpha=alpha, title=title, **kwargs
        ))

    def borders(self, color: Optional[str] = None, line_width: Optional[float] = None,
                **kwargs) -> "MapSpec":
        """Draw outlines only."""
        data = self._require_shape("borders")
        return self._with_layer(Layer(data, "borders", color=color, line_width=line_width, **kwargs))

    def symbols(self, size: Union[float, str, None] = None, column: Optional[str] = None,
                color: Optional[str] = None, palette: Optional[str] = None,
                style: Optional[str] = None, alpha: float = 0.8,
                title: Optional[str] = None, **kwargs) -> "MapSpec":
        """Draw proportional symbols at feature locations (centroids for polygons)."""
        data = self._require_shape("symbols")
        self._check_column(data, column)
        if isinstance(size, str):
            self._check_column(data, size)
        return self._with_layer(Layer(
            data, "symbols", column=column, size=size, color=color, palette=palette,
            style=style, alpha=alpha, title=title, **kwargs
        ))

    def dots(self, color: Optional[str] = None, size: Optional[float] = None,
             column: Optional[str] = None, **kwargs) -> "MapSpec":
        """Draw small fixed-size markers."""
        data = self._require_shape("dots")
        self._check_column(data, column)
        return self._with_layer(Layer(data, "dots", column=column, color=color, size=size, **kwargs))

    def lines(self, color: Optional[str] = None, line_width: Optional[float] = None,
              column: Optional[str] = None, **kwargs) -> "MapSpec":
        data = self._require_shape("lines")
        self._check_column(data, column)
        return self._with_layer(Layer(
            data, "lines", column=column, color=color, line_width=line_width, **kwargs
        ))

    def raster(self, band: Optional[int] = None, palette: Optional[str] = None,
               style: Optional[str] = None, n_classes: Optional[int] = None,
               alpha: float = 1.0, title: Optional[str] = None, **kwargs) -> "MapSpec":
        """Draw a grid layer; multi-layer grids become panels unless band is given."""
        data = self._require_shape("raster")
        if not isinstance(data, GridDataset):
            raise InvalidReferenceError("raster() needs a GridDataset shape")
        if band is not None and not 1 <= band <= data.count:
            raise InvalidReferenceError(f"Band {band} outside 1..{data.count}")
        return self._with_layer(Layer(
            data, "raster", band=band, palette=palette, style=style,
            n_classes=n_classes, alpha=alpha, title=title, **kwargs
        ))

    def facets(self, by: Optional[str] = None, along: Optional[str] = None,
               values: Optional[Sequence[Any]] = None, nrow: Optional[int] = None,
               ncol: Optional[int] = None, free_coords: bool = False) -> "MapSpec":
        """
        Split the map into panels by a key or frames along a key.

        Raises:
            InvalidReferenceError: If neither or both of by/along are given,
                or no layer carries the key
        """
        if (by is None) == (along is None):
            raise InvalidReferenceError("Give exactly one of by= or along=")
        key = by or along
        if self.layers and not any(has_key(layer.data, key) for layer in self.layers):
            raise InvalidReferenceError(f"No layer has a facet key '{key}'")

        facet = FacetSpec(by=by, along=along,
                          values=tuple(values) if values is not None else None,
                          nrow=nrow, ncol=ncol, free_coords=free_coords)
        return replace(self, facet=facet)

    def basemap(self, tiles: Optional[str]) -> "MapSpec":
        """Choose a configured tile source; 'None' disables tiles."""
        return replace(self, tiles=tiles)

    def layout(self, title: Optional[str] = None) -> "MapSpec":
        return replace(self, caption=title)

    def __add__(self, other: Any) -> "MapSpec":
        if isinstance(other, MapSpec):
            return replace(
                self,
                layers=self.layers + other.layers,
                facet=other.facet or self.facet,
                tiles=other.tiles or self.tiles,
                caption=other.caption or self.caption,
                current=other.current if other.current is not None else self.current,
            )
        data = as_map_data(other)
        return self._with_layer(Layer(data))

    def render(self, mode: Optional[str] = None):
        """
        Render in the given or active map mode.

        Returns:
            MapCanvas in 'plot' mode, folium.Map in 'view' mode
        """
        mode = mode or get_map_mode()
        if not self.layers:
            raise InvalidReferenceError("Map has no layers to render")

        if mode == "view":
            from .interactive import InteractiveMapRenderer
            return InteractiveMapRenderer().render_spec(self)

        if self.facet is not None:
            from .facets import FacetedMapRenderer
            return FacetedMapRenderer().render(self)

        from .static import StaticMapRenderer
        return StaticMapRenderer().render_spec(self)


def map_shape(data: Any) -> MapSpec:
    """Start a map specification from a dataset."""
    return MapSpec().shape(data)


def view(data: Any, column: Optional[str] = None, color: Optional[str] = None,
         line_width: Optional[float] = None, layer_name: Optional[str] = None,
         burst: bool = False, tiles: Optional[str] = None) -> MapSpec:
    """
    Quick single-layer spec with geometry-inferred drawing, meant for the
    interactive viewer. Combine several with ``+``.
    """
    data = as_map_data(data)
    spec = MapSpec(tiles=tiles, current=data)
    if column is not None:
        spec._check_column(data, column)
    return spec._with_layer(Layer(data, "auto", column=column, color=color,
                                  line_width=line_width, name=layer_name, burst=burst))
