"""
Static map rendering with matplotlib.

Draws feature collections and grids onto matplotlib figures: single
choropleths, small multiples of several attributes, layered composites
onto one open canvas, and the layers of a MapSpec.
"""

import math
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import logging

import geopandas as gpd
import matplotlib.pyplot as plt
import numpy as np
from matplotlib.colors import BoundaryNorm, ListedColormap
from matplotlib.patches import Patch

from ..config import MapConfig, get_map_config
from ..errors import InvalidReferenceError
from ..raster.grid import GridDataset
from ..vector.transforms import to_points
from .spec import Layer, MapSpec, as_map_data
from .symbology import SymbologyEngine

logger = logging.getLogger(__name__)


def data_bounds(data: Any) -> Tuple[float, float, float, float]:
    """(xmin, ymin, xmax, ymax) of a GeoDataFrame or grid."""
    if isinstance(data, GridDataset):
        return tuple(data.bounds)
    return tuple(data.total_bounds)


def union_bounds(bounds: Sequence[Tuple[float, float, float, float]]) -> Tuple[float, float, float, float]:
    finite = [b for b in bounds if np.all(np.isfinite(b))]
    if not finite:
        return (0.0, 0.0, 1.0, 1.0)
    array = np.asarray(finite)
    return (array[:, 0].min(), array[:, 1].min(), array[:, 2].max(), array[:, 3].max())


def panel_grid(n_panels: int, nrow: Optional[int] = None, ncol: Optional[int] = None) -> Tuple[int, int]:
    """Rows and columns for n panels, filling in whichever is missing."""
    n_panels = max(n_panels, 1)
    if nrow and ncol:
        if nrow * ncol < n_panels:
            raise InvalidReferenceError(f"{nrow}x{ncol} layout cannot hold {n_panels} panels")
        return nrow, ncol
    if nrow:
        return nrow, math.ceil(n_panels / nrow)
    if ncol:
        return math.ceil(n_panels / ncol), ncol
    ncol = math.ceil(math.sqrt(n_panels))
    return math.ceil(n_panels / ncol), ncol


class MapCanvas:
    """A matplotlib figure plus a record of the layers drawn on it."""

    def __init__(self, figure: plt.Figure, axes: List[plt.Axes]):
        self.figure = figure
        self.axes = axes
        self.draw_calls: List[Dict[str, Any]] = []
        self.panel_values: List[Any] = []

    @property
    def ax(self) -> plt.Axes:
        return self.axes[0]

    def record(self, ax: plt.Axes, layer: Layer, n_features: int) -> None:
        self.draw_calls.append({
            'panel': self.axes.index(ax),
            'layer': layer.label,
            'kind': layer.resolved_kind(),
            'features': n_features,
        })

    def save(self, path: str, dpi: Optional[int] = None) -> str:
        self.figure.savefig(path, dpi=dpi, bbox_inches='tight')
        logger.info(f"Saved map to {path}")
        return path

    def close(self) -> None:
        plt.close(self.figure)


class StaticMapRenderer:
    """Renders maps as matplotlib figures."""

    def __init__(self, config: Optional[MapConfig] = None):
        self.config = config or get_map_config()
        self.map_settings = self.config.get_map_settings()
        self.symbol_settings = self.config.get_symbol_settings()
        self.classification = self.config.get_classification_settings()
        self.symbology = SymbologyEngine(self.classification, self.symbol_settings['size_range'])
        self._active_canvas: Optional[MapCanvas] = None

    def new_canvas(self, n_panels: int = 1, nrow: Optional[int] = None,
                   ncol: Optional[int] = None, figsize: Optional[Tuple[float, float]] = None,
                   dpi: Optional[int] = None) -> MapCanvas:
        """Open a figure with n map panels."""
        nrow, ncol = panel_grid(n_panels, nrow, ncol)
        width, height = figsize or self.map_settings['figure_size']
        if figsize is None and n_panels > 1:
            height = height * nrow / ncol

        fig, axes = plt.subplots(nrow, ncol, figsize=(width, height),
                                 dpi=dpi or self.map_settings['dpi'], squeeze=False)
        flat = list(axes.ravel())
        for ax in flat[n_panels:]:
            ax.set_visible(False)
        for ax in flat[:n_panels]:
            ax.set_axis_off()

        return MapCanvas(fig, flat[:n_panels])

    def plot(self, data: Any, column: Union[str, Sequence[str], None] = None, *,
             style: Optional[str] = None, color: Optional[str] = None,
             reset: bool = True, add: bool = False, canvas: Optional[MapCanvas] = None,
             size: Union[float, str, None] = None, line_width: Optional[float] = None,
             title: Optional[str] = None, legend: bool = True,
             max_plot: Optional[int] = None) -> MapCanvas:
        """
        Quick plot of a feature collection or grid.

        Args:
            data: GeoDataFrame, GeoSeries or GridDataset
            column: One attribute (choropleth), a list (small multiples) or
                None for every attribute up to max_plot
            style: Classification style for numeric columns
            color: Fixed fill colour when no column is given
            reset: When False, keep the canvas open for a following add=True call
            add: Draw onto the open canvas instead of a new one
            canvas: Explicit canvas to draw onto with add=True
            size: Marker size for point data
            line_width: Outline or line width
            title: Panel title
            legend: Draw a legend for classified layers
            max_plot: Maximum number of small-multiple panels

        Returns:
            The MapCanvas drawn on

        Raises:
            InvalidReferenceError: If add=True without an open canvas, or a
                column is unknown
        """
        data = as_map_data(data)

        if add:
            canvas = canvas or self._active_canvas
            if canvas is None:
                raise InvalidReferenceError(
                    "add=True needs an open canvas; plot the base layer with reset=False first"
                )
            if isinstance(column, (list, tuple)):
                raise InvalidReferenceError("Only one column can be added to an open canvas")
            layer = Layer(data, column=column, style=style, color=color, size=size,
                          line_width=line_width, title=title)
            self._draw_layer(canvas.ax, layer, canvas, legend=legend)
        else:
            panels = self._panels_for(data, column, max_plot)
            canvas = self.new_canvas(len(panels))
            for ax, (panel_column, band) in zip(canvas.axes, panels):
                layer = Layer(data, column=panel_column, band=band, style=style, color=color,
                              size=size, line_width=line_width, title=title)
                self._draw_layer(ax, layer, canvas, legend=legend)
                panel_title = title if len(panels) == 1 else (panel_column or data.names[band - 1])
                if panel_title:
                    ax.set_title(panel_title)

        self._active_canvas = None if reset else canvas
        logger.info(f"Plotted {len(canvas.draw_calls)} layer(s) on {len(canvas.axes)} panel(s)")
        return canvas

    def _panels_for(self, data: Any, column, max_plot: Optional[int]) -> List[Tuple[Optional[str], Optional[int]]]:
        """(column, band) pairs, one per panel."""
        max_plot = max_plot or self.map_settings['max_panels']

        if isinstance(data, GridDataset):
            bands = list(range(1, data.count + 1))
            if column is not None:
                names = [column] if isinstance(column, str) else list(column)
                unknown = [n for n in names if n not in data.names]
                if unknown:
                    raise InvalidReferenceError(f"Unknown layer(s) {unknown}; available: {data.names}")
                bands = [data.names.index(n) + 1 for n in names]
            return [(None, band) for band in bands[:max_plot]]

        if isinstance(column, str):
            return [(column, None)]

        if column is None:
            geometry_name = data.geometry.name
            columns = [c for c in data.columns if c != geometry_name]
            if not columns:
                return [(None, None)]
        else:
            columns = list(column)

        unknown = [c for c in columns if c not in data.columns]
        if unknown:
            raise InvalidReferenceError(f"Unknown column(s) {unknown}; available: {list(data.columns)}")

        if len(columns) > max_plot:
            logger.warning(f"Plotting the first {max_plot} of {len(columns)} attributes")
            columns = columns[:max_plot]
        return [(c, None) for c in columns]

    def render_spec(self, spec: MapSpec, canvas: Optional[MapCanvas] = None,
                    ax: Optional[plt.Axes] = None, size_domains: Optional[Dict[str, Tuple[float, float]]] = None) -> MapCanvas:
        """
        Draw the layers of a spec in order onto one panel.

        A spec holding a single multi-layer grid without a chosen band is
        drawn as one panel per grid layer.
        """
        if canvas is None:
            only = spec.layers[0] if len(spec.layers) == 1 else None
            if (only is not None and only.resolved_kind() == "raster"
                    and only.band is None and only.data.count > 1):
                return self._render_bands(only, spec.caption)
            canvas = self.new_canvas(1)
        ax = ax or canvas.ax

        for layer in spec.layers:
            domain = (size_domains or {}).get(layer.size) if isinstance(layer.size, str) else None
            self._draw_layer(ax, layer, canvas, size_domain=domain)

        if spec.caption:
            ax.set_title(spec.caption)
        return canvas

    def _render_bands(self, layer: Layer, caption: Optional[str]) -> MapCanvas:
        grid = layer.data
        canvas = self.new_canvas(grid.count)
        for band, ax in enumerate(canvas.axes, start=1):
            self._draw_layer(ax, Layer(grid, "raster", band=band, palette=layer.palette,
                                       style=layer.style, n_classes=layer.n_classes), canvas)
            ax.set_title(grid.names[band - 1])
        if caption:
            canvas.figure.suptitle(caption)
        return canvas

    def arrange(self, items: Sequence[Any], ncol: Optional[int] = None,
                nrow: Optional[int] = None) -> MapCanvas:
        """
        Lay several maps out as panels of one figure.

        Args:
            items: MapSpecs or datasets, one per panel
            ncol: Number of panel columns
            nrow: Number of panel rows
        """
        items = list(items)
        canvas = self.new_canvas(len(items), nrow=nrow, ncol=ncol)
        for ax, item in zip(canvas.axes, items):
            if isinstance(item, MapSpec):
                self.render_spec(item, canvas=canvas, ax=ax)
            else:
                self._draw_layer(ax, Layer(as_map_data(item)), canvas)

        logger.info(f"Arranged {len(items)} maps")
        return canvas

    def set_extent(self, ax: plt.Axes, bounds: Tuple[float, float, float, float]) -> None:
        xmin, ymin, xmax, ymax = bounds
        pad_x = (xmax - xmin) * 0.02 or 0.5
        pad_y = (ymax - ymin) * 0.02 or 0.5
        ax.set_xlim(xmin - pad_x, xmax + pad_x)
        ax.set_ylim(ymin - pad_y, ymax + pad_y)

    def _draw_layer(self, ax: plt.Axes, layer: Layer, canvas: MapCanvas,
                    size_domain: Optional[Tuple[float, float]] = None, legend: bool = True) -> None:
        kind = layer.resolved_kind()
        if kind == "raster":
            self._draw_raster(ax, layer, legend)
            canvas.record(ax, layer, layer.data.ncell)
            return

        data = layer.data
        if data.empty:
            logger.warning(f"Layer {layer.label} has no features, nothing drawn")
            canvas.record(ax, layer, 0)
            return

        if kind in ("symbols", "dots"):
            data = to_points(data)

        symbology = None
        if layer.column is not None:
            symbology = self.symbology.create_symbology(data, layer.column, {
                'style': layer.style,
                'n_classes': layer.n_classes,
                'palette': layer.palette,
                'breaks': layer.breaks,
                'title': layer.title,
            })
        colors = symbology['colors'] if symbology else None
        border_color = layer.border_color or self.map_settings['border_color']
        line_width = layer.line_width if layer.line_width is not None else self.map_settings['line_width']

        if kind == "polygons":
            data.plot(ax=ax, color=colors or layer.color or self.map_settings['fill_color'],
                      edgecolor=border_color, linewidth=line_width, alpha=layer.alpha)
        elif kind == "borders":
            data.plot(ax=ax, facecolor='none', edgecolor=layer.color or border_color,
                      linewidth=line_width)
        elif kind == "lines":
            data.plot(ax=ax, color=colors or layer.color or border_color,
                      linewidth=layer.line_width if layer.line_width is not None else 1.5,
                      alpha=layer.alpha)
        elif kind == "dots":
            data.plot(ax=ax, color=colors or layer.color or border_color,
                      markersize=layer.size if layer.size is not None else self.symbol_settings['dot_size'],
                      alpha=layer.alpha)
        elif kind == "symbols":
            data.plot(ax=ax, color=colors or layer.color or self._default_symbol_color(),
                      markersize=self._symbol_sizes(data, layer, size_domain),
                      edgecolor=self.symbol_settings['border_color'], linewidth=0.5,
                      alpha=layer.alpha)
        else:
            raise InvalidReferenceError(f"Unknown layer kind '{kind}'")

        if symbology and legend:
            self._add_legend(ax, symbology['legend_config'], kind)

        canvas.record(ax, layer, len(data))
        logger.debug(f"Drew {kind} layer {layer.label} with {len(data)} features")

    def _default_symbol_color(self) -> str:
        return self.symbology.color_manager.get_color_palette('sequential', 1)[0]

    def _symbol_sizes(self, data: gpd.GeoDataFrame, layer: Layer,
                      size_domain: Optional[Tuple[float, float]]):
        if isinstance(layer.size, str):
            return self.symbology.style_calculator.calculate_symbol_sizes(
                data[layer.size].to_numpy(dtype='float64', na_value=np.nan),
                domain=size_domain
            )
        if layer.size is not None:
            return layer.size
        return self.symbol_settings['dot_size'] * 4

    def _add_legend(self, ax: plt.Axes, legend_config: Dict[str, Any], kind: str) -> None:
        handles = [
            Patch(facecolor=color, edgecolor='none' if kind != 'polygons' else self.map_settings['border_color'],
                  label=label)
            for label, color in zip(legend_config['labels'], legend_config['colors'])
        ]
        previous = ax.get_legend()
        if previous is not None:
            ax.add_artist(previous)
        ax.legend(handles=handles, title=legend_config.get('title'), loc='lower left',
                  fontsize='small', title_fontsize='small', frameon=True)

    def _draw_raster(self, ax: plt.Axes, layer: Layer, legend: bool = True) -> None:
        grid: GridDataset = layer.data
        band = layer.band or 1
        values = grid.masked(band)
        xmin, xmax, ymin, ymax = grid.extent
        extent = [xmin, xmax, ymin, ymax]

        if grid.is_categorical or grid.data.dtype == bool:
            if grid.is_categorical:
                labels = list(grid.levels['category'])
                codes = list(grid.levels['ID'])
            else:
                labels, codes = ['False', 'True'], [0, 1]
            palette = layer.palette or 'categorical'
            colors = list(self.symbology.color_manager.get_categorical_colors(labels, palette).values())
            cmap = ListedColormap(colors)
            boundaries = np.arange(min(codes) - 0.5, max(codes) + 1.0, 1.0)
            norm = BoundaryNorm(boundaries, cmap.N)
            ax.imshow(values, extent=extent, origin='upper', cmap=cmap, norm=norm,
                      alpha=layer.alpha, interpolation='nearest')
            if legend:
                self._add_legend(ax, {'labels': labels, 'colors': colors,
                                      'title': layer.title or grid.names[band - 1]}, 'raster')
        else:
            palette = layer.palette or self.classification['raster_palette']
            cmap = plt.get_cmap(palette)
            norm = None
            if layer.style is not None and values.count():
                _, breaks = self.symbology.classifier.classify_data(
                    values.compressed(), layer.style, layer.n_classes or self.classification['n_classes']
                )
                breaks = np.unique(breaks)
                if len(breaks) > 2:
                    norm = BoundaryNorm(breaks, cmap.N)
            image = ax.imshow(values, extent=extent, origin='upper', cmap=cmap, norm=norm,
                              alpha=layer.alpha, interpolation='nearest')
            if legend:
                colorbar = ax.figure.colorbar(image, ax=ax, shrink=0.7)
                colorbar.set_label(layer.title or grid.names[band - 1])

        logger.debug(f"Drew raster layer {grid.names[band - 1]} ({grid.height}x{grid.width})")
