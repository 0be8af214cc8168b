"""
Interactive map rendering with folium.

Turns the same MapSpec used for static output into a browser-viewable
Leaflet map with pan/zoom, basemap tiles, styled vector layers, raster
overlays, HTML legends and a layer control.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import logging

import folium
import geopandas as gpd
import matplotlib.colors as mcolors
import matplotlib.pyplot as plt
import numpy as np
from folium.plugins import Fullscreen
from folium.raster_layers import ImageOverlay
from rasterio.warp import transform_bounds

from ..config import MapConfig, get_map_config
from ..errors import InvalidReferenceError
from ..raster.grid import GridDataset
from ..vector.transforms import WGS84, reproject, to_points
from .spec import Layer, MapSpec
from .static import union_bounds
from .symbology import SymbologyEngine, format_break

logger = logging.getLogger(__name__)

COLOR_PROPERTY = "_color"
TOOLTIP_FIELDS = 8


def wgs84_bounds(data: Any) -> Tuple[float, float, float, float]:
    """(west, south, east, north) of a dataset in longitude/latitude."""
    if isinstance(data, GridDataset):
        if data.crs is None:
            raise InvalidReferenceError("Grid has no coordinate reference system to place it on a web map")
        return tuple(transform_bounds(data.crs, WGS84, *data.bounds))
    if data.empty:
        return (np.nan, np.nan, np.nan, np.nan)
    if data.crs is None:
        return tuple(data.total_bounds)
    return tuple(reproject(data, WGS84).total_bounds)


class InteractiveMapRenderer:
    """Core interactive map rendering using folium."""

    def __init__(self, config: Optional[MapConfig] = None):
        self.config = config or get_map_config()
        self.map_settings = self.config.get_map_settings()
        self.classification = self.config.get_classification_settings()
        self.symbology = SymbologyEngine(self.classification,
                                         self.config.get_symbol_settings()['size_range'])
        self.basemaps = BasemapManager(self.config)
        self.legends = LegendGenerator()

    def create_base_map(self, bounds: Optional[Tuple] = None, tiles: Optional[str] = None) -> folium.Map:
        """
        Create a base map.

        Args:
            bounds: Optional (west, south, east, north) in degrees to fit
            tiles: Configured basemap name, 'None' for no tiles; defaults to
                the configured basemap

        Returns:
            folium Map object
        """
        if bounds is not None and np.all(np.isfinite(bounds)):
            west, south, east, north = bounds
            center = [(south + north) / 2, (west + east) / 2]
        else:
            bounds = None
            center = list(self.map_settings['default_center'])

        map_obj = folium.Map(location=center, zoom_start=self.map_settings['default_zoom'],
                             tiles=None, control_scale=True)
        self.basemaps.add_basemap(map_obj, tiles or self.map_settings['basemap'])

        if bounds is not None:
            map_obj.fit_bounds([[bounds[1], bounds[0]], [bounds[3], bounds[2]]])

        logger.debug(f"Created base map centered at {center}")
        return map_obj

    def add_vector_layer(self, map_obj: folium.Map, layer: Layer,
                         parent: Optional[Any] = None) -> Optional[Dict[str, Any]]:
        """
        Add a feature collection as GeoJSON.

        Features are coloured by layer.column when given, otherwise with the
        layer's fixed colour. With layer.burst, each category of the column
        (or each feature when no column is set) becomes its own toggleable
        group.

        Returns:
            Legend configuration for coloured layers, else None
        """
        data = layer.data
        target = parent or map_obj
        if data.empty:
            logger.warning(f"No features to render for {layer.label}")
            return None

        data = reproject(data, WGS84) if data.crs is not None else data
        kind = layer.resolved_kind()
        if kind in ("dots", "symbols"):
            data = to_points(data)

        legend_config = None
        data = data.copy()
        if layer.column is not None:
            symbology = self.symbology.create_symbology(data, layer.column, {
                'style': layer.style,
                'n_classes': layer.n_classes,
                'palette': layer.palette,
                'breaks': layer.breaks,
                'title': layer.title,
            })
            data[COLOR_PROPERTY] = symbology['colors']
            legend_config = symbology['legend_config']
        else:
            data[COLOR_PROPERTY] = layer.color or self._default_color(kind)

        if layer.burst:
            key = layer.column
            groups = data.groupby(key, sort=True) if key else data.groupby(level=0, sort=True)
            for value, part in groups:
                group = folium.FeatureGroup(name=f"{layer.label}: {value}")
                self._add_geojson(group, part, layer, kind)
                group.add_to(target)
            logger.info(f"Added {len(data)} features of {layer.label} in {len(groups)} groups")
        else:
            self._add_geojson(target, data, layer, kind)
            logger.info(f"Added {len(data)} features of {layer.label}")

        return legend_config

    def _default_color(self, kind: str) -> str:
        if kind in ("lines", "borders", "dots"):
            return self.map_settings['border_color']
        return '#3388ff'

    def _add_geojson(self, target: Any, data: gpd.GeoDataFrame, layer: Layer, kind: str) -> None:
        border_color = layer.border_color or self.map_settings['border_color']
        weight = layer.line_width if layer.line_width is not None else 1.5

        if kind in ("lines", "borders"):
            def style_function(feature):
                return {
                    'color': feature['properties'][COLOR_PROPERTY],
                    'weight': weight,
                    'opacity': layer.alpha,
                    'fillOpacity': 0.0,
                }
        else:
            def style_function(feature):
                return {
                    'fillColor': feature['properties'][COLOR_PROPERTY],
                    'color': border_color,
                    'weight': weight if kind == "polygons" else 1,
                    'fillOpacity': layer.alpha if kind == "polygons" else 0.8,
                }

        geometry_name = data.geometry.name
        fields = [c for c in data.columns if c not in (geometry_name, COLOR_PROPERTY)]

        if kind == "symbols" and isinstance(layer.size, str):
            self._add_sized_markers(target, data, layer, fields)
            return

        marker = None
        if kind in ("dots", "symbols"):
            radius = layer.size if isinstance(layer.size, (int, float)) else 5
            marker = folium.CircleMarker(radius=radius, fill=True)

        folium.GeoJson(
            data.to_json(),
            name=layer.label,
            style_function=style_function,
            marker=marker,
            tooltip=folium.GeoJsonTooltip(fields=fields[:TOOLTIP_FIELDS]) if fields else None,
        ).add_to(target)

    def _add_sized_markers(self, target: Any, data: gpd.GeoDataFrame, layer: Layer,
                           fields: List[str]) -> None:
        """One circle per point, its area proportional to the size column."""
        areas = self.symbology.style_calculator.calculate_symbol_sizes(
            data[layer.size].to_numpy(dtype='float64', na_value=np.nan)
        )
        group = folium.FeatureGroup(name=layer.label)
        for (_, row), area in zip(data.iterrows(), areas):
            point = row.geometry.representative_point()
            tooltip = "<br>".join(f"<b>{field}</b>: {row[field]}" for field in fields[:TOOLTIP_FIELDS])
            folium.CircleMarker(
                location=[point.y, point.x],
                radius=float(np.sqrt(area) / 2),
                color=self.map_settings['border_color'],
                weight=1,
                fill=True,
                fill_color=row[COLOR_PROPERTY],
                fill_opacity=layer.alpha,
                tooltip=tooltip or None,
            ).add_to(group)
        group.add_to(target)

    def add_raster_layer(self, map_obj: folium.Map, layer: Layer,
                         parent: Optional[Any] = None) -> Dict[str, Any]:
        """
        Add a grid band as an image overlay, reprojected to EPSG:4326.

        Returns:
            Legend configuration (category swatches or the value range)
        """
        grid: GridDataset = layer.data
        band = layer.band or 1
        if grid.crs is None:
            raise InvalidReferenceError("Grid has no coordinate reference system to place it on a web map")
        if grid.crs.to_epsg() != 4326:
            grid = grid.reproject(WGS84)

        values = grid.masked(band)
        name = layer.title or grid.names[band - 1]

        if grid.is_categorical:
            labels = list(grid.levels['category'])
            codes = np.asarray(grid.levels['ID'])
            swatches = self.symbology.color_manager.get_categorical_colors(labels, layer.palette or 'categorical')
            colors = [swatches[label] for label in labels]
            cmap = mcolors.ListedColormap(colors)
            norm = mcolors.BoundaryNorm(np.arange(codes.min() - 0.5, codes.max() + 1.0, 1.0), cmap.N)
            legend_config = {'title': name, 'labels': labels, 'colors': colors}
        else:
            cmap = plt.get_cmap(layer.palette or self.classification['raster_palette'])
            vmin, vmax = (float(values.min()), float(values.max())) if values.count() else (0.0, 1.0)
            norm = mcolors.Normalize(vmin=vmin, vmax=vmax)
            legend_config = {
                'title': name,
                'labels': [format_break(vmin), format_break(vmax)],
                'colors': [mcolors.rgb2hex(cmap(0.0)), mcolors.rgb2hex(cmap(1.0))],
            }

        rgba = cmap(norm(values))
        rgba[..., 3] = np.where(values.mask, 0.0, 1.0)
        image = (rgba * 255).astype('uint8')

        west, south, east, north = grid.bounds
        ImageOverlay(
            image=image,
            bounds=[[south, west], [north, east]],
            origin='upper',
            opacity=layer.alpha,
            mercator_project=True,
            name=name,
        ).add_to(parent or map_obj)

        logger.info(f"Added raster overlay {name} ({grid.height}x{grid.width})")
        return legend_config

    def add_layer(self, map_obj: folium.Map, layer: Layer, parent: Optional[Any] = None) -> Optional[Dict[str, Any]]:
        if layer.resolved_kind() == "raster":
            return self.add_raster_layer(map_obj, layer, parent)
        return self.add_vector_layer(map_obj, layer, parent)

    def add_controls(self, map_obj: folium.Map, control_config: Dict) -> folium.Map:
        """
        Add controls to map.

        Args:
            map_obj: folium Map object
            control_config: Control configuration

        Returns:
            Updated folium Map object
        """
        if control_config.get('layer_control', True):
            folium.LayerControl(collapsed=control_config.get('collapsed', True)).add_to(map_obj)

        if control_config.get('fullscreen', True):
            Fullscreen().add_to(map_obj)

        return map_obj

    def render_spec(self, spec: MapSpec) -> folium.Map:
        """
        Build an interactive map from a spec.

        Facets become one toggleable feature group per facet value, the
        first one shown.
        """
        bounds = union_bounds([wgs84_bounds(layer.data) for layer in spec.layers])
        map_obj = self.create_base_map(bounds, spec.tiles)
        legend_configs: List[Dict[str, Any]] = []

        if spec.facet is not None:
            from .facets import FacetedMapRenderer
            faceter = FacetedMapRenderer(self.config)
            for i, value in enumerate(faceter.facet_values(spec)):
                group = folium.FeatureGroup(name=f"{spec.facet.key}: {value}", show=(i == 0))
                for layer in faceter.panel_spec(spec, value).layers:
                    legend = self.add_layer(map_obj, layer, parent=group)
                    if legend and i == 0:
                        legend_configs.append(legend)
                group.add_to(map_obj)
        else:
            for layer in spec.layers:
                legend = self.add_layer(map_obj, layer)
                if legend:
                    legend_configs.append(legend)

        for i, legend in enumerate(legend_configs):
            legend_html = self.legends.create_legend(legend['title'], legend['labels'],
                                                     legend['colors'], position=i)
            self.legends.add_legend_to_map(map_obj, legend_html)

        if spec.caption:
            map_obj.get_root().html.add_child(folium.Element(
                f'<h3 style="position: fixed; top: 10px; left: 60px; z-index: 9999; '
                f'background: white; padding: 4px 8px; margin: 0;">{spec.caption}</h3>'
            ))

        self.add_controls(map_obj, {'layer_control': True, 'fullscreen': True})
        logger.info(f"Rendered interactive map with {len(spec.layers)} layer(s)")
        return map_obj

    def save(self, map_obj: folium.Map, path: str) -> Path:
        """Write the map as a standalone HTML document."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        map_obj.save(str(path))
        logger.info(f"Saved interactive map to {path}")
        return path


class LegendGenerator:
    """Generates HTML legends for interactive maps."""

    def __init__(self):
        self.legend_template = """
        <div style="position: fixed;
                    bottom: {bottom}px; left: 50px; width: 220px; height: auto;
                    background-color: white; border:2px solid grey; z-index:9999;
                    font-size:12px; padding: 10px; border-radius: 5px;
                    box-shadow: 0 2px 4px rgba(0,0,0,0.2);">
        <h4 style="margin: 0 0 10px 0; font-size: 14px; color: #333;">{title}</h4>
        {content}
        </div>
        """

    def create_legend(self, title: str, labels: List[str], colors: List[str],
                      classification_method: Optional[str] = None, position: int = 0) -> str:
        """
        Create HTML legend with one swatch per class or category.

        Args:
            title: Legend title
            labels: Class or category labels
            colors: Colours matching labels
            classification_method: Optional method name shown under the title
            position: Stacking slot, so several legends do not overlap

        Returns:
            HTML string for legend
        """
        content = ""

        if classification_method:
            content += f'<div style="font-size: 10px; color: #666; margin-bottom: 5px;">Method: {classification_method}</div>'

        for label, color in zip(labels, colors):
            content += f"""
            <div style="margin: 3px 0; display: flex; align-items: center;">
                <span style="background-color: {color}; width: 20px; height: 12px;
                           display: inline-block; margin-right: 8px; border: 1px solid #ccc;"></span>
                <span style="font-size: 11px;">{label}</span>
            </div>
            """

        return self.legend_template.format(title=title, content=content, bottom=50 + 200 * position)

    def add_legend_to_map(self, map_obj: folium.Map, legend_html: str) -> folium.Map:
        map_obj.get_root().html.add_child(folium.Element(legend_html))
        return map_obj


class BasemapManager:
    """Resolves configured tile sources and adds them to maps."""

    def __init__(self, config: MapConfig):
        self.config = config

    def resolve(self, name: str) -> Dict[str, Any]:
        """
        Find a configured basemap by name or tile id, case-insensitively.

        Raises:
            InvalidReferenceError: If nothing matches
        """
        wanted = name.lower()
        for basemap_name in self.config.list_basemaps():
            settings = self.config.get_basemap(basemap_name)
            if wanted in (basemap_name.lower(), str(settings['tiles']).lower()):
                return dict(settings, name=basemap_name)
        return dict(self.config.get_basemap(name), name=name)

    def add_basemap(self, map_obj: folium.Map, name: Optional[str]) -> folium.Map:
        """Add one tile layer; 'None' leaves the map without tiles."""
        if name is None or name == 'None':
            logger.debug("Rendering without basemap tiles")
            return map_obj

        settings = self.resolve(name)
        tile_options = {'attr': settings['attr']} if settings['attr'] else {}
        folium.TileLayer(
            tiles=settings['tiles'],
            name=settings['name'],
            overlay=False,
            control=True,
            **tile_options
        ).add_to(map_obj)

        logger.info(f"Added basemap: {settings['name']}")
        return map_obj
