"""
Faceted and animated map rendering.

Repeats a map across the values of a partition key, either as a grid of
panels in one figure or as the frames of a GIF animation.
"""

from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import logging

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.animation import PillowWriter
from PIL import Image, ImageSequence

from ..config import MapConfig, get_map_config
from ..errors import InvalidReferenceError, MissingResourceError
from ..raster.grid import GridDataset
from .spec import Layer, MapSpec
from .static import MapCanvas, StaticMapRenderer, data_bounds, union_bounds

logger = logging.getLogger(__name__)


def _keyed(layer: Layer, key: str) -> bool:
    return not isinstance(layer.data, GridDataset) and key in layer.data.columns


class FacetedMapRenderer:
    """Renders a MapSpec once per facet value."""

    def __init__(self, config: Optional[MapConfig] = None):
        self.config = config or get_map_config()
        self.static = StaticMapRenderer(self.config)

    def _facet_key(self, spec: MapSpec) -> str:
        if spec.facet is None:
            raise InvalidReferenceError("Map has no facet rule; call facets() first")
        key = spec.facet.key
        if not any(_keyed(layer, key) for layer in spec.layers):
            raise InvalidReferenceError(f"No layer has a facet key '{key}'")
        return key

    def facet_values(self, spec: MapSpec) -> List[Any]:
        """
        Facet values in ascending order.

        Literal values given to facets() win; otherwise the distinct key
        values of every keyed layer are used.

        Raises:
            InvalidReferenceError: If no layer carries the facet key
        """
        key = self._facet_key(spec)
        if spec.facet.values is not None:
            return sorted(set(spec.facet.values))

        values = set()
        for layer in spec.layers:
            if _keyed(layer, key):
                values.update(layer.data[key].dropna().unique().tolist())
        return sorted(values)

    def panel_spec(self, spec: MapSpec, value: Any) -> MapSpec:
        """Layers filtered to one facet value; unkeyed layers are kept whole."""
        key = spec.facet.key
        layers = tuple(
            replace(layer, data=layer.data[layer.data[key] == value]) if _keyed(layer, key) else layer
            for layer in spec.layers
        )
        return MapSpec(layers=layers, tiles=spec.tiles)

    def _size_domains(self, spec: MapSpec) -> Dict[str, Tuple[float, float]]:
        """Value range of every size column over all facets, so panels share one scale."""
        domains = {}
        for layer in spec.layers:
            if isinstance(layer.size, str):
                values = layer.data[layer.size].to_numpy(dtype='float64', na_value=np.nan)
                values = values[np.isfinite(values)]
                if len(values):
                    low, high = domains.get(layer.size, (values.min(), values.max()))
                    domains[layer.size] = (min(low, values.min()), max(high, values.max()))
        return domains

    def _shared_bounds(self, spec: MapSpec):
        return union_bounds([data_bounds(layer.data) for layer in spec.layers])

    def render(self, spec: MapSpec) -> MapCanvas:
        """
        Draw one panel per facet value in ascending order.

        Returns:
            MapCanvas with one axes per value; canvas.panel_values lists the values
        """
        values = self.facet_values(spec)
        facet = spec.facet
        nrow = facet.nrow or self.config.get_facet_settings().get('nrow')
        canvas = self.static.new_canvas(len(values), nrow=nrow, ncol=facet.ncol)
        domains = self._size_domains(spec)
        bounds = self._shared_bounds(spec)

        for ax, value in zip(canvas.axes, values):
            self.static.render_spec(self.panel_spec(spec, value), canvas=canvas, ax=ax,
                                    size_domains=domains)
            if not facet.free_coords:
                self.static.set_extent(ax, bounds)
            ax.set_title(str(value))

        canvas.panel_values = list(values)
        if spec.caption:
            canvas.figure.suptitle(spec.caption)

        logger.info(f"Rendered {len(values)} facets of '{facet.key}'")
        return canvas

    def animate(self, spec: MapSpec, filename: str, width: Optional[int] = None,
                height: Optional[int] = None, fps: Optional[int] = None,
                dpi: Optional[int] = None) -> Path:
        """
        Write one GIF frame per facet value in ascending order.

        Args:
            spec: MapSpec with a facets(along=...) or facets(by=...) rule
            filename: Output GIF path
            width: Frame width in pixels
            height: Frame height in pixels
            fps: Frames per second
            dpi: Rendering resolution; figure inches are width / dpi

        Returns:
            Path of the written animation
        """
        settings = self.config.get_animation_settings()
        width = width or settings['width']
        height = height or settings['height']
        fps = fps or settings['fps']
        dpi = dpi or settings['dpi']

        values = self.facet_values(spec)
        domains = self._size_domains(spec)
        bounds = self._shared_bounds(spec)

        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)

        fig = plt.figure(figsize=(width / dpi, height / dpi), dpi=dpi)
        ax = fig.add_axes([0.02, 0.02, 0.96, 0.9])
        position = ax.get_position()
        canvas = MapCanvas(fig, [ax])

        writer = PillowWriter(fps=fps)
        try:
            with writer.saving(fig, str(path), dpi=dpi):
                for value in values:
                    for extra in fig.axes[1:]:
                        extra.remove()
                    ax.clear()
                    ax.set_axis_off()
                    ax.set_position(position)

                    self.static.render_spec(self.panel_spec(spec, value), canvas=canvas, ax=ax,
                                            size_domains=domains)
                    if not spec.facet.free_coords:
                        self.static.set_extent(ax, bounds)
                    ax.set_title(f"{spec.facet.key} = {value}")
                    canvas.panel_values.append(value)
                    writer.grab_frame()
        finally:
            plt.close(fig)

        logger.info(f"Wrote {len(values)}-frame animation to {path} ({width}x{height}, {fps} fps)")
        return path


def load_animation(path: str) -> List[Image.Image]:
    """
    Read the frames of an animation file.

    Raises:
        MissingResourceError: If the file does not exist
    """
    path = Path(path)
    if not path.exists():
        raise MissingResourceError(f"Animation {path} not found")

    with Image.open(path) as image:
        frames = [frame.copy() for frame in ImageSequence.Iterator(image)]

    logger.info(f"Loaded {len(frames)} frames from {path}")
    return frames
