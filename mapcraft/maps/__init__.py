"""
Maps component - symbology, declarative map specs and the static,
faceted/animated and interactive renderers.
"""

from .spec import Layer, FacetSpec, MapSpec, map_shape, view
from .symbology import SymbologyEngine, ClassificationEngine, ColorSchemeManager, StyleCalculator
from .static import MapCanvas, StaticMapRenderer
from .facets import FacetedMapRenderer, load_animation
from .interactive import InteractiveMapRenderer, LegendGenerator, BasemapManager

__all__ = [
    'Layer',
    'FacetSpec',
    'MapSpec',
    'map_shape',
    'view',
    'SymbologyEngine',
    'ClassificationEngine',
    'ColorSchemeManager',
    'StyleCalculator',
    'MapCanvas',
    'StaticMapRenderer',
    'FacetedMapRenderer',
    'load_animation',
    'InteractiveMapRenderer',
    'LegendGenerator',
    'BasemapManager'
]
