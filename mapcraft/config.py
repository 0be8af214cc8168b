"""
Configuration management for mapcraft.

Settings live in a JSON file merged over built-in defaults. The module also
holds the process-wide map mode ('plot' for static output, 'view' for
interactive output) that decides how a map specification renders.
"""

import copy
import json
import os
from typing import Dict, Any, Optional, List
from pathlib import Path
import logging

from .errors import InvalidReferenceError

logger = logging.getLogger(__name__)

MAP_MODES = ("plot", "view")


class MapConfig:
    """Manages classification, rendering, basemap and animation settings."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or "mapcraft_config.json"
        self.default_config = self._get_default_config()
        self.config = self._load_config()

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration."""
        return {
            "classification": {
                "style": "jenks",
                "n_classes": 5,
                "sequential_palette": "viridis",
                "categorical_palette": "tab20",
                "raster_palette": "terrain",
                "missing_color": "#d3d3d3"
            },
            "map_settings": {
                "figure_size": [10, 6],
                "dpi": 100,
                "max_panels": 9,
                "default_zoom": 4,
                "default_center": [0.0, 0.0],
                "basemap": "OpenStreetMap",
                "fill_color": "#d9d9d9",
                "border_color": "#4d4d4d",
                "line_width": 0.6
            },
            "basemaps": {
                "OpenStreetMap": {
                    "tiles": "OpenStreetMap",
                    "attr": None
                },
                "OpenTopoMap": {
                    "tiles": "https://{s}.tile.opentopomap.org/{z}/{x}/{y}.png",
                    "attr": "Map data: &copy; OpenStreetMap contributors, SRTM | "
                            "Map style: &copy; OpenTopoMap (CC-BY-SA)"
                },
                "CartoDB Positron": {
                    "tiles": "CartoDB positron",
                    "attr": None
                },
                "CartoDB Dark": {
                    "tiles": "CartoDB dark_matter",
                    "attr": None
                },
                "Esri WorldImagery": {
                    "tiles": "https://server.arcgisonline.com/ArcGIS/rest/services/"
                             "World_Imagery/MapServer/tile/{z}/{y}/{x}",
                    "attr": "Tiles &copy; Esri"
                }
            },
            "symbols": {
                "size_range": [10, 400],
                "dot_size": 12,
                "border_color": "white"
            },
            "facets": {
                "nrow": None,
                "free_coords": False
            },
            "animation": {
                "width": 1200,
                "height": 800,
                "fps": 2,
                "dpi": 100
            },
            "mode": "plot"
        }

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file or use defaults."""
        if os.path.exists(self.config_path):
            try:
                with open(self.config_path, 'r') as f:
                    config = json.load(f)
                logger.info(f"Loaded map configuration from {self.config_path}")

                # Merge with defaults to ensure all keys exist
                return self._merge_configs(self.default_config, config)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Failed to load config from {self.config_path}: {e}")
                logger.info("Using default configuration")
                return copy.deepcopy(self.default_config)
        else:
            logger.debug(f"Config file {self.config_path} not found, using defaults")
            return copy.deepcopy(self.default_config)

    def _merge_configs(self, default: Dict, user: Dict) -> Dict:
        """Recursively merge user config with defaults."""
        merged = copy.deepcopy(default)

        for key, value in user.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = self._merge_configs(merged[key], value)
            else:
                merged[key] = value

        return merged

    def save_config(self) -> None:
        """Save current configuration to file."""
        config_dir = Path(self.config_path).parent
        config_dir.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, 'w') as f:
            json.dump(self.config, f, indent=2)
        logger.info(f"Saved map configuration to {self.config_path}")

    def get_classification_settings(self) -> Dict[str, Any]:
        return self.config["classification"]

    def get_map_settings(self) -> Dict[str, Any]:
        return self.config["map_settings"]

    def get_basemap(self, name: str) -> Dict[str, Any]:
        """
        Get tile settings for a named basemap.

        Raises:
            InvalidReferenceError: If the basemap name is not configured
        """
        basemaps = self.config["basemaps"]
        if name not in basemaps:
            raise InvalidReferenceError(
                f"Unknown basemap '{name}', expected one of {sorted(basemaps)}"
            )
        return basemaps[name]

    def list_basemaps(self) -> List[str]:
        return list(self.config["basemaps"].keys())

    def get_symbol_settings(self) -> Dict[str, Any]:
        return self.config["symbols"]

    def get_facet_settings(self) -> Dict[str, Any]:
        return self.config["facets"]

    def get_animation_settings(self) -> Dict[str, Any]:
        return self.config["animation"]

    def get_mode(self) -> str:
        return self.config.get("mode", "plot")

    def update_classification(self, updates: Dict[str, Any]) -> None:
        """Update classification settings."""
        self.config["classification"].update(updates)
        logger.info("Updated classification configuration")

    def update_map_settings(self, updates: Dict[str, Any]) -> None:
        """Update map display settings."""
        self.config["map_settings"].update(updates)
        logger.info("Updated map settings")

    def add_basemap(self, name: str, tiles: str, attr: Optional[str] = None) -> None:
        """Register an additional tile server."""
        self.config["basemaps"][name] = {"tiles": tiles, "attr": attr}
        logger.info(f"Registered basemap {name}")

    def reset_to_defaults(self) -> None:
        """Reset configuration to defaults."""
        self.config = copy.deepcopy(self.default_config)
        logger.info("Reset configuration to defaults")


# Global configuration instance
_map_config = None
_map_mode = None


def get_map_config(config_path: Optional[str] = None) -> MapConfig:
    """Get global map configuration instance."""
    global _map_config
    if _map_config is None:
        _map_config = MapConfig(config_path)
    return _map_config


def get_map_mode() -> str:
    """Return the active map mode, 'plot' or 'view'."""
    if _map_mode is None:
        return get_map_config().get_mode()
    return _map_mode


def set_map_mode(mode: str) -> str:
    """
    Switch between static ('plot') and interactive ('view') rendering.

    Args:
        mode: 'plot' or 'view'

    Returns:
        The previously active mode

    Raises:
        InvalidReferenceError: If the mode is unknown
    """
    global _map_mode
    if mode not in MAP_MODES:
        raise InvalidReferenceError(f"Map mode must be one of {MAP_MODES}, got '{mode}'")

    previous = get_map_mode()
    _map_mode = mode
    if previous != mode:
        logger.info(f"Map mode switched from {previous} to {mode}")
    return previous
