"""
Registry of the sample datasets bundled with mapcraft.

Vector samples are GeoJSON files, raster samples are ESRI ASCII grids
(single band) and a GDAL VRT stitching several grids into one
multi-band dataset.
"""

from pathlib import Path
from typing import Dict, List
import logging

from .errors import MissingResourceError

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"

VECTOR_SAMPLES: Dict[str, str] = {
    "world": "world.geojson",
    "us_states": "us_states.geojson",
    "urban_agglomerations": "urban_agglomerations.geojson",
    "franconia": "franconia.geojson",
    "trails": "trails.geojson",
    "breweries": "breweries.geojson",
}

RASTER_SAMPLES: Dict[str, str] = {
    "srtm": "srtm.asc",        # single-band elevation, WGS84
    "landsat": "landsat.vrt",  # four-band satellite grid, UTM zone 12N
}


def list_samples() -> Dict[str, List[str]]:
    """Return the names of the bundled samples grouped by kind."""
    return {
        "vector": sorted(VECTOR_SAMPLES),
        "raster": sorted(RASTER_SAMPLES),
    }


def sample_path(name: str) -> Path:
    """
    Resolve a bundled sample name to its file path.

    Args:
        name: Sample identifier (e.g. 'world', 'srtm')

    Returns:
        Path to the sample file

    Raises:
        MissingResourceError: If the name is unknown or the file is missing
    """
    filename = VECTOR_SAMPLES.get(name) or RASTER_SAMPLES.get(name)
    if filename is None:
        raise MissingResourceError(f"Unknown sample dataset '{name}'")

    path = DATA_DIR / filename
    if not path.exists():
        raise MissingResourceError(f"Sample dataset '{name}' is missing at {path}")

    logger.debug(f"Resolved sample '{name}' to {path}")
    return path


def resolve_source(source, samples: Dict[str, str]) -> Path:
    """
    Resolve a sample name or a filesystem path.

    Sample names win over relative paths with the same spelling.

    Raises:
        MissingResourceError: If neither a sample nor an existing file matches
    """
    source_str = str(source)
    if source_str in samples:
        return sample_path(source_str)

    path = Path(source_str)
    if not path.exists():
        raise MissingResourceError(f"No sample dataset or file found for '{source_str}'")
    return path
