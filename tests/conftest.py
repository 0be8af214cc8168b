"""
Pytest configuration and fixtures for mapcraft tests.
"""

import matplotlib
matplotlib.use("Agg")

import pytest
import pandas as pd
import geopandas as gpd
import matplotlib.pyplot as plt
from shapely.geometry import LineString, Point, Polygon
import numpy as np
from rasterio.transform import from_origin
import tempfile

from mapcraft import config as map_config
from mapcraft.raster.grid import GridDataset


def _square(x, y, size=10):
    return Polygon([(x, y), (x + size, y), (x + size, y + size), (x, y + size)])


@pytest.fixture
def sample_polygons():
    """Five square 'countries' in WGS84 with numeric and label attributes."""
    data = {
        'iso_a2': ['AA', 'BB', 'CC', 'DD', 'EE'],
        'name_long': ['Alpha', 'Bravo', 'Charlie', 'Delta', 'Echo'],
        'continent': ['North America', 'North America', 'Europe', 'Asia', 'Antarctica'],
        'area_km2': [1200.0, 800.0, 450.0, 2300.0, 5000.0],
        'pop': [3.2e6, 1.1e6, 8.5e5, 9.0e6, np.nan],
        'geometry': [_square(-100, 30), _square(-90, 30), _square(0, 45), _square(90, 20), _square(0, -80)]
    }
    return gpd.GeoDataFrame(data, crs="EPSG:4326")


@pytest.fixture
def sample_points():
    """City points observed in several years."""
    records = []
    cities = [('Alpha City', -95, 35), ('Bravo Town', -85, 35), ('Delta Port', 95, 25)]
    for year in [1950, 1970, 1990, 2010, 2030]:
        for i, (name, x, y) in enumerate(cities):
            records.append({
                'urban_agglomeration': name,
                'year': year,
                'population_millions': 1.0 + i + (year - 1950) / 20,
                'geometry': Point(x, y)
            })
    return gpd.GeoDataFrame(records, crs="EPSG:4326")


@pytest.fixture
def sample_lines():
    """Two trails crossing the first two sample polygons."""
    data = {
        'name': ['North trail', 'South trail'],
        'geometry': [
            LineString([(-105, 35), (-75, 35)]),
            LineString([(-105, 32), (-95, 32)])
        ]
    }
    return gpd.GeoDataFrame(data, crs="EPSG:4326")


@pytest.fixture
def sample_grid():
    """6x6 grid over (-1.5, 1.5) with values 1..36 row-major from the top-left."""
    values = np.arange(1, 37, dtype="int32").reshape(6, 6)
    return GridDataset(values, from_origin(-1.5, 1.5, 0.5, 0.5), "EPSG:4326", names=["values"])


@pytest.fixture
def temp_directory():
    """Create temporary directory for testing."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture(autouse=True)
def isolated_map_state(monkeypatch, tmp_path):
    """Fresh global configuration and map mode, and no figures left open."""
    monkeypatch.setattr(map_config, "_map_config", map_config.MapConfig(str(tmp_path / "mapcraft_config.json")))
    monkeypatch.setattr(map_config, "_map_mode", None)
    yield
    plt.close("all")


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
