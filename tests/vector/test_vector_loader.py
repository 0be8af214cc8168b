"""
Tests for vector data loading and attribute subsetting.
"""

import pytest
import numpy as np
import pandas as pd
import geopandas as gpd
from shapely.geometry import Polygon

from mapcraft.errors import InvalidReferenceError, MissingResourceError
from mapcraft.vector.loader import VectorDataLoader, load_vector


class TestVectorDataLoader:
    """Test cases for VectorDataLoader."""

    def setup_method(self):
        """Set up test fixtures."""
        self.loader = VectorDataLoader()

    def test_load_world_sample(self):
        """Bundled world sample loads as a GeoDataFrame."""
        world = self.loader.load("world")

        assert isinstance(world, gpd.GeoDataFrame)
        assert len(world) == 14
        assert world.geometry.name in world.columns
        assert world.crs.to_epsg() == 4326
        assert {'iso_a2', 'continent', 'area_km2', 'pop', 'gdpPercap'} <= set(world.columns)

    def test_load_reads_legacy_crs_member(self):
        """Trails carry their UTM CRS in the GeoJSON crs member."""
        trails = load_vector("trails")

        assert trails.crs.to_epsg() == 32632
        assert set(trails.geometry.geom_type) == {'LineString'}

    def test_load_unknown_sample(self):
        """Unknown names fail as missing resources."""
        with pytest.raises(MissingResourceError):
            self.loader.load("atlantis")

    def test_load_missing_path(self, temp_directory):
        """Missing files are also FileNotFoundErrors."""
        with pytest.raises(FileNotFoundError):
            self.loader.load(f"{temp_directory}/nothing_here.geojson")

    def test_load_file_path(self, sample_polygons, temp_directory):
        """Any file geopandas reads can be loaded by path."""
        path = f"{temp_directory}/squares.geojson"
        sample_polygons.to_file(path, driver="GeoJSON")

        loaded = self.loader.load(path)

        assert len(loaded) == len(sample_polygons)
        assert list(loaded['iso_a2']) == list(sample_polygons['iso_a2'])

    def test_validate_geometry_column_rejects_plain_table(self):
        """A table without geometry is an invalid reference."""
        table = pd.DataFrame({'a': [1, 2]})

        with pytest.raises(InvalidReferenceError):
            self.loader.validate_geometry_column(table, "table.csv")

    def test_cleanup_invalid_geometries(self):
        """Null and empty geometries are dropped, invalid ones repaired."""
        bow_tie = Polygon([(0, 0), (1, 1), (1, 0), (0, 1), (0, 0)])
        gdf = gpd.GeoDataFrame({
            'id': [1, 2, 3, 4],
            'geometry': [bow_tie, None, Polygon(), Polygon([(0, 0), (1, 0), (1, 1)])]
        }, crs="EPSG:4326")

        cleaned = self.loader.cleanup_invalid_geometries(gdf)

        assert list(cleaned['id']) == [1, 4]
        assert cleaned.geometry.is_valid.all()

    def test_column_names_include_geometry(self, sample_polygons):
        names = self.loader.column_names(sample_polygons)

        assert names[-1] == 'geometry'
        assert self.loader.attribute_columns(sample_polygons) == names[:-1]


class TestSubsetting:
    """Row and column range subsetting."""

    def setup_method(self):
        """Set up test fixtures."""
        self.loader = VectorDataLoader()

    @pytest.mark.parametrize("rows,columns", [((0, 2), (0, 3)), ((1, 4), (2, 5)), ((3, 5), (0, 1))])
    def test_subset_counts_and_columns(self, sample_polygons, rows, columns):
        """Rows [a, b) and attribute columns [c, d) plus geometry survive."""
        result = self.loader.subset(sample_polygons, rows=rows, columns=columns)

        attributes = self.loader.attribute_columns(sample_polygons)
        assert len(result) == rows[1] - rows[0]
        assert list(result.columns) == attributes[columns[0]:columns[1]] + ['geometry']
        assert isinstance(result, gpd.GeoDataFrame)
        assert result.geometry.name == 'geometry'

    def test_subset_world_like_r_indexing(self):
        """world[1:2, 1:3] keeps two countries and three attributes."""
        world = self.loader.load("world")

        sub_world = self.loader.subset(world, rows=(0, 2), columns=(0, 3))

        assert list(sub_world['iso_a2']) == ['US', 'CA']
        assert list(sub_world.columns) == ['iso_a2', 'name_long', 'continent', 'geometry']

    def test_subset_accepts_slices(self, sample_polygons):
        result = self.loader.subset(sample_polygons, rows=slice(1, None), columns=slice(None, 2))

        assert len(result) == 4
        assert list(result.columns) == ['iso_a2', 'name_long', 'geometry']

    def test_subset_accepts_numpy_integer_ranges(self, sample_polygons):
        c = np.arange(5)

        result = self.loader.subset(sample_polygons, rows=(c[0], c[2]), columns=(c[0], c[3]))

        assert len(result) == 2
        assert list(result.columns) == ['iso_a2', 'name_long', 'continent', 'geometry']

    def test_subset_boolean_pair_is_not_a_range(self, sample_polygons):
        with pytest.raises(InvalidReferenceError):
            self.loader.subset(sample_polygons, columns=(True, False))

    def test_subset_returns_copy(self, sample_polygons):
        result = self.loader.subset(sample_polygons, rows=(0, 2))
        result.loc[result.index[0], 'area_km2'] = -1

        assert sample_polygons['area_km2'].iloc[0] == 1200.0

    def test_subset_rows_out_of_range(self, sample_polygons):
        with pytest.raises(InvalidReferenceError):
            self.loader.subset(sample_polygons, rows=(2, 10))

    def test_subset_unknown_column_name(self, sample_polygons):
        with pytest.raises(InvalidReferenceError):
            self.loader.subset(sample_polygons, columns=['area_km2', 'gdp'])

    def test_select_columns_by_name(self, sample_polygons):
        result = self.loader.select_columns(sample_polygons, 'area_km2')

        assert list(result.columns) == ['area_km2', 'geometry']
        assert len(result) == len(sample_polygons)

    def test_filter_rows_single_value(self, sample_polygons):
        result = self.loader.filter_rows(sample_polygons, 'continent', 'North America')

        assert list(result['iso_a2']) == ['AA', 'BB']

    def test_filter_rows_exclude(self, sample_polygons):
        result = self.loader.filter_rows(sample_polygons, 'continent', 'Antarctica', exclude=True)

        assert 'Antarctica' not in set(result['continent'])
        assert len(result) == 4

    def test_filter_rows_value_set(self, sample_points):
        result = self.loader.filter_rows(sample_points, 'year', [1970, 1990, 2010, 2030])

        assert sorted(result['year'].unique()) == [1970, 1990, 2010, 2030]

    def test_filter_rows_unknown_column(self, sample_polygons):
        with pytest.raises(InvalidReferenceError):
            self.loader.filter_rows(sample_polygons, 'region', 'Europe')

    def test_summarize(self, sample_polygons):
        summary = self.loader.summarize(sample_polygons, 'pop')

        assert summary['column'] == 'pop'
        assert summary['missing'] == 1
        assert summary['statistics']['count'] == 4
        assert summary['geometry_types'] == {'Polygon': 5}
        assert summary['crs'] == 'EPSG:4326'

    def test_world_north_america(self):
        world = self.loader.load("world")

        north_america = self.loader.filter_rows(world, 'continent', 'North America')

        assert sorted(north_america['iso_a2']) == ['CA', 'GL', 'MX', 'US']
        assert np.isnan(world.loc[world['iso_a2'] == 'AQ', 'gdpPercap']).all()
