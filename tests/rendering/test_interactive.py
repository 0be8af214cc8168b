"""
Tests for interactive folium map rendering.
"""

import pytest
import folium
from folium.raster_layers import ImageOverlay
from pathlib import Path

from mapcraft.errors import InvalidReferenceError
from mapcraft.maps.interactive import (
    BasemapManager,
    InteractiveMapRenderer,
    LegendGenerator,
    wgs84_bounds,
)
from mapcraft.maps.spec import map_shape, view
from mapcraft.raster.loader import RasterDataLoader


def children_of(element, kind):
    return [child for child in element._children.values() if isinstance(child, kind)]


class TestInteractiveMapRenderer:
    """Test cases for InteractiveMapRenderer."""

    def setup_method(self):
        """Set up test fixtures."""
        self.renderer = InteractiveMapRenderer()

    def test_create_base_map_fits_bounds(self):
        map_obj = self.renderer.create_base_map((-100, 30, -80, 40))

        assert isinstance(map_obj, folium.Map)
        assert map_obj.location == [35.0, -90.0]
        assert len(children_of(map_obj, folium.TileLayer)) == 1

    def test_create_base_map_without_tiles(self):
        map_obj = self.renderer.create_base_map(tiles='None')

        assert children_of(map_obj, folium.TileLayer) == []

    def test_view_polygons(self, sample_polygons):
        map_obj = self.renderer.render_spec(view(sample_polygons))

        assert len(children_of(map_obj, folium.GeoJson)) == 1
        assert len(children_of(map_obj, folium.LayerControl)) == 1

    def test_layers_added_in_order(self, sample_polygons, sample_lines):
        spec = (view(sample_lines, color='red', line_width=3, layer_name='trails')
                + view(sample_polygons, column='area_km2'))

        layers = children_of(self.renderer.render_spec(spec), folium.GeoJson)

        assert [layer.layer_name for layer in layers] == ['trails', 'area_km2']

    def test_burst_makes_one_group_per_category(self, sample_polygons):
        map_obj = self.renderer.render_spec(view(sample_polygons, column='continent', burst=True))

        groups = children_of(map_obj, folium.FeatureGroup)
        assert [group.layer_name for group in groups] == [
            'continent: Antarctica', 'continent: Asia', 'continent: Europe', 'continent: North America'
        ]

    def test_burst_without_column_groups_features(self, sample_lines):
        map_obj = self.renderer.render_spec(view(sample_lines, burst=True))

        assert len(children_of(map_obj, folium.FeatureGroup)) == 2

    def test_sized_symbols_are_circle_markers(self, sample_points):
        spec = map_shape(sample_points).symbols(size='population_millions', color='purple')

        map_obj = self.renderer.render_spec(spec)

        group = children_of(map_obj, folium.FeatureGroup)[0]
        markers = children_of(group, folium.CircleMarker)
        assert len(markers) == len(sample_points)
        radii = [marker.options['radius'] for marker in markers]
        assert min(radii) < max(radii)

    def test_legend_for_coloured_layer(self, sample_polygons):
        map_obj = self.renderer.render_spec(map_shape(sample_polygons).polygons('continent', title='Continent'))

        html = map_obj.get_root().render()
        assert 'Continent' in html
        assert 'North America' in html

    def test_raster_overlay(self, sample_grid):
        map_obj = self.renderer.render_spec(map_shape(sample_grid).raster())

        overlays = children_of(map_obj, ImageOverlay)
        assert len(overlays) == 1
        assert overlays[0].layer_name == 'values'

    def test_projected_raster_is_warped(self):
        brick = RasterDataLoader().brick("landsat")

        map_obj = self.renderer.render_spec(map_shape(brick).raster(band=1))

        assert len(children_of(map_obj, ImageOverlay)) == 1

    def test_categorical_raster_legend(self):
        grid = RasterDataLoader().create(0, 2, 0, 2, res=1, values=['silt', 'clay', 'sand', 'clay'],
                                         crs="EPSG:4326", name="grain")

        html = self.renderer.render_spec(map_shape(grid).raster()).get_root().render()

        assert all(label in html for label in ('clay', 'sand', 'silt'))

    def test_raster_without_crs(self):
        grid = RasterDataLoader().create(0, 2, 0, 2, res=1, values=[1, 2, 3, 4])

        with pytest.raises(InvalidReferenceError):
            self.renderer.render_spec(map_shape(grid).raster())

    def test_facets_become_toggleable_groups(self, sample_points):
        spec = map_shape(sample_points).dots().facets(by='year')

        groups = children_of(self.renderer.render_spec(spec), folium.FeatureGroup)

        assert [group.layer_name for group in groups] == [
            'year: 1950', 'year: 1970', 'year: 1990', 'year: 2010', 'year: 2030'
        ]
        assert [group.show for group in groups] == [True, False, False, False, False]

    def test_burst_groups_stay_inside_their_facet(self, sample_points):
        spec = view(sample_points, column='urban_agglomeration', burst=True).facets(by='year')

        groups = children_of(self.renderer.render_spec(spec), folium.FeatureGroup)

        assert len(groups) == 5
        assert all(group.layer_name.startswith('year: ') for group in groups)
        for group in groups:
            assert len(children_of(group, folium.FeatureGroup)) == 3

    def test_caption(self, sample_polygons):
        spec = map_shape(sample_polygons).borders().layout(title='Five squares')

        assert 'Five squares' in self.renderer.render_spec(spec).get_root().render()

    def test_save_html(self, sample_polygons, temp_directory):
        map_obj = self.renderer.render_spec(view(sample_polygons))

        path = self.renderer.save(map_obj, Path(temp_directory) / "maps" / "squares.html")

        assert path.exists()
        assert 'leaflet' in path.read_text().lower()

    def test_wgs84_bounds_of_projected_data(self, sample_polygons):
        bounds = wgs84_bounds(sample_polygons.to_crs("EPSG:3857"))

        assert bounds == pytest.approx(tuple(sample_polygons.total_bounds))


class TestBasemapManager:
    """Test cases for BasemapManager."""

    def setup_method(self):
        """Set up test fixtures."""
        self.renderer = InteractiveMapRenderer()
        self.basemaps = BasemapManager(self.renderer.config)

    def test_resolve_is_case_insensitive(self):
        assert self.basemaps.resolve('opentopomap')['name'] == 'OpenTopoMap'

    def test_resolve_by_tile_id(self):
        assert self.basemaps.resolve('CartoDB positron')['name'] == 'CartoDB Positron'

    def test_unknown_basemap(self):
        with pytest.raises(InvalidReferenceError):
            self.basemaps.resolve('Stamen Watercolor')

    def test_spec_basemap(self, sample_polygons):
        map_obj = self.renderer.render_spec(map_shape(sample_polygons).borders().basemap('OpenTopoMap'))

        tiles = children_of(map_obj, folium.TileLayer)
        assert [tile.layer_name for tile in tiles] == ['OpenTopoMap']

    def test_registered_basemap(self):
        self.renderer.config.add_basemap('Local', 'http://localhost/{z}/{x}/{y}.png', 'local tiles')

        assert self.basemaps.resolve('local')['attr'] == 'local tiles'


class TestLegendGenerator:
    """Test cases for LegendGenerator."""

    def test_create_legend(self):
        html = LegendGenerator().create_legend('Population', ['low', 'high'], ['#ffffff', '#000000'],
                                               classification_method='jenks', position=1)

        assert 'Population' in html
        assert 'Method: jenks' in html
        assert html.count('background-color: #') == 2
        assert 'bottom: 250px' in html
