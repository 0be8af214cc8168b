"""
Tests for converting feature collections to GeoJSON-like mappings and back.
"""

import pytest

from mapcraft.errors import InvalidReferenceError
from mapcraft.vector.conversion import from_feature_collection, to_feature_collection
from mapcraft.vector.loader import load_vector


class TestFeatureCollectionConversion:
    """Round trips through the alternate representation."""

    def test_round_trip_world(self):
        world = load_vector("world")

        collection = to_feature_collection(world)
        restored = from_feature_collection(collection)

        assert collection['type'] == 'FeatureCollection'
        assert len(restored) == len(world)
        assert restored.geometry.geom_equals(world.geometry.reset_index(drop=True)).all()
        assert restored.crs == world.crs

    def test_round_trip_keeps_attributes(self, sample_polygons):
        restored = from_feature_collection(to_feature_collection(sample_polygons))

        assert list(restored['iso_a2']) == list(sample_polygons['iso_a2'])

    def test_projected_crs_travels_with_mapping(self, sample_polygons):
        projected = sample_polygons.to_crs("EPSG:3857")

        restored = from_feature_collection(to_feature_collection(projected))

        assert restored.crs.to_epsg() == 3857

    def test_explicit_crs_wins(self, sample_points):
        collection = to_feature_collection(sample_points)

        restored = from_feature_collection(collection, crs="EPSG:3857")

        assert restored.crs.to_epsg() == 3857

    def test_geo_interface_objects(self, sample_points):
        restored = from_feature_collection(sample_points.geometry)

        assert len(restored) == len(sample_points)

    def test_rejects_non_collections(self):
        with pytest.raises(InvalidReferenceError):
            from_feature_collection({'type': 'Feature', 'geometry': None, 'properties': {}})
