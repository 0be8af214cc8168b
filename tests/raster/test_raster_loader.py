"""
Tests for raster reading, synthetic grid construction and stacking.
"""

import pytest
import numpy as np
import pandas as pd
from rasterio.transform import from_origin

from mapcraft.errors import InvalidReferenceError, MissingResourceError, ShapeMismatchError
from mapcraft.raster.grid import GridDataset
from mapcraft.raster.loader import RasterDataLoader, open_raster


class TestRasterFiles:
    """Reading the bundled raster samples."""

    def setup_method(self):
        """Set up test fixtures."""
        self.loader = RasterDataLoader()

    def test_open_single_band_elevation(self):
        utah = self.loader.open("srtm")

        assert utah.count == 1
        assert (utah.height, utah.width) == (10, 12)
        assert utah.crs.is_geographic
        assert utah.res == pytest.approx((0.0325, 0.0325))
        assert utah.cell_values([0])[0] == 1690

    def test_brick_reads_all_bands(self):
        brick = self.loader.brick("landsat")

        assert brick.count == 4
        assert brick.names == ['landsat_1', 'landsat_2', 'landsat_3', 'landsat_4']
        assert brick.res == (30.0, 30.0)
        assert brick.crs.to_epsg() == 32612
        assert brick.nodata == -9999
        assert brick.extent == pytest.approx((301905.0, 302265.0, 4111245.0, 4111545.0))

    def test_open_one_band(self):
        band = open_raster("landsat", band=2)

        assert band.count == 1
        assert band.names == ['landsat_2']

    def test_open_band_out_of_range(self):
        with pytest.raises(InvalidReferenceError):
            self.loader.open("landsat", band=7)

    def test_open_missing_file(self, temp_directory):
        with pytest.raises(MissingResourceError):
            self.loader.open(f"{temp_directory}/missing.tif")

    def test_open_unknown_sample(self):
        with pytest.raises(MissingResourceError):
            self.loader.open("landsat9")


class TestCreate:
    """Synthetic grids from literal values."""

    def setup_method(self):
        """Set up test fixtures."""
        self.loader = RasterDataLoader()

    def test_create_fills_row_major_from_top_left(self):
        grid = self.loader.create(-1.5, 1.5, -1.5, 1.5, res=0.5, values=np.arange(1, 37))

        assert (grid.height, grid.width) == (6, 6)
        assert grid.ncell == 36
        assert list(grid.cell_values([0, 5, 6, 35])) == [1, 6, 7, 36]
        assert grid.extent == pytest.approx((-1.5, 1.5, -1.5, 1.5))

    def test_create_with_dimensions(self):
        grid = self.loader.create(-1.5, 1.5, -1.5, 1.5, nrows=6, ncols=6, values=list(range(36)))

        assert grid.res == pytest.approx((0.5, 0.5))

    def test_create_with_consistent_res_and_dimensions(self):
        grid = self.loader.create(-1.5, 1.5, -1.5, 1.5, res=0.5, nrows=6, ncols=6)

        assert grid.shape == (1, 6, 6)

    def test_create_without_values_is_empty(self):
        grid = self.loader.create(0, 4, 0, 2, res=1)

        assert grid.shape == (1, 2, 4)
        assert np.isnan(grid.values()).all()

    @pytest.mark.parametrize("count", [35, 37, 0])
    def test_create_value_count_mismatch(self, count):
        """The number of values must equal rows x columns."""
        with pytest.raises(ShapeMismatchError):
            self.loader.create(-1.5, 1.5, -1.5, 1.5, res=0.5, values=np.arange(count))

    def test_create_dimensions_disagree_with_res(self):
        with pytest.raises(ShapeMismatchError):
            self.loader.create(-1.5, 1.5, -1.5, 1.5, res=0.5, nrows=5, ncols=6)

    def test_create_extent_not_multiple_of_res(self):
        with pytest.raises(ShapeMismatchError):
            self.loader.create(0, 10, 0, 10, res=3)

    def test_create_only_one_dimension(self):
        with pytest.raises(ShapeMismatchError):
            self.loader.create(0, 10, 0, 10, nrows=5)

    def test_create_boolean_grid(self):
        grid = self.loader.create(0, 2, 0, 2, res=1, values=[True, False, False, True])

        assert grid.data.dtype == bool
        assert not grid.is_categorical

    def test_create_categorical_from_labels(self):
        labels = ['silt', 'clay', 'sand', 'clay']

        grid = self.loader.create(0, 2, 0, 2, res=1, values=labels)

        assert grid.is_categorical
        assert list(grid.levels['category']) == ['clay', 'sand', 'silt']
        assert list(grid.levels['ID']) == [1, 2, 3]
        assert list(grid.values()) == [3, 1, 2, 1]

    def test_create_categorical_keeps_declared_level_order(self):
        grain = pd.Categorical(['sand', 'clay', 'silt', 'sand'], categories=['clay', 'silt', 'sand'])

        grid = self.loader.create(0, 2, 0, 2, res=1, values=grain)

        assert list(grid.levels['category']) == ['clay', 'silt', 'sand']
        assert list(grid.values()) == [3, 1, 2, 3]


class TestStack:
    """Combining grids into multi-layer stacks."""

    def setup_method(self):
        """Set up test fixtures."""
        self.loader = RasterDataLoader()

    def _grid(self, res=30.0, nrows=10, ncols=12, x0=301905.0, y0=4111545.0, crs="EPSG:32612", name="layer"):
        data = np.arange(nrows * ncols).reshape(nrows, ncols)
        return GridDataset(data, from_origin(x0, y0, res, res), crs, names=[name])

    def test_stack_sums_layer_counts(self):
        brick = self.loader.brick("landsat")
        single = self._grid(name="random")

        stacked = self.loader.stack([brick, single])

        assert stacked.count == brick.count + single.count
        assert stacked.names[-1] == 'random'
        assert (stacked.height, stacked.width) == (10, 12)

    def test_stack_landsat_layer_with_created_grid(self):
        ls1 = self.loader.brick("landsat").layer(1)
        xmin, xmax, ymin, ymax = ls1.extent
        random_grid = self.loader.create(xmin, xmax, ymin, ymax, res=30,
                                         values=np.random.permutation(ls1.ncell) + 1,
                                         crs=ls1.crs, name="random")

        stacked = self.loader.stack([ls1, random_grid])

        assert stacked.count == 2
        assert stacked.names == ['landsat_1', 'random']

    def test_stack_resolution_mismatch(self):
        a = self._grid(res=30.0)
        b = self._grid(res=60.0, nrows=10, ncols=12)

        with pytest.raises(ShapeMismatchError):
            self.loader.stack([a, b])

    def test_stack_dimension_mismatch(self):
        with pytest.raises(ShapeMismatchError):
            self.loader.stack([self._grid(), self._grid(nrows=5)])

    def test_stack_extent_mismatch(self):
        with pytest.raises(ShapeMismatchError):
            self.loader.stack([self._grid(), self._grid(x0=0.0)])

    def test_stack_crs_mismatch(self):
        with pytest.raises(ShapeMismatchError):
            self.loader.stack([self._grid(), self._grid(crs="EPSG:32613")])

    def test_stack_renames_duplicate_layers(self):
        stacked = self.loader.stack([self._grid(), self._grid()])

        assert stacked.names == ['layer.1', 'layer.2']

    def test_stack_nothing(self):
        with pytest.raises(ShapeMismatchError):
            self.loader.stack([])

    def test_stack_keeps_shared_levels(self):
        soil = self.loader.create(0, 2, 0, 2, res=1, values=['clay', 'sand', 'clay', 'sand'], name="soil")
        again = self.loader.create(0, 2, 0, 2, res=1, values=['sand', 'clay', 'clay', 'sand'], name="soil")

        stacked = self.loader.stack([soil, again])

        assert stacked.is_categorical
        assert list(stacked.levels['category']) == ['clay', 'sand']

    def test_stack_warns_when_levels_are_dropped(self, caplog):
        soil = self.loader.create(0, 2, 0, 2, res=1, values=['a', 'b', 'a', 'b'], name="soil")
        height = self.loader.create(0, 2, 0, 2, res=1, values=[1, 2, 3, 4], name="height")

        with caplog.at_level('WARNING', logger='mapcraft.raster.loader'):
            stacked = self.loader.stack([soil, height])

        assert stacked.levels is None
        assert 'Dropped categorical levels' in caplog.text
