import unittest
import numpy as np
from rasterio.crs import CRS
from rasterio.transform import from_origin
from utils import block_mean, check_factor, check_geographic, check_positive_int, get_latlon, \
    ConfigurationError


class TestBlockMean(unittest.TestCase):
    def test_uniform_block_is_exact(self):
        for value in [1.4, 2.0, 0.1, 123.456]:
            data = np.full([120, 120], value)
            out = block_mean(data, 120)
            self.assertEqual(out.shape, (1, 1))
            self.assertEqual(out[0, 0], value)

    def test_all_missing_block(self):
        data = np.full([4, 4], np.nan)
        out = block_mean(data, 4)
        self.assertTrue(np.isnan(out[0, 0]))

    def test_missing_cells_ignored(self):
        data = np.array([[1., np.nan, 5., 5.],
                         [3., np.nan, 5., 5.],
                         [np.nan, np.nan, 2., 4.],
                         [np.nan, np.nan, np.nan, np.nan]])
        out = block_mean(data, 2)
        np.testing.assert_allclose(out, [[2., 5.], [np.nan, 3.]])

    def test_zero_is_a_value(self):
        data = np.array([[0., 0.], [0., np.nan]])
        out = block_mean(data, 2)
        self.assertEqual(out[0, 0], 0.)

    def test_partial_edge_blocks(self):
        data = np.arange(25, dtype=float).reshape(5, 5)
        out = block_mean(data, 2)
        self.assertEqual(out.shape, (3, 3))
        self.assertAlmostEqual(out[0, 0], np.mean([0, 1, 5, 6]))
        self.assertAlmostEqual(out[0, 2], np.mean([4, 9]))
        self.assertAlmostEqual(out[2, 0], np.mean([20, 21]))
        self.assertEqual(out[2, 2], 24.)

    def test_factor_one_is_identity(self):
        data = np.array([[1., np.nan], [3., 4.]])
        np.testing.assert_array_equal(block_mean(data, 1), data)

    def test_invalid_factor(self):
        with self.assertRaises(ConfigurationError):
            block_mean(np.ones([4, 4]), 0)
        with self.assertRaises(ConfigurationError):
            block_mean(np.ones([4, 4]), 2.5)

    def test_not_2d(self):
        with self.assertRaises(ValueError):
            block_mean(np.ones(4), 2)


class TestChecks(unittest.TestCase):
    def test_positive_int(self):
        self.assertEqual(check_positive_int(np.int32(3), 'block_rows'), 3)
        for bad in [0, -1, 1.5, '10', None, True]:
            with self.assertRaises(ConfigurationError):
                check_positive_int(bad, 'block_rows')

    def test_factor_larger_than_raster(self):
        self.assertEqual(check_factor(4, 4, 8), 4)
        with self.assertRaises(ConfigurationError):
            check_factor(5, 4, 8)
        with self.assertRaises(ConfigurationError):
            check_factor(9, 10, 8)

    def test_configuration_error_is_value_error(self):
        self.assertTrue(issubclass(ConfigurationError, ValueError))

    def test_geographic_crs(self):
        wgs84 = CRS.from_epsg(4326)
        self.assertEqual(check_geographic(wgs84, (-180., -90., 180., 90.)), wgs84)
        with self.assertRaises(ConfigurationError):
            check_geographic(CRS.from_epsg(3857), (-2e7, -1e7, 2e7, 1e7))

    def test_missing_crs(self):
        """ hwsd.bil has no .prj; lon/lat bounds are taken as WGS84 """
        self.assertEqual(check_geographic(None, (-180., -90., 180., 90.)), CRS.from_epsg(4326))
        with self.assertRaises(ConfigurationError):
            check_geographic(None, (0., 0., 4000., 4000.))


class TestGetLatLon(unittest.TestCase):
    def test_global_one_degree(self):
        lat, lon = get_latlon(from_origin(-180, 90, 1, 1), 180, 360)
        self.assertEqual(len(lat), 180)
        self.assertEqual(len(lon), 360)
        self.assertAlmostEqual(lat[0], 89.5)
        self.assertAlmostEqual(lat[-1], -89.5)
        self.assertAlmostEqual(lon[0], -179.5)
        self.assertAlmostEqual(lon[-1], 179.5)

    def test_single_cell(self):
        lat, lon = get_latlon(from_origin(0, 4, 4, 4), 1, 1)
        np.testing.assert_allclose(lat, [2.])
        np.testing.assert_allclose(lon, [2.])


if __name__ == '__main__':
    unittest.main()
