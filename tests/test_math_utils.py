# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

"""
Tests for the density estimation and the distribution mapper.
"""

import unittest

import numpy as np
import scipy.integrate

from kddm.errors import DegenerateInputError, InsufficientDataError, NonMonotoneMapError
from kddm.utils import (
    DensityEstimation,
    DistributionMap,
    build_map,
    cdf_from_density,
    estimate_density,
    predict,
)


def is_non_decreasing(x, tolerance=1e-9):
    return np.all(np.diff(x) >= -tolerance)


class TestDensityEstimation(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        np.random.seed(12345)

    def test__init__(self):
        density = DensityEstimation()
        assert density.bandwidth == "silverman"
        assert density.gridsize == 512

        assert DensityEstimation(bandwidth=0.5).bandwidth == 0.5

        # Test validators
        with self.assertRaises(ValueError):
            DensityEstimation(bandwidth="unknown")

        with self.assertRaises(ValueError):
            DensityEstimation(bandwidth=-1.0)

        with self.assertRaises(ValueError):
            DensityEstimation(gridsize=4)

        with self.assertRaises(TypeError):
            DensityEstimation(gridsize=512.0)

        with self.assertRaises(ValueError):
            DensityEstimation(adjust=0)

    def test_estimate_density(self):
        x = np.random.normal(size=1000)
        y = np.random.normal(loc=2, scale=0.5, size=300)
        y[:10] = np.nan

        for density in [DensityEstimation(), DensityEstimation(bandwidth="scott", gridsize=256), DensityEstimation(bandwidth=0.3)]:
            grid, (f_x, f_y) = estimate_density([x, y], density)
            assert grid.size == density.gridsize
            assert np.all(f_x >= 0) and np.all(f_y >= 0)
            assert np.abs(scipy.integrate.trapezoid(f_x, grid) - 1) < 0.01
            assert np.abs(scipy.integrate.trapezoid(f_y, grid) - 1) < 0.01

        # Mode close to the mean for normal samples
        grid, (f_x,) = estimate_density([np.random.normal(loc=5, size=5000)])
        assert np.abs(grid[np.argmax(f_x)] - 5) < 0.5

    def test_estimate_density_errors(self):
        with self.assertRaises(InsufficientDataError):
            estimate_density([np.array([1.0, np.nan])])

        with self.assertRaises(DegenerateInputError):
            estimate_density([np.full(100, 2.0)])

    def test_cdf_from_density(self):
        grid, (f_x,) = estimate_density([np.random.gamma(shape=2, size=1000)])
        cdf = cdf_from_density(grid, f_x)

        assert cdf[0] == 0 and cdf[-1] == 1
        assert is_non_decreasing(cdf, 0)

        with self.assertRaises(DegenerateInputError):
            cdf_from_density(grid, np.zeros(grid.size))


class TestDistributionMap(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        np.random.seed(12345)

    def test_map_normal_onto_normal(self):
        source = np.random.normal(loc=2, size=2000)
        target = np.random.normal(size=2000)
        transfer_function = build_map(source, target)

        assert np.abs(transfer_function.predict(np.array([2.0]))[0]) < 0.15
        assert np.abs(transfer_function.predict(np.array([3.0]))[0] - 1) < 0.2

        mapped = transfer_function(source)
        assert np.abs(np.mean(mapped) - np.mean(target)) < 0.1
        assert np.abs(np.std(mapped) - np.std(target)) < 0.1 * np.std(target)

    def test_identity_map(self):
        x = np.random.normal(size=1000)
        transfer_function = build_map(x, x)

        values = np.linspace(-2, 2, 50)
        assert np.allclose(transfer_function.predict(values), values, atol=0.02)

    def test_monotone(self):
        for source, target in [
            (np.random.normal(size=500), np.random.normal(loc=3, scale=4, size=1500)),
            (np.random.gamma(shape=0.5, size=1000), np.random.normal(size=200)),
            (np.random.normal(size=1000), np.concatenate([np.random.normal(-5, size=500), np.random.normal(5, size=500)])),
            (np.random.uniform(size=50), np.random.exponential(size=50)),
        ]:
            transfer_function = build_map(source, target)
            values = np.linspace(source.min() - 10, source.max() + 10, 5000)
            assert is_non_decreasing(transfer_function.predict(values))
            assert transfer_function.lower_slope >= 0 and transfer_function.upper_slope >= 0

    def test_linear_extrapolation(self):
        transfer_function = build_map(np.random.normal(size=1000), np.random.normal(loc=1, scale=2, size=1000))
        x_max = transfer_function.x[-1]
        x_min = transfer_function.x[0]

        mapped = transfer_function.predict(np.array([x_max, x_max + 1, x_max + 2]))
        assert np.isclose(mapped[1] - mapped[0], transfer_function.upper_slope)
        assert np.isclose(mapped[2] - mapped[1], transfer_function.upper_slope)

        mapped = transfer_function.predict(np.array([x_min - 3, x_min]))
        assert np.isclose(mapped[1] - mapped[0], 3 * transfer_function.lower_slope)

    def test_missing_values(self):
        transfer_function = build_map(np.random.normal(size=100), np.random.normal(size=100))
        mapped = predict(transfer_function, np.array([[np.nan, 0.0], [1.0, np.nan]]))

        assert mapped.shape == (2, 2)
        assert np.isnan(mapped[0, 0]) and np.isnan(mapped[1, 1])
        assert not np.isnan(mapped[0, 1])

    def test_errors(self):
        with self.assertRaises(NonMonotoneMapError):
            DistributionMap.from_control_points(np.array([0.0, 1.0, 2.0, 3.0]), np.array([0.0, 2.0, 1.0, 3.0]))

        with self.assertRaises(InsufficientDataError):
            build_map(np.array([1.0]), np.random.normal(size=100))

        with self.assertRaises(DegenerateInputError):
            build_map(np.full(100, 1.0), np.random.normal(size=100))
