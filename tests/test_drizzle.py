# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

"""
Tests for the drizzle correction.
"""

import unittest

import numpy as np

from kddm.utils import dedrizzle, get_drizzle_threshold, rezero, unzero, wet_ratio


class TestDedrizzle(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        np.random.seed(12345)

    def test_threshold(self):
        obs = np.concatenate([np.zeros(10), np.ones(10)])
        cur = np.arange(1, 11) / 10

        assert np.isclose(get_drizzle_threshold(obs, cur), 0.6)

        obs, cur, fut, diagnostics = dedrizzle(
            obs, cur, np.array([0.05, 0.5, 0.7]), return_diagnostics=True
        )
        assert np.isclose(diagnostics["threshold"], 0.6)
        assert diagnostics["wet_ratio"] == 0.5
        assert wet_ratio(cur) == 0.5
        assert np.allclose(fut, [0, 0, 0.7])

    def test_cur_drier_than_obs(self):
        obs = np.random.gamma(shape=2, size=100)
        cur = np.concatenate([np.zeros(50), np.random.gamma(shape=2, size=50)])

        obs_dedrizzled, cur_dedrizzled, fut = dedrizzle(obs, cur)
        assert fut is None
        assert np.array_equal(cur_dedrizzled, cur)
        assert get_drizzle_threshold(obs, cur) == 0

    def test_wet_ratio_matched(self):
        n = 5000
        obs = np.where(np.random.random(n) < 0.4, 0, np.random.gamma(shape=1, scale=5, size=n))
        cur = np.random.gamma(shape=0.5, scale=5, size=n)
        cur[np.random.random(n) < 0.05] = np.nan

        obs, cur, fut = dedrizzle(obs, cur)
        assert np.abs(wet_ratio(cur) - wet_ratio(obs)) <= 1 / n + 1e-12
        assert np.sum(np.isnan(cur)) > 0

    def test_inputs_floored_and_not_modified(self):
        obs = np.array([-1.0, 0.0, 2.0, np.nan])
        cur = np.array([-0.5, 1.0, 2.0, 3.0])

        obs_dedrizzled, cur_dedrizzled, _ = dedrizzle(obs, cur)
        assert np.array_equal(obs_dedrizzled, [0, 0, 2, np.nan], equal_nan=True)
        assert np.nanmin(cur_dedrizzled) >= 0
        assert obs[0] == -1.0 and cur[0] == -0.5

    def test_unzero_rezero(self):
        x = np.array([0.0, 1.0, np.nan, 0.0, 2.0])

        values, zero_mask = unzero(x)
        assert np.array_equal(zero_mask, [True, False, False, True, False])
        assert np.sum(np.isnan(values)) == 3

        assert np.array_equal(rezero(values, zero_mask), x, equal_nan=True)
