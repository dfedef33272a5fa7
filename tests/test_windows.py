# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

"""
Tests for the climatological windows.
"""

import pickle
import unittest

import numpy as np

from kddm.errors import ConfigurationError, InvariantError
from kddm.utils import (
    ClimatologicalWindows,
    build_windows,
    renest,
    slice_windows,
    unslice_windows,
)


def check_tiling(window_set):
    all_indices = np.sort(np.concatenate([window_set.inner[name] for name in window_set.names]))
    return np.array_equal(all_indices, np.arange(window_set.size))


class TestClimatologicalWindows(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        np.random.seed(12345)

    def test__init__(self):
        windows = ClimatologicalWindows()
        assert windows.window_count == 12
        assert windows.inner_outer_ratio == 3
        assert np.isclose(windows.inner_length, 365.2425 / 12)
        assert np.isclose(windows.outer_length, 3 * 365.2425 / 12)
        assert windows.names[0] == "w01" and windows.names[-1] == "w12"

        windows = ClimatologicalWindows(inner_length=30, days_per_year=360)
        assert windows.window_count == 12

        windows = ClimatologicalWindows(window_count=4, outer_length=180, days_per_year=360)
        assert windows.inner_outer_ratio == 2

        # Test equality
        assert ClimatologicalWindows(window_count=6) == ClimatologicalWindows(window_count=6)
        assert ClimatologicalWindows(window_count=6) != ClimatologicalWindows(window_count=4)

        # Test validators
        with self.assertRaises(ConfigurationError):
            ClimatologicalWindows(window_count=0)

        with self.assertRaises(ConfigurationError):
            ClimatologicalWindows(window_count=2.5)

        with self.assertRaises(ConfigurationError):
            ClimatologicalWindows(inner_outer_ratio=0.5)

        with self.assertRaises(ConfigurationError):
            ClimatologicalWindows(inner_length=100, days_per_year=365)

        with self.assertRaises(ConfigurationError):
            ClimatologicalWindows(window_count=12, inner_length=60, days_per_year=360)

        with self.assertRaises(ConfigurationError):
            ClimatologicalWindows(window_count=4, outer_length=10, days_per_year=360)

        with self.assertRaises(ConfigurationError):
            ClimatologicalWindows(days_per_year=-1)

        with self.assertRaises(ConfigurationError):
            ClimatologicalWindows(window_count=2, names=["a", "a"])

        # Configuration errors are value errors
        with self.assertRaises(ValueError):
            ClimatologicalWindows(window_count=-3)

    def test_from_calendar(self):
        assert ClimatologicalWindows.from_calendar("360_day").days_per_year == 360
        assert ClimatologicalWindows.from_calendar("noleap").days_per_year == 365
        assert ClimatologicalWindows.from_calendar("all_leap", window_count=6).window_count == 6

        with self.assertRaises(ConfigurationError):
            ClimatologicalWindows.from_calendar("martian")

    def test_build_tiling(self):
        for days_per_year, length in [(365, 3 * 365), (360, 5 * 360), (365.2425, 4 * 365 + 1)]:
            for window_count, ratio in [(12, 3), (4, 1), (73, 5), (1, 1)]:
                time = np.arange(length)
                window_set = ClimatologicalWindows(
                    window_count=window_count,
                    inner_outer_ratio=ratio,
                    days_per_year=days_per_year,
                ).build(time)

                assert check_tiling(window_set)
                for name in window_set.names:
                    assert np.all(np.isin(window_set.inner[name], window_set.outer[name]))

    def test_build_calendar_independent(self):
        # Same fraction of the year -> same inner window, whatever the year length
        fractions = (np.arange(120) + 0.5) / 120
        inner_by_calendar = []
        for calendar in ["360_day", "noleap", "all_leap"]:
            windows = ClimatologicalWindows.from_calendar(calendar, window_count=12)
            window_set = windows.build(fractions * windows.days_per_year)
            inner_by_calendar.append(window_set.inner)

            assert check_tiling(window_set)
            for k, name in enumerate(window_set.names):
                assert np.array_equal(window_set.inner[name], np.arange(10 * k, 10 * (k + 1)))

        for inner in inner_by_calendar[1:]:
            for name in inner:
                assert np.array_equal(inner[name], inner_by_calendar[0][name])

        # Window sizes scale with the length of the year
        for days_per_year in [360, 365, 366]:
            window_set = ClimatologicalWindows(window_count=12, days_per_year=days_per_year).build(np.arange(days_per_year))
            inner_sizes = np.array([window_set.inner[name].size for name in window_set.names])
            outer_sizes = np.array([window_set.outer[name].size for name in window_set.names])

            assert inner_sizes.sum() == days_per_year
            assert np.all(np.abs(inner_sizes - days_per_year / 12) <= 1)
            assert np.all(np.abs(outer_sizes - 3 * days_per_year / 12) <= 2)

    def test_build_irregular_time(self):
        time = np.sort(np.random.uniform(0, 10 * 365, size=2000))
        window_set = build_windows(time, window_count=12, days_per_year=365, start_day=100.5)

        assert check_tiling(window_set)

    def test_build_360_day_calendar(self):
        window_set = ClimatologicalWindows.from_calendar("360_day").build(np.arange(5 * 360))

        for name in window_set.names:
            assert window_set.inner[name].size == 150

    def test_outer_window_spanning_year(self):
        time = np.arange(2 * 365)
        window_set = build_windows(time, window_count=12, inner_outer_ratio=12, days_per_year=365)

        for name in window_set.names:
            assert np.array_equal(window_set.outer[name], np.arange(time.size))

    def test_outer_window_wraps_across_new_year(self):
        time = np.arange(3 * 365)
        window_set = build_windows(time, window_count=12, inner_outer_ratio=3, days_per_year=365)

        # First window is centered on day 15.2 and its outer window reaches back into december
        assert 350 in window_set.outer["w01"]
        assert 365 + 40 in window_set.outer["w01"]
        assert 365 + 100 not in window_set.outer["w01"]

    def test_segment_ids(self):
        time = np.arange(3 * 365)
        window_set = build_windows(time, window_count=12, inner_outer_ratio=3, days_per_year=365)

        outer_w01 = window_set.outer["w01"]
        segment_ids = window_set.segment_ids("w01")
        assert segment_ids.size == outer_w01.size

        # End of december and start of january are one contiguous segment
        assert segment_ids[outer_w01 == 350][0] == segment_ids[outer_w01 == 370][0]
        assert segment_ids[outer_w01 == 10][0] != segment_ids[outer_w01 == 370][0]

        # Within an outer window each segment covers less than a year
        for name in window_set.names:
            segment_ids = window_set.segment_ids(name)
            for segment in np.unique(segment_ids):
                segment_time = window_set.time[window_set.outer[name]][segment_ids == segment]
                assert segment_time.max() - segment_time.min() < 365

    def test_read_only(self):
        window_set = build_windows(np.arange(365), days_per_year=365)

        with self.assertRaises(ValueError):
            window_set.inner["w01"][0] = 5

        with self.assertRaises(TypeError):
            window_set.inner["w01"] = np.arange(3)

    def test_pickle(self):
        window_set = build_windows(np.arange(2 * 365), window_count=6, days_per_year=365)
        window_set_unpickled = pickle.loads(pickle.dumps(window_set))

        assert window_set_unpickled.names == window_set.names
        for name in window_set.names:
            assert np.array_equal(window_set_unpickled.inner[name], window_set.inner[name])
            assert np.array_equal(window_set_unpickled.outer[name], window_set.outer[name])


class TestSliceUnslice(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        np.random.seed(12345)

    def test_unslice_inverts_slice(self):
        for days_per_year, window_count in [(365, 12), (360, 5), (365.2425, 52)]:
            time = np.sort(np.random.uniform(0, 4 * days_per_year, size=1000))
            values = np.random.normal(size=1000)
            values[np.random.random(1000) < 0.1] = np.nan

            window_set = build_windows(time, window_count=window_count, days_per_year=days_per_year)
            sliced = slice_windows(values, window_set)
            assert not sliced.outer

            assert np.array_equal(unslice_windows(sliced, window_set), values, equal_nan=True)

    def test_slice_preserves_order(self):
        time = np.arange(3 * 365)
        values = np.arange(3 * 365, dtype=float)
        window_set = build_windows(time, days_per_year=365)

        sliced = window_set.slice(values, outer=True)
        for name in window_set.names:
            assert np.array_equal(sliced[name], values[window_set.outer[name]])

    def test_invariant_errors(self):
        window_set = build_windows(np.arange(365), window_count=4, days_per_year=365)
        values = np.random.normal(size=365)

        with self.assertRaises(InvariantError):
            window_set.slice(values[:100])

        with self.assertRaises(InvariantError):
            window_set.unslice(window_set.slice(values, outer=True))

        sliced = dict(window_set.slice(values))
        sliced["w01"] = sliced["w01"][1:]
        with self.assertRaises(InvariantError):
            window_set.unslice(sliced)

        sliced = dict(window_set.slice(values))
        del sliced["w04"]
        with self.assertRaises(InvariantError):
            window_set.unslice(sliced)

    def test_inner_mask_in_outer(self):
        window_set = build_windows(np.arange(2 * 365), days_per_year=365)
        values = np.random.normal(size=2 * 365)

        sliced_inner = window_set.slice(values)
        sliced_outer = window_set.slice(values, outer=True)
        for name in window_set.names:
            mask = window_set.inner_mask_in_outer(name)
            assert np.array_equal(sliced_outer[name][mask], sliced_inner[name])


class TestRenest(unittest.TestCase):
    def test_renest(self):
        nested = {"obs": {"w01": 1, "w02": 2}, "cur": {"w01": 3, "w02": 4}, "fut": {"w01": 5, "w02": 6}}

        renested = renest(nested)
        assert renested["w02"]["cur"] == 4
        assert set(renested.keys()) == {"w01", "w02"}

        assert renest(renest(nested)) == nested
