# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

"""
Tests for calendars, time helpers, nested mappings and logging.
"""

import datetime
import logging
import unittest

import numpy as np

from kddm import errors
from kddm.utils import (
    check_time_information_and_raise_error,
    create_array_of_consecutive_days,
    days_per_year_from_calendar,
    get_library_logger,
    get_verbosity_library_logger,
    infer_and_create_time_arrays_if_not_given,
    is_all_missing,
    map_nested,
    nr_valid_values,
    set_verbosity_library_logger,
    time_offsets_from_dates,
)


class TestCalendars(unittest.TestCase):
    def test_days_per_year_from_calendar(self):
        assert days_per_year_from_calendar() == 365.2425
        assert days_per_year_from_calendar("standard") == 365.2425
        assert days_per_year_from_calendar("proleptic_gregorian") == 365.2425
        assert days_per_year_from_calendar("noleap") == 365
        assert days_per_year_from_calendar("365_day") == 365
        assert days_per_year_from_calendar("all_leap") == 366
        assert days_per_year_from_calendar("360_day") == 360
        assert days_per_year_from_calendar("julian") == 365.25
        assert days_per_year_from_calendar("NOLEAP") == 365

        with self.assertRaises(errors.ConfigurationError):
            days_per_year_from_calendar("lunar")

        with self.assertRaises(errors.ConfigurationError):
            days_per_year_from_calendar(360)


class TestTimeHelpers(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        np.random.seed(12345)

    def test_create_array_of_consecutive_days(self):
        time = create_array_of_consecutive_days(10, start_day=5)
        assert time.size == 10
        assert time[0] == 5 and time[-1] == 14

    def test_time_offsets_from_dates(self):
        dates = np.arange(np.datetime64("2000-01-01"), np.datetime64("2001-01-01"))
        offsets = time_offsets_from_dates(dates)
        assert offsets[0] == 0
        assert offsets[-1] == 365
        assert np.all(np.diff(offsets) == 1)

        offsets = time_offsets_from_dates(dates, epoch="1999-12-31")
        assert offsets[0] == 1

        dates = [datetime.datetime(2000, 1, 1) + datetime.timedelta(hours=12 * i) for i in range(10)]
        offsets = time_offsets_from_dates(dates)
        assert np.allclose(offsets, np.arange(10) / 2)

        assert time_offsets_from_dates([]).size == 0

    def test_infer_time_arrays(self):
        obs, cur, fut = np.zeros(10), np.zeros(20), np.zeros(30)
        time_obs, time_cur, time_fut = infer_and_create_time_arrays_if_not_given(
            obs, cur, fut, time_fut=np.arange(30) + 100
        )
        assert time_obs.size == 10 and time_cur.size == 20
        assert time_fut[0] == 100

        check_time_information_and_raise_error(obs, cur, fut, time_obs, time_cur, time_fut)
        with self.assertRaises(ValueError):
            check_time_information_and_raise_error(obs, cur, fut, time_obs, time_obs, time_fut)


class TestMissingValues(unittest.TestCase):
    def test_is_all_missing(self):
        assert is_all_missing(np.array([np.nan, np.nan]))
        assert is_all_missing(np.array([]))
        assert not is_all_missing(np.array([np.nan, 1.0]))

    def test_nr_valid_values(self):
        assert nr_valid_values(np.array([np.nan, 1.0, 2.0])) == 2
        assert nr_valid_values(np.array([])) == 0


class TestMapNested(unittest.TestCase):
    def test_map_nested(self):
        nested = {"obs": {"w01": np.arange(3), "w02": np.arange(5)}, "cur": {"w01": np.arange(2)}}

        assert map_nested(len, nested, depth=2) == {"obs": {"w01": 3, "w02": 5}, "cur": {"w01": 2}}
        assert map_nested(len, nested, depth=1) == {"obs": 2, "cur": 1}

        with self.assertRaises(ValueError):
            map_nested(len, nested, depth=0)


class TestLogging(unittest.TestCase):
    def test_library_logger(self):
        logger = get_library_logger()
        assert logger.name == "kddm"

        level = get_verbosity_library_logger()
        set_verbosity_library_logger(logging.DEBUG)
        assert get_verbosity_library_logger() == logging.DEBUG
        set_verbosity_library_logger(level)


class TestErrors(unittest.TestCase):
    def test_error_hierarchy(self):
        for error in [
            errors.ConfigurationError,
            errors.InvariantError,
            errors.DegenerateInputError,
            errors.InsufficientDataError,
            errors.NonMonotoneMapError,
        ]:
            assert issubclass(error, errors.KDDMError)

        assert issubclass(errors.ConfigurationError, ValueError)
        assert issubclass(errors.NonMonotoneMapError, ArithmeticError)
