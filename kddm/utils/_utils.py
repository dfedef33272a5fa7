# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

import logging
from typing import Callable, Mapping, Optional

import numpy as np

from ..errors import ConfigurationError

# ----- Calendars ----- #

DEFAULT_DAYS_PER_YEAR = 365.2425

CALENDAR_DAYS_PER_YEAR = {
    "standard": 365.2425,
    "gregorian": 365.2425,
    "proleptic_gregorian": 365.2425,
    "julian": 365.25,
    "noleap": 365.0,
    "365_day": 365.0,
    "all_leap": 366.0,
    "366_day": 366.0,
    "360_day": 360.0,
}


def days_per_year_from_calendar(calendar: Optional[str] = None) -> float:
    """
    Returns the length of the annual cycle in days for a CF calendar name.

    >>> days_per_year_from_calendar("noleap")
    365.0

    Parameters
    ----------
    calendar : Optional[str]
        CF calendar attribute, eg. ``"standard"``, ``"noleap"`` or ``"360_day"``. If ``None`` the mean gregorian year length is returned.
    """
    if calendar is None:
        return DEFAULT_DAYS_PER_YEAR
    try:
        return CALENDAR_DAYS_PER_YEAR[calendar.lower()]
    except (KeyError, AttributeError):
        raise ConfigurationError(
            "Unknown calendar %s. Needs to be one of %s"
            % (calendar, list(CALENDAR_DAYS_PER_YEAR.keys()))
        )


# ----- Time axes ----- #


def create_array_of_consecutive_days(array_length, start_day=0.0):
    """Returns a daily time axis of length ``array_length`` as day offsets starting at ``start_day``."""
    return start_day + np.arange(array_length, dtype=float)


def _days_since(x, epoch):
    try:
        return (x - epoch).total_seconds() / 86400
    except Exception:
        raise ValueError(
            "Your datetime objects need to support subtraction returning a timedelta. In doubt please use standard python datetime or cftime."
        )


_days_since = np.vectorize(_days_since, otypes=[float])


def time_offsets_from_dates(dates, epoch=None) -> np.ndarray:
    """
    Converts an array of dates into real valued offsets in days from ``epoch``.

    >>> dates = np.arange(np.datetime64("2000-01-01"), np.datetime64("2000-01-04"))
    >>> time_offsets_from_dates(dates)
    array([0., 1., 2.])

    Parameters
    ----------
    dates : array-like
        ``np.datetime64`` values or datetime-like objects (python datetime, cftime).
    epoch :
        Reference date of the same kind as ``dates``. Default: the first date.
    """
    dates = np.asarray(dates)
    if dates.size == 0:
        return np.array([], dtype=float)
    if np.issubdtype(dates.dtype, np.datetime64):
        epoch = dates.flat[0] if epoch is None else np.datetime64(epoch)
        return (dates - epoch) / np.timedelta64(1, "D")
    epoch = dates.flat[0] if epoch is None else epoch
    return _days_since(dates, epoch)


def infer_and_create_time_arrays_if_not_given(
    obs: np.ndarray,
    cur: np.ndarray,
    fut: np.ndarray,
    time_obs: Optional[np.ndarray] = None,
    time_cur: Optional[np.ndarray] = None,
    time_fut: Optional[np.ndarray] = None,
):
    if time_obs is None:
        time_obs = create_array_of_consecutive_days(obs.shape[0])
    if time_cur is None:
        time_cur = create_array_of_consecutive_days(cur.shape[0])
    if time_fut is None:
        time_fut = create_array_of_consecutive_days(fut.shape[0])

    return time_obs, time_cur, time_fut


def check_time_information_and_raise_error(
    obs, cur, fut, time_obs, time_cur, time_fut
):
    for name, values, time in [
        ("obs", obs, time_obs),
        ("cur", cur, time_cur),
        ("fut", fut, time_fut),
    ]:
        if np.shape(time)[0] != values.shape[0]:
            raise ValueError(
                "Dimensions of time information for %s do not correspond to the dimensions of %s. Make sure that for each value in %s there is a corresponding time value."
                % (name, name, name)
            )


# ----- Missing values ----- #


def is_all_missing(x: np.ndarray) -> bool:
    """Whether an array is empty or contains only missing (nan) values."""
    return bool(np.all(np.isnan(x)))


def nr_valid_values(x: np.ndarray) -> int:
    return int(np.count_nonzero(~np.isnan(x)))


# ----- Nested mappings ----- #


def map_nested(func: Callable, nested: Mapping, depth: int) -> dict:
    """
    Applies ``func`` to the leaves of a nested mapping whose nesting depth is fixed at ``depth``.

    >>> map_nested(len, {"obs": {"w01": np.array([1., 2.])}}, depth=2)
    {'obs': {'w01': 2}}

    Parameters
    ----------
    func : Callable
        Function applied to every leaf.
    nested : Mapping
        Nested mapping, eg. dataset -> window -> values.
    depth : int
        Number of mapping levels above the leaves.
    """
    if depth < 1:
        raise ValueError("depth needs to be at least 1")
    if depth == 1:
        return {key: func(value) for key, value in nested.items()}
    return {key: map_nested(func, value, depth - 1) for key, value in nested.items()}


# ----- Logging functionality -----


def _get_library_name():
    return __name__.split(".")[0]


def get_library_logger():
    """
    Returns the library logger used by the kddm package.
    """
    return logging.getLogger(_get_library_name())


def get_verbosity_library_logger():
    """
    Returns the verbosity/level for the library logger as ``int``.
    """
    return get_library_logger().getEffectiveLevel()


def set_verbosity_library_logger(verbosity):
    """
    Sets the verbosity/level for the library logger.

    Parameters
    ----------
    verbosity :
        Logging level: ``["logging.INFO", logging.WARNING, "logging.ERROR", ...]``.
    """
    get_library_logger().setLevel(verbosity)
