# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

from collections.abc import Mapping
from types import MappingProxyType
from typing import Optional

import attrs
import numpy as np

from ..errors import ConfigurationError, InvariantError
from ._utils import DEFAULT_DAYS_PER_YEAR, days_per_year_from_calendar


DEFAULT_WINDOW_COUNT = 12


def _read_only(x: np.ndarray) -> np.ndarray:
    x.setflags(write=False)
    return x


@attrs.define
class ClimatologicalWindows:
    """
    Partitions the annual cycle into climatological windows.

    The year of length ``days_per_year`` is divided into ``window_count`` contiguous inner windows of equal length. Each inner window is surrounded by an outer window centered on it, of length ``inner_length * inner_outer_ratio`` or ``outer_length`` if given explicitly. Inner windows assign every timestep to exactly one window, outer windows overlap and provide the sample a transfer function is fitted on.

    Usual usage:

    >>> time = np.arange(3 * 365)
    >>> windows = ClimatologicalWindows(window_count=12, inner_outer_ratio=3, days_per_year=365)
    >>> window_set = windows.build(time)
    >>> sliced = window_set.slice(values, outer=True)

    Warning: the resolved values (``window_count``, ``inner_length``, ``outer_length``, ``names``) are stored on the object after initialisation, so the window geometry can be read back from it.

    Attributes
    ----------
    window_count : Optional[int]
        Number of inner windows per year. If neither ``window_count`` nor ``inner_length`` is given, 12 windows are used.
    inner_outer_ratio : float
        Ratio of outer to inner window length. Only used if ``outer_length`` is not given. Default: ``3``.
    inner_length : Optional[float]
        Explicit inner window length in days. Needs to divide ``days_per_year`` into a whole number of windows.
    outer_length : Optional[float]
        Explicit outer window length in days.
    days_per_year : float
        Length of the annual cycle in days. Default: ``365.2425``.
    start_day : float
        Day of year at which the first inner window starts. Windows starting elsewhere than zero wrap across the year boundary. Default: ``0``.
    names : Optional[list]
        Window names. Default: ``["w01", "w02", ...]``.
    """

    window_count: Optional[int] = attrs.field(default=None)
    inner_outer_ratio: float = attrs.field(default=3.0)
    inner_length: Optional[float] = attrs.field(default=None)
    outer_length: Optional[float] = attrs.field(default=None)
    days_per_year: float = attrs.field(default=DEFAULT_DAYS_PER_YEAR)
    start_day: float = attrs.field(default=0.0)
    names: Optional[list] = attrs.field(default=None)

    def __attrs_post_init__(self):
        if not _is_positive_number(self.days_per_year):
            raise ConfigurationError("days_per_year needs to be a positive number")
        self.days_per_year = float(self.days_per_year)

        if not _is_number(self.start_day) or not np.isfinite(self.start_day):
            raise ConfigurationError("start_day needs to be a finite number")
        self.start_day = float(self.start_day)

        self._resolve_window_count()
        self.inner_length = self.days_per_year / self.window_count
        self._resolve_outer_length()
        self._resolve_names()

    # ----- Helpers: validation and resolution of the window geometry ----- #
    def _resolve_window_count(self):
        if self.inner_length is not None:
            if not _is_positive_number(self.inner_length):
                raise ConfigurationError("inner_length needs to be a positive number")
            count_from_length = self.days_per_year / self.inner_length
            if abs(count_from_length - round(count_from_length)) > 1e-3:
                raise ConfigurationError(
                    "inner_length = %s does not divide days_per_year = %s into a whole number of windows"
                    % (self.inner_length, self.days_per_year)
                )
            if (
                self.window_count is not None
                and self.window_count != round(count_from_length)
            ):
                raise ConfigurationError(
                    "window_count = %s and inner_length = %s are inconsistent"
                    % (self.window_count, self.inner_length)
                )
            self.window_count = int(round(count_from_length))

        if self.window_count is None:
            self.window_count = DEFAULT_WINDOW_COUNT
        if isinstance(self.window_count, bool) or not isinstance(
            self.window_count, (int, np.integer)
        ):
            raise ConfigurationError("window_count needs to be an integer")
        if self.window_count <= 0:
            raise ConfigurationError("window_count needs to be positive")
        if self.window_count > np.floor(self.days_per_year):
            raise ConfigurationError(
                "window_count = %s gives windows shorter than one day for days_per_year = %s"
                % (self.window_count, self.days_per_year)
            )
        self.window_count = int(self.window_count)

    def _resolve_outer_length(self):
        if self.outer_length is None:
            if not _is_positive_number(self.inner_outer_ratio):
                raise ConfigurationError("inner_outer_ratio needs to be a positive number")
            if self.inner_outer_ratio < 1:
                raise ConfigurationError(
                    "inner_outer_ratio needs to be at least 1: outer windows contain their inner window"
                )
            self.inner_outer_ratio = float(self.inner_outer_ratio)
            self.outer_length = self.inner_length * self.inner_outer_ratio
        else:
            if not _is_positive_number(self.outer_length):
                raise ConfigurationError("outer_length needs to be a positive number")
            if self.outer_length < self.inner_length * (1 - 1e-9):
                raise ConfigurationError(
                    "outer_length = %s is shorter than the inner window length %s"
                    % (self.outer_length, self.inner_length)
                )
            self.outer_length = float(self.outer_length)
            self.inner_outer_ratio = self.outer_length / self.inner_length

    def _resolve_names(self):
        if self.names is None:
            self.names = ["w%02d" % (k + 1) for k in range(self.window_count)]
            return
        self.names = [str(name) for name in self.names]
        if len(self.names) != self.window_count:
            raise ConfigurationError(
                "%s names given for %s windows" % (len(self.names), self.window_count)
            )
        if len(set(self.names)) != len(self.names):
            raise ConfigurationError("Window names need to be unique")

    # ----- Constructors ----- #
    @classmethod
    def from_calendar(cls, calendar: Optional[str] = None, **kwargs):
        """
        Instantiates the windows for a CF calendar name, deriving ``days_per_year`` from it.

        Parameters
        ----------
        calendar : Optional[str]
            CF calendar attribute, eg. ``"noleap"`` or ``"360_day"``.
        **kwargs:
            All other class attributes.
        """
        return cls(days_per_year=days_per_year_from_calendar(calendar), **kwargs)

    # ----- Geometry ----- #
    @property
    def centers(self) -> np.ndarray:
        """Window centers as day of year relative to ``start_day``."""
        return (np.arange(self.window_count) + 0.5) * self.inner_length

    def day_of_year(self, time: np.ndarray) -> np.ndarray:
        """Day of year in ``[0, days_per_year)`` relative to ``start_day`` for time values in days."""
        return np.mod(np.asarray(time, dtype=float) - self.start_day, self.days_per_year)

    def _circular_distance_to_center(self, days_of_year, window_nr):
        half_year = self.days_per_year / 2
        return np.abs(
            np.mod(days_of_year - self.centers[window_nr] + half_year, self.days_per_year)
            - half_year
        )

    # ----- Main methods ----- #
    def build(self, time: np.ndarray) -> "WindowIndexSet":
        """
        Assigns every timestep to its inner window and to all outer windows containing it.

        Parameters
        ----------
        time : np.ndarray
            1-dimensional array of time values in days since an epoch.

        Returns
        -------
        WindowIndexSet
            Read-only index set for this time axis.
        """
        time = np.asarray(time, dtype=float)
        if time.ndim != 1:
            raise ConfigurationError("time needs to be a 1-dimensional array")
        if not np.all(np.isfinite(time)):
            raise ConfigurationError("time contains non-finite values")

        days_of_year = self.day_of_year(time)
        inner_window_nr = np.minimum(
            np.floor(days_of_year / self.inner_length).astype(int), self.window_count - 1
        )

        inner, outer = {}, {}
        for window_nr, name in enumerate(self.names):
            indices_inner = np.flatnonzero(inner_window_nr == window_nr)
            if self.outer_length >= self.days_per_year:
                indices_outer = np.arange(time.size)
            else:
                indices_outer = np.flatnonzero(
                    self._circular_distance_to_center(days_of_year, window_nr)
                    <= self.outer_length / 2
                )
            inner[name] = _read_only(indices_inner)
            # Rounding at the window edges must not drop inner values from the outer window
            outer[name] = _read_only(np.union1d(indices_outer, indices_inner))

        return WindowIndexSet(
            windows=self,
            time=_read_only(time.copy()),
            inner=MappingProxyType(inner),
            outer=MappingProxyType(outer),
        )


def _is_number(x):
    return isinstance(x, (int, float, np.integer, np.floating)) and not isinstance(
        x, bool
    )


def _is_positive_number(x):
    return _is_number(x) and np.isfinite(x) and x > 0


@attrs.define(frozen=True, eq=False)
class SlicedDataset(Mapping):
    """
    Read-only mapping from window name to the values inside that window.

    Attributes
    ----------
    data : dict
        Window name -> 1-dimensional array of values.
    outer : bool
        Whether the values were extracted with the outer windows. Outer slices overlap and can not be unsliced.
    """

    data: dict = attrs.field(converter=dict)
    outer: bool = attrs.field(default=False)

    def __getitem__(self, key):
        return self.data[key]

    def __iter__(self):
        return iter(self.data)

    def __len__(self):
        return len(self.data)


@attrs.define(frozen=True, eq=False)
class WindowIndexSet:
    """
    Inner and outer window indices for one time axis, built by :py:meth:`ClimatologicalWindows.build`.

    It is read-only after construction and can be shared across grid cells and threads using the same time axis.

    Attributes
    ----------
    windows : ClimatologicalWindows
        Window configuration the set was built with.
    time : np.ndarray
        Time axis in days.
    inner : Mapping
        Window name -> indices of the timesteps assigned to that window. Inner windows tile the time axis.
    outer : Mapping
        Window name -> indices of the timesteps inside the (overlapping) outer window.
    """

    windows: ClimatologicalWindows
    time: np.ndarray
    inner: Mapping
    outer: Mapping

    def __attrs_post_init__(self):
        self.check_tiling()

    @property
    def names(self) -> list:
        return list(self.windows.names)

    @property
    def size(self) -> int:
        return self.time.size

    def check_tiling(self):
        """Raises an :py:class:`InvariantError` if the inner windows do not cover every index exactly once."""
        all_indices = np.sort(
            np.concatenate([self.inner[name] for name in self.names] + [np.array([], dtype=int)])
        )
        if not np.array_equal(all_indices, np.arange(self.size)):
            nr_duplicates = all_indices.size - np.unique(all_indices).size
            nr_missing = np.setdiff1d(np.arange(self.size), all_indices).size
            raise InvariantError(
                "Inner windows do not tile the time axis: %s duplicate and %s missing positions"
                % (nr_duplicates, nr_missing)
            )

    def _check_aligned(self, values):
        if values.ndim != 1 or values.size != self.size:
            raise InvariantError(
                "values of shape %s are not aligned with a time axis of length %s"
                % (values.shape, self.size)
            )

    def slice(self, values: np.ndarray, outer: bool = False) -> SlicedDataset:
        """
        Gathers the values of each window, preserving input order within a window.

        Parameters
        ----------
        values : np.ndarray
            1-dimensional array aligned with the time axis.
        outer : bool
            Whether to extract with the outer (overlapping) windows. Default: ``False``.
        """
        values = np.asarray(values)
        self._check_aligned(values)
        indices = self.outer if outer else self.inner
        return SlicedDataset(
            {name: values[indices[name]] for name in self.names}, outer=outer
        )

    def unslice(self, sliced: Mapping) -> np.ndarray:
        """
        Scatters inner window values back to their positions on the time axis. Inverse of ``slice(values, outer=False)``.

        Parameters
        ----------
        sliced : Mapping
            Window name -> values, as returned by :py:meth:`slice` with ``outer=False``.
        """
        if isinstance(sliced, SlicedDataset) and sliced.outer:
            raise InvariantError("Outer window slices overlap and can not be unsliced")
        if set(sliced.keys()) != set(self.names):
            raise InvariantError(
                "Window names %s do not match the window set %s"
                % (sorted(sliced.keys()), self.names)
            )
        for name in self.names:
            if np.asarray(sliced[name]).size != self.inner[name].size:
                raise InvariantError(
                    "Window %s holds %s values but its inner window has %s positions"
                    % (name, np.asarray(sliced[name]).size, self.inner[name].size)
                )
        self.check_tiling()

        dtype = np.result_type(*[np.asarray(sliced[name]) for name in self.names])
        output = np.empty(self.size, dtype=dtype)
        for name in self.names:
            output[self.inner[name]] = sliced[name]
        return output

    def __reduce__(self):
        # mappingproxy can not be pickled, needed to send index sets to worker processes
        return (
            _rebuild_window_index_set,
            (self.windows, self.time, dict(self.inner), dict(self.outer)),
        )

    def inner_mask_in_outer(self, name: str) -> np.ndarray:
        """Boolean mask selecting the inner window positions inside the outer slice of window ``name``."""
        return np.isin(self.outer[name], self.inner[name])

    def segment_ids(self, name: str) -> np.ndarray:
        """
        Year segment of every position in the outer slice of window ``name``.

        Segments are counted from ``start_day`` in steps of ``days_per_year``, offset so that a contiguous outer window (including one wrapping across the new year) falls into a single segment.
        """
        windows = self.windows
        window_nr = self.names.index(name)
        offset = windows.start_day + windows.centers[window_nr] - windows.days_per_year / 2
        return np.floor(
            (self.time[self.outer[name]] - offset) / windows.days_per_year
        ).astype(int)


def _rebuild_window_index_set(windows, time, inner, outer):
    return WindowIndexSet(
        windows=windows,
        time=_read_only(np.array(time)),
        inner=MappingProxyType({name: _read_only(np.array(x)) for name, x in inner.items()}),
        outer=MappingProxyType({name: _read_only(np.array(x)) for name, x in outer.items()}),
    )


def build_windows(time: np.ndarray, **kwargs) -> WindowIndexSet:
    """
    Builds the window index set for a time axis. Keyword arguments are passed to :py:class:`ClimatologicalWindows`.

    >>> window_set = build_windows(np.arange(730), window_count=4, inner_outer_ratio=2, days_per_year=365)
    >>> window_set.names
    ['w01', 'w02', 'w03', 'w04']
    """
    return ClimatologicalWindows(**kwargs).build(time)


def slice_windows(
    values: np.ndarray, windows: WindowIndexSet, outer: bool = False
) -> SlicedDataset:
    return windows.slice(values, outer=outer)


def unslice_windows(sliced: Mapping, windows: WindowIndexSet) -> np.ndarray:
    return windows.unslice(sliced)


def renest(nested: Mapping) -> dict:
    """
    Transposes a two-level mapping: ``{a: {b: value}}`` becomes ``{b: {a: value}}``.

    Applying it twice returns the original mapping (outer keys with empty inner mappings are dropped).

    >>> renest({"obs": {"w01": 1, "w02": 2}, "cur": {"w01": 3, "w02": 4}})
    {'w01': {'obs': 1, 'cur': 3}, 'w02': {'obs': 2, 'cur': 4}}
    """
    renested = {}
    for outer_key, inner_mapping in nested.items():
        for inner_key, value in inner_mapping.items():
            renested.setdefault(inner_key, {})[outer_key] = value
    return renested
