# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

import warnings
from typing import Mapping, Optional, Union

import attrs
import numpy as np

from ..__meta__ import __version__
from ..errors import ConfigurationError, DegenerateInputError, InsufficientDataError
from ..utils import (
    ClimatologicalWindows,
    DensityEstimation,
    Normalization,
    NormalizedSegment,
    Power,
    WindowIndexSet,
    build_map,
    check_time_information_and_raise_error,
    dedrizzle,
    get_library_logger,
    infer_and_create_time_arrays_if_not_given,
    is_all_missing,
    map_normalization_str_to_method,
    nr_valid_values,
    rezero,
    unzero,
)
from ..variables import (
    Variable,
    hurs,
    pr,
    psl,
    rlds,
    rsds,
    sfcwind,
    tas,
    tasmax,
    tasmin,
)
from ._debiaser import DATASET_NAMES, Debiaser

# ----- Default settings for debiaser ----- #
default_settings = {
    tas: {"normalization": "zscore"},
    tasmin: {"normalization": "zscore"},
    tasmax: {"normalization": "zscore"},
    pr: {"normalization": "power", "zero_inflated": True},
}
experimental_default_settings = {
    hurs: {"normalization": "zscore"},
    psl: {"normalization": "zscore"},
    rlds: {"normalization": "zscore"},
    rsds: {"normalization": "zscore"},
    sfcwind: {"normalization": "power"},
}


# ----- Single window bias correction ----- #


def _pool(segments: Mapping) -> np.ndarray:
    if len(segments) == 0:
        return np.array([], dtype=float)
    return np.concatenate([np.asarray(x, dtype=float).ravel() for x in segments.values()])


def _all_missing(datasets: Mapping) -> dict:
    return {
        name: {key: np.full(np.shape(x), np.nan) for key, x in segments.items()}
        for name, segments in datasets.items()
    }


def _normalize_dataset(segments: Mapping, method: Normalization):
    logger = get_library_logger()

    normalized, fitted_params = {}, []
    pooled_params = None
    for key, x in segments.items():
        if is_all_missing(x):
            normalized[key] = NormalizedSegment(values=np.full(x.shape, np.nan), params=None)
            continue
        try:
            segment = method.normalize(x)
            fitted_params.append(segment.params)
        except DegenerateInputError:
            if pooled_params is None:
                pooled_params = method.fit(_pool(segments))
            logger.debug(
                "Segment %s can not be normalized on its own. Using the parameters of the pooled dataset."
                % key
            )
            segment = NormalizedSegment(
                values=method.forward(x, pooled_params), params=pooled_params
            )
        normalized[key] = segment

    if len(fitted_params) == 0:
        fitted_params = [pooled_params]
    return normalized, fitted_params


def bias_correct_window(
    datasets: Mapping,
    normalization: Union[str, Normalization] = "zscore",
    density: Optional[DensityEstimation] = None,
    min_sample_size: int = 10,
) -> dict:
    """
    Bias corrects the values of one climatological window with Kernel Density Distribution Mapping.

    1. Every year segment of every dataset is normalized on its own. Segments that are all missing stay missing, segments that can not be normalized on their own (eg. a single value) use the parameters fitted on the whole dataset.
    2. The normalized obs and cur segments are pooled and a :py:class:`DistributionMap` from cur onto obs is fitted.
    3. All cur and fut segments are mapped with it.
    4. They are transformed back with their own parameters, composed with a correction pooling the parameters of all obs and cur segments (eg. shift by the difference of mean obs and cur means for the z-score). obs is returned unchanged.

    If any dataset is entirely missing, or the window has too few valid values or zero variance, all outputs are returned as missing. A dataset without any values in the window (eg. fut not covering this part of the year) is not considered missing.

    Examples
    --------

    >>> datasets = {"obs": {0: obs_2000, 1: obs_2001}, "cur": {0: cur_2000, 1: cur_2001}, "fut": {0: fut_2050}}
    >>> corrected = bias_correct_window(datasets, normalization="zscore")
    >>> corrected["fut"][0]

    Parameters
    ----------
    datasets : Mapping
        ``{"obs": segments, "cur": segments, "fut": segments}`` where each ``segments`` maps a year segment key to a 1-dimensional array, missing values as ``np.nan``.
    normalization : Union[str, Normalization]
        One of ``["none", "zscore", "power"]`` or a :py:class:`Normalization` instance. Default: ``"zscore"``.
    density : Optional[DensityEstimation]
        Settings of the density estimation and distribution map. Default: ``DensityEstimation()``.
    min_sample_size : int
        Minimum number of valid values the pooled obs and cur samples need. Default: ``10``.

    Returns
    -------
    dict
        Same structure and shapes as ``datasets``.
    """
    output, _ = _correct_window(datasets, normalization, density, min_sample_size)
    return output


def _correct_window(datasets, normalization, density, min_sample_size):
    """Bias corrects one window. Returns the corrected datasets and whether the window could be corrected."""
    logger = get_library_logger()
    method = map_normalization_str_to_method(normalization)
    datasets = {
        name: {key: np.asarray(x, dtype=float) for key, x in datasets[name].items()}
        for name in DATASET_NAMES
    }

    for name in DATASET_NAMES:
        pooled = _pool(datasets[name])
        if pooled.size > 0 and is_all_missing(pooled):
            logger.debug("All values of %s missing. Window set to missing." % name)
            return _all_missing(datasets), False

    try:
        normalized, params = {}, {}
        for name in DATASET_NAMES:
            normalized[name], params[name] = _normalize_dataset(datasets[name], method)

        pooled_obs = _pool({key: s.values for key, s in normalized["obs"].items()})
        pooled_cur = _pool({key: s.values for key, s in normalized["cur"].items()})
        for name, pooled in [("obs", pooled_obs), ("cur", pooled_cur)]:
            if nr_valid_values(pooled) < min_sample_size:
                raise InsufficientDataError(
                    "%s has %s valid values in the window, at least %s are needed"
                    % (name, nr_valid_values(pooled), min_sample_size)
                )

        transfer_function = build_map(pooled_cur, pooled_obs, density)
    except (DegenerateInputError, InsufficientDataError) as e:
        logger.debug("Window set to missing: %s" % e)
        return _all_missing(datasets), False

    shift, scale = method.correction_factors(params["obs"], params["cur"])

    output = {"obs": {key: x.copy() for key, x in datasets["obs"].items()}}
    for name in ["cur", "fut"]:
        output[name] = {}
        for key, segment in normalized[name].items():
            if segment.params is None:
                output[name][key] = segment.values.copy()
            else:
                output[name][key] = method.inverse(
                    transfer_function.predict(segment.values), segment.params, shift, scale
                )
    return output, True


# ----- Helpers: year segments ----- #


def _split_into_segments(values: np.ndarray, segment_ids: np.ndarray) -> dict:
    return {int(key): values[segment_ids == key] for key in np.unique(segment_ids)}


def _join_segments(segments: Mapping, segment_ids: np.ndarray) -> np.ndarray:
    output = np.empty(segment_ids.size, dtype=float)
    for key, values in segments.items():
        output[segment_ids == key] = values
    return output


# ----- Debiaser ----- #


@attrs.define(slots=False)
class KDDM(Debiaser):
    """
    |br| Implements Kernel Density Distribution Mapping (KDDM) following McGinnis et al. 2015.

    KDDM is a nonparametric quantile mapping: the transfer function between the simulated and the observed distribution is built from kernel density estimates, integrated into CDFs with the trapezoid rule and smoothed by a monotone cubic spline (see :py:func:`kddm.utils.build_map`).

    The bias correction is applied separately in climatological windows (:py:class:`ClimatologicalWindows`): the transfer function of a window is fitted on all values inside its (wide) outer window and applied to the values inside its (narrow) inner window. Before fitting, every year of a window is normalized on its own, for temperature by a z-score. This removes the interannual variability and the climate change signal from the mapping, which then only corrects the shape of the distribution, whilst the mean and variance are corrected by pooled shift and scale factors. The future change in mean and variance is preserved.

    Zero-inflated variables such as precipitation are first dedrizzled (:py:func:`kddm.utils.dedrizzle`) so that cur has the observed frequency of dry days. Dry days are then excluded from the mapping and set back to zero afterwards.

    **Usage**

    >>> debiaser = KDDM.from_variable("tas")
    >>> corrected = debiaser.apply(obs, cur, fut, time_obs=time_obs, time_cur=time_cur, time_fut=time_fut)
    >>> corrected["fut"]

    **References:**

    - McGinnis, S., Nychka, D., Mearns, L. O. (2015). A New Distribution Mapping Technique for Climate Model Bias Correction. In: Machine Learning and Data Mining Approaches to Climate Science. Springer. https://doi.org/10.1007/978-3-319-17220-0_9

    Attributes
    ----------
    normalization : Union[str, Normalization]
        Normalization applied to each year segment before the mapping. One of ``["none", "zscore", "power"]`` or a :py:class:`Normalization` instance. Default: ``"zscore"``.
    zero_inflated : bool
        Whether the variable is zero-inflated and needs drizzle correction. Default: ``False``.
    windows : ClimatologicalWindows
        Climatological windows. Their ``days_per_year`` needs to match the calendar of the data. Default: ``ClimatologicalWindows()`` (12 windows, outer windows three times as long as inner ones).
    density : DensityEstimation
        Settings of the kernel density estimation and the distribution map. Default: ``DensityEstimation()``.
    min_sample_size : int
        Minimum number of valid obs and cur values in an outer window. Windows with fewer are returned as missing. Default: ``10``.
    variable : str
        Variable for which the debiasing is done. Default: ``"unknown"``.
    reasonable_physical_range : Optional[list]
        Reasonable physical range of the variable. Default: ``None``.
    """

    normalization: Normalization = attrs.field(
        default="zscore", converter=map_normalization_str_to_method
    )
    zero_inflated: bool = attrs.field(
        default=False, validator=attrs.validators.instance_of(bool)
    )
    windows: ClimatologicalWindows = attrs.field(
        factory=ClimatologicalWindows,
        validator=attrs.validators.instance_of(ClimatologicalWindows),
    )
    density: DensityEstimation = attrs.field(
        factory=DensityEstimation,
        validator=attrs.validators.instance_of(DensityEstimation),
    )
    min_sample_size: int = attrs.field(
        default=10, validator=[attrs.validators.instance_of(int), attrs.validators.ge(2)]
    )

    # ----- Constructors ----- #
    @classmethod
    def from_variable(cls, variable: Union[str, Variable], **kwargs):
        return super()._from_variable(
            cls, variable, default_settings, experimental_default_settings, **kwargs
        )

    @classmethod
    def for_precipitation(cls, exponent: float = 1 / 3, **kwargs):
        """
        Instanciates the class for precipitation: power normalization with the given exponent and drizzle correction.

        Parameters
        ----------
        exponent : float
            Exponent of the power normalization. Default: ``1/3``.
        **kwargs:
            All other class attributes that shall be set and where the standard values shall be overwritten.
        """
        return cls.from_variable("pr", normalization=Power(exponent=exponent), **kwargs)

    # ----- Helpers ----- #
    def _build_or_check_window_index_set(self, name, time, window_index_set):
        if window_index_set is None:
            return self.windows.build(time)
        if not isinstance(window_index_set, WindowIndexSet):
            raise TypeError(
                "windows_%s needs to be a WindowIndexSet built by ClimatologicalWindows.build" % name
            )
        if window_index_set.names != self.windows.names:
            raise ConfigurationError(
                "Window index set for %s has windows %s, but the debiaser uses %s"
                % (name, window_index_set.names, self.windows.names)
            )
        return window_index_set

    @staticmethod
    def _get_time_arrays(obs, cur, fut, time_obs, time_cur, time_fut):
        if time_obs is None or time_cur is None or time_fut is None:
            warnings.warn(
                "Time information is not given for all of obs, cur, fut. Consecutive days are assumed. Make sure this matches your data and the days_per_year of the windows.",
                stacklevel=3,
            )
        return infer_and_create_time_arrays_if_not_given(
            obs, cur, fut, time_obs, time_cur, time_fut
        )

    # ----- Apply location function ----- #
    def apply_location(
        self,
        obs: np.ndarray,
        cur: np.ndarray,
        fut: np.ndarray,
        time_obs: Optional[np.ndarray] = None,
        time_cur: Optional[np.ndarray] = None,
        time_fut: Optional[np.ndarray] = None,
        windows_obs: Optional[WindowIndexSet] = None,
        windows_cur: Optional[WindowIndexSet] = None,
        windows_fut: Optional[WindowIndexSet] = None,
    ) -> dict:
        """
        Applies KDDM at one location.

        Parameters
        ----------
        obs, cur, fut : np.ndarray
            1-dimensional arrays of observations and of the simulation during the current and future period.
        time_obs, time_cur, time_fut : Optional[np.ndarray]
            Time values in days (see :py:func:`kddm.utils.time_offsets_from_dates`). If not given, consecutive days are assumed.
        windows_obs, windows_cur, windows_fut : Optional[WindowIndexSet]
            Prebuilt window index sets for the time axes, shared across locations. Built from ``windows`` if not given.

        Returns
        -------
        dict
            ``{"obs": ..., "cur": ..., "fut": ...}`` with corrected arrays of the input lengths. Windows that could not be corrected are missing in all three, dry days of zero-inflated variables included. A dataset without values in a window (eg. fut shorter than a year) does not prevent the others from being corrected.
        """
        obs, cur, fut = (np.asarray(x, dtype=float) for x in (obs, cur, fut))
        time_obs, time_cur, time_fut = self._get_time_arrays(
            obs, cur, fut, time_obs, time_cur, time_fut
        )
        check_time_information_and_raise_error(
            obs, cur, fut, time_obs, time_cur, time_fut
        )

        if self.zero_inflated:
            obs, cur, fut = dedrizzle(obs, cur, fut)
            (obs, zeros_obs), (cur, zeros_cur), (fut, zeros_fut) = (
                unzero(x) for x in (obs, cur, fut)
            )

        values = dict(zip(DATASET_NAMES, (obs, cur, fut)))
        index_sets = {
            name: self._build_or_check_window_index_set(name, time, index_set)
            for name, time, index_set in zip(
                DATASET_NAMES,
                (time_obs, time_cur, time_fut),
                (windows_obs, windows_cur, windows_fut),
            )
        }
        sliced = {
            name: index_sets[name].slice(values[name], outer=True)
            for name in DATASET_NAMES
        }

        corrected_inner = {name: {} for name in DATASET_NAMES}
        failed_inner = {name: {} for name in DATASET_NAMES}
        for window in self.windows.names:
            segment_ids = {
                name: index_sets[name].segment_ids(window) for name in DATASET_NAMES
            }
            corrected, success = _correct_window(
                {
                    name: _split_into_segments(sliced[name][window], segment_ids[name])
                    for name in DATASET_NAMES
                },
                normalization=self.normalization,
                density=self.density,
                min_sample_size=self.min_sample_size,
            )
            for name in DATASET_NAMES:
                corrected_outer = _join_segments(corrected[name], segment_ids[name])
                corrected_inner[name][window] = corrected_outer[
                    index_sets[name].inner_mask_in_outer(window)
                ]
                failed_inner[name][window] = np.full(
                    corrected_inner[name][window].size, not success
                )

        output = {
            name: index_sets[name].unslice(corrected_inner[name])
            for name in DATASET_NAMES
        }

        if self.zero_inflated:
            # dry days of windows that could not be corrected stay missing
            output = {
                name: rezero(
                    output[name], zero_mask & ~index_sets[name].unslice(failed_inner[name])
                )
                for name, zero_mask in zip(DATASET_NAMES, (zeros_obs, zeros_cur, zeros_fut))
            }
        return output

    def apply(
        self,
        obs: np.ndarray,
        cur: np.ndarray,
        fut: np.ndarray,
        time_obs: Optional[np.ndarray] = None,
        time_cur: Optional[np.ndarray] = None,
        time_fut: Optional[np.ndarray] = None,
        progressbar: bool = True,
        parallel: bool = False,
        nr_processes: int = 4,
        failsafe: bool = False,
    ) -> dict:
        """
        Applies KDDM onto gridded data. The window index sets are built once and shared by all locations.

        Parameters
        ----------
        obs, cur, fut : np.ndarray
            3-dimensional arrays ``[t, x, y]`` of observations and of the simulation during the current and future period. Spatial dimensions need to agree.
        time_obs, time_cur, time_fut : Optional[np.ndarray]
            1-dimensional time values in days. If not given, consecutive days are assumed.
        progressbar : bool
            Whether a progressbar shall be shown. Default: ``True``.
        parallel : bool
            Whether the locations are processed in parallel. Default: ``False``.
        nr_processes : int
            Number of processes for parallel execution. Default: 4.
        failsafe : bool
            Whether an error at one location is logged and returns ``np.nan`` there instead of raising. Default: ``False``.

        Returns
        -------
        dict
            ``{"obs": ..., "cur": ..., "fut": ...}`` with 3-dimensional arrays of the input shapes.
        """
        # type and shape checks of the data follow in Debiaser.apply
        lengths = [np.empty(np.shape(x)[:1]) for x in (obs, cur, fut)]
        time_obs, time_cur, time_fut = self._get_time_arrays(
            *lengths, time_obs, time_cur, time_fut
        )
        check_time_information_and_raise_error(
            *lengths, time_obs, time_cur, time_fut
        )
        time_obs, time_cur, time_fut = (
            np.asarray(time, dtype=float) for time in (time_obs, time_cur, time_fut)
        )
        windows_obs, windows_cur, windows_fut = (
            self.windows.build(time) for time in (time_obs, time_cur, time_fut)
        )

        return super().apply(
            obs,
            cur,
            fut,
            progressbar=progressbar,
            parallel=parallel,
            nr_processes=nr_processes,
            failsafe=failsafe,
            time_obs=time_obs,
            time_cur=time_cur,
            time_fut=time_fut,
            windows_obs=windows_obs,
            windows_cur=windows_cur,
            windows_fut=windows_fut,
        )

    # ----- Provenance ----- #
    def provenance(self, **sources) -> dict:
        """
        Returns a dict describing the bias correction, eg. to be written as metadata next to the output.

        Parameters
        ----------
        **sources:
            Identifiers of the input data, eg. ``obs="E-OBS v25"``, added under ``"sources"``.
        """
        provenance = {
            "method": "KDDM",
            "kddm_version": __version__,
            "variable": self.variable,
            "normalization": self.normalization.name,
            "zero_inflated": self.zero_inflated,
            "window_count": self.windows.window_count,
            "inner_window_length": self.windows.inner_length,
            "outer_window_length": self.windows.outer_length,
            "days_per_year": self.windows.days_per_year,
            "min_sample_size": self.min_sample_size,
            "density": attrs.asdict(self.density),
            "sources": dict(sources),
        }
        if isinstance(self.normalization, Power):
            provenance["power_exponent"] = self.normalization.exponent
        return provenance
