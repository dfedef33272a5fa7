# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

import warnings
from abc import ABC, abstractmethod
from functools import partial
from multiprocessing import Pool
from typing import Optional, Union

import attrs
import numpy as np
from tqdm import tqdm

from ..utils import get_library_logger
from ..variables import Variable, map_variable_str_to_variable_class

DATASET_NAMES = ("obs", "cur", "fut")


@attrs.define(slots=False, kw_only=True)
class Debiaser(ABC):
    """
    A generic debiaser meant for subclassing. Provides input checks, instantiation from variable defaults and the loop over grid cells.

    Child classes need to implement :py:func:`from_variable` and :py:func:`apply_location`:

    - :py:func:`apply_location`: applies an initialised debiaser at one location. Arguments are 1d-vectors of obs, cur and fut representing observations, and climate model values during the current (reference) period and the future period. It returns a dict with the corrected ``"obs"``, ``"cur"`` and ``"fut"`` vectors. ``kwargs`` passed to :py:func:`apply` are passed down to it.

    - :py:func:`from_variable`: initialises a debiaser with default arguments given a climatic variable either as ``str`` or member of the :py:class:`Variable`-class. ``kwargs`` overwrite default arguments for this variable. The helper :py:func:`_from_variable` does this given dicts of default settings keyed by :py:class:`Variable` objects.

    :py:func:`apply` maps :py:func:`apply_location` over all locations:

    >>> debiaser = KDDM.from_variable("tas")
    >>> corrected = debiaser.apply(obs, cur, fut)
    >>> corrected["fut"]

    Attributes
    ----------
    variable : str
        Variable that is meant to be debiased. Default: ``"unknown"``.
    reasonable_physical_range : Optional[list]
        Reasonable physical range of the variable in the form ``[lower_bound, upper_bound]``. Warnings are raised if inputs or outputs fall outside. Default: ``None``.
    """

    variable: str = attrs.field(
        default="unknown", validator=attrs.validators.instance_of(str), eq=False
    )
    reasonable_physical_range: Optional[list] = attrs.field(default=None, eq=False)

    @reasonable_physical_range.validator
    def _validate_reasonable_physical_range(self, attribute, value):
        if value is not None:
            if len(value) != 2:
                raise ValueError(
                    "reasonable_physical_range should have only a lower and upper physical bound"
                )
            if not all(isinstance(elem, (int, float)) for elem in value):
                raise ValueError(
                    "reasonable_physical_range needs to be a list of floats"
                )
            if not value[0] < value[1]:
                raise ValueError(
                    "lower bounds needs to be smaller than upper bound in reasonable_physical_range"
                )

    # ----- Constructors ----- #
    def _from_variable(
        child_class,
        variable: Union[str, Variable],
        default_settings_variable: dict,
        experimental_default_setting_variable: dict = {},
        default_settings_general: dict = {},
        **kwargs,
    ):
        """
        Instanciates a class given by ``child_class`` from a variable: either a string referring to a standard variable name following the CMIP convention or a :py:class:`Variable` object.

        Parameters
        ----------
        child_class:
            Child class of debiaser to be instantiated.
        variable : Union[str, Variable]
            String or Variable object referring to standard meteorological variable for which default settings can be used.
        default_settings_variable : dict
            Dict of default settings for each variables. Has :py:class:`Variable`-objects as keys (eg. ``tas``, ``pr``) and dicts as values which map to the class parameters.
        experimental_default_setting_variable : dict
            Dict of experimental default settings for variables. Same structure as ``default_settings_variable``, keys should be mutually exclusive with those. A warning is thrown if they are used.
        default_settings_general : dict
            Dict of general default settings (not variable specific). Settings in here get overwritten by the variable specific ones. Default: `{}` (empty dict).
        **kwargs:
            All other class attributes that shall be set and where the standard values for variable shall be overwritten.
        """

        logger = get_library_logger()

        if (
            len(
                intersection := (
                    default_settings_variable.keys()
                    & experimental_default_setting_variable.keys()
                )
            )
            != 0
        ):
            logger.warning(
                f"Default and experimental default settings are not mutually exclusive for variables: {intersection} in debiaser {child_class.__name__}. Standard default settings are taken, but please review!"
            )

        if not isinstance(variable, Variable):
            variable_object = map_variable_str_to_variable_class(variable)
        else:
            variable_object = variable

        if variable_object in default_settings_variable.keys():
            variable_settings = default_settings_variable[variable_object]
        else:
            if variable_object in experimental_default_setting_variable.keys():
                warnings.warn(
                    f"The default settings for variable {variable} in debiaser {child_class.__name__} are currently still experimental. Please review the results with care!",
                    stacklevel=2,
                )
                variable_settings = experimental_default_setting_variable[
                    variable_object
                ]
            else:
                raise ValueError(
                    f"Unfortunately currently no default settings exist for the variable {variable} in the debiaser {child_class.__name__}. You can set the required class parameters manually by using the class constructor."
                )

        parameters = {
            "variable": variable_object.name,
            "reasonable_physical_range": variable_object.reasonable_physical_range,
            **default_settings_general,
            **variable_settings,
        }
        return child_class(**{**parameters, **kwargs})

    @classmethod
    @abstractmethod
    def from_variable(cls, variable: Union[str, Variable], **kwargs):
        """
        Instanciates the class from a variable: either a string referring to a standard variable name or a :py:class:`Variable` object.

        Parameters
        ----------
        variable : Union[str, Variable]
            String or Variable object referring to standard meteorological variable for which default settings can be used.
        **kwargs:
            All other class attributes that shall be set and where the standard values for variable shall be overwritten.

        Returns
        -------
        Debiaser
            Instance of the class for the given variable.
        """
        raise NotImplementedError(
            f"abstract classmethod from_variable of debiaser-class is not implemented class {cls.__name__} inheriting from debiaser-class. It needs to be overwritten in the child class."
        )

    # ----- Helpers: Input checks ----- #

    @staticmethod
    def _is_correct_type(x):
        return isinstance(x, np.ndarray)

    @staticmethod
    def _has_correct_shape(x):
        return x.ndim == 3

    @staticmethod
    def _have_same_spatial_shape(obs, cur, fut):
        return obs.shape[1:] == cur.shape[1:] and obs.shape[1:] == fut.shape[1:]

    @staticmethod
    def _contains_inf_nan(x):
        return np.any(np.logical_or(np.isnan(x), np.isinf(x)))

    def _not_if_or_nan_vals_outside_reasonable_physical_range(self, x):
        if self.reasonable_physical_range is not None:
            return not np.all(
                (x >= self.reasonable_physical_range[0])
                & (x <= self.reasonable_physical_range[1])
                | np.isinf(x)
                | np.isnan(x)
            )
        return False

    @staticmethod
    def _has_float_dtype(x):
        return np.issubdtype(x.dtype, np.floating)

    @staticmethod
    def _is_masked_array(x):
        return isinstance(x, np.ma.core.MaskedArray)

    @staticmethod
    def _masked_array_contains_invalid_values(x):
        return np.any(x.mask)

    # ----- Helpers: Input converters ----- #

    @staticmethod
    def _convert_to_float_dtype(x):
        try:
            return x.astype(float)
        except Exception:
            raise ValueError(
                "Conversion to float not possible. Please use float datatype for obs, cur, fut."
            )

    @staticmethod
    def _fill_masked_array_with_nan(x):
        return x.filled(np.nan)

    # ----- Input checks ----- #

    def _check_input_and_convert_if_possible(self, name, x):
        if not Debiaser._is_correct_type(x):
            raise TypeError("Wrong type for %s. Needs to be np.ndarray" % name)

        if Debiaser._is_masked_array(x):
            if Debiaser._masked_array_contains_invalid_values(x):
                warnings.warn(
                    "%s is a masked array and contains cells with invalid data. For computation the masked values are filled in by nan-values and treated as missing."
                    % name,
                    stacklevel=3,
                )
            else:
                warnings.warn(
                    "%s is a masked array, but contains no invalid data. It is converted to a normal numpy array."
                    % name,
                    stacklevel=3,
                )
            if not Debiaser._has_float_dtype(x):
                x = x.astype(float)
            x = Debiaser._fill_masked_array_with_nan(x)

        if not Debiaser._has_float_dtype(x):
            warnings.warn(
                "%s does not have a float dtype. Attempting conversion." % name,
                stacklevel=3,
            )
            x = Debiaser._convert_to_float_dtype(x)

        if not Debiaser._has_correct_shape(x):
            raise ValueError("%s needs to have 3 dimensions: time, x, y" % name)

        if Debiaser._contains_inf_nan(x):
            warnings.warn(
                "%s contains inf or nan values. nan values are treated as missing and windows without enough valid values are returned as missing."
                % name,
                stacklevel=3,
            )

        if self._not_if_or_nan_vals_outside_reasonable_physical_range(x):
            warnings.warn(
                "%s contains values outside the reasonable physical range of %s for the variable: %s. This might be due to different units of to data problems. It is recommended to check the input."
                % (name, self.reasonable_physical_range, self.variable),
                stacklevel=3,
            )
        return x

    def _check_inputs_and_convert_if_possible(self, obs, cur, fut):
        obs, cur, fut = (
            self._check_input_and_convert_if_possible(name, x)
            for name, x in zip(DATASET_NAMES, (obs, cur, fut))
        )

        if not Debiaser._have_same_spatial_shape(obs, cur, fut):
            raise ValueError(
                "obs, cur, fut need to have same (number of) spatial dimensions. The arrays of obs, cur and fut are assumed to have the following structure: [t, x, y] where t is the time dimension and x, y are spatial ones."
            )

        return obs, cur, fut

    def _check_output(self, output):
        for name, x in output.items():
            if Debiaser._contains_inf_nan(x):
                warnings.warn(
                    "The debiaser output for %s contains inf or nan values. This might be due to missing values inside the input, or to windows with too few valid values. It is recommended to check the output carefully."
                    % name,
                    stacklevel=3,
                )

            if self._not_if_or_nan_vals_outside_reasonable_physical_range(x):
                warnings.warn(
                    "The debiaser output for %s contains values outside the reasonable physical range of %s for the variable: %s. It is recommended to check the output carefully."
                    % (name, self.reasonable_physical_range, self.variable),
                    stacklevel=3,
                )

    # ----- Helpers ----- #

    @staticmethod
    def _run_func_on_location_and_catch_error(
        obs, cur, fut, func, failsafe=False, **kwargs
    ):
        # obs, cur, fut need to be the first arguments because pool.starmap is used.
        try:
            return func(obs, cur, fut, **kwargs)
        except Exception as e:
            if failsafe:
                logger = get_library_logger()
                logger.error(
                    "kddm encountered an error at runtime. Please check the output carefully!"
                )
                logger.error(e)
                return {
                    name: np.full(x.shape, np.nan)
                    for name, x in zip(DATASET_NAMES, (obs, cur, fut))
                }
            else:
                raise

    @staticmethod
    def _empty_output(obs, cur, fut):
        return {
            name: np.empty(x.shape, dtype=x.dtype)
            for name, x in zip(DATASET_NAMES, (obs, cur, fut))
        }

    @staticmethod
    def _fill_output_location(output, result, i, j):
        for name in DATASET_NAMES:
            output[name][:, i, j] = result[name]

    @staticmethod
    def map_over_locations(
        func,
        obs,
        cur,
        fut,
        progressbar=True,
        failsafe=False,
        **kwargs,
    ):
        output = Debiaser._empty_output(obs, cur, fut)

        indices = np.ndindex(obs.shape[1:])
        if progressbar:
            indices = tqdm(indices, total=np.prod(obs.shape[1:]))

        for i, j in indices:
            result = Debiaser._run_func_on_location_and_catch_error(
                obs[:, i, j],
                cur[:, i, j],
                fut[:, i, j],
                func,
                failsafe=failsafe,
                **kwargs,
            )
            Debiaser._fill_output_location(output, result, i, j)
        return output

    @staticmethod
    def parallel_map_over_locations(
        func,
        obs,
        cur,
        fut,
        nr_processes=4,
        failsafe=False,
        **kwargs,
    ):
        indices = [(i, j) for i in range(obs.shape[1]) for j in range(obs.shape[2])]
        with Pool(processes=nr_processes) as pool:
            result = pool.starmap(
                partial(
                    Debiaser._run_func_on_location_and_catch_error,
                    func=func,
                    failsafe=failsafe,
                    **kwargs,
                ),
                [(obs[:, i, j], cur[:, i, j], fut[:, i, j]) for (i, j) in indices],
            )

        output = Debiaser._empty_output(obs, cur, fut)
        for k, (i, j) in enumerate(indices):
            Debiaser._fill_output_location(output, result[k], i, j)

        return output

    # ----- Apply functions ----- #

    @abstractmethod
    def apply_location(self, obs, cur, fut, **kwargs):
        """
        Applies the debiaser at one location.

        Parameters
        ----------
        obs : np.ndarray
            1-dimensional numpy array of observations of the meteorological variable at one location.
        cur : np.ndarray
            1-dimensional numpy array of values of the climate model during the current (reference) period at one location.
        fut : np.ndarray
            1-dimensional numpy array of values of the climate model during the future period at one location.

        Returns
        -------
        dict
            ``{"obs": ..., "cur": ..., "fut": ...}`` with 1-dimensional arrays of the same lengths as the inputs.
        """
        pass

    def apply(
        self,
        obs,
        cur,
        fut,
        progressbar=True,
        parallel=False,
        nr_processes=4,
        failsafe=False,
        **kwargs,
    ):
        """
        Applies the debiaser onto given data.

        Parameters
        ----------
        obs : np.ndarray
            3-dimensional numpy array of observations of the meteorological variable. The first dimension should correspond to temporal steps and the 2nd and 3rd one to locations.
        cur : np.ndarray
            3-dimensional numpy array of climate model values during the current (reference) period. Shape in the 2nd and 3rd dimension needs to be the same as for obs.
        fut : np.ndarray
            3-dimensional numpy array of climate model values during the future period. Shape in the 2nd and 3rd dimension needs to be the same as for obs.
        progressbar : bool
            Whether a progressbar shall be shown to indicate the debiaser status. Default: ``True``.
        parallel : bool
            Whether the debiasing shall be executed in parallel. No progressbar is shown in this case. Default: ``False``.
        nr_processes : int
            Number of processes for parallel code execution. Default: 4.
        failsafe : bool
            Whether execution shall run in a failsafe mode. Debiasing then continues if it encounters an error at one location and returns ``np.nan`` at this location. Default: ``False``.
        **kwargs:
            Passed down to :py:func:`apply_location`.

        Returns
        -------
        dict
            ``{"obs": ..., "cur": ..., "fut": ...}`` with 3-dimensional arrays of the same shapes as the inputs.
        """

        logger = get_library_logger()
        logger.info("----- Running debiasing for variable: %s -----" % self.variable)

        obs, cur, fut = self._check_inputs_and_convert_if_possible(obs, cur, fut)

        if parallel:
            if progressbar:
                warnings.warn("progressbar argument is ignored when parallel = True.")

            output = Debiaser.parallel_map_over_locations(
                self.apply_location,
                obs=obs,
                cur=cur,
                fut=fut,
                nr_processes=nr_processes,
                failsafe=failsafe,
                **kwargs,
            )
        else:
            output = Debiaser.map_over_locations(
                self.apply_location,
                obs=obs,
                cur=cur,
                fut=fut,
                progressbar=progressbar,
                failsafe=failsafe,
                **kwargs,
            )

        self._check_output(output)

        return output
