# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

"""normalization module - per-segment transforms applied before distribution mapping and their inverses"""

import warnings
from abc import ABC, abstractmethod
from typing import Sequence, Tuple, Union

import attrs
import numpy as np

from ..errors import DegenerateInputError

# ----- Parameters ----- #


@attrs.define(frozen=True)
class IdentityParams:
    """Parameters of :py:class:`NoNormalization`: there are none."""


@attrs.define(frozen=True)
class ZScoreParams:
    """
    Parameters of a z-score normalization.

    Attributes
    ----------
    mean : float
        Mean of the non-missing values of the segment.
    sd : float
        Sample standard deviation of the non-missing values of the segment.
    """

    mean: float = attrs.field(converter=float)
    sd: float = attrs.field(converter=float)


@attrs.define(frozen=True)
class PowerParams:
    """
    Parameters of a power normalization ``y = (x + shift) ** exponent``.

    Attributes
    ----------
    exponent : float
        Exponent of the transform.
    shift : float
        Shift added before taking the power.
    """

    exponent: float = attrs.field(converter=float)
    shift: float = attrs.field(converter=float)


@attrs.define(frozen=True, eq=False)
class NormalizedSegment:
    """
    A normalized vector together with the parameters needed to invert the transform.

    Attributes
    ----------
    values : np.ndarray
        Transformed values, missing values stay ``np.nan``.
    params : Union[IdentityParams, ZScoreParams, PowerParams]
        Parameters of the transform fitted on this segment.
    """

    values: np.ndarray
    params: Union[IdentityParams, ZScoreParams, PowerParams]


# ----- Normalization methods ----- #


class Normalization(ABC):
    """
    Abstract interface of a normalization method.

    A method fits parameters on a segment (:py:meth:`fit`), transforms values with them (:py:meth:`forward`) and inverts the transform, optionally composed with an affine correction ``(shift, scale)`` (:py:meth:`inverse`). :py:meth:`correction_factors` pools the parameters of several observed and simulated segments into that correction.

    The variants are :py:class:`NoNormalization`, :py:class:`ZScore` and :py:class:`Power`.

    Examples
    --------

    >>> segment = ZScore().normalize(np.array([1.0, 2.0, 3.0]))
    >>> segment.values
    array([-1.,  0.,  1.])
    >>> ZScore().inverse(segment.values, segment.params)
    array([1., 2., 3.])
    """

    name: str = "unknown"

    @abstractmethod
    def fit(self, x: np.ndarray):
        """
        Estimates the transform parameters on the non-missing values of x.

        Parameters
        ----------
        x : np.ndarray
            Values to fit on.

        Returns
        -------
        Parameters object of the method.
        """
        pass

    @abstractmethod
    def forward(self, x: np.ndarray, params) -> np.ndarray:
        """
        Transforms x using the given parameters.
        """
        pass

    @abstractmethod
    def inverse(
        self, y: np.ndarray, params, shift: float = 0.0, scale: float = 1.0
    ) -> np.ndarray:
        """
        Inverts the transform and applies an affine correction.

        Parameters
        ----------
        y : np.ndarray
            Transformed values.
        params :
            Parameters the values were transformed with.
        shift : float
            Additive correction. Default: ``0``.
        scale : float
            Multiplicative correction. Default: ``1``.
        """
        pass

    @abstractmethod
    def correction_factors(
        self, obs_params: Sequence, cur_params: Sequence
    ) -> Tuple[float, float]:
        """
        Pools the parameters of observed and current segments into a correction ``(shift, scale)`` for :py:meth:`inverse`.
        """
        pass

    def normalize(self, x: np.ndarray) -> NormalizedSegment:
        """Fits the transform on x and returns the transformed values together with the parameters."""
        x = np.asarray(x, dtype=float)
        params = self.fit(x)
        return NormalizedSegment(values=self.forward(x, params), params=params)


@attrs.define
class NoNormalization(Normalization):
    """Identity transform."""

    name = "none"

    def fit(self, x):
        return IdentityParams()

    def forward(self, x, params):
        return np.array(x, dtype=float)

    def inverse(self, y, params, shift=0.0, scale=1.0):
        return np.asarray(y, dtype=float) * scale + shift

    def correction_factors(self, obs_params, cur_params):
        return 0.0, 1.0


@attrs.define
class ZScore(Normalization):
    """
    Z-score transform ``y = (x - mean) / sd`` on the non-missing values.

    The pooled correction shifts by the difference of the mean observed and current segment means and scales by the ratio of the mean standard deviations. Pooling over segments avoids forcing the current period to track the interannual variability of the observations.
    """

    name = "zscore"

    def fit(self, x):
        x = np.asarray(x, dtype=float)
        valid = x[~np.isnan(x)]
        if valid.size == 0:
            raise DegenerateInputError("All values missing: z-score undefined")
        if valid.size < 2:
            raise DegenerateInputError(
                "Only one non-missing value: standard deviation undefined"
            )
        sd = np.std(valid, ddof=1)
        if not np.isfinite(sd) or sd == 0:
            raise DegenerateInputError("Zero variance: z-score undefined")
        return ZScoreParams(mean=np.mean(valid), sd=sd)

    def forward(self, x, params):
        return (np.asarray(x, dtype=float) - params.mean) / params.sd

    def inverse(self, y, params, shift=0.0, scale=1.0):
        return np.asarray(y, dtype=float) * params.sd * scale + params.mean + shift

    def correction_factors(self, obs_params, cur_params):
        shift = np.mean([p.mean for p in obs_params]) - np.mean(
            [p.mean for p in cur_params]
        )
        scale = np.mean([p.sd for p in obs_params]) / np.mean(
            [p.sd for p in cur_params]
        )
        return float(shift), float(scale)


@attrs.define
class Power(Normalization):
    """
    Power transform ``y = (x + shift) ** exponent`` for non-negative, typically zero-inflated data such as precipitation.

    The exponent is configuration and not estimated from the data. The transform does not remove location or scale, so the distribution map corrects them and the pooled correction is the identity.

    Attributes
    ----------
    exponent : float
        Exponent of the transform. Default: ``1/3`` (cube root).
    shift : float
        Shift added before taking the power. Default: ``0``.
    """

    name = "power"

    exponent: float = attrs.field(
        default=1 / 3,
        converter=float,
        validator=attrs.validators.gt(0),
    )
    shift: float = attrs.field(
        default=0.0, converter=float, validator=attrs.validators.ge(0)
    )

    def fit(self, x):
        x = np.asarray(x, dtype=float)
        if np.all(np.isnan(x)):
            raise DegenerateInputError("All values missing: power transform undefined")
        return PowerParams(exponent=self.exponent, shift=self.shift)

    def forward(self, x, params):
        shifted = np.asarray(x, dtype=float) + params.shift
        if np.any(shifted < 0):
            raise ValueError(
                "Power normalization requires non-negative values (after adding shift)"
            )
        return shifted**params.exponent

    def inverse(self, y, params, shift=0.0, scale=1.0):
        # Mapped values can extrapolate below the origin of the transform
        y = np.maximum(np.asarray(y, dtype=float), 0)
        return (y ** (1 / params.exponent) - params.shift) * scale + shift

    def correction_factors(self, obs_params, cur_params):
        return 0.0, 1.0


# ----- Functional interface ----- #

NORMALIZATION_METHODS = {
    NoNormalization.name: NoNormalization,
    ZScore.name: ZScore,
    Power.name: Power,
}


def map_normalization_str_to_method(method: Union[str, Normalization]) -> Normalization:
    """
    Returns a normalization method given its name: one of ``["none", "zscore", "power"]``. Instances are returned unchanged.
    """
    if isinstance(method, Normalization):
        return method
    if method in NORMALIZATION_METHODS:
        return NORMALIZATION_METHODS[method]()
    raise ValueError(
        "%s not supported as normalization method. Needs to be one of %s"
        % (method, list(NORMALIZATION_METHODS.keys()))
    )


def _method_for_params(params) -> Normalization:
    if isinstance(params, ZScoreParams):
        return ZScore()
    if isinstance(params, PowerParams):
        return Power(exponent=params.exponent, shift=params.shift)
    if isinstance(params, IdentityParams):
        return NoNormalization()
    raise TypeError("Unknown normalization parameters of type %s" % type(params))


def normalize(x: np.ndarray, method: Union[str, Normalization] = "zscore") -> NormalizedSegment:
    """
    Normalizes a vector with the given method.

    Parameters
    ----------
    x : np.ndarray
        1-dimensional array, missing values as ``np.nan``.
    method : Union[str, Normalization]
        One of ``["none", "zscore", "power"]`` or a :py:class:`Normalization` instance. Default: ``"zscore"``.

    Returns
    -------
    NormalizedSegment
        Transformed values and the parameters to invert them.
    """
    return map_normalization_str_to_method(method).normalize(x)


def denormalize(
    transformed: np.ndarray, params, shift: float = 0.0, scale: float = 1.0
) -> np.ndarray:
    """
    Inverts :py:func:`normalize` for the method the parameters belong to, composed with an affine correction.

    ``denormalize(seg.values, seg.params)`` returns the original values for ``seg = normalize(x, method)``.

    Parameters
    ----------
    transformed : np.ndarray
        Transformed values.
    params : Union[IdentityParams, ZScoreParams, PowerParams]
        Parameters returned by :py:func:`normalize`.
    shift : float
        Additive correction. Default: ``0``.
    scale : float
        Multiplicative correction. Default: ``1``.
    """
    if not np.isfinite(shift) or not np.isfinite(scale):
        warnings.warn(
            "Non-finite correction factors (shift = %s, scale = %s). The output will contain nan or inf values."
            % (shift, scale),
            stacklevel=2,
        )
    return _method_for_params(params).inverse(transformed, params, shift, scale)
