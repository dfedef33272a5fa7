# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

"""math_helpers module - kernel density estimation and the distribution mapper"""

from typing import Sequence, Union

import attrs
import numpy as np
import scipy.integrate
import scipy.interpolate
import scipy.signal
import scipy.stats
from statsmodels.nonparametric import bandwidths

from ..errors import DegenerateInputError, InsufficientDataError, NonMonotoneMapError

BANDWIDTH_METHODS = {
    "silverman": bandwidths.bw_silverman,
    "scott": bandwidths.bw_scott,
    "normal_reference": bandwidths.bw_normal_reference,
}


def _validate_bandwidth(instance, attribute, value):
    if isinstance(value, str):
        if value not in BANDWIDTH_METHODS:
            raise ValueError(
                "bandwidth needs to be a positive float or one of %s"
                % list(BANDWIDTH_METHODS.keys())
            )
    elif isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValueError(
            "bandwidth needs to be a positive float or one of %s"
            % list(BANDWIDTH_METHODS.keys())
        )


@attrs.define
class DensityEstimation:
    """
    Settings of the binned kernel density estimation and of the distribution map built from it.

    Attributes
    ----------
    bandwidth : Union[str, float]
        Gaussian kernel bandwidth: a rule of thumb (one of ``["silverman", "scott", "normal_reference"]``, computed by :py:mod:`statsmodels.nonparametric.bandwidths`) or a fixed positive value. Default: ``"silverman"``.
    adjust : float
        Multiplier applied to the bandwidth. Default: ``1``.
    gridsize : int
        Number of points of the density grid shared by all samples. Default: ``512``.
    cut : float
        Padding of the grid beyond the sample range, in bandwidths. Avoids truncating the density at the boundaries. Default: ``3``.
    n_control_points : int
        Number of (x, y) points the monotone spline of a :py:class:`DistributionMap` is fitted through. Few points compared to the density grid smooth out sampling noise. Default: ``64``.
    monotone_tolerance : float
        Relative tolerance for decreases when checking a fitted map for monotonicity. Default: ``1e-9``.
    """

    bandwidth: Union[str, float] = attrs.field(
        default="silverman", validator=_validate_bandwidth
    )
    adjust: float = attrs.field(
        default=1.0, converter=float, validator=attrs.validators.gt(0)
    )
    gridsize: int = attrs.field(
        default=512,
        validator=[attrs.validators.instance_of(int), attrs.validators.ge(16)],
    )
    cut: float = attrs.field(
        default=3.0, converter=float, validator=attrs.validators.ge(0)
    )
    n_control_points: int = attrs.field(
        default=64,
        validator=[attrs.validators.instance_of(int), attrs.validators.ge(4)],
    )
    monotone_tolerance: float = attrs.field(
        default=1e-9, converter=float, validator=attrs.validators.ge(0)
    )

    def get_bandwidth(self, x: np.ndarray) -> float:
        """Kernel bandwidth for a sample without missing values."""
        if isinstance(self.bandwidth, str):
            bandwidth = BANDWIDTH_METHODS[self.bandwidth](x)
        else:
            bandwidth = self.bandwidth
        bandwidth = float(bandwidth) * self.adjust
        if not np.isfinite(bandwidth) or bandwidth <= 0:
            raise DegenerateInputError(
                "Kernel bandwidth is %s: sample has zero spread" % bandwidth
            )
        return bandwidth


def _drop_missing(x: np.ndarray) -> np.ndarray:
    x = np.asarray(x, dtype=float).ravel()
    return x[~np.isnan(x)]


def _binned_kde(x: np.ndarray, bandwidth: float, grid: np.ndarray) -> np.ndarray:
    delta = grid[1] - grid[0]

    # Linear binning: each value splits its weight between the two neighbouring grid points
    position = (x - grid[0]) / delta
    left = np.clip(np.floor(position).astype(int), 0, grid.size - 2)
    weight_right = position - left
    counts = np.bincount(left, 1 - weight_right, minlength=grid.size) + np.bincount(
        left + 1, weight_right, minlength=grid.size
    )

    half_width = min(int(np.ceil(4 * bandwidth / delta)), grid.size - 1)
    kernel = scipy.stats.norm.pdf(
        np.arange(-half_width, half_width + 1) * delta, scale=bandwidth
    )
    density = scipy.signal.fftconvolve(counts, kernel, mode="same") / x.size

    # fft roundoff can produce tiny negative densities
    return np.maximum(density, 0)


def estimate_density(samples: Sequence[np.ndarray], density: DensityEstimation = None):
    """
    Estimates the probability densities of several samples by binned Gaussian kernel density estimation on one shared grid.

    The grid spans the union of the sample ranges, padded by ``density.cut`` bandwidths of the respective sample. Missing values are ignored.

    Examples
    --------

    >>> grid, (f_x, f_y) = estimate_density([np.random.normal(size=1000), np.random.normal(loc=2, size=500)])

    Parameters
    ----------
    samples : Sequence[np.ndarray]
        Samples to estimate the densities of.
    density : DensityEstimation
        Estimation settings. Default: ``DensityEstimation()``.

    Returns
    -------
    tuple
        The grid and a list with one density array on that grid per sample.
    """
    density = DensityEstimation() if density is None else density

    samples = [_drop_missing(x) for x in samples]
    for x in samples:
        if x.size < 2:
            raise InsufficientDataError(
                "At least two non-missing values are needed for density estimation, got %s"
                % x.size
            )
    bandwidths_samples = [density.get_bandwidth(x) for x in samples]

    lower = min(x.min() - density.cut * h for x, h in zip(samples, bandwidths_samples))
    upper = max(x.max() + density.cut * h for x, h in zip(samples, bandwidths_samples))
    grid = np.linspace(lower, upper, density.gridsize)

    return grid, [_binned_kde(x, h, grid) for x, h in zip(samples, bandwidths_samples)]


def cdf_from_density(grid: np.ndarray, density: np.ndarray) -> np.ndarray:
    """
    Integrates a density on a grid into a CDF with the trapezoid rule. The result is monotone and spans [0, 1].
    """
    cdf = scipy.integrate.cumulative_trapezoid(np.maximum(density, 0), grid, initial=0)
    if not cdf[-1] > 0:
        raise DegenerateInputError("Density integrates to zero")
    return np.clip(np.maximum.accumulate(cdf / cdf[-1]), 0, 1)


def inverse_cdf(p: np.ndarray, grid: np.ndarray, cdf: np.ndarray) -> np.ndarray:
    """Inverts a gridded CDF by linear interpolation, using only points where the CDF strictly increases."""
    strictly_increasing = np.concatenate([[True], np.diff(cdf) > 0])
    return np.interp(p, cdf[strictly_increasing], grid[strictly_increasing])


@attrs.define(frozen=True, eq=False)
class DistributionMap:
    """
    Monotone transfer function mapping values from a source distribution onto a target distribution.

    It is represented by (x, y) control points and a monotone cubic Hermite spline (:py:class:`scipy.interpolate.PchipInterpolator`) through them. Outside the control points the map continues linearly with the (non-negative) boundary slopes of the spline. Use :py:func:`build_map` to construct it.

    Attributes
    ----------
    x : np.ndarray
        Strictly increasing source values of the control points.
    y : np.ndarray
        Non-decreasing mapped values of the control points.
    spline : scipy.interpolate.PchipInterpolator
        Interpolating spline through the control points.
    lower_slope : float
        Slope used to extrapolate below ``x[0]``.
    upper_slope : float
        Slope used to extrapolate above ``x[-1]``.
    """

    x: np.ndarray
    y: np.ndarray
    spline: scipy.interpolate.PchipInterpolator
    lower_slope: float
    upper_slope: float

    @classmethod
    def from_control_points(
        cls, x: np.ndarray, y: np.ndarray, monotone_tolerance: float = 1e-9
    ):
        """
        Fits the spline through control points and checks that the resulting map does not decrease.

        Raises
        ------
        NonMonotoneMapError
            If the map decreases by more than ``monotone_tolerance`` (relative to the range of y) anywhere, including the extrapolation regions.
        """
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        spline = scipy.interpolate.PchipInterpolator(x, y, extrapolate=False)
        transfer_function = cls(
            x=x,
            y=y,
            spline=spline,
            lower_slope=max(float(spline(x[0], nu=1)), 0.0),
            upper_slope=max(float(spline(x[-1], nu=1)), 0.0),
        )
        transfer_function.check_monotone(monotone_tolerance)
        return transfer_function

    def check_monotone(self, monotone_tolerance: float = 1e-9):
        x_range = self.x[-1] - self.x[0]
        x_dense = np.linspace(self.x[0] - x_range, self.x[-1] + x_range, 20 * self.x.size)
        decrease = -np.min(np.diff(self.predict(x_dense)))
        if decrease > monotone_tolerance * max(1.0, np.ptp(self.y)):
            raise NonMonotoneMapError(
                "Fitted distribution map decreases by %s. Check the kernel bandwidth and grid settings."
                % decrease
            )

    def predict(self, values: np.ndarray) -> np.ndarray:
        """
        Maps values from the source onto the target distribution. Missing values stay missing.

        Parameters
        ----------
        values : np.ndarray
            Values to map, of any shape.
        """
        values = np.asarray(values, dtype=float)
        mapped = np.full(values.shape, np.nan)
        valid = ~np.isnan(values)
        x = values[valid]

        mapped_valid = self.spline(np.clip(x, self.x[0], self.x[-1]))
        below = x < self.x[0]
        above = x > self.x[-1]
        mapped_valid[below] = self.y[0] + self.lower_slope * (x[below] - self.x[0])
        mapped_valid[above] = self.y[-1] + self.upper_slope * (x[above] - self.x[-1])

        mapped[valid] = mapped_valid
        return mapped

    def __call__(self, values: np.ndarray) -> np.ndarray:
        return self.predict(values)


def build_map(
    source: np.ndarray, target: np.ndarray, density: DensityEstimation = None
) -> DistributionMap:
    """
    Builds a transfer function mapping the distribution of ``source`` onto the one of ``target`` (Kernel Density Distribution Mapping).

    1. The densities of both samples are estimated by binned kernel density estimation on a shared grid.
    2. They are integrated to CDFs with the trapezoid rule.
    3. At ``density.n_control_points`` values evenly spaced over the source range, the source CDF is inverted through the target CDF, and a monotone spline is fitted through these points.

    The samples may have different sizes; missing values are ignored.

    Examples
    --------

    >>> transfer_function = build_map(np.random.normal(loc=2, size=1000), np.random.normal(size=1000))
    >>> transfer_function.predict(np.array([2.0]))  # close to 0

    Parameters
    ----------
    source : np.ndarray
        Sample of the distribution to map from.
    target : np.ndarray
        Sample of the distribution to map onto.
    density : DensityEstimation
        Estimation settings. Default: ``DensityEstimation()``.
    """
    density = DensityEstimation() if density is None else density
    source = _drop_missing(source)
    target = _drop_missing(target)

    grid, (density_source, density_target) = estimate_density([source, target], density)
    cdf_source = cdf_from_density(grid, density_source)
    cdf_target = cdf_from_density(grid, density_target)

    x = np.linspace(source.min(), source.max(), density.n_control_points)
    y = inverse_cdf(np.interp(x, grid, cdf_source), grid, cdf_target)

    return DistributionMap.from_control_points(
        x, np.maximum.accumulate(y), density.monotone_tolerance
    )


def predict(transfer_function: DistributionMap, values: np.ndarray) -> np.ndarray:
    """Applies a :py:class:`DistributionMap` to new values. Missing values stay missing."""
    return transfer_function.predict(values)
