# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

"""drizzle module - zero-inflation handling for precipitation-like variables"""

from typing import Optional

import numpy as np

from ._utils import get_library_logger


def _floor_at_zero(x: np.ndarray) -> np.ndarray:
    x = np.array(x, dtype=float)
    x[x < 0] = 0
    return x


def wet_ratio(x: np.ndarray) -> float:
    """Fraction of non-missing values that are strictly positive. ``np.nan`` if all values are missing."""
    valid = x[~np.isnan(x)]
    if valid.size == 0:
        return np.nan
    return np.count_nonzero(valid > 0) / valid.size


def get_drizzle_threshold(obs: np.ndarray, cur: np.ndarray) -> float:
    """
    Finds the threshold T below which values in cur need to be set to zero so that the wet ratio of cur matches the one of obs.

    Candidates are the distinct positive values of cur (and a value just above its maximum). The candidate giving the wet ratio closest to the observed one is returned, preferring the smaller threshold on ties. If cur is already as dry as obs or drier, T = 0.

    Parameters
    ----------
    obs : np.ndarray
        Observed values floored at zero, missing values as ``np.nan``.
    cur : np.ndarray
        Simulated values of the current period floored at zero, missing values as ``np.nan``.
    """
    observed_wet_ratio = wet_ratio(obs)
    valid_cur = cur[~np.isnan(cur)]
    if np.isnan(observed_wet_ratio) or valid_cur.size == 0:
        return 0.0
    if wet_ratio(cur) <= observed_wet_ratio:
        return 0.0

    wet_values_cur = np.sort(valid_cur[valid_cur > 0])
    candidates = np.append(
        np.unique(wet_values_cur), np.nextafter(wet_values_cur[-1], np.inf)
    )
    nr_wet_above_candidate = wet_values_cur.size - np.searchsorted(
        wet_values_cur, candidates, side="left"
    )
    distance = np.abs(nr_wet_above_candidate / valid_cur.size - observed_wet_ratio)
    # argmin returns the first, so the smallest threshold on ties
    return float(candidates[np.argmin(distance)])


def dedrizzle(
    obs: np.ndarray,
    cur: np.ndarray,
    fut: Optional[np.ndarray] = None,
    return_diagnostics: bool = False,
):
    """
    Removes excess low-intensity values ("drizzle") from simulated precipitation.

    All inputs are floored at zero. The observed wet ratio R (fraction of non-missing values that are non-zero) is matched in cur by setting all values below a threshold T to zero (see :py:func:`get_drizzle_threshold`). The same threshold is applied to fut, assuming that the dry-day frequency bias does not change between periods. Missing values are ignored and kept.

    Examples
    --------

    >>> obs = np.concatenate([np.zeros(10), np.ones(10)])
    >>> cur = np.arange(1, 11) / 10
    >>> obs, cur, fut, diagnostics = dedrizzle(obs, cur, return_diagnostics=True)
    >>> diagnostics["threshold"]
    0.6

    Parameters
    ----------
    obs : np.ndarray
        Observed values.
    cur : np.ndarray
        Simulated values of the current period.
    fut : Optional[np.ndarray]
        Simulated values of the future period. If ``None`` only cur is processed and ``None`` is returned for fut.
    return_diagnostics : bool
        Whether a dict with the ``"threshold"`` and the observed ``"wet_ratio"`` is returned as fourth element. Default: ``False``.

    Returns
    -------
    tuple
        ``(obs, cur, fut)`` or ``(obs, cur, fut, diagnostics)``. Inputs are not modified.
    """
    obs = _floor_at_zero(obs)
    cur = _floor_at_zero(cur)
    fut = _floor_at_zero(fut) if fut is not None else None

    threshold = get_drizzle_threshold(obs, cur)
    if threshold > 0:
        cur[cur < threshold] = 0
        if fut is not None:
            fut[fut < threshold] = 0

    get_library_logger().debug("Drizzle threshold: %s" % threshold)

    if return_diagnostics:
        return obs, cur, fut, {"threshold": threshold, "wet_ratio": wet_ratio(obs)}
    return obs, cur, fut


def unzero(x: np.ndarray):
    """
    Replaces exact zeros by ``np.nan`` so that dry days are excluded from density estimation.

    Returns
    -------
    tuple
        ``(values, zero_mask)`` where ``zero_mask`` marks the replaced positions, to be passed to :py:func:`rezero`.
    """
    x = np.array(x, dtype=float)
    zero_mask = x == 0
    x[zero_mask] = np.nan
    return x, zero_mask


def rezero(x: np.ndarray, zero_mask: np.ndarray) -> np.ndarray:
    """Inverse of :py:func:`unzero`: sets the positions marked in ``zero_mask`` back to zero."""
    x = np.array(x, dtype=float)
    x[zero_mask] = 0
    return x
