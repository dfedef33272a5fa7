# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

"""
Skill module - Provides skill scores comparing the distribution of a candidate (eg. bias corrected climate model output) to a reference (eg. observations).
"""

from typing import Optional

import numpy as np
import pandas as pd

from ..utils import DensityEstimation, estimate_density


def _normalized_densities(reference, candidate, density):
    grid, densities = estimate_density([reference, candidate], density)
    dx = grid[1] - grid[0]
    density_reference, density_candidate = (f / (np.sum(f) * dx) for f in densities)
    return grid, dx, density_reference, density_candidate


def pdf_skill(
    reference: np.ndarray,
    candidate: np.ndarray,
    density: Optional[DensityEstimation] = None,
) -> float:
    """
    Overlap of the kernel density estimates of reference and candidate (Perkins et al. 2007): the integral of the pointwise minimum of the two densities. 1 means identical distributions, 0 disjoint ones.

    Missing values are ignored.

    Parameters
    ----------
    reference : np.ndarray
        Reference sample, eg. observations.
    candidate : np.ndarray
        Sample to evaluate.
    density : Optional[DensityEstimation]
        Density estimation settings. Default: ``DensityEstimation()``.

    Returns
    -------
    float
        Skill in [0, 1].
    """
    grid, dx, density_reference, density_candidate = _normalized_densities(
        reference, candidate, density
    )
    overlap = np.sum(np.minimum(density_reference, density_candidate)) * dx
    return float(np.clip(overlap, 0, 1))


def tail_skill(
    reference: np.ndarray,
    candidate: np.ndarray,
    lower: float = 0.05,
    upper: float = 0.95,
    density: Optional[DensityEstimation] = None,
) -> float:
    """
    Agreement of reference and candidate in the tails of the reference distribution.

    Computed as ``1 - sum|f_ref - f_cand| / sum(f_ref + f_cand)`` over the grid points below the ``lower`` or above the ``upper`` quantile of the reference, where ``f`` are kernel density estimates. 1 means identical tails. If neither density has mass in the tails, 1 is returned.

    Parameters
    ----------
    reference : np.ndarray
        Reference sample, eg. observations.
    candidate : np.ndarray
        Sample to evaluate.
    lower : float
        Quantile of the reference below which the lower tail starts. Default: ``0.05``.
    upper : float
        Quantile of the reference above which the upper tail starts. Default: ``0.95``.
    density : Optional[DensityEstimation]
        Density estimation settings. Default: ``DensityEstimation()``.

    Returns
    -------
    float
        Skill in [0, 1].
    """
    if not 0 <= lower < upper <= 1:
        raise ValueError("lower and upper need to fulfill 0 <= lower < upper <= 1")

    grid, dx, density_reference, density_candidate = _normalized_densities(
        reference, candidate, density
    )
    quantile_lower, quantile_upper = np.nanquantile(
        np.asarray(reference, dtype=float), [lower, upper]
    )
    tails = (grid < quantile_lower) | (grid > quantile_upper)

    mass = np.sum(density_reference[tails] + density_candidate[tails])
    if mass == 0:
        return 1.0
    difference = np.sum(np.abs(density_reference[tails] - density_candidate[tails]))
    return float(np.clip(1 - difference / mass, 0, 1))


def calculate_skill(
    obs: np.ndarray, density: Optional[DensityEstimation] = None, **candidates
) -> pd.DataFrame:
    """
    Returns a :py:class:`pd.DataFrame` with the pdf and tail skill of each candidate with respect to the observations.

    Examples
    --------
    >>> skill_df = calculate_skill(obs, raw=cur, KDDM=corrected["cur"])
    >>> skill_df.loc["KDDM", "pdf_skill"]

    Parameters
    ----------
    obs : np.ndarray
        Observations, any shape. All values are pooled.
    density : Optional[DensityEstimation]
        Density estimation settings. Default: ``DensityEstimation()``.
    **candidates:
        Keyword arguments of samples to evaluate, eg. ``raw=cur, KDDM=corrected["cur"]``.

    Returns
    -------
    pd.DataFrame
        One row per candidate (index ``"Correction Method"``) with columns ``pdf_skill`` and ``tail_skill``.
    """
    rows = [
        {
            "Correction Method": name,
            "pdf_skill": pdf_skill(obs, candidate, density=density),
            "tail_skill": tail_skill(obs, candidate, density=density),
        }
        for name, candidate in candidates.items()
    ]
    return pd.DataFrame(
        rows, columns=["Correction Method", "pdf_skill", "tail_skill"]
    ).set_index("Correction Method")
