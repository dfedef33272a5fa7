# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.


"""
The :py:mod:`debias`-module provides the functionality to bias correct climate models with Kernel Density Distribution Mapping.

.. autosummary::
    Debiaser
    KDDM
    bias_correct_window

**Usage**

Three types of data are required in order to conduct bias correction for a given climatic variable:

1. Observations / reanalysis data for a historical period: ``obs``.

2. Climate model simulation for the same historical period as observations: ``cur``.

3. Climate model simulation for the period that is to be bias corrected, often a future period: ``fut``.

Let's generate some pseudo climate data:

>>> import numpy as np
>>> np.random.seed(12345)
>>> obs, cur, fut = np.random.normal(loc = 3, size = 7300).reshape((1825, 2, 2)), np.random.normal(loc = 5, size = 7300).reshape((1825, 2, 2)), np.random.normal(loc = 7, size = 7300).reshape((1825, 2, 2))

The debiaser can be instantiated using :py:func:`from_variable` and a standard abbrevation for a meteorological variable following the CMIP-convention:

>>> debiaser = KDDM.from_variable("tas")

Applying it returns the corrected obs, cur and fut arrays:

>>> corrected = debiaser.apply(obs, cur, fut, time_obs=np.arange(1825), time_cur=np.arange(1825), time_fut=np.arange(1825))
>>> corrected["fut"].shape
(1825, 2, 2)

**Variable support**

Default settings exist for ``["tas", "tasmin", "tasmax", "pr"]``, experimental ones for ``["hurs", "psl", "rlds", "rsds", "sfcwind"]``.
"""

from ._debiaser import Debiaser  # noqa
from ._kddm import KDDM, bias_correct_window  # noqa
