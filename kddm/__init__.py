# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

"""
kddm: Kernel Density Distribution Mapping bias correction of climate model output.

The package is organised in three sub-modules:

- :py:mod:`kddm.utils`: windowing, normalization, drizzle correction and the distribution mapper.
- :py:mod:`kddm.debias`: the :py:class:`KDDM` debiaser and the single-window algorithm :py:func:`bias_correct_window`.
- :py:mod:`kddm.evaluate`: skill scores comparing distributions before and after bias correction.
"""

from .__meta__ import __version__  # noqa
