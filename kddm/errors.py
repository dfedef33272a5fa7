# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

"""
:py:mod:`errors`-module: exceptions raised by kddm.

Windowing and configuration errors indicate a problem in the calling code and are never caught inside the package.
:py:class:`DegenerateInputError` and :py:class:`InsufficientDataError` describe data pathologies in a single window and are converted into missing output by :py:func:`kddm.debias.bias_correct_window`.
"""


class KDDMError(Exception):
    """Base class for all errors raised by kddm."""


class ConfigurationError(KDDMError, ValueError):
    """Invalid windowing or calendar configuration."""


class InvariantError(KDDMError, ValueError):
    """A windowing invariant is violated, eg. inner windows do not tile the time axis or outer slices are unsliced."""


class DegenerateInputError(KDDMError, ValueError):
    """Input can not be normalized or density estimated: all values missing or zero variance."""


class InsufficientDataError(KDDMError, ValueError):
    """Too few valid values for a stable density estimate."""


class NonMonotoneMapError(KDDMError, ArithmeticError):
    """A fitted distribution map is decreasing somewhere in its domain."""
