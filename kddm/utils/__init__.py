# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

"""
:py:mod:`utils`-module: provides the building blocks of the bias correction: climatological windows, normalization, drizzle correction and the distribution mapper.
"""

from ._drizzle import *  # noqa
from ._math_utils import *  # noqa
from ._normalization import *  # noqa
from ._utils import *  # noqa
from ._windows import *  # noqa
