# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

"""Container for kddm metadata."""

__name__ = "kddm"
__version__ = "0.3.0"
__author__ = "European Centre for Medium-Range Weather Forecasts (ECMWF)"
__author_email__ = "software.support@ecmwf.int"
__license__ = "Apache License Version 2.0"
__description__ = "kddm bias corrects climate model output by kernel density distribution mapping in climatological windows."
