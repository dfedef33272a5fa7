# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

"""
The :py:mod:`evaluate`-module: provides skill scores to assess whether a bias correction brings the simulated distribution closer to the observed one.

Bias correction operates on a marginal level: it corrects the distribution of one variable at one location. The skill scores here therefore compare marginal distributions, estimated by the same kernel density estimation the correction uses:

.. autosummary::
    skill.pdf_skill
    skill.tail_skill
    skill.calculate_skill

>>> skill_df = skill.calculate_skill(obs, raw=cur, KDDM=corrected["cur"])
"""

from . import skill  # noqa
