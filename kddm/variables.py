# (C) Copyright 1996- ECMWF.
#
# This software is licensed under the terms of the Apache Licence Version 2.0
# which can be obtained at http://www.apache.org/licenses/LICENSE-2.0.
# In applying this licence, ECMWF does not waive the privileges and immunities
# granted to it by virtue of its status as an intergovernmental organisation
# nor does it submit to any jurisdiction.

"""
:py:mod:`Variable` module - Standard definitions of climatic variables.

The variables below are recognized by the package and mapped onto default arguments of the :py:class:`kddm.debias.KDDM` debiaser by its :py:func:`from_variable` classmethod. By setting class parameters oneself it is possible to bias correct other variables as well.

.. autosummary::
    hurs
    pr
    psl
    rlds
    rsds
    sfcwind
    tas
    tasmin
    tasmax
"""

import attrs


@attrs.define(eq=False)
class Variable:
    """
    Provides an interface for climatic variables.

    It stores some essential attributes of the variable and is mainly used for internal purposes, however defining new ones is also possible.

    Examples
    --------
    >>> hurs = Variable(name="Daily mean near-surface relative humidity", unit="%")

    Attributes
    ----------
    name : str
        Name of climatic variable.
    unit : str
        Unit of climatic variable.
    reasonable_physical_range : list
        Lower and upper bound of the expectable physical range of the variable.
    zero_inflated : bool
        Whether the variable has a point mass at zero (eg. precipitation) and needs drizzle correction. Default: ``False``.
    """

    name: str = attrs.field(
        default="unknown", validator=attrs.validators.instance_of(str)
    )
    unit: str = attrs.field(
        default="unknown", validator=attrs.validators.instance_of(str)
    )
    reasonable_physical_range: list = attrs.field(default=None)
    zero_inflated: bool = attrs.field(
        default=False, validator=attrs.validators.instance_of(bool)
    )

    @reasonable_physical_range.validator
    def _validate_reasonable_physical_range(self, attribute, value):
        if value is not None:
            if len(value) != 2:
                raise ValueError(
                    "reasonable_physical_range should have only a lower and upper physical range"
                )
            if not all(isinstance(elem, (int, float)) for elem in value):
                raise ValueError(
                    "reasonable_physical_range needs to be a list of floats"
                )
            if not value[0] < value[1]:
                raise ValueError(
                    "lower bounds needs to be smaller than upper bound in reasonable_physical_range"
                )


hurs = Variable(
    name="Daily mean near-surface relative humidity",
    unit="%",
    reasonable_physical_range=[1e-5, 150],
)
"""
Daily mean near-surface relative humidity, unit: %
"""

pr = Variable(
    name="Daily mean precipitation flux",
    unit="kg m-2 s-1",
    reasonable_physical_range=[0, 0.01],
    zero_inflated=True,
)
"""
Daily mean precipitation flux, unit: kg m-2 s-1
"""

psl = Variable(
    name="Daily mean sea level pressure",
    unit="Pa",
    reasonable_physical_range=[0, 1000000],
)
"""
Daily mean sea level pressure, unit: Pa
"""

rlds = Variable(
    name="Daily mean surface downwelling longwave radiation",
    unit="W m-2",
    reasonable_physical_range=[0, 1000],
)
"""
Daily mean surface downwelling longwave radiation, unit: W m-2
"""

rsds = Variable(
    name="Daily mean surface downwelling shortwave radiation",
    unit="W m-2",
    reasonable_physical_range=[0, 1000],
)
"""
Daily mean surface downwelling shortwave radiation, unit: W m-2
"""

sfcwind = Variable(
    name="Daily mean near-surface wind speed",
    unit="m s-1",
    reasonable_physical_range=[1e-5, 500],
)
"""
Daily mean near-surface wind speed, unit: m s-1
"""

tas = Variable(
    name="Daily mean near-surface air temperature",
    unit="K",
    reasonable_physical_range=[100, 400],
)
"""
Daily mean near-surface air temperature, unit: K
"""

tasmin = Variable(
    name="Daily minimum near-surface air temperature",
    unit="K",
    reasonable_physical_range=[100, 400],
)
"""
Daily minimum near-surface air temperature, unit: K
"""

tasmax = Variable(
    name="Daily maximum near-surface air temperature",
    unit="K",
    reasonable_physical_range=[100, 400],
)
"""
Daily maximum near-surface air temperature, unit: K
"""


str_to_variable_class = {
    "hurs": hurs,
    "pr": pr,
    "psl": psl,
    "rlds": rlds,
    "rsds": rsds,
    "sfcwind": sfcwind,
    "tas": tas,
    "tasmin": tasmin,
    "tasmax": tasmax,
}


def map_variable_str_to_variable_class(variable_str: str):
    variable_str = variable_str.lower()
    if variable_str not in str_to_variable_class.keys():
        raise ValueError(
            "%s is not known as variable. Variable needs to be one of %s"
            % (variable_str, list(str_to_variable_class.keys()))
        )
    return str_to_variable_class.get(variable_str)
