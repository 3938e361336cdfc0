"""Reading integrator configurations from parameter dictionaries and YAML.

Parameters may be given as plain values or, following the project's
parameter file convention, as dictionaries with a ``value`` and optional
``units``::

    integrator:
      accuracy: 1.0e-6
      initial_step_size: {value: 1, units: ms}
      max_step_size: {value: 0.05, units: s}
      project_every_step: true

Time-like quantities are converted to seconds with pint.
"""

from dataclasses import fields
from pathlib import Path
from typing import Any, Optional, Union

import pint
import yaml

from simstep.config import IntegratorConfig

TIME_FIELDS = (
    "initial_step_size",
    "min_step_size",
    "max_step_size",
    "final_time",
    "event_localization_window",
)
FLOAT_FIELDS = ("accuracy", "constraint_tolerance")


def _param_value(param: Any, name: str, ureg: pint.UnitRegistry) -> Any:
    """Return a parameter's value, converting time quantities to seconds."""
    if isinstance(param, dict):
        if "value" not in param:
            raise ValueError(f"Parameter '{name}' has no 'value' entry")
        value, units = param["value"], param.get("units")
    else:
        value, units = param, None

    if name in TIME_FIELDS and value is not None:
        if units is not None:
            quantity = ureg.Quantity(float(value), units)
            if quantity.dimensionality != ureg.second.dimensionality:
                raise ValueError(
                    f"Parameter '{name}' must have units of time, got {units}"
                )
            return quantity.to(ureg.second).magnitude
        return float(value)
    if units is not None:
        raise ValueError(f"Parameter '{name}' does not take units")
    if name in FLOAT_FIELDS and value is not None:
        # PyYAML reads exponent-only literals such as 1e-6 as strings.
        return float(value)
    return value


def read_integrator_config(
    params_dict: dict, ureg: Optional[pint.UnitRegistry] = None
) -> IntegratorConfig:
    """Build an IntegratorConfig from a parameter dictionary.

    Parameters
    ----------
    params_dict : dict
        Mapping of IntegratorConfig field names to values or to
        ``{'value': ..., 'units': ...}`` dictionaries. If the mapping has
        a single top-level ``'integrator'`` key, its contents are used.
    ureg : pint.UnitRegistry, optional
        Unit registry used to convert time quantities. If None, a new
        registry is created.

    Returns
    -------
    IntegratorConfig

    Raises
    ------
    ValueError
        For unknown parameter names, malformed entries, or units that are
        not units of time.

    Examples
    --------
    >>> config = read_integrator_config({
    ...     'accuracy': 1e-6,
    ...     'max_step_size': {'value': 10, 'units': 'ms'},
    ... })
    >>> config.max_step_size
    0.01
    """
    if ureg is None:
        ureg = pint.UnitRegistry()
    if set(params_dict) == {"integrator"}:
        params_dict = params_dict["integrator"]

    known = {f.name for f in fields(IntegratorConfig)}
    unknown = set(params_dict) - known
    if unknown:
        raise ValueError(
            f"Unknown integrator parameter(s): {', '.join(sorted(unknown))}"
        )

    kwargs = {
        name: _param_value(param, name, ureg)
        for name, param in params_dict.items()
    }
    return IntegratorConfig(**kwargs)


def load_integrator_config(
    filename: Union[str, Path], ureg: Optional[pint.UnitRegistry] = None
) -> IntegratorConfig:
    """Read an IntegratorConfig from a YAML file.

    See :func:`read_integrator_config` for the expected layout.
    """
    with open(filename, "r") as f:
        params = yaml.safe_load(f) or {}
    if not isinstance(params, dict):
        raise ValueError(f"Expected a mapping in {filename}")
    return read_integrator_config(params, ureg=ureg)
