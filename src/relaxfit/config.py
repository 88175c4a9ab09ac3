"""Estimator configuration.

Configuration is an explicit immutable object handed to the estimator
constructor; there are no module-level defaults to mutate. A run can also be
configured from a TOML file with a ``[despot1]`` table::

    [despot1]
    algo = "wlls"      # l/lls, w/wlls, n/nlls
    its = 4
    b1 = 1.0
    tolerance = 1e-10
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from relaxfit.errors import ContractViolation


class Strategy(Enum):
    LLS = "lls"
    WLLS = "wlls"
    NLLS = "nlls"

    @property
    def long_name(self) -> str:
        return _LONG_NAMES[self]

    @classmethod
    def parse(cls, value: str | Strategy) -> Strategy:
        if isinstance(value, Strategy):
            return value
        key = str(value).lower().strip()
        try:
            return _STRATEGY_ALIASES[key]
        except KeyError:
            raise ContractViolation(f"Unknown algorithm type {value!r}") from None


_LONG_NAMES = {
    Strategy.LLS: "ClosedFormLinear",
    Strategy.WLLS: "IterativelyReweightedLinear",
    Strategy.NLLS: "NonlinearLeastSquares",
}

_STRATEGY_ALIASES = {
    **{s.value: s for s in Strategy},
    **{s.value[0]: s for s in Strategy},
    **{name.lower(): s for s, name in _LONG_NAMES.items()},
}


@dataclass(frozen=True, slots=True)
class Despot1Config:
    """Settings shared read-only by every voxel fit of a run.

    ``max_iterations`` is the number of reweighting passes for WLLS and
    scales the function-evaluation budget of NLLS. ``tolerance`` is the
    relative cost and step tolerance that ends NLLS early.
    """

    strategy: Strategy = Strategy.LLS
    max_iterations: int = 4
    default_constants: tuple[float, ...] = (1.0,)
    tolerance: float = 1e-10

    def __post_init__(self) -> None:
        object.__setattr__(self, "strategy", Strategy.parse(self.strategy))
        if isinstance(self.max_iterations, bool) or int(self.max_iterations) != self.max_iterations:
            raise ContractViolation("max_iterations must be an integer")
        if self.max_iterations < 0:
            raise ContractViolation("max_iterations must be >= 0")
        object.__setattr__(self, "max_iterations", int(self.max_iterations))

        consts = tuple(float(c) for c in self.default_constants)
        if len(consts) != 1:
            raise ContractViolation("default_constants must hold exactly one value (B1)")
        if not all(math.isfinite(c) and c > 0 for c in consts):
            raise ContractViolation("default B1 must be finite and > 0")
        object.__setattr__(self, "default_constants", consts)

        tol = float(self.tolerance)
        if not (math.isfinite(tol) and tol > 0):
            raise ContractViolation("tolerance must be > 0")
        object.__setattr__(self, "tolerance", tol)

    @classmethod
    def from_mapping(cls, table: Mapping[str, Any]) -> Despot1Config:
        known = {"algo", "strategy", "its", "max_iterations", "b1", "tolerance"}
        unknown = set(table) - known
        if unknown:
            raise ContractViolation(f"unknown despot1 settings: {sorted(unknown)}")
        kwargs: dict[str, Any] = {}
        if "algo" in table or "strategy" in table:
            kwargs["strategy"] = table.get("algo", table.get("strategy"))
        if "its" in table or "max_iterations" in table:
            kwargs["max_iterations"] = table.get("its", table.get("max_iterations"))
        if "b1" in table:
            kwargs["default_constants"] = (table["b1"],)
        if "tolerance" in table:
            kwargs["tolerance"] = table["tolerance"]
        return cls(**kwargs)


def load_config(path: str | Path) -> Despot1Config:
    """Read a :class:`Despot1Config` from the ``[despot1]`` table of a TOML file."""
    import tomllib

    data = tomllib.loads(Path(path).read_text(encoding="utf-8"))
    table = data.get("despot1", {})
    if not isinstance(table, dict):
        raise ContractViolation("config format error: [despot1] must be a table")
    return Despot1Config.from_mapping(table)


__all__ = ["Despot1Config", "Strategy", "load_config"]
