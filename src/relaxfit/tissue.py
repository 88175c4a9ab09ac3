"""Tissue model variants.

A tissue model only describes how a raw parameter vector is laid out: the
ordered parameter names, their count and sane defaults. Interpreting the
vector physically is left to :mod:`relaxfit.signals`.

Parameter layouts (times in seconds):

- single compartment: ``PD, T1, T2``
- two compartments: ``PD, T1_m, T2_m, T1_ie, T2_ie, tau_m, f_m``
- three compartments: ``PD, T1_m, T2_m, T1_ie, T2_ie, T1_csf, T2_csf,
  tau_m, f_m, f_csf``

``m`` is myelin water, ``ie`` intra/extra-cellular water and ``csf`` free
water. ``tau_m`` is the myelin-water residence time and ``f_*`` are signal
fractions; the ``ie`` fraction is whatever remains.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from relaxfit.errors import ContractViolation

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import ArrayLike, NDArray
else:
    ArrayLike = Any  # type: ignore[misc,assignment]
    NDArray = Any  # type: ignore[misc,assignment]


class ModelKind(Enum):
    SINGLE = 1
    TWO = 2
    THREE = 3


@dataclass(frozen=True, slots=True)
class TissueModel:
    name: str
    kind: ModelKind
    names: tuple[str, ...]
    defaults: tuple[float, ...]

    def __post_init__(self) -> None:
        if len(self.names) != len(self.defaults):
            raise ContractViolation("names and defaults must have the same length")

    @property
    def n_parameters(self) -> int:
        return len(self.names)

    @property
    def n_pools(self) -> int:
        return self.kind.value

    def default_parameters(self) -> NDArray[np.float64]:
        import numpy as np

        return np.asarray(self.defaults, dtype=np.float64)

    def index(self, name: str) -> int:
        try:
            return self.names.index(name)
        except ValueError:
            raise ContractViolation(f"{self.name} has no parameter {name!r}") from None

    def check_parameters(self, params: ArrayLike) -> NDArray[np.float64]:
        """Return ``params`` as a float vector, enforcing the declared length."""
        import numpy as np

        p = np.asarray(params, dtype=np.float64)
        if p.ndim != 1 or p.shape[0] != self.n_parameters:
            raise ContractViolation(
                f"{self.name} expects {self.n_parameters} parameters {self.names}, got shape {p.shape}"
            )
        if not np.all(np.isfinite(p)):
            raise ContractViolation(f"{self.name} parameters must be finite, got {p}")
        return p

    def as_dict(self, params: ArrayLike) -> dict[str, float]:
        p = self.check_parameters(params)
        return {name: float(value) for name, value in zip(self.names, p)}

    def __str__(self) -> str:
        return f"{self.name} ({', '.join(self.names)})"


SINGLE_COMPONENT = TissueModel(
    name="1C",
    kind=ModelKind.SINGLE,
    names=("PD", "T1", "T2"),
    defaults=(1.0, 1.0, 0.05),
)

TWO_COMPONENT = TissueModel(
    name="2C",
    kind=ModelKind.TWO,
    names=("PD", "T1_m", "T2_m", "T1_ie", "T2_ie", "tau_m", "f_m"),
    defaults=(1.0, 0.465, 0.026, 1.07, 0.117, 0.18, 0.2),
)

THREE_COMPONENT = TissueModel(
    name="3C",
    kind=ModelKind.THREE,
    names=(
        "PD",
        "T1_m",
        "T2_m",
        "T1_ie",
        "T2_ie",
        "T1_csf",
        "T2_csf",
        "tau_m",
        "f_m",
        "f_csf",
    ),
    defaults=(1.0, 0.465, 0.026, 1.07, 0.117, 4.0, 2.5, 0.18, 0.2, 0.05),
)

_ALIASES: dict[str, TissueModel] = {
    **dict.fromkeys(("1", "1c", "scd", "single"), SINGLE_COMPONENT),
    **dict.fromkeys(("2", "2c", "mcd2", "two"), TWO_COMPONENT),
    **dict.fromkeys(("3", "3c", "mcd3", "three"), THREE_COMPONENT),
}


def get_model(name: str | int | ModelKind | TissueModel) -> TissueModel:
    """Look up a tissue model by name, component count or kind."""
    if isinstance(name, TissueModel):
        return name
    if isinstance(name, ModelKind):
        name = name.value
    key = str(name).lower().strip()
    try:
        return _ALIASES[key]
    except KeyError:
        raise ContractViolation(f"Unknown tissue model: {name!r}") from None


__all__ = [
    "ModelKind",
    "SINGLE_COMPONENT",
    "THREE_COMPONENT",
    "TWO_COMPONENT",
    "TissueModel",
    "get_model",
]
