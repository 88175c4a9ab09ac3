"""Sequence descriptors.

Each descriptor holds the known acquisition constants of one scan. Angles
are radians and times are seconds; ``from_degrees`` constructors convert
flip angles given in degrees. Descriptors are immutable: array fields are
stored as read-only copies, so one instance can be shared by every voxel fit
of a run.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

from relaxfit.core.arrays import as_readonly_1d
from relaxfit.errors import ContractViolation

if TYPE_CHECKING:
    from numpy.typing import ArrayLike
else:
    ArrayLike = Any  # type: ignore[misc,assignment]


class SequenceKind(Enum):
    SPGR = "SPGR"
    SPGR_FINITE = "SPGRFinite"
    SSFP = "SSFP"
    SSFP_FINITE = "SSFPFinite"
    SSFP_ELLIPSE = "SSFPEllipse"
    IRSPGR = "IRSPGR"
    MPRAGE = "MPRAGE"
    AFI = "AFI"
    MULTIECHO = "MultiEcho"


def _angles(values: ArrayLike, *, name: str) -> Any:
    import numpy as np

    arr = as_readonly_1d(values, name=name)
    if np.any(arr < 0):
        raise ContractViolation(f"{name} must be >= 0")
    return arr


def _times(values: ArrayLike, *, name: str) -> Any:
    import numpy as np

    arr = as_readonly_1d(values, name=name)
    if np.any(arr < 0):
        raise ContractViolation(f"{name} must be non-negative")
    return arr


def _positive(value: float, *, name: str) -> float:
    v = float(value)
    if not math.isfinite(v) or v <= 0:
        raise ContractViolation(f"{name} must be > 0, got {value!r}")
    return v


def _angle(value: float, *, name: str) -> float:
    v = float(value)
    if not math.isfinite(v) or v < 0:
        raise ContractViolation(f"{name} must be a finite angle >= 0, got {value!r}")
    return v


def _deg(values: ArrayLike) -> Any:
    import numpy as np

    return np.deg2rad(np.asarray(values, dtype=np.float64))


class _Sequence:
    __slots__ = ()

    kind: ClassVar[SequenceKind]

    @property
    def size(self) -> int:
        raise NotImplementedError

    def condition_count(self) -> int:
        """Expected length of a measurement vector for this scan."""
        return self.size


@dataclass(frozen=True, slots=True, eq=False)
class SPGRSimple(_Sequence):
    """Spoiled gradient echo, instantaneous pulses."""

    flip: Any
    tr: float

    kind: ClassVar[SequenceKind] = SequenceKind.SPGR

    def __post_init__(self) -> None:
        object.__setattr__(self, "flip", _angles(self.flip, name="flip"))
        object.__setattr__(self, "tr", _positive(self.tr, name="tr"))

    @classmethod
    def from_degrees(cls, flip_deg: ArrayLike, tr: float) -> SPGRSimple:
        return cls(flip=_deg(flip_deg), tr=tr)

    @property
    def size(self) -> int:
        return int(self.flip.size)


@dataclass(frozen=True, slots=True, eq=False)
class SPGRFinite(_Sequence):
    """Spoiled gradient echo with an RF pulse of duration ``trf``.

    ``te`` is measured from the centre of the pulse.
    """

    flip: Any
    tr: float
    trf: float
    te: float

    kind: ClassVar[SequenceKind] = SequenceKind.SPGR_FINITE

    def __post_init__(self) -> None:
        object.__setattr__(self, "flip", _angles(self.flip, name="flip"))
        tr = _positive(self.tr, name="tr")
        trf = _positive(self.trf, name="trf")
        te = float(self.te)
        if trf >= tr:
            raise ContractViolation("trf must be shorter than tr")
        if not (trf / 2.0 <= te <= tr - trf / 2.0):
            raise ContractViolation("te must satisfy trf/2 <= te <= tr - trf/2")
        object.__setattr__(self, "tr", tr)
        object.__setattr__(self, "trf", trf)
        object.__setattr__(self, "te", te)

    @classmethod
    def from_degrees(cls, flip_deg: ArrayLike, tr: float, trf: float, te: float) -> SPGRFinite:
        return cls(flip=_deg(flip_deg), tr=tr, trf=trf, te=te)

    @property
    def size(self) -> int:
        return int(self.flip.size)


@dataclass(frozen=True, slots=True, eq=False)
class SSFPSimple(_Sequence):
    """Balanced SSFP, instantaneous pulses.

    ``phases`` are RF phase increments per TR. Conditions are ordered
    flip-major: all phases of the first flip angle come first.
    """

    flip: Any
    tr: float
    phases: Any = (math.pi,)

    kind: ClassVar[SequenceKind] = SequenceKind.SSFP

    def __post_init__(self) -> None:
        object.__setattr__(self, "flip", _angles(self.flip, name="flip"))
        object.__setattr__(self, "tr", _positive(self.tr, name="tr"))
        object.__setattr__(self, "phases", as_readonly_1d(self.phases, name="phases"))

    @classmethod
    def from_degrees(
        cls, flip_deg: ArrayLike, tr: float, phases_deg: ArrayLike = (180.0,)
    ) -> SSFPSimple:
        return cls(flip=_deg(flip_deg), tr=tr, phases=_deg(phases_deg))

    @property
    def size(self) -> int:
        return int(self.flip.size * self.phases.size)


@dataclass(frozen=True, slots=True, eq=False)
class SSFPFinite(_Sequence):
    """Balanced SSFP with relaxation and precession during an RF pulse of duration ``trf``."""

    flip: Any
    tr: float
    trf: float
    phases: Any = (math.pi,)

    kind: ClassVar[SequenceKind] = SequenceKind.SSFP_FINITE

    def __post_init__(self) -> None:
        object.__setattr__(self, "flip", _angles(self.flip, name="flip"))
        tr = _positive(self.tr, name="tr")
        trf = _positive(self.trf, name="trf")
        if trf >= tr:
            raise ContractViolation("trf must be shorter than tr")
        object.__setattr__(self, "tr", tr)
        object.__setattr__(self, "trf", trf)
        object.__setattr__(self, "phases", as_readonly_1d(self.phases, name="phases"))

    @classmethod
    def from_degrees(
        cls, flip_deg: ArrayLike, tr: float, trf: float, phases_deg: ArrayLike = (180.0,)
    ) -> SSFPFinite:
        return cls(flip=_deg(flip_deg), tr=tr, trf=trf, phases=_deg(phases_deg))

    @property
    def size(self) -> int:
        return int(self.flip.size * self.phases.size)


@dataclass(frozen=True, slots=True, eq=False)
class SSFPEllipse(_Sequence):
    """Balanced SSFP evaluated through its elliptical signal geometry."""

    flip: Any
    tr: float
    phases: Any = (0.0, math.pi / 2.0, math.pi, 3.0 * math.pi / 2.0)

    kind: ClassVar[SequenceKind] = SequenceKind.SSFP_ELLIPSE

    def __post_init__(self) -> None:
        object.__setattr__(self, "flip", _angles(self.flip, name="flip"))
        object.__setattr__(self, "tr", _positive(self.tr, name="tr"))
        object.__setattr__(self, "phases", as_readonly_1d(self.phases, name="phases"))

    @classmethod
    def from_degrees(
        cls, flip_deg: ArrayLike, tr: float, phases_deg: ArrayLike = (0.0, 90.0, 180.0, 270.0)
    ) -> SSFPEllipse:
        return cls(flip=_deg(flip_deg), tr=tr, phases=_deg(phases_deg))

    @property
    def size(self) -> int:
        return int(self.flip.size * self.phases.size)


@dataclass(frozen=True, slots=True, eq=False)
class IRSPGR(_Sequence):
    """Inversion recovery with a single spoiled readout pulse.

    Each condition is one inversion time; inversions repeat every ``tr_inv``.
    """

    ti: Any
    flip: float
    tr_inv: float

    kind: ClassVar[SequenceKind] = SequenceKind.IRSPGR

    def __post_init__(self) -> None:
        ti = _times(self.ti, name="ti")
        tr_inv = _positive(self.tr_inv, name="tr_inv")
        if float(ti.max()) > tr_inv:
            raise ContractViolation("tr_inv must not be shorter than the longest ti")
        object.__setattr__(self, "ti", ti)
        object.__setattr__(self, "flip", _angle(self.flip, name="flip"))
        object.__setattr__(self, "tr_inv", tr_inv)

    @classmethod
    def from_degrees(cls, ti: ArrayLike, flip_deg: float, tr_inv: float) -> IRSPGR:
        return cls(ti=ti, flip=math.radians(flip_deg), tr_inv=tr_inv)

    @property
    def size(self) -> int:
        return int(self.ti.size)


@dataclass(frozen=True, slots=True, eq=False)
class MPRAGE(_Sequence):
    """Magnetization-prepared rapid gradient echo.

    One shot is: inversion, delay ``ti``, ``n_readout`` spoiled pulses spaced
    ``tr``, then a delay ``td`` before the next inversion. The reported signal
    is the ``k_zero``-th readout (zero based) of the train.
    """

    ti: Any
    flip: float
    tr: float
    n_readout: int
    k_zero: int = 0
    td: float = 0.0

    kind: ClassVar[SequenceKind] = SequenceKind.MPRAGE

    def __post_init__(self) -> None:
        n_readout = int(self.n_readout)
        k_zero = int(self.k_zero)
        td = float(self.td)
        if n_readout < 1:
            raise ContractViolation("n_readout must be >= 1")
        if not (0 <= k_zero < n_readout):
            raise ContractViolation("k_zero must satisfy 0 <= k_zero < n_readout")
        if not math.isfinite(td) or td < 0:
            raise ContractViolation("td must be >= 0")
        object.__setattr__(self, "ti", _times(self.ti, name="ti"))
        object.__setattr__(self, "flip", _angle(self.flip, name="flip"))
        object.__setattr__(self, "tr", _positive(self.tr, name="tr"))
        object.__setattr__(self, "n_readout", n_readout)
        object.__setattr__(self, "k_zero", k_zero)
        object.__setattr__(self, "td", td)

    @classmethod
    def from_degrees(
        cls,
        ti: ArrayLike,
        flip_deg: float,
        tr: float,
        n_readout: int,
        k_zero: int = 0,
        td: float = 0.0,
    ) -> MPRAGE:
        return cls(
            ti=ti,
            flip=math.radians(flip_deg),
            tr=tr,
            n_readout=n_readout,
            k_zero=k_zero,
            td=td,
        )

    @property
    def size(self) -> int:
        return int(self.ti.size)


@dataclass(frozen=True, slots=True, eq=False)
class AFI(_Sequence):
    """Actual flip-angle imaging: one flip angle, interleaved ``tr1``/``tr2``."""

    flip: float
    tr1: float
    tr2: float

    kind: ClassVar[SequenceKind] = SequenceKind.AFI

    def __post_init__(self) -> None:
        object.__setattr__(self, "flip", _angle(self.flip, name="flip"))
        object.__setattr__(self, "tr1", _positive(self.tr1, name="tr1"))
        object.__setattr__(self, "tr2", _positive(self.tr2, name="tr2"))

    @classmethod
    def from_degrees(cls, flip_deg: float, tr1: float, tr2: float) -> AFI:
        return cls(flip=math.radians(flip_deg), tr1=tr1, tr2=tr2)

    @property
    def size(self) -> int:
        return 2


@dataclass(frozen=True, slots=True, eq=False)
class MultiEcho(_Sequence):
    """Multi-echo spin echo; one condition per echo time."""

    te: Any

    kind: ClassVar[SequenceKind] = SequenceKind.MULTIECHO

    def __post_init__(self) -> None:
        object.__setattr__(self, "te", _times(self.te, name="te"))

    @property
    def size(self) -> int:
        return int(self.te.size)


SEQUENCE_TYPES: dict[str, type[_Sequence]] = {
    cls.kind.value.lower(): cls
    for cls in (SPGRSimple, SPGRFinite, SSFPSimple, SSFPFinite, SSFPEllipse, IRSPGR, MPRAGE, AFI, MultiEcho)
}


def sequence_type(name: str) -> type[_Sequence]:
    """Look up a descriptor class by its kind name, e.g. ``"SPGR"``."""
    try:
        return SEQUENCE_TYPES[str(name).lower().strip()]
    except KeyError:
        raise ContractViolation(f"Unknown signal type: {name!r}") from None


__all__ = [
    "AFI",
    "IRSPGR",
    "MPRAGE",
    "MultiEcho",
    "SEQUENCE_TYPES",
    "SPGRFinite",
    "SPGRSimple",
    "SSFPEllipse",
    "SSFPFinite",
    "SSFPSimple",
    "SequenceKind",
    "sequence_type",
]
