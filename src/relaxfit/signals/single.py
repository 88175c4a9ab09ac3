"""Closed-form steady-state equations for a single compartment."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from relaxfit.errors import ContractViolation, NumericalDomainError
from relaxfit.sequences import AFI, IRSPGR, MultiEcho, SequenceKind, SPGRSimple, SSFPEllipse
from relaxfit.tissue import ModelKind, TissueModel, get_model

from ._registry import register_signal

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import ArrayLike, NDArray
else:
    ArrayLike = Any  # type: ignore[misc,assignment]
    NDArray = Any  # type: ignore[misc,assignment]


def relaxation_times(params: NDArray[np.float64]) -> tuple[float, float, float]:
    pd, t1, t2 = (float(v) for v in params)
    if t1 <= 0 or t2 <= 0:
        raise NumericalDomainError(f"T1 and T2 must be > 0, got T1={t1}, T2={t2}")
    return pd, t1, t2


@register_signal(SequenceKind.SPGR, ModelKind.SINGLE)
def spgr(
    model: TissueModel, seq: SPGRSimple, params: NDArray[np.float64], b1: float, f0: float, out: Any
) -> None:
    """S = PD sin(a) (1 - E1) / (1 - E1 cos(a)), a = flip * B1."""
    import numpy as np

    pd, t1, _ = relaxation_times(params)
    alpha = seq.flip * b1
    e1 = np.exp(-seq.tr / t1)
    out[:] = pd * np.sin(alpha) * (1.0 - e1) / (1.0 - e1 * np.cos(alpha))


@register_signal(SequenceKind.IRSPGR, ModelKind.SINGLE)
def irspgr(
    model: TissueModel, seq: IRSPGR, params: NDArray[np.float64], b1: float, f0: float, out: Any
) -> None:
    import numpy as np

    pd, t1, _ = relaxation_times(params)
    alpha = seq.flip * b1
    cos_inv = np.cos(np.pi * b1)
    ei = np.exp(-seq.ti / t1)
    er = np.exp(-(seq.tr_inv - seq.ti) / t1)
    mz = pd * ((1.0 - ei) + ei * cos_inv * (1.0 - er)) / (1.0 - ei * er * cos_inv * np.cos(alpha))
    out[:] = np.sin(alpha) * mz


@register_signal(SequenceKind.AFI, ModelKind.SINGLE)
def afi(
    model: TissueModel, seq: AFI, params: NDArray[np.float64], b1: float, f0: float, out: Any
) -> None:
    """Dual-TR steady state (Yarnykh 2007)."""
    import numpy as np

    pd, t1, _ = relaxation_times(params)
    alpha = seq.flip * b1
    e1 = np.exp(-seq.tr1 / t1)
    e2 = np.exp(-seq.tr2 / t1)
    ca = np.cos(alpha)
    scale = pd * np.sin(alpha) / (1.0 - e1 * e2 * ca * ca)
    out[0] = scale * (1.0 - e2 + (1.0 - e1) * e2 * ca)
    out[1] = scale * (1.0 - e1 + (1.0 - e2) * e1 * ca)


@register_signal(SequenceKind.MULTIECHO, ModelKind.SINGLE)
def multi_echo(
    model: TissueModel, seq: MultiEcho, params: NDArray[np.float64], b1: float, f0: float, out: Any
) -> None:
    import numpy as np

    pd, _, t2 = relaxation_times(params)
    out[:] = pd * np.exp(-seq.te / t2)


def _ellipse(alpha: Any, tr: float, pd: float, t1: float, t2: float) -> tuple[Any, Any, Any]:
    import numpy as np

    e1 = np.exp(-tr / t1)
    e2 = np.exp(-tr / t2)
    ca = np.cos(alpha)
    d = 1.0 - e1 * ca - e2 * e2 * (e1 - ca)
    g = pd * np.sin(alpha) * (1.0 - e1) / d
    a = np.full_like(g, e2)
    b = e2 * (1.0 - e1) * (1.0 + ca) / d
    return g, a, b


def ellipse_parameters(
    model: TissueModel | str, seq: SSFPEllipse, params: ArrayLike, *, b1: float = 1.0
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Return the ellipse geometry ``(G, a, b)`` of balanced SSFP per flip angle.

    The complex signal at total precession angle ``theta`` per TR is
    ``G (1 - a exp(i theta)) / (1 - b cos(theta))``.
    """
    model = get_model(model)
    if model.kind is not ModelKind.SINGLE:
        raise ContractViolation("ellipse parameters are only defined for a single compartment")
    p = model.check_parameters(params)
    pd, t1, t2 = relaxation_times(p)
    return _ellipse(seq.flip * b1, seq.tr, pd, t1, t2)


@register_signal(SequenceKind.SSFP_ELLIPSE, ModelKind.SINGLE)
def ssfp_ellipse(
    model: TissueModel, seq: SSFPEllipse, params: NDArray[np.float64], b1: float, f0: float, out: Any
) -> None:
    import numpy as np

    pd, t1, t2 = relaxation_times(params)
    g, a, b = _ellipse(seq.flip * b1, seq.tr, pd, t1, t2)
    theta = 2.0 * np.pi * f0 * seq.tr + seq.phases
    s = (
        g[:, None]
        * (1.0 - a[:, None] * np.exp(1j * theta[None, :]))
        / (1.0 - b[:, None] * np.cos(theta[None, :]))
    )
    out[:] = s.reshape(-1)
