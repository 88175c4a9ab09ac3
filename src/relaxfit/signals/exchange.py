"""Bloch–McConnell propagation for exchanging pools and finite RF pulses.

Every sequence block (free relaxation, an RF pulse, spoiling) acts on the
magnetization as an affine map ``m -> A m + c``. A sequence repetition is
the composition of its blocks and the steady state is the fixed point of
that composition, ``(I - A) m = c``.

Two state layouts are used:

- longitudinal only, ``Mz`` per pool, for ideally spoiled sequences;
- full, ``[Mx (n), My (n), Mz (n)]`` for balanced or finite-pulse sequences.

The same propagators serve the single-compartment variants of sequences
that have no closed form here (finite pulses, SSFP, MPRAGE).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from relaxfit.errors import NumericalDomainError
from relaxfit.sequences import (
    AFI,
    IRSPGR,
    MPRAGE,
    MultiEcho,
    SequenceKind,
    SPGRFinite,
    SPGRSimple,
    SSFPFinite,
    SSFPSimple,
)
from relaxfit.tissue import ModelKind, TissueModel

from ._registry import register_signal
from .single import relaxation_times

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray
else:
    NDArray = Any  # type: ignore[misc,assignment]

Affine = tuple[Any, Any]

_MULTI = (ModelKind.TWO, ModelKind.THREE)
_ALL = (ModelKind.SINGLE, ModelKind.TWO, ModelKind.THREE)

# Steady-state systems with a larger condition number are treated as singular.
_MAX_CONDITION = 1e12


@dataclass(frozen=True, slots=True)
class Pools:
    """Physical description of exchanging pools.

    ``k`` is the exchange generator: ``dMz/dt`` contains ``k @ Mz``. Its
    columns sum to zero and ``k @ m0 == 0`` (detailed balance).
    """

    m0: Any
    r1: Any
    r2: Any
    k: Any

    @property
    def n(self) -> int:
        return int(self.m0.shape[0])


def _check_positive(names: tuple[str, ...], values: tuple[float, ...]) -> None:
    bad = [f"{n}={v}" for n, v in zip(names, values) if not v > 0]
    if bad:
        raise NumericalDomainError(f"relaxation and residence times must be > 0: {', '.join(bad)}")


def _two_pool_exchange(n: int, tau_m: float, f_m: float, f_ie: float) -> Any:
    import numpy as np

    k = np.zeros((n, n), dtype=np.float64)
    if f_m == 0:
        return k
    if f_ie <= 0:
        raise NumericalDomainError("exchange is undefined when the ie fraction is zero")
    k_m = 1.0 / tau_m
    k_ie = k_m * f_m / f_ie
    k[0, 0] = -k_m
    k[1, 0] = k_m
    k[1, 1] = -k_ie
    k[0, 1] = k_ie
    return k


def pools_from(model: TissueModel, params: NDArray[np.float64]) -> Pools:
    """Interpret a tissue parameter vector as exchanging pools."""
    import numpy as np

    if model.kind is ModelKind.SINGLE:
        pd, t1, t2 = relaxation_times(params)
        return Pools(
            m0=np.array([pd]),
            r1=np.array([1.0 / t1]),
            r2=np.array([1.0 / t2]),
            k=np.zeros((1, 1)),
        )

    v = model.as_dict(params)
    if model.kind is ModelKind.TWO:
        t1 = (v["T1_m"], v["T1_ie"])
        t2 = (v["T2_m"], v["T2_ie"])
        fractions = (v["f_m"],)
    else:
        t1 = (v["T1_m"], v["T1_ie"], v["T1_csf"])
        t2 = (v["T2_m"], v["T2_ie"], v["T2_csf"])
        fractions = (v["f_m"], v["f_csf"])

    _check_positive(
        ("T1",) * len(t1) + ("T2",) * len(t2) + ("tau_m",),
        t1 + t2 + (v["tau_m"],),
    )
    if any(f < 0 or f > 1 for f in fractions):
        raise NumericalDomainError(f"fractions must lie in [0, 1], got {fractions}")
    f_ie = 1.0 - sum(fractions)
    if f_ie < -1e-12:
        raise NumericalDomainError(f"fractions sum above 1: {fractions}")
    f_ie = max(f_ie, 0.0)

    f = [fractions[0], f_ie, *fractions[1:]]
    n = model.n_pools
    return Pools(
        m0=v["PD"] * np.asarray(f, dtype=np.float64),
        r1=1.0 / np.asarray(t1, dtype=np.float64),
        r2=1.0 / np.asarray(t2, dtype=np.float64),
        k=_two_pool_exchange(n, v["tau_m"], fractions[0], f_ie),
    )


# Affine map algebra ----------------------------------------------------------


def _expm_affine(generator: Any, drive: Any, t: float) -> Affine:
    """Propagator of ``dm/dt = G m + b`` over ``t`` via an augmented exponential."""
    import numpy as np
    from scipy.linalg import expm

    n = generator.shape[0]
    aug = np.zeros((n + 1, n + 1), dtype=np.float64)
    aug[:n, :n] = generator * t
    aug[:n, n] = drive * t
    e = expm(aug)
    return e[:n, :n], e[:n, n]


def chain(*ops: Affine) -> Affine:
    """Compose affine maps, applied left to right."""
    import numpy as np

    n = ops[0][0].shape[0]
    a = np.eye(n)
    c = np.zeros(n)
    for a_i, c_i in ops:
        a = a_i @ a
        c = a_i @ c + c_i
    return a, c


def apply(op: Affine, m: Any) -> Any:
    return op[0] @ m + op[1]


def steady_state(op: Affine) -> Any:
    import numpy as np

    a, c = op
    system = np.eye(a.shape[0]) - a
    try:
        cond = np.linalg.cond(system)
        if not np.isfinite(cond) or cond > _MAX_CONDITION:
            raise NumericalDomainError(f"steady-state system is singular (cond={cond:.3g})")
        return np.linalg.solve(system, c)
    except np.linalg.LinAlgError as exc:
        raise NumericalDomainError(f"steady-state system is singular: {exc}") from exc


# Longitudinal blocks ---------------------------------------------------------


def relax_z(pools: Pools, t: float) -> Affine:
    import numpy as np

    generator = -np.diag(pools.r1) + pools.k
    return _expm_affine(generator, pools.r1 * pools.m0, t)


def pulse_z(pools: Pools, angle: float) -> Affine:
    import numpy as np

    return np.cos(angle) * np.eye(pools.n), np.zeros(pools.n)


# Full blocks -----------------------------------------------------------------


def _blocks(n: int) -> tuple[slice, slice, slice]:
    return slice(0, n), slice(n, 2 * n), slice(2 * n, 3 * n)


def _bloch(pools: Pools, dw: float, w1: float) -> Affine:
    import numpy as np

    n = pools.n
    x, y, z = _blocks(n)
    eye = np.eye(n)
    transverse = -np.diag(pools.r2) + pools.k
    g = np.zeros((3 * n, 3 * n), dtype=np.float64)
    g[x, x] = transverse
    g[y, y] = transverse
    g[z, z] = -np.diag(pools.r1) + pools.k
    g[x, y] = dw * eye
    g[y, x] = -dw * eye
    g[y, z] = w1 * eye
    g[z, y] = -w1 * eye
    drive = np.zeros(3 * n, dtype=np.float64)
    drive[z] = pools.r1 * pools.m0
    return g, drive


def relax(pools: Pools, t: float, dw: float = 0.0) -> Affine:
    """Free relaxation, exchange and precession at ``dw`` rad/s over ``t``."""
    g, drive = _bloch(pools, dw, 0.0)
    return _expm_affine(g, drive, t)


def rotate_x(pools: Pools, angle: float) -> Affine:
    import numpy as np

    n = pools.n
    _, y, z = _blocks(n)
    c, s = np.cos(angle), np.sin(angle)
    r = np.eye(3 * n)
    r[y, y] = c * np.eye(n)
    r[y, z] = s * np.eye(n)
    r[z, y] = -s * np.eye(n)
    r[z, z] = c * np.eye(n)
    return r, np.zeros(3 * n)


def rotate_z(pools: Pools, angle: float) -> Affine:
    import numpy as np

    n = pools.n
    x, y, _ = _blocks(n)
    c, s = np.cos(angle), np.sin(angle)
    r = np.eye(3 * n)
    r[x, x] = c * np.eye(n)
    r[x, y] = s * np.eye(n)
    r[y, x] = -s * np.eye(n)
    r[y, y] = c * np.eye(n)
    return r, np.zeros(3 * n)


def rf_pulse(pools: Pools, angle: float, trf: float = 0.0, dw: float = 0.0) -> Affine:
    """RF rotation about x; with ``trf > 0`` relaxation and precession act during the pulse."""
    if trf <= 0:
        return rotate_x(pools, angle)
    g, drive = _bloch(pools, dw, angle / trf)
    return _expm_affine(g, drive, trf)


def spoil(pools: Pools) -> Affine:
    import numpy as np

    n = pools.n
    x, y, _ = _blocks(n)
    a = np.eye(3 * n)
    a[x, x] = 0.0
    a[y, y] = 0.0
    return a, np.zeros(3 * n)


def transverse(pools: Pools, m: Any) -> complex:
    n = pools.n
    return complex(m[:n].sum(), m[n : 2 * n].sum())


# Sequence equations ----------------------------------------------------------


@register_signal(SequenceKind.SPGR, *_MULTI)
def spgr(model: TissueModel, seq: SPGRSimple, params: Any, b1: float, f0: float, out: Any) -> None:
    """Ideally spoiled steady state, ``Mz = (I - E cos a)^-1 (I - E) M0``."""
    import numpy as np

    pools = pools_from(model, params)
    free = relax_z(pools, seq.tr)
    for i, flip in enumerate(seq.flip):
        alpha = flip * b1
        mz = steady_state(chain(pulse_z(pools, alpha), free))
        out[i] = np.sin(alpha) * mz.sum()


@register_signal(SequenceKind.SPGR_FINITE, *_ALL)
def spgr_finite(model: TissueModel, seq: SPGRFinite, params: Any, b1: float, f0: float, out: Any) -> None:
    import numpy as np

    pools = pools_from(model, params)
    dw = 2.0 * np.pi * f0
    free = relax(pools, seq.tr - seq.trf, dw)
    readout = relax(pools, seq.te - seq.trf / 2.0, dw)
    crusher = spoil(pools)
    for i, flip in enumerate(seq.flip):
        rf = rf_pulse(pools, flip * b1, seq.trf, dw)
        m = steady_state(chain(rf, free, crusher))
        out[i] = transverse(pools, apply(readout, apply(rf, m)))


def _ssfp(model: TissueModel, seq: Any, params: Any, b1: float, f0: float, out: Any, trf: float) -> None:
    import numpy as np

    pools = pools_from(model, params)
    dw = 2.0 * np.pi * f0
    free = relax(pools, seq.tr - trf, dw)
    n_phases = seq.phases.size
    for i, flip in enumerate(seq.flip):
        rf = rf_pulse(pools, flip * b1, trf, dw)
        for j, phase in enumerate(seq.phases):
            m = steady_state(chain(free, rotate_z(pools, phase), rf))
            out[i * n_phases + j] = transverse(pools, m)


@register_signal(SequenceKind.SSFP, *_ALL)
def ssfp(model: TissueModel, seq: SSFPSimple, params: Any, b1: float, f0: float, out: Any) -> None:
    """Balanced SSFP sampled immediately after the pulse."""
    _ssfp(model, seq, params, b1, f0, out, trf=0.0)


@register_signal(SequenceKind.SSFP_ELLIPSE, *_MULTI)
def ssfp_ellipse(model: TissueModel, seq: Any, params: Any, b1: float, f0: float, out: Any) -> None:
    _ssfp(model, seq, params, b1, f0, out, trf=0.0)


@register_signal(SequenceKind.SSFP_FINITE, *_ALL)
def ssfp_finite(model: TissueModel, seq: SSFPFinite, params: Any, b1: float, f0: float, out: Any) -> None:
    """Balanced SSFP sampled at the end of a finite pulse."""
    _ssfp(model, seq, params, b1, f0, out, trf=seq.trf)


@register_signal(SequenceKind.IRSPGR, *_MULTI)
def irspgr(model: TissueModel, seq: IRSPGR, params: Any, b1: float, f0: float, out: Any) -> None:
    import numpy as np

    pools = pools_from(model, params)
    alpha = seq.flip * b1
    readout = pulse_z(pools, alpha)
    inversion = pulse_z(pools, np.pi * b1)
    for i, ti in enumerate(seq.ti):
        mz = steady_state(
            chain(readout, relax_z(pools, seq.tr_inv - ti), inversion, relax_z(pools, ti))
        )
        out[i] = np.sin(alpha) * mz.sum()


@register_signal(SequenceKind.MPRAGE, *_ALL)
def mprage(model: TissueModel, seq: MPRAGE, params: Any, b1: float, f0: float, out: Any) -> None:
    import numpy as np

    pools = pools_from(model, params)
    alpha = seq.flip * b1
    inversion = pulse_z(pools, np.pi * b1)
    echo = chain(pulse_z(pools, alpha), relax_z(pools, seq.tr))
    train = chain(*([echo] * seq.n_readout))
    to_centre = chain(*([echo] * seq.k_zero)) if seq.k_zero else None
    delay = relax_z(pools, seq.td)
    for i, ti in enumerate(seq.ti):
        prep = chain(inversion, relax_z(pools, ti))
        m = apply(prep, steady_state(chain(prep, train, delay)))
        if to_centre is not None:
            m = apply(to_centre, m)
        out[i] = np.sin(alpha) * m.sum()


@register_signal(SequenceKind.AFI, *_MULTI)
def afi(model: TissueModel, seq: AFI, params: Any, b1: float, f0: float, out: Any) -> None:
    import numpy as np

    pools = pools_from(model, params)
    alpha = seq.flip * b1
    first = chain(pulse_z(pools, alpha), relax_z(pools, seq.tr1))
    second = chain(pulse_z(pools, alpha), relax_z(pools, seq.tr2))
    m1 = steady_state(chain(first, second))
    m2 = apply(first, m1)
    out[0] = np.sin(alpha) * m1.sum()
    out[1] = np.sin(alpha) * m2.sum()


@register_signal(SequenceKind.MULTIECHO, *_MULTI)
def multi_echo(model: TissueModel, seq: MultiEcho, params: Any, b1: float, f0: float, out: Any) -> None:
    """Fraction-weighted mono-exponential decays; exchange during the echo train is neglected."""
    import numpy as np

    pools = pools_from(model, params)
    out[:] = np.exp(-np.outer(seq.te, pools.r2)) @ pools.m0
