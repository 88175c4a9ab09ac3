from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

from relaxfit.errors import ContractViolation, NumericalDomainError
from relaxfit.sequences import SequenceKind
from relaxfit.tissue import ModelKind, TissueModel, get_model

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import ArrayLike, NDArray
else:
    ArrayLike = Any  # type: ignore[misc,assignment]
    NDArray = Any  # type: ignore[misc,assignment]

# fn(model, sequence, params, b1, f0, out) fills ``out`` in place.
SignalFunc = Callable[[TissueModel, Any, Any, float, float, Any], None]

_SIGNALS: dict[tuple[SequenceKind, ModelKind], SignalFunc] = {}


def register_signal(sequence_kind: SequenceKind, *model_kinds: ModelKind) -> Callable[[SignalFunc], SignalFunc]:
    """Register a forward equation for one sequence kind and some model kinds."""

    def decorator(func: SignalFunc) -> SignalFunc:
        for model_kind in model_kinds:
            key = (sequence_kind, model_kind)
            if key in _SIGNALS:
                raise ContractViolation(f"signal for {sequence_kind.value}/{model_kind.name} already registered")
            _SIGNALS[key] = func
        return func

    return decorator


def registered_pairs() -> list[tuple[SequenceKind, ModelKind]]:
    return sorted(_SIGNALS, key=lambda key: (key[0].value, key[1].value))


def _lookup(sequence: Any, model: TissueModel) -> SignalFunc:
    kind = getattr(sequence, "kind", None)
    if not isinstance(kind, SequenceKind):
        raise ContractViolation(f"not a sequence descriptor: {sequence!r}")
    try:
        return _SIGNALS[(kind, model.kind)]
    except KeyError:
        raise ContractViolation(f"no signal equation for {kind.value} with model {model.name}") from None


def _output_buffer(out: NDArray[Any] | None, size: int) -> NDArray[np.complex128]:
    import numpy as np

    if out is None:
        return np.empty((size,), dtype=np.complex128)
    if not isinstance(out, np.ndarray) or out.dtype != np.complex128 or out.shape != (size,):
        raise ContractViolation(f"out must be a complex128 array of shape ({size},)")
    return out


def signal(
    model: TissueModel | str,
    sequence: Any,
    params: ArrayLike,
    *,
    b1: float = 1.0,
    f0: float = 0.0,
    out: NDArray[np.complex128] | None = None,
) -> NDArray[np.complex128]:
    """Evaluate the forward signal of ``sequence`` for one tissue parameter vector.

    Parameters
    ----------
    model : TissueModel or str
        Tissue model describing the layout of ``params``.
    sequence : sequence descriptor
        One of the descriptors in :mod:`relaxfit.sequences`.
    params : array-like
        Tissue parameter vector, length ``model.n_parameters``.
    b1 : float, default=1.0
        Transmit-field scale applied to every nominal flip angle.
    f0 : float, default=0.0
        Off-resonance frequency in Hz.
    out : ndarray, optional
        complex128 buffer of length ``sequence.size`` to write into.

    Returns
    -------
    ndarray
        Complex predicted measurement vector (``out`` when given).

    Raises
    ------
    ContractViolation
        Wrong parameter count, unknown sequence/model pair or bad buffer.
    NumericalDomainError
        Parameters outside the physical domain of the model, or a steady
        state that cannot be computed.
    """
    import numpy as np

    model = get_model(model)
    p = model.check_parameters(params)
    func = _lookup(sequence, model)
    b1 = float(b1)
    if not np.isfinite(b1) or b1 <= 0:
        raise ContractViolation(f"b1 must be > 0, got {b1}")
    buf = _output_buffer(out, sequence.size)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        func(model, sequence, p, b1, float(f0), buf)
    if not np.all(np.isfinite(buf)):
        raise NumericalDomainError(
            f"{sequence.kind.value} signal is not finite for {model.name} parameters {p}"
        )
    return buf


def synthesize(
    sequence: Any,
    model: TissueModel | str,
    params: ArrayLike,
    noise_sigma: float = 0.0,
    *,
    b1: float = 1.0,
    f0: float = 0.0,
    rng: Any | None = None,
) -> NDArray[np.complex128]:
    """Simulate a measurement vector, optionally with complex Gaussian noise.

    ``noise_sigma`` is the standard deviation of the noise added to each of
    the real and imaginary channels of every condition.
    """
    import numpy as np

    from relaxfit.sim.noise import add_complex_gaussian_noise

    clean = signal(model, sequence, params, b1=b1, f0=f0)
    if noise_sigma == 0:
        return clean
    if rng is None:
        rng = np.random.default_rng()
    return add_complex_gaussian_noise(clean, sigma=noise_sigma, rng=rng)
