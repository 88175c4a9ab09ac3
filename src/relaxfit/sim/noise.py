from __future__ import annotations

from typing import Any

from relaxfit.errors import ContractViolation


def _check_sigma(sigma: float) -> float:
    if sigma < 0:
        raise ContractViolation("sigma must be >= 0")
    return float(sigma)


def add_gaussian_noise(signal: Any, *, sigma: float, rng: Any) -> Any:
    """Add i.i.d. Gaussian noise to a real-valued signal.

    Parameters
    ----------
    signal:
        Array-like.
    sigma:
        Standard deviation of the additive noise.
    rng:
        NumPy Generator-compatible object with `.normal`.
    """
    import numpy as np

    sigma = _check_sigma(sigma)
    x = np.asarray(signal, dtype=np.float64)
    if sigma == 0:
        return x
    return x + rng.normal(loc=0.0, scale=sigma, size=x.shape)


def add_complex_gaussian_noise(signal: Any, *, sigma: float, rng: Any) -> Any:
    """Add independent Gaussian noise of std ``sigma`` to real and imaginary parts."""
    import numpy as np

    sigma = _check_sigma(sigma)
    s = np.asarray(signal, dtype=np.complex128)
    if sigma == 0:
        return s
    n_re = rng.normal(loc=0.0, scale=sigma, size=s.shape)
    n_im = rng.normal(loc=0.0, scale=sigma, size=s.shape)
    return s + (n_re + 1j * n_im)


def add_rician_noise(signal: Any, *, sigma: float, rng: Any) -> Any:
    """Magnitude of a complex signal corrupted by complex Gaussian noise.

    For a real signal this is the usual Rician model
    ``y = sqrt((s + n1)^2 + n2^2)``.
    """
    import numpy as np

    return np.abs(add_complex_gaussian_noise(signal, sigma=sigma, rng=rng))
