from __future__ import annotations

from typing import TYPE_CHECKING, Any

from relaxfit.errors import ContractViolation

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import ArrayLike, NDArray
else:
    ArrayLike = Any
    NDArray = Any


def as_1d_float_array(values: ArrayLike, *, name: str) -> NDArray[np.float64]:
    import numpy as np

    array = np.atleast_1d(np.asarray(values, dtype=np.float64))
    if array.ndim != 1:
        raise ContractViolation(f"{name} must be 1D, got shape={array.shape}")
    return array


def as_readonly_1d(values: ArrayLike, *, name: str) -> NDArray[np.float64]:
    """Copy ``values`` into a finite, read-only 1D float array."""
    import numpy as np

    array = np.array(as_1d_float_array(values, name=name), copy=True)
    if array.size == 0:
        raise ContractViolation(f"{name} must not be empty")
    if not np.all(np.isfinite(array)):
        raise ContractViolation(f"{name} must contain only finite values")
    array.setflags(write=False)
    return array


def as_magnitude(values: ArrayLike, *, name: str) -> NDArray[np.float64]:
    """Return real data as float64 and complex data as its modulus."""
    import numpy as np

    array = np.atleast_1d(np.asarray(values))
    if array.ndim != 1:
        raise ContractViolation(f"{name} must be 1D, got shape={array.shape}")
    if np.iscomplexobj(array):
        return np.abs(array).astype(np.float64)
    return array.astype(np.float64)
