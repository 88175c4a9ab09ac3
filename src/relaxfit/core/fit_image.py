from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Sequence

from relaxfit.errors import ContractViolation

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray
else:
    ArrayLike = Any
    NDArray = Any


def _resolve_constants(
    constants: ArrayLike | None,
    default_constants: Sequence[float],
    spatial_shape: tuple[int, ...],
) -> NDArray[Any]:
    import numpy as np

    n_consts = len(default_constants)
    n_voxels = int(np.prod(spatial_shape, dtype=np.int64))
    if constants is None:
        return np.tile(np.asarray(default_constants, dtype=np.float64), (n_voxels, 1))

    arr = np.asarray(constants, dtype=np.float64)
    if arr.shape == spatial_shape and n_consts == 1:
        return arr.reshape((-1, 1))
    if arr.shape == (*spatial_shape, n_consts):
        return arr.reshape((-1, n_consts))
    raise ContractViolation(
        f"constants shape {arr.shape} must be {spatial_shape} or {(*spatial_shape, n_consts)}"
    )


def run_fit_image(
    *,
    signal: ArrayLike,
    fit_func: Callable[[Any, Any], tuple[Any, Any]],
    n_outputs: int,
    default_constants: Sequence[float],
    constants: ArrayLike | None = None,
    mask: ArrayLike | None = None,
    n_jobs: int = 1,
    verbose: bool = False,
    desc: str = "Fit",
) -> dict[str, NDArray[Any]]:
    """Apply a per-voxel fit to an image whose last axis holds the conditions.

    Returns ``outputs`` with shape ``spatial + (n_outputs,)``, ``residuals``
    with the shape of ``signal`` and an integer ``status`` map.
    """
    import numpy as np

    from relaxfit._parallel import parallel_fit

    arr = np.asarray(signal)
    if not np.iscomplexobj(arr):
        arr = arr.astype(np.float64)
    if arr.ndim < 2:
        raise ContractViolation("signal must be at least 2D with last dim as conditions")

    spatial_shape = arr.shape[:-1]
    flat = arr.reshape((-1, arr.shape[-1]))
    consts_flat = _resolve_constants(constants, default_constants, spatial_shape)

    if mask is None:
        mask_flat = np.ones((flat.shape[0],), dtype=bool)
    else:
        mask_arr = np.asarray(mask, dtype=bool)
        if mask_arr.shape != spatial_shape:
            raise ContractViolation(f"mask shape {mask_arr.shape} must match spatial shape {spatial_shape}")
        mask_flat = mask_arr.reshape((-1,))

    flat_out = parallel_fit(
        fit_func,
        flat,
        consts_flat,
        mask_flat,
        n_outputs=n_outputs,
        n_jobs=n_jobs,
        verbose=verbose,
        desc=desc,
    )
    return {
        "outputs": flat_out["outputs"].reshape((*spatial_shape, n_outputs)),
        "residuals": flat_out["residuals"].reshape(arr.shape),
        "status": flat_out["status"].reshape(spatial_shape),
    }
