"""Region-based parallel voxel fitting for relaxfit."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from relaxfit.errors import ContractViolation, FitDivergedError

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray
else:
    NDArray = Any

logger = logging.getLogger("relaxfit")

STATUS_MASKED = -1
STATUS_OK = 0
STATUS_DIVERGED = 1

VoxelFitFunc = Callable[[Any, Any], tuple[Any, Any]]


def resolve_n_jobs(n_jobs: int) -> int:
    """Map ``n_jobs`` to a worker count, capped at the hardware limit."""
    from joblib import cpu_count

    limit = max(int(cpu_count()), 1)
    if n_jobs == -1:
        return limit
    if n_jobs < 1:
        raise ContractViolation(f"n_jobs must be -1 or >= 1, got {n_jobs}")
    return min(int(n_jobs), limit)


def parallel_fit(
    fit_func: VoxelFitFunc,
    data_flat: NDArray[Any],
    consts_flat: NDArray[np.float64],
    mask_flat: NDArray[np.bool_],
    *,
    n_outputs: int,
    n_jobs: int = 1,
    verbose: bool = False,
    desc: str = "Fitting",
) -> dict[str, NDArray[Any]]:
    """Run voxel-wise fitting over contiguous regions of the masked voxels.

    Parameters
    ----------
    fit_func : callable
        ``fit_func(data, constants) -> (outputs, residuals)`` for one voxel.
        It may raise :class:`FitDivergedError`, which marks the voxel as
        diverged without stopping the batch. Any other error propagates.
    data_flat : ndarray
        Data of shape (n_voxels, n_conditions).
    consts_flat : ndarray
        Per-voxel constants of shape (n_voxels, n_constants).
    mask_flat : ndarray
        Boolean mask of shape (n_voxels,).
    n_outputs : int
        Length of the outputs vector returned by ``fit_func``.
    n_jobs : int, default=1
        Number of worker threads. -1 uses all CPUs.
    verbose : bool, default=False
        If True, show a progress bar and log info.
    desc : str, default="Fitting"
        Description for progress bar and log lines.

    Returns
    -------
    dict
        ``outputs`` (n_voxels, n_outputs), ``residuals`` (n_voxels,
        n_conditions) and ``status`` (n_voxels,). Masked and diverged voxels
        hold NaN.
    """
    import numpy as np

    n_total = int(data_flat.shape[0])
    outputs = np.full((n_total, n_outputs), np.nan, dtype=np.float64)
    residuals = np.full(data_flat.shape, np.nan, dtype=np.float64)
    status = np.full((n_total,), STATUS_MASKED, dtype=np.int8)
    out = {"outputs": outputs, "residuals": residuals, "status": status}

    indices = np.flatnonzero(mask_flat)
    n_voxels = len(indices)
    if n_voxels == 0:
        logger.debug("No voxels to fit (empty mask)")
        return out

    n_workers = min(resolve_n_jobs(n_jobs), n_voxels)
    if verbose:
        logger.info("%s: %d voxels, %d worker(s)", desc, n_voxels, n_workers)

    # Each region writes only to its own rows of the shared output arrays.
    def _fit_region(region: NDArray[np.intp]) -> int:
        n_diverged = 0
        for idx in region:
            try:
                out_vec, res_vec = fit_func(data_flat[idx], consts_flat[idx])
            except FitDivergedError as exc:
                status[idx] = STATUS_DIVERGED
                n_diverged += 1
                logger.debug("voxel %d diverged: %s", idx, exc)
                continue
            outputs[idx] = out_vec
            residuals[idx] = res_vec
            status[idx] = STATUS_OK
        return n_diverged

    if n_workers == 1:
        if verbose:
            from tqdm import tqdm

            n_diverged = sum(
                _fit_region(region)
                for region in tqdm(np.array_split(indices, n_voxels), desc=desc, unit="voxel")
            )
        else:
            n_diverged = _fit_region(indices)
    else:
        from joblib import Parallel, delayed

        regions = np.array_split(indices, n_workers)
        if verbose:
            from tqdm import tqdm

            regions = tqdm(regions, desc=desc, unit="region")
        counts = Parallel(n_jobs=n_workers, prefer="threads")(
            delayed(_fit_region)(region) for region in regions
        )
        n_diverged = int(sum(counts))

    if n_diverged:
        logger.debug("%s: %d of %d voxels diverged", desc, n_diverged, n_voxels)
    if verbose:
        logger.info("%s complete: %d voxels processed", desc, n_voxels)
    return out
