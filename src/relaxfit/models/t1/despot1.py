from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from relaxfit.config import Despot1Config, Strategy
from relaxfit.core.arrays import as_1d_float_array, as_magnitude
from relaxfit.core.result_schema import FitResult
from relaxfit.errors import ContractViolation, FitDivergedError
from relaxfit.sequences import SPGRSimple
from relaxfit.signals import signal as forward_signal
from relaxfit.tissue import SINGLE_COMPONENT, TissueModel

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import ArrayLike, NDArray
else:
    ArrayLike = Any  # type: ignore[misc,assignment]
    NDArray = Any  # type: ignore[misc,assignment]

logger = logging.getLogger("relaxfit")

# Lower bound on T1 (s) during the nonlinear fit.
_T1_FLOOR = 1e-6


def _linearize(seq: SPGRSimple, data: NDArray[np.float64], b1: float) -> tuple[Any, Any, Any]:
    """Return usable flip angles, the design matrix [X, 1] and Y.

    Conditions where sin(flip * B1) is zero carry no information about the
    line and are left out.
    """
    import numpy as np

    alpha = seq.flip * b1
    usable = np.sin(alpha) != 0
    if int(usable.sum()) < 2:
        raise ContractViolation("need at least two flip angles with sin(flip * B1) != 0")
    alpha = alpha[usable]
    s = data[usable]
    y = s / np.sin(alpha)
    x = s / np.tan(alpha)
    design = np.column_stack([x, np.ones_like(x)])
    return alpha, design, y


def _solve_line(design: Any, y: Any, weights: Any | None = None) -> Any:
    """Solve the (weighted) normal equations for [slope, intercept]."""
    import numpy as np

    wx = design if weights is None else design * weights[:, None]
    try:
        return np.linalg.solve(design.T @ wx, wx.T @ y)
    except np.linalg.LinAlgError as exc:
        raise FitDivergedError("normal equations are singular") from exc


def _line_to_params(b: Any, tr: float) -> Any:
    """slope = E1 = exp(-TR/T1), intercept = PD (1 - E1)."""
    import numpy as np

    slope, intercept = float(b[0]), float(b[1])
    t1 = -tr / np.log(slope)
    pd = intercept / (1.0 - slope)
    return np.array([pd, t1], dtype=np.float64)


def _spgr_weights(alpha: Any, tr: float, t1: float) -> Any:
    import numpy as np

    e1 = np.exp(-tr / t1)
    return (np.sin(alpha) / (1.0 - e1 * np.cos(alpha))) ** 2


def _is_physical(outputs: Any) -> bool:
    import numpy as np

    pd, t1 = outputs
    return bool(np.isfinite(pd) and np.isfinite(t1) and t1 > 0)


@dataclass(frozen=True, slots=True)
class Despot1:
    """DESPOT1 estimation of PD and T1 from variable flip angle SPGR data.

    Signal model (single compartment, SPGR):
        S = PD * sin(a) * (1 - E1) / (1 - E1 * cos(a))
        E1 = exp(-TR / T1),  a = flip * B1

    Strategies (``config.strategy``):
        - LLS: closed-form regression of ``S/sin(a)`` on ``S/tan(a)``.
        - WLLS: the same regression reweighted ``config.max_iterations`` times
          with ``w = [sin(a) / (1 - E1 cos(a))]^2`` at the current T1.
        - NLLS: bounded trust-region least squares on the signal magnitude,
          seeded from the LLS estimate.

    Outputs are ``[PD, T1]`` (T1 in the units of ``sequence.tr``); the only
    per-voxel constant is ``B1``.
    """

    config: Despot1Config = field(default_factory=Despot1Config)

    model: ClassVar[TissueModel] = SINGLE_COMPONENT
    output_names: ClassVar[tuple[str, ...]] = ("PD", "T1")
    constant_names: ClassVar[tuple[str, ...]] = ("B1",)

    @property
    def n_outputs(self) -> int:
        return len(self.output_names)

    @property
    def n_constants(self) -> int:
        return len(self.constant_names)

    def default_constants(self) -> NDArray[np.float64]:
        import numpy as np

        return np.asarray(self.config.default_constants, dtype=np.float64)

    def _check_sequence(self, sequence: Any) -> SPGRSimple:
        if not isinstance(sequence, SPGRSimple):
            raise ContractViolation(f"DESPOT1 needs an SPGRSimple sequence, got {type(sequence).__name__}")
        return sequence

    def _b1(self, constants: ArrayLike | None) -> float:
        import numpy as np

        if constants is None:
            return float(self.config.default_constants[0])
        c = as_1d_float_array(constants, name="constants")
        if c.shape[0] != self.n_constants:
            raise ContractViolation(f"expected {self.n_constants} constant (B1), got {c.shape[0]}")
        b1 = float(c[0])
        if not np.isfinite(b1) or b1 <= 0:
            raise ContractViolation(f"B1 must be finite and > 0, got {b1}")
        return b1

    def _check_data(self, seq: SPGRSimple, data: ArrayLike) -> NDArray[np.float64]:
        y = as_magnitude(data, name="data")
        if y.shape[0] != seq.condition_count():
            raise ContractViolation(f"data length {y.shape[0]} must match {seq.condition_count()} flip angles")
        return y

    def _linear(self, seq: SPGRSimple, y: Any, b1: float, n_passes: int) -> Any:
        alpha, design, ydata = _linearize(seq, y, b1)
        outputs = _line_to_params(_solve_line(design, ydata), seq.tr)
        for _ in range(n_passes):
            weights = _spgr_weights(alpha, seq.tr, outputs[1])
            outputs = _line_to_params(_solve_line(design, ydata, weights), seq.tr)
        return outputs

    def _seed(self, seq: SPGRSimple, y: Any, b1: float) -> Any:
        import numpy as np

        try:
            seed = self._linear(seq, y, b1, n_passes=0)
        except FitDivergedError:
            seed = None
        if seed is not None and _is_physical(seed) and seed[0] >= 0:
            return seed
        sin_max = float(np.max(np.abs(np.sin(seq.flip * b1))))
        pd0 = float(np.max(y)) / sin_max if sin_max > 0 else 1.0
        t1_0 = float(self.model.defaults[self.model.index("T1")])
        logger.debug("DESPOT1 NLLS: linear seed unusable, starting from PD=%g T1=%g", pd0, t1_0)
        return np.array([max(pd0, 0.0), t1_0], dtype=np.float64)

    def _nonlinear(self, seq: SPGRSimple, y: Any, b1: float) -> Any:
        import numpy as np
        from scipy.optimize import least_squares

        if not np.all(np.isfinite(y)):
            raise FitDivergedError("data contain non-finite values", outputs=np.full((2,), np.nan))
        x0 = self._seed(seq, y, b1)
        if not np.all(np.isfinite(x0)):
            raise FitDivergedError(f"no finite starting point (seed {x0})", outputs=x0)
        n_iter = self.config.max_iterations
        if n_iter == 0:
            return x0

        params = self.model.default_parameters()
        buf = np.empty((seq.size,), dtype=np.complex128)

        def residuals(p: NDArray[np.float64]) -> NDArray[np.float64]:
            params[0] = p[0]
            params[1] = p[1]
            return np.abs(forward_signal(self.model, seq, params, b1=b1, out=buf)) - y

        lower = np.array([0.0, _T1_FLOOR], dtype=np.float64)
        upper = np.array([np.inf, np.inf], dtype=np.float64)
        result = least_squares(
            residuals,
            x0=np.clip(x0, lower, upper),
            bounds=(lower, upper),
            method="trf",
            x_scale="jac",
            ftol=self.config.tolerance,
            xtol=self.config.tolerance,
            max_nfev=n_iter * (seq.size + 1),
        )
        return np.asarray(result.x, dtype=np.float64)

    def residuals(self, sequence: SPGRSimple, outputs: ArrayLike, data: ArrayLike, b1: float = 1.0) -> NDArray[np.float64]:
        """Return ``|S(outputs)| - data`` per flip angle."""
        import numpy as np

        pd, t1 = (float(v) for v in outputs)
        params = self.model.default_parameters()
        params[0] = pd
        params[1] = t1
        theory = np.abs(forward_signal(self.model, sequence, params, b1=b1))
        return theory - as_magnitude(data, name="data")

    def estimate(
        self, sequence: SPGRSimple, data: ArrayLike, constants: ArrayLike | None = None
    ) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Estimate ``[PD, T1]`` for one voxel.

        Parameters
        ----------
        sequence : SPGRSimple
            Flip angles (radians) and TR shared by all voxels.
        data : array-like
            One magnitude (or complex) value per flip angle.
        constants : array-like, optional
            ``[B1]``. Defaults to ``config.default_constants``.

        Returns
        -------
        outputs, residuals
            ``outputs = [PD, T1]``; ``residuals = |S(outputs)| - |data|``.

        Raises
        ------
        ContractViolation
            Wrong sequence type, data length or constants.
        FitDivergedError
            T1 is non-finite or non-positive after the chosen strategy.
        """
        import numpy as np

        seq = self._check_sequence(sequence)
        y = self._check_data(seq, data)
        b1 = self._b1(constants)
        strategy = self.config.strategy

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            if strategy is Strategy.NLLS:
                outputs = self._nonlinear(seq, y, b1)
            else:
                n_passes = self.config.max_iterations if strategy is Strategy.WLLS else 0
                outputs = self._linear(seq, y, b1, n_passes)

        if not _is_physical(outputs):
            raise FitDivergedError(
                f"{strategy.long_name} gave PD={outputs[0]:g}, T1={outputs[1]:g}", outputs=outputs
            )
        return outputs, self.residuals(seq, outputs, y, b1)

    def fit(self, sequence: SPGRSimple, signal: ArrayLike, *, b1: float | None = None) -> FitResult:
        """Fit one voxel and return a :class:`FitResult` with keys ``pd`` and ``t1``."""
        import numpy as np

        constants = None if b1 is None else (b1,)
        outputs, resid = self.estimate(sequence, signal, constants)
        return FitResult(
            params={"pd": float(outputs[0]), "t1": float(outputs[1])},
            quality={
                "rmse": float(np.sqrt(np.mean(resid**2))),
                "n_points": int(resid.size),
                "status": "ok",
            },
            diagnostics={
                "residuals": resid,
                "b1": self._b1(constants),
                "strategy": self.config.strategy.value,
            },
        )

    def fit_image(
        self,
        sequence: SPGRSimple,
        signal: ArrayLike,
        *,
        b1: ArrayLike | None = None,
        mask: ArrayLike | None = None,
        n_jobs: int = 1,
        verbose: bool = False,
    ) -> FitResult:
        """Voxel-wise fit on an image/volume.

        Parameters
        ----------
        sequence : SPGRSimple
            Shared acquisition constants.
        signal : array-like
            Input array with last dim as flip angles.
        b1 : array-like, optional
            B1 ratio map with the spatial shape of ``signal``.
        mask : array-like, optional
            Boolean spatial mask; voxels outside are not fitted.
        n_jobs : int, default=1
            Number of worker threads. -1 uses all CPUs.
        verbose : bool, default=False
            If True, show progress bar and log info.

        Returns
        -------
        FitResult
            ``pd`` and ``t1`` maps (NaN where masked or diverged);
            diagnostics hold the ``residuals`` array and a ``status`` map
            (0 ok, 1 diverged, -1 masked).
        """
        import numpy as np

        from relaxfit._parallel import STATUS_DIVERGED, STATUS_OK
        from relaxfit.core.fit_image import run_fit_image

        seq = self._check_sequence(sequence)
        arr = np.asarray(signal)
        if arr.ndim == 1:
            if mask is not None:
                raise ContractViolation("mask must be None for 1D data")
            return self.fit(seq, arr, b1=None if b1 is None else float(np.asarray(b1)))
        if arr.shape[-1] != seq.size:
            raise ContractViolation(f"data last dim {arr.shape[-1]} must match {seq.size} flip angles")

        maps = run_fit_image(
            signal=arr,
            fit_func=lambda data, consts: self.estimate(seq, data, consts),
            n_outputs=self.n_outputs,
            default_constants=self.config.default_constants,
            constants=b1,
            mask=mask,
            n_jobs=n_jobs,
            verbose=verbose,
            desc=f"DESPOT1 {self.config.strategy.value.upper()}",
        )
        outputs, resid, status = maps["outputs"], maps["residuals"], maps["status"]
        n_diverged = int(np.count_nonzero(status == STATUS_DIVERGED))
        with np.errstate(invalid="ignore"):
            rmse = np.sqrt(np.mean(resid**2, axis=-1))
        return FitResult(
            params={"pd": outputs[..., 0], "t1": outputs[..., 1]},
            quality={
                "rmse": rmse,
                "n_points": int(seq.size),
                "status": "ok" if n_diverged == 0 else "partial",
            },
            diagnostics={
                "residuals": resid,
                "status": status,
                "n_fitted": int(np.count_nonzero(status == STATUS_OK)),
                "n_diverged": n_diverged,
                "strategy": self.config.strategy.value,
            },
        )
