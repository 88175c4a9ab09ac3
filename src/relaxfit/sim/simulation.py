from __future__ import annotations

from typing import Any, Mapping

from relaxfit.errors import ContractViolation, FitDivergedError
from relaxfit.tissue import TissueModel, get_model

_NOISE_MODELS = ("none", "complex", "gaussian", "rician")


def _param_vector(model: TissueModel, params: Mapping[str, float] | Any) -> Any:
    import numpy as np

    if isinstance(params, Mapping):
        unknown = set(params) - set(model.names)
        if unknown:
            raise ContractViolation(f"unknown {model.name} parameters: {sorted(unknown)}")
        p = model.default_parameters()
        for key, value in params.items():
            p[model.index(key)] = float(value)
        return p
    return model.check_parameters(np.asarray(params, dtype=np.float64))


def _add_noise(signal_clean: Any, *, noise_model: str, sigma: float, rng: Any) -> Any:
    import numpy as np

    from .noise import add_complex_gaussian_noise, add_gaussian_noise, add_rician_noise

    if noise_model == "none":
        return signal_clean
    if noise_model == "complex":
        return add_complex_gaussian_noise(signal_clean, sigma=sigma, rng=rng)
    if noise_model == "gaussian":
        return add_gaussian_noise(np.abs(signal_clean), sigma=sigma, rng=rng)
    return add_rician_noise(signal_clean, sigma=sigma, rng=rng)


def simulate_single_voxel(
    sequence: Any,
    model: TissueModel | str,
    *,
    params: Mapping[str, float] | Any,
    b1: float = 1.0,
    f0: float = 0.0,
    noise_model: str = "none",
    noise_sigma: float = 0.0,
    noise_snr: float | None = None,
    rng: Any | None = None,
    estimator: Any | None = None,
) -> dict[str, Any]:
    """Simulate one voxel (optionally add noise and fit it back).

    Parameters
    ----------
    sequence : sequence descriptor
        Acquisition to simulate.
    model : TissueModel or str
        Tissue model of ``params``.
    params : dict or array-like
        Tissue parameters by name (missing names take model defaults) or as
        a full positional vector.
    b1, f0 : float, optional
        Transmit scale and off-resonance (Hz) used for the simulation.
    noise_model : {"none", "complex", "gaussian", "rician"}, optional
        ``complex`` adds complex Gaussian noise to the complex signal,
        ``gaussian`` adds real noise to the magnitude and ``rician`` returns
        the magnitude of the complex-noise signal.
    noise_sigma : float, optional
        Noise standard deviation.
    noise_snr : float, optional
        If set, sigma is derived from peak/snr.
    rng : object, optional
        NumPy Generator-compatible object.
    estimator : object, optional
        Estimator with ``estimate(sequence, data, constants)``; when given
        the noisy signal is fitted with ``constants=[b1]``.

    Returns
    -------
    dict
        ``signal_clean``, ``signal`` and, with an estimator, ``fit`` (a dict
        of outputs and residuals, or ``{"diverged": True}``).
    """
    import numpy as np

    from relaxfit.signals import signal as forward_signal

    model = get_model(model)
    nm = str(noise_model).lower().strip()
    if nm not in _NOISE_MODELS:
        raise ContractViolation(f"unknown noise_model: {noise_model!r}")

    p = _param_vector(model, params)
    signal_clean = forward_signal(model, sequence, p, b1=b1, f0=f0)

    sigma = float(noise_sigma)
    if noise_snr is not None:
        if noise_snr <= 0:
            raise ContractViolation("noise_snr must be > 0")
        peak = float(np.max(np.abs(signal_clean)))
        sigma = 0.0 if peak == 0.0 else peak / float(noise_snr)
    if rng is None:
        rng = np.random.default_rng(0)
    signal = _add_noise(signal_clean, noise_model=nm, sigma=sigma, rng=rng)

    out: dict[str, Any] = {"signal_clean": signal_clean, "signal": signal}
    if estimator is not None:
        try:
            outputs, residuals = estimator.estimate(sequence, signal, [b1])
        except FitDivergedError:
            out["fit"] = {"diverged": True}
        else:
            out["fit"] = {"outputs": outputs, "residuals": residuals, "diverged": False}
    return out


def sensitivity_analysis(
    sequence: Any,
    model: TissueModel | str,
    estimator: Any,
    *,
    nominal_params: Mapping[str, float],
    vary_param: str,
    lb: float,
    ub: float,
    n_steps: int = 10,
    n_runs: int = 20,
    b1: float = 1.0,
    noise_model: str = "complex",
    noise_sigma: float = 0.0,
    rng: Any | None = None,
) -> dict[str, Any]:
    """One-parameter-at-a-time sensitivity analysis.

    For each of ``n_steps`` values of ``vary_param`` between ``lb`` and
    ``ub``, simulate ``n_runs`` noisy voxels and fit them back.

    Returns
    -------
    dict
        ``x`` (varied values), ``mean`` and ``std`` of the estimator outputs
        over converged runs (shape ``(n_steps, n_outputs)``) and
        ``n_diverged`` per step.
    """
    import numpy as np

    if n_steps <= 1:
        raise ContractViolation("n_steps must be >= 2")
    if n_runs <= 0:
        raise ContractViolation("n_runs must be >= 1")
    model = get_model(model)
    model.index(vary_param)
    if rng is None:
        rng = np.random.default_rng(0)

    x = np.linspace(float(lb), float(ub), int(n_steps))
    n_outputs = len(estimator.output_names)
    mean = np.full((x.size, n_outputs), np.nan)
    std = np.full((x.size, n_outputs), np.nan)
    n_diverged = np.zeros((x.size,), dtype=np.int64)
    for i, value in enumerate(x):
        params = {**nominal_params, vary_param: float(value)}
        fits = []
        for _ in range(int(n_runs)):
            res = simulate_single_voxel(
                sequence,
                model,
                params=params,
                b1=b1,
                noise_model=noise_model,
                noise_sigma=noise_sigma,
                rng=rng,
                estimator=estimator,
            )
            if res["fit"]["diverged"]:
                n_diverged[i] += 1
            else:
                fits.append(res["fit"]["outputs"])
        if fits:
            stacked = np.vstack(fits)
            mean[i] = stacked.mean(axis=0)
            std[i] = stacked.std(axis=0)
    return {"x": x, "mean": mean, "std": std, "n_diverged": n_diverged}
