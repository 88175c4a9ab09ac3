import numpy as np
import pytest

from relaxfit.errors import ContractViolation


def test_simulate_single_voxel_with_fit_runs() -> None:
    from relaxfit import Despot1, Despot1Config, SPGRSimple
    from relaxfit.sim import simulate_single_voxel

    seq = SPGRSimple.from_degrees([3.0, 5.0, 9.0, 13.0, 18.0], tr=0.005)
    est = Despot1(Despot1Config(strategy="nlls", max_iterations=8))

    out = simulate_single_voxel(
        seq,
        "1C",
        params={"PD": 1.0, "T1": 0.9},
        noise_model="rician",
        noise_snr=200.0,
        estimator=est,
    )
    assert set(out.keys()) == {"signal_clean", "signal", "fit"}
    assert out["signal"].shape == (5,)
    assert out["signal_clean"].shape == (5,)
    assert np.isrealobj(out["signal"])
    assert not out["fit"]["diverged"]
    assert out["fit"]["outputs"][1] == pytest.approx(0.9, rel=0.2)


def test_simulate_single_voxel_no_noise() -> None:
    from relaxfit import SPGRSimple
    from relaxfit.sim import simulate_single_voxel

    seq = SPGRSimple.from_degrees([4.0, 15.0], tr=0.01)
    out = simulate_single_voxel(seq, "1C", params=[1.0, 1.0, 0.05])
    assert "fit" not in out
    assert np.array_equal(out["signal"], out["signal_clean"])


def test_simulate_single_voxel_is_reproducible_by_default() -> None:
    from relaxfit import SPGRSimple
    from relaxfit.sim import simulate_single_voxel

    seq = SPGRSimple.from_degrees([4.0, 15.0], tr=0.01)
    a = simulate_single_voxel(seq, "1C", params={"T1": 1.1}, noise_model="complex", noise_sigma=1e-3)
    b = simulate_single_voxel(seq, "1C", params={"T1": 1.1}, noise_model="complex", noise_sigma=1e-3)
    assert np.array_equal(a["signal"], b["signal"])
    assert np.iscomplexobj(a["signal"])


def test_simulate_single_voxel_rejects_bad_inputs() -> None:
    from relaxfit import SPGRSimple
    from relaxfit.sim import simulate_single_voxel

    seq = SPGRSimple.from_degrees([4.0, 15.0], tr=0.01)
    with pytest.raises(ContractViolation):
        simulate_single_voxel(seq, "1C", params={"T1": 1.0}, noise_model="poisson")
    with pytest.raises(ContractViolation):
        simulate_single_voxel(seq, "1C", params={"T2star": 0.03})
    with pytest.raises(ContractViolation):
        simulate_single_voxel(seq, "1C", params={"T1": 1.0}, noise_model="gaussian", noise_snr=0.0)


def test_sensitivity_analysis_shapes() -> None:
    from relaxfit import Despot1, SPGRSimple
    from relaxfit.sim import sensitivity_analysis

    seq = SPGRSimple.from_degrees([3.0, 5.0, 9.0, 13.0, 18.0], tr=0.005)
    res = sensitivity_analysis(
        seq,
        "1C",
        Despot1(),
        nominal_params={"PD": 1.0},
        vary_param="T1",
        lb=0.5,
        ub=1.5,
        n_steps=3,
        n_runs=4,
        noise_sigma=1e-5,
    )
    assert res["x"].shape == (3,)
    assert res["mean"].shape == (3, 2)
    assert res["std"].shape == (3, 2)
    assert np.allclose(res["mean"][:, 1], res["x"], rtol=0.05)
    assert np.all(res["n_diverged"] == 0)


def test_noise_helpers() -> None:
    from relaxfit.sim import add_complex_gaussian_noise, add_gaussian_noise, add_rician_noise

    rng = np.random.default_rng(0)
    clean = np.full((4000,), 10.0)
    noisy = add_gaussian_noise(clean, sigma=0.5, rng=rng)
    assert np.std(noisy - clean) == pytest.approx(0.5, rel=0.1)

    cplx = add_complex_gaussian_noise(clean, sigma=0.5, rng=rng)
    assert np.std(cplx.imag) == pytest.approx(0.5, rel=0.1)

    mag = add_rician_noise(np.zeros((4000,)), sigma=1.0, rng=rng)
    assert np.all(mag >= 0)
    # Rayleigh mean for a zero signal.
    assert np.mean(mag) == pytest.approx(np.sqrt(np.pi / 2), rel=0.05)

    with pytest.raises(ContractViolation):
        add_gaussian_noise(clean, sigma=-1.0, rng=rng)
