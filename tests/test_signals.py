import numpy as np
import pytest

from relaxfit.errors import ContractViolation, NumericalDomainError
from relaxfit.sequences import (
    AFI,
    IRSPGR,
    MPRAGE,
    MultiEcho,
    SequenceKind,
    SPGRFinite,
    SPGRSimple,
    SSFPEllipse,
    SSFPFinite,
    SSFPSimple,
)
from relaxfit.signals import ellipse_parameters, register_signal, registered_pairs, signal, synthesize
from relaxfit.tissue import SINGLE_COMPONENT, THREE_COMPONENT, TWO_COMPONENT, ModelKind

FLIPS_DEG = np.array([3.0, 4.0, 5.0, 6.0, 7.0, 9.0, 13.0, 18.0])
TR = 0.005
SINGLE = np.array([1.0, 0.85, 0.05])


def _spgr_closed_form(pd: float, t1: float, alpha, tr: float):
    e1 = np.exp(-tr / t1)
    return pd * np.sin(alpha) * (1 - e1) / (1 - e1 * np.cos(alpha))


def _identical_pools(pd: float, t1: float, t2: float, model=TWO_COMPONENT):
    v = model.as_dict(model.default_parameters())
    v["PD"] = pd
    for key in v:
        if key.startswith("T1_"):
            v[key] = t1
        elif key.startswith("T2_"):
            v[key] = t2
    return np.array([v[name] for name in model.names])


def test_every_sequence_has_an_equation_for_every_model() -> None:
    pairs = set(registered_pairs())
    for kind in SequenceKind:
        for model_kind in ModelKind:
            assert (kind, model_kind) in pairs


def test_spgr_matches_closed_form() -> None:
    seq = SPGRSimple.from_degrees(FLIPS_DEG, tr=TR)
    s = signal(SINGLE_COMPONENT, seq, SINGLE)
    assert s.dtype == np.complex128
    assert s.shape == (8,)
    assert np.allclose(s.imag, 0.0)
    assert np.allclose(s.real, _spgr_closed_form(1.0, 0.85, seq.flip, TR), rtol=1e-12)


def test_b1_scales_every_flip_angle() -> None:
    seq = SPGRSimple.from_degrees(FLIPS_DEG, tr=TR)
    scaled = SPGRSimple(flip=seq.flip * 0.9, tr=TR)
    assert np.allclose(signal("1C", seq, SINGLE, b1=0.9), signal("1C", scaled, SINGLE), rtol=1e-12)


def test_out_buffer_is_filled_in_place() -> None:
    seq = SPGRSimple.from_degrees(FLIPS_DEG, tr=TR)
    buf = np.zeros((8,), dtype=np.complex128)
    res = signal(SINGLE_COMPONENT, seq, SINGLE, out=buf)
    assert res is buf
    assert np.all(buf.real > 0)
    with pytest.raises(ContractViolation):
        signal(SINGLE_COMPONENT, seq, SINGLE, out=np.zeros((8,), dtype=np.float64))
    with pytest.raises(ContractViolation):
        signal(SINGLE_COMPONENT, seq, SINGLE, out=np.zeros((3,), dtype=np.complex128))


def test_contract_violations() -> None:
    seq = SPGRSimple.from_degrees(FLIPS_DEG, tr=TR)
    with pytest.raises(ContractViolation):
        signal(SINGLE_COMPONENT, seq, [1.0, 0.85])
    with pytest.raises(ContractViolation):
        signal(SINGLE_COMPONENT, object(), SINGLE)
    with pytest.raises(ContractViolation):
        signal(SINGLE_COMPONENT, seq, SINGLE, b1=0.0)


def test_non_physical_parameters_raise_domain_error() -> None:
    seq = SPGRSimple.from_degrees(FLIPS_DEG, tr=TR)
    with pytest.raises(NumericalDomainError):
        signal(SINGLE_COMPONENT, seq, [1.0, -0.85, 0.05])
    with pytest.raises(NumericalDomainError):
        signal(SINGLE_COMPONENT, seq, [1.0, 0.85, 0.0])


def test_duplicate_registration_is_rejected() -> None:
    with pytest.raises(ContractViolation):
        register_signal(SequenceKind.SPGR, ModelKind.SINGLE)(lambda *args: None)


def test_multi_echo_is_mono_exponential() -> None:
    te = np.array([0.01, 0.02, 0.04, 0.08])
    s = signal(SINGLE_COMPONENT, MultiEcho(te=te), [2.0, 1.0, 0.04])
    assert np.allclose(s.real, 2.0 * np.exp(-te / 0.04))


def test_afi_ratio_approaches_long_t1_limit() -> None:
    seq = AFI.from_degrees(60.0, tr1=0.02, tr2=0.1)
    s = signal(SINGLE_COMPONENT, seq, [1.0, 1e6, 0.05]).real
    n = seq.tr2 / seq.tr1
    ca = np.cos(seq.flip)
    assert s[1] / s[0] == pytest.approx((1 + n * ca) / (n + ca), rel=1e-4)


def test_irspgr_closed_form_for_ninety_degree_readout() -> None:
    # A 90 degree readout saturates Mz before every recovery period.
    ti = np.array([0.1, 0.4, 1.0])
    seq = IRSPGR(ti=ti, flip=np.pi / 2, tr_inv=2.0)
    s = signal(SINGLE_COMPONENT, seq, [1.0, 0.8, 0.05]).real
    e_rec = np.exp(-(2.0 - ti) / 0.8)
    expected = (1 - np.exp(-ti / 0.8)) - np.exp(-ti / 0.8) * (1 - e_rec)
    assert np.allclose(s, expected, atol=1e-12)


def test_mprage_with_one_readout_matches_irspgr() -> None:
    params = [1.0, 1.2, 0.05]
    tr, td = 0.01, 0.5
    for ti in (0.2, 0.7, 1.5):
        mprage = MPRAGE(ti=[ti], flip=np.deg2rad(8.0), tr=tr, n_readout=1, td=td)
        irspgr = IRSPGR(ti=[ti], flip=np.deg2rad(8.0), tr_inv=ti + tr + td)
        assert np.allclose(
            signal(SINGLE_COMPONENT, mprage, params, b1=0.95),
            signal(SINGLE_COMPONENT, irspgr, params, b1=0.95),
            rtol=1e-9,
        )


def test_ssfp_alternating_phase_on_resonance() -> None:
    t1, t2 = 0.9, 0.08
    seq = SSFPSimple.from_degrees([10.0, 30.0, 60.0], tr=TR)
    s = np.abs(signal(SINGLE_COMPONENT, seq, [1.0, t1, t2]))
    e1, e2 = np.exp(-TR / t1), np.exp(-TR / t2)
    ca = np.cos(seq.flip)
    expected = np.sin(seq.flip) * (1 - e1) / (1 - (e1 - e2) * ca - e1 * e2)
    assert np.allclose(s, expected, rtol=1e-8)


def test_ssfp_ellipse_magnitudes_match_bloch_steady_state() -> None:
    params = [1.0, 0.9, 0.08]
    ellipse = SSFPEllipse.from_degrees([15.0, 45.0], tr=TR)
    bssfp = SSFPSimple(flip=ellipse.flip, tr=TR, phases=ellipse.phases)
    a = np.abs(signal(SINGLE_COMPONENT, ellipse, params))
    b = np.abs(signal(SINGLE_COMPONENT, bssfp, params))
    assert np.allclose(a, b, rtol=1e-8)


def test_ellipse_parameters_shapes() -> None:
    seq = SSFPEllipse.from_degrees([15.0, 45.0], tr=TR)
    g, a, b = ellipse_parameters("1C", seq, [1.0, 0.9, 0.08])
    assert g.shape == a.shape == b.shape == (2,)
    assert np.allclose(a, np.exp(-TR / 0.08))
    with pytest.raises(ContractViolation):
        ellipse_parameters(TWO_COMPONENT, seq, TWO_COMPONENT.default_parameters())


def test_short_pulses_approach_instantaneous_limit() -> None:
    params = [1.0, 0.85, 0.05]
    trf = 1e-6
    spgr = SPGRSimple.from_degrees(FLIPS_DEG, tr=TR)
    spgr_finite = SPGRFinite(flip=spgr.flip, tr=TR, trf=trf, te=trf / 2)
    assert np.allclose(
        np.abs(signal(SINGLE_COMPONENT, spgr_finite, params)),
        np.abs(signal(SINGLE_COMPONENT, spgr, params)),
        rtol=1e-3,
    )

    ssfp = SSFPSimple.from_degrees([10.0, 30.0], tr=TR, phases_deg=[0.0, 180.0])
    ssfp_finite = SSFPFinite(flip=ssfp.flip, tr=TR, trf=trf, phases=ssfp.phases)
    assert np.allclose(
        np.abs(signal(SINGLE_COMPONENT, ssfp_finite, params)),
        np.abs(signal(SINGLE_COMPONENT, ssfp, params)),
        rtol=1e-3,
    )


@pytest.mark.parametrize("model", [TWO_COMPONENT, THREE_COMPONENT])
def test_identical_pools_reduce_to_single_compartment(model) -> None:
    params = _identical_pools(1.0, 0.85, 0.05, model)
    spgr = SPGRSimple.from_degrees(FLIPS_DEG, tr=TR)
    assert np.allclose(signal(model, spgr, params), signal(SINGLE_COMPONENT, spgr, SINGLE), rtol=1e-8)

    afi = AFI.from_degrees(55.0, tr1=0.02, tr2=0.1)
    assert np.allclose(signal(model, afi, params), signal(SINGLE_COMPONENT, afi, SINGLE), rtol=1e-8)

    ir = IRSPGR(ti=[0.1, 0.5, 1.2], flip=np.deg2rad(5.0), tr_inv=2.5)
    assert np.allclose(
        signal(model, ir, params, b1=0.9), signal(SINGLE_COMPONENT, ir, SINGLE, b1=0.9), rtol=1e-8
    )

    ellipse = SSFPEllipse.from_degrees([20.0], tr=TR)
    assert np.allclose(
        np.abs(signal(model, ellipse, params)), np.abs(signal(SINGLE_COMPONENT, ellipse, SINGLE)), rtol=1e-8
    )


def test_slow_exchange_is_fraction_weighted_sum() -> None:
    v = TWO_COMPONENT.as_dict(TWO_COMPONENT.default_parameters())
    v["tau_m"] = 1e6
    params = np.array([v[name] for name in TWO_COMPONENT.names])
    seq = SPGRSimple.from_degrees(FLIPS_DEG, tr=TR)
    s = signal(TWO_COMPONENT, seq, params).real
    expected = v["f_m"] * _spgr_closed_form(1.0, v["T1_m"], seq.flip, TR) + (1 - v["f_m"]) * _spgr_closed_form(
        1.0, v["T1_ie"], seq.flip, TR
    )
    assert np.allclose(s, expected, rtol=1e-4)


def test_multi_echo_multi_compartment_weights_pools() -> None:
    v = TWO_COMPONENT.as_dict(TWO_COMPONENT.default_parameters())
    params = np.array([v[name] for name in TWO_COMPONENT.names])
    te = np.array([0.01, 0.03, 0.1])
    s = signal(TWO_COMPONENT, MultiEcho(te=te), params).real
    expected = v["f_m"] * np.exp(-te / v["T2_m"]) + (1 - v["f_m"]) * np.exp(-te / v["T2_ie"])
    assert np.allclose(s, expected)


def test_exchange_needs_a_non_empty_ie_pool() -> None:
    v = TWO_COMPONENT.as_dict(TWO_COMPONENT.default_parameters())
    v["f_m"] = 1.0
    params = np.array([v[name] for name in TWO_COMPONENT.names])
    seq = SPGRSimple.from_degrees(FLIPS_DEG, tr=TR)
    with pytest.raises(NumericalDomainError):
        signal(TWO_COMPONENT, seq, params)


def test_synthesize_adds_reproducible_complex_noise() -> None:
    seq = SPGRSimple.from_degrees(FLIPS_DEG, tr=TR)
    clean = synthesize(seq, SINGLE_COMPONENT, SINGLE)
    assert np.allclose(clean, signal(SINGLE_COMPONENT, seq, SINGLE))

    a = synthesize(seq, SINGLE_COMPONENT, SINGLE, 1e-3, rng=np.random.default_rng(7))
    b = synthesize(seq, SINGLE_COMPONENT, SINGLE, 1e-3, rng=np.random.default_rng(7))
    assert np.array_equal(a, b)
    assert not np.allclose(a, clean)
    assert np.any(a.imag != 0)
    with pytest.raises(ContractViolation):
        synthesize(seq, SINGLE_COMPONENT, SINGLE, -1.0)
