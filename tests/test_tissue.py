import numpy as np
import pytest

from relaxfit.errors import ContractViolation
from relaxfit.tissue import (
    SINGLE_COMPONENT,
    THREE_COMPONENT,
    TWO_COMPONENT,
    ModelKind,
    get_model,
)


def test_parameter_layouts() -> None:
    assert SINGLE_COMPONENT.names == ("PD", "T1", "T2")
    assert SINGLE_COMPONENT.n_parameters == 3
    assert TWO_COMPONENT.n_parameters == 7
    assert TWO_COMPONENT.index("tau_m") == 5
    assert THREE_COMPONENT.n_parameters == 10
    assert THREE_COMPONENT.n_pools == 3
    assert THREE_COMPONENT.names[-1] == "f_csf"


def test_defaults_match_names() -> None:
    for model in (SINGLE_COMPONENT, TWO_COMPONENT, THREE_COMPONENT):
        p = model.default_parameters()
        assert p.shape == (model.n_parameters,)
        assert np.all(np.isfinite(p))
        assert set(model.as_dict(p)) == set(model.names)


def test_get_model_aliases() -> None:
    assert get_model("1C") is SINGLE_COMPONENT
    assert get_model("single") is SINGLE_COMPONENT
    assert get_model(2) is TWO_COMPONENT
    assert get_model(ModelKind.THREE) is THREE_COMPONENT
    assert get_model(TWO_COMPONENT) is TWO_COMPONENT
    with pytest.raises(ContractViolation):
        get_model("4C")


def test_check_parameters_rejects_wrong_length_and_nan() -> None:
    with pytest.raises(ContractViolation):
        SINGLE_COMPONENT.check_parameters([1.0, 1.0])
    with pytest.raises(ContractViolation):
        SINGLE_COMPONENT.check_parameters([1.0, np.nan, 0.05])
    with pytest.raises(ContractViolation):
        SINGLE_COMPONENT.index("T2star")


def test_str_lists_parameters() -> None:
    assert str(SINGLE_COMPONENT) == "1C (PD, T1, T2)"
