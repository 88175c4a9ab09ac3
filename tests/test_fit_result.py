import numpy as np

from relaxfit import Despot1, SPGRSimple
from relaxfit.core.result_schema import FitResult
from relaxfit.signals import signal


def _seq_and_signal() -> tuple[SPGRSimple, np.ndarray]:
    seq = SPGRSimple.from_degrees([3.0, 6.0, 12.0, 18.0], tr=0.01)
    return seq, np.abs(signal("1C", seq, [1000.0, 1.1, 0.05]))


def test_fit_result_behaves_like_params_dict() -> None:
    seq, data = _seq_and_signal()
    result = Despot1().fit(seq, data)
    assert isinstance(result, FitResult)

    assert abs(result["t1"] - 1.1) / 1.1 < 1e-6
    assert abs(result["pd"] - 1000.0) / 1000.0 < 1e-6

    assert result["params"]["t1"] == result["t1"]
    assert isinstance(result["quality"], dict)
    assert isinstance(result["diagnostics"], dict)
    assert "quality" in result
    assert result.get("missing", 3) == 3

    nested = result.to_dict()
    assert set(nested.keys()) == {"params", "quality", "diagnostics"}
    assert nested["params"]["t1"] == result["t1"]

    copied = result.copy()
    assert copied == result
    assert copied.quality == result.quality


def test_fit_image_result_keeps_quality_and_diagnostics_attributes() -> None:
    seq, data = _seq_and_signal()
    image = np.stack([data, data], axis=0).reshape(2, 1, -1)

    maps = Despot1().fit_image(seq, image)
    assert isinstance(maps, FitResult)
    assert maps["t1"].shape == (2, 1)
    assert maps["params"]["pd"].shape == (2, 1)
    assert maps.quality["status"] == "ok"
    assert maps.quality["rmse"].shape == (2, 1)

