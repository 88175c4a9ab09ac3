import importlib.util
import json
import sys
from pathlib import Path

import pytest

_SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "run_despot1.py"


def _load_script():
    spec = importlib.util.spec_from_file_location("run_despot1", _SCRIPT)
    module = importlib.util.module_from_spec(spec)
    sys.modules[spec.name] = module
    spec.loader.exec_module(module)
    return module


def test_parse_simulation_config_defaults() -> None:
    script = _load_script()
    cfg = script._parse_simulation_config({"run": {"seed": 3}, "simulation": {"flip_angle_deg": [3, 18]}})
    assert cfg.flip_angle_deg == [3.0, 18.0]
    assert (cfg.t1_min_s, cfg.t1_max_s) == (0.3, 2.5)
    assert cfg.b1_range is None
    assert cfg.seed == 3


@pytest.mark.parametrize("t1_range", [None, [0.5], [0.5, "x"]])
def test_parse_simulation_config_rejects_bad_t1_range(t1_range) -> None:
    script = _load_script()
    with pytest.raises(ValueError, match="t1_range_s"):
        script._parse_simulation_config({"simulation": {"flip_angle_deg": [3.0, 18.0], "t1_range_s": t1_range}})


def test_main_writes_metrics(tmp_path) -> None:
    script = _load_script()
    config = tmp_path / "sim.toml"
    config.write_text(
        "[run]\ntag = \"t\"\nseed = 1\n\n"
        "[despot1]\nalgo = \"lls\"\nits = 2\n\n"
        "[simulation]\nflip_angle_deg = [3.0, 5.0, 9.0, 18.0]\nn_samples = 6\nnoise_sigma = 1e-5\n",
        encoding="utf-8",
    )
    assert script.main(["--config", str(config), "--out-root", str(tmp_path / "runs"), "--run-id", "r1"]) == 0

    run = json.loads((tmp_path / "runs" / "r1" / "run.json").read_text(encoding="utf-8"))
    assert set(run["metrics"]) == {"n_samples", "lls", "wlls", "nlls"}
    assert run["metrics"]["nlls"]["n_valid"] == 6
    assert run["despot1"]["max_iterations"] == 2
