# tests/conftest.py
import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pytest  # noqa: E402

from moto_sim import make_config  # noqa: E402


@pytest.fixture(autouse=True)
def _close_figures():
    yield
    plt.close("all")


@pytest.fixture
def mruv_config() -> dict:
    # v0=0, a=2 m/s², T=10 s, no events
    return make_config({"v0": 0.0, "a0": 2.0, "duration": 10.0})


@pytest.fixture
def route_config() -> dict:
    return make_config(
        {
            "v0": 10.0,
            "a0": 1.0,
            "duration": 10.0,
            "events": [
                {"kind": "bump", "t0": 2.0, "magnitude": -4.0, "duration": 1.0},
                {"kind": "traffic_light", "t0": 5.0, "magnitude": -3.0, "duration": 2.0},
                {"kind": "turbo_boost", "t0": 8.0, "magnitude": 5.0, "duration": 1.5},
            ],
        }
    )
