# tests/test_integrator.py
import numpy as np
import pytest

from moto_sim import (
    MAX_STEP_S,
    REFERENCE_STEPS,
    history_arrays,
    initialize_state,
    make_config,
    reset,
    sample_dense,
    simulate_run,
    step,
)


# ---------- Dense sampling


def test_dense_run_reproduces_mruv(mruv_config):
    s = sample_dense(mruv_config, REFERENCE_STEPS)
    assert s["time"][0] == 0.0
    assert s["time"][-1] == pytest.approx(10.0)
    assert s["speed"][-1] == pytest.approx(20.0)
    assert s["distance"][-1] == pytest.approx(100.0, rel=1e-3)

    dt = 10.0 / REFERENCE_STEPS
    np.testing.assert_allclose(s["speed"], 2.0 * s["time"], atol=1e-9)
    closed_form = 0.5 * 2.0 * s["time"] ** 2
    assert np.max(np.abs(s["distance"] - closed_form)) <= 2.0 * 10.0 * dt


def test_dense_series_invariants(route_config):
    s = sample_dense(route_config, 600)
    assert len(s["time"]) == 601
    assert np.all(np.diff(s["time"]) > 0)
    assert np.all(s["speed"] >= 0)
    assert np.all(np.diff(s["distance"]) >= 0)
    assert np.all(np.diff(s["fuel"]) >= 0)
    assert s["fuel"][-1] > 0


def test_speed_is_floored_at_zero():
    cfg = make_config({"v0": 5.0, "a0": -3.0, "duration": 10.0})
    s = sample_dense(cfg, 600)
    assert np.all(s["speed"] >= 0)
    assert s["speed"][-1] == 0.0
    stopped = s["time"] > 2.0
    assert np.ptp(s["distance"][stopped]) == 0.0


def test_dense_sampling_is_deterministic(route_config):
    a = sample_dense(route_config, 2000)
    b = sample_dense(route_config, 2000)
    for key in a:
        assert np.array_equal(a[key], b[key])


def test_non_positive_duration_gives_empty_series(mruv_config):
    for duration in (0.0, -5.0):
        s = sample_dense({**mruv_config, "duration": duration}, 600)
        assert all(arr.size == 0 for arr in s.values())
    assert sample_dense(mruv_config, 0)["time"].size == 0


# ---------- Interactive stepping


def test_step_clamps_requested_dt(mruv_config):
    state = initialize_state(mruv_config)
    sample = step(mruv_config, state, 1.0)
    assert sample["t"] == pytest.approx(MAX_STEP_S)
    assert sample["v"] == pytest.approx(2.0 * MAX_STEP_S)
    assert sample["x"] == pytest.approx(2.0 * MAX_STEP_S * MAX_STEP_S)


def test_step_lands_exactly_on_duration_and_freezes():
    cfg = make_config({"v0": 3.0, "a0": 1.0, "duration": 0.12})
    state = initialize_state(cfg)
    times = [step(cfg, state, 0.05)["t"] for _ in range(3)]
    assert times[:2] == pytest.approx([0.05, 0.10])
    assert times[2] == 0.12
    assert state["finished"]

    frozen = step(cfg, state, 0.05)
    assert frozen["t"] == 0.12
    assert len(state["history"]["time"]) == 4


def test_zero_and_negative_dt_are_no_ops(mruv_config):
    state = initialize_state(mruv_config)
    step(mruv_config, state, 0.0)
    step(mruv_config, state, -0.3)
    assert state["t"] == 0.0
    assert len(state["history"]["time"]) == 1


def test_interactive_history_invariants(route_config):
    state = initialize_state(route_config)
    rng = np.random.default_rng(7)
    while not state["finished"]:
        step(route_config, state, float(rng.uniform(0.0, 0.1)))
    h = history_arrays(state)
    assert h["time"][0] == 0.0 and h["time"][-1] == 10.0
    assert np.all(np.diff(h["time"]) > 0)
    assert np.all(h["speed"] >= 0)
    assert np.all(np.diff(h["distance"]) >= 0)
    assert np.all(np.diff(h["fuel"]) >= 0)


def test_event_transitions_are_reported_once(route_config):
    state = initialize_state(route_config)
    entered, exited = [], []
    while not state["finished"]:
        step(route_config, state, 0.05)
        entered.extend((e, state["t"]) for e in state["entered"])
        exited.extend((e, state["t"]) for e in state["exited"])
    assert [e for e, _ in entered] == ["bump", "traffic_light", "turbo_boost"]
    assert [e for e, _ in exited] == ["bump", "traffic_light", "turbo_boost"]
    enter_t = dict(entered)
    assert 5.0 <= enter_t["traffic_light"] < 5.0 + 0.051


def test_reset_discards_run(mruv_config):
    state = initialize_state(mruv_config)
    for _ in range(10):
        step(mruv_config, state, 0.05)
    fresh = reset(mruv_config)
    assert fresh["t"] == 0.0 and fresh["x"] == 0.0 and fresh["fuel"] == 0.0
    assert fresh["history"]["time"] == [0.0]
    assert not fresh["finished"]


def test_non_positive_duration_interactive(mruv_config):
    cfg = {**mruv_config, "duration": 0.0}
    state = initialize_state(cfg)
    assert state["finished"]
    assert history_arrays(state)["time"].size == 0
    assert step(cfg, state, 0.05)["t"] == 0.0


def test_simulate_run_matches_mruv(mruv_config):
    result = simulate_run(mruv_config)
    assert result["elapsed_time"] == 10.0
    assert result["final_speed"] == pytest.approx(20.0)
    # semi-implicit Euler at 0.05 s overshoots the closed form by ~v(T)·dt/2
    assert result["final_distance"] == pytest.approx(100.0, abs=1.0)
    assert result["fuel_cost"] == pytest.approx(result["fuel_litres"] * 1.5)
    assert result["events_seen"] == ()
