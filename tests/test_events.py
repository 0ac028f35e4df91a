# tests/test_events.py
import math

import pytest

from moto_sim import active_events, event_contribution, make_config, total_acceleration


def _event(kind, t0=5.0, magnitude=-3.0, duration=2.0, event_id=None):
    return {"id": event_id or kind, "kind": kind, "t0": t0, "magnitude": magnitude, "duration": duration}


@pytest.mark.parametrize("kind", ["urban_zone", "traffic_light", "curve", "turbo_boost"])
def test_windowed_events_are_zero_on_and_outside_the_window(kind):
    ev = _event(kind)
    for t in (0.0, 4.999, 5.0, 7.0, 7.001, 20.0):
        assert event_contribution(ev, t) == 0.0
    assert event_contribution(ev, 6.0) != 0.0


def test_traffic_light_peaks_at_window_midpoint():
    ev = _event("traffic_light", t0=5.0, magnitude=-3.0, duration=2.0)
    assert event_contribution(ev, 6.0) == pytest.approx(-3.0)
    assert event_contribution(ev, 5.5) == pytest.approx(-3.0 * math.sin(math.pi / 4))


def test_curve_uses_squared_sine():
    ev = _event("curve", magnitude=-2.0)
    assert event_contribution(ev, 6.0) == pytest.approx(-2.0)
    assert event_contribution(ev, 5.5) == pytest.approx(-2.0 * 0.5)


def test_turbo_boost_matches_ramp_shape():
    boost = _event("turbo_boost", magnitude=4.0)
    ramp = _event("urban_zone", magnitude=4.0)
    for t in (5.1, 5.7, 6.0, 6.9):
        assert event_contribution(boost, t) == event_contribution(ramp, t)


def test_bump_peaks_exactly_at_centre_and_decays_both_ways():
    ev = _event("bump", t0=3.0, magnitude=-4.0, duration=1.0)
    assert event_contribution(ev, 3.0) == -4.0
    right = [abs(event_contribution(ev, 3.0 + d)) for d in (0.1, 0.3, 0.6, 1.0, 2.0)]
    left = [abs(event_contribution(ev, 3.0 - d)) for d in (0.1, 0.3, 0.6, 1.0, 2.0)]
    assert right == sorted(right, reverse=True)
    assert left == sorted(left, reverse=True)
    assert right[0] < 4.0
    # long tail, never clipped to zero near the centre
    assert event_contribution(ev, 4.0) != 0.0


def test_unknown_kind_contributes_nothing():
    assert event_contribution(_event("pothole_of_doom"), 6.0) == 0.0
    assert event_contribution({"kind": None, "t0": 0, "magnitude": 1, "duration": 1}, 0.5) == 0.0


def test_total_acceleration_sums_polynomial_and_overlapping_events():
    cfg = make_config(
        {
            "a0": 1.0,
            "a1": 0.5,
            "a2": 0.1,
            "events": [
                {"kind": "urban_zone", "t0": 1.0, "magnitude": -2.0, "duration": 2.0},
                {"kind": "traffic_light", "t0": 1.0, "magnitude": -1.0, "duration": 2.0},
            ],
        }
    )
    # base at t=2: 1 + 1 + 0.4; both ramps at their peak
    assert total_acceleration(cfg, 2.0) == pytest.approx(2.4 - 3.0)
    assert total_acceleration(cfg, 5.0) == pytest.approx(1.0 + 2.5 + 2.5)


def test_active_events_window_is_inclusive(route_config):
    assert active_events(route_config, 0.0) == frozenset()
    assert active_events(route_config, 5.0) == {"traffic_light"}
    assert active_events(route_config, 7.0) == {"traffic_light"}
    assert active_events(route_config, 7.01) == frozenset()
    assert active_events(route_config, 2.5) == {"bump"}
