"""
moto_sim.py – MotoSIM motorcycle kinematics and integration engine.

All numerical logic lives here so the notebook stays focused on
configuration, exploration, and visualisation:

* a polynomial base acceleration perturbed by route events
  (bump, urban zone, traffic light, curve, turbo boost),
* a semi-implicit Euler integrator for speed, distance and fuel,
  usable frame-by-frame or as a dense batch run,
* Riemann (left / right / midpoint) and trapezoidal estimates of a
  definite integral, compared against a fine-resolution reference.

Only numpy is required at runtime.  No file I/O.
"""

import json
import logging
import math
import sys

import numpy as np

# ── Constants ─────────────────────────────────────────────────────────────────
V_OPT = 60.0 / 3.6      # optimal cruising speed for fuel use, m/s
ALFA = 2.5              # curvature of the U-shaped consumption curve
MAX_STEP_S = 0.05       # largest simulated step per interactive tick, s
CHART_STEPS = 600       # dense sampling used for charts
REFERENCE_STEPS = 2000  # dense sampling used for the reference integral
DEFAULT_PARTITIONS = 14

DEFAULT_DURATION_S = 15.0
DEFAULT_C_BASE = 4.5    # base consumption, L/100 km
DEFAULT_FUEL_PRICE = 1.5
DEFAULT_EVENT_DURATION_S = 1.0

# ── Lookup tables ─────────────────────────────────────────────────────────────
EVENT_SHAPES: dict = {
    "bump":          "gaussian",
    "urban_zone":    "ramp",
    "traffic_light": "ramp",
    "curve":         "sine",
    "turbo_boost":   "boost",
}

EVENT_LABELS: dict = {
    "bump":          {"text": "BUMP - suspension hit",            "color": "#ff2d55"},
    "urban_zone":    {"text": "URBAN ZONE - slowing down",         "color": "#ffc400"},
    "traffic_light": {"text": "RED LIGHT - braking",               "color": "#39ff14"},
    "curve":         {"text": "SHARP CURVE - leaning in",          "color": "#c800ff"},
    "turbo_boost":   {"text": "OPEN ROAD - turbo boost!",          "color": "#ff7a00"},
}

# Widget presets, one per kind.  Keyed by event id.
DEFAULT_EVENTS: dict = {
    "bump":          {"kind": "bump",          "t0": 2.0,  "magnitude": -4.0, "duration": 1.0},
    "urban_zone":    {"kind": "urban_zone",    "t0": 4.0,  "magnitude": -2.0, "duration": 3.0},
    "traffic_light": {"kind": "traffic_light", "t0": 8.0,  "magnitude": -3.0, "duration": 2.0},
    "curve":         {"kind": "curve",         "t0": 10.5, "magnitude": -2.5, "duration": 2.0},
    "turbo_boost":   {"kind": "turbo_boost",   "t0": 13.0, "magnitude": 5.0,  "duration": 1.5},
}

CURVES: dict = {
    "velocity":     {"key": "speed",    "unit": "m",   "label": "∫v(t)dt = distance"},
    "acceleration": {"key": "accel",    "unit": "m/s", "label": "∫a(t)dt = Δv"},
    "position":     {"key": "distance", "unit": "m·s", "label": "∫x(t)dt"},
}

METHODS = ("left", "right", "midpoint", "trapezoidal")

SERIES_KEYS = ("time", "speed", "distance", "accel", "fuel")

# ── Logging ───────────────────────────────────────────────────────────────────
logger = logging.getLogger("moto_sim")


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        return json.dumps(payload, default=str)


def make_logger(name: str = "moto_sim", level: str = "INFO") -> logging.Logger:
    """Attach a JSON-lines stdout handler to *name* (once) and return it."""
    log = logging.getLogger(name)
    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(_JsonFormatter())
        log.addHandler(handler)
        log.setLevel(level)
    return log


def _emit(level: int, msg: str, **fields) -> None:
    logger.log(level, msg, extra={"extra": fields})


# ── Schema → runtime adapter ──────────────────────────────────────────────────

def _as_float(value, default: float) -> float:
    """Parse *value* as a float, falling back to *default* when it can't be."""
    if value is None:
        return float(default)
    try:
        return float(value)
    except (TypeError, ValueError):
        return float(default)


def _positive(value: float, default: float, field: str) -> float:
    if value > 0:
        return value
    _emit(logging.WARNING, "config_clamped", field=field, value=value, used=default)
    return float(default)


def make_event(event_id: str, spec: dict) -> dict:
    """
    Build one runtime route event from a loose widget / notebook entry.

    Missing or unparseable numbers fall back to ``t0 = 0``,
    ``magnitude = 0`` and ``duration = 1``; a non-positive duration is
    clamped to 1 and a negative start time to 0.
    """
    kind = str(spec.get("kind", event_id))
    t0 = _as_float(spec.get("t0"), 0.0)
    if t0 < 0:
        _emit(logging.WARNING, "config_clamped", field=f"{event_id}.t0", value=t0, used=0.0)
        t0 = 0.0
    duration = _positive(
        _as_float(spec.get("duration"), DEFAULT_EVENT_DURATION_S),
        DEFAULT_EVENT_DURATION_S,
        f"{event_id}.duration",
    )
    if kind not in EVENT_SHAPES:
        _emit(logging.WARNING, "unknown_event_kind", id=event_id, kind=kind)
    return {
        "id": str(spec.get("id", event_id)),
        "kind": kind,
        "t0": t0,
        "magnitude": _as_float(spec.get("magnitude"), 0.0),
        "duration": duration,
    }


def make_config(spec: dict) -> dict:
    """
    Map a loose configuration dict onto the flat runtime structure used by
    the integrator and the estimator.

    Parameters
    ----------
    spec : dict
        Keys ``v0``, ``a0``, ``a1``, ``a2``, ``duration``, ``c_base``,
        ``fuel_price`` and ``events``.  Every key is optional.  ``events``
        is either a list of event dicts or a dict keyed by event id whose
        entries may carry ``enabled: False`` to be skipped.

    Returns
    -------
    dict
        Runtime config.  ``events`` is a tuple and is never mutated.
    """
    v0 = _as_float(spec.get("v0"), 0.0)
    if v0 < 0:
        _emit(logging.WARNING, "config_clamped", field="v0", value=v0, used=0.0)
        v0 = 0.0
    fuel_price = _as_float(spec.get("fuel_price"), DEFAULT_FUEL_PRICE)
    if fuel_price < 0:
        _emit(logging.WARNING, "config_clamped", field="fuel_price", value=fuel_price, used=0.0)
        fuel_price = 0.0

    raw_events = spec.get("events") or ()
    if isinstance(raw_events, dict):
        entries = list(raw_events.items())
    else:
        entries = []
        taken = set()
        for i, ev in enumerate(raw_events):
            event_id = ev.get("id") or ev.get("kind") or f"event_{i}"
            if event_id in taken:
                event_id = f"{event_id}_{i}"
            taken.add(event_id)
            entries.append((event_id, ev))
    events = tuple(
        make_event(event_id, ev) for event_id, ev in entries if ev.get("enabled", True)
    )

    return {
        "v0": v0,
        "a0": _as_float(spec.get("a0"), 0.0),
        "a1": _as_float(spec.get("a1"), 0.0),
        "a2": _as_float(spec.get("a2"), 0.0),
        "duration": _positive(
            _as_float(spec.get("duration"), DEFAULT_DURATION_S), DEFAULT_DURATION_S, "duration"
        ),
        "c_base": _positive(
            _as_float(spec.get("c_base"), DEFAULT_C_BASE), DEFAULT_C_BASE, "c_base"
        ),
        "fuel_price": fuel_price,
        "events": events,
    }


# ── Route events ──────────────────────────────────────────────────────────────

def event_contribution(event: dict, t: float) -> float:
    """
    Acceleration (m/s²) added by one route event at time *t*.

    The bump is a gaussian centred on ``t0`` and never hard-zero.  Ramp,
    sine and boost shapes vanish outside ``[t0, t0 + duration]``, window
    edges included.  Unknown kinds contribute nothing.
    """
    shape = EVENT_SHAPES.get(event.get("kind"))
    if shape is None:
        return 0.0
    t0 = event["t0"]
    duration = event["duration"] if event["duration"] > 0 else DEFAULT_EVENT_DURATION_S
    magnitude = event["magnitude"]

    if shape == "gaussian":
        sigma = duration / 2.5
        return magnitude * math.exp(-((t - t0) ** 2) / (2.0 * sigma * sigma))

    # window edges are exact zeros; sin(pi) is not
    if t <= t0 or t >= t0 + duration:
        return 0.0
    p = (t - t0) / duration
    if shape == "sine":
        return magnitude * math.sin(math.pi * p) ** 2
    # ramp and boost share the half-sine arch
    return magnitude * math.sin(math.pi * p)


def active_events(config: dict, t: float) -> frozenset:
    """Ids of events whose window ``[t0, t0 + duration]`` contains *t*."""
    return frozenset(
        ev["id"] for ev in config["events"] if ev["t0"] <= t <= ev["t0"] + ev["duration"]
    )


def total_acceleration(config: dict, t: float) -> float:
    """Base polynomial ``a0 + a1·t + a2·t²`` plus every event contribution."""
    base = config["a0"] + config["a1"] * t + config["a2"] * t * t
    return base + sum(event_contribution(ev, t) for ev in config["events"])


# ── Fuel model ────────────────────────────────────────────────────────────────

def specific_consumption(v: float, c_base: float) -> float:
    """U-shaped specific consumption (L/100 km) with its minimum at ``V_OPT``."""
    return c_base * (1.0 + ALFA * ((abs(v) - V_OPT) / V_OPT) ** 2)


def fuel_rate(v: float, c_base: float) -> float:
    """Instantaneous fuel burn at speed *v*; never negative."""
    return max(specific_consumption(v, c_base) * abs(v) / 100000.0, 0.0)


def consumption_curve(c_base: float, v_max: float = 50.0, points: int = 120) -> tuple:
    """Sample the U-curve on ``[0, v_max]`` for plotting: ``(speeds, l_per_100km)``."""
    speeds = np.linspace(0.0, v_max, points + 1)
    return speeds, np.array([specific_consumption(v, c_base) for v in speeds])


def fuel_cost(litres: float, price: float) -> float:
    return litres * max(price, 0.0)


# ── Kinematic integrator ──────────────────────────────────────────────────────

def _advance(v: float, x: float, fuel: float, a: float, dt: float, c_base: float) -> tuple:
    """One semi-implicit Euler step; position uses the updated speed."""
    v = max(v + a * dt, 0.0)
    x = x + v * dt
    fuel = fuel + fuel_rate(v, c_base) * dt
    return v, x, fuel


def _empty_series() -> dict:
    return {key: np.array([], dtype=float) for key in SERIES_KEYS}


def sample_dense(config: dict, resolution: int) -> dict:
    """
    Integrate the whole run on a uniform grid of *resolution* steps.

    Returns
    -------
    dict
        Arrays ``time``, ``speed``, ``distance``, ``accel`` and ``fuel`` of
        length ``resolution + 1``; sample ``i`` holds the state at
        ``t_i = T·i/N`` before the step that uses ``a(t_i)``.  Empty arrays
        when ``T <= 0`` or ``resolution < 1``.
    """
    T = config["duration"]
    steps = int(resolution)
    if not T > 0 or steps < 1:
        return _empty_series()

    dt = T / steps
    c_base = config["c_base"]
    series = {key: np.empty(steps + 1) for key in SERIES_KEYS}
    v, x, fuel = max(config["v0"], 0.0), 0.0, 0.0

    for i in range(steps + 1):
        t = T * i / steps
        a = total_acceleration(config, t)
        series["time"][i] = t
        series["speed"][i] = v
        series["distance"][i] = x
        series["accel"][i] = a
        series["fuel"][i] = fuel
        if i < steps:
            v, x, fuel = _advance(v, x, fuel, a, dt, c_base)

    _emit(logging.DEBUG, "dense_sampled", resolution=steps, duration=T)
    return series


# ── Interactive state ─────────────────────────────────────────────────────────

def initialize_state(config: dict) -> dict:
    """Return a fresh per-run mutable state dict for the given config."""
    T = config["duration"]
    v0 = max(config["v0"], 0.0)
    a0 = total_acceleration(config, 0.0)
    finished = not T > 0
    state = {
        "t": 0.0,
        "v": v0,
        "x": 0.0,
        "a": a0,
        "fuel": 0.0,
        "finished": finished,
        "active": frozenset(),
        "entered": (),
        "exited": (),
        "history": {key: [] for key in SERIES_KEYS},
    }
    if not finished:
        _record(state)
    _emit(logging.INFO, "run_start", duration=T, v0=v0, events=len(config["events"]))
    return state


def reset(config: dict) -> dict:
    """Discard the current run; the configuration itself is untouched."""
    return initialize_state(config)


def _record(state: dict) -> None:
    hist = state["history"]
    hist["time"].append(state["t"])
    hist["speed"].append(state["v"])
    hist["distance"].append(state["x"])
    hist["accel"].append(state["a"])
    hist["fuel"].append(state["fuel"])


def current_sample(state: dict) -> dict:
    return {key: state[key] for key in ("t", "v", "x", "a", "fuel")}


def history_arrays(state: dict) -> dict:
    """The interactive history as a series dict of numpy arrays."""
    return {key: np.array(values, dtype=float) for key, values in state["history"].items()}


def step(config: dict, state: dict, dt: float) -> dict:
    """
    Advance the interactive run by one display tick.

    *dt* is clamped to ``[0, MAX_STEP_S]`` and shortened so the run lands
    exactly on ``T``.  Acceleration is evaluated at the time the step lands
    on.  Once ``T`` is reached the state is frozen and later calls return
    the final sample unchanged.

    Side-effect: updates *state*, including ``entered`` / ``exited`` event
    transitions for this tick.
    """
    state["entered"], state["exited"] = (), ()
    if state["finished"]:
        return current_sample(state)

    T = config["duration"]
    remaining = T - state["t"]
    dt = min(max(dt, 0.0), MAX_STEP_S)
    if dt >= remaining:
        dt, t_next = remaining, T
    else:
        t_next = state["t"] + dt
    if not dt > 0 or t_next <= state["t"]:
        return current_sample(state)

    a = total_acceleration(config, t_next)
    v, x, fuel = _advance(state["v"], state["x"], state["fuel"], a, dt, config["c_base"])
    state.update(t=t_next, v=v, x=x, a=a, fuel=fuel)
    _record(state)

    now_active = active_events(config, t_next)
    state["entered"] = tuple(sorted(now_active - state["active"]))
    state["exited"] = tuple(sorted(state["active"] - now_active))
    state["active"] = now_active
    for event_id in state["entered"]:
        _emit(logging.INFO, "event_enter", id=event_id, t=t_next)
    for event_id in state["exited"]:
        _emit(logging.INFO, "event_exit", id=event_id, t=t_next)

    if t_next >= T:
        state["finished"] = True
        _emit(logging.INFO, "run_end", t=t_next, v=v, x=x, fuel=fuel)
    return current_sample(state)


# ── Main simulation entry point ───────────────────────────────────────────────

def simulate_run(config: dict, frame_dt: float = MAX_STEP_S) -> dict:
    """
    Drive :func:`step` with a fixed tick until the run finishes.

    Parameters
    ----------
    config : dict
        Runtime config produced by :func:`make_config`.
    frame_dt : float
        Simulated seconds requested per tick (clamped to ``MAX_STEP_S``).

    Returns
    -------
    dict
        Series arrays (``time``, ``speed``, ``distance``, ``accel``,
        ``fuel``) plus scalar summary fields (``elapsed_time``,
        ``final_speed``, ``final_distance``, ``fuel_litres``,
        ``fuel_cost``, ``events_seen``).
    """
    state = initialize_state(config)
    seen: list = []
    while not state["finished"]:
        t_before = state["t"]
        step(config, state, frame_dt)
        if state["t"] <= t_before:
            break
        seen.extend(e for e in state["entered"] if e not in seen)

    result = history_arrays(state)
    result.update(
        elapsed_time=state["t"],
        final_speed=state["v"],
        final_distance=state["x"],
        fuel_litres=state["fuel"],
        fuel_cost=fuel_cost(state["fuel"], config["fuel_price"]),
        events_seen=tuple(seen),
    )
    return result


# ── Definite-integral estimator ───────────────────────────────────────────────

def interpolate(t_arr, y_arr, t):
    """Linear interpolation over a dense sample, clamped at both ends."""
    return np.interp(t, t_arr, y_arr)


def _partition_count(n) -> int:
    """Partition count clamped to at least 1.  NaN and infinities count as 1."""
    if not math.isfinite(n):
        return 1
    return max(int(n), 1)


def _partition(t_arr, n: int) -> tuple:
    n = _partition_count(n)
    start, stop = float(t_arr[0]), float(t_arr[-1])
    width = (stop - start) / n
    left = start + np.arange(n) * width
    return left, left + width, width


def trapezoidal_sum(t_arr, y_arr, n: int):
    """Trapezoidal rule over *n* equal sub-intervals; ``None`` without data."""
    t_arr = np.asarray(t_arr, dtype=float)
    if t_arr.size < 2:
        return None
    left, right, width = _partition(t_arr, n)
    f0 = interpolate(t_arr, y_arr, left)
    f1 = interpolate(t_arr, y_arr, right)
    return float(np.sum((f0 + f1) / 2.0) * width)


def riemann_sum(t_arr, y_arr, n: int, method: str = "midpoint"):
    """
    Riemann sum over *n* equal sub-intervals of the sampled domain,
    evaluated at the left edge, right edge or midpoint of each one.
    ``"trapezoidal"`` defers to :func:`trapezoidal_sum`.
    """
    if method not in METHODS:
        raise ValueError(f"unknown method {method!r}; expected one of {METHODS}")
    if method == "trapezoidal":
        return trapezoidal_sum(t_arr, y_arr, n)
    t_arr = np.asarray(t_arr, dtype=float)
    if t_arr.size < 2:
        return None
    left, right, width = _partition(t_arr, n)
    if method == "left":
        points = left
    elif method == "right":
        points = right
    else:
        points = (left + right) / 2.0
    return float(np.sum(interpolate(t_arr, y_arr, points)) * width)


def _curve_key(curve: str) -> str:
    if curve not in CURVES:
        raise ValueError(f"unknown curve {curve!r}; expected one of {tuple(CURVES)}")
    return CURVES[curve]["key"]


def reference_integral(config: dict, curve: str, resolution: int = REFERENCE_STEPS):
    """
    Fine-resolution integral used as the exact value: ``Σ y_i·dt`` over the
    states of a dense run.  ``None`` when there is nothing to integrate.
    """
    key = _curve_key(curve)
    series = sample_dense(config, resolution)
    if series["time"].size < 2:
        return None
    dt = config["duration"] / int(resolution)
    return float(np.sum(series[key][:-1]) * dt)


def estimate_integral(
    config: dict,
    curve: str = "velocity",
    n: int = DEFAULT_PARTITIONS,
    method: str = "midpoint",
    series: dict = None,
):
    """
    Compare one Riemann method and the trapezoidal rule against the
    reference integral of the selected curve.

    Parameters
    ----------
    config : dict
        Runtime config.
    curve : str
        ``"velocity"``, ``"acceleration"`` or ``"position"``.
    n : int
        Partition count; values below 1, NaN and infinities are clamped to 1.
    method : str
        One of ``METHODS``.  With ``"trapezoidal"`` the Riemann row repeats
        the trapezoidal value.
    series : dict, optional
        Pre-computed chart series (``sample_dense(config, CHART_STEPS)``).

    Returns
    -------
    dict or None
        ``exact``, ``riemann``, ``trapezoidal``, ``error_riemann``,
        ``error_trapezoidal`` plus ``curve``, ``method``, ``n``, ``unit``
        and ``label``; ``None`` when there is no data to integrate.
    """
    key = _curve_key(curve)
    if method not in METHODS:
        raise ValueError(f"unknown method {method!r}; expected one of {METHODS}")
    count = _partition_count(n)
    if count != n:
        _emit(logging.WARNING, "config_clamped", field="n", value=n, used=count)
    n = count

    if series is None:
        series = sample_dense(config, CHART_STEPS)
    if series["time"].size < 2:
        return None

    t_arr, y_arr = series["time"], series[key]
    trapezoidal = trapezoidal_sum(t_arr, y_arr, n)
    riemann = trapezoidal if method == "trapezoidal" else riemann_sum(t_arr, y_arr, n, method)
    exact = reference_integral(config, curve)
    if exact is None:
        return None

    return {
        "curve": curve,
        "method": method,
        "n": n,
        "exact": exact,
        "riemann": riemann,
        "trapezoidal": trapezoidal,
        "error_riemann": abs(exact - riemann),
        "error_trapezoidal": abs(exact - trapezoidal),
        "unit": CURVES[curve]["unit"],
        "label": CURVES[curve]["label"],
    }


# ── Chart helpers ─────────────────────────────────────────────────────────────

def view_window(duration: float, zoom: float = 1.0) -> tuple:
    """Visible ``(t_min, t_max)`` for a zoom level clamped to ``[0.25, 8]``."""
    zoom = float(np.clip(zoom, 0.25, 8.0))
    visible = duration / zoom
    centre = duration / 2.0
    t_min = max(0.0, centre - visible / 2.0)
    t_max = min(duration, centre + visible / 2.0)
    if t_max - t_min < 0.1:
        return 0.0, duration
    return t_min, t_max


def value_range(y, pad_frac: float = 0.12):
    """Padded ``(lo, hi)`` for an axis; a flat series gets a unit span."""
    y = np.asarray(y, dtype=float)
    if y.size == 0:
        return None
    lo, hi = float(np.min(y)), float(np.max(y))
    span = (hi - lo) or 1.0
    pad = span * pad_frac
    return lo - pad, hi + pad


def mruv_preview(v0: float, a0: float, duration: float) -> tuple:
    """Closed-form constant-acceleration ``(v(T), x(T))``."""
    return v0 + a0 * duration, v0 * duration + 0.5 * a0 * duration ** 2
