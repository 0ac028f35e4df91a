"""
moto_ui.py – ipywidgets form builder and matplotlib plotting helpers
for the MotoSIM notebook.

All notebook-facing UI and visualisation logic lives here so the notebook
itself stays focused on configuration and exploration.

Requires ipywidgets and matplotlib in addition to numpy.
"""

import copy

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.patches import Polygon, Rectangle
import ipywidgets as widgets

from moto_sim import (
    CHART_STEPS,
    CURVES,
    DEFAULT_C_BASE,
    DEFAULT_DURATION_S,
    DEFAULT_EVENTS,
    DEFAULT_FUEL_PRICE,
    DEFAULT_PARTITIONS,
    EVENT_LABELS,
    MAX_STEP_S,
    METHODS,
    V_OPT,
    consumption_curve,
    current_sample,
    estimate_integral,
    fuel_cost,
    initialize_state,
    interpolate,
    make_config,
    make_logger,
    mruv_preview,
    sample_dense,
    simulate_run,
    step,
    value_range,
    view_window,
)

_CURVE_COLORS = {"velocity": "#00a5b5", "acceleration": "#a000cc", "position": "#e06c00"}
_EMPTY_MSG = "Run the simulation to see this chart"


# ── Form builder ──────────────────────────────────────────────────────────────

def make_config_form(default_events: dict = None):
    """
    Build an ipywidgets form for the run configuration.

    Parameters
    ----------
    default_events : dict, optional
        Event presets keyed by id (defaults to ``DEFAULT_EVENTS``).

    Returns
    -------
    tuple[widgets.VBox, callable]
        ``(box_widget, get_spec_fn)`` where ``get_spec_fn()`` returns a spec
        dict for :func:`moto_sim.make_config` reflecting the widget values.
    """
    presets = copy.deepcopy(default_events if default_events is not None else DEFAULT_EVENTS)
    wide = {"style": {"description_width": "110px"}, "layout": widgets.Layout(width="240px")}
    v0_txt = widgets.FloatText(value=0.0, description="v0 (m/s):", **wide)
    a0_txt = widgets.FloatText(value=2.0, description="a (m/s²):", **wide)
    dur_txt = widgets.FloatText(value=DEFAULT_DURATION_S, description="Duration (s):", **wide)
    cons_txt = widgets.FloatText(value=DEFAULT_C_BASE, description="L/100 km:", **wide)
    price_txt = widgets.FloatText(value=DEFAULT_FUEL_PRICE, description="Fuel price:", **wide)
    preview = widgets.HTML()

    def _refresh_preview(_=None) -> None:
        v_final, x_final = mruv_preview(v0_txt.value, a0_txt.value, dur_txt.value)
        preview.value = (
            f"v(t) = {v0_txt.value:g} + {a0_txt.value:g}·t &nbsp;|&nbsp; "
            f"v({dur_txt.value:g} s) = {v_final:.2f} m/s, x = {x_final:.2f} m"
        )

    for w in (v0_txt, a0_txt, dur_txt):
        w.observe(_refresh_preview, names="value")
    _refresh_preview()

    event_rows = {}
    narrow = {"style": {"description_width": "40px"}, "layout": widgets.Layout(width="130px")}
    for event_id, ev in presets.items():
        label = EVENT_LABELS.get(ev.get("kind", event_id), {}).get("text", event_id)
        chk = widgets.Checkbox(
            value=bool(ev.get("enabled", False)), description=label,
            layout=widgets.Layout(width="260px"), indent=False,
        )
        t0_txt = widgets.FloatText(value=ev["t0"], description="t0:", **narrow)
        mag_txt = widgets.FloatText(value=ev["magnitude"], description="Δa:", **narrow)
        dur_ev = widgets.FloatText(value=ev["duration"], description="dur:", **narrow)
        event_rows[event_id] = (chk, t0_txt, mag_txt, dur_ev)

    def get_spec():
        events = {}
        for event_id, (chk, t0_txt, mag_txt, dur_ev) in event_rows.items():
            events[event_id] = {
                "kind": presets[event_id].get("kind", event_id),
                "enabled": chk.value,
                "t0": t0_txt.value,
                "magnitude": mag_txt.value,
                "duration": dur_ev.value,
            }
        return {
            "v0": v0_txt.value,
            "a0": a0_txt.value,
            "duration": dur_txt.value,
            "c_base": cons_txt.value,
            "fuel_price": price_txt.value,
            "events": events,
        }

    box = widgets.VBox(
        [v0_txt, a0_txt, dur_txt, cons_txt, price_txt, preview]
        + [widgets.HBox(list(row)) for row in event_rows.values()],
        layout=widgets.Layout(
            border="1px solid #ccc", padding="8px",
            margin="4px", min_width="340px",
        ),
    )
    return box, get_spec


def make_integral_controls():
    """
    Build the partition-count slider, method picker and curve picker.

    Returns
    -------
    tuple[widgets.VBox, callable]
        ``(box_widget, get_choice_fn)`` where ``get_choice_fn()`` returns
        ``(curve, n, method)``.
    """
    n_sl = widgets.IntSlider(
        min=1, max=100, value=DEFAULT_PARTITIONS, description="Rectangles:",
        style={"description_width": "80px"}, layout=widgets.Layout(width="310px"),
    )
    method_rb = widgets.RadioButtons(options=list(METHODS), value="midpoint", description="Method:")
    curve_tb = widgets.ToggleButtons(options=list(CURVES), value="velocity", description="Curve:")

    def get_choice():
        return curve_tb.value, n_sl.value, method_rb.value

    return widgets.VBox([curve_tb, n_sl, method_rb]), get_choice


# ── Live panel ────────────────────────────────────────────────────────────────

def make_live_panel(config: dict, frame_ms: int = 50):
    """
    A play / reset panel that drives :func:`moto_sim.step` from a
    ``widgets.Play`` clock and shows the current sample.

    Returns
    -------
    tuple[widgets.VBox, callable]
        ``(box_widget, get_state_fn)``; ``get_state_fn()`` returns the
        state dict owned by the panel.
    """
    owner = {"state": initialize_state(config)}
    tick_s = min(frame_ms / 1000.0, MAX_STEP_S)
    frames = int(np.ceil(config["duration"] / tick_s)) + 1
    play = widgets.Play(min=0, max=frames, step=1, interval=frame_ms, value=0)
    reset_btn = widgets.Button(description="Reset")
    hud = widgets.HTML()
    banner = widgets.HTML()

    def _render() -> None:
        s = current_sample(owner["state"])
        hud.value = (
            f"t = {s['t']:.2f} s &nbsp; v = {s['v']:.2f} m/s &nbsp; "
            f"x = {s['x']:.2f} m &nbsp; a = {s['a']:.2f} m/s² &nbsp; "
            f"fuel = {s['fuel']:.4f} L "
            f"({fuel_cost(s['fuel'], config['fuel_price']):.3f})"
        )

    def _on_tick(change) -> None:
        if change["new"] <= change["old"]:
            return
        state = owner["state"]
        step(config, state, frame_ms / 1000.0)
        for event_id in state["entered"]:
            kind = next(ev["kind"] for ev in config["events"] if ev["id"] == event_id)
            label = EVENT_LABELS.get(kind, {"text": event_id, "color": "#888"})
            banner.value = f"<b style='color:{label['color']}'>{label['text']}</b>"
        if state["finished"]:
            play.playing = False
        _render()

    def _on_reset(_) -> None:
        play.playing = False
        owner["state"] = initialize_state(config)
        play.value = 0
        banner.value = ""
        _render()

    play.observe(_on_tick, names="value")
    reset_btn.on_click(_on_reset)
    _render()
    return widgets.VBox([widgets.HBox([play, reset_btn]), hud, banner]), lambda: owner["state"]


# ── Plot helpers ──────────────────────────────────────────────────────────────

def _draw_event_bands(ax, config: dict) -> None:
    for ev in config["events"]:
        color = EVENT_LABELS.get(ev["kind"], {}).get("color", "#888888")
        ax.axvspan(ev["t0"], ev["t0"] + ev["duration"], color=color, alpha=0.12, linewidth=0)


def _empty(ax) -> None:
    ax.text(0.5, 0.5, _EMPTY_MSG, ha="center", va="center", transform=ax.transAxes, alpha=0.6)


def _finish(fig, show: bool):
    plt.tight_layout()
    if show:
        plt.show()
    return fig


def plot_kinematics(config: dict, series: dict, show: bool = True):
    """Plot speed, acceleration and distance vs time with event windows shaded."""
    fig, axes = plt.subplots(1, 3, figsize=(14, 4))
    panels = (
        ("speed", "Speed vs Time", "Speed (m/s)", "tab:cyan"),
        ("accel", "Acceleration vs Time", "Acceleration (m/s²)", "tab:purple"),
        ("distance", "Distance vs Time", "Distance (m)", "tab:orange"),
    )
    for ax, (key, title, ylabel, color) in zip(axes, panels):
        ax.set_title(title)
        ax.set_xlabel("Time (s)")
        ax.set_ylabel(ylabel)
        ax.grid(True, alpha=0.3)
        if series["time"].size < 2:
            _empty(ax)
            continue
        _draw_event_bands(ax, config)
        ax.plot(series["time"], series[key], color=color, linewidth=2)
        ax.set_ylim(*value_range(series[key]))
    return _finish(fig, show)


def plot_integral(
    config: dict,
    curve: str = "velocity",
    n: int = DEFAULT_PARTITIONS,
    method: str = "midpoint",
    zoom: float = 1.0,
    series: dict = None,
    show: bool = True,
):
    """
    Draw the selected curve with the Riemann rectangles and trapezoids
    used by the estimator.

    Returns
    -------
    tuple
        ``(fig, report)``; ``report`` is ``None`` when there is no data.
    """
    if series is None:
        series = sample_dense(config, CHART_STEPS)
    report = estimate_integral(config, curve, n, method, series=series)
    fig, ax = plt.subplots(figsize=(11, 4.5))
    ax.set_xlabel("Time (s)")
    ax.set_ylabel(CURVES[curve]["key"])
    ax.grid(True, alpha=0.3)
    if report is None:
        _empty(ax)
        return _finish(fig, show), None

    color = _CURVE_COLORS[curve]
    t_arr, y_arr = series["time"], series[CURVES[curve]["key"]]
    lo, hi = value_range(y_arr)
    base = 0.0
    edges = np.linspace(t_arr[0], t_arr[-1], report["n"] + 1)

    for t0, t1 in zip(edges[:-1], edges[1:]):
        f0, f1 = interpolate(t_arr, y_arr, t0), interpolate(t_arr, y_arr, t1)
        ax.add_patch(Polygon(
            [(t0, base), (t0, f0), (t1, f1), (t1, base)],
            closed=True, facecolor="#b400ff", alpha=0.10, edgecolor="#b400ff", gid="trapezoid",
        ))
        if method == "trapezoidal":
            continue
        t_eval = {"left": t0, "right": t1}.get(method, (t0 + t1) / 2.0)
        height = interpolate(t_arr, y_arr, t_eval)
        ax.add_patch(Rectangle(
            (t0, min(height, base)), t1 - t0, abs(height - base),
            facecolor="#ff7a00", alpha=0.18, edgecolor="#ff7a00", gid="riemann",
        ))

    ax.plot(t_arr, y_arr, color=color, linewidth=2.5)
    if lo < 0 < hi:
        ax.axhline(0.0, color="k", linestyle="--", linewidth=1, alpha=0.4)
    _draw_event_bands(ax, config)
    ax.set_xlim(*view_window(config["duration"], zoom))
    ax.set_ylim(min(lo, base), max(hi, base))
    ax.set_title(f"{method} sum over {curve}: {CURVES[curve]['label']}")
    return _finish(fig, show), report


def plot_fuel(config: dict, series: dict, show: bool = True):
    """Plot the U-shaped consumption curve and cumulative fuel side-by-side."""
    fig, axes = plt.subplots(1, 2, figsize=(12, 4))
    speeds, l100 = consumption_curve(config["c_base"])
    axes[0].plot(speeds * 3.6, l100, color="#ffc400", linewidth=2)
    axes[0].axvline(V_OPT * 3.6, linestyle="--", color="tab:cyan", alpha=0.6,
                    label=f"v_opt = {V_OPT * 3.6:.0f} km/h")
    axes[0].set_title("Consumption vs Speed")
    axes[0].set_xlabel("Speed (km/h)")
    axes[0].set_ylabel("L/100 km")
    axes[0].grid(True, alpha=0.3)
    axes[0].legend()

    axes[1].set_title("Cumulative Fuel")
    axes[1].set_xlabel("Time (s)")
    axes[1].set_ylabel("Fuel (L)")
    axes[1].grid(True, alpha=0.3)
    if series["time"].size < 2:
        _empty(axes[1])
    else:
        _draw_event_bands(axes[1], config)
        axes[1].fill_between(series["time"], series["fuel"], color="#ffc400", alpha=0.1)
        axes[1].plot(series["time"], series["fuel"], color="#ffc400", linewidth=2)
        axes[1].set_ylim(0.0, (float(series["fuel"].max()) * 1.2) or 0.001)
    return _finish(fig, show)


# ── Summary printers ──────────────────────────────────────────────────────────

def format_integral_table(report) -> str:
    """Render an integral report as aligned text rows."""
    if report is None:
        return "no data"
    u, n = report["unit"], report["n"]
    rows = (
        ("Exact", f"{report['exact']:.3f} {u}"),
        (f"Riemann (n={n})", f"{report['riemann']:.3f} {u}"),
        (f"Trapezoid (n={n})", f"{report['trapezoidal']:.3f} {u}"),
        ("Riemann error", f"{report['error_riemann']:.4f} {u}"),
        ("Trapezoid error", f"{report['error_trapezoidal']:.4f} {u}"),
    )
    return "\n".join(f"{label:<18}{value:>16}" for label, value in rows)


def print_run_summary(config: dict, result: dict) -> None:
    """Print the final sample, fuel use and events passed during a run."""
    print(
        f"T={result['elapsed_time']:.2f} s | v={result['final_speed']:.2f} m/s"
        f" | x={result['final_distance']:.2f} m"
    )
    print(
        f"  fuel={result['fuel_litres']:.5f} L  →  cost={result['fuel_cost']:.4f}"
        f" at {config['fuel_price']:.2f}/L"
    )
    for event_id in result["events_seen"]:
        kind = next(ev["kind"] for ev in config["events"] if ev["id"] == event_id)
        print(f"  · {EVENT_LABELS.get(kind, {'text': event_id})['text']}")


# ── Combined output ───────────────────────────────────────────────────────────

def run_simulation_output(
    spec: dict,
    curve: str = "velocity",
    n: int = DEFAULT_PARTITIONS,
    method: str = "midpoint",
    zoom: float = 1.0,
) -> dict:
    """Build the config, run it, print summaries and display every plot."""
    make_logger()
    config = make_config(spec)
    result = simulate_run(config)
    series = sample_dense(config, CHART_STEPS)
    print_run_summary(config, result)
    plot_kinematics(config, result)
    _, report = plot_integral(config, curve, n, method, zoom, series=series)
    print(format_integral_table(report))
    plot_fuel(config, result)
    return {"config": config, "result": result, "report": report}
