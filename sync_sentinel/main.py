from __future__ import annotations

from typing import Optional

import typer

from sync_sentinel.config import settings
from sync_sentinel.devices import Phase, phase_names
from sync_sentinel.errors import SyncSentinelError
from sync_sentinel.ingest.trace_loader import load_trace
from sync_sentinel.measure.snapshot import MeasurementSnapshot, balanced_phasors
from sync_sentinel.metrics.evaluator import measure, report_passes
from sync_sentinel.replay import replay_trace
from sync_sentinel.tolerance.config import (
    MetricMode,
    ToleranceConfig,
    relaxed_tolerances,
    resolve_config,
    strict_tolerances,
)
from sync_sentinel.utils.logging import error, event, info, warn

app = typer.Typer(add_completion=False)


# -------------------------
# Helpers
# -------------------------
def _build_config(
    mode: MetricMode,
    armed: bool,
    frequency_tol: Optional[float],
    voltage_tol: Optional[float],
    magnitude_tol: Optional[float],
    angle_tol: Optional[float],
    dwell: Optional[float],
    trigger_mult: Optional[float],
) -> ToleranceConfig:
    return ToleranceConfig(
        armed=armed,
        mode=mode,
        frequency_tolerance_hz=frequency_tol,
        voltage_tolerance_pu=voltage_tol,
        voltage_magnitude_tolerance_pu=magnitude_tol,
        voltage_angle_tolerance_deg=angle_tol,
        dwell_period_sec=dwell,
        trigger_multiplier=trigger_mult,
    )


def _parse_phases(text: str) -> Phase:
    try:
        phases = Phase.parse(text)
    except ValueError as e:
        raise typer.BadParameter(str(e))
    if not phases:
        raise typer.BadParameter("At least one of A/B/C is required.")
    return phases


# -------------------------
# Commands
# -------------------------
@app.command()
def replay(
    trace_csv: str = typer.Argument(..., help="CSV of recorded bus measurements"),
    mode: MetricMode = typer.Option(MetricMode.MAG_DIFF, help="MAG_DIFF|SEP_DIFF"),
    armed: bool = typer.Option(True, "--armed/--disarmed", help="Arm the monitor at the start of the trace"),
    phases: str = typer.Option("ABC", help="Phases present on the switch"),
    nominal_voltage: float = typer.Option(7200.0, help="Nominal phase-to-neutral voltage of both buses (V)"),
    frequency_tol: Optional[float] = typer.Option(None, help="Frequency tolerance (Hz)"),
    voltage_tol: Optional[float] = typer.Option(None, help="MAG_DIFF voltage tolerance (pu)"),
    magnitude_tol: Optional[float] = typer.Option(None, help="SEP_DIFF magnitude tolerance (pu)"),
    angle_tol: Optional[float] = typer.Option(None, help="SEP_DIFF angle tolerance (deg)"),
    dwell: Optional[float] = typer.Option(None, help="Dwell period (s)"),
    trigger_mult: Optional[float] = typer.Option(None, help="Fine-step trigger multiplier (> 1)"),
    plot: Optional[str] = typer.Option(None, help="Write a PNG of the run to this path"),
):
    ph = _parse_phases(phases)
    config = _build_config(mode, armed, frequency_tol, voltage_tol, magnitude_tol, angle_tol, dwell, trigger_mult)

    try:
        trace = load_trace(trace_csv, ph)
        result = replay_trace(trace, config, ph, nominal_voltage, name="replay")
    except (SyncSentinelError, ValueError) as e:
        error(str(e))
        raise typer.Exit(code=1)

    fine_sec = sum(end - start for start, end in result.fine_step_spans)
    info(f"Fine-step spans: {len(result.fine_step_spans)} ({fine_sec:.3f}s total)")

    if result.closed_at is not None:
        event(f"Switch closed at t={result.closed_at:.3f}s")
    else:
        warn("Switch was not closed during the trace.")

    if plot:
        import matplotlib

        # File output only
        matplotlib.use("Agg")
        from sync_sentinel.report.plots import plot_replay

        plot_replay(result, plot, title="Synchronization check replay", strict=result.strict, mode=mode)
        info(f"Plot written: {plot}")


@app.command()
def check(
    f_from: float = typer.Option(..., help="'From' bus frequency (Hz)"),
    f_to: float = typer.Option(..., help="'To' bus frequency (Hz)"),
    v_from: float = typer.Option(..., help="'From' bus phase voltage magnitude (V)"),
    v_to: float = typer.Option(..., help="'To' bus phase voltage magnitude (V)"),
    angle_from: float = typer.Option(0.0, help="'From' bus phase A angle (deg)"),
    angle_to: float = typer.Option(0.0, help="'To' bus phase A angle (deg)"),
    nominal_voltage: float = typer.Option(7200.0, help="Nominal phase-to-neutral voltage (V)"),
    mode: MetricMode = typer.Option(MetricMode.MAG_DIFF, help="MAG_DIFF|SEP_DIFF"),
    phases: str = typer.Option("ABC", help="Phases present on the switch"),
    frequency_tol: Optional[float] = typer.Option(None, help="Frequency tolerance (Hz)"),
    voltage_tol: Optional[float] = typer.Option(None, help="MAG_DIFF voltage tolerance (pu)"),
    magnitude_tol: Optional[float] = typer.Option(None, help="SEP_DIFF magnitude tolerance (pu)"),
    angle_tol: Optional[float] = typer.Option(None, help="SEP_DIFF angle tolerance (deg)"),
    trigger_mult: Optional[float] = typer.Option(None, help="Fine-step trigger multiplier (> 1)"),
):
    """Evaluate one balanced three-phase snapshot against strict and relaxed tolerances."""
    ph = _parse_phases(phases)
    config = _build_config(mode, False, frequency_tol, voltage_tol, magnitude_tol, angle_tol, None, trigger_mult)

    try:
        resolved = resolve_config(config, settings.nominal_frequency_hz)
    except SyncSentinelError as e:
        error(str(e))
        raise typer.Exit(code=1)

    if nominal_voltage <= 0:
        error("nominal_voltage must be positive.")
        raise typer.Exit(code=1)

    snapshot = MeasurementSnapshot(
        freq_from_hz=f_from,
        freq_to_hz=f_to,
        nominal_voltage=nominal_voltage,
        volt_from=balanced_phasors(v_from, angle_from),
        volt_to=balanced_phasors(v_to, angle_to),
    )
    report = measure(snapshot, ph)

    info(f"|Δf| = {report.freq_diff_hz:.4f} Hz")
    for dev in report.phases:
        info(
            f"Phase {dev.phase}: |ΔV| {dev.voltage_diff_pu:.4f} pu | "
            f"|Δ|V|| {dev.magnitude_diff_pu:.4f} pu | Δθ {dev.angle_diff_deg:.2f}°"
        )

    strict_ok = report_passes(report, strict_tolerances(resolved), mode)
    relaxed_ok = report_passes(report, relaxed_tolerances(resolved), mode)
    info(f"Phases checked: {''.join(phase_names(ph))} | mode {mode.value}")
    info(f"Strict (close) check: {'PASS' if strict_ok else 'FAIL'}")
    info(f"Relaxed (fine-step) check: {'PASS' if relaxed_ok else 'FAIL'}")


if __name__ == "__main__":
    app()
