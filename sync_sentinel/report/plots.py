from __future__ import annotations

from pathlib import Path
from typing import Optional

import matplotlib.pyplot as plt
import matplotlib.ticker as mticker

from sync_sentinel.replay import ReplayResult
from sync_sentinel.tolerance.config import MetricMode, Tolerances


def _format_secs(x, _pos=None) -> str:
    """Seconds -> '0s', '12s', '1:05'."""
    if x is None:
        return ""
    try:
        x = float(x)
    except (TypeError, ValueError):
        return ""
    if x < 0:
        x = 0.0
    s = int(round(x))
    if s >= 60:
        return f"{s//60}:{s%60:02d}"
    return f"{s}s"


def plot_replay(
    result: ReplayResult,
    out_path: str,
    title: str,
    strict: Optional[Tolerances] = None,
    mode: MetricMode = MetricMode.MAG_DIFF,
):
    """
    Three stacked panels: frequency difference, voltage difference, dwell
    accumulator. Fine-step spans are shaded; the close instant is marked.
    """
    out_path = str(out_path)
    Path(out_path).parent.mkdir(parents=True, exist_ok=True)

    d = result.frame
    x = d["time_s"] - d["time_s"].iloc[0]
    t0 = float(d["time_s"].iloc[0])

    fig, axes = plt.subplots(3, 1, figsize=(6.6, 6.0), dpi=160, sharex=True)
    ax_f, ax_v, ax_d = axes

    ax_f.plot(x, d["freq_diff_hz"], linewidth=1.6)
    ax_f.set_ylabel("|Δf| (Hz)", fontsize=9)

    if mode == MetricMode.MAG_DIFF:
        ax_v.plot(x, d["voltage_diff_pu"], linewidth=1.6)
        ax_v.set_ylabel("|ΔV| (pu)", fontsize=9)
    else:
        ax_v.plot(x, d["magnitude_diff_pu"], linewidth=1.6, label="|Δ|V|| (pu)")
        ax_v.set_ylabel("|Δ|V|| (pu)", fontsize=9)
        ax_a = ax_v.twinx()
        ax_a.plot(x, d["angle_diff_deg"], linewidth=1.2, linestyle="--", color="tab:orange")
        ax_a.set_ylabel("Δθ (deg)", fontsize=9)
        ax_a.tick_params(axis="both", labelsize=8)
        if strict is not None:
            ax_a.axhline(strict.voltage_angle_deg, linestyle=":", color="tab:orange", alpha=0.7)

    ax_d.step(x, d["dwell_sec"], where="post", linewidth=1.6)
    ax_d.set_ylabel("Dwell (s)", fontsize=9)
    ax_d.set_xlabel("Time", fontsize=9)

    if strict is not None:
        ax_f.axhline(strict.frequency_hz, linestyle=":", color="tab:red", alpha=0.7)
        v_tol = strict.voltage_pu if mode == MetricMode.MAG_DIFF else strict.voltage_magnitude_pu
        ax_v.axhline(v_tol, linestyle=":", color="tab:red", alpha=0.7)

    for ax in axes:
        for start, end in result.fine_step_spans:
            ax.axvspan(start - t0, end - t0, color="tab:green", alpha=0.12)
        if result.closed_at is not None:
            ax.axvline(result.closed_at - t0, color="tab:red", linewidth=1.2)
        ax.tick_params(axis="both", labelsize=8)
        ax.grid(True, alpha=0.25)

    ax_d.xaxis.set_major_locator(mticker.MaxNLocator(nbins=6))
    ax_d.xaxis.set_major_formatter(mticker.FuncFormatter(_format_secs))

    ax_f.set_title(title, fontsize=11, pad=10)

    plt.tight_layout()
    fig.savefig(out_path, bbox_inches="tight")
    plt.close(fig)
