from __future__ import annotations

from typing import Optional

import pandas as pd

from sync_sentinel.devices import Phase, phase_names
from sync_sentinel.utils.logging import info, warn


# Standard column -> accepted aliases (case-insensitive matching)
TIME_CANDIDATES = ["time_s", "time", "t", "seconds", "timestamp"]
FREQ_CANDIDATES = {
    "freq_from": ["freq_from", "f_from", "frequency_from", "from_freq", "from_frequency"],
    "freq_to": ["freq_to", "f_to", "frequency_to", "to_freq", "to_frequency"],
}


def phase_columns(phase: str) -> dict[str, list[str]]:
    p = phase.lower()
    return {
        f"vmag_from_{phase}": [f"vmag_from_{p}", f"v_from_{p}_mag", f"from_v{p}_mag"],
        f"vang_from_{phase}": [f"vang_from_{p}", f"v_from_{p}_ang", f"from_v{p}_ang"],
        f"vmag_to_{phase}": [f"vmag_to_{p}", f"v_to_{p}_mag", f"to_v{p}_mag"],
        f"vang_to_{phase}": [f"vang_to_{p}", f"v_to_{p}_ang", f"to_v{p}_ang"],
    }


def _clean_cols(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = [str(c).strip() for c in df.columns]
    return df


def _lower_map(cols) -> dict[str, str]:
    return {str(c).strip().lower(): str(c).strip() for c in cols}


def _find_col(df: pd.DataFrame, candidates: list[str]) -> Optional[str]:
    cols_lower = _lower_map(df.columns)
    for cand in candidates:
        key = str(cand).strip().lower()
        if key in cols_lower:
            return cols_lower[key]
    return None


def _parse_time(series: pd.Series) -> pd.Series:
    """
    Seconds column as-is; datetime stamps (ISO strings, '2026-01-01 12:00:00.250')
    become seconds since the earliest stamp.
    """
    if pd.api.types.is_datetime64_any_dtype(series):
        ts = series
    else:
        secs = pd.to_numeric(series, errors="coerce")
        if secs.notna().any():
            return secs
        ts = pd.to_datetime(series, errors="coerce")
        if ts.isna().all():
            return secs
    return (ts - ts.min()).dt.total_seconds()


def required_columns(phases: Phase) -> dict[str, list[str]]:
    cols: dict[str, list[str]] = {"time_s": TIME_CANDIDATES}
    cols.update(FREQ_CANDIDATES)
    for ph in phase_names(phases):
        cols.update(phase_columns(ph))
    return cols


def standardize_trace(df: pd.DataFrame, phases: Phase) -> pd.DataFrame:
    """
    Input: any frame carrying the trace columns (or known aliases).
    Output: columns [time_s, freq_from, freq_to, vmag_*/vang_* for each phase],
    numeric, sorted by time, incomplete rows dropped.
    """
    df = _clean_cols(df)

    found: dict[str, str] = {}
    missing: list[str] = []
    for std, candidates in required_columns(phases).items():
        col = _find_col(df, candidates)
        if col is None:
            missing.append(std)
        else:
            found[std] = col

    if missing:
        warn(f"Trace columns found: {list(df.columns)}")
        raise ValueError(f"Missing required trace columns for phases {''.join(phase_names(phases))}: {missing}")

    out = pd.DataFrame(
        {
            std: _parse_time(df[col]) if std == "time_s" else pd.to_numeric(df[col], errors="coerce")
            for std, col in found.items()
        }
    )

    before = len(out)
    out = out.dropna().sort_values("time_s", kind="mergesort").reset_index(drop=True)
    if len(out) < before:
        warn(f"Dropped {before - len(out):,} trace rows with missing or non-numeric values.")

    if out.empty:
        raise ValueError("No valid rows after parsing the trace. Check numeric and timestamp formatting.")

    if out["time_s"].duplicated().any():
        warn("Trace has duplicate timestamps; keeping the last sample for each.")
        out = out.drop_duplicates(subset="time_s", keep="last").reset_index(drop=True)

    return out


def load_trace(path: str, phases: Phase) -> pd.DataFrame:
    info(f"Loading trace: {path}")
    try:
        df = pd.read_csv(path)
    except pd.errors.ParserError:
        # Semicolon / tab separated exports
        df = pd.read_csv(path, sep=None, engine="python")

    out = standardize_trace(df, phases)
    info(f"Loaded {len(out):,} trace samples spanning {out['time_s'].iloc[-1] - out['time_s'].iloc[0]:.3f}s.")
    return out
