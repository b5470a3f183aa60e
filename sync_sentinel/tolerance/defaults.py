# Substituted at setup for any tolerance left unset or non-positive.
# Frequency default is a fraction of the nominal system frequency.

DEFAULTS = {
    # Fraction of nominal frequency (1%)
    "FREQUENCY_TOL_FRACTION": 0.01,

    # Per-unit of the pair's average nominal voltage
    "VOLTAGE_TOL_PU": 1e-2,
    "VOLTAGE_MAGNITUDE_TOL_PU": 1e-2,

    # Degrees
    "VOLTAGE_ANGLE_TOL_DEG": 5.0,

    # Seconds of continuous compliance before closing
    "DWELL_PERIOD_SEC": 1.2,

    # Scales every tolerance to get the fine-step trigger band
    "TRIGGER_MULT": 2.0,
}
