from pydantic import BaseModel

class Settings(BaseModel):
    nominal_frequency_hz: float = 60.0

    # Simulator supports sub-second (fine) stepping at all
    fine_step_enabled: bool = True

    # Coarse-pass trigger checks run once per this many simulated seconds
    trigger_interval_sec: float = 1.0

    # Fine sub-steps only do work on this iteration of the pre-update pass
    fine_step_iteration: int = 0

settings = Settings()
