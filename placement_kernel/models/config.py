"""Engine configuration."""

from typing import Dict

from pydantic import BaseModel, Field


DEFAULT_SOUND_LIMITS: Dict[str, float] = {
    "soundquiet": 10,
    "soundlow": 120,
    "soundmediumlow": 2000,
    "soundmedium": 2000,
}


class EngineConfig(BaseModel):
    """Thresholds and constants used by the rule catalog and the cluster index."""

    fire_buffer_in_meter: float = Field(gt=0, default=5)
    max_cluster_size: float = Field(gt=0, default=1250)       # m²
    max_power_need: float = 8000                               # W
    max_points_before_warning: int = 10
    reasonable_area_a: float = 0.5      # Initial additional area
    reasonable_area_b: float = -0.2     # Rate of decrease of the additional area
    sound_limits: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_SOUND_LIMITS)
    )
