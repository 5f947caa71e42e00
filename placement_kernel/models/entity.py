"""Map Entity: a placed polygonal area with the attributes the rules look at."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator

from placement_kernel.models.geometry import GeoShape, parse_shape

# Sentinel used by the editor for numeric fields the user has not filled in.
UNSET = -1


class MapEntity(BaseModel):
    """A single placed area tracked by the repository."""

    id: int                                 # Stable numeric id
    revision: int = 0
    timestamp: Optional[datetime] = None
    geometry: GeoShape
    name: str = ""
    description: str = ""
    contact_info: str = ""
    power_need: float = UNSET               # Watts
    amplified_sound: Optional[float] = UNSET  # Watts; None = not declared
    calculated_area_needed: float = 0.0     # m², derived from people/vehicles/extras
    area: Optional[float] = None            # Declared m²; None = use geometry

    @field_validator("geometry", mode="before")
    @classmethod
    def _check_shape(cls, value):
        return parse_shape(value)


class EntityChanges(BaseModel):
    """Ids affected by a repository reload."""

    deleted: List[int] = []
    added: List[int] = []
    updated: List[int] = []                 # Only strictly newer revisions
