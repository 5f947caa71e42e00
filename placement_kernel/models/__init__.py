"""Placement kernel data models."""

from placement_kernel.models.config import DEFAULT_SOUND_LIMITS, EngineConfig
from placement_kernel.models.entity import UNSET, EntityChanges, MapEntity
from placement_kernel.models.geometry import (
    Feature,
    FeatureCollection,
    GeoShape,
    UnsupportedGeometryShape,
    iter_features,
    parse_shape,
    polygon_feature,
    primary_feature,
)
from placement_kernel.models.rule import EntityReport, RuleReport, RuleResult, Severity

__all__ = [
    "DEFAULT_SOUND_LIMITS",
    "EngineConfig",
    "EntityChanges",
    "EntityReport",
    "Feature",
    "FeatureCollection",
    "GeoShape",
    "MapEntity",
    "RuleReport",
    "RuleResult",
    "Severity",
    "UNSET",
    "UnsupportedGeometryShape",
    "iter_features",
    "parse_shape",
    "polygon_feature",
    "primary_feature",
]
