"""Tests for core data models."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from placement_kernel.models import (
    EngineConfig,
    EntityChanges,
    EntityReport,
    Feature,
    FeatureCollection,
    MapEntity,
    RuleResult,
    Severity,
    UNSET,
    UnsupportedGeometryShape,
    iter_features,
    parse_shape,
    polygon_feature,
    primary_feature,
)


def _box(x0: float, y0: float, x1: float, y1: float) -> Feature:
    return polygon_feature([[x0, y0], [x1, y0], [x1, y1], [x0, y1]])


class TestGeometryShapes:
    def test_polygon_feature_closes_ring(self):
        feature = _box(0, 0, 10, 10)
        ring = feature.geometry["coordinates"][0]
        assert feature.geometry["type"] == "Polygon"
        assert ring[0] == ring[-1]
        assert len(ring) == 5

    def test_parse_feature_dict(self):
        shape = parse_shape({
            "type": "Feature",
            "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 0]]]},
        })
        assert isinstance(shape, Feature)
        assert shape.properties == {}

    def test_parse_feature_collection_dict(self):
        shape = parse_shape({
            "type": "FeatureCollection",
            "features": [_box(0, 0, 1, 1).model_dump(), _box(2, 2, 3, 3).model_dump()],
        })
        assert isinstance(shape, FeatureCollection)
        assert len(list(iter_features(shape))) == 2

    def test_bare_geometry_is_unsupported(self):
        with pytest.raises(UnsupportedGeometryShape):
            parse_shape({"type": "Polygon", "coordinates": []})

    def test_non_mapping_is_unsupported(self):
        with pytest.raises(UnsupportedGeometryShape):
            parse_shape([1, 2, 3])

    def test_malformed_feature_is_unsupported(self):
        with pytest.raises(UnsupportedGeometryShape):
            parse_shape({"type": "Feature"})

    def test_primary_feature_of_collection_is_first_member(self):
        first = _box(0, 0, 1, 1)
        collection = FeatureCollection(features=[first, _box(5, 5, 6, 6)])
        assert primary_feature(collection) == first

    def test_primary_feature_of_empty_collection(self):
        with pytest.raises(UnsupportedGeometryShape):
            primary_feature(FeatureCollection(features=[]))


class TestMapEntity:
    def test_defaults_use_unset_sentinel(self):
        entity = MapEntity(id=1, geometry=_box(0, 0, 10, 10))
        assert entity.power_need == UNSET
        assert entity.amplified_sound == UNSET
        assert entity.area is None
        assert entity.revision == 0

    def test_geometry_from_raw_dict(self):
        entity = MapEntity(id=2, geometry=_box(0, 0, 10, 10).model_dump())
        assert isinstance(entity.geometry, Feature)

    def test_unsupported_geometry_rejected(self):
        with pytest.raises(ValidationError):
            MapEntity(id=3, geometry={"type": "Point", "coordinates": [0, 0]})

    def test_json_round_trip_keeps_collection(self):
        entity = MapEntity(
            id=4,
            geometry=FeatureCollection(features=[_box(0, 0, 1, 1)]),
            timestamp=datetime(2024, 7, 1, 12, 0),
        )
        restored = MapEntity.model_validate(entity.model_dump(mode="json"))
        assert isinstance(restored.geometry, FeatureCollection)
        assert restored.timestamp == entity.timestamp


class TestEngineConfig:
    def test_defaults(self):
        config = EngineConfig()
        assert config.fire_buffer_in_meter == 5
        assert config.max_cluster_size == 1250
        assert config.max_power_need == 8000
        assert config.sound_limits["soundquiet"] == 10
        assert config.sound_limits["soundlow"] == 120

    def test_sound_limits_not_shared(self):
        a = EngineConfig()
        b = EngineConfig()
        a.sound_limits["soundquiet"] = 0
        assert b.sound_limits["soundquiet"] == 10

    def test_buffer_must_be_positive(self):
        with pytest.raises(Exception):
            EngineConfig(fire_buffer_in_meter=0)


class TestRuleModels:
    def test_rule_result_messages_optional(self):
        result = RuleResult(triggered=True)
        assert result.short_message is None
        assert result.message is None

    def test_severity_levels(self):
        assert int(Severity.NONE) == 0
        assert int(Severity.CRITICAL) == 3

    def test_entity_report_defaults(self):
        report = EntityReport(entity_id=1, evaluated_at=datetime.utcnow())
        assert report.severity == 0
        assert report.triggered == []

    def test_entity_changes_defaults(self):
        changes = EntityChanges()
        assert changes.deleted == changes.added == changes.updated == []
