"""
Rule Catalog: constructors that close over configuration and return a Rule.

Every constructor produces a fresh Rule bound to nothing in particular; the
repository asks a rule set factory for one list per entity.

Reference collections (sound zones, property borders, fire roads, ...) are
sequences of Features / FeatureCollections, or raw GeoJSON dicts of those
two shapes. Anything else raises UnsupportedGeometryShape at evaluation time.
"""

import math
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from placement_kernel.cluster.graph import ClusterIndex
from placement_kernel.cluster.naive import naive_total_area
from placement_kernel.entities.collection import EntityCollection
from placement_kernel.geometry.oracle import GeometryOracle, ShapelyGeometryOracle
from placement_kernel.models.config import EngineConfig
from placement_kernel.models.entity import UNSET, MapEntity
from placement_kernel.models.geometry import Feature, iter_features, parse_shape, primary_feature
from placement_kernel.models.rule import RuleResult
from placement_kernel.rules.rule import Rule

_DEFAULT_CONFIG = EngineConfig()


def _reference_features(reference: Sequence[Any]) -> Iterator[Feature]:
    """Flatten a reference collection into its member features."""
    for item in reference:
        yield from iter_features(parse_shape(item))


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _entity_area(entity: MapEntity, oracle: GeometryOracle) -> float:
    """Declared area if the entity has one, else the area of its geometry."""
    if entity.area is not None:
        return entity.area
    return oracle.area(entity.geometry)


def calculate_reasonable_area(
    calculated_need: float,
    a: float = _DEFAULT_CONFIG.reasonable_area_a,
    b: float = _DEFAULT_CONFIG.reasonable_area_b,
    max_cluster_size: float = _DEFAULT_CONFIG.max_cluster_size,
) -> float:
    """
    Area an entity may reasonably take for a given need.

    Grants ``need * (1 + a * need**b)`` with the bonus clamped to [0, a]:
    small areas get a larger relative allowance than large ones. The result
    never exceeds the maximum cluster size.
    """
    if calculated_need <= 0:
        additional = 0.0
    else:
        additional = a * math.pow(calculated_need, b)
    clamped = max(0.0, min(additional, a))
    return min(calculated_need * (1 + clamped), max_cluster_size)


# --- Attribute rules ---

def has_many_coordinates(config: EngineConfig = _DEFAULT_CONFIG) -> Rule:
    def predicate(entity: MapEntity) -> RuleResult:
        geometry = primary_feature(entity.geometry).geometry
        coordinates = geometry.get("coordinates") or [[]]
        if geometry.get("type") == "MultiPolygon":
            coordinates = coordinates[0] if coordinates else [[]]
        outer_ring = coordinates[0] if coordinates else []
        return RuleResult(triggered=len(outer_ring) > config.max_points_before_warning)

    return Rule(
        1,
        "Many points.",
        "You have added many points to this shape. Bear in mind that you will "
        "have to set this shape up in reality as well.",
        predicate,
        name="has_many_coordinates",
    )


def has_large_energy_need(max_power_need: float = _DEFAULT_CONFIG.max_power_need) -> Rule:
    return Rule(
        1,
        "Powerful.",
        "You need a lot of power, make sure its not a typo.",
        lambda entity: RuleResult(triggered=entity.power_need > max_power_need),
        name="has_large_energy_need",
    )


def has_missing_fields() -> Rule:
    def predicate(entity: MapEntity) -> RuleResult:
        missing = (
            not entity.name
            or not entity.description
            or not entity.contact_info
            or entity.power_need == UNSET
            or entity.amplified_sound == UNSET
        )
        return RuleResult(triggered=missing)

    return Rule(
        2,
        "Missing info",
        "Fill in name, description, contact info, power need and sound amplification please.",
        predicate,
        name="has_missing_fields",
    )


def is_calculated_area_too_big(max_cluster_size: float = _DEFAULT_CONFIG.max_cluster_size) -> Rule:
    return Rule(
        3,
        "Too many ppl/vehicles!",
        "Calculated area need is bigger than the maximum allowed area size! "
        "Make another area to fix this.",
        lambda entity: RuleResult(triggered=entity.calculated_area_needed > max_cluster_size),
        name="is_calculated_area_too_big",
    )


# --- Capacity vs area ---

def is_bigger_than_needed(
    config: EngineConfig = _DEFAULT_CONFIG,
    oracle: Optional[GeometryOracle] = None,
) -> Rule:
    oracle = oracle or ShapelyGeometryOracle()

    def predicate(entity: MapEntity) -> RuleResult:
        need = entity.calculated_area_needed
        area = _entity_area(entity, oracle)
        allowed = calculate_reasonable_area(
            need, config.reasonable_area_a, config.reasonable_area_b, config.max_cluster_size
        )
        return RuleResult(
            triggered=area > allowed,
            message=(
                f"Your area is {_round_half_up(area - need)}m² bigger than the "
                f"suggested area size. Consider making it smaller."
            ),
        )

    return Rule(
        2,
        "Bigger than needed?",
        "Your area is quite big for the amount of people/vehicles and extras you have typed in.",
        predicate,
        name="is_bigger_than_needed",
    )


def is_smaller_than_needed(oracle: Optional[GeometryOracle] = None) -> Rule:
    oracle = oracle or ShapelyGeometryOracle()

    def predicate(entity: MapEntity) -> RuleResult:
        need = entity.calculated_area_needed
        area = _entity_area(entity, oracle)
        if area < need:
            return RuleResult(
                triggered=True,
                short_message="Too small.",
                message=(
                    "Considering the amount of people, vehicles and extras you have, "
                    "this area is probably too small. Consider adding at least "
                    f"{math.ceil(need - area)}m² more."
                ),
            )
        return RuleResult(triggered=False)

    return Rule(
        1,
        "Too small.",
        "Considering the amount of people, vehicles and extras you have, this area is probably too small.",
        predicate,
        name="is_smaller_than_needed",
    )


# --- Reference collection rules ---

def is_overlapping(
    reference: Sequence[Any],
    severity: int,
    short_message: str,
    message: str,
    oracle: Optional[GeometryOracle] = None,
) -> Rule:
    """Triggers when the entity overlaps any reference feature. Containment alone does not count."""
    oracle = oracle or ShapelyGeometryOracle()

    def predicate(entity: MapEntity) -> RuleResult:
        return RuleResult(triggered=any(
            oracle.overlaps(entity.geometry, feature)
            for feature in _reference_features(reference)
        ))

    return Rule(severity, short_message, message, predicate, name="is_overlapping")


def is_overlapping_or_contained(
    reference: Sequence[Any],
    severity: int,
    short_message: str,
    message: str,
    oracle: Optional[GeometryOracle] = None,
) -> Rule:
    oracle = oracle or ShapelyGeometryOracle()

    def predicate(entity: MapEntity) -> RuleResult:
        for feature in _reference_features(reference):
            if oracle.overlaps(entity.geometry, feature) or oracle.contains(feature, entity.geometry):
                return RuleResult(triggered=True)
        return RuleResult(triggered=False)

    return Rule(severity, short_message, message, predicate, name="is_overlapping_or_contained")


def check_entity_boundaries(
    reference: Sequence[Any],
    severity: int,
    short_message: str,
    message: str,
    should_be_inside: bool,
    oracle: Optional[GeometryOracle] = None,
) -> Rule:
    """
    Containment rule with configurable polarity.

    ``should_be_inside=True`` triggers when the entity IS inside some
    reference feature (forbidden zones); False triggers when it is inside
    none of them (property border).
    """
    oracle = oracle or ShapelyGeometryOracle()

    def predicate(entity: MapEntity) -> RuleResult:
        for feature in _reference_features(reference):
            if oracle.contains(feature, entity.geometry):
                return RuleResult(triggered=should_be_inside)
        return RuleResult(triggered=not should_be_inside)

    name = "is_inside_boundaries" if should_be_inside else "is_not_inside_boundaries"
    return Rule(severity, short_message, message, predicate, name=name)


def is_inside_boundaries(
    reference: Sequence[Any],
    severity: int,
    short_message: str,
    message: str,
    oracle: Optional[GeometryOracle] = None,
) -> Rule:
    return check_entity_boundaries(reference, severity, short_message, message, True, oracle)


def is_not_inside_boundaries(
    reference: Sequence[Any],
    severity: int,
    short_message: str,
    message: str,
    oracle: Optional[GeometryOracle] = None,
) -> Rule:
    return check_entity_boundaries(reference, severity, short_message, message, False, oracle)


def is_breaking_sound_limit(
    reference: Sequence[Any],
    severity: int,
    short_message: str,
    message: str,
    sound_limits: Optional[Mapping[str, float]] = None,
    oracle: Optional[GeometryOracle] = None,
) -> Rule:
    """
    Zone-conditional ceiling on amplified sound.

    Every sound zone the entity overlaps or sits in applies the ceiling for
    its ``type`` property. Zone types missing from the table impose none.
    """
    oracle = oracle or ShapelyGeometryOracle()
    limits = dict(sound_limits if sound_limits is not None else _DEFAULT_CONFIG.sound_limits)

    def predicate(entity: MapEntity) -> RuleResult:
        if entity.amplified_sound is None:
            return RuleResult(triggered=False)

        for feature in _reference_features(reference):
            limit = limits.get(feature.properties.get("type"))
            if limit is None or entity.amplified_sound <= limit:
                continue
            if oracle.overlaps(entity.geometry, feature) or oracle.contains(feature, entity.geometry):
                return RuleResult(triggered=True)
        return RuleResult(triggered=False)

    return Rule(severity, short_message, message, predicate, name="is_breaking_sound_limit")


# --- Cluster capacity ---

def _cluster_result(total_area: float, max_cluster_size: float) -> RuleResult:
    if total_area > max_cluster_size:
        return RuleResult(
            triggered=True,
            short_message=f"Cluster too big: {_round_half_up(total_area)}m²",
        )
    return RuleResult(triggered=False)


def is_cluster_too_big(
    index: ClusterIndex,
    severity: int = 3,
    short_message: str = "Too large/close to others!",
    message: str = (
        "This area is either in itself too large, or too close to other areas. "
        "Make it smaller or move it further away."
    ),
) -> Rule:
    """Incremental cluster capacity. Evaluating it updates the index's graph and cache."""

    def predicate(entity: MapEntity) -> RuleResult:
        return _cluster_result(index.total_area(entity), index.config.max_cluster_size)

    return Rule(severity, short_message, message, predicate, name="is_cluster_too_big")


def is_buffer_overlapping_recursive(
    collection: EntityCollection,
    severity: int = 3,
    short_message: str = "Too large/close to others!",
    message: str = (
        "This area is either in itself too large, or too close to other areas. "
        "Make it smaller or move it further away."
    ),
    config: EngineConfig = _DEFAULT_CONFIG,
    oracle: Optional[GeometryOracle] = None,
) -> Rule:
    """Cluster capacity recomputed from scratch on every call."""
    oracle = oracle or ShapelyGeometryOracle()

    def predicate(entity: MapEntity) -> RuleResult:
        total = naive_total_area(entity, collection, oracle, config.fire_buffer_in_meter)
        return _cluster_result(total, config.max_cluster_size)

    return Rule(severity, short_message, message, predicate, name="is_buffer_overlapping_recursive")


# --- Editor rule set ---

def generate_rules_for_editor(
    reference_layers: Mapping[str, Sequence[Any]],
    index: ClusterIndex,
    config: Optional[EngineConfig] = None,
) -> Callable[[], List[Rule]]:
    """
    Build the factory that gives every entity its own rule list.

    ``reference_layers`` may hold any of: soundguide, slope, fireroad,
    propertyborder, hiddenforbidden, highprio. Rules for missing layers are
    left out.
    """
    config = config or index.config
    oracle = index.oracle

    layer_rules: Dict[str, Callable[[Sequence[Any]], Rule]] = {
        "soundguide": lambda layer: is_breaking_sound_limit(
            layer, 2, "Making too much noise?",
            "Seems like you wanna play louder than your neighbors might expect? "
            "Check the sound guide layer!",
            sound_limits=config.sound_limits, oracle=oracle,
        ),
        "slope": lambda layer: is_overlapping_or_contained(
            layer, 1, "Slope warning!",
            "Your area is in slopey or uneven terrain, make sure to check the slope "
            "map layer to make sure that you know what you are doing.",
            oracle=oracle,
        ),
        "fireroad": lambda layer: is_overlapping_or_contained(
            layer, 3, "Touching fireroad!",
            "Please move this area away from the fire road!",
            oracle=oracle,
        ),
        "propertyborder": lambda layer: is_not_inside_boundaries(
            layer, 3, "Outside border!",
            "You have placed yourself outside our land, please fix that.",
            oracle=oracle,
        ),
        "hiddenforbidden": lambda layer: is_inside_boundaries(
            layer, 3, "Inside forbidden zone!",
            "You are inside a zone that can not be used this year.",
            oracle=oracle,
        ),
        "highprio": lambda layer: is_not_inside_boundaries(
            layer, 2, "Outside placement areas.",
            "You are outside the main placement area (yellow border). "
            "Make sure you know what you are doing.",
            oracle=oracle,
        ),
    }

    def factory() -> List[Rule]:
        rules = [
            is_bigger_than_needed(config, oracle),
            is_smaller_than_needed(oracle),
            is_calculated_area_too_big(config.max_cluster_size),
            has_large_energy_need(config.max_power_need),
            has_missing_fields(),
            has_many_coordinates(config),
        ]
        for layer_name, build in layer_rules.items():
            if layer_name in reference_layers:
                rules.append(build(reference_layers[layer_name]))
        rules.append(is_cluster_too_big(index))
        return rules

    return factory
