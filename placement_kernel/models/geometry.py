"""GeoJSON shapes accepted by the kernel: a single Feature or a FeatureCollection."""

from typing import Annotated, Any, Dict, Iterator, List, Literal, Union

from pydantic import BaseModel, Field, ValidationError


class UnsupportedGeometryShape(ValueError):
    """Raised when a geometry value is neither a Feature nor a FeatureCollection."""
    pass


class Feature(BaseModel):
    """A single GeoJSON feature (geometry + free-form properties)."""

    type: Literal["Feature"] = "Feature"
    geometry: Dict[str, Any]                # GeoJSON geometry object
    properties: Dict[str, Any] = {}


class FeatureCollection(BaseModel):
    """A set of features. Predicates hold for the collection if any member satisfies them."""

    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: List[Feature] = []


GeoShape = Annotated[Union[Feature, FeatureCollection], Field(discriminator="type")]


def parse_shape(value: Any) -> Union[Feature, FeatureCollection]:
    """
    Coerce a raw value into a Feature or FeatureCollection.

    Anything else (bare geometries, unknown ``type`` tags, non-mappings) is an
    UnsupportedGeometryShape. Nothing is silently skipped.
    """
    if isinstance(value, (Feature, FeatureCollection)):
        return value
    if not isinstance(value, dict):
        raise UnsupportedGeometryShape(
            f"Unsupported geometry type: {type(value).__name__}"
        )

    shape_type = value.get("type")
    try:
        if shape_type == "Feature":
            return Feature.model_validate(value)
        if shape_type == "FeatureCollection":
            return FeatureCollection.model_validate(value)
    except ValidationError as e:
        raise UnsupportedGeometryShape(f"Malformed {shape_type}: {e}") from e

    raise UnsupportedGeometryShape(f"Unsupported geometry type: {shape_type!r}")


def iter_features(shape: Union[Feature, FeatureCollection]) -> Iterator[Feature]:
    """Yield every member feature of a shape (a Feature yields itself)."""
    if isinstance(shape, Feature):
        yield shape
    elif isinstance(shape, FeatureCollection):
        yield from shape.features
    else:
        raise UnsupportedGeometryShape(
            f"Unsupported geometry type: {type(shape).__name__}"
        )


def primary_feature(shape: Union[Feature, FeatureCollection]) -> Feature:
    """
    The feature that stands for an entity's polygon.

    A collection is represented by its first member; an empty collection has
    no polygon and is rejected.
    """
    if isinstance(shape, Feature):
        return shape
    if isinstance(shape, FeatureCollection):
        if not shape.features:
            raise UnsupportedGeometryShape("Empty FeatureCollection has no polygon")
        return shape.features[0]
    raise UnsupportedGeometryShape(
        f"Unsupported geometry type: {type(shape).__name__}"
    )


def polygon_feature(coordinates: List[List[float]], **properties: Any) -> Feature:
    """Build a Polygon feature from a single outer ring."""
    ring = [list(c) for c in coordinates]
    if ring and ring[0] != ring[-1]:
        ring.append(list(ring[0]))
    return Feature(
        geometry={"type": "Polygon", "coordinates": [ring]},
        properties=properties,
    )
