"""
Geometry Oracle: the spatial predicates the rule kernel consumes.

The kernel never does polygon math itself. It asks an oracle whether two
shapes overlap, whether one contains the other, for a buffered copy of a
shape and for a shape's area in square metres.

Shapes are Features or FeatureCollections. For a collection, a predicate
holds if any member feature satisfies it.
"""

import logging
from typing import List, Optional, Protocol, Union

import shapely
from pyproj import CRS, Transformer
from shapely.geometry import mapping, shape
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import Polygon, orient

from placement_kernel.models.geometry import (
    Feature,
    FeatureCollection,
    iter_features,
    primary_feature,
)

logger = logging.getLogger(__name__)

Shape = Union[Feature, FeatureCollection]


class GeometryOracle(Protocol):
    """Spatial predicates over Features and FeatureCollections."""

    def overlaps(self, a: Shape, b: Shape) -> bool:
        """True if the interiors of a and b intersect without either containing the other."""
        ...

    def contains(self, a: Shape, b: Shape) -> bool:
        """True if a contains b."""
        ...

    def buffer(self, a: Shape, distance_meters: float) -> Feature:
        """Expand a's polygon by the given distance."""
        ...

    def area(self, a: Shape) -> float:
        """Area of a in square metres."""
        ...


class ShapelyGeometryOracle:
    """
    Oracle backed by shapely.

    Without ``source_crs`` coordinates are taken to be planar metres.

    With a geographic ``source_crs`` (e.g. "EPSG:4326" for lon/lat GeoJSON)
    areas are geodesic on the CRS ellipsoid, and buffers are drawn in an
    azimuthal equidistant projection centred on the buffered shape, so
    neither is distorted by latitude. A projected ``source_crs`` must use
    metres and is measured as is. Overlap and containment are topological
    and are always tested in source coordinates.
    """

    def __init__(self, source_crs: Optional[str] = None):
        self.source_crs = source_crs
        self._crs = None
        self._geod = None
        if source_crs is not None:
            self._crs = CRS.from_user_input(source_crs)
            if self._crs.is_geographic:
                self._geod = self._crs.get_geod()
                logger.debug("Measuring %s geometries geodesically", source_crs)

    def _geometries(self, a: Shape) -> List[BaseGeometry]:
        return [shape(f.geometry) for f in iter_features(a)]

    def _geodesic_area(self, geom: BaseGeometry) -> float:
        if hasattr(geom, "geoms"):
            return sum(self._geodesic_area(g) for g in geom.geoms)
        if not isinstance(geom, Polygon):
            return 0.0
        area, _ = self._geod.geometry_area_perimeter(orient(geom, sign=1.0))
        return abs(area)

    def _local_transformers(self, geom: BaseGeometry):
        centre = geom.centroid
        local = CRS.from_proj4(
            f"+proj=aeqd +lat_0={centre.y} +lon_0={centre.x} +datum=WGS84 +units=m"
        )
        forward = Transformer.from_crs(self._crs, local, always_xy=True)
        inverse = Transformer.from_crs(local, self._crs, always_xy=True)
        return forward, inverse

    def overlaps(self, a: Shape, b: Shape) -> bool:
        others = self._geometries(b)
        return any(ga.overlaps(gb) for ga in self._geometries(a) for gb in others)

    def contains(self, a: Shape, b: Shape) -> bool:
        others = self._geometries(b)
        return any(ga.contains(gb) for ga in self._geometries(a) for gb in others)

    def buffer(self, a: Shape, distance_meters: float) -> Feature:
        feature = primary_feature(a)
        geom = shape(feature.geometry)
        if self._geod is None:
            buffered = geom.buffer(distance_meters)
        else:
            forward, inverse = self._local_transformers(geom)
            local = shapely.transform(geom, forward.transform, interleaved=False)
            buffered = shapely.transform(
                local.buffer(distance_meters), inverse.transform, interleaved=False
            )
        return Feature(geometry=mapping(buffered), properties=dict(feature.properties))

    def area(self, a: Shape) -> float:
        geoms = self._geometries(a)
        if self._geod is None:
            return float(sum(g.area for g in geoms))
        return float(sum(self._geodesic_area(g) for g in geoms))


def is_adjacent(oracle: GeometryOracle, buffered: Shape, other: Shape) -> bool:
    """
    Adjacency between a buffered subject and another entity's raw geometry.

    A plain overlap test misses neighbours that sit entirely inside the
    buffer (or that swallow it), so containment in either direction counts
    too.
    """
    return (
        oracle.overlaps(buffered, other)
        or oracle.contains(buffered, other)
        or oracle.contains(other, buffered)
    )
