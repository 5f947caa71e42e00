"""
Naive cluster total: the same quantity as ClusterIndex.total_area, recomputed
from scratch on every call with no graph and no area cache.

O(collection size x cluster size) oracle calls per evaluation. Useful as a
reference for the incremental index, and as a fallback right after a bulk
import where garbage collection churn would dominate.
"""

from typing import Dict, Optional, Set

from placement_kernel.cluster.graph import find_adjacent_ids, walk_cluster
from placement_kernel.entities.collection import EntityCollection, EntityNotFound
from placement_kernel.geometry.oracle import GeometryOracle
from placement_kernel.models.entity import MapEntity


def naive_total_area(
    entity: MapEntity,
    collection: EntityCollection,
    oracle: GeometryOracle,
    buffer_meters: float,
    visited: Optional[Set[int]] = None,
) -> float:
    """Total uncached area of every entity transitively adjacent to ``entity``."""
    if visited is None:
        visited = set()

    # The starting entity may be an unsaved edit, so it is not read back from
    # the collection.
    pending: Dict[int, MapEntity] = {entity.id: entity}

    def neighbors_of(entity_id: int) -> Set[int]:
        return find_adjacent_ids(_resolve(entity_id), collection, oracle, buffer_meters)

    def _resolve(entity_id: int) -> MapEntity:
        if entity_id in pending:
            return pending[entity_id]
        found = collection.get_by_id(entity_id)
        if found is None:
            raise EntityNotFound(entity_id)
        return found

    total = 0.0
    for entity_id in walk_cluster(entity.id, neighbors_of, visited):
        total += oracle.area(_resolve(entity_id).geometry)
    return total
