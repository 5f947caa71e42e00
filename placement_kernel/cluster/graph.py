"""
Overlap Graph and Area Cache: incremental cluster-size bookkeeping.

Two entities are adjacent when one lies within the fire buffer distance of
the other. A cluster is every entity reachable through adjacency; its total
area is compared against the maximum cluster size.

Behavioral Contract:
- The graph is undirected: ``b in graph[a]`` iff ``a in graph[b]``
- An id with no neighbours keeps an empty entry (known, isolated)
- Areas are memoised and only dropped by an explicit purge
- Ids that vanished from the collection are purged before any lookup
- Each cluster member's area is summed exactly once, cycles included
"""

import logging
from typing import Callable, Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple

from placement_kernel.entities.collection import EntityCollection, EntityNotFound
from placement_kernel.geometry.oracle import GeometryOracle, is_adjacent
from placement_kernel.models.config import EngineConfig
from placement_kernel.models.entity import MapEntity
from placement_kernel.models.geometry import primary_feature

logger = logging.getLogger(__name__)


def walk_cluster(
    start: int,
    neighbors_of: Callable[[int], Iterable[int]],
    visited: Set[int],
) -> Iterator[int]:
    """
    Depth-first walk from ``start`` yielding every id not already in ``visited``.

    ``visited`` is updated in place, so a caller can share it between walks
    or inspect it afterwards.
    """
    stack = [start]
    while stack:
        current = stack.pop()
        if current in visited:
            continue
        visited.add(current)
        yield current
        for other in neighbors_of(current):
            if other not in visited:
                stack.append(other)


def find_adjacent_ids(
    entity: MapEntity,
    collection: EntityCollection,
    oracle: GeometryOracle,
    buffer_meters: float,
) -> Set[int]:
    """Ids of every other entity whose raw polygon touches the entity's buffer."""
    buffered = oracle.buffer(entity.geometry, buffer_meters)
    adjacent = set()
    for other in collection:
        if other.id == entity.id:
            continue
        if is_adjacent(oracle, buffered, primary_feature(other.geometry)):
            adjacent.add(other.id)
    return adjacent


class ClusterIndex:
    """
    Incrementally maintained adjacency graph and area cache.

    One index belongs to one entity collection. Call ``clear()`` when the
    collection is replaced wholesale.
    """

    def __init__(
        self,
        collection: EntityCollection,
        oracle: GeometryOracle,
        config: Optional[EngineConfig] = None,
    ):
        self.collection = collection
        self.oracle = oracle
        self.config = config or EngineConfig()
        self._graph: Dict[int, Set[int]] = {}
        self._area_cache: Dict[int, float] = {}

    # --- Inspection ---

    def tracked_ids(self) -> Set[int]:
        return set(self._graph) | set(self._area_cache)

    def neighbors(self, entity_id: int) -> FrozenSet[int]:
        return frozenset(self._graph.get(entity_id, ()))

    def cached_area(self, entity_id: int) -> Optional[float]:
        return self._area_cache.get(entity_id)

    def is_known(self, entity_id: int) -> bool:
        return entity_id in self._graph

    def snapshot(self) -> Dict[int, Set[int]]:
        """Copy of the adjacency mapping."""
        return {k: set(v) for k, v in self._graph.items()}

    # --- Maintenance ---

    def clear(self) -> None:
        """Forget every edge and cached area."""
        self._graph.clear()
        self._area_cache.clear()
        logger.info("Cluster index cleared")

    def purge(self, entity_id: int) -> None:
        """Remove an id from the cache, the graph and every neighbour set."""
        self._area_cache.pop(entity_id, None)
        self._graph.pop(entity_id, None)
        for neighbor_ids in self._graph.values():
            neighbor_ids.discard(entity_id)

    def invalidate_area(self, entity_id: int) -> None:
        """Drop a memoised area so the next lookup recomputes it. Edges are kept."""
        self._area_cache.pop(entity_id, None)

    def collect_garbage(self) -> List[int]:
        """Purge every tracked id the collection no longer holds."""
        removed = []
        for entity_id in sorted(self.tracked_ids()):
            if self.collection.get_by_id(entity_id) is None:
                self.purge(entity_id)
                removed.append(entity_id)
        if removed:
            logger.info("Purged %d vanished entities from cluster index: %s", len(removed), removed)
        return removed

    def find_neighbors(self, entity: MapEntity) -> Set[int]:
        return find_adjacent_ids(
            entity, self.collection, self.oracle, self.config.fire_buffer_in_meter
        )

    def update_neighbors(self, entity_id: int, neighbor_ids: Set[int]) -> Tuple[Set[int], Set[int]]:
        """
        Replace an id's neighbour set by applying only the difference.

        Returns the (removed, added) ids. The resulting graph is the same as
        dropping every edge of ``entity_id`` and inserting ``neighbor_ids``.
        """
        previous = self._graph.setdefault(entity_id, set())
        neighbor_ids = set(neighbor_ids)
        neighbor_ids.discard(entity_id)

        to_remove = previous - neighbor_ids
        to_add = neighbor_ids - previous

        for other in to_remove:
            self._graph.get(other, set()).discard(entity_id)
            previous.discard(other)

        for other in to_add:
            self._graph.setdefault(other, set()).add(entity_id)
            previous.add(other)

        if to_remove or to_add:
            logger.debug(
                "Entity %s edges: -%s +%s", entity_id, sorted(to_remove), sorted(to_add)
            )
        return to_remove, to_add

    def get_area(self, entity_id: int) -> float:
        """Cached area of an entity, computed through the oracle on first use."""
        if entity_id not in self._area_cache:
            entity = self.collection.get_by_id(entity_id)
            if entity is None:
                raise EntityNotFound(entity_id)
            self._area_cache[entity_id] = self.oracle.area(entity.geometry)
        return self._area_cache[entity_id]

    # --- Queries ---

    def cluster_ids(self, entity_id: int, visited: Optional[Set[int]] = None) -> Set[int]:
        """Every id reachable from ``entity_id`` through the current graph."""
        if visited is None:
            visited = set()
        return set(walk_cluster(entity_id, self.neighbors, visited))

    def cluster_area(self, entity_id: int, visited: Optional[Set[int]] = None) -> float:
        """Sum of cached areas over the cluster, without refreshing the graph."""
        if visited is None:
            visited = set()
        return sum(self.get_area(i) for i in walk_cluster(entity_id, self.neighbors, visited))

    def total_area(self, entity: MapEntity) -> float:
        """
        Refresh the entity's edges and return its cluster's total area.

        1. Purge ids that left the collection
        2. Find the entity's current neighbours
        3. Apply the edge difference
        4. Sum memoised areas over the cluster
        """
        self.collect_garbage()
        self.update_neighbors(entity.id, self.find_neighbors(entity))
        return self.cluster_area(entity.id)

    def rebuild(self) -> None:
        """Index every entity of the collection from scratch."""
        self.clear()
        for entity in list(self.collection):
            self.update_neighbors(entity.id, self.find_neighbors(entity))
        logger.info("Cluster index rebuilt for %d entities", len(self._graph))
