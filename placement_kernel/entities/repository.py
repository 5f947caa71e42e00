"""
Map Entity Repository: the in-process Entity Collection and owner of the
cluster index and of every entity's rule set.

Updated by: the hosting application (edits, reloads from its data source)
Queried by: rule predicates (through the Entity Collection interface)
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from placement_kernel.cluster.graph import ClusterIndex
from placement_kernel.entities.collection import EntityNotFound
from placement_kernel.evaluation.evaluator import RuleEvaluator
from placement_kernel.geometry.oracle import GeometryOracle, ShapelyGeometryOracle
from placement_kernel.models.config import EngineConfig
from placement_kernel.models.entity import EntityChanges, MapEntity
from placement_kernel.models.rule import EntityReport
from placement_kernel.rules.catalog import generate_rules_for_editor
from placement_kernel.rules.rule import Rule

logger = logging.getLogger(__name__)


def _as_utc(moment: datetime) -> datetime:
    """Naive timestamps are read as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class MapEntityRepository:
    """
    Keeps the latest revision of each entity plus its rules.

    An optional timestamp window restricts which entities ``load`` and
    ``reload`` accept.
    """

    def __init__(
        self,
        oracle: Optional[GeometryOracle] = None,
        config: Optional[EngineConfig] = None,
        reference_layers: Optional[dict] = None,
        rules_factory: Optional[Callable[[], List[Rule]]] = None,
    ):
        self.oracle = oracle or ShapelyGeometryOracle()
        self.config = config or EngineConfig()
        self.index = ClusterIndex(self, self.oracle, self.config)
        self.evaluator = RuleEvaluator()
        self._rules_factory = rules_factory or generate_rules_for_editor(
            reference_layers or {}, self.index, self.config
        )
        self._latest_revisions: Dict[int, MapEntity] = {}
        self._rules: Dict[int, List[Rule]] = {}
        self._constraints: Optional[Tuple[datetime, datetime]] = None
        self._source: List[MapEntity] = []

    # --- Entity Collection interface ---

    def get_by_id(self, entity_id: int) -> Optional[MapEntity]:
        return self._latest_revisions.get(entity_id)

    def for_each(self, callback: Callable[[MapEntity], None]) -> None:
        for entity in list(self._latest_revisions.values()):
            callback(entity)

    def __iter__(self) -> Iterator[MapEntity]:
        return iter(list(self._latest_revisions.values()))

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._latest_revisions

    def __len__(self) -> int:
        return len(self._latest_revisions)

    def get_all_entities(self) -> List[MapEntity]:
        return list(self._latest_revisions.values())

    # --- Mutation ---

    def upsert(self, entity: MapEntity) -> MapEntity:
        """Insert or replace an entity. A changed geometry drops its memoised area."""
        previous = self._latest_revisions.get(entity.id)
        if previous is not None and previous.geometry != entity.geometry:
            self.index.invalidate_area(entity.id)
        self._latest_revisions[entity.id] = entity
        if entity.id not in self._rules:
            self._rules[entity.id] = self._rules_factory()
        return entity

    def remove(self, entity_id: int) -> bool:
        """
        Remove an entity and its rules.

        The id is purged from the cluster index at once, so an id reused by a
        later upsert never sees the old area or edges.
        """
        if entity_id not in self._latest_revisions:
            return False
        del self._latest_revisions[entity_id]
        self._rules.pop(entity_id, None)
        self.index.purge(entity_id)
        return True

    def is_latest(self, entity: MapEntity) -> bool:
        """True if ``entity`` carries the stored revision."""
        stored = self._latest_revisions.get(entity.id)
        return stored is not None and stored.revision == entity.revision

    # --- Bulk loading ---

    def constrain(self, earliest: Optional[datetime], latest: Optional[datetime]) -> None:
        """Restrict entities to a timestamp window and reload the last source."""
        if earliest is None or latest is None:
            self._constraints = None
        else:
            self._constraints = (_as_utc(earliest), _as_utc(latest))
        self.load(self._source)

    def _accepts(self, entity: MapEntity) -> bool:
        if self._constraints is None or entity.timestamp is None:
            return True
        earliest, latest = self._constraints
        return earliest <= _as_utc(entity.timestamp) <= latest

    def load(self, entities: Iterable[MapEntity]) -> None:
        """Replace the whole collection. The cluster index starts over."""
        self._source = list(entities)
        self._latest_revisions = {}
        self._rules = {}
        self.index.clear()
        for entity in self._source:
            if self._accepts(entity):
                self.upsert(entity)
        logger.info("Loaded %d entities", len(self._latest_revisions))

    def reload(self, entities: Iterable[MapEntity]) -> EntityChanges:
        """Merge a fresh listing, reporting deleted, added and updated ids."""
        self._source = list(entities)
        fetched = {e.id: e for e in self._source if self._accepts(e)}
        changes = EntityChanges()

        for entity_id in list(self._latest_revisions):
            if entity_id not in fetched:
                self.remove(entity_id)
                changes.deleted.append(entity_id)

        for entity_id, entity in fetched.items():
            current = self._latest_revisions.get(entity_id)
            if current is None:
                self.upsert(entity)
                changes.added.append(entity_id)
            elif current.revision < entity.revision:
                self.upsert(entity)
                changes.updated.append(entity_id)

        logger.info(
            "Reload: %d deleted, %d added, %d updated",
            len(changes.deleted), len(changes.added), len(changes.updated),
        )
        return changes

    # --- Rules ---

    def rules_for(self, entity_id: int) -> List[Rule]:
        if entity_id not in self._rules:
            raise EntityNotFound(entity_id)
        return self._rules[entity_id]

    def evaluate(self, entity_id: int, current_time: Optional[datetime] = None) -> EntityReport:
        """Run every rule of one entity against its latest revision."""
        entity = self.get_by_id(entity_id)
        if entity is None:
            raise EntityNotFound(entity_id)
        return self.evaluator.evaluate(entity, self.rules_for(entity_id), current_time)
