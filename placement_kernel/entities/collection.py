"""Entity Collection interface consumed by the rule kernel."""

from typing import Callable, Iterator, Optional, Protocol

from placement_kernel.models.entity import MapEntity


class EntityNotFound(KeyError):
    """Raised when an id is looked up that the collection no longer holds."""

    def __init__(self, entity_id: int):
        super().__init__(entity_id)
        self.entity_id = entity_id

    def __str__(self) -> str:
        return f"Entity {self.entity_id} not found"


class EntityCollection(Protocol):
    """
    A live, externally mutated set of entities.

    Entities may disappear between two calls; consumers must re-check
    liveness instead of trusting ids they saw earlier.
    """

    def get_by_id(self, entity_id: int) -> Optional[MapEntity]:
        ...

    def for_each(self, callback: Callable[[MapEntity], None]) -> None:
        ...

    def __iter__(self) -> Iterator[MapEntity]:
        ...
