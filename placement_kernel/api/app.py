"""
Placement Kernel API: FastAPI endpoints.

Thin glue over the repository for:
- Entity management
- Rule evaluation
- Cluster inspection
"""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ValidationError

from placement_kernel.cluster.naive import naive_total_area
from placement_kernel.entities.collection import EntityNotFound
from placement_kernel.entities.repository import MapEntityRepository
from placement_kernel.models.config import EngineConfig
from placement_kernel.models.entity import UNSET, MapEntity
from placement_kernel.models.geometry import UnsupportedGeometryShape


# --- Request/Response Models ---

class EntityWriteRequest(BaseModel):
    geometry: Dict[str, Any]
    revision: Optional[int] = None
    timestamp: Optional[datetime] = None
    name: str = ""
    description: str = ""
    contact_info: str = ""
    power_need: float = UNSET
    amplified_sound: Optional[float] = UNSET
    calculated_area_needed: float = 0.0
    area: Optional[float] = None


class ClusterResponse(BaseModel):
    entity_id: int
    total_area: float
    naive_total_area: float
    cluster: list
    max_cluster_size: float
    too_big: bool


# --- Application Factory ---

def create_app(
    repository: Optional[MapEntityRepository] = None,
    config: Optional[EngineConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Placement Kernel API",
        description="Placement rule evaluation and cluster capacity checks",
        version="0.1.0",
    )

    repo = repository or MapEntityRepository(config=config)
    app.state.repository = repo

    def _build_entity(entity_id: int, req: EntityWriteRequest, revision: int) -> MapEntity:
        data = req.model_dump(exclude={"revision"})
        data.update(id=entity_id, revision=revision)
        try:
            return MapEntity.model_validate(data)
        except (ValidationError, UnsupportedGeometryShape) as e:
            raise HTTPException(422, f"Unsupported geometry: {e}")

    def _get_or_404(entity_id: int) -> MapEntity:
        entity = repo.get_by_id(entity_id)
        if entity is None:
            raise HTTPException(404, "Entity not found")
        return entity

    # === ENTITIES ===

    @app.post("/entities")
    def create_entity(req: EntityWriteRequest):
        """Add a new entity. Ids are assigned by the repository host."""
        entity_id = max((e.id for e in repo), default=0) + 1
        entity = _build_entity(entity_id, req, req.revision or 0)
        repo.upsert(entity)
        return {"id": entity_id, "entity": entity.model_dump(mode="json")}

    @app.get("/entities")
    def list_entities():
        return [e.model_dump(mode="json") for e in repo.get_all_entities()]

    @app.get("/entities/{entity_id}")
    def get_entity(entity_id: int):
        return _get_or_404(entity_id).model_dump(mode="json")

    @app.put("/entities/{entity_id}")
    def update_entity(entity_id: int, req: EntityWriteRequest):
        """Store a new revision of an entity."""
        current = _get_or_404(entity_id)
        revision = req.revision if req.revision is not None else current.revision + 1
        entity = _build_entity(entity_id, req, revision)
        repo.upsert(entity)
        return entity.model_dump(mode="json")

    @app.delete("/entities/{entity_id}")
    def delete_entity(entity_id: int, reason: str = "No reason given"):
        if not repo.remove(entity_id):
            raise HTTPException(404, "Entity not found")
        return {"status": "deleted", "entity_id": entity_id, "reason": reason}

    # === EVALUATION ===

    @app.get("/entities/{entity_id}/evaluation")
    def evaluate_entity(entity_id: int):
        """Run the entity's rule set."""
        _get_or_404(entity_id)
        try:
            report = repo.evaluate(entity_id)
        except UnsupportedGeometryShape as e:
            raise HTTPException(422, str(e))
        return report.model_dump(mode="json")

    # === CLUSTER ===

    @app.get("/entities/{entity_id}/cluster")
    def get_cluster(entity_id: int):
        """Incremental and naive cluster totals side by side."""
        entity = _get_or_404(entity_id)
        try:
            total = repo.index.total_area(entity)
        except EntityNotFound as e:
            raise HTTPException(404, str(e))
        naive = naive_total_area(
            entity, repo, repo.oracle, repo.config.fire_buffer_in_meter
        )
        return ClusterResponse(
            entity_id=entity_id,
            total_area=total,
            naive_total_area=naive,
            cluster=sorted(repo.index.cluster_ids(entity_id)),
            max_cluster_size=repo.config.max_cluster_size,
            too_big=total > repo.config.max_cluster_size,
        )

    @app.post("/cluster/reset")
    def reset_cluster_index():
        """Forget all edges and cached areas."""
        repo.index.clear()
        return {"status": "cleared"}

    @app.post("/cluster/rebuild")
    def rebuild_cluster_index():
        """Index every entity from scratch."""
        repo.index.rebuild()
        return {"status": "rebuilt", "tracked_entities": len(repo.index.tracked_ids())}

    return app


# Default application instance
app = create_app()
