from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List

from contentgraph.core.dependencies import get_db, get_denorm_engine, get_workspace_id
from contentgraph.schemas.cms import (
    RelationAppend,
    RelationTargets,
    RelationReorder,
    RelationEdgeResponse,
    RelationEdgeListResponse,
)
from contentgraph.services.cms import relation_m2m_service, relation_service
from contentgraph.services.cms.denorm_service import DenormEngine

router = APIRouter()


# =============================================================================
# Ordered relations (ONE_TO_ONE / ONE_TO_MANY / MANY_TO_ONE)
# =============================================================================

@router.post("/append", response_model=RelationEdgeResponse)
def append_relation(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    denorm_engine: DenormEngine = Depends(get_denorm_engine),
    body: RelationAppend
):
    """Attach one target at the end of the source's list. Cardinality follows the relation kind."""
    return relation_service.append(
        db, workspace_id, body.field_id, body.from_entry_id, body.to_entry_id, denorm_engine=denorm_engine
    )


@router.post("/detach")
def detach_relations(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    denorm_engine: DenormEngine = Depends(get_denorm_engine),
    body: RelationTargets
):
    removed = relation_service.detach_many(
        db, workspace_id, body.field_id, body.from_entry_id, body.to_entry_ids, denorm_engine=denorm_engine
    )
    return {"count": removed}


@router.post("/clear")
def clear_relations(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    denorm_engine: DenormEngine = Depends(get_denorm_engine),
    body: RelationTargets
):
    removed = relation_service.clear(db, workspace_id, body.field_id, body.from_entry_id, denorm_engine=denorm_engine)
    return {"count": removed}


@router.get("/list", response_model=RelationEdgeListResponse)
def list_relations(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    field_id: str,
    from_entry_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100)
):
    rows, total = relation_service.list_related(
        db, workspace_id, field_id, from_entry_id, skip=(page - 1) * page_size, limit=page_size
    )
    return RelationEdgeListResponse(rows=rows, total=total, page=page, page_size=page_size)


@router.get("/reverse", response_model=RelationEdgeListResponse)
def reverse_relations(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    field_id: str,
    to_entry_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100)
):
    """Edges of the field that point at `to_entry_id`."""
    rows, total = relation_service.find_from_by_related(
        db, workspace_id, field_id, to_entry_id, skip=(page - 1) * page_size, limit=page_size
    )
    return RelationEdgeListResponse(rows=rows, total=total, page=page, page_size=page_size)


@router.put("/reorder", response_model=List[RelationEdgeResponse])
def reorder_relations(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    denorm_engine: DenormEngine = Depends(get_denorm_engine),
    body: RelationReorder
):
    return relation_service.reorder(
        db, workspace_id, body.field_id, body.from_entry_id, body.ordered_to_entry_ids, denorm_engine=denorm_engine
    )


# =============================================================================
# Many-to-many relations
# =============================================================================

@router.post("/m2m/attach", response_model=List[RelationEdgeResponse])
def attach_m2m(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    denorm_engine: DenormEngine = Depends(get_denorm_engine),
    body: RelationTargets
):
    """Attach targets. Already attached targets keep their position."""
    return relation_m2m_service.attach_many(
        db, workspace_id, body.field_id, body.from_entry_id, body.to_entry_ids, denorm_engine=denorm_engine
    )


@router.post("/m2m/detach")
def detach_m2m(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    denorm_engine: DenormEngine = Depends(get_denorm_engine),
    body: RelationTargets
):
    removed = relation_m2m_service.detach_many(
        db, workspace_id, body.field_id, body.from_entry_id, body.to_entry_ids, denorm_engine=denorm_engine
    )
    return {"count": removed}


@router.post("/m2m/clear")
def clear_m2m(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    denorm_engine: DenormEngine = Depends(get_denorm_engine),
    body: RelationTargets
):
    removed = relation_m2m_service.clear(db, workspace_id, body.field_id, body.from_entry_id, denorm_engine=denorm_engine)
    return {"count": removed}


@router.get("/m2m/list", response_model=RelationEdgeListResponse)
def list_m2m(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    field_id: str,
    from_entry_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100)
):
    rows, total = relation_m2m_service.list_related(
        db, workspace_id, field_id, from_entry_id, skip=(page - 1) * page_size, limit=page_size
    )
    return RelationEdgeListResponse(rows=rows, total=total, page=page, page_size=page_size)


@router.get("/m2m/reverse", response_model=RelationEdgeListResponse)
def reverse_m2m(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    field_id: str,
    to_entry_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100)
):
    rows, total = relation_m2m_service.find_from_by_related(
        db, workspace_id, field_id, to_entry_id, skip=(page - 1) * page_size, limit=page_size
    )
    return RelationEdgeListResponse(rows=rows, total=total, page=page, page_size=page_size)


@router.put("/m2m/reorder", response_model=List[RelationEdgeResponse])
def reorder_m2m(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    denorm_engine: DenormEngine = Depends(get_denorm_engine),
    body: RelationReorder
):
    return relation_m2m_service.reorder(
        db, workspace_id, body.field_id, body.from_entry_id, body.ordered_to_entry_ids, denorm_engine=denorm_engine
    )
