from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from contentgraph.core.dependencies import get_db, get_denorm_engine, get_workspace_id
from contentgraph.core.exceptions import NotFoundError
from contentgraph.schemas.cms import (
    ContentEntryCreate,
    ContentEntryUpdate,
    ContentEntryResponse,
    ContentEntryListResponse,
    ReadScope,
    SummaryMode,
)
from contentgraph.services.cms import content_entry_service
from contentgraph.services.cms.denorm_service import DenormEngine

router = APIRouter()


def _split_fields(fields: Optional[str]) -> Optional[List[str]]:
    if fields is None:
        return None
    return [f.strip() for f in fields.split(",") if f.strip()]


@router.post("/{content_type_id}", response_model=ContentEntryResponse, status_code=201)
def create_entry(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    denorm_engine: DenormEngine = Depends(get_denorm_engine),
    content_type_id: str,
    entry: ContentEntryCreate
):
    """
    Create an entry of a content type.

    Example:
    ```json
    {
        "seo_title": "Hello",
        "is_published": true,
        "values": [
            {"api_key": "title", "value": "Hello"},
            {"api_key": "author", "value": ["<author entry id>"]}
        ]
    }
    ```
    """
    db_entry = content_entry_service.create_entry(
        db=db,
        workspace_id=workspace_id,
        content_type_id=content_type_id,
        payload=entry,
        denorm_engine=denorm_engine
    )
    return content_entry_service.serialize_entries(db, [db_entry])[0]


@router.get("/", response_model=ContentEntryListResponse)
def list_entries(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    content_type_id: Optional[str] = Query(None, description="Filter by content type id"),
    content_type: Optional[str] = Query(None, description="Filter by content type apiKey"),
    is_published: Optional[bool] = Query(None, description="Filter by publish state"),
    search: Optional[str] = Query(None, description="Search in seo_title and slug"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page")
):
    """List entries of the workspace with pagination."""
    skip = (page - 1) * page_size
    items, total = content_entry_service.list_entries(
        db=db,
        workspace_id=workspace_id,
        content_type_id=content_type_id,
        content_type_api_key=content_type,
        is_published=is_published,
        search=search,
        skip=skip,
        limit=page_size
    )
    return ContentEntryListResponse(
        items=content_entry_service.serialize_entries(db, items),
        total=total,
        page=page,
        page_size=page_size,
        pages=content_entry_service.pages_for(total, page_size)
    )


@router.get("/by-relation/{field_id}/{to_entry_id}", response_model=ContentEntryListResponse)
def list_entries_by_related(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    field_id: str,
    to_entry_id: str,
    scope: ReadScope = Query(ReadScope.ADMIN),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100)
):
    """Entries that reference `to_entry_id` through the relation field."""
    items, total = content_entry_service.list_by_related(
        db=db,
        workspace_id=workspace_id,
        field_id=field_id,
        to_entry_id=to_entry_id,
        scope=scope,
        skip=(page - 1) * page_size,
        limit=page_size
    )
    return ContentEntryListResponse(
        items=content_entry_service.serialize_entries(db, items),
        total=total,
        page=page,
        page_size=page_size,
        pages=content_entry_service.pages_for(total, page_size)
    )


@router.get("/relation-options/{field_id}", response_model=List[ContentEntryResponse])
def search_relation_options(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    field_id: str,
    q: Optional[str] = Query(None, description="Search in seo_title and slug"),
    scope: ReadScope = Query(ReadScope.PUBLIC),
    limit: int = Query(20, ge=1, le=100)
):
    """Candidate target entries for a relation field."""
    items = content_entry_service.search_for_relation(
        db=db, workspace_id=workspace_id, field_id=field_id, q=q, scope=scope, limit=limit
    )
    return content_entry_service.serialize_entries(db, items)


@router.get("/{entry_id}", response_model=ContentEntryResponse)
def get_entry(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    entry_id: str,
    include: Optional[str] = Query(None, description="Use 'relations' to expand relation fields"),
    depth: int = Query(1, description="Expansion depth, capped at MAX_RELATION_DEPTH"),
    summary: SummaryMode = Query(SummaryMode.BASIC),
    fields: Optional[str] = Query(None, description="Comma-separated relation field apiKeys to expand"),
    scope: ReadScope = Query(ReadScope.ADMIN)
):
    """
    Get a single entry with its field values.
    `?include=relations&depth=2&summary=full` also expands relation fields.
    """
    if include == "relations":
        return content_entry_service.get_entry_with_relations(
            db=db,
            workspace_id=workspace_id,
            entry_id=entry_id,
            depth=depth,
            summary=summary,
            fields=_split_fields(fields),
            scope=scope
        )

    entry = content_entry_service.get_entry(db, workspace_id, entry_id)
    if not entry or (scope == ReadScope.PUBLIC and not entry.is_published):
        raise NotFoundError("Content entry not found", code="ENTRY_NOT_FOUND")
    return content_entry_service.serialize_entries(db, [entry])[0]


@router.put("/{entry_id}", response_model=ContentEntryResponse)
def update_entry(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    denorm_engine: DenormEngine = Depends(get_denorm_engine),
    entry_id: str,
    entry_update: ContentEntryUpdate
):
    """Update an entry. Only the fields listed in `values` are replaced."""
    db_entry = content_entry_service.update_entry(
        db=db,
        workspace_id=workspace_id,
        entry_id=entry_id,
        payload=entry_update,
        denorm_engine=denorm_engine
    )
    return content_entry_service.serialize_entries(db, [db_entry])[0]


@router.delete("/{entry_id}")
def delete_entry(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    denorm_engine: DenormEngine = Depends(get_denorm_engine),
    entry_id: str
):
    if not content_entry_service.delete_entry(db, workspace_id, entry_id, denorm_engine=denorm_engine):
        raise NotFoundError("Content entry not found", code="ENTRY_NOT_FOUND")
    return {"message": "Content entry deleted successfully"}


@router.post("/{entry_id}/publish", response_model=ContentEntryResponse)
def publish_entry(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    entry_id: str
):
    db_entry = content_entry_service.publish_entry(db, workspace_id, entry_id)
    return content_entry_service.serialize_entries(db, [db_entry])[0]


@router.post("/{entry_id}/unpublish", response_model=ContentEntryResponse)
def unpublish_entry(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    entry_id: str
):
    db_entry = content_entry_service.unpublish_entry(db, workspace_id, entry_id)
    return content_entry_service.serialize_entries(db, [db_entry])[0]
