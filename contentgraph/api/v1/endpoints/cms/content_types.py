from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List

from contentgraph.core.dependencies import get_db, get_workspace_id
from contentgraph.core.exceptions import NotFoundError
from contentgraph.schemas.cms import (
    ContentTypeCreate,
    ContentTypeUpdate,
    ContentTypeResponse,
)
from contentgraph.services.cms import content_type_service

router = APIRouter()


@router.post("/", response_model=ContentTypeResponse, status_code=201)
def create_content_type(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    content_type: ContentTypeCreate
):
    """
    Create a new content type.

    Example:
    ```json
    {"name": "Article", "api_key": "article", "seo_enabled": true}
    ```
    """
    return content_type_service.create_content_type(db=db, content_type=content_type, workspace_id=workspace_id)


@router.get("/", response_model=List[ContentTypeResponse])
def list_content_types(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500)
):
    """List all content types of the workspace."""
    return content_type_service.get_content_types(db=db, workspace_id=workspace_id, skip=skip, limit=limit)


@router.get("/by-api-key/{api_key}", response_model=ContentTypeResponse)
def get_content_type_by_api_key(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    api_key: str
):
    content_type = content_type_service.get_content_type_by_api_key(db=db, api_key=api_key, workspace_id=workspace_id)
    if not content_type:
        raise NotFoundError("Content type not found", code="CONTENT_TYPE_NOT_FOUND")
    return content_type


@router.get("/{content_type_id}", response_model=ContentTypeResponse)
def get_content_type(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    content_type_id: str
):
    return content_type_service.get_content_type_or_raise(db, content_type_id, workspace_id)


@router.put("/{content_type_id}", response_model=ContentTypeResponse)
def update_content_type(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    content_type_id: str,
    content_type_update: ContentTypeUpdate
):
    """
    Update a content type.
    Disabling `seo_enabled` clears the SEO attributes of all its entries.
    """
    return content_type_service.update_content_type(
        db=db,
        content_type_id=content_type_id,
        content_type_update=content_type_update,
        workspace_id=workspace_id
    )


@router.delete("/{content_type_id}")
def delete_content_type(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    content_type_id: str
):
    """Delete a content type with its fields, entries and relation edges."""
    if not content_type_service.delete_content_type(db=db, content_type_id=content_type_id, workspace_id=workspace_id):
        raise NotFoundError("Content type not found", code="CONTENT_TYPE_NOT_FOUND")
    return {"message": "Content type deleted successfully"}
