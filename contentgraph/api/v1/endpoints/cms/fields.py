from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from contentgraph.core.dependencies import get_db, get_workspace_id
from contentgraph.schemas.cms import (
    ContentFieldCreate,
    ContentFieldUpdate,
    ContentFieldResponse,
    FieldReorderRequest,
)
from contentgraph.services.cms import content_field_service, content_type_service

router = APIRouter()


@router.get("/{content_type_id}/fields", response_model=List[ContentFieldResponse])
def list_fields(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    content_type_id: str
):
    """Fields of a content type in position order."""
    content_type_service.get_content_type_or_raise(db, content_type_id, workspace_id)
    return content_field_service.list_fields(db, content_type_id)


@router.post("/{content_type_id}/fields", response_model=ContentFieldResponse, status_code=201)
def create_field(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    content_type_id: str,
    field: ContentFieldCreate
):
    """
    Add a field to a content type.

    Example relation field:
    ```json
    {
        "name": "Author",
        "api_key": "author",
        "type": "RELATION",
        "relation": {"kind": "MANY_TO_ONE", "target_content_type_id": "..."},
        "config": {"denorm": {"targetFieldApiKey": "authorName"}}
    }
    ```
    """
    return content_field_service.create_field(
        db=db,
        content_type_id=content_type_id,
        field=field,
        workspace_id=workspace_id
    )


@router.get("/{content_type_id}/fields/{field_id}", response_model=ContentFieldResponse)
def get_field(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    content_type_id: str,
    field_id: str
):
    return content_field_service.get_field_or_raise(db, content_type_id, field_id, workspace_id)


@router.put("/{content_type_id}/fields/reorder", response_model=List[ContentFieldResponse])
def reorder_fields(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    content_type_id: str,
    request: FieldReorderRequest
):
    """Set explicit positions: `{"items": [{"id": "...", "position": 1}, ...]}`."""
    return content_field_service.reorder_fields(db, content_type_id, request.items, workspace_id)


@router.put("/{content_type_id}/fields/{field_id}", response_model=ContentFieldResponse)
def update_field(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    content_type_id: str,
    field_id: str,
    field_update: ContentFieldUpdate
):
    return content_field_service.update_field(
        db=db,
        content_type_id=content_type_id,
        field_id=field_id,
        field_update=field_update,
        workspace_id=workspace_id
    )


@router.delete("/{content_type_id}/fields/{field_id}")
def delete_field(
    *,
    db: Session = Depends(get_db),
    workspace_id: str = Depends(get_workspace_id),
    content_type_id: str,
    field_id: str
):
    """Delete a field together with its stored values and relation edges."""
    content_field_service.delete_field(db, content_type_id, field_id, workspace_id)
    return {"message": "Field deleted successfully"}
