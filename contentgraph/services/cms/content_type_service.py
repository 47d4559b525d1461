import logging
from typing import List, Optional

from sqlalchemy.orm import Session
from sqlalchemy import and_, or_, select

from contentgraph.core.exceptions import NotFoundError, SchemaDefinitionError
from contentgraph.models.content_type import ContentType
from contentgraph.models.content_entry import ContentEntry
from contentgraph.models.content_field import ContentField
from contentgraph.models.content_relation import ContentRelation, ContentRelationM2M
from contentgraph.schemas.cms import ContentTypeCreate, ContentTypeUpdate

logger = logging.getLogger(__name__)


def get_content_type(db: Session, content_type_id: str, workspace_id: str) -> Optional[ContentType]:
    """Get a content type by ID."""
    return db.query(ContentType).filter(
        and_(
            ContentType.id == content_type_id,
            ContentType.workspace_id == workspace_id
        )
    ).first()


def get_content_type_or_raise(db: Session, content_type_id: str, workspace_id: str) -> ContentType:
    content_type = get_content_type(db, content_type_id, workspace_id)
    if not content_type:
        raise NotFoundError(
            "Content type not found",
            code="CONTENT_TYPE_NOT_FOUND",
            details={"content_type_id": content_type_id, "workspace_id": workspace_id},
        )
    return content_type


def get_content_type_by_api_key(db: Session, api_key: str, workspace_id: str) -> Optional[ContentType]:
    """Get a content type by apiKey."""
    return db.query(ContentType).filter(
        and_(
            ContentType.api_key == api_key,
            ContentType.workspace_id == workspace_id
        )
    ).first()


def get_content_types(
    db: Session,
    workspace_id: str,
    skip: int = 0,
    limit: int = 100
) -> List[ContentType]:
    """Get all content types of a workspace."""
    return db.query(ContentType).filter(
        ContentType.workspace_id == workspace_id
    ).order_by(ContentType.name).offset(skip).limit(limit).all()


def create_content_type(
    db: Session,
    content_type: ContentTypeCreate,
    workspace_id: str
) -> ContentType:
    """Create a new content type."""
    existing = get_content_type_by_api_key(db, content_type.api_key, workspace_id)
    if existing:
        raise SchemaDefinitionError(
            f"Content type with apiKey '{content_type.api_key}' already exists",
            code="CONTENT_TYPE_API_KEY_DUPLICATE",
        )

    db_content_type = ContentType(
        workspace_id=workspace_id,
        name=content_type.name.strip(),
        api_key=content_type.api_key.strip(),
        description=content_type.description,
        seo_enabled=content_type.seo_enabled,
    )

    db.add(db_content_type)
    db.commit()
    db.refresh(db_content_type)

    logger.info("Created content type %s (%s) in workspace %s", db_content_type.api_key, db_content_type.id, workspace_id)
    return db_content_type


def update_content_type(
    db: Session,
    content_type_id: str,
    content_type_update: ContentTypeUpdate,
    workspace_id: str
) -> ContentType:
    """
    Update an existing content type.

    Switching `seo_enabled` off clears seo_title, meta_description and keywords
    on every entry of the type.
    """
    db_content_type = get_content_type_or_raise(db, content_type_id, workspace_id)
    update_data = content_type_update.model_dump(exclude_unset=True)

    new_api_key = update_data.get('api_key')
    if new_api_key and new_api_key != db_content_type.api_key:
        if get_content_type_by_api_key(db, new_api_key, workspace_id):
            raise SchemaDefinitionError(
                f"Content type with apiKey '{new_api_key}' already exists",
                code="CONTENT_TYPE_API_KEY_DUPLICATE",
            )

    disabling_seo = db_content_type.seo_enabled and update_data.get('seo_enabled') is False

    for key, value in update_data.items():
        if value is not None:
            setattr(db_content_type, key, value)

    if disabling_seo:
        cleared = db.query(ContentEntry).filter(
            and_(
                ContentEntry.workspace_id == workspace_id,
                ContentEntry.content_type_id == content_type_id
            )
        ).update(
            {ContentEntry.seo_title: None, ContentEntry.meta_description: None, ContentEntry.keywords: []},
            synchronize_session=False
        )
        logger.info("Cleared SEO fields on %s entries of content type %s", cleared, content_type_id)

    db.commit()
    db.refresh(db_content_type)

    return db_content_type


def delete_content_type(db: Session, content_type_id: str, workspace_id: str) -> bool:
    """Delete a content type together with its fields, entries, values and relation edges."""
    db_content_type = get_content_type(db, content_type_id, workspace_id)
    if not db_content_type:
        return False

    entry_ids = select(ContentEntry.id).where(ContentEntry.content_type_id == content_type_id)
    field_ids = select(ContentField.id).where(ContentField.content_type_id == content_type_id)

    db.query(ContentRelation).filter(
        or_(
            ContentRelation.field_id.in_(field_ids),
            ContentRelation.from_entry_id.in_(entry_ids),
            ContentRelation.to_entry_id.in_(entry_ids)
        )
    ).delete(synchronize_session=False)
    db.query(ContentRelationM2M).filter(
        or_(
            ContentRelationM2M.relation_field_id.in_(field_ids),
            ContentRelationM2M.from_entry_id.in_(entry_ids),
            ContentRelationM2M.to_entry_id.in_(entry_ids)
        )
    ).delete(synchronize_session=False)

    db.delete(db_content_type)
    db.commit()

    logger.info("Deleted content type %s from workspace %s", content_type_id, workspace_id)
    return True
