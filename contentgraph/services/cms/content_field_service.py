import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session, joinedload
from sqlalchemy import and_, func

from contentgraph.core.exceptions import NotFoundError, SchemaDefinitionError
from contentgraph.models.content_field import ContentField, RelationConfig
from contentgraph.models.content_type import ContentType
from contentgraph.models.field_value import FieldValue
from contentgraph.models.content_relation import ContentRelation, ContentRelationM2M
from contentgraph.schemas.cms import (
    ContentFieldCreate,
    ContentFieldUpdate,
    FieldPosition,
    FieldType,
    RelationConfigIn,
)
from contentgraph.services.cms import content_type_service

logger = logging.getLogger(__name__)

TEXT_LIKE = (FieldType.TEXT.value, FieldType.RICH_TEXT.value)


def validate_field_definition(definition: Dict[str, Any]) -> List[str]:
    """
    Sanity-check bounds and type-specific settings of a field definition.
    Returns list of error messages.
    """
    errors = []
    min_length = definition.get('min_length')
    max_length = definition.get('max_length')
    min_number = definition.get('min_number')
    max_number = definition.get('max_number')

    if min_length is not None and min_length < 0:
        errors.append("minLength must be >= 0")
    if max_length is not None and min_length is not None and max_length < min_length:
        errors.append("maxLength cannot be less than minLength")
    if max_number is not None and min_number is not None and max_number < min_number:
        errors.append("maxNumber cannot be less than minNumber")

    config = definition.get('config') or {}
    if definition.get('type') == FieldType.RELATION.value:
        min_count = config.get('minCount')
        max_count = config.get('maxCount')
        if min_count is not None and max_count is not None and max_count < min_count:
            errors.append("maxCount cannot be less than minCount")
        denorm = config.get('denorm')
        if denorm is not None and not (isinstance(denorm, dict) and denorm.get('targetFieldApiKey')):
            errors.append("denorm config requires targetFieldApiKey")
    if definition.get('type') == FieldType.MEDIA.value:
        if config.get('minFiles', 0) > config.get('maxFiles', 1):
            errors.append("maxFiles cannot be less than minFiles")

    return errors


def _assert_valid_slug_from(db: Session, content_type_id: str, slug_from: Optional[str]) -> None:
    if not slug_from:
        return
    source = get_field_by_api_key(db, content_type_id, slug_from)
    if not source:
        raise SchemaDefinitionError(f"slugFrom references non-existing field '{slug_from}'")
    if source.type not in TEXT_LIKE:
        raise SchemaDefinitionError(f"slugFrom must reference a TEXT-like field, got {source.type}")


def _assert_valid_relation(db: Session, workspace_id: str, relation: Optional[RelationConfigIn]) -> None:
    if relation is None:
        return
    target = content_type_service.get_content_type(db, relation.target_content_type_id, workspace_id)
    if not target:
        raise SchemaDefinitionError(
            "targetContentTypeId not found",
            details={"target_content_type_id": relation.target_content_type_id},
        )


def get_field(db: Session, field_id: str) -> Optional[ContentField]:
    return db.query(ContentField).options(
        joinedload(ContentField.relation)
    ).filter(ContentField.id == field_id).first()


def get_field_in_workspace(db: Session, field_id: str, workspace_id: str) -> Optional[ContentField]:
    """Get a field, only if its content type belongs to the workspace."""
    return db.query(ContentField).options(
        joinedload(ContentField.relation)
    ).join(ContentType, ContentType.id == ContentField.content_type_id).filter(
        and_(
            ContentField.id == field_id,
            ContentType.workspace_id == workspace_id
        )
    ).first()


def get_field_by_api_key(db: Session, content_type_id: str, api_key: str) -> Optional[ContentField]:
    return db.query(ContentField).filter(
        and_(
            ContentField.content_type_id == content_type_id,
            ContentField.api_key == api_key
        )
    ).first()


def list_fields(db: Session, content_type_id: str) -> List[ContentField]:
    """Fields of a content type in declaration order, relation config eagerly loaded."""
    return db.query(ContentField).options(
        joinedload(ContentField.relation)
    ).filter(
        ContentField.content_type_id == content_type_id
    ).order_by(ContentField.position, ContentField.created_at, ContentField.id).all()


def list_relation_fields(
    db: Session,
    content_type_ids: Iterable[str],
    api_keys: Optional[Iterable[str]] = None
) -> List[ContentField]:
    """RELATION fields (with relation config) of one or more content types."""
    content_type_ids = list(content_type_ids)
    if not content_type_ids:
        return []
    query = db.query(ContentField).options(
        joinedload(ContentField.relation)
    ).filter(
        and_(
            ContentField.content_type_id.in_(content_type_ids),
            ContentField.type == FieldType.RELATION.value
        )
    )
    if api_keys is not None:
        api_keys = list(api_keys)
        if not api_keys:
            return []
        query = query.filter(ContentField.api_key.in_(api_keys))
    return query.order_by(ContentField.position, ContentField.created_at, ContentField.id).all()


def _next_position(db: Session, content_type_id: str) -> int:
    last = db.query(func.max(ContentField.position)).filter(
        ContentField.content_type_id == content_type_id
    ).scalar()
    return (last if last is not None else 0) + 1


def _upsert_relation_config(db_field: ContentField, relation: RelationConfigIn) -> None:
    if db_field.relation:
        db_field.relation.kind = relation.kind.value
        db_field.relation.target_content_type_id = relation.target_content_type_id
    else:
        db_field.relation = RelationConfig(
            kind=relation.kind.value,
            target_content_type_id=relation.target_content_type_id,
        )


def create_field(
    db: Session,
    content_type_id: str,
    field: ContentFieldCreate,
    workspace_id: str
) -> ContentField:
    """Create a new field at the end of a content type's schema."""
    content_type_service.get_content_type_or_raise(db, content_type_id, workspace_id)

    if get_field_by_api_key(db, content_type_id, field.api_key):
        raise SchemaDefinitionError(
            f"Field with apiKey '{field.api_key}' already exists in this content type",
            code="CONTENT_FIELD_API_KEY_DUPLICATE",
        )

    definition = field.model_dump()
    definition['type'] = field.type.value
    errors = validate_field_definition(definition)
    if errors:
        raise SchemaDefinitionError(f"Invalid field definition: {'; '.join(errors)}")

    if field.type == FieldType.RELATION and field.relation is None:
        raise SchemaDefinitionError("RELATION fields require a relation config")
    if field.type == FieldType.SLUG:
        _assert_valid_slug_from(db, content_type_id, field.slug_from)
    _assert_valid_relation(db, workspace_id, field.relation)

    db_field = ContentField(
        content_type_id=content_type_id,
        name=field.name,
        api_key=field.api_key,
        type=field.type.value,
        is_required=field.is_required,
        is_unique=field.is_unique,
        min_length=field.min_length,
        max_length=field.max_length,
        min_number=field.min_number,
        max_number=field.max_number,
        slug_from=field.slug_from,
        config=field.config,
        position=_next_position(db, content_type_id),
    )
    if field.type == FieldType.RELATION:
        _upsert_relation_config(db_field, field.relation)

    db.add(db_field)
    db.commit()
    db.refresh(db_field)

    logger.info("Created field %s (%s) on content type %s", db_field.api_key, db_field.type, content_type_id)
    return db_field


def get_field_or_raise(db: Session, content_type_id: str, field_id: str, workspace_id: str) -> ContentField:
    content_type_service.get_content_type_or_raise(db, content_type_id, workspace_id)
    db_field = get_field(db, field_id)
    if not db_field or db_field.content_type_id != content_type_id:
        raise NotFoundError(
            "Field not found in this content type",
            code="CONTENT_FIELD_NOT_FOUND",
            details={"field_id": field_id, "content_type_id": content_type_id},
        )
    return db_field


def update_field(
    db: Session,
    content_type_id: str,
    field_id: str,
    field_update: ContentFieldUpdate,
    workspace_id: str
) -> ContentField:
    """Update a field. A field that stops being RELATION loses its relation config."""
    db_field = get_field_or_raise(db, content_type_id, field_id, workspace_id)
    update_data = field_update.model_dump(exclude_unset=True)
    relation = field_update.relation
    update_data.pop('relation', None)
    if 'type' in update_data and update_data['type'] is not None:
        update_data['type'] = field_update.type.value

    new_api_key = update_data.get('api_key')
    if new_api_key and new_api_key != db_field.api_key:
        if get_field_by_api_key(db, content_type_id, new_api_key):
            raise SchemaDefinitionError(
                f"Field with apiKey '{new_api_key}' already exists in this content type",
                code="CONTENT_FIELD_API_KEY_DUPLICATE",
            )

    merged = {
        'type': db_field.type,
        'min_length': db_field.min_length,
        'max_length': db_field.max_length,
        'min_number': db_field.min_number,
        'max_number': db_field.max_number,
        'config': db_field.config,
    }
    merged.update({k: v for k, v in update_data.items() if k in merged})
    errors = validate_field_definition(merged)
    if errors:
        raise SchemaDefinitionError(f"Invalid field definition: {'; '.join(errors)}")

    new_type = merged['type']
    if new_type == FieldType.SLUG.value:
        _assert_valid_slug_from(db, content_type_id, update_data.get('slug_from', db_field.slug_from))
    _assert_valid_relation(db, workspace_id, relation)
    if new_type == FieldType.RELATION.value and relation is None and db_field.relation is None:
        raise SchemaDefinitionError("RELATION fields require a relation config")

    for key, value in update_data.items():
        setattr(db_field, key, value)

    if new_type == FieldType.RELATION.value:
        if relation is not None:
            _upsert_relation_config(db_field, relation)
    elif db_field.relation is not None:
        db_field.relation = None

    db.commit()
    db.refresh(db_field)

    return db_field


def delete_field(db: Session, content_type_id: str, field_id: str, workspace_id: str) -> bool:
    """Delete a field. Values and relation edges of the field go with it."""

    db_field = get_field_or_raise(db, content_type_id, field_id, workspace_id)

    db.query(FieldValue).filter(FieldValue.field_id == field_id).delete(synchronize_session=False)
    db.query(ContentRelation).filter(ContentRelation.field_id == field_id).delete(synchronize_session=False)
    db.query(ContentRelationM2M).filter(ContentRelationM2M.relation_field_id == field_id).delete(synchronize_session=False)

    db.delete(db_field)
    db.commit()

    logger.info("Deleted field %s from content type %s", field_id, content_type_id)
    return True


def reorder_fields(
    db: Session,
    content_type_id: str,
    items: List[FieldPosition],
    workspace_id: str
) -> List[ContentField]:
    """Set explicit positions for fields of a content type."""
    content_type_service.get_content_type_or_raise(db, content_type_id, workspace_id)
    if not items:
        raise SchemaDefinitionError("items is required and must be a non-empty list")

    ids = [item.id for item in items]
    fields = db.query(ContentField).filter(ContentField.id.in_(ids)).all()
    if len(fields) != len(set(ids)):
        raise SchemaDefinitionError("Some field(s) not found")
    if any(f.content_type_id != content_type_id for f in fields):
        raise SchemaDefinitionError("Some field(s) not in this content type")

    by_id = {f.id: f for f in fields}
    positions = {f.id: f.position for f in list_fields(db, content_type_id)}
    positions.update((item.id, item.position) for item in items)
    if len(set(positions.values())) != len(positions):
        raise SchemaDefinitionError("Field positions must be unique within a content type")

    for item in items:
        by_id[item.id].position = item.position

    db.commit()
    return list_fields(db, content_type_id)
