"""
Many-to-many relation edges.

One row per (relation_field_id, from_entry_id, to_entry_id). Attaching is an upsert:
existing rows keep their position, new rows are appended after the current maximum.
"""
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session
from sqlalchemy import and_, func
from sqlalchemy.exc import IntegrityError

from contentgraph.core.exceptions import ConfigurationError, ConflictError
from contentgraph.models.content_field import ContentField
from contentgraph.models.content_relation import ContentRelationM2M
from contentgraph.schemas.cms import RelationKind
from contentgraph.services.cms.denorm_service import DenormEngine, recompute_after_commit
from contentgraph.services.cms.relation_service import (
    assert_targets,
    get_relation_field_or_raise as _get_relation_field,
    get_source_entry_or_raise,
)

logger = logging.getLogger(__name__)


def get_relation_field_or_raise(db: Session, workspace_id: str, field_id: str) -> ContentField:
    """A MANY_TO_MANY relation field of the workspace."""
    field = _get_relation_field(db, workspace_id, field_id)
    if not RelationKind(field.relation.kind).is_m2m:
        raise ConfigurationError(
            f"Relation kind must be MANY_TO_MANY, got {field.relation.kind} (field {field.api_key})",
            details={"field_id": field_id},
        )
    return field


def _next_position(db: Session, field_id: str, from_entry_id: str) -> int:
    last = db.query(func.max(ContentRelationM2M.position)).filter(
        and_(
            ContentRelationM2M.relation_field_id == field_id,
            ContentRelationM2M.from_entry_id == from_entry_id
        )
    ).scalar()
    return 0 if last is None else last + 1


def _edges_for(db: Session, workspace_id: str, field_id: str, from_entry_id: str):
    return db.query(ContentRelationM2M).filter(
        and_(
            ContentRelationM2M.workspace_id == workspace_id,
            ContentRelationM2M.relation_field_id == field_id,
            ContentRelationM2M.from_entry_id == from_entry_id
        )
    )


def attach_many(
    db: Session,
    workspace_id: str,
    field_id: str,
    from_entry_id: str,
    to_entry_ids: Sequence[str],
    denorm_engine: Optional[DenormEngine] = None
) -> List[ContentRelationM2M]:
    """Attach targets to a source. Idempotent per triple. Returns the rows for `to_entry_ids`."""
    field = get_relation_field_or_raise(db, workspace_id, field_id)
    get_source_entry_or_raise(db, workspace_id, from_entry_id)

    to_entry_ids = list(dict.fromkeys(to_entry_ids))
    if not to_entry_ids:
        return []
    assert_targets(db, workspace_id, field, to_entry_ids)

    existing = {
        row.to_entry_id: row for row in _edges_for(db, workspace_id, field_id, from_entry_id).filter(
            ContentRelationM2M.to_entry_id.in_(to_entry_ids)
        ).all()
    }

    position = _next_position(db, field_id, from_entry_id)
    created = 0
    for to_entry_id in to_entry_ids:
        if to_entry_id in existing:
            continue
        existing[to_entry_id] = ContentRelationM2M(
            workspace_id=workspace_id,
            relation_field_id=field_id,
            from_entry_id=from_entry_id,
            to_entry_id=to_entry_id,
            position=position,
        )
        db.add(existing[to_entry_id])
        position += 1
        created += 1

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(
            "Relation was modified concurrently, retry the request",
            code="RELATION_CONFLICT",
            details={"field_id": field_id, "from_entry_id": from_entry_id},
        )

    if created:
        logger.info("Attached %s target(s) to %s on M2M field %s", created, from_entry_id, field_id)
        recompute_after_commit(db, workspace_id, {field_id: [from_entry_id]}, denorm_engine=denorm_engine)

    rows = [existing[t] for t in to_entry_ids]
    for row in rows:
        db.refresh(row)
    return rows


def detach_many(
    db: Session,
    workspace_id: str,
    field_id: str,
    from_entry_id: str,
    to_entry_ids: Iterable[str],
    denorm_engine: Optional[DenormEngine] = None
) -> int:
    """Remove the given triples. Missing triples are ignored. Returns rows removed."""
    get_relation_field_or_raise(db, workspace_id, field_id)
    to_entry_ids = list(to_entry_ids)
    if not to_entry_ids:
        return 0

    removed = _edges_for(db, workspace_id, field_id, from_entry_id).filter(
        ContentRelationM2M.to_entry_id.in_(to_entry_ids)
    ).delete(synchronize_session=False)
    db.commit()

    if removed:
        recompute_after_commit(db, workspace_id, {field_id: [from_entry_id]}, denorm_engine=denorm_engine)
    return removed


def clear(
    db: Session,
    workspace_id: str,
    field_id: str,
    from_entry_id: str,
    denorm_engine: Optional[DenormEngine] = None
) -> int:
    get_relation_field_or_raise(db, workspace_id, field_id)
    removed = _edges_for(db, workspace_id, field_id, from_entry_id).delete(synchronize_session=False)
    db.commit()

    if removed:
        recompute_after_commit(db, workspace_id, {field_id: [from_entry_id]}, denorm_engine=denorm_engine)
    return removed


def list_related(
    db: Session,
    workspace_id: str,
    field_id: str,
    from_entry_id: str,
    skip: int = 0,
    limit: int = 20
) -> Tuple[List[ContentRelationM2M], int]:
    get_relation_field_or_raise(db, workspace_id, field_id)
    query = _edges_for(db, workspace_id, field_id, from_entry_id)
    total = query.count()
    rows = query.order_by(ContentRelationM2M.position, ContentRelationM2M.created_at).offset(skip).limit(limit).all()
    return rows, total


def find_from_by_related(
    db: Session,
    workspace_id: str,
    field_id: str,
    to_entry_id: str,
    skip: int = 0,
    limit: int = 20
) -> Tuple[List[ContentRelationM2M], int]:
    """Reverse lookup: sources that hold `to_entry_id` on this field."""
    get_relation_field_or_raise(db, workspace_id, field_id)
    query = db.query(ContentRelationM2M).filter(
        and_(
            ContentRelationM2M.workspace_id == workspace_id,
            ContentRelationM2M.relation_field_id == field_id,
            ContentRelationM2M.to_entry_id == to_entry_id
        )
    )
    total = query.count()
    rows = query.order_by(ContentRelationM2M.created_at, ContentRelationM2M.id).offset(skip).limit(limit).all()
    return rows, total


def reorder(
    db: Session,
    workspace_id: str,
    field_id: str,
    from_entry_id: str,
    ordered_to_entry_ids: Sequence[str],
    denorm_engine: Optional[DenormEngine] = None
) -> List[ContentRelationM2M]:
    """Assign positions 0..n-1 to the listed targets. Unlisted edges keep their position."""
    get_relation_field_or_raise(db, workspace_id, field_id)
    for index, to_entry_id in enumerate(dict.fromkeys(ordered_to_entry_ids)):
        _edges_for(db, workspace_id, field_id, from_entry_id).filter(
            ContentRelationM2M.to_entry_id == to_entry_id
        ).update({ContentRelationM2M.position: index}, synchronize_session=False)
    db.commit()

    recompute_after_commit(db, workspace_id, {field_id: [from_entry_id]}, denorm_engine=denorm_engine)
    return _edges_for(db, workspace_id, field_id, from_entry_id).order_by(
        ContentRelationM2M.position, ContentRelationM2M.created_at
    ).all()


def replace_field_edges(
    db: Session,
    workspace_id: str,
    field: ContentField,
    from_entry_id: str,
    target_ids: Sequence[str]
) -> List[str]:
    """Replace all M2M edges of (field, source) with `target_ids` in payload order. Does not commit."""
    _edges_for(db, workspace_id, field.id, from_entry_id).delete(synchronize_session=False)
    db.flush()
    for position, to_entry_id in enumerate(dict.fromkeys(target_ids)):
        db.add(ContentRelationM2M(
            workspace_id=workspace_id,
            relation_field_id=field.id,
            from_entry_id=from_entry_id,
            to_entry_id=to_entry_id,
            position=position,
        ))
    return []


def load_edges(
    db: Session,
    workspace_id: str,
    field_ids: Iterable[str],
    from_entry_ids: Iterable[str]
) -> List[ContentRelationM2M]:
    """All M2M edges for the given fields and sources, in one query."""
    field_ids = list(field_ids)
    from_entry_ids = list(from_entry_ids)
    if not field_ids or not from_entry_ids:
        return []
    return db.query(ContentRelationM2M).filter(
        and_(
            ContentRelationM2M.workspace_id == workspace_id,
            ContentRelationM2M.relation_field_id.in_(field_ids),
            ContentRelationM2M.from_entry_id.in_(from_entry_ids)
        )
    ).order_by(ContentRelationM2M.position, ContentRelationM2M.created_at).all()
