"""
Ordered relation edges (ONE_TO_ONE / ONE_TO_MANY / MANY_TO_ONE).

Cardinality on attach:
- ONE_TO_ONE: a source holds at most one target and a target at most one source.
  Conflicting edges are removed, so attaching moves the pairing.
- MANY_TO_ONE: a source holds at most one target; attaching replaces it.
- ONE_TO_MANY: a target holds at most one source; attaching moves it to the new source.

Attaching an edge that already exists is a no-op returning the existing row.
"""
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session
from sqlalchemy import and_, func

from contentgraph.core.exceptions import ConfigurationError, EntryValidationError, NotFoundError
from contentgraph.models.content_entry import ContentEntry
from contentgraph.models.content_field import ContentField
from contentgraph.models.content_relation import ContentRelation
from contentgraph.schemas.cms import FieldType, RelationKind
from contentgraph.services.cms import content_field_service
from contentgraph.services.cms.denorm_service import DenormEngine, recompute_after_commit

logger = logging.getLogger(__name__)


def get_relation_field_or_raise(db: Session, workspace_id: str, field_id: str) -> ContentField:
    """A RELATION field of the workspace with its relation config."""
    field = content_field_service.get_field_in_workspace(db, field_id, workspace_id)
    if not field:
        raise NotFoundError(
            "Relation field not found in workspace",
            code="RELATION_FIELD_NOT_FOUND",
            details={"field_id": field_id, "workspace_id": workspace_id},
        )
    if field.type != FieldType.RELATION.value:
        raise ConfigurationError(f"Field {field.api_key} is not RELATION type", details={"field_id": field_id})
    if not field.relation:
        raise ConfigurationError(f"Missing relation config for field {field.api_key}", details={"field_id": field_id})
    return field


def get_ordered_relation_field_or_raise(db: Session, workspace_id: str, field_id: str) -> ContentField:
    field = get_relation_field_or_raise(db, workspace_id, field_id)
    if RelationKind(field.relation.kind).is_m2m:
        raise ConfigurationError(
            f"Field {field.api_key} is MANY_TO_MANY, use the many-to-many relation endpoints",
            details={"field_id": field_id},
        )
    return field


def get_source_entry_or_raise(db: Session, workspace_id: str, entry_id: str) -> ContentEntry:
    entry = db.query(ContentEntry).filter(
        and_(
            ContentEntry.id == entry_id,
            ContentEntry.workspace_id == workspace_id
        )
    ).first()
    if not entry:
        raise NotFoundError(
            "From entry not found in workspace",
            code="ENTRY_NOT_FOUND",
            details={"entry_id": entry_id},
        )
    return entry


def assert_targets(db: Session, workspace_id: str, field: ContentField, target_ids: Sequence[str]) -> None:
    """Every target must exist in the workspace and belong to the field's target content type."""
    target_ids = list(dict.fromkeys(target_ids))
    if not target_ids:
        return
    found = db.query(ContentEntry.id).filter(
        and_(
            ContentEntry.id.in_(target_ids),
            ContentEntry.workspace_id == workspace_id,
            ContentEntry.content_type_id == field.relation.target_content_type_id
        )
    ).all()
    found_ids = {row.id for row in found}
    missing = [t for t in target_ids if t not in found_ids]
    if missing:
        raise EntryValidationError(
            f"{field.api_key} references entries that do not exist or have the wrong content type",
            field=field.api_key,
            rule="relation_target",
            details={"missing": missing},
        )


def _next_position(db: Session, workspace_id: str, field_id: str, from_entry_id: str) -> int:
    last = db.query(func.max(ContentRelation.position)).filter(
        and_(
            ContentRelation.workspace_id == workspace_id,
            ContentRelation.field_id == field_id,
            ContentRelation.from_entry_id == from_entry_id
        )
    ).scalar()
    return 0 if last is None else last + 1


def _enforce_cardinality(
    db: Session,
    workspace_id: str,
    field_id: str,
    from_entry_id: str,
    to_entry_id: str,
    kind: RelationKind
) -> Tuple[Optional[ContentRelation], List[str]]:
    """
    Remove edges that would break cardinality once (from, to) is attached.
    Returns the identical existing edge (if any) and the other source ids that lost an edge.
    """
    base = and_(ContentRelation.workspace_id == workspace_id, ContentRelation.field_id == field_id)
    by_from = []
    by_to = []
    if kind in (RelationKind.ONE_TO_ONE, RelationKind.MANY_TO_ONE):
        by_from = db.query(ContentRelation).filter(base, ContentRelation.from_entry_id == from_entry_id).all()
    if kind in (RelationKind.ONE_TO_ONE, RelationKind.ONE_TO_MANY):
        by_to = db.query(ContentRelation).filter(base, ContentRelation.to_entry_id == to_entry_id).all()

    for row in by_from + by_to:
        if row.from_entry_id == from_entry_id and row.to_entry_id == to_entry_id:
            return row, []

    conflicting = {row.id: row for row in by_from + by_to}
    stolen_from = []
    for row in conflicting.values():
        if row.from_entry_id != from_entry_id and row.from_entry_id not in stolen_from:
            stolen_from.append(row.from_entry_id)
        db.delete(row)
    if conflicting:
        db.flush()
    return None, stolen_from


def append(
    db: Session,
    workspace_id: str,
    field_id: str,
    from_entry_id: str,
    to_entry_id: str,
    denorm_engine: Optional[DenormEngine] = None
) -> ContentRelation:
    """Attach one target at the end of the source's ordered list, enforcing cardinality."""
    field = get_ordered_relation_field_or_raise(db, workspace_id, field_id)
    get_source_entry_or_raise(db, workspace_id, from_entry_id)
    assert_targets(db, workspace_id, field, [to_entry_id])

    kind = RelationKind(field.relation.kind)
    existing, stolen_from = _enforce_cardinality(db, workspace_id, field_id, from_entry_id, to_entry_id, kind)
    if existing:
        return existing

    edge = ContentRelation(
        workspace_id=workspace_id,
        field_id=field_id,
        from_entry_id=from_entry_id,
        to_entry_id=to_entry_id,
        position=_next_position(db, workspace_id, field_id, from_entry_id),
    )
    db.add(edge)
    db.commit()
    db.refresh(edge)

    logger.info("Attached %s -> %s on relation field %s", from_entry_id, to_entry_id, field_id)
    recompute_after_commit(db, workspace_id, {field_id: [from_entry_id] + stolen_from}, denorm_engine=denorm_engine)
    return edge


def detach_many(
    db: Session,
    workspace_id: str,
    field_id: str,
    from_entry_id: str,
    to_entry_ids: Iterable[str],
    denorm_engine: Optional[DenormEngine] = None
) -> int:
    """Remove edges to the given targets. Missing edges are ignored. Returns rows removed."""
    get_ordered_relation_field_or_raise(db, workspace_id, field_id)
    to_entry_ids = list(to_entry_ids)
    if not to_entry_ids:
        return 0

    removed = db.query(ContentRelation).filter(
        and_(
            ContentRelation.workspace_id == workspace_id,
            ContentRelation.field_id == field_id,
            ContentRelation.from_entry_id == from_entry_id,
            ContentRelation.to_entry_id.in_(to_entry_ids)
        )
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
    """Remove every edge of the source on this field."""
    get_ordered_relation_field_or_raise(db, workspace_id, field_id)
    removed = db.query(ContentRelation).filter(
        and_(
            ContentRelation.workspace_id == workspace_id,
            ContentRelation.field_id == field_id,
            ContentRelation.from_entry_id == from_entry_id
        )
    ).delete(synchronize_session=False)
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
) -> Tuple[List[ContentRelation], int]:
    """Edges of a source in position order, paginated."""
    get_ordered_relation_field_or_raise(db, workspace_id, field_id)
    query = db.query(ContentRelation).filter(
        and_(
            ContentRelation.workspace_id == workspace_id,
            ContentRelation.field_id == field_id,
            ContentRelation.from_entry_id == from_entry_id
        )
    )
    total = query.count()
    rows = query.order_by(ContentRelation.position, ContentRelation.created_at).offset(skip).limit(limit).all()
    return rows, total


def find_from_by_related(
    db: Session,
    workspace_id: str,
    field_id: str,
    to_entry_id: str,
    skip: int = 0,
    limit: int = 20
) -> Tuple[List[ContentRelation], int]:
    """Reverse lookup: edges pointing at `to_entry_id` on this field."""
    get_ordered_relation_field_or_raise(db, workspace_id, field_id)
    query = db.query(ContentRelation).filter(
        and_(
            ContentRelation.workspace_id == workspace_id,
            ContentRelation.field_id == field_id,
            ContentRelation.to_entry_id == to_entry_id
        )
    )
    total = query.count()
    rows = query.order_by(ContentRelation.created_at, ContentRelation.id).offset(skip).limit(limit).all()
    return rows, total


def reorder(
    db: Session,
    workspace_id: str,
    field_id: str,
    from_entry_id: str,
    ordered_to_entry_ids: Sequence[str],
    denorm_engine: Optional[DenormEngine] = None
) -> List[ContentRelation]:
    """Assign positions 0..n-1 to the listed targets. Unlisted edges keep their position."""
    get_ordered_relation_field_or_raise(db, workspace_id, field_id)
    for index, to_entry_id in enumerate(dict.fromkeys(ordered_to_entry_ids)):
        db.query(ContentRelation).filter(
            and_(
                ContentRelation.workspace_id == workspace_id,
                ContentRelation.field_id == field_id,
                ContentRelation.from_entry_id == from_entry_id,
                ContentRelation.to_entry_id == to_entry_id
            )
        ).update({ContentRelation.position: index}, synchronize_session=False)
    db.commit()

    recompute_after_commit(db, workspace_id, {field_id: [from_entry_id]}, denorm_engine=denorm_engine)
    return load_edges(db, workspace_id, [field_id], [from_entry_id])


def replace_field_edges(
    db: Session,
    workspace_id: str,
    field: ContentField,
    from_entry_id: str,
    target_ids: Sequence[str]
) -> List[str]:
    """
    Replace all edges of (field, source) with `target_ids` in payload order.
    ONE_TO_ONE and ONE_TO_MANY targets are detached from any other source first.
    Does not commit. Returns the other source ids that lost an edge.
    """
    kind = RelationKind(field.relation.kind)
    db.query(ContentRelation).filter(
        and_(
            ContentRelation.workspace_id == workspace_id,
            ContentRelation.field_id == field.id,
            ContentRelation.from_entry_id == from_entry_id
        )
    ).delete(synchronize_session=False)

    stolen_from = []
    if target_ids and kind in (RelationKind.ONE_TO_ONE, RelationKind.ONE_TO_MANY):
        taken = db.query(ContentRelation).filter(
            and_(
                ContentRelation.workspace_id == workspace_id,
                ContentRelation.field_id == field.id,
                ContentRelation.to_entry_id.in_(list(target_ids))
            )
        ).all()
        for row in taken:
            if row.from_entry_id not in stolen_from:
                stolen_from.append(row.from_entry_id)
            db.delete(row)
    db.flush()

    for position, to_entry_id in enumerate(target_ids):
        db.add(ContentRelation(
            workspace_id=workspace_id,
            field_id=field.id,
            from_entry_id=from_entry_id,
            to_entry_id=to_entry_id,
            position=position,
        ))
    return stolen_from


def load_edges(
    db: Session,
    workspace_id: str,
    field_ids: Iterable[str],
    from_entry_ids: Iterable[str]
) -> List[ContentRelation]:
    """All ordered edges for the given fields and sources, in one query."""
    field_ids = list(field_ids)
    from_entry_ids = list(from_entry_ids)
    if not field_ids or not from_entry_ids:
        return []
    return db.query(ContentRelation).filter(
        and_(
            ContentRelation.workspace_id == workspace_id,
            ContentRelation.field_id.in_(field_ids),
            ContentRelation.from_entry_id.in_(from_entry_ids)
        )
    ).order_by(ContentRelation.position, ContentRelation.created_at).all()
