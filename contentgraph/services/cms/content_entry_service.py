import logging
import math
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload
from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError

from contentgraph.core.config import settings
from contentgraph.core.exceptions import ConflictError, EntryValidationError, NotFoundError
from contentgraph.models.content_entry import ContentEntry
from contentgraph.models.content_type import ContentType
from contentgraph.models.field_value import FieldValue
from contentgraph.models.content_relation import ContentRelation, ContentRelationM2M
from contentgraph.schemas.cms import (
    ContentEntryCreate,
    ContentEntryUpdate,
    ReadScope,
    RelationKind,
    SummaryMode,
)
from contentgraph.services.cms import (
    content_type_service,
    relation_m2m_service,
    relation_service,
)
from contentgraph.services.cms.denorm_service import DenormEngine, recompute_after_commit
from contentgraph.services.cms.entry_validation import StagedPayload, enforce_on_payload
from contentgraph.services.cms.field_value_service import replace_values, values_by_api_key
from contentgraph.services.cms.relations_expander import expand_relations
from contentgraph.services.cms.seo import (
    empty_seo_fields,
    generate_slug,
    normalize_seo_fields,
    validate_seo_lengths,
)

logger = logging.getLogger(__name__)

ENTRY_ATTRIBUTES = ('seo_title', 'meta_description', 'keywords', 'published_at')


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Reads
# =============================================================================

def get_entry(db: Session, workspace_id: str, entry_id: str) -> Optional[ContentEntry]:
    """Get an entry by ID."""
    return db.query(ContentEntry).options(
        joinedload(ContentEntry.content_type)
    ).filter(
        and_(
            ContentEntry.id == entry_id,
            ContentEntry.workspace_id == workspace_id
        )
    ).first()


def get_entry_or_raise(db: Session, workspace_id: str, entry_id: str) -> ContentEntry:
    entry = get_entry(db, workspace_id, entry_id)
    if not entry:
        raise NotFoundError(
            "Content entry not found",
            code="ENTRY_NOT_FOUND",
            details={"entry_id": entry_id},
        )
    return entry


def get_entry_by_slug(db: Session, workspace_id: str, slug: str) -> Optional[ContentEntry]:
    return db.query(ContentEntry).filter(
        and_(
            ContentEntry.workspace_id == workspace_id,
            ContentEntry.slug == slug
        )
    ).first()


def list_entries(
    db: Session,
    workspace_id: str,
    content_type_id: Optional[str] = None,
    content_type_api_key: Optional[str] = None,
    is_published: Optional[bool] = None,
    search: Optional[str] = None,
    skip: int = 0,
    limit: int = 20
) -> Tuple[List[ContentEntry], int]:
    """Get entries with filters. Returns (items, total)."""
    query = db.query(ContentEntry).filter(ContentEntry.workspace_id == workspace_id)

    if content_type_id:
        query = query.filter(ContentEntry.content_type_id == content_type_id)

    if content_type_api_key:
        query = query.join(ContentType, ContentType.id == ContentEntry.content_type_id).filter(
            ContentType.api_key == content_type_api_key
        )

    if is_published is not None:
        query = query.filter(ContentEntry.is_published.is_(is_published))

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                ContentEntry.seo_title.ilike(pattern),
                ContentEntry.slug.ilike(pattern)
            )
        )

    total = query.count()
    items = query.order_by(ContentEntry.created_at.desc(), ContentEntry.id).offset(skip).limit(limit).all()
    return items, total


def list_by_related(
    db: Session,
    workspace_id: str,
    field_id: str,
    to_entry_id: str,
    scope: ReadScope = ReadScope.ADMIN,
    skip: int = 0,
    limit: int = 20
) -> Tuple[List[ContentEntry], int]:
    """Entries that reference `to_entry_id` through a relation field (either edge table)."""
    field = relation_service.get_relation_field_or_raise(db, workspace_id, field_id)

    if RelationKind(field.relation.kind).is_m2m:
        query = db.query(ContentEntry).join(
            ContentRelationM2M, ContentRelationM2M.from_entry_id == ContentEntry.id
        ).filter(
            and_(
                ContentRelationM2M.workspace_id == workspace_id,
                ContentRelationM2M.relation_field_id == field_id,
                ContentRelationM2M.to_entry_id == to_entry_id
            )
        )
    else:
        query = db.query(ContentEntry).join(
            ContentRelation, ContentRelation.from_entry_id == ContentEntry.id
        ).filter(
            and_(
                ContentRelation.workspace_id == workspace_id,
                ContentRelation.field_id == field_id,
                ContentRelation.to_entry_id == to_entry_id
            )
        )

    query = query.filter(ContentEntry.workspace_id == workspace_id)
    if ReadScope(scope) == ReadScope.PUBLIC:
        query = query.filter(ContentEntry.is_published.is_(True))

    total = query.count()
    items = query.order_by(ContentEntry.created_at.desc(), ContentEntry.id).offset(skip).limit(limit).all()
    return items, total


def search_for_relation(
    db: Session,
    workspace_id: str,
    field_id: str,
    q: Optional[str] = None,
    scope: ReadScope = ReadScope.PUBLIC,
    limit: int = 20
) -> List[ContentEntry]:
    """Candidate targets for a relation field picker, searched on seo_title and slug."""
    field = relation_service.get_relation_field_or_raise(db, workspace_id, field_id)
    query = db.query(ContentEntry).filter(
        and_(
            ContentEntry.workspace_id == workspace_id,
            ContentEntry.content_type_id == field.relation.target_content_type_id
        )
    )
    if ReadScope(scope) == ReadScope.PUBLIC:
        query = query.filter(ContentEntry.is_published.is_(True))
    if q and q.strip():
        pattern = f"%{q.strip()}%"
        query = query.filter(
            or_(
                ContentEntry.seo_title.ilike(pattern),
                ContentEntry.slug.ilike(pattern)
            )
        )
    return query.order_by(ContentEntry.seo_title, ContentEntry.id).limit(limit).all()


def serialize_entry(entry: ContentEntry, values: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "workspace_id": entry.workspace_id,
        "content_type_id": entry.content_type_id,
        "slug": entry.slug,
        "seo_title": entry.seo_title,
        "meta_description": entry.meta_description,
        "keywords": list(entry.keywords or []),
        "is_published": bool(entry.is_published),
        "published_at": entry.published_at,
        "created_by_id": entry.created_by_id,
        "updated_by_id": entry.updated_by_id,
        "created_at": entry.created_at,
        "updated_at": entry.updated_at,
        "values": values or {},
    }


def serialize_entries(db: Session, entries: List[ContentEntry]) -> List[Dict[str, Any]]:
    """Serialize entries with their decoded field values (one query for all values)."""
    values = values_by_api_key(db, [e.id for e in entries])
    return [serialize_entry(e, values.get(e.id)) for e in entries]


def get_entry_with_relations(
    db: Session,
    workspace_id: str,
    entry_id: str,
    depth: int = 1,
    summary: SummaryMode = SummaryMode.BASIC,
    fields: Optional[Iterable[str]] = None,
    scope: ReadScope = ReadScope.PUBLIC
) -> Dict[str, Any]:
    """An entry with values and expanded relations. Unpublished entries are hidden from public scope."""
    entry = get_entry_or_raise(db, workspace_id, entry_id)
    if ReadScope(scope) == ReadScope.PUBLIC and not entry.is_published:
        raise NotFoundError("Content entry not found", code="ENTRY_NOT_FOUND", details={"entry_id": entry_id})

    data = serialize_entries(db, [entry])[0]
    relations = expand_relations(
        db,
        workspace_id,
        [entry],
        entry.content_type_id,
        depth=depth,
        summary=summary,
        allowed_field_api_keys=fields,
        scope=scope,
    )
    data["relations"] = relations.get(entry.id, {})
    return data


def pages_for(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if total > 0 else 0


# =============================================================================
# Writes
# =============================================================================

def _prepare_attributes(content_type: ContentType, data: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize SEO attributes; content types without SEO store them empty."""
    data = normalize_seo_fields(data)
    validate_seo_lengths(data.get('seo_title'), data.get('meta_description'))
    if not content_type.seo_enabled:
        data.update(empty_seo_fields())
    return data


def _normalize_explicit_slug(slug: str) -> str:
    normalized = generate_slug(slug, max_length=settings.SLUG_MAX_LENGTH, fallback=None)
    if not normalized:
        raise EntryValidationError("slug must contain at least one letter or digit", field="slug", rule="slug_source")
    return normalized


def _derive_slug(seo_title: Optional[str], staged: StagedPayload) -> Optional[str]:
    if seo_title:
        slug = generate_slug(seo_title, max_length=settings.SLUG_MAX_LENGTH, fallback=None)
        if slug:
            return slug
    for generated in staged.generated.values():
        if generated:
            return generated
    return None


def _assert_slug_available(db: Session, workspace_id: str, slug: Optional[str], entry_id: Optional[str] = None) -> None:
    if not slug:
        return
    existing = get_entry_by_slug(db, workspace_id, slug)
    if existing and existing.id != entry_id:
        raise ConflictError(
            f"Slug '{slug}' is already used in this workspace",
            code="SLUG_CONFLICT",
            details={"slug": slug},
        )


def _persist_staged(db: Session, workspace_id: str, entry_id: str, staged: StagedPayload) -> Dict[str, List[str]]:
    """
    Write staged values and edges for an entry. Does not commit.
    Returns {relation_field_id: [source entry ids to recompute]}.
    """
    if staged.cleared_field_ids:
        db.query(FieldValue).filter(
            and_(
                FieldValue.entry_id == entry_id,
                FieldValue.field_id.in_(staged.cleared_field_ids)
            )
        ).delete(synchronize_session=False)

    replace_values(db, entry_id, staged.field_values)

    touched: Dict[str, List[str]] = OrderedDict()
    for relation in staged.relations:
        if RelationKind(relation.field.relation.kind).is_m2m:
            stolen_from = relation_m2m_service.replace_field_edges(
                db, workspace_id, relation.field, entry_id, relation.target_ids
            )
        else:
            stolen_from = relation_service.replace_field_edges(
                db, workspace_id, relation.field, entry_id, relation.target_ids
            )
        touched[relation.field_id] = [entry_id] + [s for s in stolen_from if s != entry_id]
    return touched


def _raise_conflict(db: Session, error: IntegrityError) -> None:
    db.rollback()
    logger.warning("Entry write rejected by a unique constraint: %s", error.orig)
    raise ConflictError(
        "Entry conflicts with an existing entry (slug or unique value)",
        code="ENTRY_CONFLICT",
    )


def create_entry(
    db: Session,
    workspace_id: str,
    content_type_id: str,
    payload: ContentEntryCreate,
    user_id: Optional[str] = None,
    denorm_engine: Optional[DenormEngine] = None
) -> ContentEntry:
    """
    Create an entry: validate the payload, then write the entry row, its values and
    its relation edges in one transaction. Denormalized mirrors are recomputed after commit.
    """
    content_type = content_type_service.get_content_type_or_raise(db, content_type_id, workspace_id)

    data = _prepare_attributes(content_type, payload.model_dump(exclude={'values'}))
    staged = enforce_on_payload(db, content_type.id, None, payload.values, workspace_id=workspace_id)

    if data.get('slug'):
        slug = _normalize_explicit_slug(data['slug'])
    else:
        slug = _derive_slug(data.get('seo_title'), staged)
    _assert_slug_available(db, workspace_id, slug)

    is_published = bool(data.get('is_published'))
    published_at = data.get('published_at')
    if is_published and not published_at:
        published_at = _now()

    db_entry = ContentEntry(
        workspace_id=workspace_id,
        content_type_id=content_type.id,
        slug=slug,
        seo_title=data.get('seo_title'),
        meta_description=data.get('meta_description'),
        keywords=data.get('keywords') or [],
        is_published=is_published,
        published_at=published_at,
        created_by_id=user_id,
        updated_by_id=user_id,
    )
    try:
        db.add(db_entry)
        db.flush()
        touched = _persist_staged(db, workspace_id, db_entry.id, staged)
        db.commit()
    except IntegrityError as e:
        _raise_conflict(db, e)
    db.refresh(db_entry)

    logger.info(
        "Created entry %s (content type %s, workspace %s)", db_entry.id, content_type.id, workspace_id
    )

    recompute_after_commit(db, workspace_id, touched, [db_entry.id], denorm_engine=denorm_engine)
    return db_entry


def update_entry(
    db: Session,
    workspace_id: str,
    entry_id: str,
    payload: ContentEntryUpdate,
    user_id: Optional[str] = None,
    denorm_engine: Optional[DenormEngine] = None
) -> ContentEntry:
    """
    Update an entry. Only fields present in `payload.values` are replaced; relation
    fields present in the payload have all their edges replaced.
    An existing slug is kept unless a new one is given explicitly.
    """
    db_entry = get_entry_or_raise(db, workspace_id, entry_id)
    content_type = db_entry.content_type

    data = _prepare_attributes(content_type, payload.model_dump(exclude_unset=True, exclude={'values'}))
    if payload.values is not None:
        staged = enforce_on_payload(db, content_type.id, db_entry.id, payload.values, workspace_id=workspace_id)
    else:
        staged = StagedPayload()

    if data.get('slug'):
        slug = _normalize_explicit_slug(data['slug'])
    elif db_entry.slug:
        slug = db_entry.slug
    else:
        slug = _derive_slug(data.get('seo_title', db_entry.seo_title), staged)
    _assert_slug_available(db, workspace_id, slug, entry_id=db_entry.id)
    db_entry.slug = slug

    for key in ENTRY_ATTRIBUTES:
        if key in data:
            setattr(db_entry, key, data[key] if key != 'keywords' else (data[key] or []))
    if not content_type.seo_enabled:
        for key, value in empty_seo_fields().items():
            setattr(db_entry, key, value)

    if 'is_published' in data and data['is_published'] is not None:
        db_entry.is_published = data['is_published']
        if data['is_published'] and not db_entry.published_at:
            db_entry.published_at = data.get('published_at') or _now()
        elif not data['is_published']:
            db_entry.published_at = None

    db_entry.updated_by_id = user_id

    try:
        touched = _persist_staged(db, workspace_id, db_entry.id, staged)
        db.commit()
    except IntegrityError as e:
        _raise_conflict(db, e)
    db.refresh(db_entry)

    logger.info(
        "Updated entry %s (content type %s, workspace %s)", db_entry.id, content_type.id, workspace_id
    )

    recompute_after_commit(db, workspace_id, touched, [db_entry.id], denorm_engine=denorm_engine)
    return db_entry


def delete_entry(
    db: Session,
    workspace_id: str,
    entry_id: str,
    denorm_engine: Optional[DenormEngine] = None
) -> bool:
    """Delete an entry with its values and edges. Entries that referenced it are recomputed."""
    db_entry = get_entry(db, workspace_id, entry_id)
    if not db_entry:
        return False

    referencing: Dict[str, List[str]] = OrderedDict()
    ordered = db.query(ContentRelation.field_id, ContentRelation.from_entry_id).filter(
        and_(
            ContentRelation.workspace_id == workspace_id,
            ContentRelation.to_entry_id == entry_id
        )
    ).all()
    m2m = db.query(ContentRelationM2M.relation_field_id, ContentRelationM2M.from_entry_id).filter(
        and_(
            ContentRelationM2M.workspace_id == workspace_id,
            ContentRelationM2M.to_entry_id == entry_id
        )
    ).all()
    for field_id, from_entry_id in list(ordered) + list(m2m):
        if from_entry_id == entry_id:
            continue
        sources = referencing.setdefault(field_id, [])
        if from_entry_id not in sources:
            sources.append(from_entry_id)

    db.query(ContentRelation).filter(
        or_(ContentRelation.from_entry_id == entry_id, ContentRelation.to_entry_id == entry_id)
    ).delete(synchronize_session=False)
    db.query(ContentRelationM2M).filter(
        or_(ContentRelationM2M.from_entry_id == entry_id, ContentRelationM2M.to_entry_id == entry_id)
    ).delete(synchronize_session=False)
    db.query(FieldValue).filter(FieldValue.entry_id == entry_id).delete(synchronize_session=False)
    db.expire(db_entry, ['values'])

    db.delete(db_entry)
    db.commit()

    logger.info("Deleted entry %s from workspace %s", entry_id, workspace_id)

    recompute_after_commit(db, workspace_id, referencing, denorm_engine=denorm_engine)
    return True


def publish_entry(db: Session, workspace_id: str, entry_id: str, user_id: Optional[str] = None) -> ContentEntry:
    db_entry = get_entry_or_raise(db, workspace_id, entry_id)
    db_entry.is_published = True
    if not db_entry.published_at:
        db_entry.published_at = _now()
    db_entry.updated_by_id = user_id
    db.commit()
    db.refresh(db_entry)
    return db_entry


def unpublish_entry(db: Session, workspace_id: str, entry_id: str, user_id: Optional[str] = None) -> ContentEntry:
    db_entry = get_entry_or_raise(db, workspace_id, entry_id)
    db_entry.is_published = False
    db_entry.published_at = None
    db_entry.updated_by_id = user_id
    db.commit()
    db.refresh(db_entry)
    return db_entry
