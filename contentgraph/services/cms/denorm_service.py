"""
Denormalization of relation targets into a scalar "mirror" field on the source entry.

A RELATION field opts in through its config:

    {"denorm": {"targetFieldApiKey": "authorNames", "from": "seoTitle", "joinWith": ", "}}

`from` is "seoTitle" (falls back to slug, then id) or "field:<apiKey>" to render a
typed value of the target. The joined string replaces the mirror field's value on
every affected source entry. Recomputes run after the triggering write commits and
are best-effort: a missing mirror field is skipped, errors are handled by the
post-commit queue.
"""
import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session, joinedload
from sqlalchemy import and_

from contentgraph.core.config import settings
from contentgraph.models.content_entry import ContentEntry
from contentgraph.models.content_field import ContentField
from contentgraph.models.content_type import ContentType
from contentgraph.models.field_value import FieldValue
from contentgraph.models.content_relation import ContentRelation, ContentRelationM2M
from contentgraph.schemas.cms import FieldType
from contentgraph.services.cms.field_value_service import (
    FieldValueWrite,
    TextValue,
    read_typed_value,
    render_text,
    replace_values,
)
from contentgraph.services.cms.post_commit import PostCommitQueue

logger = logging.getLogger(__name__)

DEFAULT_FROM = "seoTitle"
DEFAULT_JOIN_WITH = ", "
FIELD_PREFIX = "field:"

# Mirror values are stored as strings, so only string-backed fields can receive them
MIRROR_FIELD_TYPES = (FieldType.TEXT.value, FieldType.RICH_TEXT.value, FieldType.SLUG.value)


def denorm_config(field: ContentField) -> Optional[Dict]:
    config = (field.config or {}).get("denorm")
    if not isinstance(config, dict) or not config.get("targetFieldApiKey"):
        return None
    return config


class DenormEngine:
    """Recomputes mirror fields. `enabled` is the feature flag; a disabled engine is a no-op."""

    def __init__(self, db: Session, enabled: bool = True):
        self.db = db
        self.enabled = enabled

    def _load_relation_field(self, workspace_id: str, relation_field_id: str) -> Optional[ContentField]:
        return self.db.query(ContentField).options(
            joinedload(ContentField.relation)
        ).join(ContentType, ContentType.id == ContentField.content_type_id).filter(
            and_(
                ContentField.id == relation_field_id,
                ContentType.workspace_id == workspace_id,
                ContentField.type == FieldType.RELATION.value
            )
        ).first()

    def _targets_by_source(self, workspace_id: str, field_id: str, from_entry_ids: List[str]) -> Dict[str, List[str]]:
        """Target ids per source entry in edge position order, from both edge tables."""
        ordered = self.db.query(
            ContentRelation.from_entry_id, ContentRelation.to_entry_id, ContentRelation.position
        ).filter(
            and_(
                ContentRelation.workspace_id == workspace_id,
                ContentRelation.field_id == field_id,
                ContentRelation.from_entry_id.in_(from_entry_ids)
            )
        ).order_by(ContentRelation.position, ContentRelation.created_at).all()

        m2m = self.db.query(
            ContentRelationM2M.from_entry_id, ContentRelationM2M.to_entry_id, ContentRelationM2M.position
        ).filter(
            and_(
                ContentRelationM2M.workspace_id == workspace_id,
                ContentRelationM2M.relation_field_id == field_id,
                ContentRelationM2M.from_entry_id.in_(from_entry_ids)
            )
        ).order_by(ContentRelationM2M.position, ContentRelationM2M.created_at).all()

        edges = sorted(list(ordered) + list(m2m), key=lambda e: e.position or 0)
        grouped = {entry_id: [] for entry_id in from_entry_ids}
        for edge in edges:
            targets = grouped[edge.from_entry_id]
            if edge.to_entry_id not in targets:
                targets.append(edge.to_entry_id)
        return grouped

    def _render_targets(self, workspace_id: str, target_ids: List[str], source: str) -> Dict[str, str]:
        """Rendered string per target id according to the `from` rule."""
        if not target_ids:
            return {}
        targets = self.db.query(ContentEntry).filter(
            and_(
                ContentEntry.workspace_id == workspace_id,
                ContentEntry.id.in_(target_ids)
            )
        ).all()

        if source.startswith(FIELD_PREFIX):
            api_key = source[len(FIELD_PREFIX):]
            content_type_ids = {t.content_type_id for t in targets}
            field_ids = [
                f.id for f in self.db.query(ContentField).filter(
                    and_(
                        ContentField.content_type_id.in_(list(content_type_ids)),
                        ContentField.api_key == api_key
                    )
                ).all()
            ] if content_type_ids else []
            if not field_ids:
                return {}
            rows = self.db.query(FieldValue).filter(
                and_(
                    FieldValue.entry_id.in_([t.id for t in targets]),
                    FieldValue.field_id.in_(field_ids)
                )
            ).all()
            return {row.entry_id: render_text(read_typed_value(row)) for row in rows}

        if source != DEFAULT_FROM:
            logger.debug("Unknown denorm source %r, using %s", source, DEFAULT_FROM)
        return {t.id: t.seo_title or t.slug or t.id for t in targets}

    def recompute_for_relation_field(
        self,
        workspace_id: str,
        relation_field_id: str,
        from_entry_ids: Iterable[str]
    ) -> int:
        """
        Recompute the mirror field for the given source entries of one relation field.
        Returns the number of source entries written.
        """
        if not self.enabled:
            return 0
        from_entry_ids = list(OrderedDict.fromkeys(i for i in from_entry_ids if i))
        if not from_entry_ids:
            return 0

        field = self._load_relation_field(workspace_id, relation_field_id)
        if not field:
            return 0
        config = denorm_config(field)
        if not config:
            return 0

        target_field_api_key = config["targetFieldApiKey"]
        source = config.get("from") or DEFAULT_FROM
        join_with = config.get("joinWith")
        if join_with is None:
            join_with = DEFAULT_JOIN_WITH

        sources = self.db.query(ContentEntry).filter(
            and_(
                ContentEntry.workspace_id == workspace_id,
                ContentEntry.id.in_(from_entry_ids)
            )
        ).all()
        if not sources:
            return 0

        mirror_fields = {
            f.content_type_id: f for f in self.db.query(ContentField).filter(
                and_(
                    ContentField.content_type_id.in_(list({s.content_type_id for s in sources})),
                    ContentField.api_key == target_field_api_key
                )
            ).all()
        }

        grouped = self._targets_by_source(workspace_id, relation_field_id, [s.id for s in sources])
        all_targets = list(OrderedDict.fromkeys(t for ids in grouped.values() for t in ids))
        rendered = self._render_targets(workspace_id, all_targets, source)

        written = 0
        for entry in sources:
            mirror = mirror_fields.get(entry.content_type_id)
            if mirror is None or mirror.type not in MIRROR_FIELD_TYPES:
                logger.debug(
                    "Denorm mirror field %s not usable on content type %s, skipping",
                    target_field_api_key, entry.content_type_id
                )
                continue
            parts = [rendered.get(target_id, "") for target_id in grouped.get(entry.id, [])]
            value = join_with.join(p for p in parts if p)
            replace_values(self.db, entry.id, [FieldValueWrite(field_id=mirror.id, value=TextValue(value))])
            written += 1

        self.db.commit()
        if written:
            logger.info(
                "Denorm recomputed %s on %s entr(ies) for relation field %s",
                target_field_api_key, written, relation_field_id
            )
        return written

    def recompute_for_target_change(self, workspace_id: str, target_entry_id: str) -> int:
        """Recompute every source entry that references `target_entry_id`, once per relation field."""
        if not self.enabled or not target_entry_id:
            return 0

        ordered = self.db.query(ContentRelation.field_id, ContentRelation.from_entry_id).filter(
            and_(
                ContentRelation.workspace_id == workspace_id,
                ContentRelation.to_entry_id == target_entry_id
            )
        ).all()
        m2m = self.db.query(ContentRelationM2M.relation_field_id, ContentRelationM2M.from_entry_id).filter(
            and_(
                ContentRelationM2M.workspace_id == workspace_id,
                ContentRelationM2M.to_entry_id == target_entry_id
            )
        ).all()

        by_field: Dict[str, List[str]] = OrderedDict()
        for field_id, from_entry_id in list(ordered) + list(m2m):
            sources = by_field.setdefault(field_id, [])
            if from_entry_id not in sources:
                sources.append(from_entry_id)

        written = 0
        for field_id, from_entry_ids in by_field.items():
            written += self.recompute_for_relation_field(workspace_id, field_id, from_entry_ids)
        return written


def recompute_after_commit(
    db: Session,
    workspace_id: str,
    relation_fields: Optional[Dict[str, Iterable[str]]] = None,
    target_entry_ids: Iterable[str] = (),
    denorm_engine: Optional[DenormEngine] = None
) -> PostCommitQueue:
    """
    Enqueue and drain denorm recomputes for a committed write:
    first the touched relation fields ({field_id: source entry ids}), then every
    changed target entry. Returns the drained queue; failures are on `queue.failed`.
    """
    engine = denorm_engine or DenormEngine(db, enabled=settings.ENABLE_DENORM)
    queue = PostCommitQueue(db, max_attempts=settings.DENORM_MAX_ATTEMPTS)
    if not engine.enabled:
        return queue

    for field_id, from_entry_ids in (relation_fields or {}).items():
        queue.enqueue(
            f"denorm:field:{field_id}",
            engine.recompute_for_relation_field,
            workspace_id=workspace_id,
            relation_field_id=field_id,
            from_entry_ids=list(from_entry_ids),
        )
    for target_entry_id in target_entry_ids:
        queue.enqueue(
            f"denorm:target:{target_entry_id}",
            engine.recompute_for_target_change,
            workspace_id=workspace_id,
            target_entry_id=target_entry_id,
        )

    queue.drain()
    return queue
