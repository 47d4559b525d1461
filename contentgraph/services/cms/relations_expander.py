"""
Read-side expansion of relation fields.

Expansion runs level by level. Each level is an arena:

    nodes: {entry_id: summary}                    resolved targets of this level
    links: {from_id: {api_key: id | [ids]}}       references into `nodes`

Level N+1 uses the nodes of level N (grouped by content type) as its roots. The
nested result is only materialized at the end, where a node's `_relations` is read
from the next level's links. Nothing is shared between parents, and cycles stop at
the depth bound. The expander never raises for missing data: unknown content types,
missing relation configs and unresolved targets are left out.
"""
import copy
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy.orm import Session
from sqlalchemy import and_

from contentgraph.core.config import settings
from contentgraph.models.content_entry import ContentEntry
from contentgraph.models.content_field import ContentField
from contentgraph.schemas.cms import ReadScope, RelationKind, SummaryMode
from contentgraph.services.cms import content_field_service, relation_m2m_service, relation_service
from contentgraph.services.cms.field_value_service import values_by_api_key

logger = logging.getLogger(__name__)

RELATIONS_KEY = "_relations"

Link = Union[str, List[str]]


@dataclass
class ExpansionLevel:
    nodes: Dict[str, Dict[str, Any]] = field(default_factory=OrderedDict)
    links: Dict[str, Dict[str, Link]] = field(default_factory=dict)


def _entry_id(entry: Any) -> Optional[str]:
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict):
        return entry.get("id")
    return getattr(entry, "id", None)


def _summary(entry: ContentEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "slug": entry.slug,
        "seo_title": entry.seo_title,
        "meta_description": entry.meta_description,
        "published_at": entry.published_at.isoformat() if entry.published_at else None,
        "content_type_id": entry.content_type_id,
    }


def _load_summaries(
    db: Session,
    workspace_id: str,
    target_ids: List[str],
    summary: SummaryMode,
    scope: ReadScope
) -> Dict[str, Dict[str, Any]]:
    if not target_ids:
        return {}
    query = db.query(ContentEntry).filter(
        and_(
            ContentEntry.workspace_id == workspace_id,
            ContentEntry.id.in_(target_ids)
        )
    )
    if scope == ReadScope.PUBLIC:
        query = query.filter(ContentEntry.is_published.is_(True))
    summaries = {entry.id: _summary(entry) for entry in query.all()}

    if summary == SummaryMode.FULL and summaries:
        values = values_by_api_key(db, list(summaries.keys()))
        for entry_id, node in summaries.items():
            node["values"] = values.get(entry_id, {})
    return summaries


def _relation_fields(
    db: Session,
    content_type_id: str,
    allowed_field_api_keys: Optional[Iterable[str]]
) -> List[ContentField]:
    fields = content_field_service.list_relation_fields(db, [content_type_id], api_keys=allowed_field_api_keys)
    usable = []
    for f in fields:
        if f.relation is None:
            logger.debug("Relation field %s has no relation config, skipping expansion", f.id)
            continue
        usable.append(f)
    return usable


def _expand_level(
    db: Session,
    workspace_id: str,
    roots_by_type: Dict[str, List[str]],
    allowed_field_api_keys: Optional[Iterable[str]],
    summary: SummaryMode,
    scope: ReadScope
) -> ExpansionLevel:
    level = ExpansionLevel()

    fields_by_id: Dict[str, ContentField] = {}
    ordered_field_ids: List[str] = []
    m2m_field_ids: List[str] = []
    from_ids: List[str] = []
    for content_type_id, entry_ids in roots_by_type.items():
        fields = _relation_fields(db, content_type_id, allowed_field_api_keys)
        if not fields:
            continue
        from_ids.extend(entry_ids)
        for f in fields:
            fields_by_id[f.id] = f
            if RelationKind(f.relation.kind).is_m2m:
                m2m_field_ids.append(f.id)
            else:
                ordered_field_ids.append(f.id)

    if not fields_by_id or not from_ids:
        return level

    # One query per edge table; both come back sorted by position.
    edges = [
        (e.from_entry_id, e.field_id, e.to_entry_id, e.position or 0)
        for e in relation_service.load_edges(db, workspace_id, ordered_field_ids, from_ids)
    ] + [
        (e.from_entry_id, e.relation_field_id, e.to_entry_id, e.position or 0)
        for e in relation_m2m_service.load_edges(db, workspace_id, m2m_field_ids, from_ids)
    ]
    if not edges:
        return level

    target_ids = list(OrderedDict.fromkeys(edge[2] for edge in edges))
    summaries = _load_summaries(db, workspace_id, target_ids, summary, scope)

    groups: Dict[tuple, List[tuple]] = OrderedDict()
    for edge in edges:
        groups.setdefault((edge[0], edge[1]), []).append(edge)

    for (from_id, field_id), group in groups.items():
        f = fields_by_id[field_id]
        group.sort(key=lambda e: e[3])
        resolved = [e[2] for e in group if e[2] in summaries]
        if not resolved:
            continue

        bucket = level.links.setdefault(from_id, {})
        if RelationKind(f.relation.kind).is_single:
            bucket[f.api_key] = resolved[0]
            level.nodes[resolved[0]] = summaries[resolved[0]]
        else:
            ids = list(OrderedDict.fromkeys(resolved))
            bucket[f.api_key] = ids
            for target_id in ids:
                level.nodes[target_id] = summaries[target_id]

    return level


def _materialize_links(levels: List[ExpansionLevel], index: int, links: Dict[str, Link]) -> Dict[str, Any]:
    result = {}
    for api_key, link in links.items():
        if isinstance(link, list):
            result[api_key] = [_materialize_node(levels, index, target_id) for target_id in link]
        else:
            result[api_key] = _materialize_node(levels, index, link)
    return result


def _materialize_node(levels: List[ExpansionLevel], index: int, entry_id: str) -> Dict[str, Any]:
    node = copy.deepcopy(levels[index].nodes[entry_id])
    if index + 1 < len(levels):
        nested = levels[index + 1].links.get(entry_id)
        if nested:
            node[RELATIONS_KEY] = _materialize_links(levels, index + 1, nested)
    return node


def expand_relations(
    db: Session,
    workspace_id: str,
    entries: Iterable[Any],
    content_type_id: str,
    depth: int = 1,
    summary: Union[str, SummaryMode] = SummaryMode.BASIC,
    allowed_field_api_keys: Optional[Iterable[str]] = None,
    scope: Union[str, ReadScope] = ReadScope.PUBLIC
) -> Dict[str, Dict[str, Any]]:
    """
    Expand relation fields of `entries` (all of `content_type_id`).

    Returns {root_entry_id: {field_api_key: summary | [summary, ...]}}. Single-valued
    kinds yield the lowest-position resolved target, multi-valued kinds a list in
    position order without duplicates. `depth` below 1 yields an empty object per
    root; larger values are capped at MAX_RELATION_DEPTH and a non-numeric depth
    counts as 1. The whitelist applies to the root level only. `scope="public"`
    resolves published targets only, at every level; `scope="admin"` resolves all
    of them.
    """
    root_ids = list(OrderedDict.fromkeys(i for i in (_entry_id(e) for e in entries or []) if i))
    result = {root_id: {} for root_id in root_ids}
    try:
        depth = int(depth)
    except (TypeError, ValueError):
        logger.debug("Invalid depth %r, using 1", depth)
        depth = 1
    if not root_ids or depth < 1:
        return result

    depth = min(depth, settings.MAX_RELATION_DEPTH)
    try:
        summary = SummaryMode(summary)
    except ValueError:
        logger.debug("Unknown summary mode %r, using basic", summary)
        summary = SummaryMode.BASIC
    try:
        scope = ReadScope(scope)
    except ValueError:
        logger.debug("Unknown read scope %r, using public", scope)
        scope = ReadScope.PUBLIC

    allowed = list(allowed_field_api_keys) if allowed_field_api_keys is not None else None
    if allowed is not None and not allowed:
        return result

    levels: List[ExpansionLevel] = []
    roots_by_type = {content_type_id: root_ids}
    for _ in range(depth):
        level = _expand_level(db, workspace_id, roots_by_type, allowed, summary, scope)
        levels.append(level)
        if not level.nodes:
            break
        allowed = None
        roots_by_type = OrderedDict()
        for node_id, node in level.nodes.items():
            roots_by_type.setdefault(node["content_type_id"], []).append(node_id)

    for root_id in root_ids:
        links = levels[0].links.get(root_id)
        if links:
            result[root_id] = _materialize_links(levels, 0, links)
    return result
