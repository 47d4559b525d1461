"""
Entry payload enforcement.

`enforce_on_payload` walks the fields of a content type in declared order and turns a
list of `{api_key, value}` pairs into staged writes:

- field_values: typed value writes for the field value store
- relations:    target id lists per RELATION field (replace semantics)
- cleared:      fields explicitly emptied on update
- generated:    SLUG values derived from their `slug_from` source

The first violation raises EntryValidationError naming the field and the rule.
Nothing is written here; persistence belongs to the entry service.
"""
import logging
from dataclasses import dataclass, field as dataclass_field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from contentgraph.core.config import settings
from contentgraph.core.exceptions import ConfigurationError, EntryValidationError
from contentgraph.models.content_field import ContentField
from contentgraph.schemas.cms import FieldType, RelationKind
from contentgraph.services.cms import content_field_service
from contentgraph.services.cms.field_value_service import (
    FieldValueWrite,
    JsonValue,
    TextValue,
    TypedValue,
    ValueCoercionError,
    find_duplicate,
    typed_value_for,
)
from contentgraph.services.cms.relation_service import assert_targets
from contentgraph.services.cms.seo import generate_slug

logger = logging.getLogger(__name__)

DEFAULT_ACCEPT_MIME_TYPES = ["image/png", "image/jpeg", "image/webp"]

_MISSING = object()


@dataclass
class StagedRelation:
    field: ContentField
    target_ids: List[str]

    @property
    def field_id(self) -> str:
        return self.field.id


@dataclass
class StagedPayload:
    field_values: List[FieldValueWrite] = dataclass_field(default_factory=list)
    relations: List[StagedRelation] = dataclass_field(default_factory=list)
    cleared_field_ids: List[str] = dataclass_field(default_factory=list)
    generated: Dict[str, str] = dataclass_field(default_factory=dict)


def _payload_map(values: Optional[Sequence[Any]]) -> Dict[str, Any]:
    """{api_key: value} from FieldValueInput models or plain dicts. First occurrence wins."""
    result = {}
    for item in values or []:
        if isinstance(item, dict):
            api_key = item.get("api_key") or item.get("apiKey")
            value = item.get("value")
        else:
            api_key = getattr(item, "api_key", None)
            value = getattr(item, "value", None)
        if api_key and api_key not in result:
            result[api_key] = value
    return result


def relation_ids(raw: Any) -> List[str]:
    """Coerce a RELATION value to a de-duplicated list of non-blank string ids."""
    if raw is _MISSING or raw is None:
        return []
    items = raw if isinstance(raw, (list, tuple)) else [raw]
    ids = []
    for item in items:
        if item is None:
            continue
        text = str(item).strip()
        if text and text not in ids:
            ids.append(text)
    return ids


def has_typed_input(field: ContentField, raw: Any) -> bool:
    """Type-aware emptiness check of a raw payload value."""
    if raw is _MISSING or raw is None:
        return False
    field_type = FieldType(field.type)
    if field_type == FieldType.RELATION:
        return len(relation_ids(raw)) > 0
    elif field_type == FieldType.MEDIA:
        return isinstance(raw, dict) and isinstance(raw.get("urls"), list) and len(raw["urls"]) > 0
    elif field_type == FieldType.JSON:
        if isinstance(raw, (dict, list)):
            return len(raw) > 0
        return str(raw).strip() != ""
    elif field_type in (
        FieldType.TEXT, FieldType.RICH_TEXT, FieldType.SLUG,
        FieldType.NUMBER, FieldType.BOOLEAN, FieldType.DATE
    ):
        return raw != ""
    raise ConfigurationError(f"Unsupported field type: {field.type}")


def validate_media(field: ContentField, value: Any) -> Dict[str, Any]:
    """
    Check a MEDIA payload `{urls, files?}` against the field config and return its
    canonical form (urls sorted, files passed through).
    """
    config = field.config or {}
    accept = config.get("acceptMimeTypes") or DEFAULT_ACCEPT_MIME_TYPES
    max_files = config.get("maxFiles", 1)
    min_files = config.get("minFiles", 0)
    max_size_mb = config.get("maxSizeMB")

    if not isinstance(value, dict):
        raise EntryValidationError(
            f"{field.api_key} must be an object with a urls array", field=field.api_key, rule="media"
        )

    urls = value.get("urls") if isinstance(value.get("urls"), list) else []
    if field.is_required and not urls:
        raise EntryValidationError(f"{field.api_key} is required", field=field.api_key, rule="required")

    errors = []
    if len(urls) < min_files:
        errors.append(f"{field.api_key} requires at least {min_files} file(s)")
    if len(urls) > max_files:
        errors.append(f"{field.api_key} exceeds maxFiles={max_files}")

    prefix = settings.UPLOAD_URL_PREFIX
    for url in urls:
        if not isinstance(url, str) or not url.startswith(prefix):
            errors.append(f"{field.api_key} invalid file url: {url}")

    files = value.get("files")
    if isinstance(files, list):
        for meta in files:
            if not isinstance(meta, dict):
                continue
            mime = meta.get("mime")
            if mime and mime not in accept:
                errors.append(f"{field.api_key} mime not allowed: {mime}")
            size = meta.get("size")
            if isinstance(max_size_mb, (int, float)) and isinstance(size, (int, float)):
                if size > max_size_mb * 1024 * 1024:
                    errors.append(f"{field.api_key} file too large (> {max_size_mb} MB)")

    if errors:
        raise EntryValidationError("; ".join(errors), field=field.api_key, rule="media")

    normalized = {"urls": sorted(urls)}
    if isinstance(files, list):
        normalized["files"] = files
    return normalized


def _check_text_bounds(field: ContentField, text: str) -> None:
    if field.min_length is not None and len(text) < field.min_length:
        raise EntryValidationError(
            f"{field.api_key} must be at least {field.min_length} characters",
            field=field.api_key, rule="min_length",
        )
    if field.max_length is not None and len(text) > field.max_length:
        raise EntryValidationError(
            f"{field.api_key} must be at most {field.max_length} characters",
            field=field.api_key, rule="max_length",
        )


def _check_number_bounds(field: ContentField, number: float) -> None:
    if field.min_number is not None and number < field.min_number:
        raise EntryValidationError(
            f"{field.api_key} must be >= {field.min_number:g}", field=field.api_key, rule="min_number"
        )
    if field.max_number is not None and number > field.max_number:
        raise EntryValidationError(
            f"{field.api_key} must be <= {field.max_number:g}", field=field.api_key, rule="max_number"
        )


def _check_unique(db: Session, field: ContentField, value: TypedValue, entry_id: Optional[str]) -> None:
    if field.is_unique and find_duplicate(db, field, value, exclude_entry_id=entry_id):
        raise EntryValidationError(f"{field.api_key} must be unique", field=field.api_key, rule="unique")


def _coerce(field: ContentField, raw: Any) -> TypedValue:
    try:
        return typed_value_for(field.type, raw)
    except ValueCoercionError as e:
        raise EntryValidationError(f"{field.api_key} {e}", field=field.api_key, rule=e.rule)


def _stage_relation(db: Session, workspace_id: Optional[str], field: ContentField, raw: Any) -> StagedRelation:
    if not field.relation:
        raise ConfigurationError(
            f"Relation field {field.api_key} has no relation config",
            details={"field_id": field.id},
        )
    ids = relation_ids(raw)
    api_key = field.api_key

    if field.is_required and not ids:
        raise EntryValidationError(f"{api_key} is required", field=api_key, rule="required")
    if RelationKind(field.relation.kind).is_single and len(ids) > 1:
        raise EntryValidationError(
            f"{api_key} accepts a single related item", field=api_key, rule="cardinality"
        )

    config = field.config or {}
    min_count = config.get("minCount")
    max_count = config.get("maxCount")
    if min_count is not None and len(ids) < min_count:
        raise EntryValidationError(
            f"{api_key} requires at least {min_count} related item(s)", field=api_key, rule="min_count"
        )
    if max_count is not None and len(ids) > max_count:
        raise EntryValidationError(
            f"{api_key} exceeds max related item(s): {max_count}", field=api_key, rule="max_count"
        )

    if workspace_id is not None:
        assert_targets(db, workspace_id, field, ids)
    return StagedRelation(field=field, target_ids=ids)


def enforce_on_payload(
    db: Session,
    content_type_id: str,
    entry_id: Optional[str],
    values: Optional[Sequence[Any]],
    workspace_id: Optional[str] = None
) -> StagedPayload:
    """
    Validate `values` against the fields of `content_type_id` and stage the writes.

    `entry_id` is None on create. On update it excludes the entry itself from
    uniqueness checks, and fields whose api_key is absent from the payload are
    left untouched instead of being treated as missing. When `workspace_id` is
    given, relation targets are checked for existence and target content type.
    """
    is_update = entry_id is not None
    payload = _payload_map(values)
    staged = StagedPayload()

    for field in content_field_service.list_fields(db, content_type_id):
        field_type = FieldType(field.type)
        api_key = field.api_key
        raw = payload.get(api_key, _MISSING)
        present = raw is not _MISSING

        if is_update and not present and field_type != FieldType.SLUG:
            continue

        has_input = has_typed_input(field, raw)

        if field.is_required and not has_input and field_type not in (FieldType.SLUG, FieldType.RELATION):
            raise EntryValidationError(f"{api_key} is required", field=api_key, rule="required")

        if field_type == FieldType.SLUG and not has_input:
            if not field.slug_from:
                if is_update and not present:
                    continue
                if field.is_required:
                    raise EntryValidationError(f"{api_key} is required", field=api_key, rule="required")
                if present:
                    staged.cleared_field_ids.append(field.id)
                continue
            source = payload.get(field.slug_from, _MISSING)
            if is_update and source is _MISSING and not present:
                continue
            source_text = "" if source is _MISSING or source is None else str(source)
            slug = generate_slug(
                source_text,
                max_length=field.max_length or settings.SLUG_MAX_LENGTH,
                fallback=None,
            )
            if not slug:
                raise EntryValidationError(
                    f'Slug source "{field.slug_from}" is empty', field=api_key, rule="slug_source"
                )
            typed = TextValue(slug)
            _check_unique(db, field, typed, entry_id)
            staged.generated[api_key] = slug
            staged.field_values.append(FieldValueWrite(field_id=field.id, value=typed))
            continue

        if field_type == FieldType.RELATION:
            if not present:
                if field.is_required:
                    raise EntryValidationError(f"{api_key} is required", field=api_key, rule="required")
                continue
            staged.relations.append(_stage_relation(db, workspace_id, field, raw))
            continue

        if not has_input:
            if field_type == FieldType.MEDIA and present and raw not in (None, "") and not isinstance(raw, dict):
                validate_media(field, raw)
            if present and is_update:
                staged.cleared_field_ids.append(field.id)
            continue

        if field_type == FieldType.MEDIA:
            typed = JsonValue(validate_media(field, raw))
            _check_unique(db, field, typed, entry_id)
            staged.field_values.append(FieldValueWrite(field_id=field.id, value=typed))
            continue

        typed = _coerce(field, raw)
        if field_type in (FieldType.TEXT, FieldType.RICH_TEXT, FieldType.SLUG):
            _check_text_bounds(field, typed.value)
        elif field_type == FieldType.NUMBER:
            _check_number_bounds(field, typed.value)
        elif field_type in (FieldType.BOOLEAN, FieldType.DATE, FieldType.JSON):
            pass
        else:
            raise ConfigurationError(f"Unsupported field type: {field.type}")

        _check_unique(db, field, typed, entry_id)
        staged.field_values.append(FieldValueWrite(field_id=field.id, value=typed))

    return staged
