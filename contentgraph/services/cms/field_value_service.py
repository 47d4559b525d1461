"""
Typed storage for entry attributes.

Each (entry, field) pair is stored as one field_values row with a single populated
value_* column. At the application layer a value is one of the typed variants
below; `typed_value_for` selects the variant from the field type and is the only
place that maps field types to storage columns.
"""
import json
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Union

from sqlalchemy.orm import Session
from sqlalchemy import and_

from contentgraph.models.content_field import ContentField
from contentgraph.models.field_value import FieldValue
from contentgraph.schemas.cms import FieldType

logger = logging.getLogger(__name__)

VALUE_COLUMNS = ("value_string", "value_number", "value_boolean", "value_date", "value_json")


@dataclass(frozen=True)
class TextValue:
    column: ClassVar[str] = "value_string"
    value: str


@dataclass(frozen=True)
class NumberValue:
    column: ClassVar[str] = "value_number"
    value: float


@dataclass(frozen=True)
class BoolValue:
    column: ClassVar[str] = "value_boolean"
    value: bool


@dataclass(frozen=True)
class DateValue:
    column: ClassVar[str] = "value_date"
    value: datetime


@dataclass(frozen=True)
class JsonValue:
    column: ClassVar[str] = "value_json"
    value: Any


TypedValue = Union[TextValue, NumberValue, BoolValue, DateValue, JsonValue]


@dataclass
class FieldValueWrite:
    """A staged write of one typed value for a field."""
    field_id: str
    value: TypedValue


class ValueCoercionError(ValueError):
    """Raw input cannot be represented in the field's storage type. `rule` names the failed check."""

    def __init__(self, rule: str, message: str):
        super().__init__(message)
        self.rule = rule


def parse_number(raw: Any) -> float:
    if isinstance(raw, bool):
        raise ValueCoercionError("number", "must be a number")
    if isinstance(raw, (int, float)):
        number = float(raw)
    elif isinstance(raw, str) and raw.strip():
        try:
            number = float(raw.strip())
        except ValueError:
            raise ValueCoercionError("number", "must be a number")
    else:
        raise ValueCoercionError("number", "must be a number")
    if math.isnan(number) or math.isinf(number):
        raise ValueCoercionError("number", "must be a number")
    return number


def parse_boolean(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.strip().lower() in ("true", "false"):
        return raw.strip().lower() == "true"
    raise ValueCoercionError("boolean", "must be a boolean")


def parse_date(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, date):
        parsed = datetime.combine(raw, time.min)
    elif isinstance(raw, str) and raw.strip():
        try:
            parsed = datetime.fromisoformat(raw.strip().replace('Z', '+00:00'))
        except ValueError:
            raise ValueCoercionError("date", "must be a valid date")
    else:
        raise ValueCoercionError("date", "must be a valid date")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_json(raw: Any) -> Any:
    if isinstance(raw, (dict, list)):
        return raw
    try:
        return json.loads(str(raw))
    except (TypeError, ValueError):
        raise ValueCoercionError("json", "must be an object/array or valid JSON string")


def typed_value_for(field_type: str, raw: Any) -> TypedValue:
    """
    Map raw payload input to the typed variant of a field type.
    Raises ValueCoercionError when the input does not fit.
    """
    if field_type in (FieldType.TEXT.value, FieldType.RICH_TEXT.value, FieldType.SLUG.value):
        if not isinstance(raw, str):
            raise ValueCoercionError("string", "must be a string")
        return TextValue(raw)
    elif field_type == FieldType.NUMBER.value:
        return NumberValue(parse_number(raw))
    elif field_type == FieldType.BOOLEAN.value:
        return BoolValue(parse_boolean(raw))
    elif field_type == FieldType.DATE.value:
        return DateValue(parse_date(raw))
    elif field_type in (FieldType.JSON.value, FieldType.MEDIA.value):
        return JsonValue(parse_json(raw))
    elif field_type == FieldType.RELATION.value:
        raise ValueError("RELATION fields are stored as relation edges, not field values")
    raise ValueError(f"Unsupported field type: {field_type}")


def to_columns(value: TypedValue) -> Dict[str, Any]:
    """Storage columns for a typed value: the variant's column populated, all others null."""
    columns = {column: None for column in VALUE_COLUMNS}
    columns[value.column] = value.value
    return columns


def read_typed_value(row: FieldValue) -> Optional[TypedValue]:
    """Rebuild the typed variant from a stored row (first populated column wins)."""
    if row.value_string is not None:
        return TextValue(row.value_string)
    if row.value_number is not None:
        return NumberValue(row.value_number)
    if row.value_boolean is not None:
        return BoolValue(row.value_boolean)
    if row.value_date is not None:
        return DateValue(row.value_date)
    if row.value_json is not None:
        return JsonValue(row.value_json)
    return None


def plain_value(value: Optional[TypedValue]) -> Any:
    """JSON-friendly python value for API responses."""
    if value is None:
        return None
    if isinstance(value, DateValue):
        return value.value.isoformat()
    if isinstance(value, NumberValue) and value.value.is_integer():
        return int(value.value)
    return value.value


def render_text(value: Optional[TypedValue]) -> str:
    """Render a typed value as a string (used by denormalization)."""
    if value is None:
        return ""
    if isinstance(value, TextValue):
        return value.value
    if isinstance(value, NumberValue):
        number = value.value
        return str(int(number)) if number.is_integer() else repr(number)
    if isinstance(value, BoolValue):
        return "true" if value.value else "false"
    if isinstance(value, DateValue):
        return value.value.isoformat()
    if isinstance(value, JsonValue):
        return json.dumps(value.value, separators=(",", ":"), sort_keys=True)
    raise ValueError(f"Unsupported value variant: {type(value).__name__}")


def replace_values(db: Session, entry_id: str, writes: List[FieldValueWrite]) -> None:
    """
    Replace stored values for every field touched by `writes` (delete-then-insert).
    Does not commit; the caller owns the transaction.
    """
    if not writes:
        return
    field_ids = list({w.field_id for w in writes})
    db.query(FieldValue).filter(
        and_(
            FieldValue.entry_id == entry_id,
            FieldValue.field_id.in_(field_ids)
        )
    ).delete(synchronize_session=False)
    db.flush()

    for write in writes:
        db.add(FieldValue(entry_id=entry_id, field_id=write.field_id, **to_columns(write.value)))


def load_values(db: Session, entry_ids: Iterable[str], field_ids: Optional[Iterable[str]] = None) -> List[FieldValue]:
    entry_ids = list(entry_ids)
    if not entry_ids:
        return []
    query = db.query(FieldValue).filter(FieldValue.entry_id.in_(entry_ids))
    if field_ids is not None:
        query = query.filter(FieldValue.field_id.in_(list(field_ids)))
    return query.all()


def values_by_api_key(db: Session, entry_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """Decoded values per entry: {entry_id: {field_api_key: value}}."""
    entry_ids = list(entry_ids)
    result = {entry_id: {} for entry_id in entry_ids}
    if not entry_ids:
        return result

    rows = db.query(FieldValue, ContentField.api_key).join(
        ContentField, ContentField.id == FieldValue.field_id
    ).filter(FieldValue.entry_id.in_(entry_ids)).all()

    for row, api_key in rows:
        result[row.entry_id][api_key] = plain_value(read_typed_value(row))
    return result


def find_duplicate(
    db: Session,
    field: ContentField,
    value: TypedValue,
    exclude_entry_id: Optional[str] = None
) -> Optional[FieldValue]:
    """
    Another entry's row holding the same value for this field.
    Scalar columns compare in SQL; JSON values compare structurally in python.
    """
    query = db.query(FieldValue).filter(FieldValue.field_id == field.id)
    if exclude_entry_id:
        query = query.filter(FieldValue.entry_id != exclude_entry_id)

    if isinstance(value, JsonValue):
        for row in query.filter(FieldValue.value_json.isnot(None)).all():
            if row.value_json == value.value:
                return row
        return None

    column = getattr(FieldValue, value.column)
    return query.filter(column == value.value).first()
