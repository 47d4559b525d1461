from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any, Union
from datetime import datetime
from enum import Enum
import re


API_KEY_PATTERN = re.compile(r'^[a-zA-Z][a-zA-Z0-9_]*$')


# =============================================================================
# Enums
# =============================================================================

class FieldType(str, Enum):
    TEXT = "TEXT"
    RICH_TEXT = "RICH_TEXT"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"
    JSON = "JSON"
    SLUG = "SLUG"
    RELATION = "RELATION"
    MEDIA = "MEDIA"


class RelationKind(str, Enum):
    ONE_TO_ONE = "ONE_TO_ONE"
    ONE_TO_MANY = "ONE_TO_MANY"
    MANY_TO_ONE = "MANY_TO_ONE"
    MANY_TO_MANY = "MANY_TO_MANY"

    @property
    def is_single(self) -> bool:
        """ONE_TO_ONE and MANY_TO_ONE hold at most one target per source entry."""
        return self in (RelationKind.ONE_TO_ONE, RelationKind.MANY_TO_ONE)

    @property
    def is_m2m(self) -> bool:
        return self is RelationKind.MANY_TO_MANY


class SummaryMode(str, Enum):
    BASIC = "basic"
    FULL = "full"


class ReadScope(str, Enum):
    PUBLIC = "public"
    ADMIN = "admin"


def _check_api_key(v):
    if v is not None and not API_KEY_PATTERN.match(v):
        raise ValueError('apiKey must start with a letter and contain only letters, numbers, or underscore')
    return v


# =============================================================================
# Content Type Schemas
# =============================================================================

class ContentTypeBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    api_key: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    seo_enabled: bool = True

    @field_validator('api_key')
    @classmethod
    def validate_api_key(cls, v):
        return _check_api_key(v)


class ContentTypeCreate(ContentTypeBase):
    pass


class ContentTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    api_key: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    seo_enabled: Optional[bool] = None

    @field_validator('api_key')
    @classmethod
    def validate_api_key(cls, v):
        return _check_api_key(v)


class ContentTypeResponse(ContentTypeBase):
    id: str
    workspace_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# =============================================================================
# Content Field Schemas
# =============================================================================

class RelationConfigIn(BaseModel):
    kind: RelationKind
    target_content_type_id: str


class RelationConfigResponse(RelationConfigIn):
    id: str
    field_id: str

    class Config:
        from_attributes = True


class ContentFieldBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    api_key: str = Field(..., min_length=1, max_length=100)
    type: FieldType
    is_required: bool = False
    is_unique: bool = False
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_number: Optional[float] = None
    max_number: Optional[float] = None
    slug_from: Optional[str] = None
    config: Optional[Dict[str, Any]] = None  # type-specific settings

    @field_validator('api_key')
    @classmethod
    def validate_api_key(cls, v):
        return _check_api_key(v)


class ContentFieldCreate(ContentFieldBase):
    relation: Optional[RelationConfigIn] = None


class ContentFieldUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    api_key: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[FieldType] = None
    is_required: Optional[bool] = None
    is_unique: Optional[bool] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_number: Optional[float] = None
    max_number: Optional[float] = None
    slug_from: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    relation: Optional[RelationConfigIn] = None

    @field_validator('api_key')
    @classmethod
    def validate_api_key(cls, v):
        return _check_api_key(v)


class ContentFieldResponse(ContentFieldBase):
    id: str
    content_type_id: str
    position: int
    relation: Optional[RelationConfigResponse] = None

    class Config:
        from_attributes = True


class FieldPosition(BaseModel):
    id: str
    position: int


class FieldReorderRequest(BaseModel):
    items: List[FieldPosition]


# =============================================================================
# Content Entry Schemas
# =============================================================================

class FieldValueInput(BaseModel):
    """One `{api_key, value}` pair of an entry payload."""
    api_key: str
    value: Any = None


class ContentEntryBase(BaseModel):
    slug: Optional[str] = None
    seo_title: Optional[str] = None
    meta_description: Optional[str] = None
    keywords: Optional[Union[List[str], str]] = None  # list or "a,b,c"
    is_published: Optional[bool] = None
    published_at: Optional[datetime] = None


class ContentEntryCreate(ContentEntryBase):
    values: List[FieldValueInput] = []


class ContentEntryUpdate(ContentEntryBase):
    values: Optional[List[FieldValueInput]] = None


class ContentEntryResponse(BaseModel):
    id: str
    workspace_id: str
    content_type_id: str
    slug: Optional[str] = None
    seo_title: Optional[str] = None
    meta_description: Optional[str] = None
    keywords: List[str] = []
    is_published: bool = False
    published_at: Optional[datetime] = None
    created_by_id: Optional[str] = None
    updated_by_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    values: Dict[str, Any] = {}
    relations: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


class ContentEntryListResponse(BaseModel):
    """Paginated list of content entries."""
    items: List[ContentEntryResponse]
    total: int
    page: int
    page_size: int
    pages: int


# =============================================================================
# Relation Edge Schemas
# =============================================================================

class RelationAppend(BaseModel):
    field_id: str
    from_entry_id: str
    to_entry_id: str


class RelationTargets(BaseModel):
    field_id: str
    from_entry_id: str
    to_entry_ids: List[str] = []


class RelationReorder(BaseModel):
    field_id: str
    from_entry_id: str
    ordered_to_entry_ids: List[str]


class RelationEdgeResponse(BaseModel):
    id: Optional[str] = None
    from_entry_id: Optional[str] = None
    to_entry_id: Optional[str] = None
    position: int = 0

    class Config:
        from_attributes = True


class RelationEdgeListResponse(BaseModel):
    rows: List[RelationEdgeResponse]
    total: int
    page: int
    page_size: int
