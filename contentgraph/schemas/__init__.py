from contentgraph.schemas.cms import (
    FieldType,
    RelationKind,
    SummaryMode,
    ReadScope,
    ContentTypeCreate,
    ContentTypeUpdate,
    ContentFieldCreate,
    ContentFieldUpdate,
    ContentEntryCreate,
    ContentEntryUpdate,
    FieldValueInput,
)
