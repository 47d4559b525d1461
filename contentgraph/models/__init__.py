from contentgraph.models.workspace import Workspace
from contentgraph.models.content_type import ContentType
from contentgraph.models.content_field import ContentField, RelationConfig
from contentgraph.models.content_entry import ContentEntry
from contentgraph.models.field_value import FieldValue
from contentgraph.models.content_relation import ContentRelation, ContentRelationM2M
