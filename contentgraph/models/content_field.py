from sqlalchemy import Column, Integer, Float, String, Boolean, ForeignKey, DateTime, UniqueConstraint, func
from sqlalchemy.orm import relationship
from contentgraph.core.database import Base, JSONType, generate_id


class ContentField(Base):
    """
    One attribute of a content type schema.

    `type` is one of FieldType (TEXT, RICH_TEXT, NUMBER, BOOLEAN, DATE, JSON, SLUG, RELATION, MEDIA).
    `config` carries type-specific settings:
        RELATION: {"minCount": 1, "maxCount": 3, "denorm": {"targetFieldApiKey": "authorNames", "from": "seoTitle", "joinWith": ", "}}
        MEDIA:    {"acceptMimeTypes": ["image/png"], "maxFiles": 4, "minFiles": 1, "maxSizeMB": 5}
    """
    __tablename__ = "content_fields"

    id = Column(String(36), primary_key=True, default=generate_id)
    content_type_id = Column(String(36), ForeignKey("content_types.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    api_key = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False)

    is_required = Column(Boolean, default=False, nullable=False)
    is_unique = Column(Boolean, default=False, nullable=False)
    position = Column(Integer, default=0, nullable=False)

    # Bounds
    min_length = Column(Integer, nullable=True)
    max_length = Column(Integer, nullable=True)
    min_number = Column(Float, nullable=True)
    max_number = Column(Float, nullable=True)

    # SLUG fields: apiKey of the TEXT-like field to derive the slug from
    slug_from = Column(String(100), nullable=True)

    config = Column(JSONType, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    content_type = relationship("ContentType", back_populates="fields", foreign_keys=[content_type_id])
    relation = relationship(
        "RelationConfig",
        back_populates="field",
        uselist=False,
        cascade="all, delete-orphan",
        foreign_keys="RelationConfig.field_id",
    )

    __table_args__ = (
        UniqueConstraint("content_type_id", "api_key", name="uq_content_field_type_api_key"),
    )


class RelationConfig(Base):
    """1:1 extension of a RELATION field: cardinality kind and target content type."""
    __tablename__ = "relation_configs"

    id = Column(String(36), primary_key=True, default=generate_id)
    field_id = Column(String(36), ForeignKey("content_fields.id", ondelete="CASCADE"), nullable=False, unique=True)
    kind = Column(String(20), nullable=False)  # ONE_TO_ONE | ONE_TO_MANY | MANY_TO_ONE | MANY_TO_MANY
    target_content_type_id = Column(String(36), ForeignKey("content_types.id", ondelete="CASCADE"), nullable=False)

    field = relationship("ContentField", back_populates="relation", foreign_keys=[field_id])
    target_content_type = relationship("ContentType", foreign_keys=[target_content_type_id])
