from sqlalchemy import Column, String, Boolean, ForeignKey, DateTime, UniqueConstraint, func
from sqlalchemy.orm import relationship
from contentgraph.core.database import Base, JSONType, generate_id


class ContentEntry(Base):
    """
    One record of a content type.
    Typed attribute values live in field_values; relations live in the edge tables.
    """
    __tablename__ = "content_entries"

    id = Column(String(36), primary_key=True, default=generate_id)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    content_type_id = Column(String(36), ForeignKey("content_types.id", ondelete="CASCADE"), nullable=False, index=True)

    slug = Column(String(190), nullable=True)

    # SEO
    seo_title = Column(String(255), nullable=True)
    meta_description = Column(String(160), nullable=True)
    keywords = Column(JSONType, nullable=False, default=list)

    # Publishing
    is_published = Column(Boolean, default=False, nullable=False, index=True)
    published_at = Column(DateTime(timezone=True), nullable=True)

    # Metadata
    created_by_id = Column(String(36), nullable=True)
    updated_by_id = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    content_type = relationship("ContentType", back_populates="entries")
    values = relationship("FieldValue", back_populates="entry", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("workspace_id", "slug", name="uq_content_entry_workspace_slug"),
    )
