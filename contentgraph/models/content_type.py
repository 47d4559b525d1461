from sqlalchemy import Column, String, Text, Boolean, ForeignKey, DateTime, UniqueConstraint, func
from sqlalchemy.orm import relationship
from contentgraph.core.database import Base, generate_id


class ContentType(Base):
    """
    Defines the schema for a content type (e.g., Article, Author, Product).
    Field definitions live in content_fields, ordered by position.
    """
    __tablename__ = "content_types"

    id = Column(String(36), primary_key=True, default=generate_id)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(100), nullable=False)  # "Article", "Author"
    api_key = Column(String(100), nullable=False)  # "article", "author"
    description = Column(Text, nullable=True)

    # SEO attributes (seo_title, meta_description, keywords) are only kept on entries when enabled
    seo_enabled = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    workspace = relationship("Workspace", back_populates="content_types")
    fields = relationship(
        "ContentField",
        back_populates="content_type",
        cascade="all, delete-orphan",
        order_by="ContentField.position",
        foreign_keys="ContentField.content_type_id",
    )
    entries = relationship("ContentEntry", back_populates="content_type", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("workspace_id", "api_key", name="uq_content_type_workspace_api_key"),
    )
