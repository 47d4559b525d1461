from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, UniqueConstraint, Index, func
from contentgraph.core.database import Base, generate_id


class ContentRelation(Base):
    """
    Ordered edge for ONE_TO_ONE / ONE_TO_MANY / MANY_TO_ONE relation fields.
    `position` orders targets within a (field_id, from_entry_id) group.
    """
    __tablename__ = "content_relations"

    id = Column(String(36), primary_key=True, default=generate_id)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False)
    field_id = Column(String(36), ForeignKey("content_fields.id", ondelete="CASCADE"), nullable=False)
    from_entry_id = Column(String(36), ForeignKey("content_entries.id", ondelete="CASCADE"), nullable=False)
    to_entry_id = Column(String(36), ForeignKey("content_entries.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_content_relations_from", "workspace_id", "field_id", "from_entry_id"),
        Index("ix_content_relations_to", "workspace_id", "to_entry_id"),
    )


class ContentRelationM2M(Base):
    """Many-to-many edge. One row per (relation_field_id, from_entry_id, to_entry_id)."""
    __tablename__ = "content_relations_m2m"

    id = Column(String(36), primary_key=True, default=generate_id)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False)
    relation_field_id = Column(String(36), ForeignKey("content_fields.id", ondelete="CASCADE"), nullable=False)
    from_entry_id = Column(String(36), ForeignKey("content_entries.id", ondelete="CASCADE"), nullable=False)
    to_entry_id = Column(String(36), ForeignKey("content_entries.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("relation_field_id", "from_entry_id", "to_entry_id", name="uq_m2m_rel_triple"),
        Index("ix_content_relations_m2m_to", "workspace_id", "to_entry_id"),
    )
