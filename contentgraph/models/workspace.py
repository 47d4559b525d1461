from sqlalchemy import Column, String, DateTime, func
from sqlalchemy.orm import relationship
from contentgraph.core.database import Base, generate_id


class Workspace(Base):
    """Tenant root. Every content type, entry and relation edge is scoped to one workspace."""
    __tablename__ = "workspaces"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(100), nullable=False)
    slug = Column(String(100), nullable=False, unique=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    content_types = relationship("ContentType", back_populates="workspace", cascade="all, delete-orphan")
