from sqlalchemy import Column, String, Text, Float, Boolean, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from contentgraph.core.database import Base, JSONType, generate_id


class FieldValue(Base):
    """
    Typed scalar for one (entry, field) pair.
    Exactly one value_* column is populated, selected by the field type.
    RELATION fields never have rows here.
    """
    __tablename__ = "field_values"

    id = Column(String(36), primary_key=True, default=generate_id)
    entry_id = Column(String(36), ForeignKey("content_entries.id", ondelete="CASCADE"), nullable=False, index=True)
    field_id = Column(String(36), ForeignKey("content_fields.id", ondelete="CASCADE"), nullable=False, index=True)

    value_string = Column(Text, nullable=True)
    value_number = Column(Float, nullable=True)
    value_boolean = Column(Boolean, nullable=True)
    value_date = Column(DateTime(timezone=True), nullable=True)
    value_json = Column(JSONType, nullable=True)

    entry = relationship("ContentEntry", back_populates="values")
    field = relationship("ContentField")

    __table_args__ = (
        UniqueConstraint("entry_id", "field_id", name="uq_field_value_entry_field"),
    )
