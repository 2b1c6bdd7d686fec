from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, BigInteger
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from edu_admin.database import Base
from edu_admin.models.tenants import STATUS_ACTIVE

# Learning material model
class Material(Base):
    __tablename__ = "materials"

    id = Column(Integer, primary_key=True, index=True)
    data_structure_id = Column(Integer, ForeignKey("data_structures.id", ondelete="CASCADE"), nullable=False)
    unit_id = Column(Integer)
    topic_id = Column(Integer)
    subtopic_id = Column(Integer)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    type = Column(String(20), nullable=False)
    status = Column(String(20), default=STATUS_ACTIVE, nullable=False)
    file_path = Column(Text)
    file_url = Column(Text)
    mime_type = Column(String(255))
    size = Column(BigInteger, default=0)
    thumbnail_url = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    data_structure = relationship("DataStructure", back_populates="materials")
