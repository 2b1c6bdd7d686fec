from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from edu_admin.database import Base

STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"

# Company model
class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    region_id = Column(Integer, ForeignKey("regions.id", ondelete="SET NULL"))
    name = Column(String(255), unique=True, nullable=False)
    code = Column(String(50))
    status = Column(String(20), default=STATUS_ACTIVE, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    region = relationship("Region")
    schools = relationship("School", back_populates="company")
    licenses = relationship("License", back_populates="company")

# School model
class School(Base):
    __tablename__ = "schools"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    code = Column(String(50))
    status = Column(String(20), default=STATUS_ACTIVE, nullable=False)
    address = Column(Text)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    company = relationship("Company", back_populates="schools")
    branches = relationship("Branch", back_populates="school")
    students = relationship("Student", back_populates="school")

# Branch model
class Branch(Base):
    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, index=True)
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    # NOT NULL in the schema, blank codes are stored as ""
    code = Column(String(50), nullable=False, default="")
    status = Column(String(20), default=STATUS_ACTIVE, nullable=False)
    address = Column(Text)
    notes = Column(Text)
    logo = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    school = relationship("School", back_populates="branches")
    additional = relationship(
        "BranchAdditional",
        back_populates="branch",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    students = relationship("Student", back_populates="branch")

# Extra branch details, one row per branch
class BranchAdditional(Base):
    __tablename__ = "branches_additional"

    id = Column(Integer, primary_key=True, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), unique=True, nullable=False)
    student_capacity = Column(Integer)
    current_students = Column(Integer)
    student_count = Column(Integer)
    teachers_count = Column(Integer)
    active_teachers_count = Column(Integer)
    branch_head_name = Column(String(255))
    branch_head_email = Column(String(255))
    branch_head_phone = Column(String(50))
    building_name = Column(String(255))
    floor_details = Column(String(255))
    opening_time = Column(String(10))
    closing_time = Column(String(10))
    working_days = Column(JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    branch = relationship("Branch", back_populates="additional")
