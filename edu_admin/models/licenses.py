from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Date, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from edu_admin.database import Base
from edu_admin.models.tenants import STATUS_ACTIVE

ACTION_EXPAND = "EXPAND"
ACTION_EXTEND = "EXTEND"
ACTION_RENEW = "RENEW"

STUDENT_LICENSE_PENDING = "ASSIGNED_PENDING_ACTIVATION"
STUDENT_LICENSE_ACTIVATED = "CONSUMED_ACTIVATED"
STUDENT_LICENSE_REVOKED = "REVOKED"

# License model
class License(Base):
    __tablename__ = "licenses"
    __table_args__ = (
        CheckConstraint("total_quantity > 0", name="license_quantity_positive"),
        CheckConstraint("end_date >= start_date", name="license_valid_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    data_structure_id = Column(Integer, ForeignKey("data_structures.id", ondelete="CASCADE"), nullable=False)
    total_quantity = Column(Integer, nullable=False)
    used_quantity = Column(Integer, default=0, nullable=False)
    total_assigned = Column(Integer, default=0, nullable=False)
    total_consumed = Column(Integer, default=0, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String(20), default=STATUS_ACTIVE, nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    company = relationship("Company", back_populates="licenses", lazy="selectin")
    data_structure = relationship("DataStructure", lazy="selectin")
    actions = relationship("LicenseAction", back_populates="license", cascade="all, delete-orphan")
    student_licenses = relationship("StudentLicense", back_populates="license", cascade="all, delete-orphan")

# Audit trail of EXPAND / EXTEND / RENEW operations
class LicenseAction(Base):
    __tablename__ = "license_actions"
    __table_args__ = (
        CheckConstraint("action_type IN ('EXPAND', 'EXTEND', 'RENEW')", name="license_action_type"),
        CheckConstraint("change_quantity IS NULL OR change_quantity > 0", name="license_action_quantity"),
        CheckConstraint("action_type != 'EXPAND' OR change_quantity IS NOT NULL", name="expand_has_quantity"),
        CheckConstraint("action_type NOT IN ('EXTEND', 'RENEW') OR new_end_date IS NOT NULL", name="extend_renew_has_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    license_id = Column(Integer, ForeignKey("licenses.id", ondelete="CASCADE"), nullable=False, index=True)
    action_type = Column(String(10), nullable=False)
    change_quantity = Column(Integer)
    new_end_date = Column(Date)
    notes = Column(Text)
    performed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    license = relationship("License", back_populates="actions")

# Seat of a license held by a student
class StudentLicense(Base):
    __tablename__ = "student_licenses"

    id = Column(Integer, primary_key=True, index=True)
    license_id = Column(Integer, ForeignKey("licenses.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(40), default=STUDENT_LICENSE_PENDING, nullable=False)
    assigned_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    assigned_at = Column(DateTime(timezone=True), server_default=func.now())
    activated_on = Column(DateTime(timezone=True))
    valid_from_snapshot = Column(Date)
    valid_to_snapshot = Column(Date)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    license = relationship("License", back_populates="student_licenses")
    student = relationship("Student", back_populates="licenses")
