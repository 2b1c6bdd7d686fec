from sqlalchemy import Column, Integer, String, ForeignKey, Text, Boolean, DateTime, Date
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from edu_admin.database import Base

ROLE_SYSTEM_ADMIN = "system_admin"
ROLE_ENTITY_ADMIN = "entity_admin"
ROLE_TEACHER = "teacher"
ROLE_STUDENT = "student"

ADMIN_ROLES = [ROLE_SYSTEM_ADMIN, ROLE_ENTITY_ADMIN]

# Roles
class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)
    description = Column(Text)

    # Relationships
    users = relationship("User", back_populates="role")

# Users
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="SET NULL"))
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    hashed_password = Column(Text, nullable=False)
    phone = Column(String(50))
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    role = relationship("Role", back_populates="users", lazy="selectin")
    student = relationship("Student", back_populates="user", uselist=False)

# Student model
class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="SET NULL"))
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="SET NULL"))
    student_code = Column(String(100), unique=True, nullable=False)
    enrollment_number = Column(String(100), unique=True, nullable=False)
    grade_level = Column(String(50))
    section = Column(String(50))
    admission_date = Column(Date)
    parent_name = Column(String(255))
    parent_contact = Column(String(50))
    parent_email = Column(String(255))
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="student")
    company = relationship("Company")
    school = relationship("School", back_populates="students")
    branch = relationship("Branch", back_populates="students")
    licenses = relationship("StudentLicense", back_populates="student")
