from typing import List, Optional
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from datetime import date, datetime

from edu_admin.schemas.tenants import clean_text


class StudentCreate(BaseModel):
    email: Optional[EmailStr] = None
    name: Optional[str] = None
    password: Optional[str] = None
    phone: Optional[str] = None
    company_id: int
    school_id: Optional[int] = None
    branch_id: Optional[int] = None
    student_code: Optional[str] = None
    enrollment_number: Optional[str] = None
    grade_level: Optional[str] = None
    section: Optional[str] = None
    admission_date: Optional[date] = None
    parent_name: Optional[str] = None
    parent_contact: Optional[str] = None
    parent_email: Optional[EmailStr] = None
    is_active: bool = True

    @field_validator(
        "email", "name", "phone", "student_code", "enrollment_number", "grade_level",
        "section", "parent_name", "parent_contact", "parent_email",
        mode="before",
    )
    @classmethod
    def trim(cls, v):
        return clean_text(v)

    @field_validator("admission_date", mode="before")
    @classmethod
    def blank_date(cls, v):
        return None if v == "" else v

    @model_validator(mode="after")
    def required_fields(self):
        if not self.email or not self.name or not self.password:
            raise ValueError("Email, name, and password are required")
        if not self.student_code or not self.enrollment_number:
            raise ValueError("Student code and enrollment number are required")
        if len(self.password) < 8:
            raise ValueError("Password must be at least 8 characters")
        return self


class StudentUpdate(BaseModel):
    name: Optional[str] = None
    password: Optional[str] = Field(None, min_length=8)
    phone: Optional[str] = None
    school_id: Optional[int] = None
    branch_id: Optional[int] = None
    grade_level: Optional[str] = None
    section: Optional[str] = None
    parent_name: Optional[str] = None
    parent_contact: Optional[str] = None
    parent_email: Optional[EmailStr] = None
    is_active: Optional[bool] = None

    @field_validator(
        "name", "phone", "grade_level", "section", "parent_name", "parent_contact", "parent_email",
        mode="before",
    )
    @classmethod
    def trim(cls, v):
        return clean_text(v)


class StudentResponse(BaseModel):
    id: int
    user_id: int
    name: str
    email: str
    phone: Optional[str] = None
    company_id: int
    school_id: Optional[int] = None
    school_name: Optional[str] = None
    branch_id: Optional[int] = None
    branch_name: Optional[str] = None
    student_code: str
    enrollment_number: str
    grade_level: Optional[str] = None
    section: Optional[str] = None
    admission_date: Optional[date] = None
    parent_name: Optional[str] = None
    parent_contact: Optional[str] = None
    parent_email: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StudentListResponse(BaseModel):
    total: int
    items: List[StudentResponse]
