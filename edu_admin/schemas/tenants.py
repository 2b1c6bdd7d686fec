from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, EmailStr, field_validator, model_validator
from enum import Enum


class StatusEnum(str, Enum):
    active = "active"
    inactive = "inactive"


def clean_text(value):
    """Trim strings; blank strings become None."""
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


# Company schemas
class CompanyBase(BaseModel):
    name: str
    code: Optional[str] = None
    region_id: Optional[int] = None
    status: StatusEnum = StatusEnum.active

    class Config:
        use_enum_values = True

    @field_validator("name")
    @classmethod
    def name_required(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("Company name is required")
        return v

    @field_validator("code", mode="before")
    @classmethod
    def trim_code(cls, v):
        return clean_text(v)


class CompanyCreate(CompanyBase):
    pass


class CompanyUpdate(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    region_id: Optional[int] = None
    status: Optional[StatusEnum] = None

    class Config:
        use_enum_values = True

    @field_validator("name", "code", mode="before")
    @classmethod
    def trim(cls, v):
        return clean_text(v)


class CompanyInDB(CompanyBase):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# School schemas
class SchoolBase(BaseModel):
    name: str
    code: Optional[str] = None
    company_id: int
    status: StatusEnum = StatusEnum.active
    address: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        use_enum_values = True

    @field_validator("name")
    @classmethod
    def name_required(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("School name is required")
        return v

    @field_validator("code", "address", "notes", mode="before")
    @classmethod
    def trim(cls, v):
        return clean_text(v)


class SchoolCreate(SchoolBase):
    pass


class SchoolUpdate(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    company_id: Optional[int] = None
    status: Optional[StatusEnum] = None
    address: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        use_enum_values = True

    @field_validator("name", "code", "address", "notes", mode="before")
    @classmethod
    def trim(cls, v):
        return clean_text(v)


class SchoolInDB(SchoolBase):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Branch schemas
BRANCH_ADDITIONAL_FIELDS = [
    "student_capacity",
    "current_students",
    "student_count",
    "teachers_count",
    "active_teachers_count",
    "branch_head_name",
    "branch_head_email",
    "branch_head_phone",
    "building_name",
    "floor_details",
    "opening_time",
    "closing_time",
    "working_days",
]


class BranchAdditionalFields(BaseModel):
    student_capacity: Optional[int] = None
    current_students: Optional[int] = None
    student_count: Optional[int] = None
    teachers_count: Optional[int] = None
    active_teachers_count: Optional[int] = None
    branch_head_name: Optional[str] = None
    branch_head_email: Optional[EmailStr] = None
    branch_head_phone: Optional[str] = None
    building_name: Optional[str] = None
    floor_details: Optional[str] = None
    opening_time: Optional[str] = None
    closing_time: Optional[str] = None
    working_days: Optional[List[str]] = None

    class Config:
        use_enum_values = True

    @field_validator(
        "branch_head_name", "branch_head_email", "branch_head_phone",
        "building_name", "floor_details", "opening_time", "closing_time",
        mode="before",
    )
    @classmethod
    def trim(cls, v):
        return clean_text(v)

    @field_validator(
        "student_capacity", "current_students", "student_count",
        "teachers_count", "active_teachers_count",
        mode="before",
    )
    @classmethod
    def blank_number(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("working_days", mode="before")
    @classmethod
    def empty_list(cls, v):
        if isinstance(v, list) and not v:
            return None
        return v


class BranchCreate(BranchAdditionalFields):
    name: Optional[str] = None
    code: Optional[str] = None
    company_id: Optional[int] = None
    school_id: Optional[int] = None
    status: StatusEnum = StatusEnum.active
    address: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("name", "address", "notes", mode="before")
    @classmethod
    def trim_branch_text(cls, v):
        return clean_text(v)

    @field_validator("code", mode="before")
    @classmethod
    def code_not_null(cls, v):
        # Column is NOT NULL, blank codes are stored as ""
        return v.strip() if isinstance(v, str) else ""

    @model_validator(mode="after")
    def required_fields(self):
        if not self.name:
            raise ValueError("Branch name is required")
        if not self.company_id:
            raise ValueError("Company is required")
        if not self.school_id:
            raise ValueError("School is required")
        return self

    def branch_data(self):
        return self.model_dump(
            include={"name", "code", "school_id", "status", "address", "notes"}
        )

    def additional_data(self):
        return self.model_dump(include=set(BRANCH_ADDITIONAL_FIELDS))


class BranchUpdate(BranchCreate):
    pass


class BranchAdditionalInDB(BranchAdditionalFields):
    id: int
    branch_id: int

    class Config:
        from_attributes = True


class BranchInDB(BaseModel):
    id: int
    name: str
    code: str
    school_id: int
    status: str
    address: Optional[str] = None
    notes: Optional[str] = None
    logo: Optional[str] = None
    logo_url: Optional[str] = None
    school_name: Optional[str] = None
    company_id: Optional[int] = None
    company_name: Optional[str] = None
    additional: Optional[BranchAdditionalInDB] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BulkDeleteResponse(BaseModel):
    deleted: int
    detail: str
