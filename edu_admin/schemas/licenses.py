from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, field_validator, model_validator
from enum import Enum

from edu_admin.schemas.tenants import StatusEnum, clean_text


class LicenseActionType(str, Enum):
    EXPAND = "EXPAND"
    EXTEND = "EXTEND"
    RENEW = "RENEW"


def check_period(start_date, end_date):
    if start_date and end_date and end_date < start_date:
        raise ValueError("End date must be after or equal to start date")


class LicenseCreate(BaseModel):
    company_id: int
    data_structure_id: int
    total_quantity: int
    start_date: date
    end_date: date
    status: StatusEnum = StatusEnum.active
    notes: Optional[str] = None

    class Config:
        use_enum_values = True

    @field_validator("total_quantity")
    @classmethod
    def quantity_positive(cls, v):
        if v < 1:
            raise ValueError("Quantity must be greater than 0")
        return v

    @field_validator("notes", mode="before")
    @classmethod
    def trim_notes(cls, v):
        return clean_text(v)

    @model_validator(mode="after")
    def valid_period(self):
        check_period(self.start_date, self.end_date)
        return self


class LicenseUpdate(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None

    @field_validator("notes", mode="before")
    @classmethod
    def trim_notes(cls, v):
        return clean_text(v)

    @model_validator(mode="after")
    def valid_period(self):
        check_period(self.start_date, self.end_date)
        return self


class LicenseInDB(BaseModel):
    id: int
    company_id: int
    company_name: str
    data_structure_id: int
    region_name: str
    program_name: str
    provider_name: str
    subject_name: str
    total_quantity: int
    used_quantity: int
    total_assigned: int
    total_consumed: int
    remaining_quantity: int
    start_date: date
    end_date: date
    status: str
    notes: Optional[str] = None
    is_expired: bool
    is_expiring_soon: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CompanyLicenses(BaseModel):
    company_id: int
    company_name: str
    license_count: int
    total_quantity: int
    total_assigned: int
    total_consumed: int
    licenses: List[LicenseInDB]


class LicenseActionCreate(BaseModel):
    action_type: LicenseActionType
    additional_quantity: Optional[int] = None
    new_total_quantity: Optional[int] = None
    new_start_date: Optional[date] = None
    new_end_date: Optional[date] = None
    notes: Optional[str] = None

    class Config:
        use_enum_values = True

    @field_validator("notes", mode="before")
    @classmethod
    def trim_notes(cls, v):
        return clean_text(v)


class LicenseActionInDB(BaseModel):
    id: int
    license_id: int
    action_type: str
    change_quantity: Optional[int] = None
    new_end_date: Optional[date] = None
    notes: Optional[str] = None
    performed_by: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LicenseActionResult(BaseModel):
    action: LicenseActionInDB
    license: LicenseInDB
    detail: str


class StudentLicenseAssign(BaseModel):
    student_ids: List[int]

    @field_validator("student_ids")
    @classmethod
    def not_empty(cls, v):
        if not v:
            raise ValueError("Select at least one student")
        return list(dict.fromkeys(v))


class StudentLicenseInDB(BaseModel):
    id: int
    license_id: int
    student_id: int
    status: str
    assigned_by: Optional[int] = None
    assigned_at: Optional[datetime] = None
    activated_on: Optional[datetime] = None
    valid_from_snapshot: Optional[date] = None
    valid_to_snapshot: Optional[date] = None

    class Config:
        from_attributes = True


class StudentLicenseAssignResult(BaseModel):
    assigned: List[StudentLicenseInDB]
    skipped: List[int]
    detail: str
