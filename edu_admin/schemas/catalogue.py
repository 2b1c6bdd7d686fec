from datetime import datetime
from typing import Optional
from pydantic import BaseModel, field_validator

from edu_admin.schemas.tenants import StatusEnum, clean_text


# Region / provider / subject share one shape
class CatalogueItemBase(BaseModel):
    name: str
    code: Optional[str] = None
    status: StatusEnum = StatusEnum.active

    class Config:
        use_enum_values = True

    @field_validator("name")
    @classmethod
    def name_required(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("code", mode="before")
    @classmethod
    def trim_code(cls, v):
        return clean_text(v)


class CatalogueItemCreate(CatalogueItemBase):
    pass


class CatalogueItemUpdate(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    status: Optional[StatusEnum] = None

    class Config:
        use_enum_values = True

    @field_validator("name", "code", mode="before")
    @classmethod
    def trim(cls, v):
        return clean_text(v)


class CatalogueItemInDB(CatalogueItemBase):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Program schemas
def validate_program_name(v):
    v = (v or "").strip()
    if len(v) < 2:
        raise ValueError("Name must be at least 2 characters")
    return v


def validate_program_code(v):
    v = (v or "").strip()
    if not v:
        raise ValueError("Code is required")
    return v


class ProgramBase(BaseModel):
    name: str
    code: str
    description: Optional[str] = None
    status: StatusEnum = StatusEnum.active

    class Config:
        use_enum_values = True

    @field_validator("name")
    @classmethod
    def name_length(cls, v):
        return validate_program_name(v)

    @field_validator("code")
    @classmethod
    def code_required(cls, v):
        return validate_program_code(v)

    @field_validator("description", mode="before")
    @classmethod
    def trim_description(cls, v):
        return clean_text(v)


class ProgramCreate(ProgramBase):
    pass


class ProgramUpdate(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    description: Optional[str] = None
    status: Optional[StatusEnum] = None

    class Config:
        use_enum_values = True

    @field_validator("name")
    @classmethod
    def name_length(cls, v):
        return None if v is None else validate_program_name(v)

    @field_validator("code")
    @classmethod
    def code_required(cls, v):
        return None if v is None else validate_program_code(v)

    @field_validator("description", mode="before")
    @classmethod
    def trim_description(cls, v):
        return clean_text(v)


class ProgramInDB(ProgramBase):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Data structure schemas
class DataStructureCreate(BaseModel):
    region_id: Optional[int] = None
    program_id: Optional[int] = None
    provider_id: Optional[int] = None
    subject_id: Optional[int] = None
    status: StatusEnum = StatusEnum.active

    class Config:
        use_enum_values = True

    @field_validator("region_id", "program_id", "provider_id", "subject_id", mode="before")
    @classmethod
    def blank_id(cls, v):
        return None if v == "" else v


class DataStructureUpdate(DataStructureCreate):
    status: Optional[StatusEnum] = None


class DataStructureInDB(BaseModel):
    id: int
    region_id: int
    program_id: int
    provider_id: int
    subject_id: int
    status: str
    region_name: str
    program_name: str
    provider_name: str
    subject_name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
