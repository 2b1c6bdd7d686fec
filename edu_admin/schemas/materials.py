from datetime import datetime
from typing import Optional
from pydantic import BaseModel, field_validator
from enum import Enum

from edu_admin.schemas.tenants import StatusEnum, clean_text


class MaterialTypeEnum(str, Enum):
    video = "video"
    ebook = "ebook"
    audio = "audio"
    assignment = "assignment"


def blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class MaterialCreate(BaseModel):
    """Form fields of a material upload, validated after multipart parsing."""
    title: str
    description: Optional[str] = None
    data_structure_id: int
    unit_id: Optional[int] = None
    topic_id: Optional[int] = None
    subtopic_id: Optional[int] = None
    type: MaterialTypeEnum
    status: StatusEnum = StatusEnum.active

    class Config:
        use_enum_values = True

    @field_validator("title")
    @classmethod
    def title_length(cls, v):
        v = (v or "").strip()
        if len(v) < 2:
            raise ValueError("Title must be at least 2 characters")
        return v

    @field_validator("description", mode="before")
    @classmethod
    def trim(cls, v):
        return clean_text(v)

    @field_validator("unit_id", "topic_id", "subtopic_id", mode="before")
    @classmethod
    def blank_id(cls, v):
        return blank_to_none(v)


class MaterialUpdate(MaterialCreate):
    pass


class MaterialInDB(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    data_structure_id: int
    unit_id: Optional[int] = None
    topic_id: Optional[int] = None
    subtopic_id: Optional[int] = None
    type: str
    status: str
    file_path: Optional[str] = None
    file_url: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    formatted_size: str
    thumbnail_url: Optional[str] = None
    thumbnail_public_url: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
