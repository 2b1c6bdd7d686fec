from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr


# Role schemas
class RoleInDB(BaseModel):
    id: int
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


# User schemas
class UserBase(BaseModel):
    full_name: str
    email: EmailStr
    phone: Optional[str] = None


class UserInDB(UserBase):
    id: int
    company_id: Optional[int] = None
    role_id: int
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserWithRole(UserInDB):
    role: RoleInDB

    class Config:
        from_attributes = True


# Authentication schemas
class Token(BaseModel):
    access_token: str
    token_type: str
    user_id: int
    role: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
