from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from edu_admin.database import get_db
from edu_admin.schemas.users import Token, LoginRequest, UserWithRole, RoleInDB
from edu_admin.models.users import User, Role
from edu_admin.services.auth import create_access_token, authenticate_user
from edu_admin.middleware.authentication import get_current_user, allow_admin

router = APIRouter()

@router.post("/auth/login", response_model=Token)
async def login_for_access_token(
    form_data: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Authenticate a user and return an access token.
    """
    user = await authenticate_user(form_data.email, form_data.password, db)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(
        data={"sub": str(user.id), "role": user.role.name, "company_id": user.company_id}
    )

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user_id": user.id,
        "role": user.role.name
    }

@router.get("/auth/me", response_model=UserWithRole)
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """
    Get information about the currently authenticated user.
    """
    return current_user

@router.get("/auth/roles", response_model=List[RoleInDB])
async def get_roles(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_admin)
):
    """
    List roles for user forms (admins only).
    """
    result = await db.execute(select(Role).order_by(Role.name))
    return result.scalars().all()
