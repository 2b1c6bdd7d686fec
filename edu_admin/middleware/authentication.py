from typing import List, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from edu_admin.config import settings
from edu_admin.database import get_db
from edu_admin.models.users import User, ADMIN_ROLES, ROLE_SYSTEM_ADMIN

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Get the current authenticated user from the provided JWT token.

    Args:
        token: The JWT token
        db: Database session

    Returns:
        The authenticated user, with its role loaded

    Raises:
        HTTPException: If token is invalid, expired or the user is gone
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        # jose rejects expired tokens itself
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
        user_id = payload.get("sub")
        if user_id is None:
            raise credentials_exception
        user_id = int(user_id)
    except (JWTError, ValueError):
        raise credentials_exception

    result = await db.execute(
        select(User).options(selectinload(User.role)).where(User.id == user_id)
    )
    user = result.scalars().first()

    if user is None or not user.is_active:
        raise credentials_exception

    return user

async def validate_admin_access(user: User, db: AsyncSession, system_admin_only: bool = False) -> None:
    """
    Validate that a user has admin access.

    Args:
        user: The user to check
        db: Database session
        system_admin_only: Whether to only allow the system_admin role

    Raises:
        HTTPException: If user doesn't have required role
    """
    role_name = user.role.name if user.role else None

    if not role_name:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User role not found"
        )

    if system_admin_only and role_name != ROLE_SYSTEM_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This action requires system admin privileges"
        )

    if not system_admin_only and role_name not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This action requires admin privileges"
        )

def is_system_admin(user: User) -> bool:
    return bool(user.role) and user.role.name == ROLE_SYSTEM_ADMIN

def ensure_company_access(user: User, company_id: Optional[int]) -> None:
    """Entity admins only manage rows of their own company."""
    if is_system_admin(user):
        return
    if company_id is None or user.company_id != company_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to access this company"
        )

class RoleChecker:
    """
    Dependency that only lets through users holding one of the allowed roles.
    """
    def __init__(self, allowed_roles: List[str]):
        self.allowed_roles = allowed_roles

    async def __call__(self, user: User = Depends(get_current_user)) -> User:
        if not user.role or user.role.name not in self.allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions"
            )
        return user

# Shared dependency for the admin screens
allow_admin = RoleChecker(ADMIN_ROLES)
