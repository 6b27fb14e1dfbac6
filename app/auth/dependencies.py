from typing import Dict
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import Role, StudentProfile, TeacherProfile, User
from app.auth.permissions import default_permissions
from app.auth.schemas import CurrentUser
from app.auth.security import decode_access_token
from app.db.session import get_db


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login-oauth", auto_error=False)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Resolve the authenticated user, their profiles and their permissions from the access token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        raise credentials_exception

    try:
        payload = decode_access_token(token)
    except JWTError:
        raise credentials_exception

    user_id_str = payload.get("user_id") or payload.get("sub")
    if not user_id_str:
        raise credentials_exception
    try:
        user_id = UUID(user_id_str)
    except ValueError:
        raise credentials_exception

    user = await db.get(User, user_id)
    if not user or user.status != "ACTIVE":
        raise credentials_exception

    # Role row overrides the built-in defaults for that role name
    role_result = await db.execute(select(Role).where(Role.name == user.role))
    role = role_result.scalar_one_or_none()
    permissions: Dict[str, Dict[str, bool]] = default_permissions(user.role)
    if role and role.permissions:
        permissions = role.permissions  # type: ignore[assignment]

    teacher_id = (
        await db.execute(select(TeacherProfile.id).where(TeacherProfile.user_id == user.id))
    ).scalar_one_or_none()
    student_id = (
        await db.execute(select(StudentProfile.id).where(StudentProfile.user_id == user.id))
    ).scalar_one_or_none()

    return CurrentUser(
        id=user.id,
        full_name=user.full_name,
        role=user.role,
        permissions=permissions or {},
        teacher_id=teacher_id,
        student_id=student_id,
    )
