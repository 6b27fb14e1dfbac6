from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated user for RBAC checks.
    teacher_id / student_id are the profile ids when the user owns such a profile.
    """

    id: UUID
    full_name: str = ""
    role: str
    permissions: Dict[str, Dict[str, bool]]
    teacher_id: Optional[UUID] = None
    student_id: Optional[UUID] = None


class UserSummary(BaseModel):
    id: UUID
    full_name: str
    email: str

    class Config:
        from_attributes = True
