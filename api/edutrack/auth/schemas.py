"""Authenticated principal extracted from an access token."""

from uuid import UUID

from pydantic import BaseModel, Field

from edutrack.auth.permissions import UserRole, is_at_least_teacher


class AuthenticatedUser(BaseModel):
    """Caller identity carried by a verified access token."""

    id: UUID = Field(..., description="User ID (token subject)")
    email: str = Field(default="", description="User email")
    role: UserRole = Field(default=UserRole.USER, description="User role")

    def can_view_student(self, student_id: UUID) -> bool:
        """Own data, or any student's data for teachers and admins."""
        return self.id == student_id or is_at_least_teacher(self.role)
