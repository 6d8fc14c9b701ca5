"""Tests for auth permissions."""

from uuid import uuid4

import pytest

from edutrack.auth.permissions import (
    ROLE_HIERARCHY,
    UserRole,
    get_role_level,
    has_permission,
    is_admin,
    is_at_least_teacher,
)
from edutrack.auth.schemas import AuthenticatedUser


class TestUserRole:
    """Tests for UserRole enum."""

    def test_role_values(self) -> None:
        """Roles should have correct string values."""
        assert UserRole.USER.value == "user"
        assert UserRole.STUDENT.value == "student"
        assert UserRole.TEACHER.value == "teacher"
        assert UserRole.ADMIN.value == "admin"

    def test_all_roles_have_levels(self) -> None:
        """All UserRole members should have defined levels."""
        for role in UserRole:
            assert role in ROLE_HIERARCHY


class TestGetRoleLevel:
    """Tests for get_role_level function."""

    @pytest.mark.parametrize(
        "role,expected_level",
        [
            (UserRole.USER, 0),
            (UserRole.STUDENT, 1),
            ("teacher", 2),
            ("admin", 3),
        ],
    )
    def test_levels(self, role: UserRole | str, expected_level: int) -> None:
        """Enum members and their string values map to the same level."""
        assert get_role_level(role) == expected_level

    def test_invalid_role_returns_zero(self) -> None:
        """Unknown roles should return level 0."""
        assert get_role_level("superadmin") == 0


class TestHasPermission:
    """Tests for has_permission and its shortcuts."""

    def test_hierarchy(self) -> None:
        """Higher roles include the permissions of lower ones."""
        assert has_permission(UserRole.ADMIN, UserRole.TEACHER) is True
        assert has_permission(UserRole.TEACHER, UserRole.STUDENT) is True
        assert has_permission(UserRole.STUDENT, UserRole.TEACHER) is False
        assert has_permission("user", "student") is False

    def test_is_admin(self) -> None:
        assert is_admin(UserRole.ADMIN) is True
        assert is_admin(UserRole.TEACHER) is False

    def test_is_at_least_teacher(self) -> None:
        assert is_at_least_teacher(UserRole.TEACHER) is True
        assert is_at_least_teacher("admin") is True
        assert is_at_least_teacher(UserRole.STUDENT) is False


class TestAuthenticatedUser:
    """Tests for student visibility rules."""

    def test_student_sees_only_self(self) -> None:
        user = AuthenticatedUser(id=uuid4(), role=UserRole.STUDENT)
        assert user.can_view_student(user.id) is True
        assert user.can_view_student(uuid4()) is False

    def test_teacher_sees_any_student(self) -> None:
        user = AuthenticatedUser(id=uuid4(), role=UserRole.TEACHER)
        assert user.can_view_student(uuid4()) is True
