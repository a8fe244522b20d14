"""
Unit tests for role-based access dependencies.

- get_current_admin_user - admin role only
- get_current_editor_user - editor or admin
- dependency modules import without the route package
"""

import os
import subprocess
import sys
from pathlib import Path

import pytest
from uuid import uuid4

from fastapi import HTTPException, status

from api.deps_admin import get_current_admin_user, get_current_editor_user
from infrastructure.database.models import User
from infrastructure.database.models.user import UserRole


def _user(role: UserRole) -> User:
    return User(
        id=str(uuid4()),
        email=f"{role.value}@example.com",
        password_hash="hashed_password",
        name=f"{role.value.title()} User",
        role=role.value,
        is_active=True,
    )


@pytest.fixture
def regular_user():
    return _user(UserRole.USER)


@pytest.fixture
def editor_user():
    return _user(UserRole.EDITOR)


@pytest.fixture
def admin_user():
    return _user(UserRole.ADMIN)


class TestGetCurrentAdminUser:
    """Tests for get_current_admin_user dependency."""

    @pytest.mark.asyncio
    async def test_admin_user_access_granted(self, admin_user):
        result = await get_current_admin_user(current_user=admin_user)
        assert result == admin_user

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fixture_name", ["regular_user", "editor_user"])
    async def test_non_admin_access_denied(self, fixture_name, request):
        user = request.getfixturevalue(fixture_name)

        with pytest.raises(HTTPException) as exc_info:
            await get_current_admin_user(current_user=user)

        assert exc_info.value.status_code == status.HTTP_403_FORBIDDEN
        assert "admin" in exc_info.value.detail.lower()


class TestGetCurrentEditorUser:
    """Tests for get_current_editor_user dependency."""

    @pytest.mark.asyncio
    async def test_editor_access_granted(self, editor_user):
        result = await get_current_editor_user(current_user=editor_user)
        assert result == editor_user

    @pytest.mark.asyncio
    async def test_admin_counts_as_editor(self, admin_user):
        result = await get_current_editor_user(current_user=admin_user)
        assert result == admin_user

    @pytest.mark.asyncio
    async def test_regular_user_access_denied(self, regular_user):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_editor_user(current_user=regular_user)

        assert exc_info.value.status_code == status.HTTP_403_FORBIDDEN
        assert exc_info.value.detail == "Editor access required"


class TestRoleValidation:
    """Role properties on the user model."""

    def test_is_admin(self, admin_user, editor_user, regular_user):
        assert admin_user.is_admin is True
        assert editor_user.is_admin is False
        assert regular_user.is_admin is False

    def test_is_editor(self, admin_user, editor_user, regular_user):
        assert admin_user.is_editor is True
        assert editor_user.is_editor is True
        assert regular_user.is_editor is False


class TestImportOrder:
    """Dependency modules load on their own, before any router."""

    @pytest.mark.parametrize("module", ["api.deps_admin", "api.dependencies", "api.deps_auth"])
    def test_imports_in_fresh_interpreter(self, module):
        backend_dir = Path(__file__).resolve().parents[2]
        env = {**os.environ, "PYTHONPATH": str(backend_dir)}
        code = (
            f"import sys, {module}; "
            "assert 'api.routes' not in sys.modules, sorted(m for m in sys.modules if m.startswith('api.'))"
        )

        result = subprocess.run(
            [sys.executable, "-c", code], cwd=backend_dir, env=env, capture_output=True, text=True
        )

        assert result.returncode == 0, result.stderr
