"""Tests for the role tables and user normalization."""
import pytest

from elecciones.models import Role
from elecciones.models.user_model import User, _check_role_tables


@pytest.mark.parametrize(
    "role, requires_password, is_voter",
    [
        (Role.ESTUDIANTE, False, True),
        (Role.ADMIN, True, False),
        (Role.SUPERADMIN, True, False),
    ],
)
def test_role_tables(role, requires_password, is_voter):
    assert role.requires_password is requires_password
    assert role.is_voter is is_voter


def test_incomplete_role_table_is_rejected():
    with pytest.raises(RuntimeError, match="SuperAdmin"):
        _check_role_tables({Role.ESTUDIANTE: True, Role.ADMIN: False})


def test_email_is_lowercased():
    user = User(id="u1", organizationId="o", codigo="1", email="Ana@School.org")
    assert user.email == "ana@school.org"
    assert User(id="u2", organizationId="o", codigo="2").email is None
