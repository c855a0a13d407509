import pytest

from support_inbox.conversations.models import Role
from support_inbox.security import Permissions, hash_password, verify_password
from support_inbox.security.passwords import MIN_PASSWORD_LENGTH


@pytest.mark.parametrize(
    ("check", "allowed"),
    [
        (Permissions.can_view_conversation, {Role.ADMIN, Role.AGENT, Role.VIEWER}),
        (Permissions.can_reply, {Role.ADMIN, Role.AGENT}),
        (Permissions.can_update_status, {Role.ADMIN, Role.AGENT}),
        (Permissions.can_manage_tags, {Role.ADMIN, Role.AGENT}),
        (Permissions.can_assign, {Role.ADMIN}),
        (Permissions.can_manage_users, {Role.ADMIN}),
        (Permissions.can_view_audit_logs, {Role.ADMIN}),
    ],
)
def test_permission_matrix(check, allowed):
    assert {role for role in Role if check(role)} == allowed


def test_password_hashing_round_trip():
    hashed = hash_password("Secret123!")

    assert hashed != "Secret123!"
    assert verify_password("Secret123!", hashed)
    assert not verify_password("secret123!", hashed)
    assert not verify_password("Secret123!", "")


def test_short_password_is_rejected():
    with pytest.raises(ValueError):
        hash_password("x" * (MIN_PASSWORD_LENGTH - 1))
