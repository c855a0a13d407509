"""Role-based permission predicates."""

from __future__ import annotations

from typing import Callable

from ..conversations.models import Role

Permission = Callable[[Role], bool]

_STAFF = frozenset({Role.ADMIN, Role.AGENT})


class Permissions:
    """What each role may do in the inbox."""

    @staticmethod
    def can_view_conversation(role: Role) -> bool:
        return role in Role

    @staticmethod
    def can_reply(role: Role) -> bool:
        return role in _STAFF

    @staticmethod
    def can_update_status(role: Role) -> bool:
        return role in _STAFF

    @staticmethod
    def can_manage_tags(role: Role) -> bool:
        return role in _STAFF

    @staticmethod
    def can_assign(role: Role) -> bool:
        return role is Role.ADMIN

    @staticmethod
    def can_manage_users(role: Role) -> bool:
        return role is Role.ADMIN

    @staticmethod
    def can_view_audit_logs(role: Role) -> bool:
        return role is Role.ADMIN


__all__ = ["Permission", "Permissions"]
