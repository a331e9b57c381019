"""
Account roles and their ordering.

Roles form a strict hierarchy; every permission check that asks "at least
editor?" goes through ``has_role`` so the ordering lives in one place.
"""
from django.db import models


class Role(models.TextChoices):
    READER = "READER", "Reader"
    AUTHOR = "AUTHOR", "Author"
    EDITOR = "EDITOR", "Editor"
    ADMIN = "ADMIN", "Admin"

    @property
    def rank(self):
        return ROLE_RANK[self]


ROLE_RANK = {
    Role.READER: 0,
    Role.AUTHOR: 1,
    Role.EDITOR: 2,
    Role.ADMIN: 3,
}


def has_role(role, required):
    """Return True if ``role`` is ``required`` or ranks above it."""
    if not role:
        return False
    return Role(role).rank >= Role(required).rank
