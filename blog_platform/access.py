"""
Who may read what.

Every read decision takes an explicit ``ViewerContext`` built once per
request, so the rules below are plain functions that can be tested
without a request or a session.
"""
from dataclasses import dataclass
from typing import Optional

from .conf import blog_settings
from .models import Subscription
from .roles import Role, has_role


@dataclass(frozen=True)
class ViewerContext:
    """Identity and role of whoever is making the request."""

    user_id: Optional[int] = None
    role: Optional[Role] = None

    @classmethod
    def from_user(cls, user):
        if user is None or not user.is_authenticated:
            return ANONYMOUS
        return cls(user_id=user.pk, role=Role(user.role))

    @classmethod
    def from_request(cls, request):
        return cls.from_user(getattr(request, "user", None))

    @property
    def is_anonymous(self):
        return self.user_id is None

    def has_role(self, required):
        return has_role(self.role, required)

    def owns(self, author_id):
        return self.user_id is not None and self.user_id == author_id


ANONYMOUS = ViewerContext()


def can_read_post(viewer, post, now=None):
    """
    Decide whether ``viewer`` may open ``post`` at all.

    Editors and admins read everything and authors read their own posts
    in any status. Everyone else only sees posts that are published with
    a publication time that has passed.
    """
    if viewer.has_role(Role.EDITOR):
        return True
    if viewer.owns(post.author_id):
        return True
    return post.is_live(now)


def has_full_access(viewer, post, now=None):
    """
    Decide whether a readable post is rendered in full.

    Non-premium posts always are. Premium posts need the author, an
    editor/admin, or an active paid subscription.
    """
    if not post.is_premium:
        return True
    if viewer.is_anonymous:
        return False
    if viewer.owns(post.author_id) or viewer.has_role(Role.EDITOR):
        return True
    return Subscription.has_premium_access(viewer.user_id, now)


def render_for(viewer, post, now=None):
    """
    Return ``(has_access, html)`` for a post the viewer may read.

    Without access only a prefix of the rendered body is returned.
    """
    if has_full_access(viewer, post, now):
        return True, post.content_html
    return False, post.content_html[:blog_settings.PREMIUM_PREVIEW_LENGTH]
