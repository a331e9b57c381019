"""
Shared fixtures for django-blog-platform tests.
"""
from datetime import timedelta

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone

from blog_platform.models import Post
from blog_platform.roles import Role

User = get_user_model()


def doc(*paragraphs):
    """Build an editor document with one paragraph per string."""
    return {
        "type": "doc",
        "content": [
            {"type": "paragraph", "content": [{"type": "text", "text": text}]}
            for text in paragraphs
        ],
    }


@pytest.fixture
def make_account(db):
    """Factory creating accounts with a given role."""
    counter = {"n": 0}

    def make(role=Role.READER, **kwargs):
        counter["n"] += 1
        username = kwargs.pop("username", f"{role.lower()}{counter['n']}")
        return User.objects.create_user(
            username=username,
            email=kwargs.pop("email", f"{username}@example.com"),
            password="testpass123",
            role=role,
            **kwargs,
        )

    return make


@pytest.fixture
def reader(make_account):
    return make_account(Role.READER)


@pytest.fixture
def author(make_account):
    return make_account(Role.AUTHOR)


@pytest.fixture
def other_author(make_account):
    return make_account(Role.AUTHOR)


@pytest.fixture
def editor(make_account):
    return make_account(Role.EDITOR)


@pytest.fixture
def admin_account(make_account):
    return make_account(Role.ADMIN)


@pytest.fixture
def make_post(db, author):
    """Factory creating posts; published an hour ago unless told otherwise."""

    def make(**kwargs):
        kwargs.setdefault("title", "Test Post")
        kwargs.setdefault("content", doc("This is a test post body."))
        kwargs.setdefault("author", author)
        kwargs.setdefault("status", Post.Status.PUBLISHED)
        if kwargs["status"] == Post.Status.PUBLISHED:
            kwargs.setdefault("published_at", timezone.now() - timedelta(hours=1))
        return Post.objects.create(**kwargs)

    return make


@pytest.fixture
def post(make_post):
    return make_post()


@pytest.fixture
def draft(make_post):
    return make_post(title="Draft Post", status=Post.Status.DRAFT)
