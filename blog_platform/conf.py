"""
Configuration settings for django-blog-platform.

Override these in your Django settings.py:

    BLOG_PLATFORM = {
        'POSTS_PER_PAGE': 10,
        'COMMENT_EDIT_WINDOW': timedelta(minutes=15),
        'NEWSLETTER_BATCH_SIZE': 50,
        ...
    }
"""
from datetime import timedelta

from django.conf import settings

DEFAULTS = {
    # Posts
    "POSTS_PER_PAGE": 10,
    "MAX_PAGE_SIZE": 100,
    "SLUG_MAX_LENGTH": 100,
    "EXCERPT_LENGTH": 160,
    "WORDS_PER_MINUTE": 200,

    # Premium posts render only this many characters of HTML for
    # viewers without access
    "PREMIUM_PREVIEW_LENGTH": 1000,

    # Comments
    "COMMENT_MAX_LENGTH": 5000,
    "COMMENT_EDIT_WINDOW": timedelta(minutes=15),
    "COMMENTS_PER_PAGE": 20,

    # View tracking
    "VIEW_DEDUP_WINDOW": timedelta(hours=1),
    "VIEW_HASH_SALT": "",

    # Newsletter
    "NEWSLETTER_BATCH_SIZE": 50,
    "NEWSLETTER_BATCH_DELAY": 1.0,

    # Email
    "SITE_NAME": "BlogPlatform",
    "SITE_URL": "http://localhost:8000",
    "EMAIL_FROM": "noreply@example.com",

    # Uploads
    "UPLOAD_PATH": "blog/uploads/%Y/%m/",
    "UPLOAD_MAX_SIZE_MB": 10,

    # Payments
    "PAYMENT_BACKEND": "blog_platform.payments.JSONPaymentBackend",
    "PAYMENT_WEBHOOK_SECRET": "",

    # Health check
    "HEALTH_CHECK_TIMEOUT": 5.0,
    "HEALTH_DEGRADED_LATENCY_MS": 1000,
}


class BlogPlatformSettings:
    """
    Lazy settings object that reads from Django settings.

    Access via: from blog_platform.conf import blog_settings
    """

    def __getattr__(self, name):
        if name not in DEFAULTS:
            raise AttributeError(f"Invalid blog_platform setting: {name}")

        user_settings = getattr(settings, "BLOG_PLATFORM", {})
        return user_settings.get(name, DEFAULTS[name])


blog_settings = BlogPlatformSettings()


def absolute_url(path):
    """Join a site-relative path onto SITE_URL."""
    return blog_settings.SITE_URL.rstrip("/") + "/" + path.lstrip("/")
