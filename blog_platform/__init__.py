"""
django-blog-platform - A Django publishing platform.

Features:
- Role-gated post visibility (draft, scheduled, published, archived)
- Premium posts behind a paid subscription paywall
- Two-level threaded comments with a fixed edit window
- Likes, bookmarks and per-hour view tracking
- Newsletter subscriptions with batched sending
- Content-addressed image uploads
"""

__version__ = "0.1.0"
