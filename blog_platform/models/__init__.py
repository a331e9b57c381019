"""
Models for django-blog-platform.

All models are importable from blog_platform.models:

    from blog_platform.models import Account, Post, Comment, Newsletter
"""
from .accounts import Account, Subscription
from .posts import Category, Tag, Post, PostView, Like, Bookmark
from .comments import Comment, CommentLike
from .media import MediaLibrary
from .newsletter import Newsletter, NewsletterSubscriber

__all__ = [
    # Accounts
    "Account",
    "Subscription",
    # Posts
    "Category",
    "Tag",
    "Post",
    "PostView",
    "Like",
    "Bookmark",
    # Comments
    "Comment",
    "CommentLike",
    # Media
    "MediaLibrary",
    # Newsletter
    "Newsletter",
    "NewsletterSubscriber",
]
