"""
Comment models for django-blog-platform.
"""
import html
import logging

import bleach
from django.conf import settings
from django.db import IntegrityError, models, transaction
from django.utils import timezone

from ..conf import blog_settings
from ..exceptions import (
    Conflict,
    EditWindowExpired,
    Forbidden,
    InvalidRequest,
    MaxDepthExceeded,
    NotCommentAuthor,
    NotFound,
)
from ..roles import Role

logger = logging.getLogger(__name__)


def clean_comment_body(body):
    """
    Strip markup and surrounding whitespace; reject empty or oversized bodies.

    Comments are stored as plain text, so the entities bleach escapes in
    the text it keeps are decoded again before measuring.
    """
    body = html.unescape(bleach.clean(body or "", tags=set(), strip=True)).strip()
    if not body:
        raise InvalidRequest("Comment cannot be empty")
    if len(body) > blog_settings.COMMENT_MAX_LENGTH:
        raise InvalidRequest(
            f"Comment must be at most {blog_settings.COMMENT_MAX_LENGTH} characters"
        )
    return body


class Comment(models.Model):
    """
    Comment on a post.

    Threads are two levels deep: a top-level comment and its replies.
    Deleting a comment deletes its replies.
    """

    post = models.ForeignKey(
        "blog_platform.Post",
        on_delete=models.CASCADE,
        related_name="comments",
    )
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="comments",
    )
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.CASCADE,
        related_name="replies",
    )
    content = models.TextField(max_length=blog_settings.COMMENT_MAX_LENGTH)
    is_edited = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["post", "parent", "-created_at"]),
        ]

    def __str__(self):
        return f"Comment by {self.author} on {self.post}"

    @property
    def preview(self):
        """Return truncated content for admin display."""
        if len(self.content) > 100:
            return self.content[:100] + "..."
        return self.content

    @property
    def is_reply(self):
        return self.parent_id is not None

    @classmethod
    def create_for_post(cls, post, author, content, parent_id=None):
        """
        Add a comment or a reply to a published post.

        A reply's parent must exist, belong to the same post and be a
        top-level comment.
        """
        if post.status != post.Status.PUBLISHED:
            raise InvalidRequest("Cannot comment on unpublished posts")

        content = clean_comment_body(content)

        parent = None
        if parent_id:
            parent = cls.objects.filter(pk=parent_id).first()
            if parent is None:
                raise NotFound("Parent comment not found")
            if parent.post_id != post.pk:
                raise InvalidRequest(
                    "Parent comment does not belong to this post",
                    code="parent_mismatch",
                )
            if parent.parent_id is not None:
                raise MaxDepthExceeded()

        return cls.objects.create(post=post, author=author, parent=parent, content=content)

    def edit_deadline(self):
        return self.created_at + blog_settings.COMMENT_EDIT_WINDOW

    def can_edit(self, now=None):
        return (now or timezone.now()) - self.created_at < blog_settings.COMMENT_EDIT_WINDOW

    def edit(self, editor, content, now=None):
        """Replace the content; only the author may, and only inside the edit window."""
        if self.author_id != editor.pk:
            raise NotCommentAuthor()
        if not self.can_edit(now):
            raise EditWindowExpired()
        self.content = clean_comment_body(content)
        self.is_edited = True
        self.save(update_fields=["content", "is_edited", "updated_at"])

    def can_delete(self, account):
        return (
            account.pk == self.author_id
            or account.pk == self.post.author_id
            or account.has_role(Role.ADMIN)
        )

    def delete_by(self, account):
        """Delete the comment and its replies if ``account`` is allowed to."""
        if not self.can_delete(account):
            raise Forbidden("You don't have permission to delete this comment")
        logger.info("Comment %s deleted by account %s", self.pk, account.pk)
        return self.delete()


class CommentLike(models.Model):
    """A like on a comment; one per account and comment."""

    account = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="comment_likes",
    )
    comment = models.ForeignKey(Comment, on_delete=models.CASCADE, related_name="likes")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["account", "comment"],
                name="blog_platform_commentlike_unique",
            ),
        ]

    def __str__(self):
        return f"{self.account} likes comment {self.comment_id}"

    @classmethod
    def add(cls, comment, account):
        try:
            with transaction.atomic():
                cls.objects.create(comment=comment, account=account)
        except IntegrityError:
            raise Conflict("You have already liked this comment", code="duplicate")
        return comment.likes.count()

    @classmethod
    def remove(cls, comment, account):
        deleted, _ = cls.objects.filter(comment=comment, account=account).delete()
        if not deleted:
            raise Conflict("You have not liked this comment", code="missing")
        return comment.likes.count()
