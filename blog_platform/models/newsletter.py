"""
Newsletter models for django-blog-platform.
"""
import secrets

from django.conf import settings
from django.db import models
from django.utils import timezone

from .. import richtext
from ..exceptions import NewsletterAlreadySent


def make_token():
    return secrets.token_urlsafe(24)


class NewsletterSubscriberQuerySet(models.QuerySet):

    def verified(self):
        return self.filter(is_verified=True)


class NewsletterSubscriber(models.Model):
    """
    Email address signed up for the newsletter.

    Independent of accounts; a subscriber may or may not be linked to one.
    """

    email = models.EmailField(unique=True)
    is_verified = models.BooleanField(default=False, db_index=True)
    verify_token = models.CharField(max_length=64, unique=True, null=True, blank=True)
    unsubscribe_token = models.CharField(max_length=64, unique=True, default=make_token)
    account = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="newsletter_subscriptions",
    )
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    objects = NewsletterSubscriberQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.email

    @staticmethod
    def normalize_email(email):
        return (email or "").strip().lower()

    def refresh_verify_token(self):
        self.verify_token = make_token()
        if self.pk is None:
            self.save()
        else:
            self.save(update_fields=["verify_token"])
        return self.verify_token

    def verify(self):
        self.is_verified = True
        self.verify_token = None
        self.save(update_fields=["is_verified", "verify_token"])

    def as_dict(self):
        return {
            "id": self.pk,
            "email": self.email,
            "isVerified": self.is_verified,
            "createdAt": self.created_at.isoformat(),
        }


class Newsletter(models.Model):
    """
    Newsletter issue.

    Draft until sent; once ``sent_at`` is set it can be neither edited
    nor sent again.
    """

    subject = models.CharField(max_length=200)
    content = models.JSONField(default=dict, blank=True)
    content_html = models.TextField(blank=True)
    sent_at = models.DateTimeField(null=True, blank=True, db_index=True)
    recipient_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.subject

    def save(self, *args, **kwargs):
        self.content_html = richtext.document_to_html(self.content)
        super().save(*args, **kwargs)

    @property
    def is_sent(self):
        return self.sent_at is not None

    def ensure_draft(self, message=None):
        if self.is_sent:
            raise NewsletterAlreadySent(message)

    def mark_sent(self, recipient_count, now=None):
        self.sent_at = now or timezone.now()
        self.recipient_count = recipient_count
        self.save(update_fields=["sent_at", "recipient_count", "updated_at"])

    def as_dict(self):
        return {
            "id": self.pk,
            "subject": self.subject,
            "content": self.content,
            "contentHtml": self.content_html,
            "sentAt": self.sent_at.isoformat() if self.sent_at else None,
            "recipientCount": self.recipient_count,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
