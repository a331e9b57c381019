"""
Account and Subscription models for django-blog-platform.
"""
import logging

from django.contrib.auth.models import AbstractUser
from django.db import DatabaseError, models
from django.utils import timezone

from ..roles import Role, has_role

logger = logging.getLogger(__name__)


class Account(AbstractUser):
    """
    Platform account.

    Set ``AUTH_USER_MODEL = "blog_platform.Account"`` to use it.
    """

    role = models.CharField(
        max_length=10,
        choices=Role.choices,
        default=Role.READER,
        db_index=True,
    )
    bio = models.TextField(blank=True)
    avatar = models.URLField(blank=True)

    class Meta:
        ordering = ["-date_joined"]

    def __str__(self):
        return self.get_full_name() or self.username

    @property
    def display_name(self):
        return self.get_full_name() or self.username

    def has_role(self, required):
        return has_role(self.role, required)

    def public_dict(self):
        return {"id": self.pk, "name": self.display_name, "avatar": self.avatar or None}


class Subscription(models.Model):
    """
    Paid-content subscription for an account.

    Billing itself happens at the payment processor; this row mirrors the
    processor's state as delivered by webhooks.
    """

    class Tier(models.TextChoices):
        FREE = "FREE", "Free"
        PAID = "PAID", "Paid"

    account = models.OneToOneField(
        "blog_platform.Account",
        on_delete=models.CASCADE,
        related_name="subscription",
    )
    tier = models.CharField(max_length=10, choices=Tier.choices, default=Tier.FREE)
    current_period_end = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Paid access lapses after this time",
    )

    # Payment processor references
    customer_id = models.CharField(max_length=255, blank=True, db_index=True)
    processor_subscription_id = models.CharField(max_length=255, blank=True, db_index=True)
    price_id = models.CharField(max_length=255, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.account} ({self.tier})"

    def is_active(self, now=None):
        """Paid tier with an expiry still in the future."""
        if self.tier != self.Tier.PAID or self.current_period_end is None:
            return False
        return self.current_period_end > (now or timezone.now())

    def status_dict(self, now=None):
        return {
            "tier": self.tier,
            "isActive": self.is_active(now),
            "isPaid": self.tier == self.Tier.PAID,
            "expiresAt": self.current_period_end.isoformat() if self.current_period_end else None,
            "hasCustomer": bool(self.customer_id),
        }

    @classmethod
    def has_premium_access(cls, account_id, now=None):
        """
        Return True if the account may read premium posts in full.

        Lookup failures deny access.
        """
        if account_id is None:
            return False
        try:
            subscription = cls.objects.filter(account_id=account_id).first()
        except DatabaseError:
            logger.exception("Subscription lookup failed for account %s", account_id)
            return False
        if subscription is None:
            return False
        return subscription.is_active(now)
