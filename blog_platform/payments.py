"""
Payment processor integration.

Billing lives at the processor; this module only keeps ``Subscription``
rows in step with the webhook events it sends. Decoding and signature
checks are delegated to a backend named by ``PAYMENT_BACKEND`` so the
processor SDK stays out of the core:

    BLOG_PLATFORM = {
        "PAYMENT_BACKEND": "myproject.billing.StripeBackend",
        "PAYMENT_WEBHOOK_SECRET": "whsec_...",
    }

A backend implements ``construct_event(payload, signature)`` and returns
a ``PaymentEvent`` whose ``data`` uses the keys documented on
``apply_event``.
"""
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone

from django.utils.module_loading import import_string

from .conf import blog_settings
from .exceptions import InvalidRequest
from .models import Subscription

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
INVOICE_PAID = "invoice.payment_succeeded"
INVOICE_FAILED = "invoice.payment_failed"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"

PAID_STATUSES = ("active", "trialing")


@dataclass
class PaymentEvent:
    type: str
    data: dict = field(default_factory=dict)


class JSONPaymentBackend:
    """
    Accepts events posted as ``{"type": ..., "data": {"object": {...}}}``.

    When ``PAYMENT_WEBHOOK_SECRET`` is set the signature header must be
    the hex HMAC-SHA256 of the raw body.
    """

    def __init__(self, secret=None):
        self.secret = blog_settings.PAYMENT_WEBHOOK_SECRET if secret is None else secret

    def sign(self, payload):
        if isinstance(payload, str):
            payload = payload.encode()
        return hmac.new(self.secret.encode(), payload, hashlib.sha256).hexdigest()

    def construct_event(self, payload, signature):
        if self.secret:
            if not signature or not hmac.compare_digest(self.sign(payload), signature):
                raise InvalidRequest("Webhook signature verification failed")
        try:
            body = json.loads(payload)
            return PaymentEvent(type=body["type"], data=body.get("data", {}).get("object", {}))
        except (ValueError, KeyError, TypeError, AttributeError):
            raise InvalidRequest("Malformed webhook payload")


def load_backend():
    return import_string(blog_settings.PAYMENT_BACKEND)()


def _period_end(data):
    value = data.get("current_period_end")
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)


def apply_event(event):
    """
    Update subscriptions for one processor event.

    Event data keys: ``customer``, ``subscription`` (processor subscription
    id), ``price_id``, ``current_period_end`` (unix seconds), ``status``
    and, on checkout, ``mode`` and ``metadata.account_id``.

    Returns the number of subscriptions changed.
    """
    data = event.data
    handler = EVENT_HANDLERS.get(event.type)
    if handler is None:
        logger.info("Unhandled payment event type: %s", event.type)
        return 0
    return handler(data)


def _checkout_completed(data):
    if data.get("mode") != "subscription" or not data.get("subscription"):
        return 0

    fields = {
        "tier": Subscription.Tier.PAID,
        "processor_subscription_id": data["subscription"],
        "price_id": data.get("price_id") or "",
        "current_period_end": _period_end(data),
    }
    customer_id = data.get("customer") or ""
    updated = 0
    if customer_id:
        updated = Subscription.objects.filter(customer_id=customer_id).update(**fields)
    if updated:
        return updated

    account_id = (data.get("metadata") or {}).get("account_id")
    if not account_id:
        logger.warning("Checkout for unknown customer %s has no account id", customer_id)
        return 0
    Subscription.objects.update_or_create(
        account_id=account_id,
        defaults=dict(fields, customer_id=customer_id),
    )
    logger.info("Account %s upgraded to paid", account_id)
    return 1


def _invoice_paid(data):
    subscription_id = data.get("subscription")
    if not subscription_id:
        return 0
    return Subscription.objects.filter(processor_subscription_id=subscription_id).update(
        price_id=data.get("price_id") or "",
        current_period_end=_period_end(data),
    )


def _invoice_failed(data):
    logger.warning("Payment failed for customer %s", data.get("customer"))
    return 0


def _subscription_updated(data):
    tier = Subscription.Tier.PAID if data.get("status") in PAID_STATUSES else Subscription.Tier.FREE
    return Subscription.objects.filter(processor_subscription_id=data.get("id")).update(
        tier=tier,
        price_id=data.get("price_id") or "",
        current_period_end=_period_end(data),
    )


def _subscription_deleted(data):
    return Subscription.objects.filter(processor_subscription_id=data.get("id")).update(
        tier=Subscription.Tier.FREE,
        processor_subscription_id="",
        price_id="",
        current_period_end=None,
    )


EVENT_HANDLERS = {
    CHECKOUT_COMPLETED: _checkout_completed,
    INVOICE_PAID: _invoice_paid,
    INVOICE_FAILED: _invoice_failed,
    SUBSCRIPTION_UPDATED: _subscription_updated,
    SUBSCRIPTION_DELETED: _subscription_deleted,
}
