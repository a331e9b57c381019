"""
Newsletter subscription and delivery.

Delivery walks the verified subscribers in fixed-size batches. Each
batch is sent concurrently, one worker per recipient, and the sender
waits for the whole batch before pausing and starting the next. Failed
recipients are counted and reported, never retried.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from .conf import absolute_url, blog_settings
from .email import newsletter_email_html, send_email, verification_email_html
from .exceptions import InvalidRequest, NoRecipients, NotFound
from .models import NewsletterSubscriber

logger = logging.getLogger(__name__)

MAX_REPORTED_ERRORS = 5


@dataclass
class SendResult:
    total: int = 0
    success_count: int = 0
    error_count: int = 0
    errors: list = field(default_factory=list)
    batch_sizes: list = field(default_factory=list)

    def record_failure(self, recipient, exc):
        self.error_count += 1
        self.errors.append(str(exc) or exc.__class__.__name__)
        logger.warning("Newsletter delivery to %s failed: %s", recipient, exc)

    def as_dict(self):
        data = {
            "message": f"Newsletter sent to {self.success_count} subscribers",
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "totalSubscribers": self.total,
            "batches": self.batch_sizes,
        }
        if self.error_count:
            data["errors"] = self.errors[:MAX_REPORTED_ERRORS]
        return data


class NewsletterSender:
    """
    Sends a newsletter to every verified subscriber.

    ``deliver`` has the signature of ``send_email(to, subject, html)``;
    it counts as a success when it returns without raising, which means
    the mail backend accepted the message, not that it reached an inbox.
    """

    def __init__(self, deliver=None, batch_size=None, batch_delay=None, sleep=time.sleep):
        self.deliver = deliver or send_email
        self.batch_size = batch_size or blog_settings.NEWSLETTER_BATCH_SIZE
        self.batch_delay = (
            blog_settings.NEWSLETTER_BATCH_DELAY if batch_delay is None else batch_delay
        )
        self.sleep = sleep

    def send_test(self, newsletter, test_email):
        """Send a ``[TEST]`` copy to one address; the newsletter stays a draft."""
        html = newsletter_email_html(newsletter.subject, newsletter.content_html, "test")
        self.deliver(test_email, f"[TEST] {newsletter.subject}", html)
        logger.info("Test copy of newsletter %s sent to %s", newsletter.pk, test_email)

    def send(self, newsletter):
        """
        Deliver ``newsletter`` to all verified subscribers.

        Raises NewsletterAlreadySent before any delivery if it has been
        sent, and NoRecipients if nobody is verified.
        """
        newsletter.ensure_draft()

        recipients = list(
            NewsletterSubscriber.objects.verified()
            .order_by("pk")
            .values_list("email", "unsubscribe_token")
        )
        if not recipients:
            raise NoRecipients()

        result = SendResult(total=len(recipients))
        for start in range(0, len(recipients), self.batch_size):
            batch = recipients[start:start + self.batch_size]
            self._send_batch(newsletter, batch, result)
            if start + self.batch_size < len(recipients):
                self.sleep(self.batch_delay)

        newsletter.mark_sent(result.success_count)
        logger.info(
            "Newsletter %s sent: %s delivered, %s failed",
            newsletter.pk,
            result.success_count,
            result.error_count,
        )
        return result

    def _send_batch(self, newsletter, batch, result):
        result.batch_sizes.append(len(batch))
        with ThreadPoolExecutor(max_workers=len(batch)) as pool:
            futures = {
                pool.submit(
                    self.deliver,
                    email,
                    newsletter.subject,
                    newsletter_email_html(newsletter.subject, newsletter.content_html, token),
                ): email
                for email, token in batch
            }
            for future, email in futures.items():
                try:
                    future.result()
                except Exception as exc:
                    result.record_failure(email, exc)
                else:
                    result.success_count += 1


def subscribe(email, name=""):
    """
    Sign ``email`` up and send a verification link.

    Returns "already_subscribed", "verification_resent" or "created".
    """
    email = NewsletterSubscriber.normalize_email(email)
    if not email:
        raise InvalidRequest("Invalid email address")

    subscriber = NewsletterSubscriber.objects.filter(email=email).first()
    if subscriber and subscriber.is_verified:
        return "already_subscribed"

    if subscriber:
        outcome = "verification_resent"
        token = subscriber.refresh_verify_token()
    else:
        outcome = "created"
        subscriber = NewsletterSubscriber(email=email)
        token = subscriber.refresh_verify_token()

    verify_url = absolute_url(f"/api/newsletter/verify?token={token}")
    send_email(email, "Confirm your subscription", verification_email_html(name, verify_url))
    return outcome


def verify(token):
    """Mark the subscriber holding ``token`` as verified."""
    subscriber = NewsletterSubscriber.objects.filter(verify_token=token).first() if token else None
    if subscriber is None:
        raise NotFound("Invalid or expired verification token", code="invalid_token")
    subscriber.verify()
    return subscriber


def unsubscribe(token=None, email=None):
    """Remove a subscriber by unsubscribe token or email address."""
    subscriber = None
    if token:
        subscriber = NewsletterSubscriber.objects.filter(unsubscribe_token=token).first()
    elif email:
        subscriber = NewsletterSubscriber.objects.filter(
            email=NewsletterSubscriber.normalize_email(email)
        ).first()
    if subscriber is None:
        raise NotFound("Subscription not found")
    subscriber.delete()
    logger.info("Newsletter subscriber %s removed", subscriber.email)
