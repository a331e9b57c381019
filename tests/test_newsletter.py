"""
Tests for newsletter subscription and batched sending.
"""
import threading

import pytest
from django.core import mail
from django.utils import timezone

from blog_platform import newsletter
from blog_platform.exceptions import NewsletterAlreadySent, NoRecipients, NotFound
from blog_platform.models import Newsletter, NewsletterSubscriber

from .conftest import doc


@pytest.fixture
def issue(db):
    return Newsletter.objects.create(subject="Monthly digest", content=doc("News of the month"))


def make_subscribers(count, verified=True):
    NewsletterSubscriber.objects.bulk_create([
        NewsletterSubscriber(
            email=f"reader{i}@example.com",
            is_verified=verified,
            unsubscribe_token=f"token-{verified}-{i}",
        )
        for i in range(count)
    ])


class RecordingDeliver:
    """Stands in for send_email; fails for addresses in ``failing``."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent = []
        self.lock = threading.Lock()

    def __call__(self, to, subject, html):
        if to in self.failing:
            raise ConnectionError(f"rejected {to}")
        with self.lock:
            self.sent.append((to, subject, html))


class TestNewsletterSender:

    def test_batches_of_fifty(self, issue):
        make_subscribers(120)
        deliver = RecordingDeliver()
        sleeps = []
        sender = newsletter.NewsletterSender(deliver=deliver, batch_size=50, sleep=sleeps.append)

        result = sender.send(issue)

        assert result.batch_sizes == [50, 50, 20]
        assert result.success_count + result.error_count == 120
        assert result.success_count == 120
        assert len(deliver.sent) == 120
        assert len(sleeps) == 2

        issue.refresh_from_db()
        assert issue.is_sent
        assert issue.recipient_count == 120

    def test_failures_do_not_abort_the_batch(self, issue):
        make_subscribers(10)
        failing = {"reader3@example.com", "reader7@example.com"}
        sender = newsletter.NewsletterSender(deliver=RecordingDeliver(failing), sleep=lambda _: None)

        result = sender.send(issue)

        assert result.success_count == 8
        assert result.error_count == 2
        assert sorted(result.errors) == sorted(f"rejected {email}" for email in failing)
        issue.refresh_from_db()
        assert issue.recipient_count == 8

    def test_reports_at_most_five_errors(self, issue):
        make_subscribers(7)
        everyone = {f"reader{i}@example.com" for i in range(7)}
        sender = newsletter.NewsletterSender(deliver=RecordingDeliver(everyone), sleep=lambda _: None)

        data = sender.send(issue).as_dict()

        assert data["errorCount"] == 7
        assert len(data["errors"]) == 5

    def test_second_send_is_rejected_without_sending(self, issue):
        make_subscribers(3)
        issue.mark_sent(3, now=timezone.now())
        mail.outbox.clear()

        with pytest.raises(NewsletterAlreadySent):
            newsletter.NewsletterSender().send(issue)
        assert mail.outbox == []

    def test_no_verified_subscribers(self, issue):
        make_subscribers(4, verified=False)
        with pytest.raises(NoRecipients):
            newsletter.NewsletterSender().send(issue)
        issue.refresh_from_db()
        assert not issue.is_sent

    def test_sends_through_django_mail(self, issue):
        make_subscribers(2)
        newsletter.NewsletterSender().send(issue)

        assert len(mail.outbox) == 2
        message = mail.outbox[0]
        assert message.subject == "Monthly digest"
        html = message.alternatives[0][0]
        assert "<p>News of the month</p>" in html
        assert "https://blog.example.com/api/newsletter/unsubscribe?token=token-True-" in html

    def test_test_send_does_not_mark_sent(self, issue):
        make_subscribers(5)
        newsletter.NewsletterSender().send_test(issue, "editor@example.com")

        assert len(mail.outbox) == 1
        assert mail.outbox[0].subject == "[TEST] Monthly digest"
        assert mail.outbox[0].to == ["editor@example.com"]
        issue.refresh_from_db()
        assert not issue.is_sent


class TestSubscription:

    def test_subscribe_creates_and_sends_verification(self, db):
        assert newsletter.subscribe("  New@Example.com ", "Sam") == "created"

        subscriber = NewsletterSubscriber.objects.get()
        assert subscriber.email == "new@example.com"
        assert not subscriber.is_verified
        assert subscriber.verify_token
        assert len(mail.outbox) == 1
        assert subscriber.verify_token in mail.outbox[0].alternatives[0][0]

    def test_resubscribe_unverified_refreshes_token(self, db):
        newsletter.subscribe("new@example.com")
        first_token = NewsletterSubscriber.objects.get().verify_token

        assert newsletter.subscribe("new@example.com") == "verification_resent"
        assert NewsletterSubscriber.objects.get().verify_token != first_token
        assert len(mail.outbox) == 2

    def test_already_verified(self, db):
        newsletter.subscribe("new@example.com")
        newsletter.verify(NewsletterSubscriber.objects.get().verify_token)

        assert newsletter.subscribe("new@example.com") == "already_subscribed"
        assert len(mail.outbox) == 1

    def test_verify(self, db):
        newsletter.subscribe("new@example.com")
        subscriber = newsletter.verify(NewsletterSubscriber.objects.get().verify_token)
        assert subscriber.is_verified
        assert subscriber.verify_token is None

    def test_verify_unknown_token(self, db):
        with pytest.raises(NotFound):
            newsletter.verify("nope")
        with pytest.raises(NotFound):
            newsletter.verify("")

    def test_unsubscribe_by_token_or_email(self, db):
        make_subscribers(2)
        newsletter.unsubscribe(token="token-True-0")
        newsletter.unsubscribe(email="READER1@example.com")
        assert not NewsletterSubscriber.objects.exists()

    def test_unsubscribe_unknown(self, db):
        with pytest.raises(NotFound):
            newsletter.unsubscribe(token="missing")
