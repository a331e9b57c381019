"""
Outbound email for django-blog-platform.

Delivery goes through Django's mail framework, so the provider is chosen
with ``EMAIL_BACKEND`` (SMTP, an API-backed backend, or locmem in tests).
"""
import logging

from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.utils.html import strip_tags

from .conf import absolute_url, blog_settings

logger = logging.getLogger(__name__)


def send_email(to, subject, html, text=None):
    """
    Send one HTML email.

    Raises whatever the mail backend raises; callers decide whether a
    failure is fatal.
    """
    recipients = [to] if isinstance(to, str) else list(to)
    message = EmailMultiAlternatives(
        subject=subject,
        body=text or strip_tags(html),
        from_email=f"{blog_settings.SITE_NAME} <{blog_settings.EMAIL_FROM}>",
        to=recipients,
    )
    message.attach_alternative(html, "text/html")
    try:
        return message.send(fail_silently=False)
    except Exception:
        logger.warning("Email to %s failed: %s", ", ".join(recipients), subject)
        raise


def render_email(template_name, **context):
    context.setdefault("site_name", blog_settings.SITE_NAME)
    return render_to_string(f"blog_platform/email/{template_name}", context)


def verification_email_html(name, verify_url):
    return render_email("verify_subscription.html", name=name, verify_url=verify_url)


def newsletter_email_html(subject, content_html, unsubscribe_token):
    unsubscribe_url = absolute_url(f"/api/newsletter/unsubscribe?token={unsubscribe_token}")
    return render_email(
        "newsletter.html",
        subject=subject,
        content_html=content_html,
        unsubscribe_url=unsubscribe_url,
    )
