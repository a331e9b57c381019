"""
Post, Category, Tag and engagement models for django-blog-platform.
"""
import logging
from datetime import datetime, timezone as dt_timezone

from django.conf import settings
from django.db import IntegrityError, models, transaction
from django.db.models import Q
from django.utils import timezone
from django.utils.text import slugify

from .. import richtext
from ..conf import blog_settings
from ..exceptions import Conflict, InvalidRequest
from ..roles import Role

logger = logging.getLogger(__name__)


def unique_slug(model, value, exclude_pk=None, fallback="item"):
    """
    Slugify ``value`` and append -1, -2, ... until no other row uses it.
    """
    base_slug = slugify(value)[:blog_settings.SLUG_MAX_LENGTH] or fallback
    slug = base_slug
    counter = 1
    while model.objects.filter(slug=slug).exclude(pk=exclude_pk).exists():
        slug = f"{base_slug}-{counter}"
        counter += 1
    return slug


class Category(models.Model):
    """Flat category for organizing posts."""

    name = models.CharField(max_length=50)
    slug = models.SlugField(max_length=100, unique=True)
    description = models.CharField(max_length=200, blank=True)
    color = models.CharField(max_length=7, blank=True, help_text="Hex color, e.g. #6366f1")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "Categories"

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = slugify(self.name)[:blog_settings.SLUG_MAX_LENGTH]
        super().save(*args, **kwargs)

    @property
    def post_count(self):
        """Return count of live posts in this category."""
        return self.posts.live().count()

    def as_dict(self):
        return {
            "id": self.pk,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "color": self.color or None,
        }


class Tag(models.Model):
    """
    Flat tag for posts.

    Tags are created on demand from the names sent with a post.
    """

    name = models.CharField(max_length=100, unique=True)
    slug = models.SlugField(max_length=100, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = slugify(self.name)[:blog_settings.SLUG_MAX_LENGTH]
        super().save(*args, **kwargs)

    @classmethod
    def from_names(cls, names):
        """Return tags for ``names``, creating missing ones by slug."""
        tags = []
        for name in names:
            name = name.strip()
            slug = slugify(name)[:blog_settings.SLUG_MAX_LENGTH]
            if not slug:
                continue
            tag, _ = cls.objects.get_or_create(slug=slug, defaults={"name": name})
            tags.append(tag)
        return tags

    @property
    def post_count(self):
        """Return count of live posts with this tag."""
        return self.posts.live().count()

    def as_dict(self):
        return {"id": self.pk, "name": self.name, "slug": self.slug}


class PostQuerySet(models.QuerySet):

    def live(self, now=None):
        """Published posts whose publication time has passed."""
        return self.filter(
            status=Post.Status.PUBLISHED,
            published_at__lte=now or timezone.now(),
        )

    def visible_to(self, viewer, now=None):
        """
        Posts ``viewer`` may read: everything for editors and admins,
        live posts plus their own for everyone else.
        """
        if viewer.has_role(Role.EDITOR):
            return self
        live = Q(status=Post.Status.PUBLISHED, published_at__lte=now or timezone.now())
        if viewer.is_anonymous:
            return self.filter(live)
        return self.filter(live | Q(author_id=viewer.user_id))

    def due_for_publication(self, now=None):
        return self.filter(
            status=Post.Status.SCHEDULED,
            scheduled_for__lte=now or timezone.now(),
        )


class Post(models.Model):
    """
    Blog post.

    ``content`` is the editor document; ``content_html``, ``excerpt`` and
    ``reading_time`` are derived from it on save.
    """

    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        SCHEDULED = "SCHEDULED", "Scheduled"
        PUBLISHED = "PUBLISHED", "Published"
        ARCHIVED = "ARCHIVED", "Archived"

    # Content
    title = models.CharField(max_length=200)
    subtitle = models.CharField(max_length=500, blank=True)
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    content = models.JSONField(default=dict, blank=True)
    content_html = models.TextField(blank=True)
    excerpt = models.TextField(blank=True)
    reading_time = models.PositiveIntegerField(default=1)
    cover_image = models.URLField(blank=True)

    # SEO
    meta_title = models.CharField(max_length=60, blank=True)
    meta_description = models.CharField(max_length=160, blank=True)

    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="posts",
    )

    # Status
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.DRAFT,
        db_index=True,
    )
    is_premium = models.BooleanField(
        default=False,
        help_text="Requires an active paid subscription to read in full",
    )
    scheduled_for = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Publish the post at this time",
    )
    published_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When post was actually published",
    )

    # Taxonomy
    categories = models.ManyToManyField(Category, related_name="posts", blank=True)
    tags = models.ManyToManyField(Tag, related_name="posts", blank=True)

    # Timestamps
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PostQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "-published_at"]),
            models.Index(fields=["author", "-created_at"]),
        ]

    def __str__(self):
        return self.title

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = unique_slug(Post, self.title, exclude_pk=self.pk, fallback="post")
        self.render_content()
        super().save(*args, **kwargs)

    def render_content(self):
        """Refresh the fields derived from the editor document."""
        self.content_html = richtext.document_to_html(self.content)
        self.reading_time = richtext.reading_time(self.content)
        self.excerpt = self.meta_description or richtext.excerpt(self.content)

    def retitle(self, title):
        """Change the title; a new title gets a new unique slug."""
        if title != self.title:
            self.title = title
            self.slug = unique_slug(Post, title, exclude_pk=self.pk, fallback="post")

    def is_live(self, now=None):
        """Published with a publication time that has passed."""
        if self.status != self.Status.PUBLISHED or self.published_at is None:
            return False
        return self.published_at <= (now or timezone.now())

    @property
    def is_scheduled(self):
        return self.status == self.Status.SCHEDULED and self.scheduled_for is not None

    def ensure_publishable(self):
        if not self.title or not self.title.strip():
            raise InvalidRequest("Post must have a title before publishing")
        if richtext.is_empty(self.content):
            raise InvalidRequest("Post must have content before publishing")

    def publish(self, now=None):
        """Publish the post immediately."""
        self.status = self.Status.PUBLISHED
        self.published_at = now or timezone.now()
        self.scheduled_for = None
        self.save(update_fields=["status", "published_at", "scheduled_for", "updated_at"])
        logger.info("Published post %s", self.pk)

    def schedule(self, when, now=None):
        """Schedule the post for ``when``, which must be in the future."""
        if when <= (now or timezone.now()):
            raise InvalidRequest("Scheduled date must be in the future")
        self.status = self.Status.SCHEDULED
        self.scheduled_for = when
        self.published_at = None
        self.save(update_fields=["status", "published_at", "scheduled_for", "updated_at"])
        logger.info("Scheduled post %s for %s", self.pk, when.isoformat())

    def unpublish(self):
        """Move the post back to draft."""
        self.status = self.Status.DRAFT
        self.published_at = None
        self.scheduled_for = None
        self.save(update_fields=["status", "published_at", "scheduled_for", "updated_at"])

    def archive(self):
        self.status = self.Status.ARCHIVED
        self.save(update_fields=["status", "updated_at"])


class PostView(models.Model):
    """
    A tracked read of a post.

    At most one row per viewer per time bucket; the unique constraint,
    not application code, decides between concurrent requests.
    """

    post = models.ForeignKey(Post, on_delete=models.CASCADE, related_name="views")
    account = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="post_views",
    )
    # Account id for signed-in viewers, salted IP hash otherwise
    viewer_key = models.CharField(max_length=64)
    bucket = models.DateTimeField()
    user_agent = models.CharField(max_length=500, blank=True)
    referer = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["post", "viewer_key", "bucket"],
                name="blog_platform_postview_once_per_bucket",
            ),
        ]

    def __str__(self):
        return f"View of {self.post_id} by {self.viewer_key}"

    @staticmethod
    def bucket_for(moment):
        window = blog_settings.VIEW_DEDUP_WINDOW.total_seconds()
        timestamp = moment.timestamp()
        return datetime.fromtimestamp(timestamp - timestamp % window, tz=dt_timezone.utc)

    @classmethod
    def track(cls, post, viewer_key, account=None, user_agent="", referer="", now=None):
        """Record a view; returns False if this viewer was already counted."""
        now = now or timezone.now()
        _, created = cls.objects.get_or_create(
            post=post,
            viewer_key=viewer_key,
            bucket=cls.bucket_for(now),
            defaults={
                "account": account,
                "user_agent": (user_agent or "")[:500],
                "referer": (referer or "")[:500],
                "created_at": now,
            },
        )
        return created


class PostMarker(models.Model):
    """A per-account flag on a post (like, bookmark)."""

    already_message = "Already marked"
    missing_message = "Not marked"

    account = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE)
    post = models.ForeignKey(Post, on_delete=models.CASCADE)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        abstract = True
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["account", "post"],
                name="%(app_label)s_%(class)s_unique_account_post",
            ),
        ]

    @classmethod
    def add(cls, post, account):
        try:
            with transaction.atomic():
                return cls.objects.create(post=post, account=account)
        except IntegrityError:
            raise Conflict(cls.already_message, code="duplicate")

    @classmethod
    def remove(cls, post, account):
        deleted, _ = cls.objects.filter(post=post, account=account).delete()
        if not deleted:
            raise Conflict(cls.missing_message, code="missing")


class Like(PostMarker):
    already_message = "Already liked"
    missing_message = "Not liked"

    class Meta(PostMarker.Meta):
        default_related_name = "likes"


class Bookmark(PostMarker):
    already_message = "Already bookmarked"
    missing_message = "Not bookmarked"

    class Meta(PostMarker.Meta):
        default_related_name = "bookmarks"
