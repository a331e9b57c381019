"""
Uploaded image models for django-blog-platform.

Features content-addressed storage with SHA256 deduplication. Files go
through Django's storage API, so the object store is whatever
``DEFAULT_FILE_STORAGE``/``STORAGES`` points at.
"""
import hashlib
import logging
import os

from django.conf import settings
from django.db import models
from django.utils import timezone

from ..conf import blog_settings
from ..exceptions import InvalidRequest

logger = logging.getLogger(__name__)


def get_upload_path(instance, filename):
    """Store files under their content hash so identical uploads share a name."""
    extension = os.path.splitext(filename)[1].lower()
    folder = timezone.now().strftime(blog_settings.UPLOAD_PATH)
    return f"{folder}{instance.purpose}/{instance.content_hash}{extension}"


class MediaLibrary(models.Model):
    """
    Uploaded image, stored once per distinct content hash.

    The same file uploaded twice returns the existing row.
    """

    class Purpose(models.TextChoices):
        POST_IMAGE = "postImage", "Post image"
        COVER_IMAGE = "coverImage", "Cover image"
        AVATAR = "avatar", "Avatar"

    file = models.FileField(upload_to=get_upload_path)
    content_hash = models.CharField(
        max_length=64,
        unique=True,
        db_index=True,
        help_text="SHA256 hash of file content for deduplication",
    )
    purpose = models.CharField(max_length=20, choices=Purpose.choices, default=Purpose.POST_IMAGE)
    original_filename = models.CharField(max_length=255)
    file_size = models.PositiveIntegerField(default=0, help_text="File size in bytes")
    width = models.PositiveIntegerField(null=True, blank=True)
    height = models.PositiveIntegerField(null=True, blank=True)
    mime_type = models.CharField(max_length=100, blank=True)

    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="uploads",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Media Library Item"
        verbose_name_plural = "Media Library"

    def __str__(self):
        return self.original_filename

    @property
    def human_file_size(self):
        """Return human-readable file size."""
        size = self.file_size
        for unit in ["B", "KB", "MB", "GB"]:
            if size < 1024:
                return f"{size:.1f} {unit}"
            size /= 1024
        return f"{size:.1f} TB"

    def as_dict(self):
        return {
            "id": self.pk,
            "url": self.file.url if self.file else None,
            "width": self.width,
            "height": self.height,
            "size": self.file_size,
        }

    @staticmethod
    def validate_upload(file_obj):
        mime_type = getattr(file_obj, "content_type", "") or ""
        if not mime_type.startswith("image/"):
            raise InvalidRequest("Only images are allowed")
        max_bytes = blog_settings.UPLOAD_MAX_SIZE_MB * 1024 * 1024
        if file_obj.size > max_bytes:
            raise InvalidRequest(
                f"File size must be less than {blog_settings.UPLOAD_MAX_SIZE_MB}MB"
            )

    @classmethod
    def get_or_create_from_file(cls, file_obj, uploaded_by=None, purpose=Purpose.POST_IMAGE):
        """
        Store an uploaded image, or return the row already holding the
        same bytes. Returns ``(item, created)``.
        """
        cls.validate_upload(file_obj)

        digest = hashlib.sha256()
        for chunk in file_obj.chunks():
            digest.update(chunk)
        content_hash = digest.hexdigest()

        stored = cls.objects.filter(content_hash=content_hash).first()
        if stored is not None:
            return stored, False

        width, height = read_image_size(file_obj)
        file_obj.seek(0)

        item = cls.objects.create(
            file=file_obj,
            content_hash=content_hash,
            purpose=purpose,
            original_filename=file_obj.name,
            file_size=file_obj.size,
            mime_type=file_obj.content_type,
            width=width,
            height=height,
            uploaded_by=uploaded_by,
        )
        logger.info("Stored upload %s (%s bytes)", item.file.name, item.file_size)
        return item, True


def read_image_size(file_obj):
    """Return (width, height), rejecting files Pillow cannot read as images."""
    from PIL import Image

    file_obj.seek(0)
    try:
        with Image.open(file_obj) as img:
            return img.size
    except (OSError, ValueError):
        raise InvalidRequest("File is not a valid image")
