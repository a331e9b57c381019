"""
Tests for django-blog-platform models.
"""
import io
from datetime import timedelta

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone
from PIL import Image

from blog_platform.exceptions import Conflict, InvalidRequest
from blog_platform.models import Bookmark, Category, Like, MediaLibrary, Post, PostView, Tag

from .conftest import doc


@pytest.fixture
def category(db):
    """Create a test category."""
    return Category.objects.create(name="Test Category", slug="test-category")


@pytest.fixture
def tag(db):
    """Create a test tag."""
    return Tag.objects.create(name="test-tag", slug="test-tag")


def png_upload(name="photo.png", size=(12, 8), color="red"):
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return SimpleUploadedFile(name, buffer.getvalue(), content_type="image/png")


class TestCategory:
    """Tests for Category model."""

    def test_create_category(self, db):
        """Test creating a category."""
        cat = Category.objects.create(name="My Category")
        assert cat.name == "My Category"
        assert cat.slug == "my-category"

    def test_post_count_only_counts_live_posts(self, category, post, draft):
        post.categories.add(category)
        draft.categories.add(category)
        assert category.post_count == 1


class TestTag:
    """Tests for Tag model."""

    def test_create_tag(self, db):
        """Test creating a tag."""
        tag = Tag.objects.create(name="Django")
        assert tag.name == "Django"
        assert tag.slug == "django"

    def test_tag_post_count(self, tag, post):
        """Test tag post count property."""
        post.tags.add(tag)
        assert tag.post_count == 1

    def test_from_names_reuses_existing_slug(self, tag):
        tags = Tag.from_names(["Test Tag", "test-tag", "Python", "  "])
        assert [t.slug for t in tags] == ["test-tag", "test-tag", "python"]
        assert Tag.objects.count() == 2


class TestPost:
    """Tests for Post model."""

    def test_create_post(self, make_post):
        """Test creating a post renders derived fields."""
        post = make_post(title="Hello World", content=doc("My first post!"))
        assert post.slug == "hello-world"
        assert post.content_html == "<p>My first post!</p>"
        assert post.excerpt == "My first post!"
        assert post.reading_time == 1

    def test_slug_collision_gets_numeric_suffix(self, make_post):
        first = make_post(title="Same Title")
        second = make_post(title="Same Title")
        third = make_post(title="Same Title")
        assert first.slug == "same-title"
        assert second.slug == "same-title-1"
        assert third.slug == "same-title-2"

    def test_retitle_changes_slug(self, make_post):
        make_post(title="Taken")
        post = make_post(title="Original")
        post.retitle("Taken")
        post.save()
        assert post.slug == "taken-1"

    def test_meta_description_overrides_excerpt(self, make_post):
        post = make_post(meta_description="Custom summary")
        assert post.excerpt == "Custom summary"

    def test_is_live(self, make_post):
        now = timezone.now()
        assert make_post().is_live(now)
        assert not make_post(published_at=now + timedelta(minutes=5)).is_live(now)
        assert not make_post(status=Post.Status.DRAFT).is_live(now)
        assert not make_post(status=Post.Status.ARCHIVED).is_live(now)

    def test_publish(self, draft):
        now = timezone.now()
        draft.publish(now=now)
        draft.refresh_from_db()
        assert draft.status == Post.Status.PUBLISHED
        assert draft.published_at == now

    def test_schedule_requires_future_date(self, draft):
        with pytest.raises(InvalidRequest):
            draft.schedule(timezone.now() - timedelta(minutes=1))

    def test_schedule(self, draft):
        when = timezone.now() + timedelta(days=1)
        draft.schedule(when)
        assert draft.is_scheduled
        assert draft.published_at is None
        assert list(Post.objects.due_for_publication(when)) == [draft]
        assert not Post.objects.due_for_publication(when - timedelta(hours=1)).exists()

    def test_unpublish(self, post):
        post.unpublish()
        post.refresh_from_db()
        assert post.status == Post.Status.DRAFT
        assert post.published_at is None

    def test_publish_requires_content(self, make_post):
        post = make_post(status=Post.Status.DRAFT, content={"type": "doc", "content": []})
        with pytest.raises(InvalidRequest, match="content"):
            post.ensure_publishable()


class TestPostMarkers:
    """Tests for likes and bookmarks."""

    def test_like_twice_conflicts(self, post, reader):
        Like.add(post, reader)
        with pytest.raises(Conflict, match="Already liked"):
            Like.add(post, reader)
        assert post.likes.count() == 1

    def test_unlike_without_like_conflicts(self, post, reader):
        with pytest.raises(Conflict, match="Not liked"):
            Like.remove(post, reader)

    def test_bookmark_and_remove(self, post, reader):
        Bookmark.add(post, reader)
        assert post.bookmarks.count() == 1
        Bookmark.remove(post, reader)
        assert post.bookmarks.count() == 0


class TestPostView:
    """Tests for view tracking."""

    def test_one_view_per_viewer_per_hour(self, post):
        now = timezone.now().replace(minute=10, second=0, microsecond=0)
        assert PostView.track(post, "ip:abc", now=now)
        assert not PostView.track(post, "ip:abc", now=now + timedelta(minutes=20))
        assert PostView.track(post, "ip:def", now=now)
        assert PostView.track(post, "ip:abc", now=now + timedelta(hours=1))
        assert post.views.count() == 3


class TestMediaLibrary:
    """Tests for uploaded images."""

    def test_upload_records_dimensions(self, reader):
        item, created = MediaLibrary.get_or_create_from_file(
            png_upload(color="blue"), uploaded_by=reader
        )
        assert created
        assert (item.width, item.height) == (12, 8)
        assert item.mime_type == "image/png"
        assert item.file.name.endswith(f"{item.content_hash}.png")

    def test_same_content_is_deduplicated(self, reader):
        first, _ = MediaLibrary.get_or_create_from_file(png_upload("a.png"), uploaded_by=reader)
        second, created = MediaLibrary.get_or_create_from_file(png_upload("b.png"))
        assert not created
        assert second.pk == first.pk

    def test_rejects_non_images(self, db):
        upload = SimpleUploadedFile("notes.txt", b"hello", content_type="text/plain")
        with pytest.raises(InvalidRequest, match="Only images"):
            MediaLibrary.get_or_create_from_file(upload)

    def test_rejects_corrupt_images(self, db):
        upload = SimpleUploadedFile("bad.png", b"not really a png", content_type="image/png")
        with pytest.raises(InvalidRequest, match="not a valid image"):
            MediaLibrary.get_or_create_from_file(upload)

    def test_human_file_size(self, db):
        item = MediaLibrary(file_size=2048)
        assert item.human_file_size == "2.0 KB"
