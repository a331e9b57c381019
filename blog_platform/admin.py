"""
Django admin configuration for blog_platform.
"""
from django.contrib import admin, messages
from django.contrib.auth.admin import UserAdmin
from django.utils.html import format_html

from .exceptions import BlogPlatformError
from .models import (
    Account,
    Category,
    Comment,
    MediaLibrary,
    Newsletter,
    NewsletterSubscriber,
    Post,
    Subscription,
    Tag,
)
from .newsletter import NewsletterSender


class SubscriptionInline(admin.StackedInline):
    model = Subscription
    can_delete = False
    readonly_fields = ["customer_id", "processor_subscription_id", "price_id", "created_at"]


@admin.register(Account)
class AccountAdmin(UserAdmin):
    list_display = ["username", "email", "display_name", "role", "is_active", "date_joined"]
    list_filter = ["role", "is_staff", "is_active"]
    fieldsets = UserAdmin.fieldsets + (
        ("Profile", {"fields": ("role", "bio", "avatar")}),
    )
    inlines = [SubscriptionInline]


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = ["account", "tier", "current_period_end", "active", "updated_at"]
    list_filter = ["tier"]
    search_fields = ["account__username", "account__email", "customer_id"]
    raw_id_fields = ["account"]

    @admin.display(boolean=True, description="Active")
    def active(self, obj):
        return obj.is_active()


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ["name", "slug", "color", "post_count", "created_at"]
    search_fields = ["name", "slug", "description"]
    prepopulated_fields = {"slug": ("name",)}


@admin.register(Tag)
class TagAdmin(admin.ModelAdmin):
    list_display = ["name", "slug", "post_count", "created_at"]
    search_fields = ["name", "slug"]
    prepopulated_fields = {"slug": ("name",)}
    readonly_fields = ["created_at"]


@admin.register(Post)
class PostAdmin(admin.ModelAdmin):
    list_display = [
        "title_preview",
        "author",
        "status",
        "is_premium",
        "published_at",
        "created_at",
    ]
    list_filter = ["status", "is_premium", "categories", "created_at"]
    search_fields = ["title", "subtitle", "author__username"]
    raw_id_fields = ["author"]
    filter_horizontal = ["categories", "tags"]
    date_hierarchy = "created_at"
    readonly_fields = ["content_html", "excerpt", "reading_time", "created_at", "updated_at"]

    fieldsets = (
        (None, {
            "fields": ("title", "subtitle", "slug", "author", "content", "cover_image")
        }),
        ("Taxonomy", {
            "fields": ("categories", "tags")
        }),
        ("Status", {
            "fields": ("status", "is_premium", "scheduled_for", "published_at")
        }),
        ("SEO", {
            "fields": ("meta_title", "meta_description"),
            "classes": ("collapse",),
        }),
        ("Rendered", {
            "fields": ("content_html", "excerpt", "reading_time", "created_at", "updated_at"),
            "classes": ("collapse",),
        }),
    )

    actions = ["publish_posts", "unpublish_posts", "archive_posts"]

    def title_preview(self, obj):
        """Truncated title for list display."""
        return obj.title[:60] + "..." if len(obj.title) > 60 else obj.title

    title_preview.short_description = "Title"

    @admin.action(description="Publish selected posts")
    def publish_posts(self, request, queryset):
        published = 0
        for post in queryset:
            try:
                post.ensure_publishable()
            except BlogPlatformError as exc:
                self.message_user(request, f"{post}: {exc.message}", messages.WARNING)
                continue
            post.publish()
            published += 1
        self.message_user(request, f"{published} posts published.")

    @admin.action(description="Move selected posts to draft")
    def unpublish_posts(self, request, queryset):
        for post in queryset:
            post.unpublish()
        self.message_user(request, f"{queryset.count()} posts moved to draft.")

    @admin.action(description="Archive selected posts")
    def archive_posts(self, request, queryset):
        for post in queryset:
            post.archive()
        self.message_user(request, f"{queryset.count()} posts archived.")


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ["preview", "author", "post", "is_reply", "is_edited", "created_at"]
    list_filter = ["is_edited", "created_at"]
    search_fields = ["content", "author__username", "post__title"]
    raw_id_fields = ["post", "author", "parent"]
    readonly_fields = ["created_at", "updated_at"]


@admin.register(MediaLibrary)
class MediaLibraryAdmin(admin.ModelAdmin):
    list_display = [
        "thumbnail_preview",
        "original_filename",
        "purpose",
        "human_file_size",
        "dimensions",
        "uploaded_by",
        "created_at",
    ]
    list_filter = ["purpose", "created_at"]
    search_fields = ["original_filename"]
    readonly_fields = ["content_hash", "file_size", "width", "height", "mime_type", "created_at"]

    def thumbnail_preview(self, obj):
        if obj.file:
            return format_html(
                '<img src="{}" style="max-width: 50px; max-height: 50px;" />',
                obj.file.url,
            )
        return "-"

    thumbnail_preview.short_description = "Preview"

    def dimensions(self, obj):
        if obj.width and obj.height:
            return f"{obj.width}x{obj.height}"
        return "-"

    dimensions.short_description = "Size"


@admin.register(NewsletterSubscriber)
class NewsletterSubscriberAdmin(admin.ModelAdmin):
    list_display = ["email", "is_verified", "account", "created_at"]
    list_filter = ["is_verified", "created_at"]
    search_fields = ["email"]
    raw_id_fields = ["account"]
    readonly_fields = ["verify_token", "unsubscribe_token", "created_at"]


@admin.register(Newsletter)
class NewsletterAdmin(admin.ModelAdmin):
    list_display = ["subject", "sent_at", "recipient_count", "created_at"]
    list_filter = ["sent_at"]
    search_fields = ["subject"]
    readonly_fields = ["content_html", "sent_at", "recipient_count", "created_at", "updated_at"]
    actions = ["send_newsletters"]

    def get_readonly_fields(self, request, obj=None):
        readonly = super().get_readonly_fields(request, obj)
        if obj is not None and obj.is_sent:
            return ["subject", "content", *readonly]
        return readonly

    @admin.action(description="Send selected newsletters to verified subscribers")
    def send_newsletters(self, request, queryset):
        sender = NewsletterSender()
        for item in queryset:
            try:
                result = sender.send(item)
            except BlogPlatformError as exc:
                self.message_user(request, f"{item}: {exc.message}", messages.ERROR)
                continue
            self.message_user(
                request,
                f"{item}: sent to {result.success_count} of {result.total} subscribers.",
            )
