"""
JSON API views for django-blog-platform.

Every view derives from ``ApiView``, which builds the request's
``ViewerContext`` and turns ``BlogPlatformError`` into ``{"error": ...}``
responses. Successful responses are ``{"data": ...}`` plus
``pagination`` for lists.
"""
import hashlib
import json
import logging

from django.contrib.auth import logout, password_validation, update_session_auth_hash
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.http import JsonResponse
from django.utils import timezone
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from . import forms, health, newsletter, payments, selectors
from .access import ViewerContext, can_read_post
from .conf import blog_settings
from .exceptions import (
    BlogPlatformError,
    Conflict,
    Forbidden,
    InvalidRequest,
    NotAuthenticated,
    NotFound,
    ValidationFailed,
)
from .models import (
    Account,
    Bookmark,
    Category,
    Comment,
    CommentLike,
    Like,
    MediaLibrary,
    Newsletter,
    Post,
    PostView,
    Subscription,
    Tag,
)
from .roles import Role

logger = logging.getLogger(__name__)


class ApiView(View):
    """Base class for JSON endpoints."""

    def dispatch(self, request, *args, **kwargs):
        self.viewer = ViewerContext.from_request(request)
        try:
            return super().dispatch(request, *args, **kwargs)
        except BlogPlatformError as exc:
            return JsonResponse(exc.as_dict(), status=exc.status_code)
        except Exception:
            logger.exception("Unhandled error in %s %s", request.method, request.path)
            return JsonResponse({"error": "Internal server error"}, status=500)

    # Request helpers

    def require_login(self):
        if self.viewer.is_anonymous:
            raise NotAuthenticated()
        return self.request.user

    def require_role(self, role, message=None):
        user = self.require_login()
        if not self.viewer.has_role(role):
            raise Forbidden(message)
        return user

    def json_body(self):
        if not self.request.body:
            return {}
        try:
            body = json.loads(self.request.body)
        except ValueError:
            raise InvalidRequest("Invalid JSON body")
        if not isinstance(body, dict):
            raise InvalidRequest("Expected a JSON object")
        return body

    def validate(self, form_class, data=None, **kwargs):
        form = form_class(self.json_body() if data is None else data, **kwargs)
        if not form.is_valid():
            raise ValidationFailed(form.errors.get_json_data())
        return form

    def query(self, form_class):
        return self.validate(form_class, self.request.GET).cleaned_data

    # Responses

    def respond(self, data, status=200, **extra):
        return JsonResponse(dict({"data": data}, **extra), status=status)

    def respond_page(self, result):
        data, pagination = result
        return self.respond(data, pagination=pagination)

    # Lookups

    def get_post(self, pk):
        post = Post.objects.select_related("author").filter(pk=pk).first()
        if post is None:
            raise NotFound("Post not found")
        return post

    def get_readable_post(self, pk=None, slug=None):
        """A post the viewer may read; hidden posts look missing."""
        lookup = {"pk": pk} if pk is not None else {"slug": slug}
        post = Post.objects.select_related("author").filter(**lookup).first()
        if post is None or not can_read_post(self.viewer, post):
            raise NotFound("Post not found")
        return post

    def get_comment(self, pk):
        comment = Comment.objects.select_related("post", "author").filter(pk=pk).first()
        if comment is None:
            raise NotFound("Comment not found")
        return comment


# Health

class HealthView(View):
    """Database health check; not wrapped in ApiView so failures stay 503."""

    def get(self, request):
        report, status = health.health_status()
        response = JsonResponse(report, status=status)
        response["Cache-Control"] = "no-store, no-cache, must-revalidate"
        return response


# Posts

def apply_post_fields(post, values):
    """Copy cleaned PostForm values onto ``post``."""
    if "title" in values:
        post.retitle(values["title"])
    if "subtitle" in values:
        post.subtitle = values["subtitle"] or ""
    if "content" in values:
        post.content = values["content"] or {}
    if "coverImage" in values:
        post.cover_image = values["coverImage"] or ""
    if "isPremium" in values and values["isPremium"] is not None:
        post.is_premium = values["isPremium"]
    if "metaTitle" in values:
        post.meta_title = values["metaTitle"] or ""
    if "metaDescription" in values:
        post.meta_description = values["metaDescription"] or ""


def apply_post_status(post, values, now):
    status = values.get("status")
    if not status:
        return
    if status == Post.Status.PUBLISHED and not post.published_at:
        post.published_at = now
    if status == Post.Status.SCHEDULED:
        when = values.get("scheduledFor") or post.scheduled_for
        if when is None or when <= now:
            raise InvalidRequest("Scheduled date must be in the future")
        post.scheduled_for = when
    post.status = status


def apply_post_taxonomy(post, values):
    if "categories" in values:
        post.categories.set(Category.objects.filter(pk__in=values["categories"]))
    if "tags" in values:
        post.tags.set(Tag.from_names(str(name) for name in values["tags"]))


class PostListView(ApiView):

    def get(self, request):
        query = self.query(forms.PostListForm)
        return self.respond_page(selectors.list_posts(
            self.viewer,
            page=query["page"],
            limit=query["limit"],
            status=query["status"],
            author_id=query["authorId"],
            category_id=query["categoryId"],
            search=query["search"],
            sort_by=query["sortBy"] or "createdAt",
            sort_order=query["sortOrder"] or "desc",
        ))

    def post(self, request):
        author = self.require_role(Role.AUTHOR, "You don't have permission to create posts")
        values = self.validate(forms.PostForm).provided()
        now = timezone.now()

        with transaction.atomic():
            post = Post(author=author)
            apply_post_fields(post, values)
            apply_post_status(post, values, now)
            post.save()
            apply_post_taxonomy(post, values)

        logger.info("Post %s created by account %s", post.pk, author.pk)
        return self.respond(selectors.post_detail(post, self.viewer), status=201)


class PostDetailView(ApiView):

    def get(self, request, pk=None, slug=None):
        post = self.get_readable_post(pk=pk, slug=slug)
        return self.respond(selectors.post_detail(post, self.viewer))

    def patch(self, request, pk=None, slug=None):
        self.require_login()
        post = self.get_post(pk)
        if not (self.viewer.owns(post.author_id) or self.viewer.has_role(Role.EDITOR)):
            raise Forbidden("You don't have permission to edit this post")

        values = self.validate(forms.PostForm, partial=True).provided()
        with transaction.atomic():
            apply_post_fields(post, values)
            apply_post_status(post, values, timezone.now())
            post.save()
            apply_post_taxonomy(post, values)
        return self.respond(selectors.post_detail(post, self.viewer))

    put = patch

    def delete(self, request, pk=None, slug=None):
        self.require_login()
        post = self.get_post(pk)
        if not (self.viewer.owns(post.author_id) or self.viewer.has_role(Role.ADMIN)):
            raise Forbidden("You don't have permission to delete this post")
        post.delete()
        logger.info("Post %s deleted by account %s", pk, self.viewer.user_id)
        return self.respond({"message": "Post deleted successfully"})


class PostPublishView(ApiView):
    """POST publishes now or schedules; DELETE moves back to draft."""

    def get_editable_post(self, pk, action):
        self.require_login()
        post = self.get_post(pk)
        if not (self.viewer.owns(post.author_id) or self.viewer.has_role(Role.EDITOR)):
            raise Forbidden(f"You don't have permission to {action} this post")
        return post

    def post(self, request, pk):
        post = self.get_editable_post(pk, "publish")
        scheduled_for = self.validate(forms.PublishForm).cleaned_data["scheduledFor"]
        post.ensure_publishable()
        if scheduled_for:
            post.schedule(scheduled_for)
            message = "Post scheduled successfully"
        else:
            post.publish()
            message = "Post published successfully"
        return self.respond(selectors.post_detail(post, self.viewer), message=message)

    def delete(self, request, pk):
        post = self.get_editable_post(pk, "unpublish")
        post.unpublish()
        return self.respond(
            selectors.post_detail(post, self.viewer), message="Post unpublished successfully"
        )


class PostMarkerView(ApiView):
    """Like or bookmark toggles; the unique constraint rejects duplicates."""

    marker = None
    count_key = None

    def post(self, request, pk):
        account = self.require_login()
        post = self.get_readable_post(pk=pk)
        self.marker.add(post, account)
        return self.respond({self.count_key: self.marker.objects.filter(post=post).count()})

    def delete(self, request, pk):
        account = self.require_login()
        post = self.get_readable_post(pk=pk)
        self.marker.remove(post, account)
        return self.respond({self.count_key: self.marker.objects.filter(post=post).count()})


class PostLikeView(PostMarkerView):
    marker = Like
    count_key = "likeCount"


class PostBookmarkView(PostMarkerView):
    marker = Bookmark
    count_key = "bookmarkCount"


def viewer_key(request, viewer):
    """Account id when signed in, otherwise a salted hash of the client IP."""
    if not viewer.is_anonymous:
        return f"account:{viewer.user_id}"
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    ip = forwarded.split(",")[0].strip() or request.META.get("REMOTE_ADDR") or "unknown"
    digest = hashlib.sha256((ip + blog_settings.VIEW_HASH_SALT).encode()).hexdigest()
    return f"ip:{digest[:16]}"


class PostViewTrackingView(ApiView):
    """Count a read. Storage failures are logged and never fail the read."""

    def post(self, request, pk):
        post = self.get_post(pk)
        if not post.is_live():
            raise InvalidRequest("Cannot track views for unpublished posts")

        try:
            tracked = PostView.track(
                post,
                viewer_key(request, self.viewer),
                account=request.user if not self.viewer.is_anonymous else None,
                user_agent=request.META.get("HTTP_USER_AGENT", ""),
                referer=request.META.get("HTTP_REFERER", ""),
            )
        except DatabaseError:
            logger.warning("Could not track view of post %s", pk, exc_info=True)
            tracked = False
        return self.respond({"tracked": tracked})


class PostAnalyticsView(ApiView):

    def get(self, request, pk):
        self.require_login()
        post = self.get_post(pk)
        if not (self.viewer.owns(post.author_id) or self.viewer.has_role(Role.EDITOR)):
            raise Forbidden("You don't have permission to view this post's analytics")
        days = self.query(forms.AnalyticsForm)["days"] or 30
        return self.respond(selectors.post_analytics(post, days=days))


class DashboardAnalyticsView(ApiView):
    """Totals for the author's own posts; admins see the whole site's posts."""

    def get(self, request):
        self.require_role(Role.AUTHOR, "You must be an author to view analytics")
        days = self.query(forms.AnalyticsForm)["days"] or 30
        return self.respond(selectors.dashboard_analytics(self.viewer, days=days))


# Comments

class PostCommentsView(ApiView):

    def get(self, request, pk):
        post = self.get_readable_post(pk=pk)
        query = self.query(forms.PageForm)
        return self.respond_page(
            selectors.list_comments(post, self.viewer, page=query["page"], limit=query["limit"])
        )

    def post(self, request, pk):
        author = self.require_login()
        post = self.get_readable_post(pk=pk)
        data = self.validate(forms.CommentForm).cleaned_data
        comment = Comment.create_for_post(post, author, data["content"], data["parentId"])
        return self.respond(selectors.comment_dict(comment, set(), {}), status=201)


class CommentDetailView(ApiView):

    def patch(self, request, pk):
        editor = self.require_login()
        comment = self.get_comment(pk)
        data = self.validate(forms.CommentForm).cleaned_data
        comment.edit(editor, data["content"])
        return self.respond(selectors.comment_dict(comment, set(), {}))

    put = patch

    def delete(self, request, pk):
        account = self.require_login()
        comment = self.get_comment(pk)
        comment.delete_by(account)
        return self.respond({"message": "Comment deleted successfully"})


class CommentLikeView(ApiView):

    def post(self, request, pk):
        account = self.require_login()
        comment = self.get_comment(pk)
        return self.respond({"liked": True, "likeCount": CommentLike.add(comment, account)})

    def delete(self, request, pk):
        account = self.require_login()
        comment = self.get_comment(pk)
        return self.respond({"liked": False, "likeCount": CommentLike.remove(comment, account)})


# Taxonomy and search

class CategoryListView(ApiView):

    def get(self, request):
        return self.respond(selectors.list_categories())

    def post(self, request):
        self.require_role(Role.EDITOR, "You don't have permission to create categories")
        data = self.validate(forms.CategoryForm).cleaned_data
        category = Category(
            name=data["name"],
            description=data["description"],
            color=data["color"],
        )
        try:
            with transaction.atomic():
                category.save()
        except IntegrityError:
            raise Conflict(
                "A category with this name already exists",
                code="duplicate",
                status_code=409,
            )
        return self.respond(category.as_dict(), status=201)


class TagListView(ApiView):

    def get(self, request):
        search = self.query(forms.TagSearchForm)["search"]
        return self.respond(selectors.list_tags(search))


class SearchView(ApiView):

    def get(self, request):
        query = self.query(forms.SearchForm)
        return self.respond_page(selectors.search_posts(
            query["q"],
            page=query["page"],
            limit=query["limit"],
            category=query["category"],
            tag=query["tag"],
        ))


class SearchSuggestionsView(ApiView):

    def get(self, request):
        return JsonResponse(selectors.search_suggestions(request.GET.get("q")))


# Newsletter subscription

class NewsletterSubscribeView(ApiView):

    messages = {
        "already_subscribed": "You are already subscribed to our newsletter",
        "verification_resent": "Verification email sent. Please check your inbox.",
        "created": "Please check your email to confirm your subscription",
    }

    def post(self, request):
        data = self.validate(forms.SubscribeForm).cleaned_data
        outcome = newsletter.subscribe(data["email"], data["name"])
        return self.respond({"status": outcome, "message": self.messages[outcome]})


class NewsletterVerifyView(ApiView):

    def get(self, request):
        subscriber = newsletter.verify(request.GET.get("token"))
        return self.respond({"email": subscriber.email, "message": "Subscription confirmed"})


class NewsletterUnsubscribeView(ApiView):

    def get(self, request):
        token = request.GET.get("token")
        if not token:
            raise InvalidRequest("Token is required")
        newsletter.unsubscribe(token=token)
        return self.respond({"message": "You have been unsubscribed"})

    def post(self, request):
        data = self.validate(forms.UnsubscribeForm).cleaned_data
        newsletter.unsubscribe(token=data["token"], email=data["email"])
        return self.respond({"message": "You have been unsubscribed"})


# Subscriptions and payments

class SubscriptionStatusView(ApiView):

    def get(self, request):
        account = self.require_login()
        subscription = Subscription.objects.filter(account=account).first()
        if subscription is None:
            return self.respond({
                "tier": Subscription.Tier.FREE,
                "isActive": False,
                "isPaid": False,
                "expiresAt": None,
                "hasCustomer": False,
            })
        return self.respond(subscription.status_dict())


@method_decorator(csrf_exempt, name="dispatch")
class PaymentWebhookView(ApiView):

    def post(self, request):
        backend = payments.load_backend()
        event = backend.construct_event(
            request.body,
            request.META.get("HTTP_X_WEBHOOK_SIGNATURE", ""),
        )
        payments.apply_event(event)
        return JsonResponse({"received": True})


# Uploads

class UploadView(ApiView):

    def post(self, request):
        account = self.require_login()
        form = forms.UploadForm(request.POST, request.FILES)
        if not form.is_valid():
            raise ValidationFailed(form.errors.get_json_data(), message="No file provided")
        item, _ = MediaLibrary.get_or_create_from_file(
            form.cleaned_data["file"],
            uploaded_by=account,
            purpose=form.cleaned_data["purpose"] or MediaLibrary.Purpose.POST_IMAGE,
        )
        return self.respond(item.as_dict(), status=201)


# Account self-service

class ProfileView(ApiView):

    def get(self, request):
        return self.respond(selectors.profile_dict(self.require_login()))

    def patch(self, request):
        account = self.require_login()
        form = self.validate(forms.ProfileForm)
        account.first_name, _, account.last_name = form.cleaned_data["name"].strip().partition(" ")
        for field in ("bio", "avatar"):
            if field in form.data:
                setattr(account, field, form.cleaned_data[field])
        account.save(update_fields=["first_name", "last_name", "bio", "avatar"])
        return self.respond(selectors.profile_dict(account))

    put = patch


class PasswordChangeView(ApiView):

    def post(self, request):
        account = self.require_login()
        data = self.validate(forms.PasswordChangeForm).cleaned_data
        if not account.has_usable_password():
            raise InvalidRequest("Cannot change password for accounts without a password")
        if not account.check_password(data["currentPassword"]):
            raise InvalidRequest("Current password is incorrect")
        try:
            password_validation.validate_password(data["newPassword"], account)
        except DjangoValidationError as exc:
            raise ValidationFailed({
                "newPassword": [{"message": message, "code": "invalid"} for message in exc.messages]
            })

        account.set_password(data["newPassword"])
        account.save(update_fields=["password"])
        update_session_auth_hash(request, account)
        logger.info("Account %s changed its password", account.pk)
        return self.respond({"message": "Password updated successfully"})


class AccountDeleteView(ApiView):
    """Delete the signed-in account; posts, comments and subscription go with it."""

    def post(self, request):
        account = self.require_login()
        data = self.validate(forms.AccountDeleteForm).cleaned_data
        if account.has_usable_password():
            if not data["password"]:
                raise InvalidRequest("Password is required to delete account")
            if not account.check_password(data["password"]):
                raise InvalidRequest("Password is incorrect")

        pk = account.pk
        logout(request)
        account.delete()
        logger.info("Account %s deleted itself", pk)
        return self.respond({"message": "Account deleted successfully"})


# Admin

class AdminAccountsView(ApiView):

    def get(self, request):
        self.require_role(Role.ADMIN)
        query = self.query(forms.AccountListForm)
        return self.respond_page(selectors.list_accounts(
            page=query["page"],
            limit=query["limit"] or 20,
            search=query["search"],
            role=query["role"],
        ))

    def patch(self, request):
        admin = self.require_role(Role.ADMIN)
        data = self.validate(forms.RoleChangeForm).cleaned_data
        if data["userId"] == admin.pk:
            raise InvalidRequest("You cannot change your own role")
        account = Account.objects.filter(pk=data["userId"]).first()
        if account is None:
            raise NotFound("User not found")
        account.role = data["role"]
        account.save(update_fields=["role"])
        logger.info("Account %s role set to %s by %s", account.pk, account.role, admin.pk)
        return self.respond(selectors.account_dict(account))


class AdminCommentView(ApiView):

    def delete(self, request, pk):
        self.require_role(Role.ADMIN)
        self.get_comment(pk).delete()
        return self.respond({"message": "Comment deleted successfully"})


class AdminSubscribersView(ApiView):

    def get(self, request):
        self.require_role(Role.ADMIN)
        query = self.query(forms.SubscriberListForm)
        limit = query["limit"] or 20
        if query["type"] == "newsletter":
            result = selectors.list_newsletter_subscribers(query["page"], limit)
        else:
            result = selectors.list_paid_subscribers(query["page"], limit)
        return self.respond_page(result)


class AdminNewsletterListView(ApiView):

    def get(self, request):
        self.require_role(Role.ADMIN)
        query = self.query(forms.NewsletterListForm)
        newsletters = Newsletter.objects.all()
        if query["status"] == "sent":
            newsletters = newsletters.filter(sent_at__isnull=False)
        elif query["status"] == "draft":
            newsletters = newsletters.filter(sent_at__isnull=True)
        items, pagination = selectors.paginate(newsletters, query["page"], query["limit"])
        return self.respond(
            [item.as_dict() for item in items],
            pagination=pagination,
            stats=selectors.newsletter_stats(),
        )

    def post(self, request):
        self.require_role(Role.ADMIN)
        data = self.validate(forms.NewsletterForm).cleaned_data
        item = Newsletter.objects.create(subject=data["subject"], content=data["content"])
        return self.respond(item.as_dict(), status=201)


class AdminNewsletterDetailView(ApiView):

    def get_newsletter(self, pk):
        self.require_role(Role.ADMIN)
        item = Newsletter.objects.filter(pk=pk).first()
        if item is None:
            raise NotFound("Newsletter not found")
        return item

    def get(self, request, pk):
        return self.respond(self.get_newsletter(pk).as_dict())

    def patch(self, request, pk):
        item = self.get_newsletter(pk)
        item.ensure_draft("Cannot edit a newsletter that has been sent")
        form = self.validate(forms.NewsletterForm, partial=True)
        if "subject" in form.data:
            item.subject = form.cleaned_data["subject"]
        if "content" in form.data:
            item.content = form.cleaned_data["content"] or {}
        item.save()
        return self.respond(item.as_dict())

    put = patch

    def delete(self, request, pk):
        self.get_newsletter(pk).delete()
        return self.respond({"message": "Newsletter deleted"})


class AdminNewsletterSendView(ApiView):

    def post(self, request):
        self.require_role(Role.ADMIN)
        data = self.validate(forms.SendNewsletterForm).cleaned_data
        item = Newsletter.objects.filter(pk=data["newsletterId"]).first()
        if item is None:
            raise NotFound("Newsletter not found")

        sender = newsletter.NewsletterSender()
        if data["testEmail"]:
            sender.send_test(item, data["testEmail"])
            return self.respond({"message": f"Test email sent to {data['testEmail']}"})

        result = sender.send(item)
        return self.respond(result.as_dict())


class AdminAnalyticsView(ApiView):

    def get(self, request):
        self.require_role(Role.ADMIN, "Admin access required")
        days = self.query(forms.AnalyticsForm)["days"] or 30
        return self.respond(selectors.site_analytics(days=days))
