"""
Read-side queries for the JSON API.

Each function runs its own queries and returns plain dicts ready to be
serialized, so views never walk ORM relations themselves.
"""
import math
from datetime import timedelta

from django.db.models import Count, Q
from django.db.models.functions import TruncDate
from django.utils import timezone

from .access import render_for
from .conf import blog_settings
from .models import Account, Category, Comment, CommentLike, Like, NewsletterSubscriber, Post
from .models import PostView, Subscription, Tag
from .roles import Role

SORT_FIELDS = {
    "createdAt": "created_at",
    "publishedAt": "published_at",
    "title": "title",
}

SUGGESTION_POSTS = 5
SUGGESTION_TERMS = 3


def isoformat(value):
    return value.isoformat() if value else None


def paginate(queryset, page=1, limit=None):
    """Slice ``queryset`` and return ``(items, pagination)``."""
    limit = min(limit or blog_settings.POSTS_PER_PAGE, blog_settings.MAX_PAGE_SIZE)
    page = max(page or 1, 1)
    total = queryset.count()
    offset = (page - 1) * limit
    items = list(queryset[offset:offset + limit])
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit),
    }
    return items, pagination


def empty_page(page=1, limit=None):
    limit = limit or blog_settings.POSTS_PER_PAGE
    return [], {"page": page, "limit": limit, "total": 0, "totalPages": 0}


# Posts

def _with_counts(queryset):
    return (
        queryset.select_related("author")
        .prefetch_related("categories", "tags")
        .annotate(
            comment_count=Count("comments", distinct=True),
            like_count=Count("likes", distinct=True),
            view_count=Count("views", distinct=True),
        )
    )


def post_summary(post):
    data = {
        "id": post.pk,
        "title": post.title,
        "subtitle": post.subtitle,
        "slug": post.slug,
        "excerpt": post.excerpt,
        "coverImage": post.cover_image or None,
        "status": post.status,
        "isPremium": post.is_premium,
        "readingTime": post.reading_time,
        "scheduledFor": isoformat(post.scheduled_for),
        "publishedAt": isoformat(post.published_at),
        "createdAt": isoformat(post.created_at),
        "updatedAt": isoformat(post.updated_at),
        "author": post.author.public_dict(),
        "categories": [category.as_dict() for category in post.categories.all()],
        "tags": [tag.as_dict() for tag in post.tags.all()],
    }
    if hasattr(post, "comment_count"):
        data["_count"] = {
            "comments": post.comment_count,
            "likes": post.like_count,
            "views": post.view_count,
        }
    return data


def post_detail(post, viewer, now=None):
    """
    Full post for a viewer already allowed to read it.

    Without premium access ``contentHtml`` is cut to a preview and the
    source document is withheld.
    """
    has_access, html = render_for(viewer, post, now)
    data = post_summary(post)
    data.update({
        "content": post.content if has_access else None,
        "contentHtml": html,
        "hasAccess": has_access,
        "metaTitle": post.meta_title,
        "metaDescription": post.meta_description,
        "likeCount": post.likes.count(),
        "commentCount": post.comments.count(),
    })
    if not viewer.is_anonymous:
        data["isLiked"] = post.likes.filter(account_id=viewer.user_id).exists()
        data["isBookmarked"] = post.bookmarks.filter(account_id=viewer.user_id).exists()
    return data


def list_posts(viewer, page=1, limit=None, status=None, author_id=None, category_id=None,
               search=None, sort_by="createdAt", sort_order="desc", now=None):
    """
    Posts visible to ``viewer``.

    Everyone sees live posts. Editors and admins see every status and may
    filter on it; authors see their own posts in any status when they
    list by their own id.
    """
    if viewer.has_role(Role.EDITOR) or (author_id and viewer.owns(author_id)):
        queryset = Post.objects.visible_to(viewer, now)
    else:
        queryset = Post.objects.live(now)

    if status and viewer.has_role(Role.EDITOR):
        queryset = queryset.filter(status=status)
    if author_id:
        queryset = queryset.filter(author_id=author_id)
    if category_id:
        queryset = queryset.filter(categories__id=category_id)
    if search:
        queryset = queryset.filter(Q(title__icontains=search) | Q(subtitle__icontains=search))

    order = SORT_FIELDS.get(sort_by, "created_at")
    if sort_order != "asc":
        order = "-" + order
    queryset = _with_counts(queryset.distinct()).order_by(order, "-pk")

    posts, pagination = paginate(queryset, page, limit)
    return [post_summary(post) for post in posts], pagination


def search_posts(query, page=1, limit=None, category=None, tag=None, now=None):
    """Live posts matching every word of ``query`` in title, subtitle or excerpt."""
    query = (query or "").strip()
    if len(query) < 2:
        return empty_page(page, limit)

    queryset = Post.objects.live(now)
    for word in query.split():
        queryset = queryset.filter(
            Q(title__icontains=word) | Q(subtitle__icontains=word) | Q(excerpt__icontains=word)
        )
    if category:
        queryset = queryset.filter(categories__slug=category)
    if tag:
        queryset = queryset.filter(tags__slug=tag)

    queryset = _with_counts(queryset.distinct()).order_by("-published_at", "-pk")
    posts, pagination = paginate(queryset, page, limit)
    return [post_summary(post) for post in posts], pagination


def search_suggestions(query, now=None):
    query = (query or "").strip()
    if len(query) < 2:
        return {"posts": [], "tags": [], "categories": []}

    posts = (
        Post.objects.live(now)
        .filter(title__icontains=query)
        .order_by("-published_at")
        .values("title", "slug")[:SUGGESTION_POSTS]
    )
    tags = Tag.objects.filter(name__icontains=query).values("name", "slug")[:SUGGESTION_TERMS]
    categories = (
        Category.objects.filter(name__icontains=query).values("name", "slug")[:SUGGESTION_TERMS]
    )
    return {
        "posts": [dict(item, type="post") for item in posts],
        "tags": [dict(item, type="tag") for item in tags],
        "categories": [dict(item, type="category") for item in categories],
    }


# Analytics

def count_by_day(queryset, field="created_at"):
    """``[{"date", "count"}]`` for rows of ``queryset`` grouped by calendar day."""
    rows = (
        queryset.annotate(date=TruncDate(field))
        .values("date")
        .annotate(count=Count("pk"))
        .order_by("date")
    )
    return [{"date": row["date"].isoformat(), "count": row["count"]} for row in rows]


def _with_engagement(posts):
    return posts.annotate(
        view_count=Count("views", distinct=True),
        like_count=Count("likes", distinct=True),
        comment_count=Count("comments", distinct=True),
    ).order_by("-view_count", "-pk")


def _engagement_dict(post):
    return {
        "id": post.pk,
        "title": post.title,
        "slug": post.slug,
        "views": post.view_count,
        "likes": post.like_count,
        "comments": post.comment_count,
    }


def post_analytics(post, days=30, now=None):
    now = now or timezone.now()
    since = now - timedelta(days=days)
    views = post.views.all()
    return {
        "postId": post.pk,
        "title": post.title,
        "totalViews": views.count(),
        "viewsInRange": views.filter(created_at__gte=since).count(),
        "uniqueViewers": views.values("viewer_key").distinct().count(),
        "likes": post.likes.count(),
        "comments": post.comments.count(),
        "bookmarks": post.bookmarks.count(),
        "viewsByDay": count_by_day(views.filter(created_at__gte=since)),
    }


def dashboard_analytics(viewer, days=30, now=None):
    """
    Engagement across the viewer's own posts, or every post for admins.
    """
    now = now or timezone.now()
    since = now - timedelta(days=days)
    posts = Post.objects.all()
    if not viewer.has_role(Role.ADMIN):
        posts = posts.filter(author_id=viewer.user_id)

    views = PostView.objects.filter(post__in=posts)
    likes = Like.objects.filter(post__in=posts)
    comments = Comment.objects.filter(post__in=posts)
    top_posts = _with_engagement(posts.filter(status=Post.Status.PUBLISHED))[:5]
    recent_comments = comments.select_related("author", "post").order_by("-created_at", "-pk")[:5]

    return {
        "overview": {
            "totalPosts": posts.filter(status=Post.Status.PUBLISHED).count(),
            "totalViews": views.count(),
            "totalLikes": likes.count(),
            "totalComments": comments.count(),
        },
        "rangeStats": {
            "views": views.filter(created_at__gte=since).count(),
            "likes": likes.filter(created_at__gte=since).count(),
            "comments": comments.filter(created_at__gte=since).count(),
        },
        "viewsByDay": count_by_day(views.filter(created_at__gte=since)),
        "topPosts": [_engagement_dict(post) for post in top_posts],
        "recentComments": [
            {
                "id": comment.pk,
                "content": comment.content[:100] + ("..." if len(comment.content) > 100 else ""),
                "author": comment.author.public_dict(),
                "post": {
                    "id": comment.post.pk,
                    "title": comment.post.title,
                    "slug": comment.post.slug,
                },
                "createdAt": isoformat(comment.created_at),
            }
            for comment in recent_comments
        ],
    }


def site_analytics(days=30, now=None):
    now = now or timezone.now()
    since = now - timedelta(days=days)
    published = Q(posts__status=Post.Status.PUBLISHED)

    authors = (
        Account.objects.filter(role__in=[Role.AUTHOR, Role.EDITOR, Role.ADMIN])
        .annotate(
            post_count=Count("posts", filter=published, distinct=True),
            total_views=Count("posts__views", filter=published, distinct=True),
            total_likes=Count("posts__likes", filter=published, distinct=True),
        )
        .order_by("-total_views", "pk")[:10]
    )
    top_posts = _with_engagement(
        Post.objects.filter(status=Post.Status.PUBLISHED).select_related("author")
    )[:10]

    return {
        "users": {
            "total": Account.objects.count(),
            "new": Account.objects.filter(date_joined__gte=since).count(),
            "subscribers": NewsletterSubscriber.objects.verified().count(),
            "paidSubscribers": Subscription.objects.filter(
                tier=Subscription.Tier.PAID, current_period_end__gt=now
            ).count(),
        },
        "content": {
            "totalPosts": Post.objects.count(),
            "publishedPosts": Post.objects.filter(status=Post.Status.PUBLISHED).count(),
            "totalViews": PostView.objects.count(),
            "totalComments": Comment.objects.count(),
        },
        "userGrowth": count_by_day(
            Account.objects.filter(date_joined__gte=since), field="date_joined"
        ),
        "viewsByDay": count_by_day(PostView.objects.filter(created_at__gte=since)),
        "topAuthors": [
            dict(
                author.public_dict(),
                postCount=author.post_count,
                totalViews=author.total_views,
                totalLikes=author.total_likes,
            )
            for author in authors
        ],
        "topPosts": [
            dict(_engagement_dict(post), author=post.author.public_dict()) for post in top_posts
        ],
    }


# Taxonomy

def _live_posts(now=None):
    return Count(
        "posts",
        filter=Q(
            posts__status=Post.Status.PUBLISHED,
            posts__published_at__lte=now or timezone.now(),
        ),
    )


def list_categories(now=None):
    categories = Category.objects.annotate(live_posts=_live_posts(now))
    return [dict(category.as_dict(), postCount=category.live_posts) for category in categories]


def list_tags(search=None, limit=50, now=None):
    tags = Tag.objects.annotate(live_posts=_live_posts(now))
    if search:
        tags = tags.filter(name__icontains=search)
    tags = tags.order_by("-live_posts", "name")[:limit]
    return [dict(tag.as_dict(), postCount=tag.live_posts) for tag in tags]


# Comments

def comment_dict(comment, liked_ids, like_counts):
    return {
        "id": comment.pk,
        "content": comment.content,
        "isEdited": comment.is_edited,
        "parentId": comment.parent_id,
        "createdAt": isoformat(comment.created_at),
        "updatedAt": isoformat(comment.updated_at),
        "author": comment.author.public_dict(),
        "likeCount": like_counts.get(comment.pk, 0),
        "isLiked": comment.pk in liked_ids,
    }


def list_comments(post, viewer, page=1, limit=None):
    """Top-level comments newest first, each with its replies oldest first."""
    limit = limit or blog_settings.COMMENTS_PER_PAGE
    top_level = (
        Comment.objects.filter(post=post, parent__isnull=True)
        .select_related("author")
        .order_by("-created_at", "-pk")
    )
    comments, pagination = paginate(top_level, page, limit)

    replies = {}
    reply_rows = (
        Comment.objects.filter(parent__in=comments)
        .select_related("author")
        .order_by("created_at", "pk")
    )
    for reply in reply_rows:
        replies.setdefault(reply.parent_id, []).append(reply)

    ids = [comment.pk for comment in comments] + [
        reply.pk for thread in replies.values() for reply in thread
    ]
    like_counts = dict(
        CommentLike.objects.filter(comment_id__in=ids)
        .values_list("comment_id")
        .annotate(count=Count("id"))
    )
    liked_ids = set()
    if not viewer.is_anonymous:
        liked_ids = set(
            CommentLike.objects.filter(
                account_id=viewer.user_id, comment_id__in=ids
            ).values_list("comment_id", flat=True)
        )

    data = []
    for comment in comments:
        item = comment_dict(comment, liked_ids, like_counts)
        item["replies"] = [
            comment_dict(reply, liked_ids, like_counts) for reply in replies.get(comment.pk, [])
        ]
        data.append(item)
    return data, pagination


# Admin

def account_dict(account, now=None):
    subscription = getattr(account, "subscription", None)
    return {
        "id": account.pk,
        "username": account.username,
        "name": account.display_name,
        "email": account.email,
        "avatar": account.avatar or None,
        "role": account.role,
        "subscription": subscription.tier if subscription else Subscription.Tier.FREE,
        "subscriptionActive": subscription.is_active(now) if subscription else False,
        "postsCount": getattr(account, "posts_count", 0),
        "commentsCount": getattr(account, "comments_count", 0),
        "createdAt": isoformat(account.date_joined),
    }


def list_accounts(page=1, limit=20, search=None, role=None, now=None):
    accounts = Account.objects.select_related("subscription").annotate(
        posts_count=Count("posts", distinct=True),
        comments_count=Count("comments", distinct=True),
    )
    if search:
        accounts = accounts.filter(
            Q(username__icontains=search)
            | Q(first_name__icontains=search)
            | Q(last_name__icontains=search)
            | Q(email__icontains=search)
        )
    if role and role != "all":
        accounts = accounts.filter(role=role)
    accounts, pagination = paginate(accounts.order_by("-date_joined", "-pk"), page, limit)
    return [account_dict(account, now) for account in accounts], pagination


def list_paid_subscribers(page=1, limit=20, now=None):
    now = now or timezone.now()
    subscriptions = (
        Subscription.objects.filter(tier=Subscription.Tier.PAID, current_period_end__gt=now)
        .select_related("account")
        .order_by("-created_at", "-pk")
    )
    subscriptions, pagination = paginate(subscriptions, page, limit)
    data = [
        {
            "id": subscription.account.pk,
            "name": subscription.account.display_name,
            "email": subscription.account.email,
            "subscription": subscription.status_dict(now),
        }
        for subscription in subscriptions
    ]
    return data, pagination


def list_newsletter_subscribers(page=1, limit=20):
    subscribers, pagination = paginate(
        NewsletterSubscriber.objects.order_by("-created_at", "-pk"), page, limit
    )
    return [subscriber.as_dict() for subscriber in subscribers], pagination


def newsletter_stats():
    return {
        "totalSubscribers": NewsletterSubscriber.objects.count(),
        "verifiedSubscribers": NewsletterSubscriber.objects.verified().count(),
    }


def profile_dict(account, now=None):
    subscription = getattr(account, "subscription", None)
    return {
        "id": account.pk,
        "username": account.username,
        "name": account.display_name,
        "email": account.email,
        "bio": account.bio,
        "avatar": account.avatar or None,
        "role": account.role,
        "createdAt": isoformat(account.date_joined),
        "subscription": subscription.status_dict(now) if subscription else None,
    }
