"""
URL configuration for django-blog-platform.

Include in your project urls.py:

    path('', include('blog_platform.urls')),

All endpoints live under ``api/``.
"""
from django.urls import path

from . import views

app_name = "blog_platform"

urlpatterns = [
    path("api/health", views.HealthView.as_view(), name="health"),

    # Posts
    path("api/posts", views.PostListView.as_view(), name="post_list"),
    path("api/posts/<int:pk>", views.PostDetailView.as_view(), name="post_detail"),
    path("api/posts/slug/<slug:slug>", views.PostDetailView.as_view(), name="post_detail_slug"),
    path("api/posts/<int:pk>/publish", views.PostPublishView.as_view(), name="post_publish"),
    path("api/posts/<int:pk>/like", views.PostLikeView.as_view(), name="post_like"),
    path("api/posts/<int:pk>/bookmark", views.PostBookmarkView.as_view(), name="post_bookmark"),
    path("api/posts/<int:pk>/view", views.PostViewTrackingView.as_view(), name="post_view"),
    path("api/posts/<int:pk>/comments", views.PostCommentsView.as_view(), name="post_comments"),
    path("api/analytics/posts/<int:pk>", views.PostAnalyticsView.as_view(), name="post_analytics"),
    path(
        "api/analytics/dashboard",
        views.DashboardAnalyticsView.as_view(),
        name="dashboard_analytics",
    ),

    # Comments
    path("api/comments/<int:pk>", views.CommentDetailView.as_view(), name="comment_detail"),
    path("api/comments/<int:pk>/like", views.CommentLikeView.as_view(), name="comment_like"),

    # Categories, tags and search
    path("api/categories", views.CategoryListView.as_view(), name="category_list"),
    path("api/tags", views.TagListView.as_view(), name="tag_list"),
    path("api/search", views.SearchView.as_view(), name="search"),
    path(
        "api/search/suggestions",
        views.SearchSuggestionsView.as_view(),
        name="search_suggestions",
    ),

    # Newsletter
    path(
        "api/newsletter/subscribe",
        views.NewsletterSubscribeView.as_view(),
        name="newsletter_subscribe",
    ),
    path("api/newsletter/verify", views.NewsletterVerifyView.as_view(), name="newsletter_verify"),
    path(
        "api/newsletter/unsubscribe",
        views.NewsletterUnsubscribeView.as_view(),
        name="newsletter_unsubscribe",
    ),

    # Subscriptions
    path(
        "api/subscriptions/status",
        views.SubscriptionStatusView.as_view(),
        name="subscription_status",
    ),
    path(
        "api/subscriptions/webhook",
        views.PaymentWebhookView.as_view(),
        name="payment_webhook",
    ),

    # Account self-service
    path("api/user/profile", views.ProfileView.as_view(), name="profile"),
    path("api/user/password", views.PasswordChangeView.as_view(), name="password_change"),
    path("api/user/delete", views.AccountDeleteView.as_view(), name="account_delete"),

    # Uploads
    path("api/upload", views.UploadView.as_view(), name="upload"),

    # Admin
    path("api/admin/users", views.AdminAccountsView.as_view(), name="admin_users"),
    path("api/admin/analytics", views.AdminAnalyticsView.as_view(), name="admin_analytics"),
    path("api/admin/comments/<int:pk>", views.AdminCommentView.as_view(), name="admin_comment"),
    path("api/admin/subscribers", views.AdminSubscribersView.as_view(), name="admin_subscribers"),
    path(
        "api/admin/newsletter",
        views.AdminNewsletterListView.as_view(),
        name="admin_newsletter_list",
    ),
    path(
        "api/admin/newsletter/send",
        views.AdminNewsletterSendView.as_view(),
        name="admin_newsletter_send",
    ),
    path(
        "api/admin/newsletter/<int:pk>",
        views.AdminNewsletterDetailView.as_view(),
        name="admin_newsletter_detail",
    ),
]
