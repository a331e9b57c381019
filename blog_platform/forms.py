"""
Forms validating JSON request bodies and query strings.

Field names follow the API's camelCase keys so a decoded body can be
bound directly.
"""
from django import forms
from django.core.validators import RegexValidator

from .conf import blog_settings
from .models import Category, MediaLibrary, Post
from .roles import Role


class ListField(forms.JSONField):
    """A JSON array of strings or ids."""

    def to_python(self, value):
        value = super().to_python(value)
        if value is None:
            return []
        if not isinstance(value, list) or not all(isinstance(item, (str, int)) for item in value):
            raise forms.ValidationError("Enter a list of values.")
        return value


class PageForm(forms.Form):
    page = forms.IntegerField(min_value=1, required=False)
    limit = forms.IntegerField(min_value=1, max_value=blog_settings.MAX_PAGE_SIZE, required=False)

    def clean_page(self):
        return self.cleaned_data["page"] or 1


class PostListForm(PageForm):
    status = forms.ChoiceField(choices=Post.Status.choices, required=False)
    authorId = forms.IntegerField(required=False)
    categoryId = forms.IntegerField(required=False)
    search = forms.CharField(required=False)
    sortBy = forms.ChoiceField(
        choices=[("createdAt", "createdAt"), ("publishedAt", "publishedAt"), ("title", "title")],
        required=False,
    )
    sortOrder = forms.ChoiceField(choices=[("asc", "asc"), ("desc", "desc")], required=False)


class SearchForm(PageForm):
    q = forms.CharField(required=False)
    category = forms.CharField(required=False)
    tag = forms.CharField(required=False)


class PostForm(forms.Form):
    """
    Create or update a post.

    With ``partial=True`` every field is optional and only keys present
    in the body are applied.
    """

    title = forms.CharField(max_length=200)
    subtitle = forms.CharField(max_length=500, required=False)
    content = forms.JSONField(required=False)
    coverImage = forms.URLField(required=False)
    isPremium = forms.BooleanField(required=False)
    categories = ListField(required=False)
    tags = ListField(required=False)
    metaTitle = forms.CharField(max_length=60, required=False)
    metaDescription = forms.CharField(max_length=160, required=False)
    status = forms.ChoiceField(choices=Post.Status.choices, required=False)
    scheduledFor = forms.DateTimeField(required=False)

    def __init__(self, *args, partial=False, **kwargs):
        super().__init__(*args, **kwargs)
        self.partial = partial
        if partial:
            for field in self.fields.values():
                field.required = False
            self.fields["isPremium"] = forms.NullBooleanField(required=False)

    def provided(self):
        """Cleaned values for the keys actually sent."""
        return {
            name: value
            for name, value in self.cleaned_data.items()
            if not self.partial or name in self.data
        }

    def clean_title(self):
        title = (self.cleaned_data.get("title") or "").strip()
        if self.partial and "title" in self.data and not title:
            raise forms.ValidationError("Title cannot be empty.")
        return title

    def clean_categories(self):
        ids = self.cleaned_data.get("categories") or []
        if not all(isinstance(pk, int) and not isinstance(pk, bool) for pk in ids):
            raise forms.ValidationError("Enter a list of category ids.")
        known = set(Category.objects.filter(pk__in=ids).values_list("pk", flat=True))
        unknown = [str(pk) for pk in ids if pk not in known]
        if unknown:
            raise forms.ValidationError(f"Unknown category ids: {', '.join(unknown)}.")
        return ids


class PublishForm(forms.Form):
    scheduledFor = forms.DateTimeField(required=False)


class CommentForm(forms.Form):
    content = forms.CharField(
        max_length=blog_settings.COMMENT_MAX_LENGTH,
        error_messages={"required": "Comment cannot be empty"},
    )
    parentId = forms.IntegerField(required=False)


class CategoryForm(forms.Form):
    name = forms.CharField(max_length=50)
    description = forms.CharField(max_length=200, required=False)
    color = forms.CharField(
        required=False,
        validators=[RegexValidator(r"^#[0-9a-fA-F]{6}$", "Enter a hex color such as #6366f1.")],
    )


class TagSearchForm(forms.Form):
    search = forms.CharField(required=False)


class AnalyticsForm(forms.Form):
    days = forms.IntegerField(min_value=1, max_value=365, required=False)


class SubscribeForm(forms.Form):
    email = forms.EmailField()
    name = forms.CharField(max_length=100, required=False)


class UnsubscribeForm(forms.Form):
    token = forms.CharField(required=False)
    email = forms.EmailField(required=False)

    def clean(self):
        cleaned_data = super().clean()
        if not cleaned_data.get("token") and not cleaned_data.get("email"):
            raise forms.ValidationError("Token or email is required.")
        return cleaned_data


class NewsletterForm(forms.Form):
    subject = forms.CharField(max_length=200)
    content = forms.JSONField()

    def __init__(self, *args, partial=False, **kwargs):
        super().__init__(*args, **kwargs)
        if partial:
            for field in self.fields.values():
                field.required = False


class NewsletterListForm(PageForm):
    status = forms.ChoiceField(
        choices=[("all", "all"), ("sent", "sent"), ("draft", "draft")],
        required=False,
    )


class SendNewsletterForm(forms.Form):
    newsletterId = forms.IntegerField()
    testEmail = forms.EmailField(required=False)


class AccountListForm(PageForm):
    search = forms.CharField(required=False)
    role = forms.ChoiceField(choices=[("all", "all")] + Role.choices, required=False)


class RoleChangeForm(forms.Form):
    userId = forms.IntegerField()
    role = forms.ChoiceField(choices=Role.choices)


class SubscriberListForm(PageForm):
    type = forms.ChoiceField(
        choices=[("paid", "paid"), ("newsletter", "newsletter")],
        required=False,
    )


class UploadForm(forms.Form):
    file = forms.FileField(error_messages={"required": "No file provided"})
    purpose = forms.ChoiceField(choices=MediaLibrary.Purpose.choices, required=False)


class ProfileForm(forms.Form):
    name = forms.CharField(max_length=100, error_messages={"required": "Name is required"})
    bio = forms.CharField(max_length=500, required=False)
    avatar = forms.URLField(required=False)


class PasswordChangeForm(forms.Form):
    currentPassword = forms.CharField(
        error_messages={"required": "Current password is required"},
        strip=False,
    )
    newPassword = forms.CharField(
        min_length=8,
        strip=False,
        validators=[RegexValidator(
            r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)",
            "Password must contain at least one uppercase letter, "
            "one lowercase letter, and one number",
        )],
    )
    confirmPassword = forms.CharField(strip=False)

    def clean(self):
        cleaned_data = super().clean()
        new_password = cleaned_data.get("newPassword")
        if new_password and new_password != cleaned_data.get("confirmPassword"):
            self.add_error("confirmPassword", "Passwords do not match")
        return cleaned_data


class AccountDeleteForm(forms.Form):
    CONFIRMATION = "DELETE MY ACCOUNT"

    password = forms.CharField(required=False, strip=False)
    confirmation = forms.CharField()

    def clean_confirmation(self):
        confirmation = self.cleaned_data["confirmation"]
        if confirmation != self.CONFIRMATION:
            raise forms.ValidationError(f'Type "{self.CONFIRMATION}" to confirm.')
        return confirmation
