"""
Publish scheduled posts whose time has come.

Run periodically, e.g. from cron:

    */5 * * * * python manage.py publish_scheduled_posts
"""
from django.core.management.base import BaseCommand
from django.utils import timezone

from blog_platform.models import Post


class Command(BaseCommand):
    help = "Publish scheduled posts whose scheduled time has passed."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List the posts that would be published without changing them.",
        )

    def handle(self, *args, **options):
        now = timezone.now()
        due = list(Post.objects.due_for_publication(now).order_by("scheduled_for"))

        for post in due:
            if options["dry_run"]:
                self.stdout.write(f"Would publish: {post.title}")
                continue
            # Published time is the scheduled time, not when the job ran
            post.publish(now=post.scheduled_for)
            self.stdout.write(f"Published: {post.title}")

        verb = "would be published" if options["dry_run"] else "published"
        self.stdout.write(self.style.SUCCESS(f"{len(due)} scheduled posts {verb}."))
