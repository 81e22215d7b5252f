"""
Delete expired messages and their attachments.

Run hourly from cron or the platform scheduler:
    python manage.py clear_old_messages
"""

from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from chat.messaging import clear_old_messages


class Command(BaseCommand):
    help = "Delete messages older than the retention window, in batches"

    def add_arguments(self, parser):
        parser.add_argument(
            '--hours',
            type=int,
            default=settings.CHAT_MESSAGE_RETENTION_HOURS,
            help="Retention window in hours",
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=settings.CHAT_RETENTION_BATCH_SIZE,
            help="Messages deleted per batch",
        )

    def handle(self, *args, **options):
        if options['hours'] < 0:
            raise CommandError("--hours must not be negative")
        if options['batch_size'] < 1:
            raise CommandError("--batch-size must be positive")

        deleted = clear_old_messages(
            max_age=timedelta(hours=options['hours']),
            batch_size=options['batch_size'],
        )
        self.stdout.write(self.style.SUCCESS(f"Deleted {deleted} messages"))
