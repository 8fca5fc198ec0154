"""
Management command to run the work queue once.

Usage:
    python manage.py process_queue
    python manage.py process_queue --tenant=my-site --batch-size=5
"""

import logging

from django.core.management.base import BaseCommand

from ingestion.services.runs import process_queue_run

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Run one ingestion batch synchronously."""

    help = 'Claim and process one batch of queued tasks'

    def add_arguments(self, parser):
        parser.add_argument(
            '--tenant',
            type=str,
            help='Only process tasks of this tenant slug',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            help='Tasks to claim (default: INGESTION_QUEUE_BATCH_SIZE)',
        )

    def handle(self, *args, **options):
        summary = process_queue_run(
            focus_tenant=options.get('tenant'),
            batch_size=options.get('batch_size'),
        )

        if summary.skipped_reason:
            self.stdout.write(self.style.WARNING(f'Run skipped: {summary.skipped_reason}'))
            return

        self.stdout.write(
            self.style.SUCCESS(
                f'taken={summary.taken} done={summary.done} failed={summary.failed} '
                f'throttled={summary.throttled} deferred={summary.deferred}'
            )
        )
