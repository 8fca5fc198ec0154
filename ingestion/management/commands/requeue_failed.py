"""
Management command to requeue failed tasks.

Usage:
    python manage.py requeue_failed
    python manage.py requeue_failed --reason=throttled --tenant=my-site --limit=50
"""

from django.core.management.base import BaseCommand, CommandError

from ingestion.models import Tenant
from ingestion.queue.work_queue import WorkQueue


class Command(BaseCommand):
    """Move failed tasks back to queued with a fresh retry budget."""

    help = 'Requeue failed tasks, optionally filtered by error text'

    def add_arguments(self, parser):
        parser.add_argument('--tenant', type=str, help='Only requeue tasks of this tenant slug')
        parser.add_argument(
            '--reason',
            type=str,
            help='Only requeue tasks whose error contains this text',
        )
        parser.add_argument(
            '--limit',
            type=int,
            default=200,
            help='Maximum tasks to requeue (default: 200)',
        )

    def handle(self, *args, **options):
        tenant = None
        if options.get('tenant'):
            tenant = Tenant.objects.filter(slug=options['tenant']).first()
            if tenant is None:
                raise CommandError(f"Unknown tenant '{options['tenant']}'")

        count = WorkQueue().requeue_failed(
            tenant=tenant,
            limit=options['limit'],
            reason_contains=options.get('reason'),
        )
        self.stdout.write(self.style.SUCCESS(f'Requeued {count} failed tasks'))
