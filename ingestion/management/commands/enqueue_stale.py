"""
Management command to enqueue refresh tasks for stale products.

Usage:
    python manage.py enqueue_stale
    python manage.py enqueue_stale --tenant=my-site --no-seeds
"""

from django.core.management.base import BaseCommand

from ingestion.services.runs import stale_scan_run


class Command(BaseCommand):
    """Feed the work queue from stale catalog entries."""

    help = 'Enqueue refresh tasks for stale products (and missing seed items)'

    def add_arguments(self, parser):
        parser.add_argument('--tenant', type=str, help='Only scan this tenant slug')
        parser.add_argument(
            '--no-seeds',
            action='store_true',
            help='Skip enqueueing seed item ids',
        )

    def handle(self, *args, **options):
        results = stale_scan_run(
            tenant_slug=options.get('tenant'),
            include_seeds=not options['no_seeds'],
        )

        if not results:
            self.stdout.write(self.style.WARNING('No active tenants matched'))
            return

        for slug, result in results.items():
            if 'error' in result:
                self.stdout.write(self.style.ERROR(f'{slug}: {result["error"]}'))
            else:
                self.stdout.write(f'{slug}: {result}')

        total = sum(r.get('enqueued', 0) + r.get('seeds_enqueued', 0) for r in results.values())
        self.stdout.write(self.style.SUCCESS(f'Enqueued {total} tasks'))
