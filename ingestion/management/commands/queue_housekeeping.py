"""
Management command to run queue housekeeping.

Usage:
    python manage.py queue_housekeeping
    python manage.py queue_housekeeping --processing-ttl-min=30 --max-attempts=5
    python manage.py queue_housekeeping --tenant=my-site --sleep-others-days=14
    python manage.py queue_housekeeping --clear-cooldown
"""

from django.core.management.base import BaseCommand, CommandError

from ingestion.models import Tenant
from ingestion.services.runs import housekeeping_run


class Command(BaseCommand):
    """Release stuck tasks and fail exhausted ones."""

    help = 'Release stuck processing tasks and fail tasks that used up their attempts'

    def add_arguments(self, parser):
        parser.add_argument('--tenant', type=str, help='Scope to this tenant slug')
        parser.add_argument(
            '--processing-ttl-min',
            type=int,
            help='Minutes after which a processing task counts as stuck',
        )
        parser.add_argument('--max-attempts', type=int, help='Retry budget')
        parser.add_argument(
            '--sleep-others-days',
            type=int,
            default=0,
            help='Push queued tasks of other tenants this many days out (needs --tenant)',
        )
        parser.add_argument(
            '--clear-cooldown',
            action='store_true',
            help='Also clear the global cooldown',
        )

    def handle(self, *args, **options):
        if options['sleep_others_days'] and not options.get('tenant'):
            raise CommandError('--sleep-others-days requires --tenant')

        try:
            report = housekeeping_run(
                tenant_slug=options.get('tenant'),
                processing_ttl_minutes=options.get('processing_ttl_min'),
                max_attempts=options.get('max_attempts'),
                sleep_others_days=options['sleep_others_days'],
                clear_cooldown=options['clear_cooldown'],
            )
        except Tenant.DoesNotExist:
            raise CommandError(f"Unknown tenant '{options.get('tenant')}'")

        self.stdout.write(
            self.style.SUCCESS(
                f'released={report.released_stuck} failed={report.failed_exceeded} '
                f'slept={report.slept_non_focus} cleared_cooldown={report.cleared_global_cooldown}'
            )
        )
