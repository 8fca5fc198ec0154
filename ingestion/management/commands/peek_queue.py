"""
Management command to inspect the work queue.

Usage:
    python manage.py peek_queue
    python manage.py peek_queue --status=failed --tenant=my-site --limit=10
"""

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from ingestion.models import TaskStatus, Tenant
from ingestion.queue.work_queue import WorkQueue
from ingestion.services.cooldown import get_global_cooldown


class Command(BaseCommand):
    """Print queue counts, the global cooldown and recent tasks."""

    help = 'Show queue status counts and the most recent tasks of one status'

    def add_arguments(self, parser):
        parser.add_argument(
            '--status',
            type=str,
            default=TaskStatus.FAILED,
            choices=TaskStatus.values,
            help='Status to list (default: failed)',
        )
        parser.add_argument('--tenant', type=str, help='Tenant slug')
        parser.add_argument('--limit', type=int, default=20, help='Tasks to list (default: 20)')

    def handle(self, *args, **options):
        tenant = None
        if options.get('tenant'):
            tenant = Tenant.objects.filter(slug=options['tenant']).first()
            if tenant is None:
                raise CommandError(f"Unknown tenant '{options['tenant']}'")

        queue = WorkQueue()
        counts = queue.status_counts(tenant=tenant)
        self.stdout.write(' '.join(f'{status}={count}' for status, count in counts.items()))

        cooldown = get_global_cooldown()
        if cooldown and cooldown.is_active(timezone.now()):
            self.stdout.write(
                self.style.WARNING(f'Global cooldown until {cooldown.until.isoformat()}: {cooldown.reason}')
            )

        tasks = queue.tasks_by_status(options['status'], tenant=tenant, limit=options['limit'])
        for task in tasks:
            line = f'  {task.tenant.slug}:{task.item_id} attempts={task.attempts} updated={task.updated_at.isoformat()}'
            if task.error:
                line += f' error={task.error[:120]}'
            self.stdout.write(line)
