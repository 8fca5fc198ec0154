"""
Management command to clear the global vendor cooldown.

Usage:
    python manage.py clear_global_cooldown
"""

from django.core.management.base import BaseCommand

from ingestion.services.cooldown import clear_global_cooldown


class Command(BaseCommand):
    help = 'Clear the global vendor cooldown so the next run claims tasks again'

    def handle(self, *args, **options):
        if clear_global_cooldown():
            self.stdout.write(self.style.SUCCESS('Global cooldown cleared'))
        else:
            self.stdout.write('No global cooldown was set')
