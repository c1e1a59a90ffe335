from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand

from apps.accounts.models import UserRole
from apps.points.models import PointsSettings


class Command(BaseCommand):
    help = "Create the role groups and the default points settings"

    def handle(self, *args, **options):
        for role in UserRole.values:
            group, created = Group.objects.get_or_create(name=role)
            action = "created" if created else "exists"
            self.stdout.write(self.style.SUCCESS(f"{group.name}: {action}"))

        policy = PointsSettings.load()
        self.stdout.write(
            self.style.SUCCESS(f"points settings: enabled={policy.enabled} conversion_rate={policy.conversion_rate}")
        )
