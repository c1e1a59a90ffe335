import uuid

from django.conf import settings
from django.db import models


class PointsSettings(models.Model):
    id = models.PositiveSmallIntegerField(primary_key=True, default=1, editable=False)
    enabled = models.BooleanField(default=True)
    conversion_rate = models.PositiveIntegerField(default=10)
    redeemable_categories = models.JSONField(default=list, blank=True)
    updated_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "points settings"
        constraints = [
            models.CheckConstraint(condition=models.Q(conversion_rate__gt=0), name="points_conversion_rate_gt_zero"),
        ]

    def __str__(self):
        return f"enabled={self.enabled} rate={self.conversion_rate}"

    @classmethod
    def load(cls):
        instance, _ = cls.objects.get_or_create(
            pk=1,
            defaults={
                "enabled": settings.POINTS_ENABLED,
                "conversion_rate": settings.POINTS_CONVERSION_RATE,
            },
        )
        return instance


class UserPoints(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField("accounts.User", on_delete=models.CASCADE, related_name="points")
    available_points = models.PositiveIntegerField(default=0)
    total_points = models.PositiveIntegerField(default=0)
    last_updated = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "user points"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(available_points__lte=models.F("total_points")),
                name="points_available_lte_total",
            ),
        ]

    def __str__(self):
        return f"{self.user_id}: {self.available_points}/{self.total_points}"


class PointsEntryType(models.TextChoices):
    EARN = "EARN", "Earn"
    REDEEM = "REDEEM", "Redeem"
    ADJUSTMENT = "ADJUSTMENT", "Adjustment"


class PointsEntry(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey("accounts.User", on_delete=models.CASCADE, related_name="points_entries")
    entry_type = models.CharField(max_length=16, choices=PointsEntryType.choices)
    points_delta = models.IntegerField()
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="points_entries",
    )
    note = models.CharField(max_length=255, blank=True)
    created_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name_plural = "points entries"
        constraints = [
            models.UniqueConstraint(
                fields=["order", "entry_type"],
                condition=models.Q(entry_type="EARN"),
                name="points_entry_single_earn_per_order",
            ),
        ]
