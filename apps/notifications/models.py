import uuid

from django.core.exceptions import ValidationError
from django.db import models


class NotificationType(models.TextChoices):
    ORDER_CLAIM_REQUEST = "order_claim_request", "Order claim request"
    ORDER_REJECTED = "order_rejected", "Order rejected"
    ORDER_CANCELLED = "order_cancelled", "Order cancelled"
    ORDER_DELAYED = "order_delayed", "Order delayed"
    DELIVERY_COMPLETED = "delivery_completed", "Delivery completed"


class BranchNotification(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    branch = models.ForeignKey("accounts.Branch", on_delete=models.CASCADE, related_name="notifications")
    type = models.CharField(max_length=32, choices=NotificationType.choices)
    order = models.ForeignKey("orders.Order", on_delete=models.CASCADE, related_name="notifications")
    delivery = models.ForeignKey(
        "couriers.Courier",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notifications",
    )
    title = models.CharField(max_length=120)
    message = models.CharField(max_length=500)
    read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["branch", "read", "created_at"], name="notif_branch_read_idx"),
        ]

    def __str__(self):
        return f"{self.type}: {self.title}"

    def save(self, *args, **kwargs):
        # Notices are append-only; only the read flag may be flipped afterwards.
        if not self._state.adding:
            update_fields = kwargs.get("update_fields")
            if update_fields is None or set(update_fields) - {"read"}:
                raise ValidationError("Branch notifications only allow updating the read flag.")
        super().save(*args, **kwargs)
