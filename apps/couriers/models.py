import secrets
import uuid

from django.db import models
from rest_framework.exceptions import PermissionDenied


class CourierStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"


class VehicleType(models.TextChoices):
    MOTORCYCLE = "motorcycle", "Motorcycle"
    BICYCLE = "bicycle", "Bicycle"
    CAR = "car", "Car"
    OTHER = "other", "Other"


def generate_delivery_code():
    while True:
        code = f"{secrets.randbelow(10**6):06d}"
        if not Courier.objects.filter(delivery_code=code).exists():
            return code


class Courier(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField("accounts.User", on_delete=models.CASCADE, related_name="courier_profile")
    branch = models.ForeignKey("accounts.Branch", on_delete=models.PROTECT, related_name="couriers")
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=50, blank=True)
    delivery_code = models.CharField(max_length=16, unique=True)
    status = models.CharField(max_length=16, choices=CourierStatus.choices, default=CourierStatus.PENDING)
    is_active = models.BooleanField(default=False)
    vehicle_type = models.CharField(max_length=16, choices=VehicleType.choices, default=VehicleType.MOTORCYCLE)
    plate_number = models.CharField(max_length=32, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["branch", "status"], name="courier_branch_status_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.delivery_code})"

    def save(self, *args, **kwargs):
        if not self.delivery_code:
            self.delivery_code = generate_delivery_code()
        super().save(*args, **kwargs)

    @property
    def can_take_orders(self):
        return self.status == CourierStatus.APPROVED and self.is_active

    @classmethod
    def for_user(cls, user):
        courier = cls.objects.filter(user=user).first()
        if courier is None:
            raise PermissionDenied("El usuario no tiene perfil de repartidor.")
        return courier
