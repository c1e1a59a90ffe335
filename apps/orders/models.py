import uuid

from django.core.exceptions import ValidationError
from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    PREPARING = "preparing", "Preparing"
    READY = "ready", "Ready"
    DISPATCHED = "dispatched", "Dispatched"
    DELIVERED = "delivered", "Delivered"
    REJECTED = "rejected", "Rejected"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.REJECTED})
COURIER_ACTIVE_STATUSES = frozenset({OrderStatus.PREPARING, OrderStatus.DISPATCHED})

STATUS_PRIORITY = {
    OrderStatus.PENDING: 1,
    OrderStatus.CONFIRMED: 1,
    OrderStatus.PREPARING: 2,
    OrderStatus.READY: 3,
    OrderStatus.DISPATCHED: 4,
    OrderStatus.DELIVERED: 5,
    OrderStatus.REJECTED: 6,
}


class DeliveryType(models.TextChoices):
    PICKUP = "pickup", "Pickup"
    DELIVERY = "delivery", "Delivery"


class PaymentMethod(models.TextChoices):
    CASH = "cash", "Cash"
    TRANSFER = "transfer", "Transfer"


class DelayCompensation(models.TextChoices):
    REFUND = "refund", "Refund"
    COUPON = "coupon", "Coupon"


class OrderSequence(models.Model):
    name = models.CharField(max_length=32, primary_key=True)
    last_value = models.PositiveBigIntegerField(default=0)

    def __str__(self):
        return f"{self.name}={self.last_value}"


class Order(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_number = models.CharField(max_length=20, unique=True)
    branch = models.ForeignKey("accounts.Branch", on_delete=models.PROTECT, related_name="orders")
    customer = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="orders")
    customer_name = models.CharField(max_length=255, blank=True)
    customer_phone = models.CharField(max_length=50, blank=True)
    delivery_type = models.CharField(max_length=16, choices=DeliveryType.choices)
    delivery_address = models.CharField(max_length=255, blank=True)
    payment_method = models.CharField(max_length=16, choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    status = models.CharField(max_length=16, choices=OrderStatus.choices, default=OrderStatus.PENDING)

    delivery = models.ForeignKey(
        "couriers.Courier",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orders",
    )
    assigned_by_branch = models.BooleanField(default=False)
    delivery_requested_by = models.ForeignKey(
        "couriers.Courier",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="requested_orders",
    )
    request_approved = models.BooleanField(default=False)

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    delivery_fee = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_points_redeemed = models.PositiveIntegerField(default=0)
    is_prize_order = models.BooleanField(default=False)
    points_awarded = models.BooleanField(default=False)

    notes = models.CharField(max_length=255, blank=True)
    rejection_reason = models.CharField(max_length=255, blank=True)

    transfer_authorized = models.BooleanField(default=False)
    transfer_authorized_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    transfer_authorized_at = models.DateTimeField(null=True, blank=True)
    admin_approved = models.BooleanField(default=False)
    admin_approved_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    admin_approved_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["branch", "status"], name="order_branch_status_idx"),
            models.Index(fields=["delivery", "status"], name="order_delivery_status_idx"),
            models.Index(fields=["customer", "created_at"], name="order_customer_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(delivery__isnull=True) | models.Q(delivery_requested_by__isnull=True),
                name="order_claim_request_excludes_assignment",
            ),
            models.CheckConstraint(condition=models.Q(total__gte=0), name="order_total_gte_zero"),
        ]

    def __str__(self):
        return self.order_number

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    @property
    def has_pending_claim(self):
        return self.delivery_requested_by_id is not None and not self.request_approved


class OrderLine(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="lines")
    position = models.PositiveIntegerField(default=0)
    product_id = models.CharField(max_length=64)
    product_name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField()
    price = models.DecimalField(max_digits=12, decimal_places=2)
    points_used = models.PositiveIntegerField(default=0)
    is_prize_redemption = models.BooleanField(default=False)

    class Meta:
        ordering = ["position"]

    def clean(self):
        if self.quantity <= 0:
            raise ValidationError("quantity must be greater than 0")
        if self.price < 0:
            raise ValidationError("price must be greater than or equal to 0")


class ImmutableRecord(models.Model):
    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError(f"{self.__class__.__name__} records cannot be modified.")
        super().save(*args, **kwargs)


class OrderCancellation(ImmutableRecord):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.OneToOneField(Order, on_delete=models.CASCADE, related_name="cancellation")
    customer = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="order_cancellations")
    reason = models.CharField(max_length=255)
    created_at = models.DateTimeField(auto_now_add=True)


class OrderDelay(ImmutableRecord):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="delays")
    courier = models.ForeignKey("couriers.Courier", on_delete=models.PROTECT, related_name="reported_delays")
    delay_minutes = models.PositiveIntegerField()
    reason = models.CharField(max_length=255)
    compensation = models.CharField(max_length=16, choices=DelayCompensation.choices, blank=True)
    compensation_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]


class DeliveryRating(ImmutableRecord):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.OneToOneField(Order, on_delete=models.CASCADE, related_name="delivery_rating")
    courier = models.ForeignKey("couriers.Courier", on_delete=models.PROTECT, related_name="ratings")
    customer = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="delivery_ratings")
    rating = models.PositiveSmallIntegerField()
    reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=models.Q(rating__gte=1) & models.Q(rating__lte=5),
                name="delivery_rating_between_1_and_5",
            ),
        ]
