from rest_framework import serializers

from apps.accounts.models import Branch
from apps.couriers.models import Courier
from apps.orders.models import (
    DelayCompensation,
    DeliveryRating,
    DeliveryType,
    Order,
    OrderCancellation,
    OrderDelay,
    OrderLine,
    OrderStatus,
    PaymentMethod,
)


class OrderLineSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderLine
        fields = ["product_id", "product_name", "quantity", "price", "points_used", "is_prize_redemption"]


class OrderLineInputSerializer(serializers.Serializer):
    product_id = serializers.CharField(max_length=64)
    product_name = serializers.CharField(max_length=255)
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, default=0)
    points_used = serializers.IntegerField(min_value=0, required=False, default=0)
    is_prize_redemption = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        if attrs["is_prize_redemption"] and attrs["points_used"] <= 0:
            raise serializers.ValidationError({"points_used": "Prize lines must use points."})
        return attrs


class OrderDelaySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderDelay
        fields = ["id", "courier", "delay_minutes", "reason", "compensation", "compensation_amount", "created_at"]
        read_only_fields = fields


class OrderCancellationSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderCancellation
        fields = ["id", "customer", "reason", "created_at"]
        read_only_fields = fields


class DeliveryRatingSerializer(serializers.ModelSerializer):
    class Meta:
        model = DeliveryRating
        fields = ["id", "courier", "customer", "rating", "reason", "created_at"]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    lines = OrderLineSerializer(many=True, read_only=True)
    branch_name = serializers.CharField(source="branch.name", read_only=True)
    delivery_name = serializers.CharField(source="delivery.name", read_only=True, default=None)
    delivery_code = serializers.CharField(source="delivery.delivery_code", read_only=True, default=None)
    has_pending_claim = serializers.BooleanField(read_only=True)
    delays = OrderDelaySerializer(many=True, read_only=True)
    cancellation = OrderCancellationSerializer(read_only=True, default=None)
    delivery_rating = DeliveryRatingSerializer(read_only=True, default=None)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "branch",
            "branch_name",
            "customer",
            "customer_name",
            "customer_phone",
            "delivery_type",
            "delivery_address",
            "payment_method",
            "status",
            "delivery",
            "delivery_name",
            "delivery_code",
            "assigned_by_branch",
            "delivery_requested_by",
            "request_approved",
            "has_pending_claim",
            "subtotal",
            "delivery_fee",
            "discount",
            "total",
            "total_points_redeemed",
            "is_prize_order",
            "points_awarded",
            "notes",
            "rejection_reason",
            "transfer_authorized",
            "transfer_authorized_by",
            "transfer_authorized_at",
            "admin_approved",
            "admin_approved_by",
            "admin_approved_at",
            "lines",
            "delays",
            "cancellation",
            "delivery_rating",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class OrderCreateSerializer(serializers.Serializer):
    branch = serializers.PrimaryKeyRelatedField(queryset=Branch.objects.all())
    delivery_type = serializers.ChoiceField(choices=DeliveryType.choices)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    delivery_address = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    delivery_fee = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, default=0)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, default=0)
    customer_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    customer_phone = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")
    notes = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    lines = OrderLineInputSerializer(many=True)

    def validate_lines(self, value):
        if not value:
            raise serializers.ValidationError("At least one line is required.")
        return value


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    delivery = serializers.PrimaryKeyRelatedField(queryset=Courier.objects.all(), required=False, allow_null=True)


class AssignDeliverySerializer(serializers.Serializer):
    delivery = serializers.PrimaryKeyRelatedField(queryset=Courier.objects.all())


class ClaimDecisionSerializer(serializers.Serializer):
    approved = serializers.BooleanField()


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255)


class DelayCreateSerializer(serializers.Serializer):
    delay_minutes = serializers.IntegerField(min_value=1, max_value=600)
    reason = serializers.CharField(max_length=255)
    compensation = serializers.ChoiceField(choices=DelayCompensation.choices, required=False, allow_blank=True, default="")
    compensation_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True, default=None
    )


class RatingCreateSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
