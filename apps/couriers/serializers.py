from rest_framework import serializers

from apps.accounts.models import Branch
from apps.couriers.models import Courier, VehicleType


class CourierSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source="user.username", read_only=True)
    branch_name = serializers.CharField(source="branch.name", read_only=True)
    average_rating = serializers.SerializerMethodField()
    rating_count = serializers.SerializerMethodField()
    active_orders = serializers.SerializerMethodField()

    class Meta:
        model = Courier
        fields = [
            "id",
            "user",
            "username",
            "branch",
            "branch_name",
            "name",
            "phone",
            "delivery_code",
            "status",
            "is_active",
            "vehicle_type",
            "plate_number",
            "average_rating",
            "rating_count",
            "active_orders",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "delivery_code", "status", "is_active", "created_at", "updated_at"]

    def get_average_rating(self, obj):
        value = getattr(obj, "average_rating", None)
        if value is None:
            return None
        return round(float(value), 2)

    def get_rating_count(self, obj):
        return getattr(obj, "rating_count", 0)

    def get_active_orders(self, obj):
        return getattr(obj, "active_orders", 0)

    def validate_user(self, value):
        existing = Courier.objects.filter(user=value)
        if self.instance is not None:
            existing = existing.exclude(pk=self.instance.pk)
        if existing.exists():
            raise serializers.ValidationError("User already has a courier profile.")
        return value


class CourierRegisterSerializer(serializers.Serializer):
    branch = serializers.PrimaryKeyRelatedField(queryset=Branch.objects.filter(is_active=True))
    name = serializers.CharField(max_length=255)
    phone = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")
    vehicle_type = serializers.ChoiceField(choices=VehicleType.choices, default=VehicleType.MOTORCYCLE)
    plate_number = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")


class CourierDutySerializer(serializers.Serializer):
    is_active = serializers.BooleanField(required=False)
