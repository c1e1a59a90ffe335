from rest_framework import serializers

from apps.notifications.models import BranchNotification


class BranchNotificationSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source="order.order_number", read_only=True)
    delivery_name = serializers.CharField(source="delivery.name", read_only=True, default=None)

    class Meta:
        model = BranchNotification
        fields = [
            "id",
            "branch",
            "type",
            "order",
            "order_number",
            "delivery",
            "delivery_name",
            "title",
            "message",
            "read",
            "created_at",
        ]
        read_only_fields = fields
