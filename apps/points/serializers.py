from rest_framework import serializers

from apps.points.models import PointsEntry, PointsSettings, UserPoints


class PointsEntrySerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source="order.order_number", read_only=True, default=None)

    class Meta:
        model = PointsEntry
        fields = ["id", "entry_type", "points_delta", "order", "order_number", "note", "created_at"]
        read_only_fields = fields


class UserPointsSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source="user.username", read_only=True)
    recent_entries = serializers.SerializerMethodField()

    class Meta:
        model = UserPoints
        fields = ["user", "username", "available_points", "total_points", "last_updated", "recent_entries"]
        read_only_fields = fields

    def get_recent_entries(self, obj):
        entries = obj.user.points_entries.select_related("order")[:20]
        return PointsEntrySerializer(entries, many=True).data


class PointsAdjustmentSerializer(serializers.Serializer):
    amount = serializers.IntegerField(min_value=1)
    note = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class PointsSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = PointsSettings
        fields = ["enabled", "conversion_rate", "redeemable_categories", "updated_at"]
        read_only_fields = ["updated_at"]

    def validate_conversion_rate(self, value):
        if value <= 0:
            raise serializers.ValidationError("conversion_rate must be greater than 0.")
        return value

    def validate_redeemable_categories(self, value):
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise serializers.ValidationError("redeemable_categories must be a list of category names.")
        return value
