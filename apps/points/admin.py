from django.contrib import admin

from apps.points.models import PointsEntry, PointsSettings, UserPoints


@admin.register(PointsSettings)
class PointsSettingsAdmin(admin.ModelAdmin):
    list_display = ("enabled", "conversion_rate", "updated_by", "updated_at")


@admin.register(UserPoints)
class UserPointsAdmin(admin.ModelAdmin):
    list_display = ("user", "available_points", "total_points", "last_updated")
    search_fields = ("user__username", "user__email")
    readonly_fields = ("available_points", "total_points", "last_updated")


@admin.register(PointsEntry)
class PointsEntryAdmin(admin.ModelAdmin):
    list_display = ("user", "entry_type", "points_delta", "order", "created_at")
    list_filter = ("entry_type",)
    search_fields = ("user__username", "order__order_number")
