from django.contrib import admin

from apps.couriers.models import Courier


@admin.register(Courier)
class CourierAdmin(admin.ModelAdmin):
    list_display = ("name", "delivery_code", "branch", "status", "is_active", "vehicle_type", "created_at")
    list_filter = ("status", "is_active", "vehicle_type", "branch")
    search_fields = ("name", "delivery_code", "user__username", "phone")
    readonly_fields = ("delivery_code", "created_at", "updated_at")
