from django.contrib import admin

from apps.notifications.models import BranchNotification


@admin.register(BranchNotification)
class BranchNotificationAdmin(admin.ModelAdmin):
    list_display = ("title", "type", "branch", "order", "delivery", "read", "created_at")
    list_filter = ("type", "read", "branch")
    search_fields = ("title", "message", "order__order_number")
    readonly_fields = ("branch", "type", "order", "delivery", "title", "message", "created_at")
