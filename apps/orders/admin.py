from django.contrib import admin

from apps.orders.models import DeliveryRating, Order, OrderCancellation, OrderDelay, OrderLine, OrderSequence


class OrderLineInline(admin.TabularInline):
    model = OrderLine
    extra = 0


class OrderDelayInline(admin.TabularInline):
    model = OrderDelay
    extra = 0
    can_delete = False
    readonly_fields = ("courier", "delay_minutes", "reason", "compensation", "compensation_amount", "created_at")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "order_number",
        "branch",
        "customer",
        "status",
        "delivery_type",
        "delivery",
        "total",
        "admin_approved",
        "created_at",
    )
    list_filter = ("status", "delivery_type", "payment_method", "branch")
    search_fields = ("order_number", "customer__username", "customer_name", "customer_phone")
    autocomplete_fields = ("customer", "delivery", "delivery_requested_by")
    readonly_fields = ("order_number", "status", "points_awarded", "created_at", "updated_at")
    inlines = [OrderLineInline, OrderDelayInline]


@admin.register(OrderCancellation)
class OrderCancellationAdmin(admin.ModelAdmin):
    list_display = ("order", "customer", "reason", "created_at")
    search_fields = ("order__order_number", "customer__username")


@admin.register(DeliveryRating)
class DeliveryRatingAdmin(admin.ModelAdmin):
    list_display = ("order", "courier", "rating", "created_at")
    list_filter = ("rating",)
    search_fields = ("order__order_number", "courier__name")


@admin.register(OrderSequence)
class OrderSequenceAdmin(admin.ModelAdmin):
    list_display = ("name", "last_value")
