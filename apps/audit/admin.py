from django.contrib import admin

from apps.audit.models import AuditLog


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("action", "entity_type", "entity_id", "actor", "branch", "created_at")
    list_filter = ("action", "entity_type", "branch")
    search_fields = ("entity_id", "actor__username")
    readonly_fields = ("actor", "branch", "action", "entity_type", "entity_id", "payload", "created_at")

    def has_add_permission(self, request):
        return False
