from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from .models import Branch, User


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    fieldsets = DjangoUserAdmin.fieldsets + (("Fryhub", {"fields": ("role", "branch", "phone")}),)
    list_display = DjangoUserAdmin.list_display + ("role", "branch")
    list_filter = DjangoUserAdmin.list_filter + ("role", "branch")


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "is_active", "created_at")
    search_fields = ("code", "name")
    list_filter = ("is_active",)
