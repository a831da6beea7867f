from django.contrib import admin

from .models import PasswordResetCode


@admin.register(PasswordResetCode)
class PasswordResetCodeAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "expires_at", "attempts", "created_at")
    readonly_fields = ("code_hash",)
