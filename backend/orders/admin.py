from django.contrib import admin

from .models import Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "book", "buyer", "seller", "total", "delivery_status", "created_at")
    list_filter = ("delivery_status",)
    search_fields = ("book__title", "buyer__username", "seller__username")
    readonly_fields = ("book", "buyer", "seller", "price", "delivery_fee", "total")
