from __future__ import annotations

from django.conf import settings
from django.db import models

from market.models import Book, TimestampedModel


class DeliveryStatus(models.TextChoices):
    ORDER_PLACED = "order_placed", "Order placed"
    ITEM_COLLECTED = "item_collected", "Item collected"
    DELIVERED = "delivered", "Delivered"


# Forward-only lifecycle.
DELIVERY_SEQUENCE = [DeliveryStatus.ORDER_PLACED, DeliveryStatus.ITEM_COLLECTED, DeliveryStatus.DELIVERED]


class Order(TimestampedModel):
    book = models.ForeignKey(Book, on_delete=models.PROTECT, related_name="orders")
    buyer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="orders_as_buyer")
    # Copied from the book at order time; never re-resolved.
    seller = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="orders_as_seller")

    price = models.DecimalField(max_digits=10, decimal_places=2)
    delivery_fee = models.DecimalField(max_digits=10, decimal_places=2)
    total = models.DecimalField(max_digits=10, decimal_places=2)

    delivery_status = models.CharField(
        max_length=16,
        choices=DeliveryStatus.choices,
        default=DeliveryStatus.ORDER_PLACED,
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["book"], name="uq_order_book"),
        ]
        indexes = [
            models.Index(fields=["buyer", "created_at"], name="order_buyer_created_idx"),
            models.Index(fields=["delivery_status", "created_at"], name="order_status_created_idx"),
        ]
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"Order({self.id}, book={self.book_id})"
