from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models


class TimestampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class BookCondition(models.TextChoices):
    BRAND_NEW = "brand_new", "Brand New"
    LIKE_NEW = "like_new", "Like New"
    GOOD = "good", "Good"
    ACCEPTABLE = "acceptable", "Acceptable"
    WORN = "worn", "Worn"
    DAMAGED = "damaged", "Damaged"


def book_image_upload_to(instance: "Book", filename: str) -> str:
    return f"books/{instance.listed_by_id}/{filename}"


class Book(TimestampedModel):
    listed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="books")

    title = models.CharField(max_length=200)
    author = models.CharField(max_length=200)
    genre = models.CharField(max_length=80)
    condition = models.CharField(max_length=16, choices=BookCondition.choices)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    image = models.ImageField(upload_to=book_image_upload_to, blank=True)

    is_ordered = models.BooleanField(default=False)

    class Meta:
        indexes = [
            models.Index(fields=["genre", "created_at"], name="book_genre_created_idx"),
            models.Index(fields=["listed_by", "created_at"], name="book_owner_created_idx"),
        ]
        ordering = ["-created_at", "-id"]

    def clean(self):
        if self.price is not None and self.price <= Decimal("0"):
            raise ValidationError({"price": "Price must be positive"})

    def __str__(self) -> str:
        return self.title


class WishlistEntry(TimestampedModel):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="wishlist")
    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name="wishlisted_by")

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user", "book"], name="uq_wishlist_user_book"),
        ]
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"WishlistEntry({self.user_id}, {self.book_id})"
