from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from market.models import TimestampedModel


class PasswordResetCode(TimestampedModel):
    """Hashed one-time code for the forgot-password flow (one live code per user)."""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="password_reset_code",
    )
    code_hash = models.CharField(max_length=128)
    expires_at = models.DateTimeField()
    attempts = models.PositiveSmallIntegerField(default=0)

    def is_expired(self, now=None) -> bool:
        return (now or timezone.now()) >= self.expires_at

    def __str__(self) -> str:
        return f"PasswordResetCode({self.user_id})"
