from __future__ import annotations

import logging
import secrets
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.hashers import check_password, make_password
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from market.exceptions import InvalidInput

from .models import PasswordResetCode
from .tasks import send_password_reset_code

logger = logging.getLogger(__name__)

User = get_user_model()

INVALID_CODE = "Invalid or expired code"


def issue_reset_code(email: str) -> None:
    """Store a fresh one-time code for the account and mail it.

    Unknown e-mail addresses are accepted silently so the endpoint cannot be
    used to probe for accounts.
    """

    user = User.objects.filter(email__iexact=email.strip()).first()
    if user is None:
        logger.info("password reset requested for unknown email")
        return

    code = f"{secrets.randbelow(10**6):06d}"
    PasswordResetCode.objects.update_or_create(
        user=user,
        defaults={
            "code_hash": make_password(code),
            "expires_at": timezone.now() + timedelta(minutes=settings.PASSWORD_RESET_CODE_MINUTES),
            "attempts": 0,
        },
    )
    send_password_reset_code.delay(user.id, code)
    logger.info("password reset code issued", extra={"user_id": user.id})


def _check_code(email: str, otp) -> PasswordResetCode:
    entry = PasswordResetCode.objects.select_related("user").filter(user__email__iexact=email.strip()).first()
    if entry is None or entry.is_expired():
        raise InvalidInput(INVALID_CODE)
    if entry.attempts >= settings.PASSWORD_RESET_MAX_ATTEMPTS:
        raise InvalidInput("Too many attempts; request a new code")
    if not check_password(str(otp), entry.code_hash):
        PasswordResetCode.objects.filter(pk=entry.pk).update(attempts=F("attempts") + 1)
        raise InvalidInput(INVALID_CODE)
    return entry


def verify_reset_code(email: str, otp) -> None:
    _check_code(email, otp)


def reset_password(email: str, otp, new_password: str) -> None:
    entry = _check_code(email, otp)
    user = entry.user
    with transaction.atomic():
        user.set_password(new_password)
        user.save(update_fields=["password"])
        entry.delete()
    logger.info("password reset completed", extra={"user_id": user.id})
