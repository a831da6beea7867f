from celery import shared_task
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail


@shared_task
def send_password_reset_code(user_id: int, code: str) -> bool:
    user = get_user_model().objects.filter(pk=user_id).first()
    if user is None or not user.email:
        return False

    minutes = settings.PASSWORD_RESET_CODE_MINUTES
    send_mail(
        subject="Your BookBazaar password reset code",
        message=f"Your password reset code is {code}. It expires in {minutes} minutes.",
        from_email=None,
        recipient_list=[user.email],
    )
    return True
