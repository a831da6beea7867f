from django.conf import settings
from rest_framework import exceptions
from rest_framework.authentication import CSRFCheck
from rest_framework.permissions import SAFE_METHODS
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken
from rest_framework_simplejwt.tokens import RefreshToken

# Content types a cross-site <form> can submit without a CORS preflight.
FORM_MEDIA_TYPES = frozenset({"application/x-www-form-urlencoded", "multipart/form-data", "text/plain"})


def _media_type(request) -> str:
    return (request.content_type or "").split(";")[0].strip().lower()


class CookieJWTAuthentication(JWTAuthentication):
    """Bearer header first, then the httpOnly session cookie set at login.

    A stale or malformed cookie leaves the request anonymous instead of failing
    it, so public listing endpoints keep working; protected endpoints then
    answer 401. An unsafe request carried by the cookie with a form body must
    pass Django's CSRF check.
    """

    def authenticate(self, request):
        if self.get_header(request) is not None:
            return super().authenticate(request)

        raw_token = request.COOKIES.get(settings.AUTH_COOKIE_NAME)
        if not raw_token:
            return None

        try:
            validated_token = self.get_validated_token(raw_token)
        except InvalidToken:
            return None

        if request.method not in SAFE_METHODS and _media_type(request) in FORM_MEDIA_TYPES:
            self.enforce_csrf(request)
        return self.get_user(validated_token), validated_token

    def enforce_csrf(self, request):
        def dummy_get_response(request):  # pragma: no cover
            return None

        check = CSRFCheck(dummy_get_response)
        check.process_request(request)
        reason = check.process_view(request, None, (), {})
        if reason:
            raise exceptions.PermissionDenied(f"CSRF Failed: {reason}")


def issue_tokens(user) -> dict:
    refresh = RefreshToken.for_user(user)
    refresh["username"] = user.username
    refresh["is_admin"] = bool(user.is_staff)
    return {"refresh": str(refresh), "access": str(refresh.access_token)}


def set_session_cookie(response, access_token: str) -> None:
    lifetime = settings.SIMPLE_JWT["ACCESS_TOKEN_LIFETIME"]
    response.set_cookie(
        settings.AUTH_COOKIE_NAME,
        access_token,
        max_age=int(lifetime.total_seconds()),
        httponly=True,
        secure=settings.AUTH_COOKIE_SECURE,
        samesite=settings.AUTH_COOKIE_SAMESITE,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(settings.AUTH_COOKIE_NAME, samesite=settings.AUTH_COOKIE_SAMESITE)
