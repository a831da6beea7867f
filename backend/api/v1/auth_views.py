from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenRefreshView

from accounts.services import issue_reset_code, reset_password, verify_reset_code
from market.exceptions import Forbidden

from .authentication import clear_session_cookie, issue_tokens, set_session_cookie
from .serializers import (
    ForgotPasswordSerializer,
    LoginSerializer,
    RegisterSerializer,
    ResetPasswordSerializer,
    UserMeSerializer,
    VerifyOtpSerializer,
)


def _session_response(user, status_code=status.HTTP_200_OK) -> Response:
    tokens = issue_tokens(user)
    response = Response({"user": UserMeSerializer(user).data, **tokens}, status=status_code)
    set_session_cookie(response, tokens["access"])
    return response


class AuthThrottleMixin:
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"


class RegisterView(AuthThrottleMixin, APIView):
    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        return _session_response(user, status.HTTP_201_CREATED)


class LoginView(AuthThrottleMixin, APIView):
    admin_only = False

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.validated_data["user"]
        if self.admin_only and not user.is_staff:
            raise Forbidden("Admin access required")
        return _session_response(user)


class AdminLoginView(LoginView):
    admin_only = True


class LogoutView(AuthThrottleMixin, APIView):
    def post(self, request):
        response = Response({"message": "Logged out"})
        clear_session_cookie(response)
        return response


class ForgotPasswordView(AuthThrottleMixin, APIView):
    def post(self, request):
        serializer = ForgotPasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        issue_reset_code(serializer.validated_data["email"])
        return Response({"message": "If the account exists, a code has been sent"})


class VerifyOtpView(AuthThrottleMixin, APIView):
    def post(self, request):
        serializer = VerifyOtpSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        verify_reset_code(serializer.validated_data["email"], serializer.validated_data["otp"])
        return Response({"message": "Code verified"})


class ResetPasswordView(AuthThrottleMixin, APIView):
    def post(self, request):
        serializer = ResetPasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        reset_password(data["email"], data["otp"], data["password"])
        return Response({"message": "Password has been reset"})


class ThrottledTokenRefreshView(TokenRefreshView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"
