from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .auth_views import (
    AdminLoginView,
    ForgotPasswordView,
    LoginView,
    LogoutView,
    RegisterView,
    ResetPasswordView,
    ThrottledTokenRefreshView,
    VerifyOtpView,
)
from .views import (
    AdminAnalyticsView,
    AdminBookViewSet,
    AdminOrderViewSet,
    BookViewSet,
    ConversationViewSet,
    HealthView,
    MeView,
    OrderViewSet,
    WishlistViewSet,
)

router = DefaultRouter()
router.register(r"books", BookViewSet, basename="book")
router.register(r"wishlist", WishlistViewSet, basename="wishlist")
router.register(r"conversations", ConversationViewSet, basename="conversation")
router.register(r"orders", OrderViewSet, basename="order")
router.register(r"admin/books", AdminBookViewSet, basename="admin-book")
router.register(r"admin/orders", AdminOrderViewSet, basename="admin-order")

urlpatterns = [
    path("health/", HealthView.as_view(), name="v1-health"),
    path("auth/register/", RegisterView.as_view(), name="v1-register"),
    path("auth/login/", LoginView.as_view(), name="v1-login"),
    path("auth/logout/", LogoutView.as_view(), name="v1-logout"),
    path("auth/token/refresh/", ThrottledTokenRefreshView.as_view(), name="v1-token-refresh"),
    path("auth/forgot-password/", ForgotPasswordView.as_view(), name="v1-forgot-password"),
    path("auth/verify-otp/", VerifyOtpView.as_view(), name="v1-verify-otp"),
    path("auth/reset-password/", ResetPasswordView.as_view(), name="v1-reset-password"),
    path("admin/login/", AdminLoginView.as_view(), name="v1-admin-login"),
    path("admin/analytics/", AdminAnalyticsView.as_view(), name="v1-admin-analytics"),
    path("me/", MeView.as_view(), name="v1-me"),
    path("", include(router.urls)),
]
