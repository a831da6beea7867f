from datetime import timedelta
from urllib.parse import urlencode
from unittest import mock

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core import mail
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase
from rest_framework_simplejwt.tokens import AccessToken

from accounts.models import PasswordResetCode
from accounts.tasks import send_password_reset_code
from market.models import Book
from messaging.models import Conversation, Message
from orders.models import Order

from .factories import make_book, make_user

User = get_user_model()


class RegisterAndLoginTests(APITestCase):
    def test_register_issues_session(self):
        r = self.client.post(
            reverse("v1-register"),
            {"username": "newreader", "email": "New@Example.com", "password": "secret1"},
            format="json",
        )
        self.assertEqual(r.status_code, status.HTTP_201_CREATED)
        self.assertEqual(r.data["user"]["username"], "newreader")
        self.assertEqual(r.data["user"]["email"], "new@example.com")
        self.assertFalse(r.data["user"]["is_admin"])
        self.assertIn("access", r.data)
        self.assertIn("refresh", r.data)
        self.assertTrue(r.cookies[settings.AUTH_COOKIE_NAME]["httponly"])

    def test_register_rejects_duplicates_and_weak_input(self):
        make_user("taken")

        r = self.client.post(
            reverse("v1-register"),
            {"username": "someone", "email": "TAKEN@example.com", "password": "secret1"},
            format="json",
        )
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("email", r.data["fields"])

        r = self.client.post(
            reverse("v1-register"),
            {"username": "ab", "email": "ab@example.com", "password": "123"},
            format="json",
        )
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(set(r.data["fields"]), {"username", "password"})

    def test_login_by_email_or_username(self):
        user = make_user("reader")

        by_email = self.client.post(reverse("v1-login"), {"email": "READER@example.com", "password": "pass1234"}, format="json")
        self.assertEqual(by_email.status_code, status.HTTP_200_OK)
        self.assertEqual(by_email.data["user"]["id"], user.id)

        by_name = self.client.post(reverse("v1-login"), {"username": "reader", "password": "pass1234"}, format="json")
        self.assertEqual(by_name.status_code, status.HTTP_200_OK)

        claims = AccessToken(by_name.data["access"])
        self.assertEqual(int(claims["user_id"]), user.id)
        self.assertEqual(claims["username"], "reader")
        self.assertFalse(claims["is_admin"])

    def test_bad_credentials(self):
        make_user("reader")
        r = self.client.post(reverse("v1-login"), {"username": "reader", "password": "nope"}, format="json")
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(r.data["error"], "invalid_input")
        self.assertEqual(r.data["message"], "Invalid credentials")

    def test_cookie_and_bearer_authentication(self):
        make_user("reader")
        login = self.client.post(reverse("v1-login"), {"username": "reader", "password": "pass1234"}, format="json")

        # The login response left the session cookie on the client.
        r = self.client.get(reverse("v1-me"))
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(r.data["username"], "reader")

        self.client.cookies.clear()
        self.assertEqual(self.client.get(reverse("v1-me")).status_code, status.HTTP_401_UNAUTHORIZED)

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {login.data['access']}")
        self.assertEqual(self.client.get(reverse("v1-me")).status_code, status.HTTP_200_OK)

    def test_stale_cookie_leaves_public_endpoints_usable(self):
        self.client.cookies[settings.AUTH_COOKIE_NAME] = "not-a-token"
        self.assertEqual(self.client.get(reverse("book-list")).status_code, status.HTTP_200_OK)
        self.assertEqual(self.client.get(reverse("v1-me")).status_code, status.HTTP_401_UNAUTHORIZED)

    def test_logout_clears_cookie(self):
        make_user("reader")
        self.client.post(reverse("v1-login"), {"username": "reader", "password": "pass1234"}, format="json")

        r = self.client.post(reverse("v1-logout"))
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(r.cookies[settings.AUTH_COOKIE_NAME].value, "")
        self.assertEqual(self.client.get(reverse("v1-me")).status_code, status.HTTP_401_UNAUTHORIZED)

    def test_refresh_returns_new_access_token(self):
        make_user("reader")
        login = self.client.post(reverse("v1-login"), {"username": "reader", "password": "pass1234"}, format="json")

        r = self.client.post(reverse("v1-token-refresh"), {"refresh": login.data["refresh"]}, format="json")
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(AccessToken(r.data["access"])["username"], "reader")

    def test_admin_login_requires_staff(self):
        make_user("reader")
        make_user("boss", staff=True)

        r = self.client.post(reverse("v1-admin-login"), {"username": "reader", "password": "pass1234"}, format="json")
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)

        r = self.client.post(reverse("v1-admin-login"), {"username": "boss", "password": "pass1234"}, format="json")
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertTrue(r.data["user"]["is_admin"])
        self.assertTrue(AccessToken(r.data["access"])["is_admin"])


class PasswordResetTests(APITestCase):
    def setUp(self):
        self.user = make_user("reader")

    def _request_code(self, email="reader@example.com"):
        with mock.patch("accounts.services.send_password_reset_code") as task:
            r = self.client.post(reverse("v1-forgot-password"), {"email": email}, format="json")
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        return task.delay

    def test_unknown_email_answers_the_same(self):
        delay = self._request_code("nobody@example.com")
        delay.assert_not_called()
        self.assertFalse(PasswordResetCode.objects.exists())

    def test_full_reset_flow(self):
        delay = self._request_code()
        delay.assert_called_once()
        user_id, code = delay.call_args.args
        self.assertEqual(user_id, self.user.id)
        self.assertRegex(code, r"^\d{6}$")
        self.assertNotEqual(PasswordResetCode.objects.get(user=self.user).code_hash, code)

        r = self.client.post(reverse("v1-verify-otp"), {"email": "reader@example.com", "otp": code}, format="json")
        self.assertEqual(r.status_code, status.HTTP_200_OK)

        r = self.client.post(
            reverse("v1-reset-password"),
            {"email": "reader@example.com", "otp": code, "password": "brandnew1"},
            format="json",
        )
        self.assertEqual(r.status_code, status.HTTP_200_OK)

        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password("brandnew1"))
        self.assertFalse(PasswordResetCode.objects.exists())

        # A consumed code cannot be replayed.
        r = self.client.post(reverse("v1-verify-otp"), {"email": "reader@example.com", "otp": code}, format="json")
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)

    def test_wrong_codes_are_counted_and_capped(self):
        code = self._request_code().call_args.args[1]
        wrong = "000000" if code != "000000" else "111111"

        for _ in range(settings.PASSWORD_RESET_MAX_ATTEMPTS):
            r = self.client.post(reverse("v1-verify-otp"), {"email": "reader@example.com", "otp": wrong}, format="json")
            self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)

        r = self.client.post(reverse("v1-verify-otp"), {"email": "reader@example.com", "otp": code}, format="json")
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("Too many attempts", r.data["message"])

    def test_expired_code_is_rejected(self):
        code = self._request_code().call_args.args[1]
        PasswordResetCode.objects.filter(user=self.user).update(expires_at=timezone.now() - timedelta(seconds=1))

        r = self.client.post(reverse("v1-verify-otp"), {"email": "reader@example.com", "otp": code}, format="json")
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(r.data["message"], "Invalid or expired code")

    def test_reset_task_sends_mail(self):
        self.assertTrue(send_password_reset_code(self.user.id, "123456"))
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn("123456", mail.outbox[0].body)
        self.assertEqual(mail.outbox[0].to, ["reader@example.com"])

        self.assertFalse(send_password_reset_code(999999, "123456"))


class CookieSessionCsrfTests(APITestCase):
    """The session cookie alone must not let a cross-site form act for the user."""

    def setUp(self):
        self.client = APIClient(enforce_csrf_checks=True)
        self.seller = make_user("seller")
        self.buyer = make_user("buyer")
        self.book = make_book(self.seller)
        r = self.client.post(reverse("v1-login"), {"username": "buyer", "password": "pass1234"}, format="json")
        self.assertEqual(r.status_code, status.HTTP_200_OK)

    def _form_post(self, url, data):
        return self.client.post(url, urlencode(data), content_type="application/x-www-form-urlencoded")

    def test_form_order_with_cookie_and_no_csrf_token_is_rejected(self):
        r = self._form_post(reverse("order-list"), {"book_id": self.book.id})

        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)
        self.assertIn("CSRF", r.data["message"])
        self.assertEqual(Order.objects.count(), 0)
        self.book.refresh_from_db()
        self.assertFalse(self.book.is_ordered)

    def test_form_conversation_and_message_posts_are_rejected(self):
        r = self._form_post(reverse("conversation-list"), {"book_id": self.book.id})
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(Conversation.objects.exists())

        conversation = Conversation.objects.create(book=self.book, buyer=self.buyer, seller=self.seller)
        r = self._form_post(reverse("conversation-messages", kwargs={"pk": conversation.pk}), {"text": "hi"})
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(Message.objects.exists())

    def test_multipart_book_upload_with_cookie_needs_csrf(self):
        r = self.client.post(
            reverse("book-list"),
            {"title": "Emma", "author": "Jane Austen", "genre": "Classic", "condition": "good", "price": "80.00"},
            format="multipart",
        )
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(Book.objects.filter(title="Emma").exists())

    def test_json_request_with_cookie_is_accepted(self):
        r = self.client.post(reverse("order-list"), {"book_id": self.book.id}, format="json")

        self.assertEqual(r.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Order.objects.get().buyer_id, self.buyer.id)

    def test_form_bodies_are_unsupported_outside_book_uploads(self):
        # With a Bearer header there is no cookie to ride on; the body type itself is refused.
        access = self.client.post(
            reverse("v1-login"), {"username": "buyer", "password": "pass1234"}, format="json"
        ).data["access"]
        bearer = APIClient()
        bearer.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")

        r = bearer.post(
            reverse("order-list"), urlencode({"book_id": self.book.id}), content_type="application/x-www-form-urlencoded"
        )
        self.assertEqual(r.status_code, status.HTTP_415_UNSUPPORTED_MEDIA_TYPE)
        self.assertEqual(Order.objects.count(), 0)
