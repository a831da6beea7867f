from unittest import mock

from django.db import IntegrityError, transaction
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from messaging import services
from messaging.models import Conversation, Message
from messaging.services import append_message, ensure_participant, get_or_create_conversation
from market.exceptions import Forbidden, NotFound

from .factories import make_book, make_user


class ConversationApiTests(APITestCase):
    def setUp(self):
        self.seller = make_user("seller")
        self.buyer = make_user("buyer")
        self.outsider = make_user("outsider")
        self.book = make_book(self.seller)
        self.list_url = reverse("conversation-list")

    def _open(self, user, book_id=None):
        self.client.force_authenticate(user)
        return self.client.post(self.list_url, {"book_id": book_id or self.book.id}, format="json")

    def test_requires_auth(self):
        r = self.client.get(self.list_url)
        self.assertEqual(r.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_open_is_idempotent_per_book_and_pair(self):
        r1 = self._open(self.buyer)
        self.assertEqual(r1.status_code, status.HTTP_201_CREATED)
        self.assertEqual(r1.data["book"]["id"], self.book.id)
        self.assertEqual(r1.data["buyer"]["id"], self.buyer.id)
        self.assertEqual(r1.data["seller"]["id"], self.seller.id)
        self.assertEqual({p["id"] for p in r1.data["participants"]}, {self.buyer.id, self.seller.id})
        self.assertEqual(r1.data["last_message"], "")

        r2 = self._open(self.buyer)
        self.assertEqual(r2.status_code, status.HTTP_200_OK)
        self.assertEqual(r2.data["id"], r1.data["id"])
        self.assertEqual(Conversation.objects.count(), 1)

    def test_different_buyers_get_different_conversations(self):
        first = self._open(self.buyer).data["id"]
        second = self._open(self.outsider).data["id"]
        self.assertNotEqual(first, second)
        self.assertEqual(Conversation.objects.filter(book=self.book).count(), 2)

    def test_owner_cannot_open_conversation_on_own_listing(self):
        r = self._open(self.seller)
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(r.data["message"], "You cannot chat about your own listing")
        self.assertEqual(Conversation.objects.count(), 0)

    def test_book_reference_is_validated(self):
        self.client.force_authenticate(self.buyer)

        missing = self.client.post(self.list_url, {}, format="json")
        self.assertEqual(missing.status_code, status.HTTP_400_BAD_REQUEST)

        unknown = self.client.post(self.list_url, {"book_id": 999999}, format="json")
        self.assertEqual(unknown.status_code, status.HTTP_404_NOT_FOUND)

        malformed = self.client.post(self.list_url, {"book_id": "not-an-id"}, format="json")
        self.assertEqual(malformed.status_code, status.HTTP_404_NOT_FOUND)

    def test_list_only_contains_own_conversations_newest_activity_first(self):
        other_book = make_book(self.seller, title="Emma", author="Jane Austen", genre="Classic")
        older = self._open(self.buyer).data["id"]
        newer = self._open(self.buyer, other_book.id).data["id"]
        self._open(self.outsider)

        append_message(older, self.buyer, "still available?")

        self.client.force_authenticate(self.buyer)
        r = self.client.get(self.list_url)
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual([c["id"] for c in r.data], [older, newer])
        self.assertEqual(r.data[0]["last_message"], "still available?")
        self.assertEqual(r.data[0]["last_sender"], self.buyer.id)
        self.assertIsNotNone(r.data[0]["last_message_at"])

        self.client.force_authenticate(self.seller)
        seller_view = self.client.get(self.list_url)
        self.assertEqual(len(seller_view.data), 3)

    def test_outsider_is_forbidden_everywhere(self):
        conversation_id = self._open(self.buyer).data["id"]
        messages_url = reverse("conversation-messages", kwargs={"pk": conversation_id})

        self.client.force_authenticate(self.outsider)
        self.assertEqual(self.client.get(messages_url).status_code, status.HTTP_403_FORBIDDEN)

        r = self.client.post(messages_url, {"text": "hi"}, format="json")
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(Message.objects.count(), 0)

        r = self.client.delete(reverse("conversation-detail", kwargs={"pk": conversation_id}))
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)
        self.assertTrue(Conversation.objects.filter(pk=conversation_id).exists())

    def test_unknown_conversation_is_not_found(self):
        self.client.force_authenticate(self.buyer)
        r = self.client.get(reverse("conversation-messages", kwargs={"pk": 987654}))
        self.assertEqual(r.status_code, status.HTTP_404_NOT_FOUND)

    def test_delete_removes_conversation_and_messages(self):
        conversation_id = self._open(self.buyer).data["id"]
        append_message(conversation_id, self.buyer, "hello")
        append_message(conversation_id, self.seller, "hi there")

        self.client.force_authenticate(self.seller)
        r = self.client.delete(reverse("conversation-detail", kwargs={"pk": conversation_id}))
        self.assertEqual(r.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Conversation.objects.filter(pk=conversation_id).exists())
        self.assertFalse(Message.objects.filter(conversation_id=conversation_id).exists())

        again = self.client.delete(reverse("conversation-detail", kwargs={"pk": conversation_id}))
        self.assertEqual(again.status_code, status.HTTP_404_NOT_FOUND)

        # Contact can start over with an empty history.
        reopened = self._open(self.buyer)
        self.assertEqual(reopened.status_code, status.HTTP_201_CREATED)
        self.assertNotEqual(reopened.data["id"], conversation_id)
        self.assertEqual(self.client.get(reverse("conversation-messages", kwargs={"pk": reopened.data["id"]})).data, [])


class ConversationModelTests(APITestCase):
    def setUp(self):
        self.seller = make_user("seller")
        self.buyer = make_user("buyer")
        self.book = make_book(self.seller)

    def test_pair_is_unique_regardless_of_role_order(self):
        Conversation.objects.create(book=self.book, buyer=self.buyer, seller=self.seller)
        with transaction.atomic():
            with self.assertRaises(IntegrityError):
                Conversation.objects.create(book=self.book, buyer=self.seller, seller=self.buyer)

    def test_participants_must_differ(self):
        with transaction.atomic():
            with self.assertRaises(IntegrityError):
                Conversation.objects.create(book=self.book, buyer=self.seller, seller=self.seller)

    def test_ensure_participant(self):
        conversation = Conversation.objects.create(book=self.book, buyer=self.buyer, seller=self.seller)
        outsider = make_user("outsider")

        self.assertEqual(ensure_participant(conversation.id, self.buyer.id), (self.buyer.id, self.seller.id))
        self.assertEqual(ensure_participant(str(conversation.id), self.seller.id), (self.buyer.id, self.seller.id))
        with self.assertRaises(Forbidden):
            ensure_participant(conversation.id, outsider.id)
        with self.assertRaises(NotFound):
            ensure_participant(conversation.id + 100, self.buyer.id)
        with self.assertRaises(NotFound):
            ensure_participant("abc", self.buyer.id)

    def test_losing_first_contact_race_returns_the_winners_conversation(self):
        # The winner commits between this request's lookup and its insert.
        winner = Conversation.objects.create(book=self.book, buyer=self.buyer, seller=self.seller)
        real_find = services._find_for_pair
        lookups = []

        def find_after_race(*args):
            lookups.append(args)
            return None if len(lookups) == 1 else real_find(*args)

        with mock.patch("messaging.services._find_for_pair", side_effect=find_after_race):
            conversation, created = get_or_create_conversation(self.book.id, self.buyer)

        self.assertFalse(created)
        self.assertEqual(conversation.id, winner.id)
        self.assertEqual(len(lookups), 2)
        self.assertEqual(Conversation.objects.count(), 1)

    def test_insert_error_without_a_winner_propagates(self):
        with mock.patch("messaging.services._find_for_pair", return_value=None), mock.patch(
            "messaging.services.Conversation.objects.create", side_effect=IntegrityError("boom")
        ):
            with self.assertRaises(IntegrityError):
                get_or_create_conversation(self.book.id, self.buyer)
        self.assertFalse(Conversation.objects.exists())
