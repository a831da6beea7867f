from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from market.models import WishlistEntry

from .factories import make_book, make_user


class WishlistApiTests(APITestCase):
    def setUp(self):
        self.user = make_user("reader")
        self.seller = make_user("seller")
        self.book = make_book(self.seller)
        self.url = reverse("wishlist-list")

    def test_requires_auth(self):
        self.assertEqual(self.client.get(self.url).status_code, status.HTTP_401_UNAUTHORIZED)

    def test_add_list_and_remove(self):
        self.client.force_authenticate(self.user)

        r = self.client.post(self.url, {"book_id": self.book.id}, format="json")
        self.assertEqual(r.status_code, status.HTTP_201_CREATED)
        self.assertEqual(r.data["book"]["id"], self.book.id)

        r = self.client.get(self.url)
        self.assertEqual([entry["book"]["title"] for entry in r.data], ["Dune"])

        r = self.client.delete(reverse("wishlist-detail", kwargs={"book_id": self.book.id}))
        self.assertEqual(r.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(WishlistEntry.objects.exists())

        r = self.client.delete(reverse("wishlist-detail", kwargs={"book_id": self.book.id}))
        self.assertEqual(r.status_code, status.HTTP_404_NOT_FOUND)

    def test_duplicate_add_conflicts(self):
        self.client.force_authenticate(self.user)
        self.client.post(self.url, {"book_id": self.book.id}, format="json")

        r = self.client.post(self.url, {"book_id": self.book.id}, format="json")
        self.assertEqual(r.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(WishlistEntry.objects.count(), 1)

    def test_unknown_book(self):
        self.client.force_authenticate(self.user)
        r = self.client.post(self.url, {"book_id": 999999}, format="json")
        self.assertEqual(r.status_code, status.HTTP_404_NOT_FOUND)

    def test_entries_are_private(self):
        WishlistEntry.objects.create(user=self.seller, book=self.book)
        self.client.force_authenticate(self.user)
        self.assertEqual(self.client.get(self.url).data, [])
