from __future__ import annotations

import logging

from django.db import IntegrityError, transaction

from .exceptions import Conflict, NotFound
from .models import Book, WishlistEntry

logger = logging.getLogger(__name__)


def get_book(book_id) -> Book:
    try:
        pk = int(book_id)
    except (TypeError, ValueError):
        raise NotFound("Book not found")
    book = Book.objects.select_related("listed_by").filter(pk=pk).first()
    if book is None:
        raise NotFound("Book not found")
    return book


def add_to_wishlist(user, book_id) -> WishlistEntry:
    book = get_book(book_id)
    try:
        with transaction.atomic():
            entry = WishlistEntry.objects.create(user=user, book=book)
    except IntegrityError:
        raise Conflict("Book already in wishlist")
    logger.info("wishlist add", extra={"book_id": book.id, "user_id": user.id})
    return entry


def remove_from_wishlist(user, book_id) -> None:
    try:
        pk = int(book_id)
    except (TypeError, ValueError):
        raise NotFound("Wishlist entry not found")
    deleted, _ = WishlistEntry.objects.filter(user=user, book_id=pk).delete()
    if not deleted:
        raise NotFound("Wishlist entry not found")


def delete_book(book: Book) -> None:
    if book.is_ordered or book.orders.exists():
        raise Conflict("This book has been ordered and cannot be deleted")
    book_id = book.id
    book.delete()
    logger.info("book deleted", extra={"book_id": book_id})
