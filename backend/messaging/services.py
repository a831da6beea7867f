"""Conversation directory and message log.

Every read or write of a conversation's messages goes through
``ensure_participant`` first; authorization failures are raised before any
mutation so a rejected request has no side effects.
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import OuterRef, Q, QuerySet, Subquery, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from market.exceptions import Forbidden, InvalidInput, InvalidOperation, NotFound
from market.models import Book

from . import relay
from .models import Conversation, Message

logger = logging.getLogger(__name__)


def _as_id(raw, *, what: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise NotFound(f"{what} not found")


def _with_summaries(qs: QuerySet) -> QuerySet:
    return qs.select_related("book", "book__listed_by", "buyer", "seller")


def _find_for_pair(book_id: int, a: int, b: int) -> Conversation | None:
    pair = Q(buyer_id=a, seller_id=b) | Q(buyer_id=b, seller_id=a)
    return _with_summaries(Conversation.objects.filter(pair, book_id=book_id)).first()


def ensure_participant(conversation_id, user_id) -> tuple[int, int]:
    """Return the (buyer_id, seller_id) pair if ``user_id`` belongs to it."""

    pk = _as_id(conversation_id, what="Conversation")
    participants = Conversation.objects.filter(pk=pk).values_list("buyer_id", "seller_id").first()
    if participants is None:
        raise NotFound("Conversation not found")
    if user_id not in participants:
        raise Forbidden("Not authorized for this conversation")
    return participants


def get_or_create_conversation(book_id, requester) -> tuple[Conversation, bool]:
    """Find the conversation for (book, {requester, owner}) or create it.

    Only the buyer side can open a conversation; the owner of the book is
    always the counterpart. Creation relies on the unique constraint over
    (book, unordered pair): the loser of a concurrent first-contact race gets
    an IntegrityError and reads back the winner's row.
    """

    pk = _as_id(book_id, what="Book")
    book = Book.objects.select_related("listed_by").filter(pk=pk).first()
    if book is None:
        raise NotFound("Book not found")

    owner_id = book.listed_by_id
    if owner_id == requester.id:
        raise InvalidOperation("You cannot chat about your own listing")

    existing = _find_for_pair(book.id, requester.id, owner_id)
    if existing is not None:
        return existing, False

    try:
        with transaction.atomic():
            conversation = Conversation.objects.create(book=book, buyer=requester, seller=book.listed_by)
    except IntegrityError:
        existing = _find_for_pair(book.id, requester.id, owner_id)
        if existing is None:
            raise
        return existing, False

    logger.info(
        "conversation created",
        extra={"conversation_id": conversation.id, "book_id": book.id, "user_id": requester.id},
    )
    return _with_summaries(Conversation.objects.filter(pk=conversation.pk)).get(), True


def conversations_for_user(user) -> QuerySet:
    """Conversations the user takes part in, most recently active first.

    ``last_message`` is read from the newest persisted message and falls back
    to the denormalized preview on the conversation.
    """

    newest = Message.objects.filter(conversation=OuterRef("pk")).order_by("-created_at", "-id")
    return (
        _with_summaries(Conversation.objects.filter(Q(buyer=user) | Q(seller=user)))
        .annotate(
            last_message=Coalesce(Subquery(newest.values("text")[:1]), "last_message_text", Value("")),
            last_message_at=Subquery(newest.values("created_at")[:1]),
        )
        .order_by("-updated_at", "-id")
    )


def delete_conversation(conversation_id, user) -> None:
    ensure_participant(conversation_id, user.id)
    pk = int(conversation_id)

    with transaction.atomic():
        Message.objects.filter(conversation_id=pk).delete()
        Conversation.objects.filter(pk=pk).delete()

    logger.info("conversation deleted", extra={"conversation_id": pk, "user_id": user.id})


def list_messages(conversation_id, user) -> QuerySet:
    ensure_participant(conversation_id, user.id)
    return Message.objects.filter(conversation_id=int(conversation_id)).select_related("sender").order_by("created_at", "id")


def clean_message_text(text) -> str:
    if not isinstance(text, str):
        raise InvalidInput("Message text is required")
    text = text.strip()
    if not text:
        raise InvalidInput("Message text is required")
    max_length = settings.MESSAGE_MAX_LENGTH
    if len(text) > max_length:
        raise InvalidInput(f"Message text is too long (max {max_length} characters)")
    return text


def append_message(conversation_id, sender, text) -> Message:
    """Persist a message, refresh the conversation preview, then relay it.

    The message row and the preview update commit together. The conversation
    row is locked first so concurrent senders commit in lock order, which is
    also the (created_at, id) order ``list_messages`` returns.
    """

    text = clean_message_text(text)
    ensure_participant(conversation_id, sender.id)
    pk = int(conversation_id)

    with transaction.atomic():
        locked = Conversation.objects.select_for_update().filter(pk=pk).values_list("pk", flat=True).first()
        if locked is None:
            raise NotFound("Conversation not found")

        message = Message.objects.create(conversation_id=pk, sender=sender, text=text)
        Conversation.objects.filter(pk=pk).update(
            last_message_text=text,
            last_sender=sender,
            updated_at=timezone.now(),
        )

        payload = relay.message_payload(message)
        transaction.on_commit(lambda: relay.publish_message_created(payload))

    logger.info(
        "message appended",
        extra={"conversation_id": pk, "message_id": message.id, "user_id": sender.id},
    )
    return message
