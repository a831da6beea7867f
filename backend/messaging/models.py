from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.db.models.functions import Greatest, Least

from market.models import Book, TimestampedModel


class Conversation(TimestampedModel):
    """The single chat thread for one book between its owner and one buyer.

    The participant pair is stored as ``buyer``/``seller`` but uniqueness is
    enforced on the unordered pair, so (book, {a, b}) can only exist once no
    matter which side created it.
    """

    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name="conversations")
    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="conversations_as_buyer",
    )
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="conversations_as_seller",
    )

    last_message_text = models.TextField(blank=True)
    last_sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                F("book"),
                Least("buyer", "seller"),
                Greatest("buyer", "seller"),
                name="uq_conversation_book_pair",
            ),
            models.CheckConstraint(condition=~Q(buyer=F("seller")), name="ck_conversation_distinct_participants"),
        ]
        indexes = [
            models.Index(fields=["buyer", "updated_at"], name="conv_buyer_updated_idx"),
            models.Index(fields=["seller", "updated_at"], name="conv_seller_updated_idx"),
            models.Index(fields=["book", "created_at"], name="conv_book_created_idx"),
        ]
        ordering = ["-updated_at", "-id"]

    @property
    def participant_ids(self) -> tuple[int, int]:
        return (self.buyer_id, self.seller_id)

    def has_participant(self, user_id) -> bool:
        return user_id in self.participant_ids

    def __str__(self) -> str:
        return f"Conversation({self.id}, book={self.book_id})"


class Message(TimestampedModel):
    conversation = models.ForeignKey(Conversation, on_delete=models.CASCADE, related_name="messages")
    sender = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="chat_messages")
    text = models.TextField()

    class Meta:
        indexes = [
            models.Index(fields=["conversation", "created_at"], name="msg_conv_created_idx"),
            models.Index(fields=["sender", "created_at"], name="msg_sender_created_idx"),
        ]
        ordering = ["created_at", "id"]

    def __str__(self) -> str:
        return f"Message({self.id}, conversation={self.conversation_id})"
