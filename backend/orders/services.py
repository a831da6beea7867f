from __future__ import annotations

import logging
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from market.exceptions import Conflict, InvalidInput, InvalidOperation, NotFound
from market.models import Book

from .models import DELIVERY_SEQUENCE, DeliveryStatus, Order

logger = logging.getLogger(__name__)


def delivery_fee() -> Decimal:
    return Decimal(str(settings.ORDER_DELIVERY_FEE))


def place_order(book_id, buyer) -> Order:
    """Claim the book and record the order as one atomic unit.

    The claim is a conditional update (``is_ordered`` false -> true), so of two
    concurrent buyers exactly one sees a row updated; the other gets Conflict
    and no order row is written.
    """

    try:
        pk = int(book_id)
    except (TypeError, ValueError):
        raise NotFound("Book not found")

    book = Book.objects.filter(pk=pk).first()
    if book is None:
        raise NotFound("Book not found")
    if book.listed_by_id == buyer.id:
        raise InvalidOperation("You cannot order your own book")

    with transaction.atomic():
        claimed = Book.objects.filter(pk=pk, is_ordered=False).update(is_ordered=True, updated_at=timezone.now())
        if not claimed:
            raise Conflict("This book has already been ordered")

        book = Book.objects.select_for_update().get(pk=pk)
        fee = delivery_fee()
        order = Order.objects.create(
            book=book,
            buyer=buyer,
            seller_id=book.listed_by_id,
            price=book.price,
            delivery_fee=fee,
            total=book.price + fee,
        )

    logger.info("order placed", extra={"order_id": order.id, "book_id": pk, "user_id": buyer.id})
    return order


def advance_delivery_status(order_id, desired) -> Order:
    """Move an order's delivery status forward.

    Requesting the current status is a no-op; requesting an earlier one is
    rejected. The update is conditional on the order still being at an
    earlier stage.
    """

    if desired not in DeliveryStatus.values:
        raise InvalidInput(f"status must be one of {', '.join(DeliveryStatus.values)}")

    try:
        pk = int(order_id)
    except (TypeError, ValueError):
        raise NotFound("Order not found")

    order = Order.objects.filter(pk=pk).first()
    if order is None:
        raise NotFound("Order not found")

    if order.delivery_status == desired:
        return order

    target = DELIVERY_SEQUENCE.index(desired)
    if DELIVERY_SEQUENCE.index(order.delivery_status) > target:
        raise InvalidOperation("Delivery status can only move forward")

    earlier = [s.value for s in DELIVERY_SEQUENCE[:target]]
    updated = Order.objects.filter(pk=pk, delivery_status__in=earlier).update(
        delivery_status=desired,
        updated_at=timezone.now(),
    )
    order.refresh_from_db()

    if not updated and order.delivery_status != desired:
        raise InvalidOperation("Delivery status can only move forward")

    logger.info("order status changed to %s", desired, extra={"order_id": pk})
    return order
