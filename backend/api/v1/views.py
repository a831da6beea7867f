from django.contrib.auth import get_user_model
from django.db.models import Q
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated, IsAuthenticatedOrReadOnly
from rest_framework.response import Response
from rest_framework.views import APIView

from api.health_checks import build_health_payload
from market.exceptions import Conflict
from market.filters import BookFilter
from market.models import Book
from market.services import add_to_wishlist, delete_book, remove_from_wishlist
from messaging.services import (
    append_message,
    conversations_for_user,
    delete_conversation,
    get_or_create_conversation,
    list_messages,
)
from orders.models import Order
from orders.services import advance_delivery_status, place_order

from .permissions import IsOwnerOrReadOnly
from .serializers import (
    AdminBookUpdateSerializer,
    BookListSerializer,
    BookReferenceSerializer,
    BookWriteSerializer,
    ConversationSerializer,
    DeliveryStatusSerializer,
    MessageCreateSerializer,
    MessageSerializer,
    OrderSerializer,
    UserMeSerializer,
    WishlistEntrySerializer,
)

User = get_user_model()


class HealthView(APIView):
    permission_classes = [AllowAny]

    def get(self, request):
        payload, ok = build_health_payload()
        return Response(payload, status=status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE)


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(UserMeSerializer(request.user).data)


class BookViewSet(viewsets.ModelViewSet):
    permission_classes = [IsAuthenticatedOrReadOnly, IsOwnerOrReadOnly]
    parser_classes = [JSONParser, MultiPartParser, FormParser]
    filterset_class = BookFilter
    ordering_fields = ["created_at", "price", "title"]

    def get_queryset(self):
        return Book.objects.select_related("listed_by")

    def get_serializer_class(self):
        if self.action in {"create", "update", "partial_update"}:
            return BookWriteSerializer
        return BookListSerializer

    def update(self, request, *args, **kwargs):
        book = self.get_object()
        partial = kwargs.pop("partial", False)

        serializer = BookWriteSerializer(book, data=request.data, partial=partial, context={"request": request})
        serializer.is_valid(raise_exception=True)

        new_price = serializer.validated_data.get("price")
        if book.is_ordered and new_price is not None and new_price != book.price:
            raise Conflict("The price of an ordered book cannot change")

        book = serializer.save()
        return Response(BookListSerializer(book, context={"request": request}).data)

    def create(self, request, *args, **kwargs):
        serializer = BookWriteSerializer(data=request.data, context={"request": request})
        serializer.is_valid(raise_exception=True)
        book = serializer.save(listed_by=request.user)
        return Response(BookListSerializer(book, context={"request": request}).data, status=status.HTTP_201_CREATED)

    def perform_destroy(self, instance):
        delete_book(instance)

    @action(detail=False, methods=["get"], permission_classes=[IsAuthenticated])
    def mine(self, request):
        qs = self.get_queryset().filter(listed_by=request.user)
        page = self.paginate_queryset(qs)
        if page is not None:
            return self.get_paginated_response(BookListSerializer(page, many=True, context={"request": request}).data)
        return Response(BookListSerializer(qs, many=True, context={"request": request}).data)

    @action(detail=False, methods=["get"], permission_classes=[AllowAny])
    def search(self, request):
        term = (request.query_params.get("q") or "").strip()
        if not term:
            return Response([])

        qs = self.get_queryset().filter(Q(title__icontains=term) | Q(author__icontains=term))
        page = self.paginate_queryset(qs)
        if page is not None:
            return self.get_paginated_response(BookListSerializer(page, many=True, context={"request": request}).data)
        return Response(BookListSerializer(qs, many=True, context={"request": request}).data)

    @action(detail=False, methods=["get"], permission_classes=[AllowAny])
    def genres(self, request):
        genres = Book.objects.order_by("genre").values_list("genre", flat=True).distinct()
        return Response([g for g in genres if g])


class WishlistViewSet(viewsets.GenericViewSet):
    permission_classes = [IsAuthenticated]
    serializer_class = WishlistEntrySerializer
    pagination_class = None
    lookup_url_kwarg = "book_id"
    lookup_value_regex = r"[^/]+"

    def get_queryset(self):
        return self.request.user.wishlist.select_related("book", "book__listed_by")

    def list(self, request):
        return Response(WishlistEntrySerializer(self.get_queryset(), many=True, context={"request": request}).data)

    def create(self, request):
        serializer = BookReferenceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = add_to_wishlist(request.user, serializer.validated_data["book_id"])
        return Response(WishlistEntrySerializer(entry, context={"request": request}).data, status=status.HTTP_201_CREATED)

    def destroy(self, request, book_id=None):
        remove_from_wishlist(request.user, book_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ConversationViewSet(viewsets.GenericViewSet):
    """Buyer/seller conversations about a listing.

    Object lookups go through the messaging services rather than
    ``get_object`` so a non-participant gets 403 for an existing conversation.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = ConversationSerializer
    pagination_class = None
    lookup_value_regex = r"[^/]+"
    throttle_scope_map = {"POST": "conversation_write", "messages:POST": "message_write"}

    def get_queryset(self):
        return conversations_for_user(self.request.user)

    def list(self, request):
        return Response(ConversationSerializer(self.get_queryset(), many=True, context={"request": request}).data)

    def create(self, request):
        serializer = BookReferenceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        conversation, created = get_or_create_conversation(serializer.validated_data["book_id"], request.user)
        return Response(
            ConversationSerializer(conversation, context={"request": request}).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    def destroy(self, request, pk=None):
        delete_conversation(pk, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["get", "post"], url_path="messages")
    def messages(self, request, pk=None):
        if request.method == "GET":
            return Response(MessageSerializer(list_messages(pk, request.user), many=True).data)

        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        message = append_message(pk, request.user, serializer.validated_data.get("text"))
        return Response(MessageSerializer(message).data, status=status.HTTP_201_CREATED)


class OrderViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer
    pagination_class = None
    throttle_scope_map = {"POST": "order_write"}

    def get_queryset(self):
        return Order.objects.filter(buyer=self.request.user).select_related("book", "buyer", "seller")

    def create(self, request):
        serializer = BookReferenceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = place_order(serializer.validated_data["book_id"], request.user)
        return Response(OrderSerializer(order, context={"request": request}).data, status=status.HTTP_201_CREATED)


class AdminBookViewSet(
    mixins.ListModelMixin,
    mixins.UpdateModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    permission_classes = [IsAdminUser]
    filterset_class = BookFilter
    ordering_fields = ["created_at", "price", "title"]

    def get_queryset(self):
        return Book.objects.select_related("listed_by")

    def get_serializer_class(self):
        if self.action in {"update", "partial_update"}:
            return AdminBookUpdateSerializer
        return BookListSerializer

    def update(self, request, *args, **kwargs):
        book = self.get_object()
        serializer = AdminBookUpdateSerializer(book, data=request.data, partial=kwargs.pop("partial", False))
        serializer.is_valid(raise_exception=True)
        book = serializer.save()
        return Response(BookListSerializer(book, context={"request": request}).data)

    def perform_destroy(self, instance):
        delete_book(instance)


class AdminOrderViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    permission_classes = [IsAdminUser]
    serializer_class = OrderSerializer
    ordering_fields = ["created_at", "total"]
    lookup_value_regex = r"[^/]+"

    def get_queryset(self):
        qs = Order.objects.select_related("book", "buyer", "seller")
        desired = (self.request.query_params.get("delivery_status") or "").strip()
        if desired:
            qs = qs.filter(delivery_status=desired)
        return qs

    @action(detail=True, methods=["put", "patch"], url_path="status", url_name="status")
    def update_status(self, request, pk=None):
        serializer = DeliveryStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = advance_delivery_status(pk, serializer.validated_data["status"])
        order = self.get_queryset().get(pk=order.pk)
        return Response(OrderSerializer(order, context={"request": request}).data)


class AdminAnalyticsView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        return Response(
            {
                "total_users": User.objects.count(),
                "total_books": Book.objects.count(),
                "total_orders": Order.objects.count(),
                "ordered_books": Book.objects.filter(is_ordered=True).count(),
            }
        )
