from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db.models import Q
from rest_framework import serializers

from market.models import Book, WishlistEntry
from messaging.models import Conversation, Message
from messaging.relay import message_payload
from orders.models import DeliveryStatus, Order

User = get_user_model()


class UserSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ["id", "username"]


class UserMeSerializer(serializers.ModelSerializer):
    is_admin = serializers.BooleanField(source="is_staff", read_only=True)

    class Meta:
        model = User
        fields = ["id", "username", "email", "first_name", "last_name", "is_admin", "date_joined"]


class RegisterSerializer(serializers.Serializer):
    username = serializers.CharField(min_length=3, max_length=30)
    email = serializers.EmailField()
    password = serializers.CharField(min_length=6, write_only=True)

    def validate_username(self, value):
        if User.objects.filter(username__iexact=value).exists():
            raise serializers.ValidationError("Username already taken")
        return value

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("An account with this email already exists")
        return value.lower()

    def create(self, validated_data):
        return User.objects.create_user(
            username=validated_data["username"],
            email=validated_data["email"],
            password=validated_data["password"],
        )


class LoginSerializer(serializers.Serializer):
    email = serializers.CharField(required=False, allow_blank=True)
    username = serializers.CharField(required=False, allow_blank=True)
    password = serializers.CharField(write_only=True, trim_whitespace=False)

    def validate(self, attrs):
        identifier = (attrs.get("email") or attrs.get("username") or "").strip()
        if not identifier:
            raise serializers.ValidationError("Email or username is required")

        user = User.objects.filter(Q(email__iexact=identifier) | Q(username=identifier)).order_by("id").first()
        if user is None or not user.is_active or not user.check_password(attrs["password"]):
            raise serializers.ValidationError("Invalid credentials")

        attrs["user"] = user
        return attrs


class ForgotPasswordSerializer(serializers.Serializer):
    email = serializers.EmailField()


class VerifyOtpSerializer(serializers.Serializer):
    email = serializers.EmailField()
    otp = serializers.RegexField(r"^\d{6}$", error_messages={"invalid": "Code must be 6 digits"})


class ResetPasswordSerializer(VerifyOtpSerializer):
    password = serializers.CharField(min_length=6, write_only=True)


def _image_url(image, request):
    if not image:
        return None
    url = image.url
    if request is not None:
        return request.build_absolute_uri(url)
    return url


class BookSummarySerializer(serializers.ModelSerializer):
    image = serializers.SerializerMethodField()
    listed_by = serializers.IntegerField(source="listed_by_id", read_only=True)

    def get_image(self, obj):
        return _image_url(obj.image, self.context.get("request"))

    class Meta:
        model = Book
        fields = ["id", "title", "author", "price", "condition", "image", "is_ordered", "listed_by"]


class BookListSerializer(serializers.ModelSerializer):
    listed_by = UserSummarySerializer(read_only=True)
    condition_label = serializers.CharField(source="get_condition_display", read_only=True)
    image = serializers.SerializerMethodField()

    def get_image(self, obj):
        return _image_url(obj.image, self.context.get("request"))

    class Meta:
        model = Book
        fields = [
            "id",
            "title",
            "author",
            "genre",
            "condition",
            "condition_label",
            "price",
            "image",
            "is_ordered",
            "listed_by",
            "created_at",
            "updated_at",
        ]


class BookWriteSerializer(serializers.ModelSerializer):
    image = serializers.ImageField(required=False)

    def validate_price(self, value):
        if value is None or value <= Decimal("0"):
            raise serializers.ValidationError("Price must be positive")
        return value

    class Meta:
        model = Book
        fields = ["id", "title", "author", "genre", "condition", "price", "image"]
        read_only_fields = ["id"]


class AdminBookUpdateSerializer(serializers.ModelSerializer):
    class Meta:
        model = Book
        fields = ["title", "author", "genre"]


class WishlistEntrySerializer(serializers.ModelSerializer):
    book = BookListSerializer(read_only=True)

    class Meta:
        model = WishlistEntry
        fields = ["id", "book", "created_at"]


class BookReferenceSerializer(serializers.Serializer):
    # Kept as a string so a malformed id resolves to 404 like an unknown one.
    book_id = serializers.CharField()


class MessageCreateSerializer(serializers.Serializer):
    # Blank and length rules live in messaging.services.clean_message_text.
    text = serializers.CharField(required=False, allow_blank=True, allow_null=True, trim_whitespace=False)


class ConversationSerializer(serializers.ModelSerializer):
    book = BookSummarySerializer(read_only=True)
    buyer = UserSummarySerializer(read_only=True)
    seller = UserSummarySerializer(read_only=True)
    participants = serializers.SerializerMethodField()
    last_message = serializers.SerializerMethodField()
    last_message_at = serializers.DateTimeField(read_only=True, default=None)
    last_sender = serializers.IntegerField(source="last_sender_id", read_only=True)

    def get_participants(self, obj):
        return UserSummarySerializer([obj.buyer, obj.seller], many=True).data

    def get_last_message(self, obj):
        annotated = getattr(obj, "last_message", None)
        if annotated is not None:
            return annotated
        return obj.last_message_text

    class Meta:
        model = Conversation
        fields = [
            "id",
            "book",
            "buyer",
            "seller",
            "participants",
            "last_message",
            "last_message_at",
            "last_sender",
            "created_at",
            "updated_at",
        ]


class MessageSerializer(serializers.ModelSerializer):
    def to_representation(self, instance):
        return message_payload(instance)

    class Meta:
        model = Message
        fields = ["id", "conversation", "sender", "text", "created_at"]


class OrderSerializer(serializers.ModelSerializer):
    book = BookSummarySerializer(read_only=True)
    buyer = UserSummarySerializer(read_only=True)
    seller = UserSummarySerializer(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "book",
            "buyer",
            "seller",
            "price",
            "delivery_fee",
            "total",
            "delivery_status",
            "created_at",
            "updated_at",
        ]


class DeliveryStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=DeliveryStatus.choices)
