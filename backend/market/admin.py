from django.contrib import admin

from .models import Book, WishlistEntry


@admin.register(Book)
class BookAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "title",
        "author",
        "genre",
        "condition",
        "price",
        "listed_by",
        "is_ordered",
        "created_at",
    )
    list_filter = ("condition", "is_ordered", "genre")
    search_fields = ("title", "author", "genre")

    actions = ["mark_available"]

    @admin.action(description="Mark selected books as available again")
    def mark_available(self, request, queryset):
        updated = queryset.filter(is_ordered=True, orders__isnull=True).update(is_ordered=False)
        self.message_user(request, f"{updated} book(s) marked available.")


@admin.register(WishlistEntry)
class WishlistEntryAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "book", "created_at")
    search_fields = ("book__title", "user__username")
