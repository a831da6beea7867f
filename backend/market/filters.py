import django_filters

from .models import Book, BookCondition


class BookFilter(django_filters.FilterSet):
    title = django_filters.CharFilter(field_name="title", lookup_expr="icontains")
    author = django_filters.CharFilter(field_name="author", lookup_expr="icontains")
    genre = django_filters.CharFilter(field_name="genre", lookup_expr="iexact")
    condition = django_filters.ChoiceFilter(choices=BookCondition.choices)
    min_price = django_filters.NumberFilter(field_name="price", lookup_expr="gte")
    max_price = django_filters.NumberFilter(field_name="price", lookup_expr="lte")
    is_ordered = django_filters.BooleanFilter(field_name="is_ordered")
    listed_by = django_filters.NumberFilter(field_name="listed_by_id")

    class Meta:
        model = Book
        fields = ["title", "author", "genre", "condition", "min_price", "max_price", "is_ordered", "listed_by"]
