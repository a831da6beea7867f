from __future__ import annotations

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError


class Command(BaseCommand):
    help = "Ensure an admin account exists (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("--username", default="admin")
        parser.add_argument("--email", default="")
        parser.add_argument("--password", required=True)

    def handle(self, *args, **options):
        username = str(options.get("username") or "admin").strip()
        email = str(options.get("email") or "").strip().lower()
        password = str(options["password"])
        if len(password) < 6:
            raise CommandError("Password must be at least 6 characters")

        User = get_user_model()
        user, created = User.objects.get_or_create(
            username=username,
            defaults={"email": email, "is_staff": True, "is_superuser": True},
        )

        user.is_staff = True
        user.is_superuser = True
        if email:
            user.email = email
        # Always set the given password so repeated runs converge on it.
        user.set_password(password)
        user.save()

        self.stdout.write(self.style.SUCCESS(f"Admin user ready: username={username} (created={created})"))
