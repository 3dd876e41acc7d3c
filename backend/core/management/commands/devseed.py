from datetime import date
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone

from bookings.models import Booking
from bookings.services.payments import record_payment_outcome
from payments.models import Payment


SEED_PASSWORD = "Dreams123!"
SUPERUSER_USERNAME = "admin"
SUPERUSER_EMAIL = "admin@dreams.test"
SUPERUSER_PASSWORD = "AdminDreams123!"


class Command(BaseCommand):
    help = "Populate the local development database with sample bookings."

    def handle(self, *args, **options):
        if not settings.DEBUG:
            raise CommandError("Refusing to seed data while DEBUG is False.")

        with transaction.atomic():
            self.stdout.write(self.style.MIGRATE_HEADING("Creating users"))
            client = self._ensure_user(
                username="client",
                email="client@dreams.test",
                first_name="Carla",
                last_name="Client",
            )
            self._ensure_superuser()

            self.stdout.write(self.style.MIGRATE_HEADING("Cleaning old bookings"))
            Booking.objects.filter(client=client).delete()

            self.stdout.write(self.style.MIGRATE_HEADING("Creating bookings"))
            self._create_booking(
                client,
                package_name="Garden Wedding Package",
                event_date=date(2026, 12, 12),
                total_amount=Decimal("10000.00"),
                booking_status=Booking.STATUS_PENDING,
            )
            confirmed = self._create_booking(
                client,
                package_name="Debut Photo & Video",
                event_date=date(2026, 11, 21),
                total_amount=Decimal("25000.00"),
                deposit_amount=Decimal("5000.00"),
                booking_status=Booking.STATUS_CONFIRMED,
            )
            self._record_paid(confirmed, Decimal("5000.00"), schedule="deposit", method="gcash")
            completed = self._create_booking(
                client,
                package_name="Corporate Year-End Party",
                event_date=date(2026, 9, 30),
                total_amount=Decimal("18000.00"),
                booking_status=Booking.STATUS_COMPLETED,
            )
            self._record_paid(completed, Decimal("18000.00"), schedule="full", method="card")

        self.stdout.write(self.style.SUCCESS("Development data ready."))
        self.stdout.write(f"Client login: client / {SEED_PASSWORD}")
        self.stdout.write(f"Admin login: {SUPERUSER_USERNAME} / {SUPERUSER_PASSWORD}")

    def _ensure_user(self, *, username, email, first_name, last_name):
        User = get_user_model()
        user, created = User.objects.get_or_create(
            username=username,
            defaults={"email": email, "first_name": first_name, "last_name": last_name},
        )
        if created:
            user.set_password(SEED_PASSWORD)
            user.save(update_fields=["password"])
            self.stdout.write(self.style.SUCCESS(f"Created user {username}"))
        return user

    def _ensure_superuser(self):
        User = get_user_model()
        if User.objects.filter(username=SUPERUSER_USERNAME).exists():
            return
        User.objects.create_superuser(
            username=SUPERUSER_USERNAME,
            email=SUPERUSER_EMAIL,
            password=SUPERUSER_PASSWORD,
        )
        self.stdout.write(self.style.SUCCESS(f"Created superuser {SUPERUSER_USERNAME}"))

    def _create_booking(self, client, **fields):
        booking = Booking.objects.create(client=client, **fields)
        self.stdout.write(f"  {booking}")
        return booking

    def _record_paid(self, booking, amount, *, schedule, method):
        Payment.objects.create(
            booking=booking,
            payment_intent_id=f"pi_seed_{booking.pk}_{schedule}",
            payment_method=method,
            schedule=schedule,
            amount=amount,
            status=Payment.PAID,
            paid_at=timezone.now(),
        )
        record_payment_outcome(booking)
