from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import IntegrityError
from django.test import TestCase, override_settings

from .models import Profile


class ProfileTests(TestCase):
    @override_settings(PORTFOLIO_BASELINE_VALUE=Decimal("25000"))
    def test_new_profile_starts_at_baseline(self):
        user = get_user_model().objects.create_user(username="starter", password="pw")
        profile = Profile.objects.create(user=user)
        self.assertEqual(profile.balance, Decimal("25000"))

    def test_display_label_prefers_email(self):
        User = get_user_model()
        with_email = User.objects.create_user(username="a", email="a@example.com", password="pw")
        without_email = User.objects.create_user(username="b", password="pw")
        self.assertEqual(Profile.objects.create(user=with_email).display_label, "a@example.com")
        self.assertEqual(Profile.objects.create(user=without_email).display_label, "b")

    def test_balance_cannot_go_negative(self):
        user = get_user_model().objects.create_user(username="neg", password="pw")
        with self.assertRaises(IntegrityError):
            Profile.objects.create(user=user, balance=Decimal("-1.00"))
