from datetime import timedelta

from django.core import mail
from django.test import TestCase, Client
from django.urls import reverse
from django.utils import timezone
from django.contrib.auth import get_user_model

from .models import EmailOTP
from .utils import issue_email_otp, verify_email_otp

User = get_user_model()


class EmailOTPTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(
            username="warga",
            email="warga@example.com",
            password="password",
        )

    def test_issue_sends_mail(self):
        otp = issue_email_otp(self.user)

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["warga@example.com"])
        self.assertIn(otp.code, mail.outbox[0].body)
        self.assertEqual(len(otp.code), 6)
        self.assertTrue(otp.code.isdigit())

    def test_verify_marks_email_verified(self):
        otp = issue_email_otp(self.user)

        self.assertTrue(verify_email_otp(self.user, otp.code))
        self.user.refresh_from_db()
        self.assertTrue(self.user.email_verified)

    def test_code_is_single_use(self):
        otp = issue_email_otp(self.user)
        self.assertTrue(verify_email_otp(self.user, otp.code))
        self.assertFalse(verify_email_otp(self.user, otp.code))

    def test_wrong_code(self):
        otp = issue_email_otp(self.user)
        wrong = "000000" if otp.code != "000000" else "111111"

        self.assertFalse(verify_email_otp(self.user, wrong))
        self.user.refresh_from_db()
        self.assertFalse(self.user.email_verified)

    def test_expired_code(self):
        otp = issue_email_otp(self.user)
        EmailOTP.objects.filter(pk=otp.pk).update(expires_at=timezone.now() - timedelta(seconds=1))

        self.assertFalse(verify_email_otp(self.user, otp.code))

    def test_new_code_invalidates_old_one(self):
        first = issue_email_otp(self.user)
        second = issue_email_otp(self.user)

        first.refresh_from_db()
        self.assertIsNotNone(first.used_at)
        if first.code != second.code:
            self.assertFalse(verify_email_otp(self.user, first.code))
        self.assertTrue(verify_email_otp(self.user, second.code))

    def test_code_belongs_to_user(self):
        otp = issue_email_otp(self.user)
        other = User.objects.create_user(username="lain", email="lain@example.com", password="password")
        self.assertFalse(verify_email_otp(other, otp.code))


class RoleTests(TestCase):
    def test_role_decides_administrator(self):
        admin = User.objects.create_user(username="petugas", email="petugas@example.com", role=User.Role.ADMIN)
        citizen = User.objects.create_user(username="warga", email="warga@example.com")

        self.assertTrue(admin.is_administrator)
        self.assertFalse(citizen.is_administrator)

    def test_email_does_not_grant_admin(self):
        user = User.objects.create_user(username="admin", email="admin@kk.go.id")
        self.assertEqual(user.role, User.Role.CITIZEN)
        self.assertFalse(user.is_administrator)

    def test_superuser_is_administrator(self):
        root = User.objects.create_superuser(username="root", email="root@example.com", password="password")
        self.assertTrue(root.is_administrator)


class RegistrationViewTests(TestCase):
    def setUp(self):
        self.client = Client()

    def register(self, **overrides):
        data = {
            "username": "warga",
            "first_name": "Siti Aminah",
            "email": "Siti@Example.com",
            "password1": "Kartu-Keluarga-2024",
            "password2": "Kartu-Keluarga-2024",
        }
        data.update(overrides)
        return self.client.post(reverse("register"), data)

    def test_register_creates_unverified_citizen(self):
        response = self.register()

        self.assertRedirects(response, reverse("verify_email"))
        user = User.objects.get(username="warga")
        self.assertEqual(user.role, User.Role.CITIZEN)
        self.assertEqual(user.email, "siti@example.com")
        self.assertFalse(user.email_verified)
        self.assertEqual(len(mail.outbox), 1)

    def test_role_cannot_be_posted(self):
        self.register(role=User.Role.ADMIN)
        self.assertEqual(User.objects.get(username="warga").role, User.Role.CITIZEN)

    def test_duplicate_email_rejected(self):
        User.objects.create_user(username="lama", email="siti@example.com")
        response = self.register()

        self.assertEqual(response.status_code, 200)
        self.assertFalse(User.objects.filter(username="warga").exists())

    def test_verify_page_flow(self):
        self.register()
        code = EmailOTP.objects.get(user__username="warga").code

        response = self.client.post(reverse("verify_email"), {"code": code})
        self.assertRedirects(response, reverse("dashboard"))
        self.assertTrue(User.objects.get(username="warga").email_verified)

    def test_resend_requires_post(self):
        self.register()
        self.assertEqual(self.client.get(reverse("resend_otp")).status_code, 405)

        self.client.post(reverse("resend_otp"))
        self.assertEqual(len(mail.outbox), 2)

    def test_who_am_i(self):
        self.register()
        response = self.client.get(reverse("who_am_i"))
        self.assertEqual(response.json()["role"], User.Role.CITIZEN)
        self.assertFalse(response.json()["is_administrator"])
