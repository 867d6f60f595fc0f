from django.test import TestCase, Client
from django.urls import reverse
from django.contrib.auth import get_user_model

from applications.models import KKApplication

User = get_user_model()


class CoreViewTests(TestCase):
    def setUp(self):
        self.client = Client()
        self.citizen = User.objects.create_user(
            username="warga", email="warga@example.com", password="password", email_verified=True
        )
        self.admin = User.objects.create_user(
            username="petugas", email="petugas@example.com", password="password", role=User.Role.ADMIN
        )
        self.application = KKApplication.objects.create(
            owner=self.citizen,
            application_number="KK-202403-0004",
            no_kk="3201010101010001",
            head_name="Budi Santoso",
            head_nik="3201011201850001",
            address="Jl. Merdeka No. 10",
            rt="001",
            rw="002",
            province="Jawa Barat",
            regency="Kabupaten Bogor",
            district="Cibinong",
            sub_district="Pakansari",
            postal_code="16915",
            consent=True,
        )

    def test_landing_is_public(self):
        response = self.client.get(reverse('landing'))
        self.assertEqual(response.status_code, 200)

    def test_dashboard_requires_login(self):
        response = self.client.get(reverse('dashboard'))
        self.assertEqual(response.status_code, 302)
        self.assertIn(reverse('login'), response.url)

    def test_citizen_dashboard(self):
        self.client.force_login(self.citizen)
        response = self.client.get(reverse('dashboard'))

        self.assertTemplateUsed(response, 'dashboard_home.html')
        self.assertEqual(response.context['active_application'], self.application)

    def test_unverified_citizen_is_sent_to_verification(self):
        newcomer = User.objects.create_user(username="baru", email="baru@example.com", password="password")
        self.client.force_login(newcomer)
        response = self.client.get(reverse('dashboard'))
        self.assertRedirects(response, reverse('verify_email'))

    def test_admin_dashboard_counts(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse('dashboard'))

        self.assertTemplateUsed(response, 'dashboard_admin.html')
        counts = {kpi['status']: kpi['count'] for kpi in response.context['kpis']}
        self.assertEqual(counts[KKApplication.Status.PENDING], 1)
        self.assertEqual(counts[KKApplication.Status.COMPLETED], 0)

    def test_track_status(self):
        response = self.client.get(reverse('track_status'), {'q': 'kk-202403-0004'})

        result = response.context['result']
        self.assertEqual(result['ref'], 'KK-202403-0004')
        self.assertEqual(result['status'], self.application.get_status_display())
        self.assertNotContains(response, self.application.head_nik)

    def test_track_shows_note_only_for_rejection(self):
        KKApplication.objects.filter(pk=self.application.pk).update(note="Dokumen buram")
        response = self.client.get(reverse('track_status'), {'q': 'KK-202403-0004'})
        self.assertEqual(response.context['result']['note'], '')

        KKApplication.objects.filter(pk=self.application.pk).update(status=KKApplication.Status.REJECTED)
        response = self.client.get(reverse('track_status'), {'q': 'KK-202403-0004'})
        self.assertEqual(response.context['result']['note'], "Dokumen buram")

    def test_track_unknown_number(self):
        response = self.client.get(reverse('track_status'), {'q': 'KK-209901-0001'})
        self.assertIsNone(response.context['result'])
        self.assertTrue(response.context['searched'])
