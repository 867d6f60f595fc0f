import os
import shutil
import tempfile
import threading
from datetime import date, datetime
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError, connection
from django.test import Client, TestCase, TransactionTestCase, override_settings, skipUnlessDBFeature
from django.urls import reverse
from django.utils import timezone

from .exceptions import (
    CreationFailed,
    DuplicateActiveApplication,
    Forbidden,
    InvalidFormat,
    InvalidTransition,
    NotFound,
    SequenceExhausted,
    ValidationFailed,
)
from .models import ApplicationLog, FamilyMember, KKApplication, MonthlySequence, format_application_number
from .services import (
    cancel_application,
    check_application_number_availability,
    create_application,
    document_bucket,
    transition_application,
)
from .templatetags.application_extras import short_number

User = get_user_model()

TEMP_MEDIA_ROOT = tempfile.mkdtemp(prefix='kk-test-media-')


def tearDownModule():
    shutil.rmtree(TEMP_MEDIA_ROOT, ignore_errors=True)


def make_user(username, role=User.Role.CITIZEN, verified=True):
    return User.objects.create_user(
        username=username,
        email=f"{username}@example.com",
        password='password',
        role=role,
        email_verified=verified,
    )


def household_data(**overrides):
    data = {
        'no_kk': '3201010101010001',
        'head_name': 'Budi Santoso',
        'head_nik': '3201011201850001',
        'address': 'Jl. Merdeka No. 10',
        'rt': '001',
        'rw': '002',
        'province': 'Jawa Barat',
        'regency': 'Kabupaten Bogor',
        'district': 'Cibinong',
        'sub_district': 'Pakansari',
        'postal_code': '16915',
        'consent': True,
    }
    data.update(overrides)
    return data


def member_data(**overrides):
    data = {
        'name': 'Budi Santoso',
        'nik': '3201011201850001',
        'sex': FamilyMember.Sex.MALE,
        'birthplace': 'Bogor',
        'birthdate': date(1985, 1, 12),
        'religion': FamilyMember.Religion.ISLAM,
        'education': 'SLTA/Sederajat',
        'occupation': 'Karyawan Swasta',
        'marital_status': FamilyMember.MaritalStatus.MARRIED,
        'relationship': FamilyMember.Relationship.HEAD,
        'citizenship': FamilyMember.Citizenship.WNI,
    }
    data.update(overrides)
    return data


def pdf(name='doc.pdf', size=128):
    return SimpleUploadedFile(name, b'%PDF-1.4 ' + b'x' * size, content_type='application/pdf')


def documents(**overrides):
    docs = {
        'birth_certificate': pdf('akta.pdf'),
        'head_id_copy': pdf('ktp.pdf'),
    }
    docs.update(overrides)
    return docs


def stored_files():
    found = []
    for root, dirs, files in os.walk(TEMP_MEDIA_ROOT):
        found.extend(os.path.join(root, f) for f in files)
    return found


def submit(owner, **data_overrides):
    return create_application(owner, household_data(**data_overrides), [member_data()], documents())


class ApplicationNumberTests(TestCase):
    def test_format(self):
        self.assertEqual(format_application_number(2024, 3, 3), 'KK-202403-0004')
        self.assertEqual(format_application_number(2024, 11, 0), 'KK-202411-0001')

    def test_last_number_of_month(self):
        self.assertEqual(format_application_number(2024, 3, 9998), 'KK-202403-9999')

    def test_sequence_is_not_widened(self):
        with self.assertRaises(SequenceExhausted):
            format_application_number(2024, 3, 9999)

    def test_reserve_sequential_numbers_within_month(self):
        when = timezone.make_aware(datetime(2024, 3, 15, 10, 0))
        numbers = [MonthlySequence.reserve(when) for _ in range(5)]

        self.assertEqual(numbers, [f'KK-202403-{i:04d}' for i in range(1, 6)])
        self.assertEqual(len(set(numbers)), 5)
        self.assertEqual(numbers, sorted(numbers))

    def test_reserve_continues_from_existing_count(self):
        MonthlySequence.objects.create(year=2024, month=3, last_seq=3)
        when = timezone.make_aware(datetime(2024, 3, 1, 9, 0))
        self.assertEqual(MonthlySequence.reserve(when), 'KK-202403-0004')

    def test_months_are_independent(self):
        march = timezone.make_aware(datetime(2024, 3, 31, 12, 0))
        april = timezone.make_aware(datetime(2024, 4, 1, 12, 0))

        self.assertEqual(MonthlySequence.reserve(march), 'KK-202403-0001')
        self.assertEqual(MonthlySequence.reserve(april), 'KK-202404-0001')
        self.assertEqual(MonthlySequence.reserve(march), 'KK-202403-0002')

    def test_exhausted_month_does_not_advance_counter(self):
        MonthlySequence.objects.create(year=2024, month=3, last_seq=9999)
        when = timezone.make_aware(datetime(2024, 3, 1, 9, 0))

        with self.assertRaises(SequenceExhausted):
            MonthlySequence.reserve(when)
        self.assertEqual(MonthlySequence.objects.get(year=2024, month=3).last_seq, 9999)

    def test_short_number_filter(self):
        self.assertEqual(short_number('KK-202403-0004'), '0004')
        self.assertEqual(short_number(''), '')


@override_settings(MEDIA_ROOT=TEMP_MEDIA_ROOT)
class CreateApplicationTests(TestCase):
    def setUp(self):
        self.owner = make_user('citizen')
        self.other = make_user('neighbour')

    def tearDown(self):
        shutil.rmtree(TEMP_MEDIA_ROOT, ignore_errors=True)
        os.makedirs(TEMP_MEDIA_ROOT, exist_ok=True)

    def test_create_application(self):
        application = submit(self.owner)

        month = timezone.localtime().strftime('%Y%m')
        self.assertEqual(application.application_number, f'KK-{month}-0001')
        self.assertEqual(application.status, KKApplication.Status.PENDING)
        self.assertEqual(application.owner, self.owner)
        self.assertIsNone(application.completed_at)
        self.assertEqual(application.members.count(), 1)

        self.assertTrue(default_storage.exists(application.birth_certificate.name))
        self.assertTrue(default_storage.exists(application.head_id_copy.name))
        self.assertFalse(application.marriage_certificate)
        self.assertTrue(application.birth_certificate.name.startswith('documents/birth_certificates/'))

        log = ApplicationLog.objects.get(application=application)
        self.assertEqual(log.action, ApplicationLog.Action.CREATED)
        self.assertEqual(log.to_status, KKApplication.Status.PENDING)

    def test_documents_get_unique_names(self):
        application = create_application(
            self.owner,
            household_data(),
            [member_data()],
            documents(birth_certificate=pdf('same.pdf'), head_id_copy=pdf('same.pdf')),
        )
        self.assertNotEqual(application.birth_certificate.name, application.head_id_copy.name)

    def test_documents_go_to_field_buckets(self):
        application = submit(self.owner)

        self.assertTrue(application.head_id_copy.name.startswith('documents/id_copies/'))
        self.assertEqual(document_bucket('relocation_letter'), 'relocation_letters')
        self.assertEqual(document_bucket('marriage_certificate'), 'marriage_certificates')

    def test_optional_documents_are_stored(self):
        application = create_application(
            self.owner,
            household_data(),
            [member_data()],
            documents(marriage_certificate=pdf('nikah.pdf'), relocation_letter=pdf('pindah.pdf')),
        )
        self.assertEqual(len(application.document_names()), 4)

    def test_sequential_creations_get_increasing_numbers(self):
        numbers = [submit(make_user(f'user{i}')).application_number for i in range(3)]

        month = timezone.localtime().strftime('%Y%m')
        self.assertEqual(numbers, [f'KK-{month}-0001', f'KK-{month}-0002', f'KK-{month}-0003'])

    def test_duplicate_active_application(self):
        submit(self.owner)
        files_before = stored_files()

        with self.assertRaises(DuplicateActiveApplication):
            submit(self.owner)

        self.assertEqual(KKApplication.objects.filter(owner=self.owner).count(), 1)
        self.assertEqual(stored_files(), files_before)

    def test_duplicate_check_covers_every_active_status(self):
        admin = make_user('admin', role=User.Role.ADMIN)
        application = submit(self.owner)

        transition_application(admin, application.pk, KKApplication.Action.VERIFY)
        with self.assertRaises(DuplicateActiveApplication):
            submit(self.owner)

        transition_application(admin, application.pk, KKApplication.Action.SEND_TO_PRINTING)
        with self.assertRaises(DuplicateActiveApplication):
            submit(self.owner)

    def test_can_apply_again_after_rejection(self):
        admin = make_user('admin', role=User.Role.ADMIN)
        first = submit(self.owner)
        transition_application(admin, first.pk, KKApplication.Action.REJECT, note='Dokumen buram')

        second = submit(self.owner)
        self.assertNotEqual(first.application_number, second.application_number)

    def test_can_apply_again_after_completion(self):
        admin = make_user('admin', role=User.Role.ADMIN)
        first = submit(self.owner)
        for action in (KKApplication.Action.VERIFY, KKApplication.Action.SEND_TO_PRINTING, KKApplication.Action.COMPLETE):
            transition_application(admin, first.pk, action)

        second = submit(self.owner)
        self.assertEqual(second.status, KKApplication.Status.PENDING)

    def test_other_owners_are_independent(self):
        submit(self.owner)
        application = submit(self.other)
        self.assertEqual(application.owner, self.other)

    def test_field_rules(self):
        with self.assertRaises(ValidationFailed) as ctx:
            create_application(
                self.owner,
                household_data(no_kk='123', head_nik='1' * 17, postal_code='123', rt='0001', head_name='', province=''),
                [member_data()],
                documents(),
            )
        errors = ctx.exception.errors
        for field in ('no_kk', 'head_nik', 'postal_code', 'rt', 'head_name', 'province'):
            self.assertIn(field, errors)
        self.assertFalse(KKApplication.objects.exists())
        self.assertEqual(stored_files(), [])

    def test_head_name_length_limit(self):
        with self.assertRaises(ValidationFailed) as ctx:
            submit(self.owner, head_name='x' * 256)
        self.assertIn('head_name', ctx.exception.errors)

    def test_consent_required(self):
        with self.assertRaises(ValidationFailed) as ctx:
            submit(self.owner, consent=False)
        self.assertIn('consent', ctx.exception.errors)

    def test_members_required(self):
        with self.assertRaises(ValidationFailed) as ctx:
            create_application(self.owner, household_data(), [], documents())
        self.assertIn('members', ctx.exception.errors)

    def test_member_fields_validated(self):
        with self.assertRaises(ValidationFailed) as ctx:
            create_application(
                self.owner,
                household_data(),
                [member_data(), member_data(nik='12', religion='NONE')],
                documents(),
            )
        self.assertIn('members-1-nik', ctx.exception.errors)
        self.assertIn('members-1-religion', ctx.exception.errors)
        self.assertNotIn('members-0-nik', ctx.exception.errors)

    def test_required_documents(self):
        with self.assertRaises(ValidationFailed) as ctx:
            create_application(self.owner, household_data(), [member_data()], {'birth_certificate': pdf()})
        self.assertIn('head_id_copy', ctx.exception.errors)
        self.assertEqual(stored_files(), [])

    @override_settings(KK_MAX_DOCUMENT_SIZE=64)
    def test_document_size_limit(self):
        with self.assertRaises(ValidationFailed) as ctx:
            create_application(self.owner, household_data(), [member_data()], documents(head_id_copy=pdf(size=65)))
        self.assertIn('head_id_copy', ctx.exception.errors)

    def test_document_extension(self):
        bad = SimpleUploadedFile('script.exe', b'MZ', content_type='application/octet-stream')
        with self.assertRaises(ValidationFailed) as ctx:
            create_application(self.owner, household_data(), [member_data()], documents(birth_certificate=bad))
        self.assertIn('birth_certificate', ctx.exception.errors)

    def test_failure_after_storing_documents_removes_them(self):
        with mock.patch.object(FamilyMember.objects, 'bulk_create', side_effect=DatabaseError('disk full')):
            with self.assertRaises(CreationFailed):
                submit(self.owner)

        self.assertFalse(KKApplication.objects.exists())
        self.assertEqual(stored_files(), [])

    def test_number_collision_reserves_next_number(self):
        now = timezone.localtime()
        taken = format_application_number(now.year, now.month, 0)
        KKApplication.objects.create(
            owner=self.other,
            application_number=taken,
            status=KKApplication.Status.REJECTED,
            **{k: v for k, v in household_data().items() if k != 'consent'}
        )

        application = submit(self.owner)

        self.assertEqual(application.application_number, format_application_number(now.year, now.month, 1))

    def test_persistent_number_collision_fails_cleanly(self):
        taken = 'KK-202403-0001'
        KKApplication.objects.create(
            owner=self.other,
            application_number=taken,
            status=KKApplication.Status.REJECTED,
            **{k: v for k, v in household_data().items() if k != 'consent'}
        )

        with mock.patch.object(MonthlySequence, 'reserve', return_value=taken):
            with self.assertRaises(CreationFailed):
                submit(self.owner)

        self.assertEqual(KKApplication.objects.filter(owner=self.owner).count(), 0)
        self.assertEqual(stored_files(), [])

    def test_exhausted_month_is_a_creation_failure(self):
        with mock.patch.object(MonthlySequence, 'reserve', side_effect=SequenceExhausted()):
            with self.assertRaises(CreationFailed) as ctx:
                submit(self.owner)

        self.assertEqual(ctx.exception.message, SequenceExhausted.default_message)
        self.assertFalse(KKApplication.objects.exists())
        self.assertEqual(stored_files(), [])


@override_settings(MEDIA_ROOT=TEMP_MEDIA_ROOT)
class TransitionTests(TestCase):
    ALLOWED = {
        (KKApplication.Status.PENDING, KKApplication.Action.VERIFY): KKApplication.Status.VERIFICATION,
        (KKApplication.Status.PENDING, KKApplication.Action.REJECT): KKApplication.Status.REJECTED,
        (KKApplication.Status.VERIFICATION, KKApplication.Action.REJECT): KKApplication.Status.REJECTED,
        (KKApplication.Status.VERIFICATION, KKApplication.Action.SEND_TO_PRINTING): KKApplication.Status.PRINTING,
        (KKApplication.Status.PRINTING, KKApplication.Action.COMPLETE): KKApplication.Status.COMPLETED,
    }

    def setUp(self):
        self.owner = make_user('citizen')
        self.admin = make_user('admin', role=User.Role.ADMIN)
        self.application = submit(self.owner)

    def tearDown(self):
        shutil.rmtree(TEMP_MEDIA_ROOT, ignore_errors=True)
        os.makedirs(TEMP_MEDIA_ROOT, exist_ok=True)

    def set_status(self, status):
        KKApplication.objects.filter(pk=self.application.pk).update(status=status)

    def test_transition_table(self):
        for status in KKApplication.Status.values:
            for action in KKApplication.Action.values:
                with self.subTest(status=status, action=action):
                    self.set_status(status)
                    expected = self.ALLOWED.get((status, action))
                    if expected:
                        result = transition_application(self.admin, self.application.pk, action)
                        self.assertEqual(result.status, expected)
                    else:
                        with self.assertRaises(InvalidTransition):
                            transition_application(self.admin, self.application.pk, action)
                        self.application.refresh_from_db()
                        self.assertEqual(self.application.status, status)

    def test_full_workflow_sets_completed_at_only_on_completion(self):
        app = transition_application(self.admin, self.application.pk, KKApplication.Action.VERIFY)
        self.assertIsNone(app.completed_at)

        app = transition_application(self.admin, self.application.pk, KKApplication.Action.SEND_TO_PRINTING)
        self.assertIsNone(app.completed_at)

        app = transition_application(self.admin, self.application.pk, KKApplication.Action.COMPLETE)
        app.refresh_from_db()
        self.assertEqual(app.status, KKApplication.Status.COMPLETED)
        self.assertIsNotNone(app.completed_at)

        actions = list(ApplicationLog.objects.filter(application=app).values_list('action', flat=True))
        self.assertEqual(actions, ['CREATED', 'VERIFIED', 'PRINTING', 'COMPLETED'])

    def test_rejection_does_not_set_completed_at(self):
        app = transition_application(self.admin, self.application.pk, KKApplication.Action.REJECT, note='NIK tidak cocok')
        app.refresh_from_db()
        self.assertEqual(app.status, KKApplication.Status.REJECTED)
        self.assertEqual(app.note, 'NIK tidak cocok')
        self.assertIsNone(app.completed_at)

    def test_printing_cannot_be_rejected(self):
        self.set_status(KKApplication.Status.PRINTING)
        with self.assertRaises(InvalidTransition):
            transition_application(self.admin, self.application.pk, KKApplication.Action.REJECT, note='terlambat')

        self.application.refresh_from_db()
        self.assertEqual(self.application.status, KKApplication.Status.PRINTING)
        self.assertEqual(self.application.note, '')

    def test_nothing_returns_to_pending(self):
        self.set_status(KKApplication.Status.REJECTED)
        for action in KKApplication.Action.values:
            with self.assertRaises(InvalidTransition):
                transition_application(self.admin, self.application.pk, action)

    def test_citizen_is_forbidden(self):
        with self.assertRaises(Forbidden):
            transition_application(self.owner, self.application.pk, KKApplication.Action.VERIFY)
        self.application.refresh_from_db()
        self.assertEqual(self.application.status, KKApplication.Status.PENDING)

    def test_forbidden_is_checked_before_lookup(self):
        with self.assertRaises(Forbidden):
            transition_application(self.owner, 999999, KKApplication.Action.VERIFY)

    def test_unknown_application(self):
        with self.assertRaises(NotFound):
            transition_application(self.admin, 999999, KKApplication.Action.VERIFY)

    def test_unknown_action(self):
        with self.assertRaises(InvalidTransition):
            transition_application(self.admin, self.application.pk, 'approve')

    def test_superuser_counts_as_administrator(self):
        root = User.objects.create_superuser(username='root', email='root@example.com', password='password')
        app = transition_application(root, self.application.pk, KKApplication.Action.VERIFY)
        self.assertEqual(app.status, KKApplication.Status.VERIFICATION)

    def test_available_actions_follow_table(self):
        self.assertEqual(
            sorted(self.application.available_actions(self.admin)),
            sorted([KKApplication.Action.VERIFY, KKApplication.Action.REJECT]),
        )
        self.assertEqual(self.application.available_actions(self.owner), [])


@override_settings(MEDIA_ROOT=TEMP_MEDIA_ROOT)
class CancelApplicationTests(TestCase):
    def setUp(self):
        self.owner = make_user('citizen')
        self.other = make_user('neighbour')
        self.admin = make_user('admin', role=User.Role.ADMIN)
        self.application = submit(self.owner)

    def tearDown(self):
        shutil.rmtree(TEMP_MEDIA_ROOT, ignore_errors=True)
        os.makedirs(TEMP_MEDIA_ROOT, exist_ok=True)

    def test_owner_cancels_pending_application(self):
        names = self.application.document_names()
        number = cancel_application(self.owner, self.application.pk)

        self.assertEqual(number, self.application.application_number)
        self.assertFalse(KKApplication.objects.filter(pk=self.application.pk).exists())
        self.assertFalse(FamilyMember.objects.exists())
        for name in names:
            self.assertFalse(default_storage.exists(name))

        log = ApplicationLog.objects.get(action=ApplicationLog.Action.CANCELLED)
        self.assertIsNone(log.application)
        self.assertEqual(log.application_number, number)

    def test_number_is_not_reused_after_cancellation(self):
        number = cancel_application(self.owner, self.application.pk)
        again = submit(self.owner)
        self.assertNotEqual(again.application_number, number)
        self.assertGreater(again.application_number, number)

    def test_other_user_gets_not_found(self):
        with self.assertRaises(NotFound):
            cancel_application(self.other, self.application.pk)
        self.assertTrue(KKApplication.objects.filter(pk=self.application.pk).exists())

    def test_unknown_application(self):
        with self.assertRaises(NotFound):
            cancel_application(self.owner, 999999)

    def test_cancel_in_verification_is_refused(self):
        transition_application(self.admin, self.application.pk, KKApplication.Action.VERIFY)
        names = self.application.document_names()

        with self.assertRaises(InvalidTransition):
            cancel_application(self.owner, self.application.pk)

        self.application.refresh_from_db()
        self.assertEqual(self.application.status, KKApplication.Status.VERIFICATION)
        for name in names:
            self.assertTrue(default_storage.exists(name))

    def test_file_deletion_failure_does_not_abort(self):
        broken = mock.Mock()
        broken.delete.side_effect = OSError('permission denied')

        with mock.patch('applications.storage.default_storage', broken):
            cancel_application(self.owner, self.application.pk)

        self.assertFalse(KKApplication.objects.filter(pk=self.application.pk).exists())
        self.assertEqual(broken.delete.call_count, 2)


@override_settings(MEDIA_ROOT=TEMP_MEDIA_ROOT)
class AvailabilityCheckTests(TestCase):
    def test_wrong_length_fails_without_query(self):
        with self.assertNumQueries(0):
            with self.assertRaises(InvalidFormat):
                check_application_number_availability('123')

    def test_non_string_is_invalid(self):
        with self.assertRaises(InvalidFormat):
            check_application_number_availability(None)

    def test_unknown_number(self):
        self.assertFalse(check_application_number_availability('3201010101019999'))

    def test_existing_number(self):
        submit(make_user('citizen'), no_kk='3201010101010042')
        self.assertTrue(check_application_number_availability('3201010101010042'))


@override_settings(MEDIA_ROOT=TEMP_MEDIA_ROOT)
class ApplicationViewTests(TestCase):
    def setUp(self):
        self.client = Client()
        self.owner = make_user('citizen')
        self.admin = make_user('admin', role=User.Role.ADMIN)

    def tearDown(self):
        shutil.rmtree(TEMP_MEDIA_ROOT, ignore_errors=True)
        os.makedirs(TEMP_MEDIA_ROOT, exist_ok=True)

    def form_payload(self):
        payload = {k: v for k, v in household_data().items() if k != 'consent'}
        payload['consent'] = 'on'
        payload.update({
            'members-TOTAL_FORMS': '1',
            'members-INITIAL_FORMS': '0',
            'members-MIN_NUM_FORMS': '1',
            'members-MAX_NUM_FORMS': '1000',
        })
        for key, value in member_data().items():
            payload[f'members-0-{key}'] = value.isoformat() if isinstance(value, date) else value
        payload['birth_certificate'] = pdf('akta.pdf')
        payload['head_id_copy'] = pdf('ktp.pdf')
        return payload

    def test_submit_application(self):
        self.client.force_login(self.owner)
        response = self.client.post(reverse('applications:create'), self.form_payload())

        application = KKApplication.objects.get(owner=self.owner)
        self.assertRedirects(response, reverse('applications:detail', kwargs={'pk': application.pk}))
        self.assertEqual(application.members.count(), 1)
        self.assertEqual(application.status, KKApplication.Status.PENDING)

    def test_form_shows_errors(self):
        self.client.force_login(self.owner)
        payload = self.form_payload()
        payload['no_kk'] = '123'
        response = self.client.post(reverse('applications:create'), payload)

        self.assertEqual(response.status_code, 200)
        self.assertFalse(KKApplication.objects.exists())
        self.assertIn('no_kk', response.context['form'].errors)

    def test_exhausted_month_shows_message(self):
        self.client.force_login(self.owner)
        with mock.patch.object(MonthlySequence, 'reserve', side_effect=SequenceExhausted()):
            response = self.client.post(reverse('applications:create'), self.form_payload())

        self.assertEqual(response.status_code, 200)
        self.assertTemplateUsed(response, 'applications/application_form.html')
        self.assertContains(response, SequenceExhausted.default_message)
        self.assertFalse(KKApplication.objects.exists())
        self.assertEqual(stored_files(), [])

    def test_form_redirects_when_active_application_exists(self):
        application = submit(self.owner)
        self.client.force_login(self.owner)
        response = self.client.get(reverse('applications:create'))
        self.assertRedirects(response, reverse('applications:detail', kwargs={'pk': application.pk}))

    def test_unverified_citizen_must_verify_first(self):
        unverified = make_user('newcomer', verified=False)
        self.client.force_login(unverified)
        response = self.client.get(reverse('applications:create'))
        self.assertRedirects(response, reverse('verify_email'))

    def test_cancel_view(self):
        application = submit(self.owner)
        self.client.force_login(self.owner)
        response = self.client.post(reverse('applications:cancel', kwargs={'pk': application.pk}))

        self.assertRedirects(response, reverse('applications:my_list'))
        self.assertFalse(KKApplication.objects.exists())

    def test_detail_is_private(self):
        application = submit(self.owner)
        self.client.force_login(make_user('stranger'))
        response = self.client.get(reverse('applications:detail', kwargs={'pk': application.pk}))
        self.assertEqual(response.status_code, 404)

    def test_admin_queue_requires_admin(self):
        url = reverse('applications:admin_queue')

        self.client.force_login(self.owner)
        self.assertNotEqual(self.client.get(url).status_code, 200)

        self.client.force_login(self.admin)
        self.assertEqual(self.client.get(url).status_code, 200)

    def test_admin_action_view(self):
        application = submit(self.owner)
        self.client.force_login(self.admin)
        response = self.client.post(
            reverse('applications:admin_action', kwargs={'pk': application.pk}),
            {'action': KKApplication.Action.VERIFY, 'note': ''},
        )
        self.assertRedirects(response, reverse('applications:detail', kwargs={'pk': application.pk}))
        application.refresh_from_db()
        self.assertEqual(application.status, KKApplication.Status.VERIFICATION)

    def test_rejection_requires_note(self):
        application = submit(self.owner)
        self.client.force_login(self.admin)
        self.client.post(
            reverse('applications:admin_action', kwargs={'pk': application.pk}),
            {'action': KKApplication.Action.REJECT, 'note': ''},
        )
        application.refresh_from_db()
        self.assertEqual(application.status, KKApplication.Status.PENDING)

    def test_citizen_cannot_use_admin_action(self):
        application = submit(self.owner)
        self.client.force_login(self.owner)
        self.client.post(
            reverse('applications:admin_action', kwargs={'pk': application.pk}),
            {'action': KKApplication.Action.VERIFY},
        )
        application.refresh_from_db()
        self.assertEqual(application.status, KKApplication.Status.PENDING)

    def test_check_no_kk_endpoint(self):
        self.client.force_login(self.owner)
        url = reverse('applications:check_no_kk')

        response = self.client.get(url, {'no_kk': '123'})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()['valid'])

        response = self.client.get(url, {'no_kk': '3201010101019999'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'valid': True, 'exists': False, 'available': True})

    def test_receipt_download(self):
        application = submit(self.owner)
        self.client.force_login(self.owner)
        response = self.client.get(reverse('applications:receipt', kwargs={'pk': application.pk}))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'image/jpeg')
        self.assertIn(application.application_number, response['Content-Disposition'])

    def test_document_download(self):
        application = submit(self.owner)
        url = reverse('applications:document', kwargs={'pk': application.pk, 'field': 'head_id_copy'})

        self.client.force_login(self.admin)
        response = self.client.get(url)
        self.assertEqual(response.status_code, 200)
        self.assertTrue(b''.join(response.streaming_content).startswith(b'%PDF'))

        self.client.force_login(make_user('stranger'))
        self.assertEqual(self.client.get(url).status_code, 404)


@skipUnlessDBFeature('has_select_for_update')
@override_settings(MEDIA_ROOT=TEMP_MEDIA_ROOT)
class ConcurrentCreationTests(TransactionTestCase):
    """
    Creations racing on separate connections. SQLite has no row locks
    (SELECT ... FOR UPDATE is ignored), so these run on PostgreSQL or MySQL.
    """
    WORKERS = 5

    def tearDown(self):
        shutil.rmtree(TEMP_MEDIA_ROOT, ignore_errors=True)
        os.makedirs(TEMP_MEDIA_ROOT, exist_ok=True)

    def run_in_threads(self, owners):
        barrier = threading.Barrier(len(owners))
        results = [None] * len(owners)

        def worker(index, owner):
            try:
                barrier.wait()
                results[index] = submit(owner)
            except Exception as e:
                results[index] = e
            finally:
                connection.close()

        threads = [threading.Thread(target=worker, args=(i, owner)) for i, owner in enumerate(owners)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return results

    def test_numbers_are_unique_and_contiguous(self):
        owners = [make_user(f'warga{i}') for i in range(self.WORKERS)]
        results = self.run_in_threads(owners)

        self.assertEqual([r for r in results if isinstance(r, Exception)], [])
        month = timezone.localtime().strftime('%Y%m')
        numbers = sorted(r.application_number for r in results)
        self.assertEqual(numbers, [f'KK-{month}-{i:04d}' for i in range(1, self.WORKERS + 1)])
        self.assertEqual(KKApplication.objects.count(), self.WORKERS)

    def test_one_owner_gets_one_active_application(self):
        owner = make_user('warga')
        results = self.run_in_threads([owner] * self.WORKERS)

        created = [r for r in results if isinstance(r, KKApplication)]
        refused = [r for r in results if isinstance(r, DuplicateActiveApplication)]
        self.assertEqual(len(created), 1)
        self.assertEqual(len(refused), self.WORKERS - 1)
        self.assertEqual(KKApplication.objects.filter(owner=owner).count(), 1)
        self.assertEqual(len(stored_files()), len(KKApplication.REQUIRED_DOCUMENTS))
