from django.conf import settings
from django.db import models, transaction
from django.urls import reverse
from django.utils import timezone
from django_fsm import FSMField, transition

from .exceptions import SequenceExhausted
from .storage import DocumentPath
from .validators import ExactLengthValidator, validate_document

# Sequence part of KK-YYYYMM-NNNN is fixed at four digits; it is never widened.
SEQUENCE_WIDTH = 4
SEQUENCE_LIMIT = 10 ** SEQUENCE_WIDTH - 1


def format_application_number(year, month, count):
    """
    Number for the application that follows `count` earlier ones in the month.
    Example: (2024, 3, 3) -> 'KK-202403-0004'
    """
    seq = count + 1
    if seq > SEQUENCE_LIMIT:
        raise SequenceExhausted(
            f"Application numbers for {year:04d}-{month:02d} are exhausted ({SEQUENCE_LIMIT} per month)."
        )
    return f"KK-{year:04d}{month:02d}-{seq:0{SEQUENCE_WIDTH}d}"


class MonthlySequence(models.Model):
    year = models.PositiveIntegerField()
    month = models.PositiveSmallIntegerField()
    last_seq = models.PositiveIntegerField(default=0)

    class Meta:
        unique_together = ('year', 'month')

    def __str__(self):
        return f"{self.year:04d}-{self.month:02d}: {self.last_seq}"

    @classmethod
    def reserve(cls, when=None):
        """
        Reserves the next application number for the month of `when` (default: now).
        The counter row is locked, so concurrent callers never see the same count.
        The counter only grows, so numbers of deleted applications are not handed out again.
        """
        when = timezone.localtime(when) if when else timezone.localtime()

        with transaction.atomic():
            counter, created = cls.objects.select_for_update().get_or_create(
                year=when.year,
                month=when.month,
                defaults={'last_seq': 0}
            )
            number = format_application_number(when.year, when.month, counter.last_seq)
            counter.last_seq += 1
            counter.save(update_fields=['last_seq'])

        return number


def is_administrator(instance, user):
    return bool(user and user.is_authenticated and user.is_administrator)


class KKApplication(models.Model):
    class Status(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        VERIFICATION = 'VERIFICATION', 'Verification'
        PRINTING = 'PRINTING', 'Printing'
        COMPLETED = 'COMPLETED', 'Completed'
        REJECTED = 'REJECTED', 'Rejected'

    class Action(models.TextChoices):
        # Values are the names of the transition methods below.
        VERIFY = 'verify', 'Verify'
        SEND_TO_PRINTING = 'send_to_printing', 'Send to printing'
        COMPLETE = 'complete', 'Mark completed'
        REJECT = 'reject', 'Reject'

    ACTIVE_STATUSES = (Status.PENDING, Status.VERIFICATION, Status.PRINTING)

    STATUS_BADGES = {
        Status.PENDING: 'warning',
        Status.VERIFICATION: 'info',
        Status.PRINTING: 'primary',
        Status.COMPLETED: 'success',
        Status.REJECTED: 'danger',
    }

    DOCUMENT_FIELDS = ('birth_certificate', 'head_id_copy', 'marriage_certificate', 'relocation_letter')
    REQUIRED_DOCUMENTS = ('birth_certificate', 'head_id_copy')

    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='kk_applications')
    application_number = models.CharField(max_length=20, unique=True, editable=False)  # KK-YYYYMM-NNNN

    no_kk = models.CharField("No. KK", max_length=16, validators=[ExactLengthValidator(16)])
    head_name = models.CharField("Head of household", max_length=255)
    head_nik = models.CharField("Head of household NIK", max_length=16, validators=[ExactLengthValidator(16)])
    address = models.TextField()
    rt = models.CharField("RT", max_length=3)
    rw = models.CharField("RW", max_length=3)
    province = models.CharField(max_length=255)
    regency = models.CharField(max_length=255)
    district = models.CharField(max_length=255)
    sub_district = models.CharField(max_length=255)
    postal_code = models.CharField(max_length=5, validators=[ExactLengthValidator(5)])

    birth_certificate = models.FileField(upload_to=DocumentPath('birth_certificates'), max_length=255, validators=[validate_document])
    head_id_copy = models.FileField(upload_to=DocumentPath('id_copies'), max_length=255, validators=[validate_document])
    marriage_certificate = models.FileField(upload_to=DocumentPath('marriage_certificates'), max_length=255, blank=True, validators=[validate_document])
    relocation_letter = models.FileField(upload_to=DocumentPath('relocation_letters'), max_length=255, blank=True, validators=[validate_document])

    consent = models.BooleanField(default=False)

    status = FSMField(default=Status.PENDING, choices=Status.choices)
    note = models.TextField(blank=True)

    submitted_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-submitted_at']
        indexes = [
            models.Index(fields=['owner', 'status'], name='kkapp_owner_status_idx'),
            models.Index(fields=['no_kk'], name='kkapp_no_kk_idx'),
        ]
        verbose_name = "Kartu Keluarga Application"
        verbose_name_plural = "Kartu Keluarga Applications"

    def __str__(self):
        return f"{self.application_number} - {self.head_name}"

    def get_absolute_url(self):
        return reverse('applications:detail', kwargs={'pk': self.pk})

    @property
    def is_active(self):
        return self.status in self.ACTIVE_STATUSES

    @property
    def is_cancellable(self):
        return self.status == self.Status.PENDING

    @property
    def status_badge(self):
        return self.STATUS_BADGES.get(self.status, 'secondary')

    @property
    def formatted_submitted_at(self):
        if not self.submitted_at:
            return ""
        return timezone.localtime(self.submitted_at).strftime("%d %b %Y, %H:%M")

    def document_names(self):
        """Storage names of every document attached to this application."""
        names = []
        for field in self.DOCUMENT_FIELDS:
            value = getattr(self, field)
            if value and value.name:
                names.append(value.name)
        return names

    def available_actions(self, user):
        return [t.name for t in self.get_available_user_status_transitions(user)]

    # --- Workflow. These decorators are the transition table. ---

    @transition(field=status, source=Status.PENDING, target=Status.VERIFICATION, permission=is_administrator)
    def verify(self):
        pass

    @transition(field=status, source=Status.VERIFICATION, target=Status.PRINTING, permission=is_administrator)
    def send_to_printing(self):
        pass

    @transition(field=status, source=Status.PRINTING, target=Status.COMPLETED, permission=is_administrator)
    def complete(self):
        self.completed_at = timezone.now()

    # Not reachable from PRINTING: once the card is in print it can only be completed.
    @transition(field=status, source=[Status.PENDING, Status.VERIFICATION], target=Status.REJECTED, permission=is_administrator)
    def reject(self):
        pass


class FamilyMember(models.Model):
    class Sex(models.TextChoices):
        MALE = 'L', 'Laki-laki'
        FEMALE = 'P', 'Perempuan'

    class Religion(models.TextChoices):
        ISLAM = 'ISLAM', 'Islam'
        PROTESTANT = 'KRISTEN', 'Kristen'
        CATHOLIC = 'KATOLIK', 'Katolik'
        HINDU = 'HINDU', 'Hindu'
        BUDDHIST = 'BUDDHA', 'Buddha'
        CONFUCIAN = 'KONGHUCU', 'Konghucu'
        OTHER = 'KEPERCAYAAN', 'Kepercayaan'

    class MaritalStatus(models.TextChoices):
        SINGLE = 'BELUM_KAWIN', 'Belum Kawin'
        MARRIED = 'KAWIN', 'Kawin'
        DIVORCED = 'CERAI_HIDUP', 'Cerai Hidup'
        WIDOWED = 'CERAI_MATI', 'Cerai Mati'

    class Relationship(models.TextChoices):
        HEAD = 'KEPALA_KELUARGA', 'Kepala Keluarga'
        HUSBAND = 'SUAMI', 'Suami'
        WIFE = 'ISTRI', 'Istri'
        CHILD = 'ANAK', 'Anak'
        CHILD_IN_LAW = 'MENANTU', 'Menantu'
        GRANDCHILD = 'CUCU', 'Cucu'
        PARENT = 'ORANG_TUA', 'Orang Tua'
        PARENT_IN_LAW = 'MERTUA', 'Mertua'
        RELATIVE = 'FAMILI_LAIN', 'Famili Lain'
        OTHER = 'LAINNYA', 'Lainnya'

    class Citizenship(models.TextChoices):
        WNI = 'WNI', 'WNI'
        WNA = 'WNA', 'WNA'

    application = models.ForeignKey(KKApplication, on_delete=models.CASCADE, related_name='members')
    name = models.CharField(max_length=255)
    nik = models.CharField("NIK", max_length=16, validators=[ExactLengthValidator(16)])
    sex = models.CharField(max_length=1, choices=Sex.choices)
    birthplace = models.CharField(max_length=255)
    birthdate = models.DateField()
    religion = models.CharField(max_length=20, choices=Religion.choices)
    education = models.CharField(max_length=255)
    occupation = models.CharField(max_length=255)
    marital_status = models.CharField(max_length=20, choices=MaritalStatus.choices)
    relationship = models.CharField(max_length=20, choices=Relationship.choices)
    citizenship = models.CharField(max_length=3, choices=Citizenship.choices, default=Citizenship.WNI)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.name} ({self.get_relationship_display()})"


class ApplicationLog(models.Model):
    class Action(models.TextChoices):
        CREATED = 'CREATED', 'Created'
        VERIFIED = 'VERIFIED', 'Verified'
        PRINTING = 'PRINTING', 'Sent to printing'
        COMPLETED = 'COMPLETED', 'Completed'
        REJECTED = 'REJECTED', 'Rejected'
        CANCELLED = 'CANCELLED', 'Cancelled'

    # Kept after the application is cancelled and deleted.
    application = models.ForeignKey(KKApplication, on_delete=models.SET_NULL, null=True, blank=True, related_name='logs')
    application_number = models.CharField(max_length=20)
    action = models.CharField(max_length=20, choices=Action.choices)

    by_user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    from_status = models.CharField(max_length=20, blank=True)
    to_status = models.CharField(max_length=20, blank=True)

    remarks = models.TextField(blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['timestamp', 'id']

    def __str__(self):
        return f"{self.application_number} - {self.action}"
