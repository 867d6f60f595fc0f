import applications.storage
import applications.validators
import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='MonthlySequence',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('year', models.PositiveIntegerField()),
                ('month', models.PositiveSmallIntegerField()),
                ('last_seq', models.PositiveIntegerField(default=0)),
            ],
            options={
                'unique_together': {('year', 'month')},
            },
        ),
        migrations.CreateModel(
            name='KKApplication',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('application_number', models.CharField(editable=False, max_length=20, unique=True)),
                ('no_kk', models.CharField(max_length=16, validators=[applications.validators.ExactLengthValidator(16)], verbose_name='No. KK')),
                ('head_name', models.CharField(max_length=255, verbose_name='Head of household')),
                ('head_nik', models.CharField(max_length=16, validators=[applications.validators.ExactLengthValidator(16)], verbose_name='Head of household NIK')),
                ('address', models.TextField()),
                ('rt', models.CharField(max_length=3, verbose_name='RT')),
                ('rw', models.CharField(max_length=3, verbose_name='RW')),
                ('province', models.CharField(max_length=255)),
                ('regency', models.CharField(max_length=255)),
                ('district', models.CharField(max_length=255)),
                ('sub_district', models.CharField(max_length=255)),
                ('postal_code', models.CharField(max_length=5, validators=[applications.validators.ExactLengthValidator(5)])),
                ('birth_certificate', models.FileField(max_length=255, upload_to=applications.storage.DocumentPath('birth_certificates'), validators=[applications.validators.validate_document])),
                ('head_id_copy', models.FileField(max_length=255, upload_to=applications.storage.DocumentPath('id_copies'), validators=[applications.validators.validate_document])),
                ('marriage_certificate', models.FileField(blank=True, max_length=255, upload_to=applications.storage.DocumentPath('marriage_certificates'), validators=[applications.validators.validate_document])),
                ('relocation_letter', models.FileField(blank=True, max_length=255, upload_to=applications.storage.DocumentPath('relocation_letters'), validators=[applications.validators.validate_document])),
                ('consent', models.BooleanField(default=False)),
                ('status', django_fsm.FSMField(choices=[('PENDING', 'Pending'), ('VERIFICATION', 'Verification'), ('PRINTING', 'Printing'), ('COMPLETED', 'Completed'), ('REJECTED', 'Rejected')], default='PENDING', max_length=50)),
                ('note', models.TextField(blank=True)),
                ('submitted_at', models.DateTimeField(auto_now_add=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='kk_applications', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Kartu Keluarga Application',
                'verbose_name_plural': 'Kartu Keluarga Applications',
                'ordering': ['-submitted_at'],
                'indexes': [
                    models.Index(fields=['owner', 'status'], name='kkapp_owner_status_idx'),
                    models.Index(fields=['no_kk'], name='kkapp_no_kk_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='FamilyMember',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('nik', models.CharField(max_length=16, validators=[applications.validators.ExactLengthValidator(16)], verbose_name='NIK')),
                ('sex', models.CharField(choices=[('L', 'Laki-laki'), ('P', 'Perempuan')], max_length=1)),
                ('birthplace', models.CharField(max_length=255)),
                ('birthdate', models.DateField()),
                ('religion', models.CharField(choices=[('ISLAM', 'Islam'), ('KRISTEN', 'Kristen'), ('KATOLIK', 'Katolik'), ('HINDU', 'Hindu'), ('BUDDHA', 'Buddha'), ('KONGHUCU', 'Konghucu'), ('KEPERCAYAAN', 'Kepercayaan')], max_length=20)),
                ('education', models.CharField(max_length=255)),
                ('occupation', models.CharField(max_length=255)),
                ('marital_status', models.CharField(choices=[('BELUM_KAWIN', 'Belum Kawin'), ('KAWIN', 'Kawin'), ('CERAI_HIDUP', 'Cerai Hidup'), ('CERAI_MATI', 'Cerai Mati')], max_length=20)),
                ('relationship', models.CharField(choices=[('KEPALA_KELUARGA', 'Kepala Keluarga'), ('SUAMI', 'Suami'), ('ISTRI', 'Istri'), ('ANAK', 'Anak'), ('MENANTU', 'Menantu'), ('CUCU', 'Cucu'), ('ORANG_TUA', 'Orang Tua'), ('MERTUA', 'Mertua'), ('FAMILI_LAIN', 'Famili Lain'), ('LAINNYA', 'Lainnya')], max_length=20)),
                ('citizenship', models.CharField(choices=[('WNI', 'WNI'), ('WNA', 'WNA')], default='WNI', max_length=3)),
                ('application', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='members', to='applications.kkapplication')),
            ],
            options={
                'ordering': ['id'],
            },
        ),
        migrations.CreateModel(
            name='ApplicationLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('application_number', models.CharField(max_length=20)),
                ('action', models.CharField(choices=[('CREATED', 'Created'), ('VERIFIED', 'Verified'), ('PRINTING', 'Sent to printing'), ('COMPLETED', 'Completed'), ('REJECTED', 'Rejected'), ('CANCELLED', 'Cancelled')], max_length=20)),
                ('from_status', models.CharField(blank=True, max_length=20)),
                ('to_status', models.CharField(blank=True, max_length=20)),
                ('remarks', models.TextField(blank=True)),
                ('timestamp', models.DateTimeField(auto_now_add=True)),
                ('application', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='logs', to='applications.kkapplication')),
                ('by_user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['timestamp', 'id'],
            },
        ),
    ]
