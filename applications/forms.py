from django import forms
from django.forms import inlineformset_factory
from django.utils.translation import gettext_lazy as _

from .models import FamilyMember, KKApplication


class ApplicationForm(forms.ModelForm):
    consent = forms.BooleanField(
        required=True,
        label=_('I declare that the data and documents submitted are true / Saya menyatakan data yang diisi benar'),
    )

    class Meta:
        model = KKApplication
        fields = [
            'no_kk', 'head_name', 'head_nik', 'address', 'rt', 'rw',
            'province', 'regency', 'district', 'sub_district', 'postal_code',
            'birth_certificate', 'head_id_copy', 'marriage_certificate', 'relocation_letter',
        ]
        widgets = {
            'no_kk': forms.TextInput(attrs={'class': 'form-control', 'maxlength': '16', 'inputmode': 'numeric'}),
            'head_name': forms.TextInput(attrs={'class': 'form-control'}),
            'head_nik': forms.TextInput(attrs={'class': 'form-control', 'maxlength': '16', 'inputmode': 'numeric'}),
            'address': forms.Textarea(attrs={'class': 'form-control', 'rows': 3}),
            'rt': forms.TextInput(attrs={'class': 'form-control', 'maxlength': '3'}),
            'rw': forms.TextInput(attrs={'class': 'form-control', 'maxlength': '3'}),
            'province': forms.TextInput(attrs={'class': 'form-control'}),
            'regency': forms.TextInput(attrs={'class': 'form-control'}),
            'district': forms.TextInput(attrs={'class': 'form-control'}),
            'sub_district': forms.TextInput(attrs={'class': 'form-control'}),
            'postal_code': forms.TextInput(attrs={'class': 'form-control', 'maxlength': '5'}),
        }
        labels = {
            'no_kk': _('Family Card No. / No. KK'),
            'head_name': _('Head of Household / Kepala Keluarga'),
            'head_nik': _('Head of Household NIK / NIK Kepala Keluarga'),
            'address': _('Address / Alamat'),
            'province': _('Province / Provinsi'),
            'regency': _('Regency / Kabupaten/Kota'),
            'district': _('District / Kecamatan'),
            'sub_district': _('Sub-district / Kelurahan/Desa'),
            'postal_code': _('Postal Code / Kode Pos'),
            'birth_certificate': _('Birth Certificate / Akta Kelahiran'),
            'head_id_copy': _('ID Card Copy / Fotokopi KTP'),
            'marriage_certificate': _('Marriage Certificate / Akta Nikah (optional)'),
            'relocation_letter': _('Relocation Letter / Surat Pindah (optional)'),
        }

    def document_uploads(self):
        return {
            field: self.cleaned_data.get(field)
            for field in KKApplication.DOCUMENT_FIELDS
            if self.cleaned_data.get(field)
        }

    def application_data(self):
        data = {field: self.cleaned_data[field] for field in self.Meta.fields if field not in KKApplication.DOCUMENT_FIELDS}
        data['consent'] = self.cleaned_data['consent']
        return data


class FamilyMemberForm(forms.ModelForm):
    class Meta:
        model = FamilyMember
        fields = [
            'name', 'nik', 'sex', 'birthplace', 'birthdate', 'religion', 'education',
            'occupation', 'marital_status', 'relationship', 'citizenship',
        ]
        widgets = {
            'birthdate': forms.DateInput(attrs={'class': 'form-control', 'type': 'date'}),
            'sex': forms.Select(attrs={'class': 'form-select'}),
            'religion': forms.Select(attrs={'class': 'form-select'}),
            'marital_status': forms.Select(attrs={'class': 'form-select'}),
            'relationship': forms.Select(attrs={'class': 'form-select'}),
            'citizenship': forms.Select(attrs={'class': 'form-select'}),
        }


FamilyMemberFormSet = inlineformset_factory(
    KKApplication,
    FamilyMember,
    form=FamilyMemberForm,
    extra=0,
    min_num=1,
    validate_min=True,
    can_delete=False,
)


class AdminActionForm(forms.Form):
    action = forms.ChoiceField(choices=KKApplication.Action.choices, widget=forms.RadioSelect)
    note = forms.CharField(required=False, widget=forms.Textarea(attrs={'rows': 3, 'class': 'form-control'}), label=_('Note (e.g. rejection reason)'))

    def __init__(self, *args, **kwargs):
        actions = kwargs.pop('actions', None)
        super().__init__(*args, **kwargs)
        if actions is not None:
            # Only offer what the workflow allows from the current status.
            self.fields['action'].choices = [
                (value, label) for value, label in KKApplication.Action.choices if value in actions
            ]

    def clean(self):
        cleaned_data = super().clean()
        if cleaned_data.get('action') == KKApplication.Action.REJECT and not cleaned_data.get('note'):
            self.add_error('note', _("Please give a reason for the rejection."))
        return cleaned_data
