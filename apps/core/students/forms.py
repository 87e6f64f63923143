import os

from django import forms
from django.conf import settings
from django.core.exceptions import ValidationError

from .models import Student


PHOTO_EXTENSIONS = {'.jpg', '.jpeg', '.png'}
IMPORT_EXTENSIONS = {'.xlsx', '.csv'}


class StudentForm(forms.ModelForm):
    class Meta:
        model = Student
        fields = [
            'nis',
            'name',
            'student_class',
            'group',
            'birth_date',
            'address',
            'guardian_phone',
            'photo',
        ]
        widgets = {
            'birth_date': forms.DateInput(attrs={'type': 'date'}),
            'address': forms.Textarea(attrs={'rows': 3}),
        }

    def clean_photo(self):
        photo = self.cleaned_data.get('photo')
        upload = self.files.get('photo') if self.files else None
        if not upload:
            return photo

        ext = os.path.splitext(upload.name)[1].lower()
        if ext not in PHOTO_EXTENSIONS:
            raise ValidationError('Foto harus berformat JPG atau PNG.')
        if upload.size > settings.STUDENT_PHOTO_MAX_BYTES:
            raise ValidationError('Ukuran foto maksimal 2 MB.')
        return photo


class StudentImportForm(forms.Form):
    ACTION_PREVIEW = 'preview'
    ACTION_RUN = 'run'

    sheet_url = forms.URLField(required=False, label='URL Google Sheets')
    sheet_name = forms.CharField(max_length=100, required=False, label='Nama sheet')
    file = forms.FileField(required=False, label='File Excel/CSV')
    action = forms.ChoiceField(
        choices=((ACTION_PREVIEW, 'Preview'), (ACTION_RUN, 'Impor')),
        initial=ACTION_PREVIEW,
    )

    def clean_file(self):
        upload = self.cleaned_data.get('file')
        if not upload:
            return upload

        ext = os.path.splitext(upload.name)[1].lower()
        if ext not in IMPORT_EXTENSIONS:
            raise ValidationError('Hanya file .xlsx atau .csv yang didukung.')
        if upload.size > settings.STUDENT_IMPORT_MAX_BYTES:
            raise ValidationError('Ukuran file maksimal 5 MB.')
        return upload

    def clean(self):
        cleaned = super().clean()
        if cleaned.get('sheet_url') and cleaned.get('file'):
            raise ValidationError('Pilih salah satu sumber: URL Google Sheets atau file.')
        return cleaned

    @property
    def has_source(self):
        return bool(self.cleaned_data.get('sheet_url') or self.cleaned_data.get('file'))
