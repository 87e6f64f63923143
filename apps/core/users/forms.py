from django import forms
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError

from .models import User


class UserForm(forms.ModelForm):
    password = forms.CharField(
        widget=forms.PasswordInput(render_value=False),
        required=False,
        help_text='Kosongkan jika tidak ingin mengganti password.',
    )

    class Meta:
        model = User
        fields = ['username', 'full_name', 'role']

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if not self.instance.pk:
            self.fields['password'].required = True
            self.fields['password'].help_text = ''

    def clean_password(self):
        password = self.cleaned_data.get('password')
        if password:
            validate_password(password, self.instance if self.instance.pk else None)
        return password

    def save(self, commit=True):
        user = super().save(commit=False)
        password = self.cleaned_data.get('password')
        if password:
            user.set_password(password)
        if commit:
            user.save()
        return user


class AccountForm(forms.Form):
    full_name = forms.CharField(max_length=200, required=False)
    new_password = forms.CharField(widget=forms.PasswordInput, required=False)
    confirm_password = forms.CharField(widget=forms.PasswordInput, required=False)

    def __init__(self, *args, **kwargs):
        self.user = kwargs.pop('user')
        super().__init__(*args, **kwargs)
        if not self.is_bound:
            self.initial.setdefault('full_name', self.user.full_name)

    def clean(self):
        cleaned = super().clean()
        new_password = cleaned.get('new_password')
        confirm_password = cleaned.get('confirm_password')

        if new_password:
            if new_password != confirm_password:
                raise ValidationError('Konfirmasi password tidak cocok.')
            validate_password(new_password, self.user)
        if not cleaned.get('full_name') and not new_password:
            raise ValidationError('Tidak ada perubahan.')
        return cleaned

    def save(self):
        changed = []
        full_name = self.cleaned_data.get('full_name')
        if full_name and full_name != self.user.full_name:
            self.user.full_name = full_name
            changed.append('full_name')
        if self.cleaned_data.get('new_password'):
            self.user.set_password(self.cleaned_data['new_password'])
            changed.append('password')
        if changed:
            self.user.save()
        return changed
