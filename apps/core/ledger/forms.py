from django import forms

from apps.core.students.models import Student

from .models import MAX_AMOUNT, TYPE_CHOICES, PresetNominal
from .types import DepositRequest, ReversalRequest, WithdrawalRequest


class DepositForm(forms.Form):
    student = forms.ModelChoiceField(queryset=Student.objects.order_by('name'), widget=forms.HiddenInput)
    amount = forms.IntegerField(min_value=1, max_value=MAX_AMOUNT, label='Jumlah (Rp)')
    note = forms.CharField(max_length=255, required=False, label='Keterangan')

    def to_request(self):
        return DepositRequest(
            student_id=self.cleaned_data['student'].pk,
            amount=self.cleaned_data['amount'],
            note=self.cleaned_data.get('note') or '',
        )


class WithdrawalForm(DepositForm):
    receiver_name = forms.CharField(max_length=200, required=False, label='Nama penerima')

    def to_request(self):
        return WithdrawalRequest(
            student_id=self.cleaned_data['student'].pk,
            amount=self.cleaned_data['amount'],
            note=self.cleaned_data.get('note') or '',
            receiver_name=self.cleaned_data.get('receiver_name') or '',
        )


class ReversalForm(forms.Form):
    reference = forms.CharField(max_length=40, label='Nomor transaksi atau 8 karakter terakhir')

    def to_request(self):
        return ReversalRequest(reference=self.cleaned_data['reference'].strip())


class StudentLookupForm(forms.Form):
    name = forms.CharField(max_length=200, label='Nama santri')
    type = forms.ChoiceField(choices=TYPE_CHOICES)


class PresetNominalForm(forms.ModelForm):
    amount = forms.IntegerField(min_value=1, max_value=MAX_AMOUNT, label='Jumlah (Rp)')

    class Meta:
        model = PresetNominal
        fields = ['type', 'amount', 'label', 'sort_order', 'is_active']
