from django import forms

from .models import Feedback


class FeedbackForm(forms.ModelForm):
    class Meta:
        model = Feedback
        fields = ['sender_name', 'message']
        widgets = {
            'message': forms.Textarea(attrs={'rows': 3}),
        }

    def clean_message(self):
        message = (self.cleaned_data.get('message') or '').strip()
        if not message:
            raise forms.ValidationError('Masukan tidak boleh kosong.')
        return message
