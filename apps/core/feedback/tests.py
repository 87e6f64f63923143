from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse

from apps.core.users.models import AuditLog

from .models import Feedback


class FeedbackTests(TestCase):
    def setUp(self):
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username='admin1', password='pass12345', role='admin')
        self.kasir = user_model.objects.create_user(username='kasir1', password='pass12345', role='kasir')

    def test_anonymous_visitor_can_submit(self):
        response = self.client.post(reverse('feedback_submit'), {
            'sender_name': 'Wali Santri',
            'message': '  Mohon tambah jam layanan.  ',
        })

        self.assertRedirects(response, reverse('login'))
        item = Feedback.objects.get()
        self.assertEqual(item.message, 'Mohon tambah jam layanan.')

    def test_blank_message_is_rejected(self):
        self.client.post(reverse('feedback_submit'), {'sender_name': 'X', 'message': '   '})
        self.assertFalse(Feedback.objects.exists())

    def test_soft_deleted_items_are_hidden(self):
        kept = Feedback.objects.create(message='tetap')
        removed = Feedback.objects.create(message='hapus')
        self.client.login(username='admin1', password='pass12345')

        response = self.client.post(reverse('feedback_delete', args=[removed.pk]))

        self.assertRedirects(response, reverse('feedback_list'))
        removed.refresh_from_db()
        self.assertTrue(removed.is_deleted)
        self.assertEqual(removed.deleted_by, self.admin)
        self.assertEqual(list(Feedback.objects.alive()), [kept])
        self.assertTrue(AuditLog.objects.filter(action='delete', entity='feedback', entity_id=str(removed.pk)).exists())

        listing = self.client.get(reverse('feedback_list'))
        self.assertEqual(list(listing.context['items']), [kept])

    def test_kasir_reads_but_cannot_delete(self):
        item = Feedback.objects.create(message='pesan')
        self.client.login(username='kasir1', password='pass12345')

        self.assertEqual(self.client.get(reverse('feedback_list')).status_code, 200)
        response = self.client.post(reverse('feedback_delete', args=[item.pk]))

        self.assertEqual(response.status_code, 403)
        item.refresh_from_db()
        self.assertFalse(item.is_deleted)
