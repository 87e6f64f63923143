from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse

from apps.core.users.audit import record_audit
from apps.core.users.models import AuditLog


class RoleAccessTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(
            username='admin1',
            password='pass12345',
            role='admin',
        )
        self.kasir = self.user_model.objects.create_user(
            username='kasir1',
            password='pass12345',
            role='kasir',
        )

    def test_dashboard_redirects_by_role(self):
        self.client.login(username='admin1', password='pass12345')
        response = self.client.get(reverse('role_redirect'))
        self.assertRedirects(response, reverse('admin_dashboard'))

        self.client.logout()
        self.client.login(username='kasir1', password='pass12345')
        response = self.client.get(reverse('role_redirect'))
        self.assertRedirects(response, reverse('kasir_dashboard'))

    def test_kasir_cannot_manage_users(self):
        self.client.login(username='kasir1', password='pass12345')
        response = self.client.get(reverse('user_list'))
        self.assertEqual(response.status_code, 403)

    def test_anonymous_user_is_sent_to_login(self):
        response = self.client.get(reverse('user_list'))
        self.assertEqual(response.status_code, 302)
        self.assertTrue(response['Location'].startswith(reverse('login')))

    def test_superuser_is_always_admin(self):
        root = self.user_model.objects.create_superuser(username='root', password='pass12345')
        self.assertEqual(root.role, 'admin')
        self.assertEqual(root.full_name, 'root')


class UserManagementTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(
            username='admin1',
            password='pass12345',
            role='admin',
        )
        self.client.login(username='admin1', password='pass12345')

    def test_admin_creates_kasir(self):
        response = self.client.post(reverse('user_create'), {
            'username': 'kasir_baru',
            'full_name': 'Kasir Baru',
            'role': 'kasir',
            'password': 'RahasiaKuat#2026',
        })

        self.assertRedirects(response, reverse('user_list'))
        user = self.user_model.objects.get(username='kasir_baru')
        self.assertTrue(user.check_password('RahasiaKuat#2026'))
        self.assertTrue(AuditLog.objects.filter(action='create', entity='user', entity_id=str(user.pk)).exists())

    def test_password_is_required_on_create(self):
        response = self.client.post(reverse('user_create'), {
            'username': 'tanpa_password',
            'role': 'kasir',
        })

        self.assertEqual(response.status_code, 200)
        self.assertFalse(self.user_model.objects.filter(username='tanpa_password').exists())

    def test_update_keeps_password_when_blank(self):
        kasir = self.user_model.objects.create_user(username='kasir2', password='pass12345', role='kasir')

        self.client.post(reverse('user_update', args=[kasir.pk]), {
            'username': 'kasir2',
            'full_name': 'Kasir Dua',
            'role': 'kasir',
            'password': '',
        })

        kasir.refresh_from_db()
        self.assertEqual(kasir.full_name, 'Kasir Dua')
        self.assertTrue(kasir.check_password('pass12345'))

    def test_admin_cannot_delete_self(self):
        response = self.client.post(reverse('user_delete', args=[self.admin.pk]))

        self.assertRedirects(response, reverse('user_list'))
        self.assertTrue(self.user_model.objects.filter(pk=self.admin.pk).exists())

    def test_admin_deletes_other_user(self):
        kasir = self.user_model.objects.create_user(username='kasir3', password='pass12345', role='kasir')

        self.client.post(reverse('user_delete', args=[kasir.pk]))

        self.assertFalse(self.user_model.objects.filter(pk=kasir.pk).exists())
        entry = AuditLog.objects.get(action='delete', entity='user')
        self.assertEqual(entry.details, {'username': 'kasir3'})


class AccountSettingsTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(
            username='kasir1',
            password='pass12345',
            role='kasir',
            full_name='Kasir Lama',
        )
        self.client.login(username='kasir1', password='pass12345')

    def test_change_name_and_password_keeps_session(self):
        response = self.client.post(reverse('account_settings'), {
            'full_name': 'Kasir Baru',
            'new_password': 'RahasiaKuat#2026',
            'confirm_password': 'RahasiaKuat#2026',
        })

        self.assertRedirects(response, reverse('account_settings'))
        self.user.refresh_from_db()
        self.assertEqual(self.user.full_name, 'Kasir Baru')
        self.assertTrue(self.user.check_password('RahasiaKuat#2026'))
        self.assertEqual(self.client.get(reverse('account_settings')).status_code, 200)

    def test_mismatched_confirmation_is_rejected(self):
        response = self.client.post(reverse('account_settings'), {
            'full_name': '',
            'new_password': 'RahasiaKuat#2026',
            'confirm_password': 'BedaSekali#2026',
        })

        self.assertContains(response, 'Konfirmasi password tidak cocok.')
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password('pass12345'))


class AuditTrailTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(
            username='kasir1',
            password='pass12345',
            role='kasir',
        )

    def test_login_and_logout_are_recorded(self):
        self.client.post(reverse('login'), {'username': 'kasir1', 'password': 'pass12345'})
        self.client.post(reverse('logout'))

        actions = list(AuditLog.objects.filter(user=self.user).order_by('id').values_list('action', flat=True))
        self.assertEqual(actions, ['login', 'logout'])
        self.assertEqual(AuditLog.objects.get(action='login').details, {'role': 'kasir'})

    def test_record_audit_swallows_storage_errors(self):
        with mock.patch.object(AuditLog.objects, 'create', side_effect=RuntimeError('boom')):
            with self.assertLogs('apps.core.users.audit', level='ERROR'):
                record_audit(user=self.user, action='create', entity='student', entity_id=1)

        self.assertFalse(AuditLog.objects.exists())

    def test_anonymous_actor_is_stored_without_user(self):
        record_audit(user=None, action='create', entity='feedback', entity_id=5, details={'x': 1})

        entry = AuditLog.objects.get()
        self.assertIsNone(entry.user)
        self.assertEqual(entry.entity_id, '5')
