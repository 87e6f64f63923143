from django.contrib.auth.signals import user_logged_in, user_logged_out
from django.dispatch import receiver

from apps.core.users.audit import record_audit


@receiver(user_logged_in)
def log_login(sender, request, user, **kwargs):
    record_audit(
        user=user,
        action='login',
        entity='user',
        entity_id=user.pk,
        details={'role': user.role},
        request=request,
    )


@receiver(user_logged_out)
def log_logout(sender, request, user, **kwargs):
    if user is None:
        return

    record_audit(
        user=user,
        action='logout',
        entity='user',
        entity_id=user.pk,
        details={'role': user.role},
        request=request,
    )
