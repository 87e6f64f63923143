import logging

from django.db import transaction

from apps.core.users.models import AuditLog

logger = logging.getLogger(__name__)


def _extract_ip(request):
    forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR', '')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def record_audit(*, user, action, entity, entity_id='', details=None, request=None):
    """Write one audit row. Failures are logged and swallowed."""
    try:
        actor = user if getattr(user, 'is_authenticated', False) else None
        extra = {}
        if request is not None:
            extra = {
                'method': request.method,
                'path': request.path[:255],
                'ip_address': _extract_ip(request),
            }
        # Savepoint keeps a failed insert from poisoning the caller's transaction.
        with transaction.atomic():
            AuditLog.objects.create(
                user=actor,
                action=action,
                entity=entity,
                entity_id='' if entity_id is None else str(entity_id),
                details=details,
                **extra,
            )
    except Exception:
        # Logging must never break business actions.
        logger.exception('Audit write failed: action=%s entity=%s id=%s', action, entity, entity_id)


def log_audit_event(request, action, entity, target=None, entity_id='', details=None):
    if target is not None and not entity_id:
        entity_id = getattr(target, 'pk', '')
    user = request.user if request.user.is_authenticated else None
    record_audit(
        user=user,
        action=action,
        entity=entity,
        entity_id=entity_id,
        details=details,
        request=request,
    )


def request_audit_sink(request):
    """Audit sink for the ledger engine that also records request metadata."""

    def sink(*, actor, action, entity, entity_id, details):
        record_audit(
            user=actor,
            action=action,
            entity=entity,
            entity_id=entity_id,
            details=details,
            request=request,
        )

    return sink
