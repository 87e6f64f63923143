import logging
from functools import wraps

from django.contrib.auth.views import redirect_to_login
from django.shortcuts import render

logger = logging.getLogger(__name__)


def _normalize_roles(allowed_roles):
    if isinstance(allowed_roles, str):
        return {allowed_roles}
    return set(allowed_roles)


def role_required(allowed_roles):
    """Allow the view only for users whose ``role`` is in ``allowed_roles``."""
    normalized_roles = _normalize_roles(allowed_roles)

    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if not request.user.is_authenticated:
                return redirect_to_login(request.get_full_path())

            if request.user.role not in normalized_roles:
                logger.warning(
                    'Forbidden: user=%s role=%s path=%s',
                    request.user.username,
                    request.user.role,
                    request.path,
                )
                return render(request, 'reports/forbidden.html', status=403)

            return view_func(request, *args, **kwargs)

        return wrapper

    return decorator
