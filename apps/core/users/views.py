from django.contrib import messages
from django.contrib.auth import update_session_auth_hash
from django.contrib.auth.decorators import login_required
from django.db import transaction
from django.shortcuts import get_object_or_404, redirect, render
from django.views.decorators.http import require_POST

from apps.core.users.audit import log_audit_event
from apps.core.users.decorators import role_required

from .forms import AccountForm, UserForm
from .models import User


@login_required
def role_redirect(request):

    role = request.user.role

    if role == User.ROLE_ADMIN:
        return redirect('admin_dashboard')

    elif role == User.ROLE_KASIR:
        return redirect('kasir_dashboard')

    else:
        return redirect('/login/')


@login_required
@role_required('admin')
def user_list(request):
    users = User.objects.order_by('role', 'username')
    return render(request, 'users/user_list.html', {'users': users})


@login_required
@role_required('admin')
def user_create(request):
    form = UserForm(request.POST or None)

    if request.method == 'POST' and form.is_valid():
        with transaction.atomic():
            user = form.save()
            log_audit_event(
                request=request,
                action='create',
                entity='user',
                target=user,
                details={'username': user.username, 'role': user.role},
            )
        messages.success(request, 'User berhasil dibuat.')
        return redirect('user_list')

    return render(request, 'users/user_form.html', {'form': form, 'is_edit': False})


@login_required
@role_required('admin')
def user_update(request, pk):
    user = get_object_or_404(User, pk=pk)
    form = UserForm(request.POST or None, instance=user)

    if request.method == 'POST' and form.is_valid():
        with transaction.atomic():
            user = form.save()
            log_audit_event(
                request=request,
                action='update',
                entity='user',
                target=user,
                details={
                    'username': user.username,
                    'role': user.role,
                    'password_changed': bool(form.cleaned_data.get('password')),
                },
            )
        if user.pk == request.user.pk and form.cleaned_data.get('password'):
            update_session_auth_hash(request, user)
        messages.success(request, 'User berhasil diperbarui.')
        return redirect('user_list')

    return render(request, 'users/user_form.html', {'form': form, 'is_edit': True, 'target_user': user})


@login_required
@role_required('admin')
@require_POST
def user_delete(request, pk):
    user = get_object_or_404(User, pk=pk)

    if user.pk == request.user.pk:
        messages.error(request, 'Tidak bisa menghapus akun sendiri.')
        return redirect('user_list')

    username = user.username
    user_id = user.pk
    user.delete()
    log_audit_event(
        request=request,
        action='delete',
        entity='user',
        entity_id=user_id,
        details={'username': username},
    )
    messages.success(request, 'User berhasil dihapus.')
    return redirect('user_list')


@login_required
def account_settings(request):
    form = AccountForm(request.POST or None, user=request.user)

    if request.method == 'POST' and form.is_valid():
        changed = form.save()
        if 'password' in changed:
            update_session_auth_hash(request, request.user)
        if changed:
            log_audit_event(
                request=request,
                action='update',
                entity='account',
                target=request.user,
                details={'changed': changed},
            )
            messages.success(request, 'Akun berhasil diperbarui.')
        else:
            messages.info(request, 'Tidak ada perubahan.')
        return redirect('account_settings')

    return render(request, 'users/account.html', {'form': form})
