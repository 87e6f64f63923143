from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.shortcuts import get_object_or_404, redirect, render
from django.views.decorators.http import require_POST

from apps.core.users.audit import log_audit_event
from apps.core.users.decorators import role_required

from .forms import FeedbackForm
from .models import Feedback


@require_POST
def feedback_submit(request):
    form = FeedbackForm(request.POST)
    if form.is_valid():
        form.save()
        messages.success(request, 'Terima kasih, masukan Anda telah dikirim.')
    else:
        messages.error(request, 'Masukan tidak boleh kosong.')
    return redirect('login')


@login_required
@role_required(['admin', 'kasir'])
def feedback_list(request):
    items = Feedback.objects.alive().order_by('-created_at', '-id')
    return render(request, 'feedback/feedback_list.html', {'items': items})


@login_required
@role_required('admin')
@require_POST
def feedback_delete(request, pk):
    item = get_object_or_404(Feedback.objects.alive(), pk=pk)
    item.soft_delete(request.user)
    log_audit_event(request=request, action='delete', entity='feedback', target=item)
    messages.success(request, 'Masukan dihapus.')
    return redirect('feedback_list')
