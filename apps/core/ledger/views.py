import logging

from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.http import FileResponse, JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.views.decorators.http import require_POST

from apps.core.students.models import Student
from apps.core.students.services import clamp_limit, search_students, student_search_payload
from apps.core.users.audit import log_audit_event, request_audit_sink
from apps.core.users.decorators import role_required

from .exceptions import LedgerError, StorageUnavailable
from .forms import DepositForm, PresetNominalForm, ReversalForm, StudentLookupForm, WithdrawalForm
from .models import TYPE_DEPOSIT, TYPE_WITHDRAWAL, PresetNominal, Transaction
from .receipts import format_rupiah
from .services import TransactionEngine, active_presets

logger = logging.getLogger(__name__)


FORM_TITLES = {
    TYPE_DEPOSIT: 'Transaksi Setoran',
    TYPE_WITHDRAWAL: 'Transaksi Penarikan',
}


def _engine(request):
    return TransactionEngine(audit_sink=request_audit_sink(request))


def _form_context(trx_type, form, student=None, student_list=None):
    return {
        'title': FORM_TITLES[trx_type],
        'trx_type': trx_type,
        'form': form,
        'student': student,
        'student_list': student_list,
        'presets': active_presets(trx_type),
        'lookup_form': StudentLookupForm(initial={'type': trx_type}),
    }


def _selected_student(request):
    student_id = request.GET.get('student') or request.POST.get('student')
    if not student_id or not str(student_id).isdigit():
        return None
    return Student.objects.filter(pk=student_id).first()


def _handle_transaction_form(request, trx_type):
    form_class = DepositForm if trx_type == TYPE_DEPOSIT else WithdrawalForm
    student = _selected_student(request)

    if request.method == 'POST':
        form = form_class(request.POST)
        if form.is_valid():
            engine = _engine(request)
            try:
                if trx_type == TYPE_DEPOSIT:
                    outcome = engine.deposit(form.to_request(), actor=request.user)
                else:
                    outcome = engine.withdraw(form.to_request(), actor=request.user)
            except ValidationError as exc:
                form.add_error(None, '; '.join(exc.messages))
            except StorageUnavailable as exc:
                messages.error(request, str(exc))
            except LedgerError as exc:
                form.add_error(None, str(exc))
            else:
                trx = outcome.transaction
                if trx_type == TYPE_DEPOSIT:
                    messages.success(
                        request,
                        f'Setoran Rp {format_rupiah(trx.amount)} berhasil. No: {trx.trx_no}.',
                    )
                else:
                    messages.success(
                        request,
                        f'Penarikan Rp {format_rupiah(trx.amount)} berhasil. No: {trx.trx_no}.',
                    )
                if outcome.receipt_warning:
                    messages.warning(request, outcome.receipt_warning)
                return redirect('kasir_dashboard')
    else:
        initial = {'student': student.pk} if student else {}
        form = form_class(initial=initial)

    return render(request, 'ledger/transaction_form.html', _form_context(trx_type, form, student=student))


@login_required
@role_required('kasir')
def deposit_create(request):
    return _handle_transaction_form(request, TYPE_DEPOSIT)


@login_required
@role_required('kasir')
def withdrawal_create(request):
    return _handle_transaction_form(request, TYPE_WITHDRAWAL)


@login_required
@role_required('kasir')
@require_POST
def student_lookup(request):
    form = StudentLookupForm(request.POST)
    trx_type = request.POST.get('type')
    if trx_type not in FORM_TITLES:
        trx_type = TYPE_DEPOSIT
    target = 'deposit_create' if trx_type == TYPE_DEPOSIT else 'withdrawal_create'

    if not form.is_valid():
        messages.error(request, 'Isi nama santri untuk mencari.')
        return redirect(target)

    query = form.cleaned_data['name'].strip()
    matches = list(Student.objects.filter(name__icontains=query).order_by('name', 'id'))
    if not matches:
        messages.error(request, 'Santri tidak ditemukan.')
        return redirect(target)

    form_class = DepositForm if trx_type == TYPE_DEPOSIT else WithdrawalForm
    if len(matches) == 1:
        student = matches[0]
        context = _form_context(trx_type, form_class(initial={'student': student.pk}), student=student)
    else:
        context = _form_context(trx_type, form_class(), student_list=matches)
    return render(request, 'ledger/transaction_form.html', context)


@login_required
@role_required(['admin', 'kasir'])
def transaction_student_search(request):
    students = search_students(
        request.GET.get('q'),
        clamp_limit(request.GET.get('limit')),
    )
    return JsonResponse([student_search_payload(student) for student in students], safe=False)


@login_required
def receipt_pdf(request, trx_no):
    trx = Transaction.objects.filter(trx_no=trx_no).first()
    fallback = 'admin_dashboard' if request.user.role == 'admin' else 'kasir_dashboard'

    if trx is None or not trx.receipt_path:
        messages.error(request, 'PDF bukti tidak ditemukan.')
        return redirect(fallback)

    try:
        path = TransactionEngine().storage_path(trx.receipt_path)
    except ValueError:
        logger.warning('Receipt path for %s points outside storage: %s', trx_no, trx.receipt_path)
        path = None

    if path is None or not path.is_file():
        messages.error(request, 'File PDF tidak tersedia.')
        return redirect(fallback)

    return FileResponse(
        open(path, 'rb'),
        content_type='application/pdf',
        as_attachment=False,
        filename=f'{trx.trx_no}.pdf',
    )


@login_required
@role_required('admin')
def transaction_reverse(request):
    form = ReversalForm(request.POST or None)

    if request.method == 'POST' and form.is_valid():
        try:
            outcome = _engine(request).reverse(form.to_request(), actor=request.user)
        except ValidationError as exc:
            form.add_error('reference', '; '.join(exc.messages))
        except StorageUnavailable as exc:
            messages.error(request, str(exc))
        except LedgerError as exc:
            form.add_error('reference', str(exc))
        else:
            trx = outcome.transaction
            messages.success(
                request,
                f'Transaksi {trx.trx_no} dihapus. Saldo dikembalikan (Rp {format_rupiah(trx.amount)}).',
            )
            if outcome.balance_warning:
                messages.warning(request, outcome.balance_warning)
            return redirect('transaction_reverse')

    return render(request, 'ledger/transaction_reverse.html', {'form': form})


@login_required
@role_required('admin')
def preset_list(request):
    form = PresetNominalForm(request.POST or None, initial={'is_active': True})

    if request.method == 'POST':
        if form.is_valid():
            preset = form.save()
            log_audit_event(
                request=request,
                action='create',
                entity='preset_nominal',
                target=preset,
                details={'type': preset.type, 'amount': preset.amount},
            )
            messages.success(request, 'Preset berhasil ditambahkan.')
            return redirect('preset_list')
        messages.error(request, 'Data preset tidak valid.')

    presets = PresetNominal.objects.order_by('sort_order', 'amount')
    return render(request, 'ledger/preset_list.html', {
        'form': form,
        'deposit_presets': presets.filter(type=TYPE_DEPOSIT),
        'withdrawal_presets': presets.filter(type=TYPE_WITHDRAWAL),
    })


@login_required
@role_required('admin')
def preset_update(request, pk):
    preset = get_object_or_404(PresetNominal, pk=pk)
    form = PresetNominalForm(request.POST or None, instance=preset)

    if request.method == 'POST' and form.is_valid():
        preset = form.save()
        log_audit_event(
            request=request,
            action='update',
            entity='preset_nominal',
            target=preset,
            details={'type': preset.type, 'amount': preset.amount, 'is_active': preset.is_active},
        )
        messages.success(request, 'Preset berhasil diperbarui.')
        return redirect('preset_list')

    return render(request, 'ledger/preset_form.html', {'form': form, 'preset': preset})


@login_required
@role_required('admin')
@require_POST
def preset_delete(request, pk):
    preset = get_object_or_404(PresetNominal, pk=pk)
    preset_id = preset.pk
    preset.delete()
    log_audit_event(request=request, action='delete', entity='preset_nominal', entity_id=preset_id)
    messages.success(request, 'Preset dihapus.')
    return redirect('preset_list')
