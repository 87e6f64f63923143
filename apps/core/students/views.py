import logging

from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.db.models import Q
from django.http import JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.views.decorators.http import require_POST

from apps.core.ledger.services import TransactionEngine
from apps.core.users.audit import log_audit_event
from apps.core.users.decorators import role_required

from .forms import StudentForm, StudentImportForm
from .models import Student, delete_stored_file
from .services import (
    PREVIEW_ROWS,
    clamp_limit,
    load_import_rows,
    rows_from_session,
    rows_to_session,
    search_students,
    student_search_payload,
    upsert_students,
)

logger = logging.getLogger(__name__)

IMPORT_SESSION_KEY = 'student_import_rows'


@login_required
@role_required('admin')
def student_list(request):
    search = (request.GET.get('q') or '').strip()
    students = Student.objects.all()

    if search:
        students = students.filter(
            Q(name__icontains=search)
            | Q(nis__icontains=search)
            | Q(student_class__icontains=search)
            | Q(group__icontains=search)
        )

    return render(request, 'students/student_list.html', {
        'students': students.order_by('name', 'id'),
        'search_query': search,
    })


@login_required
@role_required('admin')
def student_create(request):
    form = StudentForm(request.POST or None, request.FILES or None)

    if request.method == 'POST' and form.is_valid():
        student = form.save()
        log_audit_event(
            request=request,
            action='create',
            entity='student',
            target=student,
            details={'nis': student.nis, 'name': student.name},
        )
        messages.success(request, 'Santri berhasil ditambahkan.')
        return redirect('student_list')

    return render(request, 'students/student_form.html', {'form': form})


@login_required
@role_required('admin')
def student_update(request, pk):
    student = get_object_or_404(Student, pk=pk)
    previous_photo = student.photo.name if student.photo else ''
    form = StudentForm(request.POST or None, request.FILES or None, instance=student)

    if request.method == 'POST' and form.is_valid():
        student = form.save()
        if previous_photo and student.photo.name != previous_photo:
            delete_stored_file(student.photo.storage, previous_photo)

        log_audit_event(
            request=request,
            action='update',
            entity='student',
            target=student,
            details={'nis': student.nis, 'name': student.name},
        )
        messages.success(request, 'Data santri berhasil diperbarui.')
        return redirect('student_list')

    return render(request, 'students/student_form.html', {'form': form, 'student': student})


@login_required
@role_required('admin')
@require_POST
def student_delete(request, pk):
    student = get_object_or_404(Student, pk=pk)
    details = {'nis': student.nis, 'name': student.name, 'balance': student.balance}
    student_id = student.pk
    stored_files = [
        path
        for trx in student.transactions.all()
        for path in trx.stored_files
    ]

    with transaction.atomic():
        student.delete()

    delete_stored_file(student.photo.storage, student.photo.name)
    TransactionEngine().remove_files(stored_files)
    log_audit_event(
        request=request,
        action='delete',
        entity='student',
        entity_id=student_id,
        details=details,
    )
    messages.success(request, 'Santri berhasil dihapus.')
    return redirect('student_list')


@login_required
@role_required(['admin', 'kasir'])
def student_detail(request, pk):
    student = get_object_or_404(Student, pk=pk)
    transactions = student.transactions.select_related('user').order_by('-created_at', '-id')
    return render(request, 'students/student_detail.html', {
        'student': student,
        'transactions': transactions,
    })


@login_required
@role_required('admin')
def student_search(request):
    students = search_students(
        request.GET.get('q'),
        clamp_limit(request.GET.get('limit')),
        extended=True,
    )
    return JsonResponse([student_search_payload(student) for student in students], safe=False)


@login_required
@role_required('admin')
def student_import(request):
    form = StudentImportForm(request.POST or None, request.FILES or None)
    preview_rows = None
    pending_count = len(request.session.get(IMPORT_SESSION_KEY) or [])

    if request.method == 'POST' and form.is_valid():
        action = form.cleaned_data['action']
        try:
            if form.has_source:
                rows = load_import_rows(
                    sheet_url=form.cleaned_data.get('sheet_url') or '',
                    sheet_name=form.cleaned_data.get('sheet_name') or '',
                    upload=form.cleaned_data.get('file'),
                )
            elif action == StudentImportForm.ACTION_RUN and pending_count:
                rows = rows_from_session(request.session.get(IMPORT_SESSION_KEY))
            else:
                raise ValidationError('Isi URL Google Sheets atau unggah file.')
        except ValidationError as exc:
            form.add_error(None, '; '.join(exc.messages))
        else:
            if action == StudentImportForm.ACTION_PREVIEW:
                request.session[IMPORT_SESSION_KEY] = rows_to_session(rows)
                preview_rows = rows[:PREVIEW_ROWS]
                pending_count = len(rows)
            else:
                try:
                    result = upsert_students(rows)
                except DatabaseError:
                    logger.exception('Student import failed on storage')
                    messages.error(request, 'Impor gagal disimpan. Tidak ada data yang berubah.')
                    return redirect('student_import')
                request.session.pop(IMPORT_SESSION_KEY, None)
                log_audit_event(
                    request=request,
                    action='import',
                    entity='student',
                    details={
                        'inserted': result.inserted,
                        'updated': result.updated,
                        'skipped': result.skipped,
                    },
                )
                messages.success(
                    request,
                    f'Impor selesai. Ditambahkan: {result.inserted}, '
                    f'Diperbarui: {result.updated}, Diskip: {result.skipped}.',
                )
                return redirect('student_list')

    return render(request, 'students/student_import.html', {
        'form': form,
        'preview_rows': preview_rows,
        'pending_count': pending_count,
    })
