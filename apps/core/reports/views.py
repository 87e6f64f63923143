from django.contrib.auth.decorators import login_required
from django.http import HttpResponse, JsonResponse
from django.shortcuts import render
from django.utils import timezone

from apps.core.users.decorators import role_required

from .services import (
    REPORT_HEADERS,
    admin_dashboard_stats,
    daily_series,
    report_pdf_bytes,
    report_rows,
    resolve_range,
    rows_to_csv_bytes,
    transactions_in_range,
    type_summary,
)


def _export_filename(date_range, extension):
    return f"laporan_{date_range.start.isoformat()}_{date_range.end.isoformat()}.{extension}"


@login_required
@role_required('admin')
def admin_dashboard(request):
    return render(request, 'reports/admin_dashboard.html', admin_dashboard_stats())


@login_required
@role_required('kasir')
def kasir_dashboard(request):
    date_range = resolve_range(request.GET)
    transactions = transactions_in_range(date_range).order_by('-created_at', '-id')
    return render(request, 'reports/kasir_dashboard.html', {
        'transactions': transactions,
        'date_range': date_range,
        'selected_range': request.GET.get('range', ''),
        'today': timezone.localdate(),
    })


@login_required
def daily_stats(request):
    return JsonResponse(daily_series(request.GET))


@login_required
@role_required('admin')
def transaction_report(request):
    date_range = resolve_range(request.GET)
    transactions = transactions_in_range(date_range)
    return render(request, 'reports/transaction_report.html', {
        'transactions': transactions.order_by('-created_at', '-id'),
        'totals': type_summary(transactions),
        'date_range': date_range,
        'selected_range': request.GET.get('range', ''),
    })


@login_required
@role_required('admin')
def transaction_report_csv(request):
    date_range = resolve_range(request.GET)
    rows = report_rows(transactions_in_range(date_range))
    response = HttpResponse(rows_to_csv_bytes(REPORT_HEADERS, rows), content_type='text/csv')
    response['Content-Disposition'] = f'attachment; filename="{_export_filename(date_range, "csv")}"'
    return response


@login_required
@role_required('admin')
def transaction_report_pdf(request):
    date_range = resolve_range(request.GET)
    transactions = transactions_in_range(date_range)
    content = report_pdf_bytes(date_range, report_rows(transactions), type_summary(transactions))
    response = HttpResponse(content, content_type='application/pdf')
    response['Content-Disposition'] = f'attachment; filename="{_export_filename(date_range, "pdf")}"'
    return response
