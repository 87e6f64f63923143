from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import date, timedelta
from io import StringIO

from PIL import Image, ImageDraw
from django.contrib.auth import get_user_model
from django.db.models import Count, Q, Sum
from django.db.models.functions import TruncDate
from django.utils import timezone
from django.utils.dateparse import parse_date

from apps.core.ledger.models import TYPE_DEPOSIT, TYPE_WITHDRAWAL, Transaction
from apps.core.ledger.receipts import format_rupiah
from apps.core.students.models import Student
from apps.core.utils.pdf import A4_SIZE, image_to_pdf_bytes, load_font


RANGE_DAY = 'day'
RANGE_WEEK = 'week'
RANGE_MONTH = 'month'

CHART_MAX_SPAN_DAYS = 180
CHART_DEFAULT_DAYS = 14
CHART_MAX_DAYS = 90

REPORT_HEADERS = ['Tanggal', 'Nomor', 'NIS', 'Nama', 'Tipe', 'Jumlah', 'Kasir', 'Keterangan']


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    @property
    def days(self):
        return (self.end - self.start).days + 1

    def dates(self):
        return [self.start + timedelta(days=offset) for offset in range(self.days)]


def _month_end(day):
    next_month = (day.replace(day=28) + timedelta(days=4)).replace(day=1)
    return next_month - timedelta(days=1)


def preset_range(key, today):
    if key == RANGE_DAY:
        return DateRange(today, today)
    if key == RANGE_WEEK:
        return DateRange(today - timedelta(days=6), today)
    if key == RANGE_MONTH:
        return DateRange(today.replace(day=1), _month_end(today))
    return None


def _parse_iso(value):
    if not value:
        return None
    try:
        return parse_date(str(value).strip())
    except ValueError:
        return None


def resolve_range(params, *, today=None, default_today=True):
    """Resolve ``range``/``start``/``end`` query params. Explicit dates override the preset."""
    today = today or timezone.localdate()
    preset = preset_range(params.get('range'), today)
    start = preset.start if preset else None
    end = preset.end if preset else None

    start = _parse_iso(params.get('start')) or start
    end = _parse_iso(params.get('end')) or end

    if default_today:
        start = start or today
        end = end or today
    if start is None or end is None:
        return None
    if start > end:
        start, end = end, start
    return DateRange(start, end)


def transactions_in_range(date_range):
    return Transaction.objects.filter(
        created_at__date__gte=date_range.start,
        created_at__date__lte=date_range.end,
    ).select_related('student', 'user')


def type_summary(queryset):
    summary = queryset.aggregate(
        deposit_count=Count('id', filter=Q(type=TYPE_DEPOSIT)),
        deposit_total=Sum('amount', filter=Q(type=TYPE_DEPOSIT)),
        withdrawal_count=Count('id', filter=Q(type=TYPE_WITHDRAWAL)),
        withdrawal_total=Sum('amount', filter=Q(type=TYPE_WITHDRAWAL)),
    )
    return {key: value or 0 for key, value in summary.items()}


def admin_dashboard_stats(today=None):
    today = today or timezone.localdate()
    ranges = {
        'today': preset_range(RANGE_DAY, today),
        'week': preset_range(RANGE_WEEK, today),
        'month': preset_range(RANGE_MONTH, today),
    }
    return {
        'total_balance': Student.objects.aggregate(total=Sum('balance'))['total'] or 0,
        'student_count': Student.objects.count(),
        'kasir_count': get_user_model().objects.filter(role='kasir').count(),
        'ranges': ranges,
        'summaries': {
            key: type_summary(transactions_in_range(date_range))
            for key, date_range in ranges.items()
        },
    }


def daily_series(params, *, today=None):
    today = today or timezone.localdate()
    date_range = resolve_range(params, today=today, default_today=False)

    if date_range is not None:
        labels = date_range.dates()[:CHART_MAX_SPAN_DAYS]
        queryset = transactions_in_range(date_range)
    else:
        try:
            days = int(params.get('days') or CHART_DEFAULT_DAYS)
        except (TypeError, ValueError):
            days = CHART_DEFAULT_DAYS
        days = min(days if days > 0 else CHART_DEFAULT_DAYS, CHART_MAX_DAYS)
        start = today - timedelta(days=days - 1)
        labels = DateRange(start, today).dates()
        queryset = Transaction.objects.filter(created_at__date__gte=start)

    totals = (
        queryset.order_by()
        .annotate(day=TruncDate('created_at'))
        .values('day', 'type')
        .annotate(total=Sum('amount'))
    )
    incoming = {}
    outgoing = {}
    for row in totals:
        target = incoming if row['type'] == TYPE_DEPOSIT else outgoing
        target[row['day']] = row['total'] or 0

    return {
        'labels': [day.isoformat() for day in labels],
        'pemasukan': [incoming.get(day, 0) for day in labels],
        'pengeluaran': [outgoing.get(day, 0) for day in labels],
    }


def report_rows(queryset):
    rows = []
    for trx in queryset.order_by('created_at', 'id'):
        rows.append([
            timezone.localtime(trx.created_at).strftime('%Y-%m-%d %H:%M:%S'),
            trx.trx_no,
            trx.student.nis,
            trx.student.name,
            trx.type,
            trx.amount,
            trx.user.display_name if trx.user else '',
            trx.note or '',
        ])
    return rows


def rows_to_csv_bytes(headers, rows):
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(headers)
    for row in rows:
        writer.writerow(row)
    return output.getvalue().encode('utf-8')


def report_pdf_bytes(date_range, rows, totals):
    width, height = A4_SIZE
    margin = 70
    line_height = 34
    title_font = load_font(32)
    body_font = load_font(20)
    small_font = load_font(17)

    pages = []

    def new_page():
        page = Image.new('RGB', (width, height), 'white')
        pages.append(page)
        return page, ImageDraw.Draw(page)

    page, draw = new_page()
    draw.text((width // 2, 90), 'LAPORAN TRANSAKSI TABUNGAN SANTRI', fill='black', font=title_font, anchor='mm')
    y = 160
    period = f"Periode: {date_range.start.strftime('%d/%m/%Y')} s.d. {date_range.end.strftime('%d/%m/%Y')}"
    for line in (
        period,
        f"Total Setoran: Rp {format_rupiah(totals['deposit_total'])}",
        f"Total Penarikan: Rp {format_rupiah(totals['withdrawal_total'])}",
        '',
        'Rincian:',
    ):
        if line:
            draw.text((margin, y), line, fill='black', font=body_font)
        y += line_height

    for row in rows:
        if y > height - margin - line_height:
            page, draw = new_page()
            y = margin
        stamp, trx_no, nis, name, trx_type, amount, kasir, _note = row
        text = f"{stamp[5:16]} | {trx_no} | {nis} - {name} | {trx_type} | Rp {format_rupiah(amount)} | {kasir}"
        if len(text) > 120:
            text = text[:117] + '...'
        draw.text((margin, y), text, fill='black', font=small_font)
        y += line_height

    if not rows:
        draw.text((margin, y), 'Tidak ada transaksi pada periode ini.', fill='black', font=small_font)

    return image_to_pdf_bytes(pages)
