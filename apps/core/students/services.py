from __future__ import annotations

import csv
import io
import logging
import os
import re
from dataclasses import dataclass
from datetime import date, datetime
from urllib.parse import quote

import requests
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Q
from openpyxl import load_workbook

from .models import Student

logger = logging.getLogger(__name__)


SEARCH_DEFAULT_LIMIT = 12
SEARCH_MAX_LIMIT = 50
SEARCH_CONTAINS_MIN_LENGTH = 3

PREVIEW_ROWS = 10
SHEET_FETCH_TIMEOUT = 20

# Normalized spreadsheet header aliases per Student field, in priority order.
HEADER_ALIASES = {
    'nis': ['nis', 'nisn', 'noinduk', 'nosiswa'],
    'name': ['nama', 'namalengkap', 'name', 'namasantri'],
    'student_class': ['kelas', 'jurusan', 'grade'],
    'group': ['kelompok', 'asrama', 'pondok', 'group', 'unit'],
    'birth_date': ['tgllahir', 'tanggallahir', 'dob'],
    'address': ['alamat', 'address'],
    'guardian_phone': ['hpwali', 'nohporangtua', 'telpwali', 'nohp', 'kontakwali'],
}

_SHEET_ID_RE = re.compile(r'/spreadsheets/d/([a-zA-Z0-9_-]+)')
_ISO_DATE_RE = re.compile(r'(\d{4})[-/](\d{1,2})[-/](\d{1,2})')
_DMY_DATE_RE = re.compile(r'(\d{1,2})[-/](\d{1,2})[-/](\d{4})')


def clamp_limit(raw, default=SEARCH_DEFAULT_LIMIT, maximum=SEARCH_MAX_LIMIT):
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        return default
    if limit < 1:
        return default
    return min(limit, maximum)


def search_students(query, limit=SEARCH_DEFAULT_LIMIT, *, extended=False):
    """Name-prefix search, topped up with a contains match for longer queries.

    ``extended`` widens the contains match to nis, class and group and makes an
    empty query return nothing instead of the first students by name.
    """
    query = (query or '').strip()
    limit = clamp_limit(limit)
    students = Student.objects.order_by('name', 'id')

    if not query:
        if extended:
            return []
        return list(students[:limit])

    results = list(students.filter(name__istartswith=query)[:limit])

    if len(results) < limit and len(query) >= SEARCH_CONTAINS_MIN_LENGTH:
        contains = Q(name__icontains=query)
        if extended:
            contains |= (
                Q(nis__icontains=query)
                | Q(student_class__icontains=query)
                | Q(group__icontains=query)
            )
        seen = {student.pk for student in results}
        extra = students.filter(contains).exclude(pk__in=seen)[:limit - len(results)]
        results.extend(extra)

    return results


def student_search_payload(student):
    return {
        'id': student.pk,
        'nis': student.nis,
        'name': student.name,
        'student_class': student.student_class,
        'group': student.group,
        'balance': student.balance,
        'photo_url': student.photo.url if student.photo else None,
    }


def normalize_header(value):
    return re.sub(r'[^a-z0-9]+', '', str(value or '').lower())


def map_columns(headers):
    """Resolve each Student field to a column index: exact alias first, then substring."""
    normalized = [normalize_header(header) for header in headers]
    columns = {}

    for field, aliases in HEADER_ALIASES.items():
        index = None
        for alias in aliases:
            if alias in normalized:
                index = normalized.index(alias)
                break
        if index is None:
            for position, header in enumerate(normalized):
                if header and any(alias in header for alias in aliases):
                    index = position
                    break
        if index is not None:
            columns[field] = index

    return columns


def parse_date(value):
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    try:
        match = _ISO_DATE_RE.search(text)
        if match:
            year, month, day = (int(part) for part in match.groups())
            return date(year, month, day)
        match = _DMY_DATE_RE.search(text)
        if match:
            day, month, year = (int(part) for part in match.groups())
            return date(year, month, day)
    except ValueError:
        return None
    return None


def _cell_text(value):
    if value is None:
        return ''
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def map_row(columns, row):
    mapped = {}
    for field, index in columns.items():
        value = row[index] if index < len(row) else None
        if field == 'birth_date':
            mapped[field] = parse_date(value)
        else:
            mapped[field] = _cell_text(value)
    for field in HEADER_ALIASES:
        mapped.setdefault(field, None if field == 'birth_date' else '')
    return mapped


def map_records(records):
    """Turn raw rows (header first) into Student field dicts."""
    rows = [list(row) for row in records if any(_cell_text(cell) for cell in row)]
    if len(rows) < 2:
        raise ValidationError('Tidak ada baris data.')
    columns = map_columns(rows[0])
    return [map_row(columns, row) for row in rows[1:]]


def google_sheet_csv_url(sheet_url, sheet_name=''):
    match = _SHEET_ID_RE.search(sheet_url or '')
    if not match:
        raise ValidationError('URL Google Sheets tidak valid.')
    url = f"https://docs.google.com/spreadsheets/d/{match.group(1)}/export?format=csv"
    if sheet_name and sheet_name.strip():
        url += '&sheet=' + quote(sheet_name.strip())
    return url


def fetch_google_sheet_records(sheet_url, sheet_name=''):
    url = google_sheet_csv_url(sheet_url, sheet_name)
    try:
        resp = requests.get(url, headers={'User-Agent': 'Mozilla/5.0'}, timeout=SHEET_FETCH_TIMEOUT)
    except requests.RequestException as exc:
        logger.warning('Google Sheets fetch failed for %s: %s', url, exc)
        raise ValidationError(f'Gagal mengambil Google Sheets: {exc}') from exc

    if resp.status_code != 200:
        raise ValidationError(f'Gagal mengambil Google Sheets: HTTP {resp.status_code}')

    resp.encoding = resp.encoding or 'utf-8'
    return list(csv.reader(io.StringIO(resp.text)))


def read_xlsx_records(upload, sheet_name=''):
    try:
        workbook = load_workbook(upload, read_only=True, data_only=True)
    except Exception as exc:
        raise ValidationError(f'File Excel tidak bisa dibaca: {exc}') from exc

    try:
        if sheet_name and sheet_name.strip():
            if sheet_name.strip() not in workbook.sheetnames:
                raise ValidationError(f'Sheet "{sheet_name}" tidak ditemukan.')
            worksheet = workbook[sheet_name.strip()]
        else:
            worksheet = workbook.worksheets[0]
        return [list(row) for row in worksheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


def read_csv_records(upload):
    raw = upload.read()
    try:
        text = raw.decode('utf-8-sig')
    except UnicodeDecodeError:
        text = raw.decode('latin-1')
    return list(csv.reader(io.StringIO(text)))


def load_import_rows(*, sheet_url='', sheet_name='', upload=None):
    if sheet_url:
        records = fetch_google_sheet_records(sheet_url, sheet_name)
    elif upload is not None:
        ext = os.path.splitext(upload.name)[1].lower()
        if ext == '.xlsx':
            records = read_xlsx_records(upload, sheet_name)
        else:
            records = read_csv_records(upload)
    else:
        raise ValidationError('Isi URL Google Sheets atau unggah file.')
    return map_records(records)


@dataclass(frozen=True)
class ImportResult:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0


def _too_long_fields(values):
    """Names of fields whose text exceeds the Student column length."""
    too_long = []
    for field, value in values.items():
        max_length = Student._meta.get_field(field).max_length
        if max_length and isinstance(value, str) and len(value) > max_length:
            too_long.append(field)
    return too_long


@transaction.atomic
def upsert_students(rows) -> ImportResult:
    """Insert or update students by nis. Balances are never touched."""
    inserted = updated = skipped = 0

    for row in rows:
        nis = (row.get('nis') or '').strip()
        name = (row.get('name') or '').strip()
        if not nis or not name:
            skipped += 1
            continue

        defaults = {
            'name': name,
            'student_class': row.get('student_class') or '',
            'group': row.get('group') or '',
            'birth_date': row.get('birth_date'),
            'address': row.get('address') or '',
            'guardian_phone': row.get('guardian_phone') or '',
        }
        too_long = _too_long_fields({'nis': nis, **defaults})
        if too_long:
            logger.warning('Import row %s skipped, too long: %s', nis[:50], ', '.join(too_long))
            skipped += 1
            continue

        _, created = Student.objects.update_or_create(nis=nis, defaults=defaults)
        if created:
            inserted += 1
        else:
            updated += 1

    logger.info('Student import: inserted=%s updated=%s skipped=%s', inserted, updated, skipped)
    return ImportResult(inserted=inserted, updated=updated, skipped=skipped)


def rows_to_session(rows):
    return [
        {**row, 'birth_date': row['birth_date'].isoformat() if row.get('birth_date') else None}
        for row in rows
    ]


def rows_from_session(data):
    return [
        {**row, 'birth_date': parse_date(row.get('birth_date'))}
        for row in data or []
    ]
