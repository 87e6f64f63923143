import logging
from pathlib import Path

from PIL import Image, ImageDraw, ImageOps
from django.utils import timezone
from django.utils.formats import date_format
from num2words import num2words

from apps.core.utils.pdf import A4_SIZE, image_to_pdf_bytes, load_font

from .exceptions import RenderError

logger = logging.getLogger(__name__)


RECEIPT_DIR = 'pdfs'


def format_rupiah(amount):
    return f"{int(amount or 0):,}".replace(',', '.')


def terbilang(amount):
    amount = int(amount or 0)
    words = num2words(amount, lang='id').strip()
    text = f"{words} rupiah"
    return text[:1].upper() + text[1:]


def _paste_image(page, path, box, fit=False):
    """Paste an image file into ``box``. Returns False when the file is unusable."""
    if not path or not Path(path).is_file():
        return False
    try:
        with Image.open(path) as source:
            image = source.convert('RGBA')
            size = (box[2] - box[0], box[3] - box[1])
            image = ImageOps.fit(image, size) if fit else ImageOps.contain(image, size)
            page.paste(image, (box[0], box[1]), image)
        return True
    except (OSError, ValueError):
        logger.warning('Could not draw image %s on receipt', path, exc_info=True)
        return False


def build_withdrawal_receipt_image(data):
    width, height = A4_SIZE
    page = Image.new('RGB', (width, height), color='white')
    draw = ImageDraw.Draw(page)

    title_font = load_font(36)
    body_font = load_font(24)
    small_font = load_font(18)

    _paste_image(page, data.logo_path, (100, 80, 230, 210))
    draw.text((width // 2, 140), 'BUKTI PENARIKAN TABUNGAN SANTRI', fill='black', font=title_font, anchor='mm')

    generated_at = timezone.localtime(data.generated_at) if timezone.is_aware(data.generated_at) else data.generated_at
    lines = [
        f"Nomor Trx: {data.trx_no}",
        f"Tanggal: {date_format(generated_at, 'd F Y, H:i')}",
        '',
        f"Nama Santri: {data.student_name}",
        f"NIS: {data.student_nis}",
        f"Kelas: {data.student_class or '-'}",
        f"Jumlah: Rp {format_rupiah(data.amount)} ({terbilang(data.amount)})",
    ]
    if data.note:
        lines.append(f"Keterangan: {data.note}")

    y = 260
    for line in lines:
        if line:
            draw.text((100, y), line, fill='black', font=body_font)
        y += 42

    y += 40
    draw.text((100, y), 'Pihak Terkait', fill='black', font=load_font(26))
    y += 60

    signature_boxes = (
        (100, f"Pemberi (Kasir): {data.giver_name}", data.giver_signature_path, 'Tanda Tangan Pemberi (Kasir)'),
        (720, f"Penerima: {data.receiver_name}", data.receiver_signature_path, 'Tanda Tangan Penerima'),
    )
    for left, caption, signature_path, placeholder in signature_boxes:
        draw.text((left, y), caption, fill='black', font=body_font)
        box = (left, y + 40, left + 380, y + 210)
        if not _paste_image(page, signature_path, box):
            draw.rectangle(box, outline='black', width=2)
            draw.text((left + 20, box[3] + 12), placeholder, fill='black', font=small_font)

    stamp_box = (540, y + 260, 710, y + 430)
    if not _paste_image(page, data.stamp_path, stamp_box):
        draw.rectangle(stamp_box, outline='black', width=2)
        draw.text((555, y + 335), 'Cap/Stempel', fill='black', font=small_font)

    y = stamp_box[3] + 90
    draw.text((width // 2, y), 'Catatan: Bukti ini sah sebagai acuan transaksi.', fill='black', font=body_font, anchor='mm')
    draw.text((width // 2, y + 40), 'Tanda tangan dilakukan setelah dokumen dicetak.', fill='black', font=body_font, anchor='mm')

    return page


def render_withdrawal_receipt(data, *, storage_dir):
    """Write the withdrawal receipt PDF and return its absolute path."""
    output_dir = Path(storage_dir) / RECEIPT_DIR
    output_path = output_dir / f"{data.trx_no}.pdf"
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        image = build_withdrawal_receipt_image(data)
        output_path.write_bytes(image_to_pdf_bytes([image]))
    except (OSError, ValueError) as exc:
        raise RenderError(f'Bukti PDF gagal dibuat: {exc}') from exc
    return str(output_path)
