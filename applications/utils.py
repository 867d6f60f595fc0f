import io

import qrcode
from PIL import Image, ImageDraw, ImageFont
from django.utils import timezone


def _load_fonts():
    try:
        return {
            'header': ImageFont.truetype("DejaVuSans-Bold.ttf", 28),
            'label': ImageFont.truetype("DejaVuSans.ttf", 22),
            'number': ImageFont.truetype("DejaVuSans-Bold.ttf", 48),
            'detail': ImageFont.truetype("DejaVuSans.ttf", 22),
            'footer': ImageFont.truetype("DejaVuSans.ttf", 18),
        }
    except IOError:
        default = ImageFont.load_default()
        return {key: default for key in ('header', 'label', 'number', 'detail', 'footer')}


def make_qr_image(data, box_size=6):
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=2,
    )
    qr.add_data(data)
    qr.make(fit=True)
    return qr.make_image(fill_color="black", back_color="white").convert('RGB')


def generate_receipt_image(application, tracking_url):
    """
    Builds the submission receipt (JPEG) for an application: number,
    household head, submission time, current status and a QR code that
    opens the public status tracker.
    """
    width, height = 600, 900
    img = Image.new('RGB', (width, height), color='white')
    d = ImageDraw.Draw(img)
    fonts = _load_fonts()
    cw = width // 2

    d.text((cw, 50), "Tanda Terima Permohonan", font=fonts['header'], fill='darkblue', anchor="mm")
    d.text((cw, 90), "Kartu Keluarga", font=fonts['header'], fill='darkblue', anchor="mm")
    d.line([(50, 120), (width - 50, 120)], fill="gray", width=2)

    d.text((cw, 165), "Nomor Permohonan", font=fonts['label'], fill='gray', anchor="mm")
    d.text((cw, 220), application.application_number, font=fonts['number'], fill='black', anchor="mm")

    box_top, box_bottom = 280, 500
    d.rectangle([(50, box_top), (width - 50, box_bottom)], outline="lightgray", width=2)

    submitted = timezone.localtime(application.submitted_at).strftime("%d-%m-%Y %H:%M")
    lines = [
        f"Kepala Keluarga: {application.head_name}",
        f"No. KK: {application.no_kk}",
        f"Diajukan: {submitted}",
        f"Status: {application.get_status_display()}",
    ]
    y = box_top + 30
    for line in lines:
        d.text((70, y), line, font=fonts['detail'], fill='black')
        y += 45

    qr_img = make_qr_image(tracking_url)
    qr_img = qr_img.resize((260, 260))
    img.paste(qr_img, (cw - 130, 530))

    d.text((cw, 820), "Pindai untuk melihat status permohonan.", font=fonts['footer'], fill='gray', anchor="mm")
    d.text((cw, 850), "Simpan tanda terima ini.", font=fonts['footer'], fill='red', anchor="mm")

    buffer = io.BytesIO()
    img.save(buffer, format='JPEG', quality=95)
    buffer.seek(0)
    return buffer
