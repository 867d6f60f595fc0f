import logging
import secrets
from datetime import timedelta

from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction
from django.utils import timezone

from .models import EmailOTP

logger = logging.getLogger(__name__)

OTP_LENGTH = 6


def generate_otp_code():
    return f"{secrets.randbelow(10 ** OTP_LENGTH):0{OTP_LENGTH}d}"


@transaction.atomic
def issue_email_otp(user):
    """
    Creates a fresh OTP for the user and mails it.
    Earlier unused codes are invalidated so only the latest one works.
    """
    now = timezone.now()
    EmailOTP.objects.filter(user=user, used_at__isnull=True).update(used_at=now)

    otp = EmailOTP.objects.create(
        user=user,
        code=generate_otp_code(),
        expires_at=now + timedelta(minutes=settings.KK_OTP_TTL_MINUTES),
    )

    send_mail(
        subject="Kode verifikasi email",
        message=(
            f"Kode verifikasi Anda: {otp.code}\n"
            f"Berlaku selama {settings.KK_OTP_TTL_MINUTES} menit."
        ),
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[user.email],
    )
    logger.info("Issued email OTP for user %s", user.pk)
    return otp


@transaction.atomic
def verify_email_otp(user, code):
    """
    Returns True and marks the user's email verified when `code` matches
    an unused, unexpired OTP. The matched code is consumed.
    """
    code = (code or '').strip()
    if len(code) != OTP_LENGTH:
        return False

    otp = EmailOTP.objects.select_for_update().filter(
        user=user,
        code=code,
        used_at__isnull=True,
    ).first()

    if not otp or otp.is_expired():
        logger.info("Rejected email OTP for user %s", user.pk)
        return False

    otp.used_at = timezone.now()
    otp.save(update_fields=['used_at'])

    user.email_verified = True
    user.save(update_fields=['email_verified'])
    return True
