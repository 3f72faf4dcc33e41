# gymmini/services/notify.py
import httpx

from gymmini import settings
from gymmini.errors import DependencyError
from gymmini.utils.logger import get_logger

logger = get_logger(__name__)

ROLE_DISPLAY = {
    "admin": "Administrator",
    "trainer": "Trainer",
    "member": "Member",
}


def _credentials_body(name: str, email: str, password: str, role: str) -> str:
    return (
        f"Hello {name},\n\n"
        f"Your GymMini {ROLE_DISPLAY.get(role, role)} account has been created.\n"
        f"Email: {email}\n"
        f"Password: {password}\n\n"
        "Please change your password after your first login."
    )


def send_credentials(email: str, name: str, password: str, role: str) -> bool:
    """
    Send login credentials for a freshly created account.

    Posts to the email service when EMAIL_SERVICE_URL is set, otherwise only logs
    (local/dev). Raises DependencyError on delivery failure; callers log it and
    keep the already-created records.
    """
    subject = f"Welcome to GymMini - Your {ROLE_DISPLAY.get(role, role)} Account"
    if not settings.EMAIL_SERVICE_URL:
        logger.info("credentials email not sent (no EMAIL_SERVICE_URL): to=%s subject=%s", email, subject)
        return True

    try:
        resp = httpx.post(
            f"{settings.EMAIL_SERVICE_URL.rstrip('/')}/send",
            json={
                "from": settings.EMAIL_FROM,
                "to": email,
                "subject": subject,
                "body": _credentials_body(name, email, password, role),
            },
            timeout=settings.EMAIL_TIMEOUT_S,
        )
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        raise DependencyError(f"credentials email to {email} failed: {exc}", dependency="email") from exc
    return True


def send_otp(email: str, otp: str) -> bool:
    subject = "Password Reset OTP - GymMini"
    if not settings.EMAIL_SERVICE_URL:
        logger.info("otp email not sent (no EMAIL_SERVICE_URL): to=%s", email)
        return True
    try:
        resp = httpx.post(
            f"{settings.EMAIL_SERVICE_URL.rstrip('/')}/send",
            json={
                "from": settings.EMAIL_FROM,
                "to": email,
                "subject": subject,
                "body": f"Your password reset code is {otp}. It expires in {settings.OTP_EXPIRE_MIN} minutes.",
            },
            timeout=settings.EMAIL_TIMEOUT_S,
        )
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        raise DependencyError(f"otp email to {email} failed: {exc}", dependency="email") from exc
    return True
