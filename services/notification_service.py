import logging
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from core.config import settings

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Outbound client notifications via SendGrid.
    Delivery is best-effort: a failed send is logged and never undoes the
    workflow change that triggered it.
    """

    def __init__(self, api_key: Optional[str] = None, sender_email: Optional[str] = None):
        self.sendgrid_api_key = api_key
        self.sender_email = sender_email

        self.enabled = bool(self.sendgrid_api_key and self.sender_email)
        if not self.enabled:
            logger.warning("📧 Notifications not configured. Missing SENDGRID_API_KEY or MAIL_FROM.")

    # ============================================================
    # ✅ Send plain-text notification
    # ============================================================
    def send(self, to_email: str, subject: str, text_body: str) -> bool:
        if not self.enabled:
            # Development fallback (no SendGrid setup)
            logger.info(f"📨 [Mock Email] To: {to_email} | Subject: {subject}")
            return True

        try:
            message = Mail(
                from_email=self.sender_email,
                to_emails=to_email,
                subject=subject,
                plain_text_content=text_body,
            )
            response = SendGridAPIClient(self.sendgrid_api_key).send(message)
            logger.info(f"✅ Notification sent to {to_email}. Status: {response.status_code}")
            return True
        except Exception as e:
            logger.exception("❌ Failed to send notification to %s: %s", to_email, e)
            return False

    def payment_requested(self, to_email: str, title: str, amount_cents: int, currency: str) -> bool:
        return self.send(
            to_email=to_email,
            subject=f"Payment request - {title}",
            text_body=(
                f"A payment of {amount_cents / 100:.2f} {currency} is required for \"{title}\". "
                "Please log in to proceed."
            ),
        )


def get_notification_service() -> NotificationService:
    return NotificationService(
        api_key=settings.SENDGRID_API_KEY,
        sender_email=str(settings.MAIL_FROM) if settings.MAIL_FROM else None,
    )
