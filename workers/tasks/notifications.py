"""
Notification Tasks - transactional email delivery
"""
from celery import shared_task
import httpx
import logging

from flybook.config import settings

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


def _sendgrid_message(to_address: str, subject: str, html_body: str, text_body: str) -> dict:
    content = []
    if text_body:
        content.append({"type": "text/plain", "value": text_body})
    if html_body:
        content.append({"type": "text/html", "value": html_body})
    return {
        "personalizations": [{"to": [{"email": to_address}]}],
        "from": {"email": settings.FROM_EMAIL},
        "subject": subject,
        "content": content,
    }


@shared_task(name="workers.tasks.notifications.send_email")
def send_email(to_address: str, subject: str, html_body: str, text_body: str):
    """
    Send one email. Without a SendGrid key the message is only logged.
    Delivery failures are logged and never raised back into the queue.
    """
    if not settings.SENDGRID_API_KEY:
        logger.info(f"[MOCK EMAIL] To {to_address}: {subject}")
        return {"sent": False, "mock": True, "email": to_address}

    logger.info(f"Sending email '{subject}' to {to_address}")
    try:
        response = httpx.post(
            SENDGRID_SEND_URL,
            json=_sendgrid_message(to_address, subject, html_body, text_body),
            headers={"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"},
            timeout=20.0,
        )
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(f"Failed to send email to {to_address}: {e}")
        return {"sent": False, "email": to_address, "error": str(e)}

    return {"sent": True, "email": to_address}
