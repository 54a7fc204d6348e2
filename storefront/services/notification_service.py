# storefront/services/notification_service.py
from typing import Dict

import requests
from kombu.exceptions import OperationalError

from storefront.celery_worker import celery_app
from storefront.domain.errors import NotificationError
from storefront.utils.logging import get_logger
from storefront.utils.retry import http_retry
from storefront.utils.settings import (
    EMAILJS_API_URL,
    EMAILJS_SERVICE_ID,
    EMAILJS_TEMPLATE_ID,
    EMAILJS_PUBLIC_KEY,
    CONTACT_INBOX,
    HTTP_TIMEOUT_SECONDS,
)

logger = get_logger(__name__)


class NotificationService:
    """
    Outbound contact messages, routed to the firm's inbox through EmailJS.
    Sending runs on Celery so the checkout never waits on the email API.
    """

    @staticmethod
    def send_contact_request(template_params: Dict[str, str]):
        params = {"to_email": CONTACT_INBOX, **template_params}
        logger.info(f"Queueing contact request from {params.get('from_email')}")
        try:
            return send_contact_email_task.delay(params)
        except OperationalError as e:
            logger.error(f"Cannot queue contact request: {e}")
            raise NotificationError("Could not send your message. Please try again later.") from e


@http_retry()
def send_email(template_params: Dict[str, str]) -> None:
    payload = {
        "service_id": EMAILJS_SERVICE_ID,
        "template_id": EMAILJS_TEMPLATE_ID,
        "user_id": EMAILJS_PUBLIC_KEY,
        "template_params": template_params,
    }
    logger.info(f"EmailJS POST {EMAILJS_API_URL} to={template_params.get('to_email')}")

    resp = requests.post(EMAILJS_API_URL, json=payload, timeout=HTTP_TIMEOUT_SECONDS)
    resp.raise_for_status()


@celery_app.task(name="storefront.services.notification_service.send_contact_email_task")
def send_contact_email_task(template_params: Dict[str, str]):
    send_email(template_params)
    logger.info(f"[NOTIFICATION] contact request sent to {template_params.get('to_email')}")
    return {"to_email": template_params.get("to_email"), "status": "sent"}
