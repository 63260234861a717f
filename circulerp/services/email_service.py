from typing import List, Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log
import logging
import structlog

from circulerp.config import settings

logger = structlog.get_logger()
_std_logger = logging.getLogger(__name__)

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"

_http_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> httpx.AsyncClient:
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, connect=5.0),
        )
    return _http_client


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()
    _http_client = None


def is_configured() -> bool:
    return bool(settings.BREVO_API_KEY)


class _TransientEmailError(Exception):
    """Raised for 5xx or network errors that warrant a retry."""


@retry(
    retry=retry_if_exception_type(_TransientEmailError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    before_sleep=before_sleep_log(_std_logger, logging.WARNING),
    reraise=True,
)
async def _post_message(payload: dict, recipients: List[str]) -> bool:
    client = get_http_client()
    headers = {
        "accept": "application/json",
        "api-key": settings.BREVO_API_KEY,
        "content-type": "application/json",
    }
    try:
        response = await client.post(BREVO_API_URL, headers=headers, json=payload)
    except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
        logger.warning("email_network_error_retrying", error=str(exc), to=recipients)
        raise _TransientEmailError(str(exc)) from exc

    if response.status_code in (201, 202):
        logger.info(
            "email_sent",
            to=recipients,
            subject=payload["subject"],
            message_id=response.json().get("messageId"),
        )
        return True

    if response.status_code >= 500:
        logger.warning("email_provider_5xx_retrying", status_code=response.status_code, to=recipients)
        raise _TransientEmailError(f"Brevo returned {response.status_code}")

    logger.error(
        "email_rejected",
        status_code=response.status_code,
        response=response.text[:500],
        to=recipients,
        subject=payload["subject"],
    )
    return False


async def send_email(
    to_emails: List[str],
    subject: str,
    html_content: str,
    sender_name: str = settings.APP_NAME,
    sender_email: str = settings.EMAIL_FROM_ADDRESS,
) -> bool:
    """
    Send an HTML email through the Brevo REST API.

    Retries up to 3 times with exponential back-off on 5xx and network errors.
    Returns True if the message was accepted, False otherwise. Never raises.
    """
    if not is_configured():
        logger.debug("email_not_configured", subject=subject)
        return False

    if not to_emails:
        logger.warning("email_no_recipients", subject=subject)
        return False

    payload = {
        "sender": {"name": sender_name, "email": sender_email},
        "to": [{"email": email} for email in to_emails],
        "subject": subject,
        "htmlContent": html_content,
    }

    try:
        return await _post_message(payload, to_emails)
    except Exception as exc:
        logger.error(
            "email_all_retries_exhausted",
            error=str(exc),
            to=to_emails,
            subject=subject,
        )
        return False
