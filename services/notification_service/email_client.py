from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
import structlog

from shared.config.settings import Settings
from shared.exceptions import TransientExternalError

logger = structlog.get_logger(__name__)


@dataclass
class EmailResult:
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class BrevoEmailClient:
    """
    Sends transactional e-mail through Brevo's REST API (POST /smtp/email).

    Never raises for delivery problems: a missing API key, a network error or
    a non-2xx answer comes back as EmailResult(success=False). No retries.
    """

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.api_key = settings.brevo_api_key
        self.endpoint = f"{settings.brevo_api_url}/smtp/email"
        self.default_sender = {
            "email": settings.brevo_sender_email,
            "name": settings.brevo_sender_name,
        }
        self._client = http_client or httpx.AsyncClient(timeout=settings.email_timeout)

    async def send_email(
        self,
        to: List[Dict[str, str]],
        subject: str,
        html_content: str,
        sender: Optional[Dict[str, str]] = None,
    ) -> EmailResult:
        recipients = ", ".join(r.get("email", "") for r in to)
        try:
            data = await self._post(
                {
                    "sender": sender or self.default_sender,
                    "to": to,
                    "subject": subject,
                    "htmlContent": html_content,
                }
            )
        except TransientExternalError as exc:
            logger.warning("email_send_failed", to=recipients, subject=subject, error=exc.message)
            return EmailResult(success=False, error=exc.message)

        logger.info("email_sent", to=recipients, subject=subject)
        return EmailResult(success=True, data=data)

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise TransientExternalError("BREVO_API_KEY is not configured")

        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "api-key": self.api_key,
        }
        try:
            response = await self._client.post(self.endpoint, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise TransientExternalError(f"Email API timeout: {exc!r}") from exc
        except httpx.RequestError as exc:
            raise TransientExternalError(f"Email API unavailable: {exc!r}") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_success:
            return body if isinstance(body, dict) else {"response": body}

        message = body.get("message", "Unknown error") if isinstance(body, dict) else "Unknown error"
        raise TransientExternalError(f"API Error: {message} ({response.status_code})")

    async def aclose(self) -> None:
        await self._client.aclose()
