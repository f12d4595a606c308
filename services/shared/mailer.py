import logging
from typing import Any, Protocol

import httpx

from services.shared.store import extract_detail

RESEND_API_URL = "https://api.resend.com/emails"

logger = logging.getLogger("email-sender")


class EmailSendError(Exception):
    """Raised when the email provider rejects or cannot receive a message."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class EmailSender(Protocol):
    async def send(self, to: str | list[str], subject: str, html: str) -> dict[str, Any]: ...

    async def aclose(self) -> None: ...


class ResendEmailSender:
    def __init__(
        self,
        api_key: str,
        from_address: str,
        timeout: float = 10.0,
        retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.from_address = from_address
        # Transport-level retries only cover connection failures, so a
        # rejected message is never delivered twice.
        self.client = httpx.AsyncClient(
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            transport=transport or httpx.AsyncHTTPTransport(retries=retries),
        )

    async def send(self, to: str | list[str], subject: str, html: str) -> dict[str, Any]:
        recipients = to if isinstance(to, list) else [to]
        payload = {
            "from": self.from_address,
            "to": recipients,
            "subject": subject,
            "html": html,
        }
        try:
            response = await self.client.post(RESEND_API_URL, json=payload)
        except httpx.RequestError as exc:
            raise EmailSendError(f"Email provider unavailable: {exc}") from exc
        if response.status_code >= 400:
            detail = extract_detail(response)
            raise EmailSendError(
                f"Failed to send email: {detail}", status_code=response.status_code
            )
        logger.debug("Email %r accepted for %s", subject, ", ".join(recipients))
        return response.json() if response.content else {}

    async def aclose(self) -> None:
        await self.client.aclose()
