from typing import Any, Optional

import httpx

from services.shared.store import extract_detail

AI_GATEWAY_URL = "https://ai.gateway.lovable.dev/v1/chat/completions"
DEFAULT_MODEL = "google/gemini-2.5-flash"


class AIGatewayError(Exception):
    """Raised when the chat-completions gateway rejects or cannot take a request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AIGatewayClient:
    def __init__(
        self,
        api_key: str,
        url: str = AI_GATEWAY_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.model = model
        self.client = httpx.AsyncClient(
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            transport=transport,
        )

    async def complete(
        self, messages: list[dict[str, str]], max_tokens: int | None = None
    ) -> Optional[str]:
        """Return the first choice's text, or None when the gateway sent none."""
        payload: dict[str, Any] = {"model": self.model, "messages": messages}
        if max_tokens:
            payload["max_tokens"] = max_tokens
        try:
            response = await self.client.post(self.url, json=payload)
        except httpx.RequestError as exc:
            raise AIGatewayError(f"AI gateway unavailable: {exc}") from exc
        if response.status_code >= 400:
            raise AIGatewayError(extract_detail(response), status_code=response.status_code)

        data = response.json()
        try:
            return data["choices"][0]["message"]["content"] or None
        except (KeyError, IndexError, TypeError):
            return None

    async def aclose(self) -> None:
        await self.client.aclose()
