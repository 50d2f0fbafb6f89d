"""AI completion client for executive summaries.

Thin httpx wrapper over the Gemini `generateContent` endpoint:

    POST {base_url}/models/{model}:generateContent?key={api_key}
    {"contents": [{"parts": [{"text": prompt}]}]}

The first candidate's first text part is the completion. Any non-2xx
status, transport failure or missing candidate text raises
AIGenerationError; the summary stage decides what to show instead.
"""

from typing import Any, Dict, Optional

import httpx
import structlog

from config.settings import settings
from config.secrets import get_ai_api_key
from config.errors import AIGenerationError, ErrorCode
from services.credentials import response_body

logger = structlog.get_logger(__name__)


class AIClient:
    """Generates prose from a single text prompt."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize AIClient.

        Args:
            api_key: Endpoint key (default AI_API_KEY secret).
            model: Model name (default from settings).
            base_url: API root (default from settings).
            http_client: Optional shared client (tests inject a mock transport).
                Without one, each call opens and closes its own client.
            timeout: Request timeout in seconds.
        """
        self.api_key = api_key or get_ai_api_key()
        self.model = model or settings.ai_model
        self.base_url = (base_url or settings.ai_base_url).rstrip("/")
        self.timeout = timeout or settings.ai_timeout_seconds
        self._http_client = http_client
        if not self.api_key:
            logger.warning("ai_api_key_missing", message="AI_API_KEY environment variable not set")

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def generate(self, prompt: str) -> str:
        """Return the completion text for `prompt`.

        Raises:
            AIGenerationError: Transport failure, non-2xx response, or no
                candidate text in the response.
        """
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            if self._http_client is not None:
                response = await self._post(self._http_client, body)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._post(client, body)
        except httpx.HTTPError as e:
            logger.error("ai_transport_error", model=self.model, error=str(e))
            raise AIGenerationError(
                message=f"AI request failed: {e}",
                details={"model": self.model},
            ) from e

        if response.status_code >= 400:
            error_body = response_body(response)
            logger.error("ai_request_failed", model=self.model, status_code=response.status_code)
            raise AIGenerationError(
                message=f"AI endpoint returned HTTP {response.status_code}",
                details={"status_code": response.status_code, "body": error_body},
            )

        try:
            text = extract_text(response.json())
        except ValueError as e:
            raise AIGenerationError(
                message="AI endpoint returned a non-JSON body",
                code=ErrorCode.AI_MALFORMED_RESPONSE,
            ) from e

        if not text:
            raise AIGenerationError(
                message="AI response contained no candidate text",
                code=ErrorCode.AI_MALFORMED_RESPONSE,
            )

        logger.info("ai_generated", model=self.model, prompt_length=len(prompt), content_length=len(text))
        return text

    async def _post(self, client: httpx.AsyncClient, body: Dict[str, Any]) -> httpx.Response:
        return await client.post(
            self.endpoint,
            params={"key": self.api_key or ""},
            json=body,
        )


def extract_text(payload: Dict[str, Any]) -> Optional[str]:
    """`candidates[0].content.parts[0].text`, or None when any level is missing."""
    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) else None
