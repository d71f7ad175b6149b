from typing import List, Optional

import httpx
import structlog

from chat_analytics.core.config import Settings
from chat_analytics.core.errors import UpstreamError

logger = structlog.get_logger()


class CompletionClient:
    """Pass-through proxy to the hosted completion API, with one fallback attempt"""

    def __init__(self, settings: Settings, http: Optional[httpx.AsyncClient] = None):
        self.endpoint = settings.completion_endpoint
        self.api_key = settings.completion_api_key
        self.system_prompt = settings.completion_system_prompt
        self.max_tokens = settings.completion_max_tokens
        self.temperature = settings.completion_temperature
        self.models: List[str] = [settings.completion_model,
                                  settings.completion_fallback_model or settings.completion_model]
        self.http = http or httpx.AsyncClient(timeout=settings.completion_timeout)

        if not self.endpoint or not self.api_key:
            logger.warning("completion_service_not_configured")

    async def complete(self, message: str) -> str:
        if not self.endpoint or not self.api_key:
            raise UpstreamError()

        last_error: Optional[Exception] = None
        for attempt, model in enumerate(self.models, start=1):
            try:
                return await self._call(model, message)
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                logger.warning("completion_attempt_failed", attempt=attempt, model=model, error=str(e))

        logger.error("completion_failed", error=str(last_error))
        raise UpstreamError() from last_error

    async def _call(self, model: str, message: str) -> str:
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": message},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        response = await self.http.post(
            self.endpoint,
            json=payload,
            headers={"api-key": self.api_key},
        )
        response.raise_for_status()

        data = response.json()
        try:
            return data["choices"][0]["message"]["content"] or "No reply from model."
        except (KeyError, IndexError, TypeError):
            return "No reply from model."

    async def aclose(self) -> None:
        await self.http.aclose()
