from __future__ import annotations

import contextlib
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..config import settings
from ..core.errors import (
    CompletionAuthError,
    CompletionRateLimited,
    CompletionTimeout,
    CompletionUnavailable,
)

logger = logging.getLogger("docchat.llm")


class CompletionClient:
    """
    Client for an OpenAI-compatible chat-completions endpoint (Groq by default).

    Every call has an explicit deadline. Failures are mapped onto the
    completion error taxonomy so callers can tell auth problems from
    retryable ones.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        top_p: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = (
            api_key if api_key is not None else settings.groq_api_key.get_secret_value()
        )
        self.base_url = base_url or settings.completion_base_url
        self.timeout = timeout or settings.completion_timeout_seconds
        self.top_p = top_p if top_p is not None else settings.completion_top_p
        self._http_client = http_client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
        model: str,
    ) -> str:
        """
        Return the assistant's reply text for a single system + user exchange.

        Raises
        ------
        CompletionAuthError
            401/403 from the provider, or no API key configured.
        CompletionRateLimited
            429 from the provider.
        CompletionTimeout
            The deadline elapsed.
        CompletionUnavailable
            Any other HTTP, transport or response-format failure.
        """
        if not self.is_configured:
            raise CompletionAuthError("GROQ_API_KEY is not configured")

        payload: Dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "top_p": self.top_p,
            "stream": False,
        }

        data = await self._post(payload)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise CompletionUnavailable("Invalid response format from completion API") from exc

        if not isinstance(content, str) or not content.strip():
            raise CompletionUnavailable("Completion API returned an empty reply")

        return content

    async def ping(self) -> None:
        """Send a one-token request; raises a CompletionServiceError on failure."""
        await self.complete(
            system_prompt="You are a health check.",
            user_prompt="ping",
            temperature=0.0,
            max_tokens=1,
            model=settings.chat_model,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client

    async def _post(self, payload: Dict[str, Any]) -> Any:
        try:
            async with self._client() as client:
                resp = await client.post(
                    self.base_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    timeout=self.timeout,
                )
            resp.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.warning("Completion request timed out after %.0fs", self.timeout)
            raise CompletionTimeout(
                f"Completion request timed out after {self.timeout:.0f}s"
            ) from exc
        except httpx.HTTPStatusError as exc:
            code = exc.response.status_code
            logger.error("Completion request failed with HTTP %d", code)
            if code in (401, 403):
                raise CompletionAuthError("Completion API authentication failed") from exc
            if code == 429:
                raise CompletionRateLimited("Completion API rate limit exceeded") from exc
            raise CompletionUnavailable(f"Completion API returned HTTP {code}") from exc
        except httpx.HTTPError as exc:
            logger.error("Completion request failed: %s", type(exc).__name__)
            raise CompletionUnavailable(
                f"Completion API unreachable: {type(exc).__name__}"
            ) from exc

        try:
            return resp.json()
        except ValueError as exc:
            raise CompletionUnavailable("Completion API returned invalid JSON") from exc
