"""
Embedding Client

This module implements a robust, test-friendly embedding client for the
Hugging Face feature-extraction API. It is responsible for:

- Serial batching of text inputs with a small inter-batch delay
- Network and transport error isolation
- Strict response validation (never a silent zero vector)
- Mean-pooling of token-level outputs into one vector per input

Output order always matches input order.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator, List, Optional, Sequence

import httpx
import numpy as np

from ..config import settings
from ..core.errors import EmbeddingServiceError

logger = logging.getLogger("docchat.embedder")


class Embedder:
    """
    Asynchronous embedding generator for batches of text.

    This class performs no caching. When constructed with a shared
    `httpx.AsyncClient` it reuses that client; otherwise it opens one per
    call.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        dimension: Optional[int] = None,
        batch_size: Optional[int] = None,
        delay_seconds: Optional[float] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        api_key : Optional[str]
            Hugging Face API token. Defaults to settings.huggingface_api_key.

        model : Optional[str]
            Model repository id. Defaults to settings.embedding_model.

        base_url : Optional[str]
            Inference base URL; the model path is appended.

        dimension : Optional[int]
            Expected vector length. Defaults to settings.embedding_dimension.

        batch_size : Optional[int]
            Maximum inputs per request.

        delay_seconds : Optional[float]
            Pause between consecutive batch requests (upstream rate limits).

        timeout : Optional[float]
            HTTP timeout for each request.

        http_client : Optional[httpx.AsyncClient]
            Shared client owned by the caller.
        """
        self.api_key = (
            api_key
            if api_key is not None
            else settings.huggingface_api_key.get_secret_value()
        )
        self.model = model or settings.embedding_model
        self.base_url = (base_url or settings.embedding_base_url).rstrip("/")
        self.dimension = dimension or settings.embedding_dimension
        self.batch_size = batch_size or settings.embedding_batch_size
        self.delay_seconds = (
            delay_seconds if delay_seconds is not None else settings.embedding_delay_seconds
        )
        self.timeout = timeout or settings.embedding_timeout_seconds
        self._http_client = http_client

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/{self.model}/pipeline/feature-extraction"

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Generate embeddings for a sequence of input texts.

        Parameters
        ----------
        texts : Sequence[str]
            List or sequence of input text strings.

        Returns
        -------
        List[List[float]]
            One vector of length `dimension` per input, in input order.

        Raises
        ------
        EmbeddingServiceError
            If the key is missing, any batch fails, or the response is
            malformed.
        """
        if not texts:
            return []

        if not self.is_configured:
            raise EmbeddingServiceError(
                "HUGGINGFACE_API_KEY is not configured",
                suggestion="Please add your Hugging Face API key to environment variables.",
            )

        all_embeddings: List[List[float]] = []
        headers = {"Authorization": f"Bearer {self.api_key}"}

        logger.debug("Generating embeddings for %d texts using %s", len(texts), self.model)

        async with self._client() as client:
            for start in range(0, len(texts), self.batch_size):
                if start > 0 and self.delay_seconds > 0:
                    await asyncio.sleep(self.delay_seconds)

                batch = list(texts[start : start + self.batch_size])
                response = await self._post_batch(client, batch, headers)
                all_embeddings.extend(self._extract_embeddings(response, len(batch)))

        return all_embeddings

    async def embed_one(self, text: str) -> List[float]:
        """Embed a single text."""
        return (await self.embed([text]))[0]

    async def ping(self) -> None:
        """
        Probe the embedding service with a tiny input.

        Raises EmbeddingServiceError on any failure.
        """
        await self.embed(["ping"])

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

    async def _post_batch(
        self,
        client: httpx.AsyncClient,
        batch: List[str],
        headers: dict,
    ) -> object:
        try:
            response = await client.post(
                self.endpoint,
                json={"inputs": batch},
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            code = exc.response.status_code
            logger.error(
                "Embedding request failed with HTTP %d: batch size=%d",
                code,
                len(batch),
            )
            if code in (401, 403):
                raise EmbeddingServiceError(
                    "Embedding service authentication failed",
                    suggestion="Please verify your Hugging Face API key is correct.",
                ) from exc
            if code == 429:
                raise EmbeddingServiceError(
                    "Embedding service rate limit exceeded",
                    suggestion="Please wait a moment and try again.",
                ) from exc
            raise EmbeddingServiceError(
                f"Embedding generation failed: HTTP {code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error(
                "Embedding request failed (%s): batch size=%d, error=%s",
                type(exc).__name__,
                len(batch),
                str(exc),
            )
            raise EmbeddingServiceError(
                f"Embedding generation failed: {type(exc).__name__}"
            ) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise EmbeddingServiceError("Embedding response is not valid JSON.") from exc

    def _extract_embeddings(self, data: object, expected: int) -> List[List[float]]:
        """
        Parse and validate feature-extraction output.

        The API returns one entry per input. An entry is either a pooled
        vector `[float, ...]` or token-level vectors `[[float, ...], ...]`,
        which are mean-pooled here.

        Raises
        ------
        EmbeddingServiceError
            If the API returns unexpected structure.
        """
        if not isinstance(data, list):
            raise EmbeddingServiceError(
                f"Invalid embedding response format: expected list, got {type(data).__name__}"
            )

        # A single input may come back as a bare vector
        if expected == 1 and data and all(isinstance(x, (int, float)) for x in data):
            data = [data]

        if len(data) != expected:
            raise EmbeddingServiceError(
                f"Embedding count mismatch: expected {expected}, got {len(data)}"
            )

        embeddings: List[List[float]] = []

        for index, record in enumerate(data):
            if not isinstance(record, list) or not record:
                raise EmbeddingServiceError(
                    f"Malformed embedding record at index {index}"
                )

            try:
                arr = np.asarray(record, dtype=np.float64)
            except (TypeError, ValueError) as exc:
                raise EmbeddingServiceError(
                    f"Invalid embedding vector at index {index}: must be numeric."
                ) from exc

            while arr.ndim > 1:
                arr = arr.mean(axis=0)

            if arr.shape != (self.dimension,):
                raise EmbeddingServiceError(
                    f"Invalid embedding dimension at index {index}: "
                    f"expected {self.dimension}, got {arr.shape[0] if arr.ndim else 0}"
                )
            if not np.all(np.isfinite(arr)):
                raise EmbeddingServiceError(
                    f"Invalid embedding vector at index {index}: non-finite values."
                )

            embeddings.append(arr.tolist())

        return embeddings
