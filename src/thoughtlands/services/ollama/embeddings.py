"""
Embedding client for an Ollama-style model server.

This module implements IEmbeddingClient on top of the shared transport:
primary ``/api/embed`` with a fallback to the legacy ``/api/embeddings``
shape, retry with capped backoff, and an in-session memo.
"""

from typing import Any

from thoughtlands.core.interfaces import IEmbeddingClient
from thoughtlands.models.embedding import BackendStatus, EmbeddingEndpoint, EmbeddingResult
from thoughtlands.services.embedding.memo import EmbeddingMemo
from thoughtlands.services.ollama.retry import RetryPolicy, retry_async
from thoughtlands.services.ollama.transport import OllamaTransport
from thoughtlands.utils.errors import BackendError, InputError, InvalidResponse
from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)

FALLBACK_STATUSES = frozenset({404, 405})


def parse_embedding_response(data: Any, endpoint: EmbeddingEndpoint) -> EmbeddingResult:
    """Normalize either response shape into an EmbeddingResult.

    ``/api/embed`` answers ``{"embeddings": [[...]]}``; older servers answer
    ``{"embedding": [...]}``. Either key is accepted from either endpoint.
    """
    if not isinstance(data, dict):
        raise InvalidResponse(f"Embedding response from {endpoint.value} is not a JSON object")

    vector = data.get("embedding")
    if not vector:
        embeddings = data.get("embeddings")
        if isinstance(embeddings, list) and embeddings:
            vector = embeddings[0]

    if not isinstance(vector, list) or not vector:
        raise InvalidResponse(
            f"Missing or empty embedding in response from {endpoint.value}",
            context={"keys": sorted(data.keys())},
        )

    try:
        values = [float(v) for v in vector]
    except (TypeError, ValueError) as e:
        raise InvalidResponse(f"Non-numeric embedding from {endpoint.value}") from e

    return EmbeddingResult(embedding=values, endpoint=endpoint, model=data.get("model"))


class OllamaEmbeddingClient(IEmbeddingClient):
    """Ollama client implementation of IEmbeddingClient."""

    def __init__(
        self,
        transport: OllamaTransport,
        model: str = "nomic-embed-text",
        retry_policy: RetryPolicy | None = None,
        memo: EmbeddingMemo | None = None,
    ):
        self.transport = transport
        self._model = model
        self.retry_policy = retry_policy or RetryPolicy()
        self.memo = memo if memo is not None else EmbeddingMemo()
        self._endpoint = EmbeddingEndpoint.EMBED

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def endpoint(self) -> EmbeddingEndpoint:
        """Endpoint shape that answered most recently."""
        return self._endpoint

    async def _request(self, text: str) -> EmbeddingResult:
        payload = {"model": self._model, "input": text}

        status, data = await self.transport.post_json(
            EmbeddingEndpoint.EMBED.value, payload, passthrough=FALLBACK_STATUSES
        )
        endpoint = EmbeddingEndpoint.EMBED
        if status in FALLBACK_STATUSES:
            logger.info(f"/{EmbeddingEndpoint.EMBED.value} answered {status}, trying /{EmbeddingEndpoint.EMBEDDINGS.value}")
            endpoint = EmbeddingEndpoint.EMBEDDINGS
            _, data = await self.transport.post_json(endpoint.value, payload)

        result = parse_embedding_response(data, endpoint)
        self._endpoint = endpoint
        return result

    async def embed_detailed(self, text: str) -> EmbeddingResult:
        """Embed text and report which endpoint produced the vector."""
        if not text or not text.strip():
            raise InputError("Cannot generate embedding for empty text")

        result = await retry_async(
            lambda: self._request(text),
            self.retry_policy,
            sleep=self.transport.sleep,
            description=f"Embedding request ({len(text)} chars)",
        )
        logger.debug(f"Embedded {len(text)} chars via /{result.endpoint.value}: dim={result.dimension}")
        return result

    async def embed(self, text: str, use_memo: bool = True) -> list[float]:
        """Embed a single text, answering repeats from the memo."""
        if not text or not text.strip():
            raise InputError("Cannot generate embedding for empty text")

        if use_memo:
            memoized = self.memo.get(text)
            if memoized is not None:
                return memoized

        result = await self.embed_detailed(text)
        if use_memo:
            self.memo.put(text, result.embedding)
        return result.embedding

    async def recover(self) -> None:
        await self.transport.recover()

    async def check_status(self) -> BackendStatus:
        """Check the server answers, the model is installed and an embed endpoint works."""
        try:
            installed = await self.transport.model_installed(self._model)
        except BackendError as e:
            return BackendStatus(
                available=False, model_installed=False, model_name=self._model, error=str(e)
            )

        if not installed:
            return BackendStatus(
                available=True,
                model_installed=False,
                model_name=self._model,
                error=f'Model "{self._model}" not found in Ollama',
            )

        try:
            await self._request("test")
        except BackendError as e:
            logger.warning(f"Embedding endpoint check failed: {e}")
            return BackendStatus(
                available=True,
                model_installed=False,
                model_name=self._model,
                error=f"Model found but no embedding endpoint answered: {e}",
            )

        return BackendStatus(available=True, model_installed=True, model_name=self._model)
