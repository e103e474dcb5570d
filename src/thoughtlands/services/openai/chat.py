"""
Chat client for an OpenAI-compatible chat-completions API.

Used when ``ai_mode`` is ``openai``. Requests go through the same
transport and retry helper as the Ollama clients; only the endpoint,
the payload shape and the bearer token differ. Embeddings always stay
on the local model server.
"""

from typing import Any

from thoughtlands.core.interfaces import IChatClient
from thoughtlands.models.embedding import BackendStatus, ChatEndpoint, ChatResult
from thoughtlands.services.ollama.retry import RetryPolicy, retry_async
from thoughtlands.services.ollama.transport import OllamaTransport
from thoughtlands.utils.errors import BackendError, ConfigurationError, InvalidResponse
from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"


class OpenAITransport(OllamaTransport):
    """Transport that authenticates with a bearer token and lists ``/models``."""

    def __init__(self, api_key: str, base_url: str = DEFAULT_BASE_URL, **kwargs: Any):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        super().__init__(base_url, headers=headers, **kwargs)
        self.api_key = api_key

    async def list_models(self) -> list[str]:
        _, data = await self.request_json("GET", "models")
        if not isinstance(data, dict):
            raise InvalidResponse("Model listing is not a JSON object")
        return [m.get("id", "") for m in data.get("data") or [] if isinstance(m, dict)]


def parse_completion_response(data: Any) -> ChatResult:
    """Pull the answer out of ``choices[0].message.content``."""
    if not isinstance(data, dict):
        raise InvalidResponse("Chat completion response is not a JSON object")

    choices = data.get("choices")
    content = None
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            content = message["content"].strip()

    if not content:
        raise InvalidResponse("No response from the chat completions API")

    return ChatResult(content=content, endpoint=ChatEndpoint.COMPLETIONS, model=data.get("model"))


class OpenAIChatClient(IChatClient):
    """OpenAI chat-completions implementation of IChatClient."""

    def __init__(
        self,
        transport: OpenAITransport,
        model: str = "gpt-3.5-turbo",
        retry_policy: RetryPolicy | None = None,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ):
        self.transport = transport
        self._model = model
        self.retry_policy = retry_policy or RetryPolicy()
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def backend_name(self) -> str:
        return "openai"

    def _require_key(self) -> None:
        if not self.transport.api_key:
            raise ConfigurationError(
                "OpenAI API key not configured",
                suggestions=["Set THOUGHTLANDS_OPENAI_API_KEY or use ai_mode 'local'"],
            )

    async def _request(self, prompt: str, system: str | None) -> ChatResult:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": self._model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        _, data = await self.transport.post_json(ChatEndpoint.COMPLETIONS.value, payload)
        return parse_completion_response(data)

    async def chat(self, prompt: str, system: str | None = None) -> ChatResult:
        self._require_key()
        result = await retry_async(
            lambda: self._request(prompt, system),
            self.retry_policy,
            sleep=self.transport.sleep,
            description="Chat completion request",
        )
        logger.debug(f"Chat completion answered: {len(result.content)} chars")
        return result

    async def complete(self, prompt: str, system: str | None = None) -> str:
        return (await self.chat(prompt, system)).content

    async def check_status(self) -> BackendStatus:
        """Check the key is set and the API lists the configured model."""
        if not self.transport.api_key:
            return BackendStatus(
                available=False, model_installed=False, model_name=self._model,
                error="OpenAI API key not configured",
            )
        try:
            installed = await self.transport.model_installed(self._model)
        except BackendError as e:
            return BackendStatus(
                available=False, model_installed=False, model_name=self._model,
                error=f"OpenAI API is not available: {e}",
            )
        return BackendStatus(
            available=True,
            model_installed=installed,
            model_name=self._model,
            error=None if installed else f'Model "{self._model}" is not offered by the API',
        )
