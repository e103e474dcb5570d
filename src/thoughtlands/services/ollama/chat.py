"""
Chat client for an Ollama-style model server.
"""

from typing import Any

from thoughtlands.core.interfaces import IChatClient
from thoughtlands.models.embedding import BackendStatus, ChatEndpoint, ChatResult
from thoughtlands.services.ollama.retry import RetryPolicy, retry_async
from thoughtlands.services.ollama.transport import OllamaTransport
from thoughtlands.utils.errors import BackendError, InvalidResponse
from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)


def parse_chat_response(data: Any, endpoint: ChatEndpoint) -> ChatResult:
    """Pull the answer text out of a ``/api/chat`` or ``/api/generate`` response."""
    if not isinstance(data, dict):
        raise InvalidResponse(f"Chat response from {endpoint.value} is not a JSON object")

    content = None
    message = data.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        content = message["content"].strip()
    if not content and isinstance(data.get("response"), str):
        content = data["response"].strip()

    if not content:
        raise InvalidResponse(f"No content in response from {endpoint.value}")

    return ChatResult(content=content, endpoint=endpoint, model=data.get("model"))


class OllamaChatClient(IChatClient):
    """Ollama client implementation of IChatClient."""

    def __init__(
        self,
        transport: OllamaTransport,
        model: str = "llama3.2",
        retry_policy: RetryPolicy | None = None,
        temperature: float | None = None,
    ):
        self.transport = transport
        self._model = model
        self.retry_policy = retry_policy or RetryPolicy()
        self.temperature = temperature

    @property
    def model_name(self) -> str:
        return self._model

    def _options(self) -> dict[str, Any]:
        if self.temperature is None:
            return {}
        return {"options": {"temperature": self.temperature}}

    async def _request(self, prompt: str, system: str | None) -> ChatResult:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        chat_payload = {
            "model": self._model,
            "messages": messages,
            "stream": False,
            **self._options(),
        }
        status, data = await self.transport.post_json(
            ChatEndpoint.CHAT.value, chat_payload, passthrough=(404,)
        )
        if status != 404:
            return parse_chat_response(data, ChatEndpoint.CHAT)

        logger.info(f"/{ChatEndpoint.CHAT.value} returned 404, trying /{ChatEndpoint.GENERATE.value}")
        generate_payload = {
            "model": self._model,
            "prompt": f"{system}\n\n{prompt}" if system else prompt,
            "stream": False,
            **self._options(),
        }
        try:
            _, data = await self.transport.post_json(ChatEndpoint.GENERATE.value, generate_payload)
        except BackendError as e:
            if e.status == 404:
                e.suggestions.append(f"The model may not be installed. Try running: ollama pull {self._model}")
            raise
        return parse_chat_response(data, ChatEndpoint.GENERATE)

    async def chat(self, prompt: str, system: str | None = None) -> ChatResult:
        """Send one prompt and return the normalized result."""
        result = await retry_async(
            lambda: self._request(prompt, system),
            self.retry_policy,
            sleep=self.transport.sleep,
            description="Chat request",
        )
        logger.debug(f"Chat answered via /{result.endpoint.value}: {len(result.content)} chars")
        return result

    async def complete(self, prompt: str, system: str | None = None) -> str:
        return (await self.chat(prompt, system)).content

    async def check_status(self) -> BackendStatus:
        """Check the server answers and the chat model is installed."""
        try:
            installed = await self.transport.model_installed(self._model)
        except BackendError as e:
            return BackendStatus(
                available=False, model_installed=False, model_name=self._model,
                error=f"Ollama is not available: {e}",
            )
        return BackendStatus(
            available=True,
            model_installed=installed,
            model_name=self._model,
            error=None if installed else (
                f'Model "{self._model}" not found in Ollama. '
                f"Try running: ollama pull {self._model}"
            ),
        )
