"""
HTTP transport for an Ollama-style model server.

Owns the aiohttp session, turns HTTP and network failures into the typed
backend errors, and tracks the recovery pause owed to the server after it
answered with HTTP 500. One transport is shared by every client that
talks to the same server so the pause applies to all of them.
"""

import asyncio
from collections.abc import Awaitable, Callable, Collection, Mapping
from typing import Any

import aiohttp

from thoughtlands.utils.errors import (
    BackendOverloaded,
    BackendRequestError,
    BackendUnavailable,
    InvalidResponse,
)
from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)


def model_matches(installed: str, wanted: str) -> bool:
    """Whether an installed model name satisfies a configured one.

    ``nomic-embed-text`` is satisfied by ``nomic-embed-text``,
    ``nomic-embed-text:latest`` and ``nomic-embed-text@sha256...``.
    """
    return (
        installed == wanted
        or installed.startswith(wanted + ":")
        or installed.startswith(wanted + "@")
    )


class OllamaTransport:
    """Shared HTTP transport with failure classification."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        timeout_seconds: float = 30.0,
        recovery_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        session: aiohttp.ClientSession | None = None,
        headers: Mapping[str, str] | None = None,
    ):
        """Initialize the transport.

        Args:
            base_url: Model server URL
            timeout_seconds: Total timeout per request
            recovery_delay: Pause owed to the server after an HTTP 500
            sleep: Awaitable sleep, replaceable in tests
            session: Pre-built session (the transport then does not own it)
            headers: Sent with every request (e.g. an Authorization header)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.recovery_delay = recovery_delay
        self.sleep = sleep
        self.session = session
        self._owns_session = session is None
        self._recovery_pending = False
        self.headers = dict(headers or {})

        logger.debug(f"Initialized model server transport: {self.base_url}")

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure HTTP session is available."""
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self.session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self.session

    @property
    def recovery_pending(self) -> bool:
        return self._recovery_pending

    async def recover(self) -> None:
        """Wait out the recovery pause if the server recently failed with 500."""
        if not self._recovery_pending:
            return
        self._recovery_pending = False
        logger.info(f"Waiting {self.recovery_delay:.1f}s for model server to recover")
        await self.sleep(self.recovery_delay)

    async def _read_error_text(self, response: aiohttp.ClientResponse) -> str:
        try:
            return (await response.text())[:500]
        except (aiohttp.ClientError, UnicodeDecodeError):
            return ""

    async def request_json(
        self,
        method: str,
        endpoint: str,
        payload: dict[str, Any] | None = None,
        passthrough: Collection[int] = (),
    ) -> tuple[int, Any]:
        """Send one request and return ``(status, decoded_json)``.

        Statuses listed in ``passthrough`` are returned as ``(status, None)``
        instead of raising, so callers can retarget to another endpoint.

        Raises:
            BackendUnavailable: Network failure or timeout (retryable)
            BackendOverloaded: HTTP 500 or 502+ (retryable)
            BackendRequestError: Any other non-success status
            InvalidResponse: Success status with a body that is not JSON
        """
        await self.recover()

        session = await self._ensure_session()
        url = f"{self.base_url}/{endpoint}"
        headers = {"Content-Type": "application/json", **self.headers}

        try:
            async with session.request(method, url, json=payload, headers=headers) as response:
                status = response.status

                if status in passthrough:
                    logger.debug(f"{url} answered {status}")
                    return status, None

                if status == 200:
                    try:
                        return status, await response.json(content_type=None)
                    except (ValueError, aiohttp.ContentTypeError) as e:
                        raise InvalidResponse(
                            f"Malformed JSON from {url}: {e}", status=status
                        ) from e

                error_text = await self._read_error_text(response)

                if status == 500:
                    self._recovery_pending = True
                    raise BackendOverloaded(
                        f"Model server error: {status} - {error_text}", status=status
                    )
                if status >= 502:
                    raise BackendOverloaded(
                        f"Model server unavailable: {status} - {error_text}", status=status
                    )
                raise BackendRequestError(
                    f"Request failed: {status} - {error_text}",
                    status=status,
                    context={"url": url},
                )

        except TimeoutError as e:
            raise BackendUnavailable(
                f"Request to {url} timed out after {self.timeout_seconds}s"
            ) from e
        except aiohttp.ClientError as e:
            raise BackendUnavailable(
                f"Failed to connect to model server at {self.base_url}: {e}",
                suggestions=["Check that Ollama is running (`ollama serve`)"],
            ) from e

    async def post_json(
        self,
        endpoint: str,
        payload: dict[str, Any],
        passthrough: Collection[int] = (),
    ) -> tuple[int, Any]:
        return await self.request_json("POST", endpoint, payload, passthrough)

    async def list_models(self) -> list[str]:
        """Names of every model installed on the server."""
        _, data = await self.request_json("GET", "api/tags")
        if not isinstance(data, dict):
            raise InvalidResponse("Model listing is not a JSON object")
        return [m.get("name", "") for m in data.get("models") or [] if isinstance(m, dict)]

    async def model_installed(self, model_name: str) -> bool:
        models = await self.list_models()
        logger.debug(f"Installed models: {models}")
        return any(model_matches(name, model_name) for name in models)

    async def close(self) -> None:
        """Close the HTTP session if this transport created it."""
        if self.session and not self.session.closed and self._owns_session:
            await self.session.close()
        self.session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
