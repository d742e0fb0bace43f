"""
Provider API clients for the visibility scan.
Both providers expose an OpenAI-compatible chat completions endpoint, so one
client class serves both with a different base URL and credentials.
"""

import asyncio
import logging
from typing import List, Dict, Optional, Any

import httpx
import openai
from openai import AsyncOpenAI

from clinicai.config import PipelineConfig, PROVIDER_A, PROVIDER_B
from clinicai.errors import ProviderAPIError, NetworkError, ScanCancelledError
from clinicai.visibility_models import ProviderResponse, TokenUsage

logger = logging.getLogger(__name__)


def normalize_base_url(base_url: str) -> str:
    return (base_url or "").strip().rstrip("/")


class ProviderClient:
    """
    Thin async wrapper around one OpenAI-compatible chat completions API.

    The API key is bound per instance; retries are left to the caller.
    """

    def __init__(
        self,
        provider: str,
        api_key: str,
        base_url: str,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.provider = provider
        self.base_url = normalize_base_url(base_url)
        self._owns_http_client = http_client is None
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            timeout=timeout,
            max_retries=0,
            http_client=http_client,
        )

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._client.close()

    async def __aenter__(self) -> "ProviderClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def complete(
        self,
        model: str,
        messages: List[Dict[str, str]],
        temperature: float,
        response_format: Optional[Dict[str, str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ProviderResponse:
        """
        Send one chat completion request.

        Raises:
            ProviderAPIError: the provider answered with a non-2xx status
            NetworkError: no response was received
            ScanCancelledError: cancel_event was set before the response arrived
        """
        if response_format and response_format.get("type") == "json_object":
            if not any("json" in m.get("content", "").lower() for m in messages):
                logger.warning(
                    "[%s] JSON mode requires the word \"JSON\" in the messages", self.provider
                )

        request = self._create(model, messages, temperature, response_format)
        if cancel_event is None:
            return await request
        return await self._with_cancel(request, cancel_event)

    async def _create(
        self,
        model: str,
        messages: List[Dict[str, str]],
        temperature: float,
        response_format: Optional[Dict[str, str]],
    ) -> ProviderResponse:
        call_kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if response_format:
            call_kwargs["response_format"] = response_format

        try:
            resp = await self._client.chat.completions.create(**call_kwargs)
        except openai.APIStatusError as e:
            raise _status_error(self.provider, e) from e
        except openai.APIConnectionError as e:
            raise NetworkError(self.provider, str(e) or "Connection error") from e

        choice = resp.choices[0] if resp.choices else None
        content = choice.message.content if choice and choice.message else None
        usage = None
        if resp.usage is not None:
            usage = TokenUsage(
                prompt_tokens=resp.usage.prompt_tokens or 0,
                completion_tokens=resp.usage.completion_tokens or 0,
                total_tokens=resp.usage.total_tokens or 0,
            )

        return ProviderResponse(
            provider=self.provider,
            model=resp.model or model,
            raw_text=content or None,
            finish_reason=choice.finish_reason if choice else None,
            usage=usage,
        )

    async def _with_cancel(self, request, cancel_event: asyncio.Event) -> ProviderResponse:
        if cancel_event.is_set():
            request.close()
            raise ScanCancelledError(f"{self.provider} request cancelled")

        request_task = asyncio.ensure_future(request)
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {request_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancel_task.cancel()
            if not request_task.done():
                request_task.cancel()

        if request_task in done:
            return request_task.result()
        raise ScanCancelledError(f"{self.provider} request cancelled")


def _status_error(provider: str, exc: openai.APIStatusError) -> ProviderAPIError:
    message = exc.message
    if isinstance(exc.body, dict) and exc.body.get("message"):
        message = exc.body["message"]
    return ProviderAPIError(
        provider,
        exc.status_code,
        message,
        code=getattr(exc, "code", None),
        error_type=getattr(exc, "type", None),
    )


def get_provider_a_client(
    api_key: str,
    config: PipelineConfig,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ProviderClient:
    """Client for Provider A (OpenAI), used for the flagship scan and all extraction calls."""
    return ProviderClient(
        PROVIDER_A,
        api_key,
        config.provider_a_base_url,
        timeout=config.timeout_seconds,
        http_client=http_client,
    )


def get_provider_b_client(
    api_key: str,
    config: PipelineConfig,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ProviderClient:
    """Client for Provider B (Perplexity), used for the fast web-grounded scan."""
    return ProviderClient(
        PROVIDER_B,
        api_key,
        config.provider_b_base_url,
        timeout=config.timeout_seconds,
        http_client=http_client,
    )
